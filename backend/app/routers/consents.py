"""
同意书路由
模板管理需要员工登录；客人确认与记录关联由入住页面调用
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import (
    ConsentCreate, ConsentResponse, ConsentAcceptRequest,
    ConsentLogCreate, ConsentLogResponse, AttachBookingRequest
)
from app.services.consent_service import ConsentService
from app.services.errors import CheckinError, to_http_exception
from app.security.auth import get_current_user, require_manager

router = APIRouter(tags=["同意书"])


@router.get("/consents", response_model=List[ConsentResponse])
def list_consents(db: Session = Depends(get_db)):
    """同意书模板列表"""
    return ConsentService(db).list_consents()


@router.post("/consents", response_model=ConsentResponse)
def create_consent(
    data: ConsentCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """创建同意书模板（同 slug + version 已存在时返回已有模板）"""
    consent, created = ConsentService(db).create_consent(
        data.title, data.slug, data.description, data.version
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return consent


@router.post("/consents/accept", status_code=status.HTTP_201_CREATED)
def accept_consent(data: ConsentAcceptRequest, db: Session = Depends(get_db)):
    """客人确认同意书（预订未知时记录为 pending）"""
    try:
        log = ConsentService(db).accept_consent(
            data.guest_id, data.consent_id, data.booking_id, data.action
        )
    except CheckinError as e:
        raise to_http_exception(e)
    return {"ok": True, "consent_log_id": log.id, "status": log.status}


@router.get("/consent-logs", response_model=List[ConsentLogResponse])
def list_consent_logs(
    booking_id: Optional[int] = None,
    guest_id: Optional[int] = None,
    log_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """同意书确认记录"""
    return ConsentService(db).list_logs(booking_id, guest_id, log_status)


@router.post("/consent-logs", response_model=ConsentLogResponse, status_code=status.HTTP_201_CREATED)
def create_consent_log(data: ConsentLogCreate, db: Session = Depends(get_db)):
    """写入确认记录"""
    try:
        return ConsentService(db).log_consent(
            consent_id=data.consent_id,
            booking_id=data.booking_id,
            booking_token=data.booking_token,
            guest_id=data.guest_id,
            action=data.action,
            accepted_by=data.accepted_by,
            accepted_at=data.accepted_at,
        )
    except CheckinError as e:
        raise to_http_exception(e)


@router.patch("/consent-logs/attach-booking")
def attach_booking_to_pending(data: AttachBookingRequest, db: Session = Depends(get_db)):
    """把待关联的确认记录关联到预订"""
    try:
        count = ConsentService(db).attach_booking(
            data.booking_id, data.all_guest_ids(), data.token
        )
    except CheckinError as e:
        raise to_http_exception(e)
    message = "pending consent logs updated" if count else "no pending consent logs matched"
    return {"message": message, "rows_affected": count}
