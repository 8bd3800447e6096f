"""
入住流程路由
前台发起入住会话；客人通过入住码或链接 token 完成自助入住
"""
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import (
    CheckinInitiateRequest, CheckinValidateRequest, CheckinFinalizeRequest,
    CheckinResendRequest, BookingInfoResponse
)
from app.services.checkin_service import CheckInService
from app.services.checkin_session_service import CheckinSessionService, TokenVerification
from app.services.errors import CheckinError, CheckinErrorKind, to_http_exception
from app.services.notification_service import CheckinNotifier, get_checkin_notifier
from app.security.auth import require_manager, require_receptionist_or_manager

router = APIRouter(prefix="/checkin", tags=["入住流程"])


def _bearer_token(authorization: Optional[str]) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return ""


def _verification_payload(result: TokenVerification) -> dict:
    """链接入住页面数据"""
    session, booking = result.session, result.booking
    if result.already_checked_in:
        customer = booking.customer
        return {
            "status": "already_checked_in",
            "data": {
                "bookingId": booking.id,
                "checkedInAt": booking.checked_in_at,
                "stay": {
                    "from": booking.check_in_date,
                    "to": booking.check_out_date,
                    "nights": booking.nights,
                },
                "customer": {
                    "name": customer.full_name if customer else None,
                    "email": customer.email if customer else None,
                },
                "rooms": result.rooms,
                "adults": booking.adults,
                "children": booking.children,
                "accompanyingGuests": result.accompanying_guests,
            },
        }
    return {
        "status": "success",
        "data": {
            "bookingInfoId": session.id,
            "bookingId": session.booking_id,
            "guestEmail": session.guest_email,
            "guestLastName": session.guest_last_name,
            "tokenExpires": session.expires_at,
            "checkInDate": booking.check_in,
            "checkOutDate": booking.check_out,
            "numberOfNights": result.nights,
            "rooms": result.rooms,
            "adults": booking.adults,
            "children": booking.children,
            "accompanyingGuests": result.accompanying_guests,
        },
    }


@router.post("/initiate")
def initiate_checkin(
    data: CheckinInitiateRequest,
    db: Session = Depends(get_db),
    notifier: CheckinNotifier = Depends(get_checkin_notifier),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """发起入住会话并发送入住邮件"""
    service = CheckinSessionService(db, notifier=notifier)
    try:
        result = service.create_session(data.booking_id)
    except CheckinError as e:
        raise to_http_exception(e)

    session = result.session
    payload = {
        "id": session.id,
        "token": session.token,
        "checkin_code": session.checkin_code,
    }
    if not result.email_sent:
        return JSONResponse(
            status_code=status.HTTP_206_PARTIAL_CONTENT,
            content={
                "status": "warning",
                "data": payload,
                "error": {
                    "code": "email_send_failed",
                    "message": "Check-in session created but the email could not be sent",
                    "details": result.email_error,
                },
            },
        )
    return {"status": "success", "data": payload}


@router.post("/validate")
def validate_checkin_code(data: CheckinValidateRequest, db: Session = Depends(get_db)):
    """手工输入入住码 + 姓名 / 预订参考号，换取入住 token"""
    service = CheckinSessionService(db)
    try:
        session = service.validate_by_code(data.checkin_code, data.query)
    except CheckinError as e:
        raise to_http_exception(e)
    return {
        "status": "success",
        "data": {"token": session.token, "bookingInfoId": session.id},
    }


@router.get("/verify")
def verify_token(
    token: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    """校验入住链接 token（?token= 或 Authorization: Bearer）"""
    token = (token or "").strip() or _bearer_token(authorization)
    if not token:
        raise to_http_exception(CheckinError(CheckinErrorKind.INVALID_FORMAT, "token is required"))

    service = CheckinSessionService(db)
    try:
        result = service.validate_by_token(token)
    except CheckinError as e:
        raise to_http_exception(e)
    return _verification_payload(result)


@router.post("")
def finalize_checkin(data: CheckinFinalizeRequest, db: Session = Depends(get_db)):
    """提交客人信息与同意书，完成入住"""
    service = CheckInService(db)
    try:
        result = service.finalize_check_in(data.token, data.guests, data.consent_ids())
    except CheckinError as e:
        raise to_http_exception(e)
    return {
        "status": "success",
        "message": "Check-in already completed" if result.already_completed else "Check-in completed",
        "data": {
            "bookingId": result.booking_id,
            "bookingInfoId": result.booking_info_id,
            "guestIds": result.guest_ids,
            "consentLogs": result.consent_log_count,
            "alreadyCompleted": result.already_completed,
        },
    }


@router.post("/resend")
def resend_checkin_code(
    data: CheckinResendRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: CheckinNotifier = Depends(get_checkin_notifier)
):
    """重发入住码（有效期重置为 15 分钟），邮件在后台发送"""
    service = CheckinSessionService(db, notifier=notifier)
    try:
        result = service.resend_code(data.booking_info_id, data.checkin_code)
    except CheckinError as e:
        raise to_http_exception(e)

    background_tasks.add_task(notifier.deliver_in_background, result.notice)
    return {
        "message": "Check-in code re-sent",
        "bookingInfoId": result.session.id,
        "expiresAt": result.code_expires_at,
    }


@router.post("/sessions/expire-stale")
def expire_stale_sessions(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """把 token 与入住码都已过期的会话标记为 EXPIRED"""
    expired = CheckinSessionService(db).expire_stale_sessions()
    return {"expired": expired}


@router.get("/sessions/{booking_info_id}", response_model=BookingInfoResponse)
def get_checkin_session(
    booking_info_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """获取入住会话"""
    session = CheckinSessionService(db).get_session(booking_info_id)
    if not session:
        raise to_http_exception(CheckinError(CheckinErrorKind.SESSION_NOT_FOUND))
    return session


@router.delete("/sessions/{booking_info_id}")
def delete_checkin_session(booking_info_id: int):
    """入住会话只能失效，不能删除"""
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "forbidden", "message": "Check-in sessions cannot be deleted"}
    )
