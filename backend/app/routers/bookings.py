"""
预订管理路由
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import BookingCreate, BookingResponse, GuestResponse
from app.services.booking_service import BookingService
from app.services.checkin_session_service import CheckinSessionService
from app.services.checkout_service import CheckOutService
from app.services.errors import CheckinError, CheckinErrorKind, to_http_exception
from app.services.notification_service import CheckinNotifier, get_checkin_notifier
from app.security.auth import get_current_user, require_receptionist_or_manager, require_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["预订管理"])


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    booking_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订列表"""
    return BookingService(db).list_bookings(booking_status)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    notifier: CheckinNotifier = Depends(get_checkin_notifier),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """创建预订；send_email=true 时同时发起入住会话"""
    try:
        booking = BookingService(db).create_booking(data)
    except CheckinError as e:
        raise to_http_exception(e)

    checkin = None
    if data.send_email:
        try:
            result = CheckinSessionService(db, notifier=notifier).create_session(booking.id)
            checkin = {
                "id": result.session.id,
                "checkin_code": result.session.checkin_code,
                "email_sent": result.email_sent,
                "email_error": result.email_error,
            }
        except CheckinError as e:
            # 预订已创建，入住会话失败只作为附带信息返回
            logger.warning(f"Booking {booking.id} created but check-in session failed: {e.kind.value}")
            checkin = {"error": e.to_dict()}
        db.refresh(booking)

    return {
        "booking": BookingResponse.model_validate(booking).model_dump(),
        "checkin": checkin,
    }


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订详情"""
    booking = BookingService(db).get_booking(booking_id)
    if not booking:
        raise to_http_exception(CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND))
    return booking


@router.get("/{booking_id}/guests", response_model=List[GuestResponse])
def list_booking_guests(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订的入住客人"""
    try:
        return BookingService(db).get_guests(booking_id)
    except CheckinError as e:
        raise to_http_exception(e)


@router.delete("/{booking_id}")
def delete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """删除预订（软删除）"""
    try:
        BookingService(db).delete_booking(booking_id)
    except CheckinError as e:
        raise to_http_exception(e)
    return {"message": "Booking deleted"}


@router.post("/{booking_id}/checkout", response_model=BookingResponse)
def checkout_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """退房"""
    try:
        return CheckOutService(db).check_out(booking_id)
    except CheckinError as e:
        raise to_http_exception(e)
