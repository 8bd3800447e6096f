"""
退房服务 - 本体操作层
退房在一个事务内完成：预订置为 Checked-Out、入住会话全部失效、房间释放
"""
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.models.ontology import (
    Booking, BookingInfo, BookingStatus, CheckinSessionStatus, RoomStatus, utcnow
)
from app.services.booking_service import BookingService
from app.services.errors import CheckinError, CheckinErrorKind

logger = logging.getLogger(__name__)


class CheckOutService:
    """退房服务"""

    def __init__(self, db: Session):
        self.db = db
        self.booking_service = BookingService(db)

    def check_out(self, booking_id: int) -> Booking:
        """
        退房操作
        业务联动规则：
        1. 预订必须处于 Checked-In
        2. 预订置为 Checked-Out，记录离店时间
        3. 该预订所有入住会话立即失效（EXPIRED）
        4. 房间与预订房间记录置为 Available
        """
        now = utcnow()
        try:
            booking = self.booking_service.lock_booking(booking_id)
            if not booking:
                raise CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND)

            if booking.status != BookingStatus.CHECKED_IN.value:
                raise CheckinError(
                    CheckinErrorKind.NOT_CHECKED_IN,
                    f"Booking is not checked in (status: {booking.status})"
                )

            booking.status = BookingStatus.CHECKED_OUT.value
            booking.check_out = now

            expired_sessions = self.db.query(BookingInfo).filter(
                BookingInfo.booking_id == booking.id,
                BookingInfo.deleted_at.is_(None)
            ).update({
                BookingInfo.expires_at: now,
                BookingInfo.status: CheckinSessionStatus.EXPIRED.value,
                BookingInfo.updated_at: now,
            }, synchronize_session=False)

            room_ids = []
            for booking_room in booking.rooms:
                if booking_room.deleted_at is not None:
                    continue
                booking_room.status = RoomStatus.AVAILABLE.value
                if booking_room.room is not None:
                    booking_room.room.status = RoomStatus.AVAILABLE.value
                    room_ids.append(booking_room.room_id)

            self.db.commit()
        except CheckinError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Checkout failed for booking {booking_id}: {e}")
            raise CheckinError(CheckinErrorKind.CHECKOUT_FAILED) from e

        logger.info(
            f"Booking {booking_id} checked out: {expired_sessions} session(s) expired, "
            f"rooms {room_ids} released"
        )

        self.db.refresh(booking)
        return booking
