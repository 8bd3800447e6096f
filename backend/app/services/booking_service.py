"""
预订服务 - 本体操作层
管理 Booking 对象（入住流程的聚合根）及其房间分配
"""
import logging
from datetime import datetime, date, UTC
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models.ontology import (
    Booking, BookingRoom, Customer, Guest, Room, BookingStatus, RoomStatus, utcnow
)
from app.models.schemas import BookingCreate
from app.services.errors import CheckinError, CheckinErrorKind
from app.services.token_service import generate_booking_reference

logger = logging.getLogger(__name__)


def calculate_nights(
    check_in: Optional[Union[date, datetime]],
    check_out: Optional[Union[date, datetime]],
) -> int:
    """入住晚数：日期缺失或离店早于入住为 0，否则按整天计且至少 1 晚"""
    if check_in is None or check_out is None:
        return 0
    if check_out < check_in:
        return 0
    return max((check_out - check_in).days, 1)


def parse_stay_datetime(value: Optional[str], field_name: str) -> Optional[datetime]:
    """接受 YYYY-MM-DD 或 ISO-8601"""
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise CheckinError(CheckinErrorKind.VALIDATION, f"invalid {field_name} format: {value}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def _pick(entry: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = entry.get(key)
        if value is not None:
            return str(value).strip()
    return ""


def normalize_guest_list(guest_list: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    """预订时的随行人草稿：只保留姓名与类型，无姓名的条目丢弃"""
    result = []
    for entry in guest_list or []:
        name = _pick(entry, "name", "fullName", "full_name")
        if not name:
            continue
        guest_type = _pick(entry, "type", "guestType", "guest_type") or "Adult"
        result.append({"fullName": name, "type": guest_type})
    return result


class BookingService:
    """预订服务"""

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self):
        return self.db.query(Booking).filter(Booking.deleted_at.is_(None))

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        """获取预订（含客户、房间、房型）"""
        return self._base_query().options(
            joinedload(Booking.customer),
            joinedload(Booking.rooms).joinedload(BookingRoom.room).joinedload(Room.room_type),
        ).filter(Booking.id == booking_id).first()

    def list_bookings(self, status: Optional[str] = None) -> List[Booking]:
        """预订列表，最新的在前"""
        query = self._base_query().options(
            joinedload(Booking.customer),
            joinedload(Booking.rooms).joinedload(BookingRoom.room),
        )
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def lock_booking(self, booking_id: int) -> Optional[Booking]:
        """
        锁定预订行直到事务结束（关联对象按需懒加载）

        先执行一次 UPDATE 取得写锁，SQLite 不支持 FOR UPDATE，靠它串行化并发写入
        """
        touched = self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.deleted_at.is_(None))
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if touched.rowcount == 0:
            return None
        return self._base_query().filter(Booking.id == booking_id).with_for_update().populate_existing().first()

    def get_guests(self, booking_id: int) -> List[Guest]:
        if not self.get_booking(booking_id):
            raise CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND)
        return self.db.query(Guest).filter(Guest.booking_id == booking_id).order_by(Guest.id).all()

    def delete_booking(self, booking_id: int) -> None:
        """软删除预订"""
        booking = self._base_query().filter(Booking.id == booking_id).first()
        if not booking:
            raise CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND)
        booking.deleted_at = utcnow()
        self.db.commit()
        logger.info(f"Booking {booking.reference_code} soft-deleted")

    def create_booking(self, data: BookingCreate) -> Booking:
        """
        创建预订

        一个事务内：创建预订（Confirmed）、为每间房创建 BookingRoom（Reserved）、
        并把房间状态置为 Reserved
        """
        room_ids = data.all_room_ids()
        if not room_ids:
            raise CheckinError(CheckinErrorKind.VALIDATION, "no room ids provided")

        adults = data.adults if data.adults > 0 else 1
        children = data.children if data.children >= 0 else 0
        accompanying = normalize_guest_list(data.guest_list)

        customer = self.db.query(Customer).filter(
            Customer.id == data.customer_id, Customer.deleted_at.is_(None)
        ).first()
        if not customer:
            raise CheckinError(CheckinErrorKind.VALIDATION, "customer not found")

        rooms = []
        for rid in room_ids:
            if rid <= 0:
                raise CheckinError(CheckinErrorKind.VALIDATION, f"invalid room id {rid}")
            room = self.db.query(Room).filter(Room.id == rid, Room.deleted_at.is_(None)).first()
            if not room:
                raise CheckinError(CheckinErrorKind.VALIDATION, f"room {rid} not found")
            rooms.append(room)

        check_in = parse_stay_datetime(data.check_in, "check_in")
        check_out = parse_stay_datetime(data.check_out, "check_out")

        nights = 0
        if check_in and check_out and check_out > check_in:
            nights = max((check_out - check_in).days, 1)

        booking = Booking(
            reference_code=generate_booking_reference(),
            customer_id=customer.id,
            status=BookingStatus.CONFIRMED.value,
            check_in=check_in,
            check_out=check_out,
            check_in_date=check_in.date() if check_in else None,
            check_out_date=check_out.date() if check_out else None,
            nights=nights,
            adults=adults,
            children=children,
            number_of_guests=adults + children,
            accompanying_guests=accompanying,
        )

        try:
            self.db.add(booking)
            self.db.flush()
            for room in rooms:
                self.db.add(BookingRoom(
                    booking_id=booking.id,
                    room_id=room.id,
                    nights=nights,
                    status=RoomStatus.RESERVED.value,
                ))
                room.status = RoomStatus.RESERVED.value
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create booking for customer {customer.id}: {e}")
            raise CheckinError(CheckinErrorKind.INTERNAL, "failed to create booking") from e

        logger.info(f"Booking {booking.reference_code} created with {len(rooms)} room(s)")

        return self.get_booking(booking.id)
