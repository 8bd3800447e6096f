"""
入住会话服务 - 签发、校验、重发入住凭证
会话 (BookingInfo) 状态机：INITIATED -> COMPLETED | EXPIRED
过期由时间戳惰性判断，不依赖后台任务
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.config import settings
from app.database import is_unique_violation
from app.models.ontology import (
    Booking, BookingInfo, BookingRoom, Customer, Room,
    CheckinSessionStatus, EmailStatus, utcnow
)
from app.services.booking_service import BookingService, calculate_nights
from app.services.errors import CheckinError, CheckinErrorKind
from app.services.notification_service import (
    CheckinNotice, CheckinNotifier, RoomLine, build_checkin_notifier, format_stay_date
)
from app.services.token_service import (
    build_checkin_link, format_checkin_code, generate_checkin_code, generate_token,
    is_valid_checkin_code_format, normalize_checkin_code, short_token
)
from core.notification.channel import NotificationError

logger = logging.getLogger(__name__)

CHECKIN_CODE_LENGTH = 8


@dataclass
class SessionResult:
    """create_session 的结果；email_sent=False 表示部分成功"""
    session: BookingInfo
    email_sent: bool = True
    email_error: Optional[str] = None


@dataclass
class ResendResult:
    session: BookingInfo
    code_expires_at: datetime
    notice: CheckinNotice


@dataclass
class TokenVerification:
    """token 校验结果（链接入住页面展示用）"""
    session: BookingInfo
    booking: Booking
    rooms: List[Dict[str, Any]] = field(default_factory=list)
    nights: int = 0
    already_checked_in: bool = False
    accompanying_guests: List[Dict[str, Any]] = field(default_factory=list)


def booking_room_lines(booking: Booking) -> List[RoomLine]:
    """预订的房间列表：房号优先 room_code，房型优先房间标签"""
    lines = []
    for booking_room in booking.rooms:
        if booking_room.deleted_at is not None:
            continue
        room = booking_room.room
        if room is None:
            lines.append(RoomLine(number=""))
            continue
        lines.append(RoomLine(number=room.display_number, type=room.display_type))
    return lines


class CheckinSessionService:
    """入住会话服务"""

    def __init__(self, db: Session, notifier: Optional[CheckinNotifier] = None):
        self.db = db
        self.notifier = notifier or build_checkin_notifier()
        self.booking_service = BookingService(db)

    # ---------- 查询 ----------

    def get_session(self, booking_info_id: int) -> Optional[BookingInfo]:
        return self.db.query(BookingInfo).filter(
            BookingInfo.id == booking_info_id,
            BookingInfo.deleted_at.is_(None)
        ).first()

    def find_active_session(self, booking_id: int, now: Optional[datetime] = None) -> Optional[BookingInfo]:
        """未删除、INITIATED 且 token 未过期的会话"""
        now = now or utcnow()
        return self.db.query(BookingInfo).filter(
            BookingInfo.booking_id == booking_id,
            BookingInfo.deleted_at.is_(None),
            BookingInfo.status == CheckinSessionStatus.INITIATED.value,
            or_(BookingInfo.expires_at.is_(None), BookingInfo.expires_at > now)
        ).order_by(BookingInfo.id.desc()).first()

    def find_by_code(self, code: str, now: Optional[datetime] = None) -> Tuple[Optional[BookingInfo], bool]:
        """
        仅按入住码查找会话（不校验姓名 / 参考号）

        Returns:
            (会话, 是否已过期)；未找到时为 (None, False)
        """
        now = now or utcnow()
        norm = normalize_checkin_code(code)
        if len(norm) != CHECKIN_CODE_LENGTH:
            return None, False
        candidates = [format_checkin_code(norm), norm]
        session = self.db.query(BookingInfo).filter(
            BookingInfo.checkin_code.in_(candidates),
            BookingInfo.deleted_at.is_(None)
        ).order_by(BookingInfo.id).first()
        if not session:
            return None, False
        expired = session.is_code_expired(now) or session.status == CheckinSessionStatus.EXPIRED.value
        return session, expired

    # ---------- 签发 ----------

    def create_session(self, booking_id: int) -> SessionResult:
        """
        为预订签发入住会话并发送邮件

        凭证唯一约束冲突时重试；邮件失败不回滚会话，只标记 FAILED
        """
        max_retries = settings.CHECKIN_CREATE_MAX_RETRIES
        session = None
        notice = None

        for attempt in range(1, max_retries + 1):
            try:
                session, notice = self._create_once(booking_id)
                break
            except CheckinError:
                self.db.rollback()
                raise
            except IntegrityError as e:
                self.db.rollback()
                if not is_unique_violation(e):
                    logger.error(f"Failed to create check-in session for booking {booking_id}: {e}")
                    raise CheckinError(CheckinErrorKind.INTERNAL, "failed to create check-in session") from e
                logger.warning(
                    f"Check-in credential collision for booking {booking_id} "
                    f"(attempt {attempt}/{max_retries}), retrying"
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to create check-in session for booking {booking_id}: {e}")
                raise CheckinError(CheckinErrorKind.INTERNAL, "failed to create check-in session") from e

        if session is None:
            raise CheckinError(CheckinErrorKind.INTERNAL, "failed to create check-in session after retries")

        logger.info(
            f"Check-in session {session.id} created for booking {booking_id} "
            f"(token {short_token(session.token)})"
        )

        result = SessionResult(session=session)
        try:
            self.notifier.deliver(notice)
            session.email_status = EmailStatus.SENT.value
        except NotificationError as e:
            logger.warning(f"Check-in email for booking {booking_id} failed: {e}")
            session.email_status = EmailStatus.FAILED.value
            session.email_error = str(e)
            result.email_sent = False
            result.email_error = str(e)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record email status for session {session.id}: {e}")

        return result

    def _create_once(self, booking_id: int) -> Tuple[BookingInfo, CheckinNotice]:
        # 锁定预订行，检查与插入在同一事务内完成
        booking = self.booking_service.lock_booking(booking_id)
        if not booking:
            raise CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND)

        customer = booking.customer
        if customer is None or customer.deleted_at is not None:
            raise CheckinError(CheckinErrorKind.MISSING_CUSTOMER)
        if not any(br.deleted_at is None for br in booking.rooms):
            raise CheckinError(CheckinErrorKind.MISSING_ROOM)
        if not (customer.email or "").strip():
            raise CheckinError(CheckinErrorKind.MISSING_CONTACT_EMAIL)
        if booking.is_checked_in:
            raise CheckinError(CheckinErrorKind.ALREADY_CHECKED_IN)
        if booking.is_checked_out:
            raise CheckinError(CheckinErrorKind.BOOKING_CHECKED_OUT)

        now = utcnow()
        if self.find_active_session(booking.id, now):
            raise CheckinError(CheckinErrorKind.CHECKIN_ALREADY_INITIATED)

        token = generate_token(settings.CHECKIN_TOKEN_BYTES)
        code = format_checkin_code(generate_checkin_code(CHECKIN_CODE_LENGTH))
        code_expires_at = None
        if not settings.CHECKIN_CODE_NEVER_EXPIRE:
            code_expires_at = now + timedelta(days=settings.CHECKIN_CODE_TTL_DAYS)

        session = BookingInfo(
            booking_id=booking.id,
            token=token,
            checkin_code=code,
            status=CheckinSessionStatus.INITIATED.value,
            email_status=EmailStatus.PENDING.value,
            expires_at=now + timedelta(hours=settings.CHECKIN_TOKEN_TTL_HOURS),
            code_expires_at=code_expires_at,
            guest_email=customer.email,
            guest_last_name=customer.full_name,
        )
        self.db.add(session)
        self.db.flush()

        notice = self._build_notice(booking, session)
        self.db.commit()
        return session, notice

    def _build_notice(self, booking: Booking, session: BookingInfo) -> CheckinNotice:
        customer = booking.customer
        return CheckinNotice(
            recipient_email=session.guest_email or (customer.email if customer else ""),
            booking_ref=booking.reference_code or "",
            link=build_checkin_link(settings.FRONTEND_URL, session.token),
            guest_name=customer.full_name if customer else (session.guest_last_name or ""),
            code=session.checkin_code,
            check_in_date=format_stay_date(booking.check_in or booking.check_in_date),
            check_out_date=format_stay_date(booking.check_out or booking.check_out_date),
            rooms=booking_room_lines(booking),
        )

    # ---------- 校验 ----------

    def validate_by_code(self, code: str, query: str) -> BookingInfo:
        """
        手工输入入住码 + 姓名 / 预订参考号

        未命中、过期统一返回 INVALID_OR_EXPIRED_CODE，不暴露入住码是否存在
        """
        norm = normalize_checkin_code(code)
        if len(norm) != CHECKIN_CODE_LENGTH:
            raise CheckinError(CheckinErrorKind.INVALID_FORMAT, "check-in code must have 8 characters")
        q = (query or "").strip().lower()
        if not q:
            raise CheckinError(CheckinErrorKind.INVALID_FORMAT, "query (last name or booking reference) is required")

        now = utcnow()
        formatted = format_checkin_code(norm)
        raw = (code or "").strip().upper()

        session = self.db.query(BookingInfo).join(
            Booking, Booking.id == BookingInfo.booking_id
        ).join(
            Customer, Customer.id == Booking.customer_id
        ).filter(
            BookingInfo.checkin_code.in_([formatted, raw]),
            BookingInfo.deleted_at.is_(None),
            Booking.deleted_at.is_(None),
            or_(
                func.lower(Customer.full_name).contains(q, autoescape=True),
                func.lower(Booking.reference_code) == q
            )
        ).order_by(BookingInfo.id).first()

        if not session:
            existing, expired = self.find_by_code(norm, now)
            if existing and expired:
                logger.info(f"Check-in code lookup miss: code exists but expired (booking_info_id={existing.id})")
            elif existing:
                logger.info(f"Check-in code lookup miss: disambiguator mismatch (booking_info_id={existing.id})")
            else:
                logger.info("Check-in code lookup miss: code never existed")
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_CODE)

        if session.booking.is_checked_out:
            raise CheckinError(CheckinErrorKind.BOOKING_CHECKED_OUT)

        if session.is_code_expired(now) or session.status == CheckinSessionStatus.EXPIRED.value:
            logger.info(f"Check-in code lookup miss: code exists but expired (booking_info_id={session.id})")
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_CODE)

        return session

    def validate_by_token(self, token: str) -> TokenVerification:
        """链接入住：校验 token 并加载预订详情"""
        token = (token or "").strip()
        if not token:
            raise CheckinError(CheckinErrorKind.INVALID_FORMAT, "token is required")

        now = utcnow()
        session = self.db.query(BookingInfo).filter(
            BookingInfo.token == token,
            BookingInfo.deleted_at.is_(None)
        ).first()
        if not session:
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN)

        booking = self.db.query(Booking).options(
            joinedload(Booking.customer),
            joinedload(Booking.rooms).joinedload(BookingRoom.room).joinedload(Room.room_type),
        ).filter(Booking.id == session.booking_id).first()
        if not booking:
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN)

        # 退房后 token 同时过期，此时优先告知已退房
        if booking.is_checked_out:
            raise CheckinError(CheckinErrorKind.BOOKING_CHECKED_OUT)
        if session.is_token_expired(now) or session.status == CheckinSessionStatus.EXPIRED.value:
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN)

        rooms = []
        active_rooms = [br for br in booking.rooms if br.deleted_at is None]
        for booking_room, line in zip(active_rooms, booking_room_lines(booking)):
            rooms.append({
                "bookingRoomId": booking_room.id,
                "roomNumber": line.number,
                "roomType": line.type,
            })

        return TokenVerification(
            session=session,
            booking=booking,
            rooms=rooms,
            nights=calculate_nights(booking.check_in, booking.check_out),
            already_checked_in=bool(booking.checkin_completed or booking.checked_in_at),
            accompanying_guests=list(booking.accompanying_guests or []),
        )

    # ---------- 重发 / 清理 ----------

    def resend_code(
        self,
        booking_info_id: Optional[int] = None,
        checkin_code: Optional[str] = None,
    ) -> ResendResult:
        """
        重发入住码：入住码有效期重置为当前时间 + 15 分钟

        邮件内容以纯值返回，由调用方异步投递
        """
        checkin_code = (checkin_code or "").strip()
        if bool(booking_info_id) == bool(checkin_code):
            raise CheckinError(CheckinErrorKind.INVALID_FORMAT, "provide exactly one of bookingInfoId or checkinCode")

        if checkin_code:
            if not is_valid_checkin_code_format(checkin_code):
                raise CheckinError(CheckinErrorKind.INVALID_FORMAT, "invalid check-in code format")
            session, _ = self.find_by_code(checkin_code)
        else:
            session = self.get_session(booking_info_id)

        if not session:
            raise CheckinError(CheckinErrorKind.SESSION_NOT_FOUND)

        new_expiry = utcnow() + timedelta(minutes=settings.CHECKIN_CODE_RESEND_MINUTES)
        session.code_expires_at = new_expiry
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to extend code expiry for session {session.id}: {e}")
            raise CheckinError(CheckinErrorKind.INTERNAL, "failed to extend check-in code") from e

        notice = self._build_notice(session.booking, session)
        logger.info(f"Check-in code for session {session.id} re-armed until {new_expiry.isoformat()}")

        return ResendResult(session=session, code_expires_at=new_expiry, notice=notice)

    def expire_stale_sessions(self, now: Optional[datetime] = None) -> int:
        """把 token 与入住码都已过期的 INITIATED 会话标记为 EXPIRED"""
        now = now or utcnow()
        stale = self.db.query(BookingInfo).filter(
            BookingInfo.deleted_at.is_(None),
            BookingInfo.status == CheckinSessionStatus.INITIATED.value,
            BookingInfo.expires_at.isnot(None),
            BookingInfo.expires_at <= now,
            BookingInfo.code_expires_at.isnot(None),
            BookingInfo.code_expires_at <= now,
        ).all()
        for session in stale:
            session.status = CheckinSessionStatus.EXPIRED.value
        self.db.commit()
        if stale:
            logger.info(f"Expired {len(stale)} stale check-in session(s)")
        return len(stale)
