"""
同意书服务
同意书模板（Consent）与客人确认记录（ConsentLog）
确认记录可以先于预订产生，之后按客人 ID 或入住 token 关联到预订
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.ontology import (
    Booking, BookingInfo, Consent, ConsentLog, ConsentLogStatus, utcnow
)
from app.services.errors import CheckinError, CheckinErrorKind
from app.services.token_service import short_token

logger = logging.getLogger(__name__)

DEFAULT_CONSENT_VERSION = "1.0"


def parse_booking_ref(raw: Optional[Union[int, str]]) -> Tuple[Optional[int], Optional[str]]:
    """
    预订标识：纯数字视为预订 ID，其他非空字符串视为 token

    Returns:
        (booking_id, token)
    """
    if raw is None:
        return None, None
    if isinstance(raw, int):
        return raw, None
    text = str(raw).strip()
    if not text:
        return None, None
    if text.isdigit():
        return int(text), None
    return None, text


class ConsentService:
    """同意书服务"""

    def __init__(self, db: Session):
        self.db = db

    # ---------- 模板 ----------

    def list_consents(self) -> List[Consent]:
        return self.db.query(Consent).filter(
            Consent.deleted_at.is_(None)
        ).order_by(Consent.id).all()

    def get_consent(self, consent_id: int) -> Optional[Consent]:
        return self.db.query(Consent).filter(
            Consent.id == consent_id,
            Consent.deleted_at.is_(None)
        ).first()

    def _require_booking(self, booking_id: int) -> None:
        exists = self.db.query(Booking.id).filter(
            Booking.id == booking_id,
            Booking.deleted_at.is_(None)
        ).first()
        if not exists:
            raise CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND)

    def create_consent(self, title: str, slug: str, description: Optional[str] = None,
                       version: Optional[str] = None) -> Tuple[Consent, bool]:
        """
        创建同意书模板，同 (slug, version) 已存在时直接返回

        Returns:
            (模板, 是否新建)
        """
        slug = slug.strip()
        version = (version or "").strip() or DEFAULT_CONSENT_VERSION

        existing = self.db.query(Consent).filter(
            Consent.slug == slug,
            Consent.version == version,
            Consent.deleted_at.is_(None)
        ).first()
        if existing:
            return existing, False

        consent = Consent(
            slug=slug,
            title=title.strip(),
            description=description,
            version=version,
            effective_from=utcnow(),
        )
        self.db.add(consent)
        self.db.commit()
        self.db.refresh(consent)
        logger.info(f"Consent {slug} v{version} created")
        return consent, True

    # ---------- 确认记录 ----------

    def list_logs(self, booking_id: Optional[int] = None, guest_id: Optional[int] = None,
                  status: Optional[str] = None) -> List[ConsentLog]:
        query = self.db.query(ConsentLog).filter(ConsentLog.deleted_at.is_(None))
        if booking_id is not None:
            query = query.filter(ConsentLog.booking_id == booking_id)
        if guest_id is not None:
            query = query.filter(ConsentLog.guest_id == guest_id)
        if status:
            query = query.filter(ConsentLog.status == status)
        return query.order_by(ConsentLog.id).all()

    def log_consent(self, consent_id: int, booking_id: Optional[int] = None,
                    booking_token: Optional[str] = None, guest_id: Optional[int] = None,
                    action: Optional[str] = None, accepted_by: Optional[str] = None,
                    accepted_at: Optional[datetime] = None) -> ConsentLog:
        """通用记录：有预订 ID 时状态为 sent，否则为 pending"""
        if not self.get_consent(consent_id):
            raise CheckinError(CheckinErrorKind.VALIDATION, "invalid consentId")

        if booking_id is not None:
            self._require_booking(booking_id)

        status = ConsentLogStatus.SENT if booking_id else ConsentLogStatus.PENDING
        log = ConsentLog(
            consent_id=consent_id,
            booking_id=booking_id,
            booking_token=(booking_token or "").strip() or None,
            guest_id=guest_id,
            action=action,
            accepted_by=accepted_by,
            accepted_at=accepted_at or utcnow(),
            status=status.value,
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def accept_consent(self, guest_id: int, consent_id: int,
                       booking_ref: Optional[Union[int, str]] = None,
                       action: Optional[str] = None) -> ConsentLog:
        """
        客人确认同意书

        预订 ID 已知时状态为 accepted，否则为 pending（非数字标识按 token 保存）
        """
        if not self.get_consent(consent_id):
            raise CheckinError(CheckinErrorKind.VALIDATION, "invalid consentId")

        booking_id, token = parse_booking_ref(booking_ref)
        if booking_id is not None:
            self._require_booking(booking_id)
        status = ConsentLogStatus.ACCEPTED if booking_id else ConsentLogStatus.PENDING

        log = ConsentLog(
            consent_id=consent_id,
            guest_id=guest_id,
            booking_id=booking_id,
            booking_token=token,
            accepted_at=utcnow(),
            status=status.value,
            action=(action or "").strip() or "accepted",
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def link_pending_by_guest_ids(self, booking_id: int, guest_ids: List[int],
                                  commit: bool = True) -> int:
        """把这些客人尚未关联预订的记录关联到预订"""
        if not guest_ids:
            return 0
        count = self.db.query(ConsentLog).filter(
            ConsentLog.guest_id.in_(guest_ids),
            ConsentLog.booking_id.is_(None),
            ConsentLog.deleted_at.is_(None)
        ).update({
            ConsentLog.booking_id: booking_id,
            ConsentLog.status: ConsentLogStatus.SENT.value,
            ConsentLog.updated_at: utcnow(),
        }, synchronize_session=False)
        if commit:
            self.db.commit()
        return count

    def link_pending_by_token(self, token: str, booking_id: int, commit: bool = True) -> int:
        """把携带该 token 且尚未关联预订的记录关联到预订"""
        token = (token or "").strip()
        if not token:
            return 0
        count = self.db.query(ConsentLog).filter(
            ConsentLog.booking_token == token,
            ConsentLog.booking_id.is_(None),
            ConsentLog.deleted_at.is_(None)
        ).update({
            ConsentLog.booking_id: booking_id,
            ConsentLog.status: ConsentLogStatus.SENT.value,
            ConsentLog.updated_at: utcnow(),
        }, synchronize_session=False)
        if commit:
            self.db.commit()
        return count

    def attach_booking(self, booking_ref: Optional[Union[int, str]] = None,
                       guest_ids: Optional[List[int]] = None,
                       token: Optional[str] = None) -> int:
        """
        关联待处理的确认记录

        优先级：
        1. 数字预订 ID 优先
        2. 否则 token（或非数字的 bookingId）解析为其入住会话的预订
        3. 提供客人 ID 时只更新这些客人的记录
        4. 未提供客人 ID 时更新携带该 token 的记录

        Returns:
            更新的记录数
        """
        booking_id, ref_token = parse_booking_ref(booking_ref)
        token = (token or "").strip() or ref_token
        guest_ids = list(guest_ids or [])

        if booking_id is None and not token:
            raise CheckinError(CheckinErrorKind.VALIDATION, "bookingId or token is required")

        if booking_id is not None:
            self._require_booking(booking_id)
        else:
            session = self.db.query(BookingInfo).filter(
                BookingInfo.token == token,
                BookingInfo.deleted_at.is_(None)
            ).first()
            if session:
                booking_id = session.booking_id

        try:
            if guest_ids:
                if booking_id is not None:
                    count = self.link_pending_by_guest_ids(booking_id, guest_ids, commit=False)
                else:
                    # 预订尚未知晓：先记下 token，待会话产生后再按 token 关联
                    count = self.db.query(ConsentLog).filter(
                        ConsentLog.guest_id.in_(guest_ids),
                        ConsentLog.booking_id.is_(None),
                        ConsentLog.deleted_at.is_(None)
                    ).update({
                        ConsentLog.booking_token: token,
                        ConsentLog.status: ConsentLogStatus.SENT.value,
                        ConsentLog.updated_at: utcnow(),
                    }, synchronize_session=False)
            else:
                if not token:
                    raise CheckinError(CheckinErrorKind.VALIDATION, "guestIds or token is required")
                if booking_id is None:
                    raise CheckinError(CheckinErrorKind.VALIDATION, "token does not match any check-in session")
                count = self.link_pending_by_token(token, booking_id, commit=False)
            self.db.commit()
        except CheckinError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to attach booking to pending consent logs: {e}")
            raise CheckinError(CheckinErrorKind.INTERNAL, "failed to attach booking") from e

        logger.info(
            f"Attached {count} pending consent log(s) "
            f"(booking_id={booking_id}, token={short_token(token) if token else None}, guests={guest_ids})"
        )
        return count
