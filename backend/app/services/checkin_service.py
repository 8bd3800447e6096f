"""
入住服务 - 本体操作层
客人通过入住链接提交信息后，在一个事务内完成入住：
写入客人、同意书确认记录、更新预订状态、结束入住会话
同一 token 重复提交是幂等的
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.ontology import (
    Booking, BookingInfo, BookingStatus, CheckinSessionStatus,
    Consent, ConsentLog, ConsentLogStatus, Guest, utcnow
)
from app.models.schemas import GuestInput
from app.services.booking_service import BookingService
from app.services.consent_service import ConsentService
from app.services.errors import CheckinError, CheckinErrorKind
from app.services.token_service import short_token

logger = logging.getLogger(__name__)


@dataclass
class FinalizeResult:
    """入住结果；already_completed=True 表示此前已完成，本次未做任何写入"""
    booking_id: int
    booking_info_id: int
    guest_ids: List[int] = field(default_factory=list)
    consent_log_count: int = 0
    already_completed: bool = False


class CheckInService:
    """入住服务"""

    def __init__(self, db: Session):
        self.db = db
        self.booking_service = BookingService(db)
        self.consent_service = ConsentService(db)

    def _find_live_session(self, token: str, now: datetime) -> Optional[BookingInfo]:
        return self.db.query(BookingInfo).filter(
            BookingInfo.token == token,
            BookingInfo.deleted_at.is_(None),
            or_(BookingInfo.expires_at.is_(None), BookingInfo.expires_at > now)
        ).first()

    def _check_consents(self, consent_ids: List[int]) -> List[int]:
        """去重并校验同意书模板存在"""
        unique_ids = list(dict.fromkeys(consent_ids or []))
        if not unique_ids:
            return []
        known = {
            row.id for row in self.db.query(Consent.id).filter(
                Consent.id.in_(unique_ids),
                Consent.deleted_at.is_(None)
            )
        }
        missing = [cid for cid in unique_ids if cid not in known]
        if missing:
            raise CheckinError(CheckinErrorKind.VALIDATION, f"unknown consent id(s): {missing}")
        return unique_ids

    def finalize_check_in(self, token: str, guests: List[GuestInput],
                          consent_ids: Optional[List[int]] = None) -> FinalizeResult:
        """
        完成入住
        业务规则：
        1. token 必须存在且未过期
        2. 会话已 COMPLETED 或预订已入住：直接返回成功（幂等）
        3. 锁定预订行，条件更新预订为 Checked-In；未更新到行说明并发请求已完成入住
        4. 写入客人，每位客人 x 每份同意书写一条 accepted 记录
        5. 携带该 token 的待关联记录关联到预订
        6. 会话置为 COMPLETED
        """
        token = (token or "").strip()
        now = utcnow()

        session = self._find_live_session(token, now) if token else None
        if not session:
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN)
        if session.status == CheckinSessionStatus.EXPIRED.value:
            raise CheckinError(CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN)

        booking_id = session.booking_id
        booking_info_id = session.id

        if session.status == CheckinSessionStatus.COMPLETED.value:
            logger.info(f"Finalize skipped, session {booking_info_id} already completed")
            return FinalizeResult(booking_id, booking_info_id, already_completed=True)

        consent_ids = self._check_consents(consent_ids)

        try:
            booking = self.booking_service.lock_booking(booking_id)
            if not booking:
                raise CheckinError(CheckinErrorKind.BOOKING_NOT_FOUND)

            if booking.checked_in_at is not None or booking.checkin_completed:
                self.db.rollback()
                logger.info(f"Finalize skipped, booking {booking_id} already checked in")
                return FinalizeResult(booking_id, booking_info_id, already_completed=True)

            # 条件更新：只有尚未入住的预订会被更新
            claimed = self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.checkin_completed.is_(False),
                    Booking.checked_in_at.is_(None)
                )
                .values(
                    status=BookingStatus.CHECKED_IN.value,
                    check_in=now,
                    checked_in_at=now,
                    checkin_completed=True,
                    number_of_guests=len(guests),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                self.db.rollback()
                logger.info(f"Finalize lost race for booking {booking_id}, treating as completed")
                return FinalizeResult(booking_id, booking_info_id, already_completed=True)

            new_guests = []
            for item in guests:
                guest = Guest(booking_id=booking_id, **item.model_dump())
                self.db.add(guest)
                new_guests.append(guest)
            self.db.flush()

            log_count = 0
            for guest in new_guests:
                for consent_id in consent_ids:
                    self.db.add(ConsentLog(
                        booking_id=booking_id,
                        booking_token=token,
                        consent_id=consent_id,
                        guest_id=guest.id,
                        accepted_at=now,
                        accepted_by=guest.full_name,
                        status=ConsentLogStatus.ACCEPTED.value,
                        action="checkin",
                    ))
                    log_count += 1
            self.db.flush()

            linked = self.consent_service.link_pending_by_token(token, booking_id, commit=False)

            session.status = CheckinSessionStatus.COMPLETED.value
            self.db.commit()
        except CheckinError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Finalize check-in failed for booking {booking_id} (token {short_token(token)}): {e}")
            raise CheckinError(CheckinErrorKind.FINALIZE_FAILED) from e

        guest_ids = [guest.id for guest in new_guests]
        logger.info(
            f"Booking {booking_id} checked in: {len(guest_ids)} guest(s), "
            f"{log_count} consent log(s), {linked} pending log(s) linked"
        )

        return FinalizeResult(
            booking_id=booking_id,
            booking_info_id=booking_info_id,
            guest_ids=guest_ids,
            consent_log_count=log_count,
        )
