"""
同意书服务测试：模板、确认记录、待关联记录
"""
import pytest

from app.models.ontology import ConsentLog, ConsentLogStatus
from app.services.checkin_session_service import CheckinSessionService
from app.services.consent_service import ConsentService, parse_booking_ref
from app.services.errors import CheckinError, CheckinErrorKind


class TestParseBookingRef:

    @pytest.mark.parametrize("raw,expected", [
        (None, (None, None)),
        (12, (12, None)),
        ("12", (12, None)),
        (" 12 ", (12, None)),
        ("", (None, None)),
        ("abc123", (None, "abc123")),
    ])
    def test_parse(self, raw, expected):
        assert parse_booking_ref(raw) == expected


class TestConsentTemplates:

    def test_create_is_idempotent_per_slug_and_version(self, db_session):
        service = ConsentService(db_session)
        consent, created = service.create_consent("Privacy Policy", "privacy", "We keep data safe")
        again, created_again = service.create_consent("Privacy Policy (copy)", "privacy", None, "1.0")

        assert created is True
        assert consent.version == "1.0"
        assert created_again is False
        assert again.id == consent.id

        v2, created_v2 = service.create_consent("Privacy Policy", "privacy", None, "2.0")
        assert created_v2 is True
        assert v2.id != consent.id
        assert [c.slug for c in service.list_consents()] == ["privacy", "privacy"]


class TestConsentLogs:

    def test_accept_with_numeric_booking(self, db_session, sample_booking, sample_consent):
        log = ConsentService(db_session).accept_consent(5, sample_consent.id, str(sample_booking.id))
        assert log.status == ConsentLogStatus.ACCEPTED.value
        assert log.booking_id == sample_booking.id
        assert log.action == "accepted"

    def test_accept_without_booking_is_pending(self, db_session, sample_consent):
        log = ConsentService(db_session).accept_consent(5, sample_consent.id, "tok-abc", action="viewed")
        assert log.status == ConsentLogStatus.PENDING.value
        assert log.booking_id is None
        assert log.booking_token == "tok-abc"
        assert log.action == "viewed"

    def test_accept_unknown_consent(self, db_session):
        with pytest.raises(CheckinError) as exc:
            ConsentService(db_session).accept_consent(5, 999)
        assert exc.value.kind == CheckinErrorKind.VALIDATION

    def test_log_consent_status(self, db_session, sample_booking, sample_consent):
        service = ConsentService(db_session)
        sent = service.log_consent(sample_consent.id, booking_id=sample_booking.id, guest_id=1)
        pending = service.log_consent(sample_consent.id, guest_id=2, booking_token=" ")

        assert sent.status == ConsentLogStatus.SENT.value
        assert pending.status == ConsentLogStatus.PENDING.value
        assert pending.booking_token is None
        assert [log.id for log in service.list_logs(guest_id=2)] == [pending.id]
        assert [log.id for log in service.list_logs(booking_id=sample_booking.id)] == [sent.id]
        assert [log.id for log in service.list_logs(status="pending")] == [pending.id]


class TestAttachBooking:

    def _pending(self, db, consent, guest_id, token=None):
        log = ConsentLog(consent_id=consent.id, guest_id=guest_id, booking_token=token,
                         status=ConsentLogStatus.PENDING.value)
        db.add(log)
        db.commit()
        return log

    def test_numeric_booking_with_guest_ids(self, db_session, sample_booking, sample_consent):
        mine = self._pending(db_session, sample_consent, 1)
        other = self._pending(db_session, sample_consent, 2)

        count = ConsentService(db_session).attach_booking(sample_booking.id, [1])

        assert count == 1
        db_session.refresh(mine)
        db_session.refresh(other)
        assert mine.booking_id == sample_booking.id
        assert mine.status == ConsentLogStatus.SENT.value
        assert other.booking_id is None

    def test_token_resolves_to_session_booking(self, db_session, notifier, sample_booking, sample_consent):
        session = CheckinSessionService(db_session, notifier=notifier).create_session(sample_booking.id).session
        log = self._pending(db_session, sample_consent, 3, token=session.token)

        count = ConsentService(db_session).attach_booking(token=session.token)

        assert count == 1
        db_session.refresh(log)
        assert log.booking_id == sample_booking.id

    def test_non_numeric_booking_ref_is_treated_as_token(self, db_session, notifier, sample_booking, sample_consent):
        session = CheckinSessionService(db_session, notifier=notifier).create_session(sample_booking.id).session
        log = self._pending(db_session, sample_consent, 4)

        assert ConsentService(db_session).attach_booking(session.token, [4]) == 1
        db_session.refresh(log)
        assert log.booking_id == sample_booking.id

    def test_unknown_token_with_guest_ids_remembers_token(self, db_session, sample_consent):
        log = self._pending(db_session, sample_consent, 5)

        assert ConsentService(db_session).attach_booking(None, [5], token="future-token") == 1
        db_session.refresh(log)
        assert log.booking_id is None
        assert log.booking_token == "future-token"

    def test_unknown_token_without_guest_ids(self, db_session):
        with pytest.raises(CheckinError) as exc:
            ConsentService(db_session).attach_booking(token="nobody")
        assert exc.value.kind == CheckinErrorKind.VALIDATION

    def test_nothing_to_attach_by(self, db_session):
        with pytest.raises(CheckinError) as exc:
            ConsentService(db_session).attach_booking(None, [1])
        assert exc.value.kind == CheckinErrorKind.VALIDATION

    def test_unknown_numeric_booking(self, db_session, sample_consent):
        log = self._pending(db_session, sample_consent, guest_id=6)
        with pytest.raises(CheckinError) as exc:
            ConsentService(db_session).attach_booking(4242, [6])
        assert exc.value.kind == CheckinErrorKind.BOOKING_NOT_FOUND
        db_session.refresh(log)
        assert log.booking_id is None
        assert log.status == ConsentLogStatus.PENDING.value

    def test_accept_with_unknown_booking(self, db_session, sample_consent):
        with pytest.raises(CheckinError) as exc:
            ConsentService(db_session).accept_consent(5, sample_consent.id, "4242")
        assert exc.value.kind == CheckinErrorKind.BOOKING_NOT_FOUND
        assert db_session.query(ConsentLog).count() == 0
