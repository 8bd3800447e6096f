"""
入住邮件测试

Covers:
- EmailChannel: multipart 邮件、TLS / 登录开关、SMTP 失败转为 NotificationError
- CheckinNotifier: 日志模式、主题、HTML 转义、邮件头注入、后台投递
- build_checkin_notifier: SMTP 配置不全时不创建渠道
"""
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from app.config import settings
from app.services.notification_service import (
    CheckinNotice, CheckinNotifier, RoomLine, build_checkin_notifier, ensure_scheme, format_stay_date
)
from app.system.notification.email_channel import EmailChannel, sanitize_header
from core.notification.channel import NotificationError


def _mock_smtp(MockSMTP):
    server = MagicMock()
    MockSMTP.return_value.__enter__ = MagicMock(return_value=server)
    MockSMTP.return_value.__exit__ = MagicMock(return_value=False)
    return server


# ── EmailChannel Tests ────────────────────────────────────


class TestEmailChannel:

    def test_get_channel_type(self):
        assert EmailChannel().get_channel_type() == "email"

    def test_send_multipart_with_tls_and_login(self):
        ch = EmailChannel(
            smtp_host="smtp.example.com",
            smtp_port=587,
            smtp_user="frontdesk@example.com",
            smtp_password="secret",
            from_name="Front Desk",
        )
        with patch("app.system.notification.email_channel.smtplib.SMTP") as MockSMTP:
            server = _mock_smtp(MockSMTP)
            ch.send("guest@example.com", "Subject", "plain body", {"html": "<p>html body</p>"})

        MockSMTP.assert_called_once_with("smtp.example.com", 587)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("frontdesk@example.com", "secret")
        msg = server.send_message.call_args[0][0]
        assert msg["From"] == "Front Desk <frontdesk@example.com>"
        assert msg["To"] == "guest@example.com"
        assert msg.get_content_subtype() == "alternative"
        assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain", "text/html"]

    def test_send_without_tls_and_login(self):
        ch = EmailChannel(smtp_host="localhost", smtp_port=25, use_tls=False)
        with patch("app.system.notification.email_channel.smtplib.SMTP") as MockSMTP:
            server = _mock_smtp(MockSMTP)
            ch.send("guest@example.com", "Plain", "No TLS")

        server.starttls.assert_not_called()
        server.login.assert_not_called()
        msg = server.send_message.call_args[0][0]
        assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain"]

    def test_header_injection_is_stripped(self):
        ch = EmailChannel(smtp_host="localhost", use_tls=False)
        with patch("app.system.notification.email_channel.smtplib.SMTP") as MockSMTP:
            server = _mock_smtp(MockSMTP)
            ch.send("guest@example.com", "Hello\r\nBcc: evil@example.com", "body")

        msg = server.send_message.call_args[0][0]
        assert "\n" not in msg["Subject"]
        assert msg["Bcc"] is None

    @pytest.mark.parametrize("error", [smtplib.SMTPException("rejected"), ConnectionRefusedError("refused")])
    def test_send_failure_raises(self, error):
        ch = EmailChannel(smtp_host="bad-host", smtp_port=587)
        with patch("app.system.notification.email_channel.smtplib.SMTP") as MockSMTP:
            MockSMTP.side_effect = error
            with pytest.raises(NotificationError):
                ch.send("guest@example.com", "Fail", "Will fail")

    def test_sanitize_header(self):
        assert sanitize_header(" a\r\nb\nc\rd ") == "a b c d"
        assert sanitize_header(None) == ""


# ── CheckinNotifier Tests ─────────────────────────────────


def _send(notifier, **overrides):
    values = dict(
        recipient_email="jane@example.com",
        booking_ref="BK20261020ABC123",
        link="hotel.example.com/checkin?token=abc",
        guest_name="Jane <b>Smith</b>",
        rooms=[RoomLine("101", "Deluxe"), RoomLine("102")],
        check_in_date="2026-10-21",
        check_out_date="2026-10-24",
        code="ABCD-1234",
    )
    values.update(overrides)
    notifier.send_checkin_link(**values)


class TestCheckinNotifier:

    def test_subject_and_bodies(self, notifier, outbox):
        _send(notifier)
        mail = outbox.sent[0]

        assert mail["subject"] == "Booking Confirmation and Pre-Check-in — BK20261020ABC123"
        assert "Confirmation Code: ABCD-1234" in mail["content"]
        assert "- 101 (Deluxe)\n- 102" in mail["content"]
        assert "Check-In: 2026-10-21" in mail["content"]
        assert "https://hotel.example.com/checkin?token=abc" in mail["content"]
        assert "Best regards,\nFront Desk" in mail["content"]

    def test_html_is_escaped(self, notifier, outbox):
        _send(notifier, rooms=[RoomLine("<script>", "x")])
        body = outbox.sent[0]["html"]
        assert "Jane &lt;b&gt;Smith&lt;/b&gt;" in body
        assert "<script>" not in body
        assert 'href="https://hotel.example.com/checkin?token=abc"' in body

    def test_injected_newlines_are_removed(self, notifier, outbox):
        _send(notifier, booking_ref="BK1\r\nBcc: evil@example.com")
        assert "\n" not in outbox.sent[0]["subject"]

    def test_mock_mode_only_logs(self, caplog):
        notifier = CheckinNotifier(channel=None, from_name="Front Desk")
        with caplog.at_level("INFO"):
            _send(notifier)
        assert "[MOCK EMAIL]" in caplog.text
        assert "BK20261020ABC123" in caplog.text

    def test_mock_mode_keeps_credentials_out_of_logs(self, caplog):
        token = "9f" * 32
        notifier = CheckinNotifier(channel=None, from_name="Front Desk")
        with caplog.at_level("INFO"):
            _send(notifier, link=f"https://hotel.example.com/checkin?token={token}")
        assert token not in caplog.text
        assert "ABCD-1234" not in caplog.text
        assert "jane@example.com" not in caplog.text
        assert "j**e@e******.com" in caplog.text

    def test_failure_propagates(self, failing_notifier):
        with pytest.raises(NotificationError):
            _send(failing_notifier)

    def test_background_delivery_swallows_failure(self, failing_notifier, caplog):
        notice = CheckinNotice(
            recipient_email="jane@example.com", booking_ref="BK1", link="http://x/checkin?token=t",
            guest_name="Jane", code="ABCD-1234",
        )
        failing_notifier.deliver_in_background(notice)
        assert "failed" in caplog.text

    def test_helpers(self):
        from datetime import date
        assert format_stay_date(None) == "N/A"
        assert format_stay_date(date(2026, 1, 2)) == "2026-01-02"
        assert ensure_scheme("http://a") == "http://a"
        assert ensure_scheme("a.example.com/x") == "https://a.example.com/x"
        assert RoomLine("101").label() == "101"


class TestBuildCheckinNotifier:

    def test_incomplete_smtp_config_uses_mock_mode(self):
        with patch.object(settings, "SMTP_HOST", "smtp.example.com"), \
                patch.object(settings, "SMTP_PORT", 587), \
                patch.object(settings, "SMTP_USERNAME", None), \
                patch.object(settings, "SMTP_PASSWORD", "secret"):
            assert build_checkin_notifier().channel is None

    def test_complete_smtp_config_uses_email_channel(self):
        with patch.object(settings, "SMTP_HOST", "smtp.example.com"), \
                patch.object(settings, "SMTP_PORT", 587), \
                patch.object(settings, "SMTP_USERNAME", "frontdesk@example.com"), \
                patch.object(settings, "SMTP_PASSWORD", "secret"):
            notifier = build_checkin_notifier()
        assert isinstance(notifier.channel, EmailChannel)
        assert notifier.channel.smtp_host == "smtp.example.com"
