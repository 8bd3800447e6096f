"""
入住通知服务 - 发送入住链接与入住码邮件
SMTP 未完整配置时只记录日志（开发环境）
"""
import html
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Union

from app.config import settings
from app.system.notification.email_channel import EmailChannel, sanitize_header
from app.services.token_service import mask_email
from core.notification.channel import INotificationChannel, NotificationError

logger = logging.getLogger(__name__)

SUBJECT_TEMPLATE = "Booking Confirmation and Pre-Check-in — {ref}"


@dataclass
class RoomLine:
    """邮件中的一间房：房号 + 房型"""
    number: str
    type: str = ""

    def label(self) -> str:
        if self.type:
            return f"{self.number} ({self.type})"
        return self.number


@dataclass
class CheckinNotice:
    """
    入住邮件内容（纯值对象）
    可脱离数据库会话在后台任务中发送
    """
    recipient_email: str
    booking_ref: str
    link: str
    guest_name: str
    code: str
    check_in_date: str = "N/A"
    check_out_date: str = "N/A"
    rooms: List[RoomLine] = field(default_factory=list)


def format_stay_date(value: Optional[Union[date, datetime]]) -> str:
    """YYYY-MM-DD，缺失时为 N/A"""
    if value is None:
        return "N/A"
    return value.strftime("%Y-%m-%d")


def ensure_scheme(link: str) -> str:
    if link.startswith("http://") or link.startswith("https://"):
        return link
    return "https://" + link.lstrip("/")


def rooms_text(rooms: List[RoomLine]) -> str:
    if not rooms:
        return "- N/A"
    return "\n".join(f"- {room.label()}" for room in rooms)


def rooms_html(rooms: List[RoomLine]) -> str:
    if not rooms:
        return "N/A"
    items = "".join(
        f'<li class="room-item">{html.escape(room.label())}</li>' for room in rooms
    )
    return f'<ul class="room-list">{items}</ul>'


class CheckinNotifier:
    """入住邮件发送器"""

    def __init__(self, channel: Optional[INotificationChannel] = None, from_name: str = ""):
        self.channel = channel
        self.from_name = from_name or settings.SMTP_FROM_NAME

    def send_checkin_link(
        self,
        recipient_email: str,
        booking_ref: str,
        link: str,
        guest_name: str,
        rooms: List[RoomLine],
        check_in_date: str,
        check_out_date: str,
        code: str,
    ) -> None:
        """发送入住邮件，失败抛出 NotificationError"""
        guest_name = sanitize_header(guest_name)
        booking_ref = sanitize_header(booking_ref)
        check_in_date = sanitize_header(check_in_date)
        check_out_date = sanitize_header(check_out_date)
        code = sanitize_header(code)
        link = ensure_scheme(sanitize_header(link))

        if self.channel is None:
            logger.info(
                f"[MOCK EMAIL] to:{mask_email(recipient_email)} booking:{booking_ref} "
                f"rooms:{rooms_text(rooms)!r}"
            )
            return

        subject = SUBJECT_TEMPLATE.format(ref=booking_ref)
        plain = self._render_plain(guest_name, booking_ref, code, rooms, check_in_date, check_out_date, link)
        body = self._render_html(guest_name, booking_ref, code, rooms, check_in_date, check_out_date, link)
        self.channel.send(recipient_email, subject, plain, {"html": body})

    def deliver(self, notice: CheckinNotice) -> None:
        self.send_checkin_link(
            recipient_email=notice.recipient_email,
            booking_ref=notice.booking_ref,
            link=notice.link,
            guest_name=notice.guest_name,
            rooms=notice.rooms,
            check_in_date=notice.check_in_date,
            check_out_date=notice.check_out_date,
            code=notice.code,
        )

    def deliver_in_background(self, notice: CheckinNotice) -> None:
        """后台任务入口：失败只记录日志"""
        try:
            self.deliver(notice)
        except NotificationError as e:
            logger.error(f"Background check-in email to {mask_email(notice.recipient_email)} failed: {e}")

    def _render_plain(self, guest_name, booking_ref, code, rooms, check_in_date, check_out_date, link) -> str:
        return (
            f"Dear {guest_name},\n\n"
            "Thank you for booking with us! Here are your booking details:\n\n"
            f"Booking Reference: {booking_ref}\n"
            f"Confirmation Code: {code}\n"
            f"Rooms:\n{rooms_text(rooms)}\n"
            f"Check-In: {check_in_date}\n"
            f"Check-Out: {check_out_date}\n\n"
            f"Complete your pre-check-in here: {link}\n\n"
            "If you have any questions, feel free to contact us.\n\n"
            f"Best regards,\n{self.from_name}"
        )

    def _render_html(self, guest_name, booking_ref, code, rooms, check_in_date, check_out_date, link) -> str:
        esc = html.escape
        return f"""<!doctype html>
<html>
<head><meta charset="utf-8"><title>Pre Check-in</title></head>
<body style="background:#f5f7fb;font-family:Arial,Helvetica,sans-serif;color:#222;">
  <div style="max-width:700px;margin:20px auto;background:#fff;border:1px solid #e6eef6;padding:24px;border-radius:8px;">
    <h2>Booking Confirmation &amp; Pre-Check-in</h2>
    <p>Dear {esc(guest_name)},</p>
    <p>Thank you for choosing our hotel. Below are your booking details:</p>
    <p><b>Booking Reference:</b> {esc(booking_ref)}</p>
    <p><b>Confirmation Code:</b> {esc(code)}</p>
    <p><b>Rooms:</b> {rooms_html(rooms)}</p>
    <p><b>Check-In:</b> {esc(check_in_date)}</p>
    <p><b>Check-Out:</b> {esc(check_out_date)}</p>
    <a href="{esc(link, quote=True)}" target="_blank"
       style="display:inline-block;padding:12px 20px;background:#0b74ff;color:#fff;text-decoration:none;border-radius:6px;">
      Complete Pre-Check-in</a>
    <p>If you have any questions, feel free to contact us.</p>
    <p>Best regards,<br>{esc(self.from_name)}</p>
  </div>
</body>
</html>"""


def smtp_configured() -> bool:
    return all([settings.SMTP_HOST, settings.SMTP_PORT, settings.SMTP_USERNAME, settings.SMTP_PASSWORD])


def build_checkin_notifier() -> CheckinNotifier:
    """按配置构造发送器；SMTP 配置不全时使用日志模式"""
    channel = None
    if smtp_configured():
        channel = EmailChannel(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USERNAME,
            smtp_password=settings.SMTP_PASSWORD,
            from_name=settings.SMTP_FROM_NAME,
            use_tls=settings.SMTP_USE_TLS,
        )
    return CheckinNotifier(channel)


def get_checkin_notifier() -> CheckinNotifier:
    """依赖注入：获取入住邮件发送器"""
    return build_checkin_notifier()
