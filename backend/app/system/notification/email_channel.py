"""
邮件通知渠道 - SMTP 发送 multipart/alternative 邮件
"""
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Optional

from core.notification.channel import INotificationChannel, NotificationError

logger = logging.getLogger(__name__)


def sanitize_header(value: Optional[str]) -> str:
    """去掉换行，防止邮件头注入"""
    return (value or "").strip().replace("\r\n", " ").replace("\r", " ").replace("\n", " ")


class EmailChannel(INotificationChannel):
    """SMTP 邮件通知渠道"""

    def __init__(
        self,
        smtp_host: str = "localhost",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        from_name: str = "",
        use_tls: bool = True,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_name = from_name
        self.use_tls = use_tls

    @property
    def sender(self) -> str:
        if self.from_name:
            return f"{sanitize_header(self.from_name)} <{self.smtp_user}>"
        return self.smtp_user

    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> None:
        """发送邮件

        Args:
            recipient: 收件人邮箱地址
            subject: 邮件标题
            content: 纯文本正文
            extra: 可选参数 (html: HTML 正文)
        """
        extra = extra or {}
        recipient = sanitize_header(recipient)
        subject = sanitize_header(subject)

        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(content, "plain", "utf-8"))
        if html := extra.get("html"):
            msg.attach(MIMEText(html, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                if self.use_tls:
                    server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {recipient}: {e}")
            raise NotificationError(str(e)) from e

        logger.info(f"Email sent to {recipient}: {subject}")

    def get_channel_type(self) -> str:
        return "email"
