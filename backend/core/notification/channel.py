"""
通知渠道接口 - 域无关的通知抽象

app 层通过实现 INotificationChannel 来对接具体通知渠道（邮件等）。
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional


class NotificationError(Exception):
    """通知发送失败"""


class INotificationChannel(ABC):
    """通知渠道接口"""

    @abstractmethod
    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> None:
        """发送通知，失败时抛出 NotificationError

        Args:
            recipient: 接收方标识（邮箱等，由渠道实现决定）
            subject: 通知标题
            content: 纯文本内容
            extra: 扩展参数（如 html 版本、发件人名称）
        """

    @abstractmethod
    def get_channel_type(self) -> str:
        """返回渠道类型标识，如 'email'"""
