"""
core - 域无关的基础抽象

- notification: 通知渠道接口（INotificationChannel），app 层实现具体渠道

使用方式:
    >>> from core.notification import INotificationChannel, NotificationError
"""
from core.notification import INotificationChannel, NotificationError

__version__ = "0.1.0"

__all__ = [
    "INotificationChannel",
    "NotificationError",
]
