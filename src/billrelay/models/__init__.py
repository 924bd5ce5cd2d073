"""ORM models package -- re-exports all models and the Base class."""

from billrelay.models.base import Base
from billrelay.models.notice import NoticeTransaction
from billrelay.models.subscriber import Subscriber, SubscriberStatus

__all__ = [
    "Base",
    "NoticeTransaction",
    "Subscriber",
    "SubscriberStatus",
]
