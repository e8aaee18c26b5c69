import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine, and_, or_, select
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.core.metrics import NOTIFICATION_FAILURES
from app.db.models import Notification, ServiceProvider
from app.schemas.actor import Actor

logger = logging.getLogger(__name__)

TARGET_CLIENT = "client"
TARGET_PROVIDER = "provider"


@dataclass(frozen=True)
class Notice:
    target_role: str
    target_id: int
    type: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(ABC):
    @abstractmethod
    def notify(
        self,
        target_role: str,
        target_id: int,
        message: str,
        type: str,
        metadata: dict[str, Any],
    ) -> None:
        raise NotImplementedError


class DatabaseNotificationDispatcher(NotificationDispatcher):
    def __init__(self, bind: Engine) -> None:
        self._bind = bind

    def notify(
        self,
        target_role: str,
        target_id: int,
        message: str,
        type: str,
        metadata: dict[str, Any],
    ) -> None:
        with Session(bind=self._bind) as session:
            session.add(
                Notification(
                    target_role=target_role,
                    target_id=target_id,
                    type=type,
                    message=message,
                    payload=dict(metadata),
                )
            )
            session.commit()


class InMemoryNotificationDispatcher(NotificationDispatcher):
    def __init__(self) -> None:
        self.sent: list[Notice] = []

    def notify(
        self,
        target_role: str,
        target_id: int,
        message: str,
        type: str,
        metadata: dict[str, Any],
    ) -> None:
        self.sent.append(
            Notice(target_role=target_role, target_id=target_id, type=type, message=message, metadata=dict(metadata))
        )

    def types(self) -> list[str]:
        return [notice.type for notice in self.sent]


def dispatch(dispatcher: NotificationDispatcher, notices: Iterable[Notice]) -> None:
    for notice in notices:
        try:
            dispatcher.notify(
                target_role=notice.target_role,
                target_id=notice.target_id,
                message=notice.message,
                type=notice.type,
                metadata=notice.metadata,
            )
        except Exception:
            NOTIFICATION_FAILURES.labels(type=notice.type).inc()
            logger.exception(
                "notification_failed type=%s target_role=%s target_id=%s",
                notice.type,
                notice.target_role,
                notice.target_id,
            )


def _inbox_filter(db: Session, actor: Actor):
    clauses = [and_(Notification.target_role == TARGET_CLIENT, Notification.target_id == actor.id)]
    provider_id = db.scalar(select(ServiceProvider.id).where(ServiceProvider.user_id == actor.id))
    if provider_id is not None:
        clauses.append(and_(Notification.target_role == TARGET_PROVIDER, Notification.target_id == provider_id))
    return or_(*clauses)


def list_notifications(
    db: Session,
    actor: Actor,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[Notification]:
    query = select(Notification).where(_inbox_filter(db, actor))
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(query).all())


def mark_read(db: Session, actor: Actor, notification_id: int) -> Notification:
    notification = db.scalar(
        select(Notification).where(Notification.id == notification_id, _inbox_filter(db, actor))
    )
    # Someone else's notification is reported as missing.
    if notification is None:
        raise NotFound("Notification not found", notification_id=notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
