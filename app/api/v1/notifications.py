from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor
from app.api.pagination import LimitParam, OffsetParam
from app.db.session import get_db
from app.schemas.actor import Actor
from app.schemas.notification import NotificationResponse
from app.services.notification_service import list_notifications, mark_read

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse], status_code=status.HTTP_200_OK)
def list_my_notifications(
    unread_only: bool = Query(default=False),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[NotificationResponse]:
    notifications = list_notifications(db, actor, unread_only=unread_only, limit=limit, offset=offset)
    return [NotificationResponse.model_validate(notification) for notification in notifications]


@router.post("/{notification_id}/read", response_model=NotificationResponse, status_code=status.HTTP_200_OK)
def read_notification(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> NotificationResponse:
    return NotificationResponse.model_validate(mark_read(db, actor, notification_id))
