from typing import Any, List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..crud import crud_notification
from ..models import User
from ..schemas.notification import NotificationResponse
from ..utils.errors import NotFound
from .dependencies import get_current_user, get_db

router = APIRouter(tags=["notifications"], default_response_class=ORJSONResponse)


@router.get("/", response_model=List[NotificationResponse])
def read_my_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Retrieve notifications for the current user, newest first."""
    return crud_notification.get_notifications_for_user(db, current_user.id, skip=skip, limit=limit)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    db_notif = crud_notification.get_notification(db, notification_id)
    if db_notif is None or db_notif.user_id != current_user.id:
        raise NotFound("Notification not found", {"notification_id": "not found"})
    return crud_notification.mark_as_read(db, db_notif)
