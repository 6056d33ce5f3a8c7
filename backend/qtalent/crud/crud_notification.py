from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models


def create_notification(
    db: Session,
    user_id: int,
    type: models.NotificationType,
    title: str,
    message: str,
    booking_id: Optional[int] = None,
    dedupe_key: Optional[str] = None,
) -> Optional[models.Notification]:
    """Persist a notification, or return ``None`` if ``dedupe_key`` was already used.

    Webhook redeliveries and repeated maintenance sweeps call this with the
    same key; the unique (user_id, dedupe_key) constraint turns the second
    insert into a no-op.
    """
    if dedupe_key is not None:
        existing = (
            db.query(models.Notification.id)
            .filter(
                models.Notification.user_id == user_id,
                models.Notification.dedupe_key == dedupe_key,
            )
            .first()
        )
        if existing:
            return None
    db_obj = models.Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        booking_id=booking_id,
        dedupe_key=dedupe_key,
    )
    db.add(db_obj)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery inserted the same key first
        db.rollback()
        return None
    db.refresh(db_obj)
    return db_obj


def get_notifications_for_user(
    db: Session, user_id: int, skip: int = 0, limit: int | None = None
) -> List[models.Notification]:
    """Return notifications ordered by timestamp with optional pagination."""
    query = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id)
        .order_by(models.Notification.timestamp.desc(), models.Notification.id.desc())
    )
    if skip:
        query = query.offset(skip)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_notification(db: Session, notification_id: int) -> models.Notification | None:
    return (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id)
        .first()
    )


def mark_as_read(
    db: Session, db_notification: models.Notification
) -> models.Notification:
    db_notification.is_read = True
    db.commit()
    db.refresh(db_notification)
    return db_notification
