import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from chitfund.core.errors import NotFoundError
from chitfund.db.base import atomic
from chitfund.models.member import Profile, ProfileRole
from chitfund.models.system import Notification

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id: UUID,
    title: str,
    message: str,
    link: str = None,
    dedupe_key: str = None,
) -> Optional[Notification]:
    """Queue a notification in the caller's transaction.

    When ``dedupe_key`` is given and the user already has a notification with
    that key, nothing is created and ``None`` is returned.
    """
    if dedupe_key:
        existing = db.query(Notification.id).filter(
            Notification.user_id == user_id,
            Notification.dedupe_key == dedupe_key,
        ).first()
        if existing:
            return None

    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        link=link,
        dedupe_key=dedupe_key,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def get_admin_profiles(db: Session) -> List[Profile]:
    return db.query(Profile).filter(Profile.role == ProfileRole.ADMIN).all()


def list_notifications(db: Session, user_id: UUID, unread_only: bool = False) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).all()


def count_unread(db: Session, user_id: UUID) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).count()


def mark_notification_read(db: Session, notification_id: UUID, user_id: UUID) -> Notification:
    """Mark one of the user's notifications as read."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")

    with atomic(db):
        notification.is_read = True
    return notification


def mark_all_notifications_read(db: Session, user_id: UUID) -> int:
    with atomic(db):
        updated = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        ).update({Notification.is_read: True}, synchronize_session=False)
    logger.info("Marked %d notification(s) read for %s", updated, user_id)
    return updated
