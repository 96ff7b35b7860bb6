from typing import List

import structlog
from sqlalchemy import func
from sqlmodel import Session, select

from errors import Forbidden, NotFound
from models import Notification, utcnow

logger = structlog.get_logger(__name__)

DONATION_CLAIMED = "donation_claimed"
DONATION_DELIVERED = "donation_delivered"

DEFAULT_LIMIT = 20


def notify(session: Session, recipient_id: int, event_type: str, payload: dict) -> Notification:
    """
    Queue a notification in the caller's transaction.

    Nothing is committed here: the row is written, or rolled back, together
    with the claim or delivery that produced it.
    """
    notification = Notification(user_id=recipient_id, type=event_type, data=payload)
    session.add(notification)
    logger.debug("Notification queued", user_id=recipient_id, type=event_type)
    return notification


def list_notifications(session: Session, user_id: int, limit: int = DEFAULT_LIMIT) -> List[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(session.exec(stmt).all())


def mark_as_read(session: Session, notification_id: int, user_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.user_id != user_id:
        raise Forbidden()
    if notification.read_at is None:
        notification.read_at = utcnow()
        session.add(notification)
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_as_read(session: Session, user_id: int) -> int:
    unread = session.exec(
        select(Notification).where(
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
    ).all()
    now = utcnow()
    for notification in unread:
        notification.read_at = now
        session.add(notification)
    session.commit()
    return len(unread)


def unread_count(session: Session, user_id: int) -> int:
    stmt = select(func.count(Notification.id)).where(
        Notification.user_id == user_id,
        Notification.read_at.is_(None),
    )
    return session.exec(stmt).one()
