"""
Notification store operations for the Notification service.

This module contains all database operations on notifications, plus the two
queries the low stock sweep depends on.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from ... import models
from ...errors import NotFoundError


def create_notification(
    db: Session,
    type: str,
    message: str,
    user_id: int,
    vendor_id: Optional[int] = None,
    inventory_id: Optional[int] = None,
    created_at: Optional[datetime] = None,
    commit: bool = True,
) -> models.Notification:
    """
    Create a new notification.

    Args:
        db: Database session
        type: Notification type (low_stock, vendor_contact, system)
        message: Notification text
        user_id: Recipient user ID
        vendor_id: Optional vendor reference
        inventory_id: Optional inventory item reference
        created_at: Explicit creation time (defaults to now)
        commit: Commit immediately; pass False to stay inside the caller's transaction

    Returns:
        Created Notification object
    """
    notification = models.Notification(
        type=type,
        message=message,
        user_id=user_id,
        vendor_id=vendor_id,
        inventory_id=inventory_id,
    )
    if created_at is not None:
        notification.created_at = created_at
    db.add(notification)
    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()
    return notification


def get_notifications(db: Session, user_id: int, limit: Optional[int] = None) -> List[models.Notification]:
    """
    Retrieve a user's notifications, newest first.

    Args:
        db: Database session
        user_id: Recipient user ID
        limit: Optional maximum number of rows

    Returns:
        List of Notification objects
    """
    query = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id)
        .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_notification_for_user(db: Session, notification_id: int, user_id: int) -> Optional[models.Notification]:
    return (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == user_id)
        .first()
    )


def mark_read(db: Session, notification_id: int, user_id: int) -> models.Notification:
    """
    Flag a notification as read.

    Raises:
        NotFoundError: if the notification does not exist or belongs to another user
    """
    notification = get_notification_for_user(db, notification_id, user_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    """Flag every unread notification of a user as read. Returns the number of rows changed."""
    updated = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.is_read.is_(False))
        .update({models.Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def delete_notification(db: Session, notification_id: int, user_id: int) -> None:
    """
    Delete a notification owned by the user.

    Raises:
        NotFoundError: if the notification does not exist or belongs to another user
    """
    notification = get_notification_for_user(db, notification_id, user_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    db.delete(notification)
    db.commit()


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.is_read.is_(False))
        .count()
    )


def recent_low_stock_alert_exists(db: Session, inventory_id: int, user_id: int, since: datetime) -> bool:
    """
    Check whether a low stock alert for the item and owner was created after ``since``.
    """
    return (
        db.query(models.Notification.id)
        .filter(
            models.Notification.type == "low_stock",
            models.Notification.inventory_id == inventory_id,
            models.Notification.user_id == user_id,
            models.Notification.created_at > since,
        )
        .first()
        is not None
    )


def get_low_stock_items_with_owner(db: Session) -> List[Tuple[models.InventoryItem, models.User]]:
    """Every item at or below its threshold, joined to its owning user."""
    return (
        db.query(models.InventoryItem, models.User)
        .join(models.User, models.InventoryItem.created_by == models.User.id)
        .filter(models.InventoryItem.quantity <= models.InventoryItem.min_threshold)
        .order_by(models.InventoryItem.id)
        .all()
    )
