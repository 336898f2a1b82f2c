"""
CRUD (Create, Read, Update, Delete) operations for the Inventory service.

This module contains all database operations for inventory management.
"""
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload
from ... import models, schemas


def _items(db: Session):
    return db.query(models.InventoryItem).options(joinedload(models.InventoryItem.creator))


def get_inventory_item(db: Session, item_id: int) -> Optional[models.InventoryItem]:
    """
    Retrieve a single inventory item by ID.

    Args:
        db: Database session
        item_id: ID of the inventory item to retrieve

    Returns:
        InventoryItem object or None if not found
    """
    return _items(db).filter(models.InventoryItem.id == item_id).first()


def get_inventory_items(db: Session) -> List[models.InventoryItem]:
    """Retrieve all inventory items, most recently updated first."""
    return _items(db).order_by(models.InventoryItem.updated_at.desc(), models.InventoryItem.id.desc()).all()


def get_low_stock_items(db: Session) -> List[models.InventoryItem]:
    """Retrieve items at or below their minimum threshold, lowest quantity first."""
    return (
        _items(db)
        .filter(models.InventoryItem.quantity <= models.InventoryItem.min_threshold)
        .order_by(models.InventoryItem.quantity.asc(), models.InventoryItem.id.asc())
        .all()
    )


def search_inventory_items(db: Session, q: str) -> List[models.InventoryItem]:
    """
    Search items by name, category or description.

    Args:
        db: Database session
        q: Substring to look for

    Returns:
        Matching InventoryItem objects, most recently updated first
    """
    pattern = f"%{q}%"
    return (
        _items(db)
        .filter(
            or_(
                models.InventoryItem.name.like(pattern),
                models.InventoryItem.category.like(pattern),
                models.InventoryItem.description.like(pattern),
            )
        )
        .order_by(models.InventoryItem.updated_at.desc(), models.InventoryItem.id.desc())
        .all()
    )


def create_inventory_item(db: Session, item: schemas.InventoryItemCreate, user_id: int) -> models.InventoryItem:
    """
    Create a new inventory item owned by a user.

    Args:
        db: Database session
        item: Inventory item data to create
        user_id: Owning user ID

    Returns:
        Created InventoryItem object
    """
    db_item = models.InventoryItem(**item.model_dump(), created_by=user_id)
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    return db_item


def update_inventory_item(db: Session, item_id: int, item: schemas.InventoryItemUpdate) -> Optional[models.InventoryItem]:
    """
    Replace the editable fields of an inventory item.

    Returns:
        Updated InventoryItem object or None if not found
    """
    db_item = get_inventory_item(db, item_id)
    if db_item is None:
        return None

    for key, value in item.model_dump().items():
        setattr(db_item, key, value)

    db.commit()
    db.refresh(db_item)
    return db_item


def delete_inventory_item(db: Session, item_id: int) -> Optional[str]:
    """
    Delete an inventory item with its vendor links and contact history.

    Notifications that reference the item are kept and detached from it. All
    changes are committed together or rolled back together.

    Returns:
        Name of the deleted item, or None if not found
    """
    db_item = get_inventory_item(db, item_id)
    if db_item is None:
        return None
    name = db_item.name

    try:
        db.query(models.VendorInventory).filter(models.VendorInventory.inventory_id == item_id).delete(
            synchronize_session=False
        )
        db.query(models.ContactHistory).filter(models.ContactHistory.inventory_id == item_id).delete(
            synchronize_session=False
        )
        db.query(models.Notification).filter(models.Notification.inventory_id == item_id).update(
            {models.Notification.inventory_id: None}, synchronize_session=False
        )
        db.delete(db_item)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return name


def get_dashboard_summary(db: Session, user_id: int) -> schemas.DashboardSummary:
    """
    Aggregate counts for the dashboard.

    Args:
        db: Database session
        user_id: Caller, whose unread notifications are counted

    Returns:
        DashboardSummary
    """
    return schemas.DashboardSummary(
        total_items=db.query(models.InventoryItem).count(),
        low_stock_items=db.query(models.InventoryItem)
        .filter(models.InventoryItem.quantity <= models.InventoryItem.min_threshold)
        .count(),
        total_vendors=db.query(models.Vendor).count(),
        unread_notifications=db.query(models.Notification)
        .filter(models.Notification.user_id == user_id, models.Notification.is_read.is_(False))
        .count(),
    )
