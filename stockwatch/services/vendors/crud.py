"""
CRUD (Create, Read, Update, Delete) operations for the Vendor service.

This module contains all database operations for vendors, their inventory
links and vendor contact history. Multi-row operations commit once and roll
back fully on failure.
"""
from typing import List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session
from ... import models, schemas
from ..notifications import crud as notification_crud


def get_vendor(db: Session, vendor_id: int) -> Optional[models.Vendor]:
    """
    Retrieve a single vendor by ID.

    Args:
        db: Database session
        vendor_id: ID of the vendor to retrieve

    Returns:
        Vendor object or None if not found
    """
    return db.query(models.Vendor).filter(models.Vendor.id == vendor_id).first()


def get_vendors(db: Session) -> List[models.Vendor]:
    """Retrieve all vendors, newest first."""
    return db.query(models.Vendor).order_by(models.Vendor.created_at.desc(), models.Vendor.id.desc()).all()


def email_in_use(db: Session, email: str, exclude_vendor_id: Optional[int] = None) -> bool:
    query = db.query(models.Vendor.id).filter(models.Vendor.email == email)
    if exclude_vendor_id is not None:
        query = query.filter(models.Vendor.id != exclude_vendor_id)
    return query.first() is not None


def search_vendors(db: Session, q: str) -> List[models.Vendor]:
    """Vendors whose company name, specialty or contact person contains ``q``."""
    pattern = f"%{q}%"
    return (
        db.query(models.Vendor)
        .filter(
            or_(
                models.Vendor.company_name.like(pattern),
                models.Vendor.specialty.like(pattern),
                models.Vendor.contact_person.like(pattern),
            )
        )
        .order_by(models.Vendor.company_name)
        .all()
    )


def get_vendors_by_specialty(db: Session, specialty: str) -> List[models.Vendor]:
    return (
        db.query(models.Vendor)
        .filter(models.Vendor.specialty == specialty)
        .order_by(models.Vendor.company_name)
        .all()
    )


def get_vendor_inventory(db: Session, vendor_id: int) -> List[Tuple[models.InventoryItem, bool]]:
    """
    Inventory items supplied by a vendor.

    Returns:
        (InventoryItem, is_primary) pairs ordered by item name
    """
    return (
        db.query(models.InventoryItem, models.VendorInventory.is_primary)
        .join(models.VendorInventory, models.VendorInventory.inventory_id == models.InventoryItem.id)
        .filter(models.VendorInventory.vendor_id == vendor_id)
        .order_by(models.InventoryItem.name)
        .all()
    )


def link_inventory_item(db: Session, vendor_id: int, inventory_id: int, is_primary: bool) -> models.VendorInventory:
    """Link an item to a vendor, or update the primary flag of an existing link."""
    link = (
        db.query(models.VendorInventory)
        .filter(models.VendorInventory.vendor_id == vendor_id, models.VendorInventory.inventory_id == inventory_id)
        .first()
    )
    if link is None:
        link = models.VendorInventory(vendor_id=vendor_id, inventory_id=inventory_id)
        db.add(link)
    link.is_primary = is_primary
    db.commit()
    db.refresh(link)
    return link


def create_vendor(db: Session, vendor: schemas.VendorCreate) -> models.Vendor:
    """
    Create a new vendor in the database.

    Returns:
        Created Vendor object
    """
    data = vendor.model_dump()
    data["email"] = str(data["email"]).lower()
    db_vendor = models.Vendor(**data)
    db.add(db_vendor)
    db.commit()
    db.refresh(db_vendor)
    return db_vendor


def update_vendor(db: Session, db_vendor: models.Vendor, vendor: schemas.VendorUpdate) -> models.Vendor:
    data = vendor.model_dump()
    data["email"] = str(data["email"]).lower()
    for key, value in data.items():
        setattr(db_vendor, key, value)
    db.commit()
    db.refresh(db_vendor)
    return db_vendor


def delete_vendor(db: Session, db_vendor: models.Vendor) -> None:
    """
    Delete a vendor with its inventory links, contact history and notifications.

    Either every row goes or, on any failure, none does.
    """
    vendor_id = db_vendor.id
    try:
        db.query(models.VendorInventory).filter(models.VendorInventory.vendor_id == vendor_id).delete(
            synchronize_session=False
        )
        db.query(models.ContactHistory).filter(models.ContactHistory.vendor_id == vendor_id).delete(
            synchronize_session=False
        )
        db.query(models.Notification).filter(models.Notification.vendor_id == vendor_id).delete(
            synchronize_session=False
        )
        db.delete(db_vendor)
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_inventory_items_by_ids(db: Session, inventory_ids: List[int]) -> List[models.InventoryItem]:
    return (
        db.query(models.InventoryItem)
        .filter(models.InventoryItem.id.in_(inventory_ids))
        .order_by(models.InventoryItem.id)
        .all()
    )


def record_vendor_contact(
    db: Session,
    user_id: int,
    db_vendor: models.Vendor,
    items: List[models.InventoryItem],
    message: str,
    contact_type: str,
) -> models.Notification:
    """
    Record a contact with a vendor about several items.

    Writes one contact_history row per item and a single vendor_contact
    notification naming every item, in one transaction.

    Returns:
        The stored notification
    """
    try:
        for item in items:
            db.add(
                models.ContactHistory(
                    user_id=user_id,
                    vendor_id=db_vendor.id,
                    inventory_id=item.id,
                    message=message,
                    contact_type=contact_type,
                )
            )
        item_names = ", ".join(item.name for item in items)
        notification = notification_crud.create_notification(
            db,
            type="vendor_contact",
            message=f"You contacted {db_vendor.company_name} about: {item_names}"[:500],
            user_id=user_id,
            vendor_id=db_vendor.id,
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(notification)
    return notification
