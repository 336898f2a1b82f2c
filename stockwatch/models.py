"""
SQLAlchemy ORM models shared by the StockWatch services.

Defines the database schema for users, inventory, vendors, vendor/inventory
links, vendor contact history and notifications.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship
from .database import Base


NOTIFICATION_TYPES = ("low_stock", "vendor_contact", "system")
CONTACT_TYPES = ("email", "phone", "in_person")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """
    User model representing an account in the system.

    Attributes:
        id (int): Primary key, auto-incremented user ID
        username (str): Unique login/display name
        email (str): User's email address (unique)
        password_hash (str): Hashed password
        role (str): User role (admin, user)
        created_at (datetime): Timestamp when the user was created
        updated_at (datetime): Timestamp of the last profile change
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(20), default="user", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class InventoryItem(Base):
    """
    Inventory item tracked against a minimum stock threshold.

    Attributes:
        id (int): Primary key
        name (str): Item name
        description (str): Optional free text
        quantity (int): Units in stock, never negative
        min_threshold (int): Low stock threshold, never negative
        unit (str): Unit of measure (boxes, kg, ...)
        category (str): Optional category
        created_by (int): Owning user ID
    """
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    min_threshold = Column(Integer, nullable=False, default=0)
    unit = Column(String(20), nullable=False)
    category = Column(String(50), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    creator = relationship("User")

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_threshold

    @property
    def created_by_username(self):
        return self.creator.username if self.creator else None

    def low_stock_message(self) -> str:
        return f"{self.name} is running low ({self.quantity} units remaining)"


class Vendor(Base):
    """Supplier that can be contacted about inventory items."""
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    company_name = Column(String(100), nullable=False, index=True)
    contact_person = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    specialty = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class VendorInventory(Base):
    """Link between a vendor and an inventory item it supplies."""
    __tablename__ = "vendor_inventory"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)

    item = relationship("InventoryItem")


class ContactHistory(Base):
    """
    One row per inventory item a user contacted a vendor about.

    Attributes:
        contact_type (str): email, phone or in_person
    """
    __tablename__ = "contact_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    contact_type = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Notification(Base):
    """
    Notification delivered to a single recipient.

    Attributes:
        id (int): Primary key
        type (str): low_stock, vendor_contact or system
        message (str): Text shown to the user
        user_id (int): Recipient user ID
        vendor_id (int): Optional vendor reference
        inventory_id (int): Optional inventory item reference
        is_read (bool): Read flag, the only mutable column
        created_at (datetime): Creation timestamp, used by the low stock dedup window
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(20), nullable=False, index=True)
    message = Column(String(500), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=True, index=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    vendor = relationship("Vendor")
    item = relationship("InventoryItem")

    @property
    def vendor_name(self):
        return self.vendor.company_name if self.vendor else None

    @property
    def inventory_name(self):
        return self.item.name if self.item else None
