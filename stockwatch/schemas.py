"""
Pydantic schemas for request/response validation in the StockWatch services.

These schemas define the structure of data for API requests and responses.
"""
import re
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

NotificationType = Literal["low_stock", "vendor_contact", "system"]
ContactType = Literal["email", "phone", "in_person"]

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


class MessageResponse(BaseModel):
    """Plain acknowledgement body."""
    message: str


# Users and tokens

class UserRegister(BaseModel):
    """Schema for user registration with password."""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, description="Password must be at least 6 characters long")

    @field_validator("username")
    @classmethod
    def username_characters(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return value

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
            raise ValueError(
                "Password must contain at least one lowercase letter, one uppercase letter, and one number"
            )
        return value


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    """Schema for updating the caller's own profile."""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr

    @field_validator("username")
    @classmethod
    def username_characters(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return value


class PasswordChange(BaseModel):
    """Schema for changing the caller's password."""
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6)

    class Config:
        populate_by_name = True


class UserPublic(BaseModel):
    """User fields that are safe to return to clients."""
    id: int
    username: str
    email: str
    role: str

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Schema for register/login responses carrying a JWT."""
    message: str
    token: str
    token_type: str = "bearer"
    user: UserPublic


class MeResponse(BaseModel):
    user: UserPublic


class ProfileResponse(BaseModel):
    message: str
    user: UserPublic


class TokenData(BaseModel):
    """Claims stored in a JWT token."""
    user_id: int
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class CurrentUser(BaseModel):
    """Authenticated caller, built from verified token claims."""
    id: int
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    token: str


# Inventory

class InventoryItemBase(BaseModel):
    """Base schema with common inventory item attributes."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    quantity: int = Field(..., ge=0, description="Quantity must be a non-negative integer")
    min_threshold: int = Field(..., ge=0, description="Minimum threshold must be a non-negative integer")
    unit: str = Field(..., min_length=1, max_length=20)
    category: Optional[str] = Field(default=None, max_length=50)


class InventoryItemCreate(InventoryItemBase):
    """Schema for creating a new inventory item."""
    pass


class InventoryItemUpdate(InventoryItemBase):
    """Schema for replacing an inventory item. All fields are required, as on create."""
    pass


class InventoryItem(InventoryItemBase):
    """
    Schema for inventory item responses, includes all database fields.

    Attributes:
        id (int): Inventory item's unique identifier
        created_by (int): Owning user ID
        created_by_username (str): Owning user's username
        is_low_stock (bool): quantity <= min_threshold, computed on read
    """
    id: int
    created_by: Optional[int] = None
    created_by_username: Optional[str] = None
    is_low_stock: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InventoryItemResult(BaseModel):
    message: str
    item: InventoryItem


class DashboardSummary(BaseModel):
    total_items: int = 0
    low_stock_items: int = 0
    total_vendors: int = 0
    unread_notifications: int = 0


# Vendors

class VendorBase(BaseModel):
    """Base schema with common vendor attributes."""
    company_name: str = Field(..., min_length=1, max_length=100)
    contact_person: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=500)
    specialty: Optional[str] = Field(default=None, max_length=100)


class VendorCreate(VendorBase):
    pass


class VendorUpdate(VendorBase):
    pass


class Vendor(VendorBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VendorResult(BaseModel):
    message: str
    vendor: Vendor


class VendorInventoryLink(BaseModel):
    """Schema for linking an inventory item to a vendor."""
    inventory_id: int = Field(..., ge=1)
    is_primary: bool = False


class VendorInventoryItem(InventoryItem):
    """Inventory item as supplied by a vendor."""
    is_primary: bool = False


class VendorContactRequest(BaseModel):
    """Schema for contacting a vendor about one or more inventory items."""
    vendor_id: int = Field(..., ge=1)
    inventory_ids: List[int] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=1000)
    contact_type: ContactType

    @field_validator("inventory_ids")
    @classmethod
    def positive_ids(cls, value: List[int]) -> List[int]:
        if any(item_id < 1 for item_id in value):
            raise ValueError("Each inventory ID must be a positive integer")
        return value


class VendorContactSummary(BaseModel):
    company_name: str
    email: str
    contact_person: str

    class Config:
        from_attributes = True


class ContactedItem(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class VendorContactResult(BaseModel):
    message: str
    vendor: VendorContactSummary
    items: List[ContactedItem]
    notification_id: int


# Notifications

class NotificationCreate(BaseModel):
    """Schema for creating a notification (used by other services)."""
    type: NotificationType
    message: str = Field(..., min_length=1, max_length=500)
    user_id: int = Field(..., ge=1)
    vendor_id: Optional[int] = Field(default=None, ge=1)
    inventory_id: Optional[int] = Field(default=None, ge=1)


class Notification(BaseModel):
    """
    Schema for notification responses.

    Attributes:
        vendor_name (str): Company name of the referenced vendor, if any
        inventory_name (str): Name of the referenced inventory item, if any
    """
    id: int
    type: NotificationType
    message: str
    user_id: int
    vendor_id: Optional[int] = None
    inventory_id: Optional[int] = None
    is_read: bool
    created_at: datetime
    vendor_name: Optional[str] = None
    inventory_name: Optional[str] = None

    class Config:
        from_attributes = True


class NotificationResult(BaseModel):
    message: str
    notification: Notification


class UnreadCount(BaseModel):
    count: int
