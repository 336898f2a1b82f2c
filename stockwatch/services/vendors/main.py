"""
Vendor Service API

This module implements the FastAPI vendor service: vendor CRUD, search,
vendor/inventory links and contacting a vendor about inventory items.

Endpoints:
    GET /api/vendors: List vendors
    GET /api/vendors/search?q=: Search vendors
    GET /api/vendors/specialty/{specialty}: Vendors with a specialty
    GET /api/vendors/{vendor_id}: Get a vendor
    GET /api/vendors/{vendor_id}/inventory: Items the vendor supplies
    POST /api/vendors/{vendor_id}/inventory: Link an item to the vendor
    POST /api/vendors: Create a vendor
    PUT /api/vendors/{vendor_id}: Update a vendor
    DELETE /api/vendors/{vendor_id}: Delete a vendor and its dependent rows
    POST /api/vendors/contact: Contact a vendor about inventory items
    GET /health: Health check endpoint for orchestration systems

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "vendor-service"
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import logging
from fastapi import FastAPI, Depends, BackgroundTasks, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from ... import auth, cache, schemas
from ...clients.notification_client import NotificationClient, get_notification_client
from ...config import FRONTEND_URL, configure_logging
from ...database import get_db, init_db
from ...errors import ConflictError, NotFoundError, ValidationError, register_exception_handlers
from . import crud

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="vendor-service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


def _get_vendor_or_404(db: Session, vendor_id: int):
    db_vendor = crud.get_vendor(db, vendor_id)
    if db_vendor is None:
        raise NotFoundError("Vendor not found")
    return db_vendor


@app.get("/health", response_model=dict)
def health():
    """
    Health check endpoint for the vendor service.

    Returns:
        dict: status, service name and current timestamp
    """
    return {
        "status": "healthy",
        "service": "vendor-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/vendors", response_model=List[schemas.Vendor])
def list_vendors(
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """List all vendors, newest first."""
    return crud.get_vendors(db)


@app.get("/api/vendors/search", response_model=List[schemas.Vendor])
def search_vendors(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Search vendors by company name, specialty or contact person.

    Raises:
        ValidationError: 400 if q is missing or blank
    """
    if not q or not q.strip():
        raise ValidationError("Search query is required")
    return crud.search_vendors(db, q.strip())


@app.get("/api/vendors/specialty/{specialty}", response_model=List[schemas.Vendor])
def list_vendors_by_specialty(
    specialty: str,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    return crud.get_vendors_by_specialty(db, specialty)


@app.post("/api/vendors/contact", response_model=schemas.VendorContactResult)
def contact_vendor(
    contact: schemas.VendorContactRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: NotificationClient = Depends(get_notification_client),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Contact a vendor about one or more inventory items.

    Stores one contact history row per item and a single notification for the
    caller, then asks the notification service to push that notification live.

    Raises:
        NotFoundError: 404 if the vendor does not exist
        ValidationError: 400 if any inventory item does not exist
    """
    db_vendor = _get_vendor_or_404(db, contact.vendor_id)

    inventory_ids = list(dict.fromkeys(contact.inventory_ids))
    items = crud.get_inventory_items_by_ids(db, inventory_ids)
    if len(items) != len(inventory_ids):
        raise ValidationError("Some inventory items not found")

    notification = crud.record_vendor_contact(
        db,
        user_id=current_user.id,
        db_vendor=db_vendor,
        items=items,
        message=contact.message,
        contact_type=contact.contact_type,
    )
    background_tasks.add_task(client.deliver_notification, notification.id, current_user.token)
    cache.invalidate_dashboards()

    logger.info(f"Vendor contacted: {db_vendor.company_name} by user {current_user.id}")
    return {
        "message": "Vendor contacted successfully",
        "vendor": db_vendor,
        "items": items,
        "notification_id": notification.id,
    }


@app.get("/api/vendors/{vendor_id}", response_model=schemas.Vendor)
def get_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get a single vendor by ID.

    Raises:
        NotFoundError: 404 if vendor not found
    """
    return _get_vendor_or_404(db, vendor_id)


@app.get("/api/vendors/{vendor_id}/inventory", response_model=List[schemas.VendorInventoryItem])
def get_vendor_inventory(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """List the inventory items a vendor supplies, by item name."""
    rows = crud.get_vendor_inventory(db, vendor_id)
    return [
        schemas.VendorInventoryItem(
            **schemas.InventoryItem.model_validate(item).model_dump(),
            is_primary=is_primary,
        )
        for item, is_primary in rows
    ]


@app.post(
    "/api/vendors/{vendor_id}/inventory",
    response_model=schemas.MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
def link_vendor_inventory(
    vendor_id: int,
    link: schemas.VendorInventoryLink,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Record that a vendor supplies an inventory item.

    Raises:
        NotFoundError: 404 if the vendor or the item does not exist
    """
    _get_vendor_or_404(db, vendor_id)
    if not crud.get_inventory_items_by_ids(db, [link.inventory_id]):
        raise NotFoundError("Inventory item not found")
    crud.link_inventory_item(db, vendor_id, link.inventory_id, link.is_primary)
    return {"message": "Inventory item linked to vendor"}


@app.post("/api/vendors", response_model=schemas.VendorResult, status_code=status.HTTP_201_CREATED)
def create_vendor(
    vendor: schemas.VendorCreate,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Create a new vendor.

    Raises:
        ConflictError: 400 if a vendor with the email already exists
    """
    if crud.email_in_use(db, str(vendor.email).lower()):
        raise ConflictError("Vendor with this email already exists")
    db_vendor = crud.create_vendor(db, vendor)
    cache.invalidate_dashboards()

    logger.info(f"Vendor created: {db_vendor.company_name} ({db_vendor.email})")
    return {"message": "Vendor created successfully", "vendor": db_vendor}


@app.put("/api/vendors/{vendor_id}", response_model=schemas.VendorResult)
def update_vendor(
    vendor_id: int,
    vendor: schemas.VendorUpdate,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Update an existing vendor.

    Raises:
        NotFoundError: 404 if vendor not found
        ConflictError: 400 if another vendor already uses the email
    """
    db_vendor = _get_vendor_or_404(db, vendor_id)
    if crud.email_in_use(db, str(vendor.email).lower(), exclude_vendor_id=vendor_id):
        raise ConflictError("Email is already taken by another vendor")
    db_vendor = crud.update_vendor(db, db_vendor, vendor)

    logger.info(f"Vendor updated: {db_vendor.company_name} ({db_vendor.email})")
    return {"message": "Vendor updated successfully", "vendor": db_vendor}


@app.delete("/api/vendors/{vendor_id}", response_model=schemas.MessageResponse)
def delete_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Delete a vendor with its inventory links, contact history and notifications.

    Raises:
        NotFoundError: 404 if vendor not found
    """
    db_vendor = _get_vendor_or_404(db, vendor_id)
    company_name = db_vendor.company_name
    crud.delete_vendor(db, db_vendor)
    cache.invalidate_dashboards()

    logger.info(f"Vendor deleted: {company_name}")
    return {"message": "Vendor deleted successfully"}
