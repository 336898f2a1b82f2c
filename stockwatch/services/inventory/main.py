"""
    Inventory Service API

    This module implements a FastAPI-based microservice for managing inventory items with full CRUD operations.
    It provides endpoints for creating, reading, updating, deleting and searching inventory items,
    plus the dashboard summary and the low stock list.

    The service exposes:
    - CRUD endpoints for inventory management
    - Dashboard summary (cached in redis) and low stock endpoints
    - Health endpoint: Provides service health status for monitoring and orchestration

    Creating or updating an item at or below its minimum threshold asks the
    notification service, in the background, to alert the item's owner.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import logging
from fastapi import FastAPI, Depends, BackgroundTasks, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from ... import auth, cache, models, schemas
from ...clients.notification_client import NotificationClient, get_notification_client
from ...config import DASHBOARD_CACHE_TTL, FRONTEND_URL, configure_logging
from ...database import get_db, init_db
from ...errors import NotFoundError, ValidationError, register_exception_handlers
from . import crud

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="inventory-service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)


def schedule_low_stock_alert(
    background_tasks: BackgroundTasks,
    client: NotificationClient,
    item: models.InventoryItem,
    current_user: schemas.CurrentUser,
) -> None:
    """
    Queue a low stock notification for the item's owner if the item is at or below threshold.

    The push runs after the response is produced; its failure is logged by the
    client and never affects the request.
    """
    if not item.is_low_stock:
        return
    background_tasks.add_task(
        client.send_notification,
        type="low_stock",
        message=item.low_stock_message(),
        user_id=item.created_by or current_user.id,
        token=current_user.token,
        inventory_id=item.id,
    )


@app.get("/health", response_model=dict)
def health():
    """
    Health check endpoint for the inventory service.

    Returns:
        dict: A dictionary containing the health status of the service.

    Example:
        GET /health
        Response: {"status": "healthy", "service": "inventory-service", ...}
    """
    return {
        "status": "healthy",
        "service": "inventory-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/inventory", response_model=List[schemas.InventoryItem])
def list_inventory_items(
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    List all inventory items, most recently updated first (authenticated users only).

    Returns:
        List of inventory item objects
    """
    return crud.get_inventory_items(db)


@app.get("/api/inventory/dashboard-summary", response_model=schemas.DashboardSummary)
def get_dashboard_summary(
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get dashboard counts (authenticated users).

    Returns:
        dict: total_items, low_stock_items, total_vendors and the caller's unread_notifications
    """
    cache_key = cache.dashboard_key(current_user.id)
    cached = cache.get_cache(cache_key)
    if cached is not None:
        return cached

    summary = crud.get_dashboard_summary(db, user_id=current_user.id)
    cache.set_cache(cache_key, summary.model_dump(), ttl=DASHBOARD_CACHE_TTL)
    return summary


@app.get("/api/inventory/low-stock", response_model=List[schemas.InventoryItem])
def list_low_stock_items(
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """List items at or below their minimum threshold, lowest quantity first."""
    return crud.get_low_stock_items(db)


@app.get("/api/inventory/search", response_model=List[schemas.InventoryItem])
def search_inventory_items(
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Search inventory by name, category or description.

    Args:
        q: Search text

    Raises:
        ValidationError: 400 if q is missing or blank
    """
    if not q or not q.strip():
        raise ValidationError("Search query is required")
    return crud.search_inventory_items(db, q.strip())


@app.get("/api/inventory/{item_id}", response_model=schemas.InventoryItem)
def get_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Get a single inventory item by ID (authenticated users only).

    Raises:
        NotFoundError: 404 if item not found
    """
    db_item = crud.get_inventory_item(db, item_id=item_id)
    if db_item is None:
        raise NotFoundError("Inventory item not found")
    return db_item


@app.post("/api/inventory", response_model=schemas.InventoryItemResult, status_code=status.HTTP_201_CREATED)
def create_inventory_item(
    item: schemas.InventoryItemCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: NotificationClient = Depends(get_notification_client),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Create a new inventory item owned by the caller.

    Args:
        item: Inventory item data to create

    Returns:
        Created inventory item object
    """
    db_item = crud.create_inventory_item(db, item=item, user_id=current_user.id)
    schedule_low_stock_alert(background_tasks, client, db_item, current_user)
    cache.invalidate_dashboards()

    logger.info(f"Inventory item created: {db_item.name} by user {current_user.id}")
    return {"message": "Inventory item created successfully", "item": db_item}


@app.put("/api/inventory/{item_id}", response_model=schemas.InventoryItemResult)
def update_inventory_item(
    item_id: int,
    item: schemas.InventoryItemUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    client: NotificationClient = Depends(get_notification_client),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Update an existing inventory item.

    Raises:
        NotFoundError: 404 if item not found
    """
    db_item = crud.update_inventory_item(db, item_id=item_id, item=item)
    if db_item is None:
        raise NotFoundError("Inventory item not found")
    schedule_low_stock_alert(background_tasks, client, db_item, current_user)
    cache.invalidate_dashboards()

    logger.info(f"Inventory item updated: {db_item.name} by user {current_user.id}")
    return {"message": "Inventory item updated successfully", "item": db_item}


@app.delete("/api/inventory/{item_id}", response_model=schemas.MessageResponse)
def delete_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Delete an inventory item.

    Raises:
        NotFoundError: 404 if item not found
    """
    name = crud.delete_inventory_item(db, item_id=item_id)
    if name is None:
        raise NotFoundError("Inventory item not found")
    cache.invalidate_dashboards()

    logger.info(f"Inventory item deleted: {name} by user {current_user.id}")
    return {"message": "Inventory item deleted successfully"}
