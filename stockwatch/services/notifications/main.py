"""
    Notification Service API

    This module implements the FastAPI notification service: the notification
    store's HTTP endpoints, the realtime WebSocket channel and the periodic
    low stock sweep.

    The service exposes:
    - CRUD endpoints for the caller's notifications
    - POST endpoints other services use to create or deliver notifications
    - WebSocket endpoint (/ws) for live notification delivery
    - Health endpoint for monitoring and orchestration

    The connection registry, channel and sweep timer are created per
    application by create_app() and kept on app.state.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
import logging
from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ... import auth, cache, schemas
from ...config import (
    FRONTEND_URL,
    LOW_STOCK_SWEEP_ENABLED,
    LOW_STOCK_SWEEP_INTERVAL_HOURS,
    LOW_STOCK_SWEEP_RUN_ON_STARTUP,
    configure_logging,
)
from ...database import SessionLocal, get_db, init_db
from ...errors import NotFoundError, register_exception_handlers
from . import crud
from .realtime import ConnectionRegistry, RealtimeChannel, user_room
from .sweep import LowStockSweep, PeriodicTask

configure_logging()
logger = logging.getLogger(__name__)

router = APIRouter()


class DeliveryResult(BaseModel):
    message: str
    delivered: int


def get_channel(request: Request) -> RealtimeChannel:
    """FastAPI dependency returning the application's realtime channel."""
    return request.app.state.channel


def _payload(notification) -> dict:
    return schemas.Notification.model_validate(notification).model_dump(mode="json")


@router.get("/health", response_model=dict)
def health(request: Request):
    """
    Health check endpoint for the notification service.

    Returns:
        dict: status, service name, timestamp, number of live WebSocket
        connections and whether the low stock sweep timer is running.
    """
    sweep_task = request.app.state.sweep_task
    return {
        "status": "healthy",
        "service": "notification-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "connections": len(request.app.state.registry),
        "sweep_running": bool(sweep_task and sweep_task.running),
    }


@router.get("/api/notifications", response_model=List[schemas.Notification])
def list_notifications(
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """List all of the caller's notifications, newest first."""
    return crud.get_notifications(db, user_id=current_user.id)


@router.get("/api/notifications/recent", response_model=List[schemas.Notification])
def recent_notifications(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    List the caller's most recent notifications.

    Args:
        limit: Maximum number of notifications to return (default: 10)
    """
    return crud.get_notifications(db, user_id=current_user.id, limit=limit)


@router.get("/api/notifications/unread-count", response_model=schemas.UnreadCount)
def get_unread_count(
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    return schemas.UnreadCount(count=crud.unread_count(db, user_id=current_user.id))


@router.post("/api/notifications", response_model=schemas.NotificationResult, status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification: schemas.NotificationCreate,
    db: Session = Depends(get_db),
    channel: RealtimeChannel = Depends(get_channel),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Store a notification and push it to the recipient's live connections.

    Called by the inventory service for low stock alerts. The push is best
    effort; the notification is stored whether or not anyone is connected.

    Returns:
        The stored notification
    """
    db_notification = crud.create_notification(
        db,
        type=notification.type,
        message=notification.message,
        user_id=notification.user_id,
        vendor_id=notification.vendor_id,
        inventory_id=notification.inventory_id,
    )
    cache.invalidate_dashboards()
    payload = _payload(db_notification)
    await channel.deliver_notification(payload)
    logger.info(f"Notification created: {notification.type} for user {notification.user_id}")
    return {"message": "Notification created successfully", "notification": payload}


@router.post("/api/notifications/{notification_id}/deliver", response_model=DeliveryResult)
async def deliver_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    channel: RealtimeChannel = Depends(get_channel),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Push an already stored notification owned by the caller.

    Used by services that write the notification inside their own transaction.

    Raises:
        NotFoundError: 404 if the notification does not exist or is not the caller's
    """
    db_notification = crud.get_notification_for_user(db, notification_id, current_user.id)
    if db_notification is None:
        raise NotFoundError("Notification not found")
    delivered = await channel.deliver_notification(_payload(db_notification))
    return DeliveryResult(message="Notification delivered", delivered=delivered)


@router.patch("/api/notifications/read-all", response_model=schemas.MessageResponse)
async def mark_all_notifications_read(
    db: Session = Depends(get_db),
    channel: RealtimeChannel = Depends(get_channel),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """Mark every unread notification of the caller as read."""
    crud.mark_all_read(db, user_id=current_user.id)
    cache.invalidate_dashboards()
    await channel.emit_to_room(user_room(current_user.id), "all_notifications_marked_read", {})
    return {"message": "All notifications marked as read"}


@router.patch("/api/notifications/{notification_id}/read", response_model=schemas.MessageResponse)
async def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    channel: RealtimeChannel = Depends(get_channel),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Mark one of the caller's notifications as read.

    Raises:
        NotFoundError: 404 if the notification does not exist or is not the caller's
    """
    crud.mark_read(db, notification_id, current_user.id)
    cache.invalidate_dashboards()
    await channel.emit_to_room(
        user_room(current_user.id), "notification_marked_read", {"notificationId": notification_id}
    )
    return {"message": "Notification marked as read"}


@router.delete("/api/notifications/{notification_id}", response_model=schemas.MessageResponse)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.CurrentUser = Depends(auth.get_current_user)
):
    """
    Delete one of the caller's notifications.

    Raises:
        NotFoundError: 404 if the notification does not exist or is not the caller's
    """
    crud.delete_notification(db, notification_id, current_user.id)
    cache.invalidate_dashboards()
    return {"message": "Notification deleted successfully"}


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    """Live notification channel; authenticate with ?token=<jwt> or a Bearer header."""
    await websocket.app.state.channel.serve(websocket)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    sweep_task: Optional[PeriodicTask] = app.state.sweep_task
    if sweep_task is not None:
        sweep_task.start()
    logger.info("Notification service started")
    try:
        yield
    finally:
        if sweep_task is not None:
            await sweep_task.stop()
        logger.info("Notification service stopped")


def create_app(
    registry: Optional[ConnectionRegistry] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    enable_sweep: bool = LOW_STOCK_SWEEP_ENABLED,
    sweep_interval_hours: float = LOW_STOCK_SWEEP_INTERVAL_HOURS,
) -> FastAPI:
    """
    Build a notification service application.

    Args:
        registry: Connection registry to use (a new one by default)
        session_factory: Session factory for the channel and the sweep
        enable_sweep: Start the periodic low stock sweep with the application
        sweep_interval_hours: Sweep interval, also the dedup window length

    Returns:
        Configured FastAPI application
    """
    if registry is None:
        registry = ConnectionRegistry()
    window = timedelta(hours=sweep_interval_hours)
    channel = RealtimeChannel(registry, session_factory)
    sweep = LowStockSweep(session_factory, channel, window)

    app = FastAPI(title="notification-service", lifespan=lifespan)
    app.state.registry = registry
    app.state.channel = channel
    app.state.sweep = sweep
    app.state.sweep_task = (
        PeriodicTask(
            sweep.run_once,
            window.total_seconds(),
            name="low-stock-sweep",
            run_immediately=LOW_STOCK_SWEEP_RUN_ON_STARTUP,
        )
        if enable_sweep
        else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
