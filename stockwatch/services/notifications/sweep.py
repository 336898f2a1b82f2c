"""
Periodic low stock sweep.

Every interval the sweep scans all inventory at or below its minimum threshold
and alerts each item's owner, unless a low stock notification for that item and
owner was already created within the dedup window (one window = one interval).

A manual inventory update and a sweep tick can still both alert inside one
window when they land on opposite sides of the window boundary; that duplicate
is accepted.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ... import cache, schemas
from ...models import utcnow
from . import crud
from .realtime import RealtimeChannel

logger = logging.getLogger(__name__)


class LowStockSweep:
    """
    Low stock alerting with at most one alert per item per window.

    Args:
        session_factory: Callable returning a new SQLAlchemy session
        channel: Realtime channel used to push new alerts
        window: Dedup window length
    """

    def __init__(self, session_factory: Callable[[], Session], channel: RealtimeChannel, window: timedelta):
        self.session_factory = session_factory
        self.channel = channel
        self.window = window

    def _collect(self, now: datetime) -> List[Dict[str, Any]]:
        since = now - self.window
        created = []
        db = self.session_factory()
        try:
            targets = [
                (item.id, item.name, item.low_stock_message(), owner.id, owner.username)
                for item, owner in crud.get_low_stock_items_with_owner(db)
            ]
            for item_id, name, message, owner_id, owner_name in targets:
                try:
                    if crud.recent_low_stock_alert_exists(db, item_id, owner_id, since):
                        continue
                    notification = crud.create_notification(
                        db,
                        type="low_stock",
                        message=message,
                        user_id=owner_id,
                        inventory_id=item_id,
                        created_at=now,
                    )
                    created.append(schemas.Notification.model_validate(notification).model_dump(mode="json"))
                    logger.info(f"Sent low stock notification for item: {name} to user: {owner_name}")
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"Low stock check failed for item {item_id}: {e}")
        finally:
            db.close()
        return created

    async def run_once(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Run one sweep.

        Args:
            now: Reference time for the dedup window (defaults to the current UTC time)

        Returns:
            The notifications created by this run, JSON-ready
        """
        now = now or utcnow()
        logger.info("Running periodic low stock check...")
        created = await run_in_threadpool(self._collect, now)
        if created:
            cache.invalidate_dashboards()
        for notification in created:
            try:
                await self.channel.deliver_notification(notification)
            except Exception as e:
                logger.error(f"Failed to push low stock notification {notification['id']}: {e!r}")
        logger.info(f"Low stock check finished: {len(created)} new alert(s)")
        return created


class PeriodicTask:
    """
    Repeating asyncio timer with an explicit cancellation handle.

    A tick that raises is logged and does not stop later ticks.

    Args:
        func: Coroutine function called once per tick
        interval_seconds: Delay between ticks
        name: Task name used in logs
        run_immediately: Tick once at start instead of waiting a full interval
    """

    def __init__(
        self,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        name: str = "periodic-task",
        run_immediately: bool = False,
    ):
        self.func = func
        self.interval_seconds = interval_seconds
        self.name = name
        self.run_immediately = run_immediately
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.info(f"Started {self.name} (every {self.interval_seconds:g}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped {self.name}")

    async def _run(self) -> None:
        if self.run_immediately:
            await self._tick()
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self._tick()

    async def _tick(self) -> None:
        try:
            await self.func()
        except Exception:
            logger.exception(f"{self.name} tick failed")
        finally:
            self.ticks += 1
