"""
HTTP client for communicating with the Notification service.

Pushes are best effort: every call is bounded by a timeout, and any failure is
logged and reported as a falsy result instead of being raised to the caller.
"""
import logging
from typing import Any, Dict, Optional
import httpx

from ..config import NOTIFICATION_SERVICE_URL, HTTP_TIMEOUT_SECONDS
from ..errors import DependencyError

logger = logging.getLogger(__name__)


class NotificationClient:
    """
    Client for the notification service's HTTP API.

    Args:
        base_url: Root URL of the notification service
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (e.g. ASGITransport in tests)
    """

    def __init__(
        self,
        base_url: str = NOTIFICATION_SERVICE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, token: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise DependencyError(f"Notification service returned HTTP {e.response.status_code} for {path}")
        except httpx.HTTPError as e:
            raise DependencyError(f"Notification service error for {path}: {e!r}")

    async def send_notification(
        self,
        type: str,
        message: str,
        user_id: int,
        token: str,
        vendor_id: Optional[int] = None,
        inventory_id: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Create a notification and have it pushed to connected clients.

        Returns:
            The created notification, or None if the push failed
        """
        payload = {
            "type": type,
            "message": message,
            "user_id": user_id,
            "vendor_id": vendor_id,
            "inventory_id": inventory_id,
        }
        try:
            body = await self._post("/api/notifications", token, payload)
        except DependencyError as e:
            logger.error(f"Failed to send {type} notification for user {user_id}: {e.message}")
            return None
        return body.get("notification")

    async def deliver_notification(self, notification_id: int, token: str) -> bool:
        """
        Push an already stored notification to its recipient's live connections.

        Returns:
            True if the notification service accepted the request
        """
        try:
            await self._post(f"/api/notifications/{notification_id}/deliver", token)
        except DependencyError as e:
            logger.error(f"Failed to deliver notification {notification_id}: {e.message}")
            return False
        return True


_default_client = NotificationClient()


def get_notification_client() -> NotificationClient:
    """FastAPI dependency returning the shared notification client."""
    return _default_client
