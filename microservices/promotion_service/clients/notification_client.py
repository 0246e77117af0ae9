"""
Notification Service Client

Delivers vendor-facing promotion notifications (approval, rejection) to
notification_service. Called by the outbox relay, never from inside a
ledger transaction.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import PromotionConfig

logger = logging.getLogger(__name__)


class NotificationClient:
    """Client for notification_service"""

    def __init__(
        self,
        config: Optional[PromotionConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if config is None:
            config = PromotionConfig.from_env()

        self.base_url = config.notification_service_url
        self.timeout = config.notification_timeout
        self._transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    async def send_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        kind: str,
        link: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Persist an in-app notification for a user.

        Args:
            user_id: Recipient vendor ID
            title: Short headline
            message: Body text
            kind: info, success, warning or error
            link: Screen the notification opens

        Returns:
            Notification response with notification_id, or {} when the
            service accepts the request without a JSON body

        Raises:
            httpx.HTTPError: transport failure or non-2xx response
        """
        request_data = {
            "user_id": user_id,
            "type": "in_app",
            "title": title,
            "content": message,
            "priority": "high" if kind == "error" else "normal",
            "metadata": {"kind": kind, "link": link, "source": "promotion_service"},
        }
        try:
            async with self._client() as client:
                response = await client.post("/api/v1/notifications", json=request_data)
                response.raise_for_status()
                if not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError:
                    logger.debug(f"Notification for {user_id} accepted with a non-JSON body")
                    return {}

        except httpx.HTTPStatusError as e:
            logger.error(f"Error sending notification to {user_id}: {e.response.status_code} {e.response.text}")
            raise

        except httpx.HTTPError as e:
            logger.error(f"Error sending notification to {user_id}: {e}")
            raise

    async def health_check(self) -> bool:
        """Check if notification_service is healthy"""
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/health")
                return response.status_code == 200
        except httpx.HTTPError:
            return False


__all__ = ["NotificationClient"]
