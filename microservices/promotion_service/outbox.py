"""
Notification Outbox Relay

Delivers notifications written to the outbox by committed ledger
transactions. A delivery failure never touches ledger state: the row stays
pending (attempts incremented) until max_attempts, then becomes failed.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .models import OutboxNotification, OutboxStatus, utcnow
from .protocols import EntityStoreProtocol, NotificationSinkProtocol, StoreUnavailableError

logger = logging.getLogger(__name__)

DELIVERY_ERRORS = (httpx.HTTPError, OSError, asyncio.TimeoutError)


class NotificationOutboxRelay:
    """Moves pending outbox rows to the notification sink"""

    def __init__(
        self,
        store: EntityStoreProtocol,
        sink: NotificationSinkProtocol,
        batch_size: int = 50,
        max_attempts: int = 5,
        delivery_retries: int = 3,
        retry_wait: float = 0.5,
        poll_interval: float = 2.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.sink = sink
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.delivery_retries = max(1, delivery_retries)
        self.retry_wait = retry_wait
        self.poll_interval = poll_interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _deliver(self, notification: OutboxNotification) -> None:
        """Send one notification, retrying transient sink failures"""

        @retry(
            stop=stop_after_attempt(self.delivery_retries),
            wait=wait_exponential(multiplier=self.retry_wait, max=10),
            retry=retry_if_exception_type(DELIVERY_ERRORS),
            reraise=True,
        )
        async def _send():
            await self.sink.send_notification(
                user_id=notification.user_id,
                title=notification.title,
                message=notification.message,
                kind=notification.kind.value,
                link=notification.link,
            )

        await _send()

    async def _record_failure(self, notification: OutboxNotification, error: Exception, stats: Dict[str, int]) -> None:
        updated = await self.store.mark_notification_attempt_failed(
            notification.notification_id, str(error) or type(error).__name__, self.max_attempts
        )
        if updated.status == OutboxStatus.FAILED:
            stats["failed"] += 1
            logger.error(
                f"Notification {notification.notification_id} for {notification.user_id} "
                f"failed after {updated.attempts} attempts: {error!r}"
            )
        else:
            stats["retrying"] += 1
            logger.warning(
                f"Notification {notification.notification_id} delivery attempt "
                f"{updated.attempts}/{self.max_attempts} failed: {error!r}"
            )

    async def run_once(self) -> Dict[str, int]:
        """
        Deliver one batch of pending notifications.

        A failing row is recorded and skipped; it never blocks the rest of
        the batch.

        Returns:
            Counts of delivered, retrying and failed notifications
        """
        stats = {"delivered": 0, "retrying": 0, "failed": 0}
        pending = await self.store.fetch_pending_notifications(limit=self.batch_size)

        for notification in pending:
            try:
                await self._deliver(notification)
            except DELIVERY_ERRORS as e:
                await self._record_failure(notification, e, stats)
                continue
            except Exception as e:
                logger.exception(f"Unexpected error delivering notification {notification.notification_id}")
                await self._record_failure(notification, e, stats)
                continue

            await self.store.mark_notification_delivered(notification.notification_id, self.clock())
            stats["delivered"] += 1

        if pending:
            logger.info(
                f"Outbox batch: {stats['delivered']} delivered, "
                f"{stats['retrying']} retrying, {stats['failed']} failed"
            )
        return stats

    # ====================
    # Background loop
    # ====================

    async def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run_loop(), name="notification-outbox-relay")
        logger.info("Notification outbox relay started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Notification outbox relay stopped")

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                stats = await self.run_once()
            except StoreUnavailableError as e:
                logger.warning(f"Outbox relay paused, store unavailable: {e.message}")
                stats = {}
            except Exception:
                logger.exception("Outbox relay iteration failed")
                stats = {}

            # A fully delivered batch means more rows are probably waiting;
            # failing rows always wait out poll_interval before the next attempt
            if stats.get("delivered", 0) >= self.batch_size:
                continue
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
