"""
NATS JetStream Client for the promotion ledger

Thin async wrapper around nats-py used to publish domain events after a
ledger operation has committed.

Usage:
    from core.nats_client import NATSEventBus, Event

    bus = NATSEventBus("promotion_service", servers="nats://localhost:4222")
    await bus.connect()
    await bus.publish_event(Event("promotion.campaign.approved", "promotion_service", {...}))
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import nats
from nats.errors import Error as NATSError
from nats.js.errors import NotFoundError as StreamNotFoundError

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal, datetime and Enum types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class Event:
    """Event envelope"""

    def __init__(
        self,
        event_type: Union[str, Enum],
        source: str,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else event_type
        self.source = source
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


class NATSEventBus:
    """
    NATS JetStream event bus.

    Streams are created on first publish per subject prefix
    (``promotion.*`` -> ``promotion-stream``).
    """

    def __init__(
        self,
        service_name: str,
        servers: Union[str, List[str]] = "nats://localhost:4222",
        connect_timeout: float = 5.0,
    ):
        self.service_name = service_name
        self.servers = [servers] if isinstance(servers, str) else list(servers)
        self.connect_timeout = connect_timeout

        self._nc = None
        self._js = None
        self._known_streams: set = set()

        logger.info(f"NATS EventBus initialized: {', '.join(self.servers)}")

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(
                servers=self.servers,
                name=self.service_name,
                connect_timeout=self.connect_timeout,
            )
            self._js = self._nc.jetstream()
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to JetStream.

        Subject is the event type; the stream is derived from its first
        segment.
        """
        if not self.is_connected:
            logger.error("Not connected to NATS")
            return False

        subject = event.subject or event.type
        payload = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
        try:
            await self._ensure_stream(subject)
            ack = await self._js.publish(subject, payload)
            logger.info(f"Published event {event.type} [{event.id}] to stream {ack.stream}, seq={ack.seq}")
            return True
        except NATSError as e:
            logger.error(f"Failed to publish event {event.id}: {e}")
            return False

    async def publish(self, subject: str, data: Dict[str, Any]) -> bool:
        """Publish a raw payload on a subject"""
        return await self.publish_event(
            Event(event_type=subject, source=self.service_name, data=data, subject=subject)
        )

    async def _ensure_stream(self, subject: str):
        prefix = subject.split(".")[0]
        stream_name = f"{prefix}-stream"
        if stream_name in self._known_streams:
            return
        try:
            await self._js.stream_info(stream_name)
        except StreamNotFoundError:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"], max_msgs=100000)
            logger.info(f"Created stream {stream_name}")
        self._known_streams.add(stream_name)

    async def close(self):
        """Drain and close the connection"""
        if self._nc is not None:
            try:
                await self._nc.drain()
            finally:
                self._nc = None
                self._js = None
            logger.info("NATS connection closed")
