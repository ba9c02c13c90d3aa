"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between services

This module wraps a nats-py connection with the event envelope and
stream conventions shared by all services.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union, TYPE_CHECKING

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext

if TYPE_CHECKING:
    from core.config_manager import ConfigManager


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal and datetime types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)

logger = logging.getLogger(__name__)


class ServiceSource(Enum):
    """Service sources"""

    CAMPAIGN_SERVICE = "campaign_service"
    POLICY_SERVICE = "policy_service"
    CAMPAIGN_PROGRESS_SERVICE = "campaign_progress_service"
    GATEWAY = "api_gateway"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: Union[Enum, str],
        source: Union[ServiceSource, str],
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value if isinstance(event_type, Enum) else event_type
        self.source = source.value if isinstance(source, Enum) else source
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


EventHandler = Callable[[Event], Awaitable[None]]


class NATSEventBus:
    """
    NATS JetStream event bus.

    Publishes Event envelopes to per-domain streams and runs push consumers
    that hand decoded events to async handlers.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional["ConfigManager"] = None,
        url: Optional[str] = None,
    ):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as connection name)
            config: Optional ConfigManager instance for service discovery
            url: Explicit server URL, overrides discovery
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        # Priority: explicit url → environment variables → default fallback
        if config is None:
            config = ConfigManager(service_name)

        infra = config.settings.infra
        if url or infra.nats_url:
            self.url = url or infra.nats_url
        else:
            host, port = config.discover_service(
                service_name='nats_service',
                default_host=infra.nats_host,
                default_port=infra.nats_port,
                env_host_key='NATS_HOST',
                env_port_key='NATS_PORT'
            )
            self.url = f"nats://{host}:{port}"

        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._subscriptions: Dict[str, Any] = {}  # pattern -> subscription
        self._known_streams: set = set()
        self._is_connected = False

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=[self.url], name=self.service_name)
            self._js = self._nc.jetstream()
            self._is_connected = True
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to NATS JetStream.

        The stream is derived from the first subject token:
        - campaign.* -> campaign-stream
        - policy.* -> policy-stream
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return False

        try:
            subject = event.type
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()

            stream_name = self._get_stream_name_for_event(event.type)
            await self._ensure_stream(stream_name, event.type.split('.')[0])

            ack = await self._js.publish(subject, data, stream=stream_name)
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    def _get_stream_name_for_event(self, event_type: str) -> str:
        """Determine the JetStream stream name based on event type"""
        prefix = event_type.split('.')[0]
        return f"{prefix}-stream"

    async def _ensure_stream(self, stream_name: str, prefix: str) -> None:
        """Create the stream once per process (idempotent on the server)"""
        if stream_name in self._known_streams:
            return
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"], max_msgs=100000)
        except Exception as e:
            logger.debug(f"Stream creation note: {e}")
        self._known_streams.add(stream_name)

    async def subscribe_to_events(
        self, pattern: str, handler: EventHandler, durable: Optional[str] = None
    ) -> Optional[str]:
        """
        Subscribe to events with a pattern using a JetStream push consumer.

        Args:
            pattern: Subject pattern to subscribe to (e.g., "policy.*")
            handler: Async callback function to handle events
            durable: Optional durable name for the consumer
        """
        if not self._is_connected or not self._js:
            logger.error("Not connected to NATS")
            return None

        try:
            prefix = pattern.split('.')[0]
            stream_name = self._get_stream_name_for_event(prefix)
            await self._ensure_stream(stream_name, prefix)

            async def _on_message(msg):
                try:
                    data = json.loads(msg.data.decode())
                    if 'type' in data and 'source' in data and 'data' in data:
                        event = Event.from_dict(data)
                    else:
                        # Raw payload published without the envelope
                        event = Event.__new__(Event)
                        event.id = str(uuid.uuid4())
                        event.type = msg.subject
                        event.source = 'unknown'
                        event.subject = msg.subject
                        event.timestamp = data.get('timestamp', datetime.now(timezone.utc).isoformat())
                        event.data = data
                        event.metadata = {}
                        event.version = '1.0.0'
                    await handler(event)
                except Exception as msg_e:
                    logger.error(f"Error processing message on {msg.subject}: {msg_e}")

            subscription = await self._js.subscribe(
                pattern, durable=durable, stream=stream_name, cb=_on_message
            )
            self._subscriptions[pattern] = subscription

            logger.info(f"Subscribed to {pattern} (JetStream consumer)")
            return durable or pattern

        except Exception as e:
            logger.error(f"Error subscribing to events: {e}")
            return None

    async def unsubscribe(self, pattern: str) -> bool:
        """Unsubscribe from a pattern"""
        subscription = self._subscriptions.pop(pattern, None)
        if subscription is None:
            return False
        await subscription.unsubscribe()
        logger.info(f"Unsubscribed from {pattern}")
        return True

    async def close(self):
        """Close NATS connection"""
        for pattern in list(self._subscriptions.keys()):
            try:
                await self.unsubscribe(pattern)
            except Exception as e:
                logger.debug(f"Unsubscribe note for {pattern}: {e}")

        if self._nc:
            await self._nc.drain()
            self._nc = None
            self._js = None

        self._is_connected = False
        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._is_connected

