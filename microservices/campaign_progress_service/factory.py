"""
Campaign Progress Service Factory

Factory for creating campaign progress service instances with proper
dependency injection.
"""

import logging
from typing import List, Optional

from core.config_manager import ConfigManager
from core.nats_client import NATSEventBus

from .events.handlers import ProgressEventHandler
from .events.models import CampaignProgressStreamConfig
from .events.publishers import ProgressEventPublisher
from .progress_repository import CampaignProgressRepository
from .progress_service import CampaignProgressService
from .protocols import EventBusProtocol, ProgressRepositoryProtocol

logger = logging.getLogger(__name__)


class CampaignProgressServiceFactory:
    """Factory for creating campaign progress service components"""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        repository: Optional[ProgressRepositoryProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        self.config = config or ConfigManager("campaign_progress_service")
        self._repository = repository
        self._nats_client = event_bus
        self._service: Optional[CampaignProgressService] = None
        self._event_handler: Optional[ProgressEventHandler] = None
        self._event_publisher: Optional[ProgressEventPublisher] = None
        self._unsubscribe_publisher = None
        self._subscribed_patterns: List[str] = []

    async def initialize(self) -> None:
        """Initialize all components"""
        logger.info("Initializing Campaign Progress Service components...")
        settings = self.config.settings

        # Initialize repository
        if self._repository is None:
            self._repository = CampaignProgressRepository(self.config)
        await self._repository.initialize()

        # Initialize NATS client
        if self._nats_client is None and settings.infra.nats_enabled:
            try:
                self._nats_client = NATSEventBus(
                    service_name="campaign_progress_service",
                    config=self.config,
                )
                await self._nats_client.connect()
                logger.info("NATS client connected")
            except Exception as e:
                logger.warning(f"NATS client initialization failed: {e}")
                self._nats_client = None

        # Change feed fed by NATS events
        self._event_handler = ProgressEventHandler()

        # Initialize main service
        self._service = CampaignProgressService(
            repository=self._repository,
            change_feed=self._event_handler,
            config=settings.progress,
        )

        # Fan accepted snapshots out to NATS
        if self._nats_client and settings.progress.publish_events:
            self._event_publisher = ProgressEventPublisher(self._nats_client)
            self._unsubscribe_publisher = self._service.subscribe_all(self._event_publisher.on_snapshot)

        if self._nats_client:
            await self._subscribe_events()

        self._service.start()
        logger.info("Campaign Progress Service components initialized")

    async def _subscribe_events(self) -> None:
        for pattern, handler in self._event_handler.get_event_handler_map().items():
            durable = (
                f"{CampaignProgressStreamConfig.CONSUMER_PREFIX}-"
                f"{pattern.replace('.', '-').replace('*', 'all')}-consumer"
            )
            subscribed = await self._nats_client.subscribe_to_events(
                pattern, handler, durable=durable
            )
            if subscribed:
                self._subscribed_patterns.append(pattern)
            else:
                logger.warning(f"Failed to subscribe to {pattern}")

        logger.info(f"Campaign progress subscriber started ({len(self._subscribed_patterns)} event patterns)")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Campaign Progress Service components...")

        if self._service:
            await self._service.stop()

        if self._unsubscribe_publisher:
            self._unsubscribe_publisher()
            self._unsubscribe_publisher = None

        if self._nats_client:
            await self._nats_client.close()

        if self._repository:
            await self._repository.close()

        logger.info("Campaign Progress Service components closed")

    @property
    def repository(self) -> ProgressRepositoryProtocol:
        """Get progress repository"""
        if not self._repository:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._repository

    @property
    def service(self) -> CampaignProgressService:
        """Get campaign progress service"""
        if not self._service:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._service

    @property
    def nats_client(self) -> Optional[EventBusProtocol]:
        """Get NATS client"""
        return self._nats_client

    @property
    def event_handler(self) -> ProgressEventHandler:
        """Get event handler"""
        if not self._event_handler:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._event_handler

    @property
    def event_publisher(self) -> Optional[ProgressEventPublisher]:
        """Get event publisher"""
        return self._event_publisher

    @property
    def subscribed_patterns(self) -> List[str]:
        return list(self._subscribed_patterns)


__all__ = ["CampaignProgressServiceFactory"]
