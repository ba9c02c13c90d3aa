"""
Change Coordinator

Keeps subscribers' view of each campaign's progress eventually consistent
with the least recomputation work.

Per campaign:
- at most one computation in flight (single-flight driver task)
- at most one queued rerun; bursts of change events coalesce into it
- a monotonic generation counter shared by pushes and on-demand pulls
- a publish lock that orders acceptance; snapshots older than the last
  published generation are dropped
- a FIFO delivery queue drained by one caller at a time, so subscribers see
  snapshots in generation order and may pull the same campaign themselves

State transitions only happen in synchronous code between awaits, so the
event loop serialises them.
"""

import asyncio
import inspect
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from .models import ChangeEvent, ChangeTopic, CoordinatorState, ProgressSnapshot
from .progress_calculator import ProgressCalculator
from .protocols import (
    ChangeFeedProtocol,
    ProgressRepositoryProtocol,
    SnapshotCallback,
    Unsubscribe,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)


class _CampaignSlot:
    """Coordinator-owned state for one campaign"""

    def __init__(self):
        self.state = CoordinatorState.IDLE
        self.generation = 0
        self.published_generation = 0
        self.last_snapshot: Optional[ProgressSnapshot] = None
        self.last_error: Optional[str] = None
        self.publish_lock = asyncio.Lock()
        self.task: Optional[asyncio.Task] = None
        self.subscribers: Tuple[SnapshotCallback, ...] = ()
        self.deliveries: Deque[Tuple[ProgressSnapshot, Tuple[SnapshotCallback, ...]]] = deque()
        self.delivering = False

    @property
    def has_live_driver(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def is_unused(self) -> bool:
        return (
            self.state == CoordinatorState.IDLE
            and not self.has_live_driver
            and not self.subscribers
            and not self.deliveries
            and not self.delivering
        )


def _without(callbacks: Tuple[SnapshotCallback, ...], callback: SnapshotCallback) -> Tuple[SnapshotCallback, ...]:
    """Copy of ``callbacks`` with the first occurrence of ``callback`` removed"""
    for index, existing in enumerate(callbacks):
        if existing is callback:
            return callbacks[:index] + callbacks[index + 1:]
    return callbacks


class ChangeCoordinator:
    """Single-flight recomputation and ordered fan-out of progress snapshots"""

    def __init__(
        self,
        calculator: ProgressCalculator,
        repository: ProgressRepositoryProtocol,
        change_feed: Optional[ChangeFeedProtocol] = None,
    ):
        self.calculator = calculator
        self.repository = repository
        self.change_feed = change_feed
        self._slots: Dict[str, _CampaignSlot] = {}
        self._listeners: Tuple[SnapshotCallback, ...] = ()
        self._feed_unsubscribes: List[Unsubscribe] = []

    # ====================
    # Lifecycle
    # ====================

    def start(self) -> None:
        """Subscribe to the three change topics"""
        if self._feed_unsubscribes:
            return
        if self.change_feed is None:
            logger.warning("No change feed configured, coordinator will only serve pulls")
            return
        for topic in ChangeTopic:
            self._feed_unsubscribes.append(
                self.change_feed.subscribe_changes(topic, self._on_change)
            )
        logger.info("Change coordinator subscribed to campaign, link and transaction changes")

    async def stop(self) -> None:
        """Unsubscribe from the feed and cancel running drivers"""
        for unsubscribe in self._feed_unsubscribes:
            unsubscribe()
        self._feed_unsubscribes = []

        tasks = [slot.task for slot in self._slots.values() if slot.has_live_driver]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Change coordinator stopped")

    async def drain(self) -> None:
        """Wait until no driver task is running"""
        while True:
            tasks = [slot.task for slot in self._slots.values() if slot.has_live_driver]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # ====================
    # Change intake
    # ====================

    async def _on_change(self, event: ChangeEvent) -> None:
        if event.topic == ChangeTopic.TRANSACTIONS:
            campaign_ids = {event.campaign_id} if event.campaign_id else set()
            if event.transaction_id:
                try:
                    campaign_ids.update(
                        await self.repository.list_campaign_ids_for_transaction(event.transaction_id)
                    )
                except UpstreamUnavailableError as e:
                    logger.warning(
                        f"Could not resolve campaigns for transaction {event.transaction_id}: {e.message}"
                    )
            if not campaign_ids:
                logger.debug(f"Transaction change {event.action} affects no campaign")
            for campaign_id in sorted(campaign_ids):
                self.notify(campaign_id)
            return

        if not event.campaign_id:
            logger.debug(f"Ignoring {event.topic.value} change without campaign_id")
            return
        self.notify(event.campaign_id)

    def notify(self, campaign_id: str) -> None:
        """Record that a campaign's inputs changed"""
        slot = self._slot(campaign_id)

        if slot.state == CoordinatorState.IDLE:
            slot.state = CoordinatorState.SCHEDULED
            self._start_driver(campaign_id, slot)
        elif slot.state == CoordinatorState.COMPUTING:
            # The running driver picks this up when its computation finishes
            slot.state = CoordinatorState.SCHEDULED
            if not slot.has_live_driver:
                self._start_driver(campaign_id, slot)
        elif not slot.has_live_driver:
            # Left scheduled by an upstream failure
            self._start_driver(campaign_id, slot)
        else:
            logger.debug(f"Campaign {campaign_id} already scheduled, coalescing")

    def retry(self, campaign_id: Optional[str] = None) -> int:
        """
        Restart stalled campaigns (scheduled with no driver).

        Returns the number of drivers started.
        """
        if campaign_id is not None:
            items = [(campaign_id, self._slots[campaign_id])] if campaign_id in self._slots else []
        else:
            items = list(self._slots.items())

        started = 0
        for key, slot in items:
            if slot.state == CoordinatorState.SCHEDULED and not slot.has_live_driver:
                self._start_driver(key, slot)
                started += 1
        return started

    def _start_driver(self, campaign_id: str, slot: _CampaignSlot) -> None:
        slot.task = asyncio.create_task(
            self._drive(campaign_id, slot), name=f"progress:{campaign_id}"
        )

    async def _drive(self, campaign_id: str, slot: _CampaignSlot) -> None:
        not_found = False
        try:
            while slot.state == CoordinatorState.SCHEDULED:
                slot.state = CoordinatorState.COMPUTING
                generation = self.next_generation(campaign_id)

                try:
                    snapshot = await self.calculator.compute(campaign_id, generation)
                    not_found = snapshot is None
                    if not_found:
                        logger.info(f"Campaign {campaign_id} not found or inactive, nothing to publish")
                        slot.last_snapshot = None
                    else:
                        await self.offer(snapshot)
                except UpstreamUnavailableError as e:
                    slot.state = CoordinatorState.SCHEDULED
                    slot.last_error = e.message
                    logger.warning(
                        f"Recomputation of {campaign_id} (generation {generation}) failed: {e.message}; "
                        f"left scheduled until the next change or retry"
                    )
                    return
                except Exception as e:
                    slot.state = CoordinatorState.SCHEDULED
                    slot.last_error = str(e)
                    logger.error(f"Unexpected error recomputing {campaign_id}: {e}", exc_info=True)
                    return

                slot.last_error = None
                if slot.state == CoordinatorState.COMPUTING:
                    slot.state = CoordinatorState.IDLE
        finally:
            # Cancelled mid-computation: the change is still owed
            if slot.state == CoordinatorState.COMPUTING:
                slot.state = CoordinatorState.SCHEDULED
            if slot.task is asyncio.current_task():
                slot.task = None
            if not_found:
                self.forget(campaign_id)

    # ====================
    # Publication
    # ====================

    def next_generation(self, campaign_id: str) -> int:
        """Reserve the next generation number for a computation"""
        slot = self._slot(campaign_id)
        slot.generation += 1
        return slot.generation

    async def offer(self, snapshot: ProgressSnapshot) -> bool:
        """
        Offer a computed snapshot for publication.

        Acceptance happens under the campaign's publish lock; delivery to
        subscribers happens after the lock is released, in acceptance order.

        Returns:
            True when the snapshot was accepted

        Raises:
            UpstreamUnavailableError: the pre-publish active check failed
        """
        campaign_id = snapshot.campaign_id
        slot = self._slot(campaign_id)

        async with slot.publish_lock:
            if snapshot.generation <= slot.published_generation:
                logger.debug(
                    f"Discarding stale snapshot for {campaign_id}: generation {snapshot.generation} "
                    f"<= published {slot.published_generation}"
                )
                return False

            campaign = await self.repository.get_campaign(campaign_id)
            if campaign is None or not campaign.is_active:
                logger.info(
                    f"Discarding snapshot for {campaign_id} (generation {snapshot.generation}): "
                    f"campaign no longer active"
                )
                slot.last_snapshot = None
                return False

            slot.published_generation = snapshot.generation
            slot.last_snapshot = snapshot
            slot.deliveries.append((snapshot, slot.subscribers + self._listeners))

        logger.debug(f"Published snapshot for {campaign_id} generation {snapshot.generation}")
        await self._pump(slot)
        return True

    async def _pump(self, slot: _CampaignSlot) -> None:
        # Whoever is already pumping delivers what was queued behind it
        if slot.delivering:
            return
        slot.delivering = True
        try:
            while slot.deliveries:
                snapshot, callbacks = slot.deliveries.popleft()
                for callback in callbacks:
                    await self._deliver(callback, snapshot)
        finally:
            slot.delivering = False

    async def _deliver(self, callback: SnapshotCallback, snapshot: ProgressSnapshot) -> None:
        try:
            result = callback(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Snapshot subscriber failed for campaign {snapshot.campaign_id}: {e}",
                exc_info=True,
            )

    # ====================
    # Subscriptions
    # ====================

    def subscribe(self, campaign_id: str, callback: SnapshotCallback) -> Unsubscribe:
        """Receive every accepted snapshot of one campaign"""
        slot = self._slot(campaign_id)
        slot.subscribers = slot.subscribers + (callback,)

        def unsubscribe() -> None:
            slot.subscribers = _without(slot.subscribers, callback)

        return unsubscribe

    def subscribe_all(self, callback: SnapshotCallback) -> Unsubscribe:
        """Receive every accepted snapshot of every campaign"""
        self._listeners = self._listeners + (callback,)

        def unsubscribe() -> None:
            self._listeners = _without(self._listeners, callback)

        return unsubscribe

    # ====================
    # Introspection
    # ====================

    def is_tracked(self, campaign_id: str) -> bool:
        return campaign_id in self._slots

    def latest_snapshot(self, campaign_id: str) -> Optional[ProgressSnapshot]:
        slot = self._slots.get(campaign_id)
        return slot.last_snapshot if slot else None

    def state_of(self, campaign_id: str) -> CoordinatorState:
        slot = self._slots.get(campaign_id)
        return slot.state if slot else CoordinatorState.IDLE

    def published_generation(self, campaign_id: str) -> int:
        slot = self._slots.get(campaign_id)
        return slot.published_generation if slot else 0

    def last_error(self, campaign_id: str) -> Optional[str]:
        slot = self._slots.get(campaign_id)
        return slot.last_error if slot else None

    def forget(self, campaign_id: str) -> bool:
        """
        Drop a campaign's slot once nothing references it.

        Called when the campaign turns out to be missing or inactive, so
        lookups of unknown ids leave no state behind.
        """
        slot = self._slots.get(campaign_id)
        if slot is None:
            return False
        slot.last_snapshot = None
        if not slot.is_unused:
            return False
        del self._slots[campaign_id]
        return True

    def _slot(self, campaign_id: str) -> _CampaignSlot:
        slot = self._slots.get(campaign_id)
        if slot is None:
            slot = _CampaignSlot()
            self._slots[campaign_id] = slot
        return slot


__all__ = ["ChangeCoordinator"]
