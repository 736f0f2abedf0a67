"""Notification scheduler driving periodic subscription updates"""
import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from .dispatcher import Dispatcher
from .formatter import payload_hash, render_update
from .scoreboard_gateway import ScoreboardGateway
from .tick_cache import TickCache
from ..errors import DeliveryFailed, UpstreamUnavailable
from ..storage.models import EntitySnapshot, Subscriber, TickReport
from ..storage.subscription_store import SubscriptionStore
from ..utils.logger import setup_logger
from ..utils.timezone import now_utc

logger = setup_logger(__name__)


class NotificationService:
    """
    Single global loop that sends score updates to due subscribers

    There are no per-subscriber timers: every tick asks the store which
    subscribers are due, fetches each watched team once, and dispatches
    what changed.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        gateway: ScoreboardGateway,
        dispatcher: Dispatcher,
        tick_interval: float = 60,
        http_timeout: float = 10.0
    ):
        """
        Initialize notification service

        Args:
            store: Subscription store
            gateway: Scoreboard gateway
            dispatcher: Delivery policy wrapping the messaging transport
            tick_interval: Seconds between evaluation passes
            http_timeout: Seconds to wait for an upstream call
        """
        self.store = store
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.tick_interval = tick_interval
        self.http_timeout = http_timeout
        self.running = False
        self._stop_requested = False
        self._wakeup = asyncio.Event()
        self._current_tick: Optional[asyncio.Task] = None

    async def start(self):
        """Run ticks until stop() is called, even if stop() came first"""
        if self._stop_requested:
            logger.info("Notification service stopped before it started")
            return
        self.running = True
        logger.info(f"Starting notification service (tick every {self.tick_interval}s)")

        try:
            while not self._stop_requested:
                self._current_tick = asyncio.ensure_future(self.run_tick(now_utc()))
                try:
                    await asyncio.shield(self._current_tick)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error in notification loop: {e}", exc_info=True)
                finally:
                    self._current_tick = None

                if self._stop_requested:
                    break
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=self.tick_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.running = False
            logger.info("Notification service stopped")

    async def stop(self):
        """Stop the loop, letting an in-flight tick finish first"""
        logger.info("Stopping notification service")
        self._stop_requested = True
        self._wakeup.set()
        tick = self._current_tick
        if tick is not None and not tick.done():
            logger.info("Waiting for in-flight tick to finish")
            await asyncio.wait([tick])

    async def run_tick(self, now: datetime) -> TickReport:
        """
        Evaluate every due subscriber once

        Args:
            now: Wall-clock instant of this tick (naive UTC)

        Returns:
            Summary of what happened in this tick
        """
        report = TickReport(started_at=now)
        due: List[Subscriber] = list(self.store.due_subscribers(now))
        report.due = [s.subscriber_id for s in due]
        if not due:
            logger.debug("No subscribers due this tick")
            return report

        cache = TickCache(self.gateway, timeout=self.http_timeout)
        try:
            snapshots = await self._fetch_entities(cache, due)
            report.fetched_entities = len(snapshots)

            outcomes = await asyncio.gather(
                *(self._process_subscriber(s, snapshots, now) for s in due),
                return_exceptions=True
            )
        finally:
            cache.close()

        for subscriber, outcome in zip(due, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"Unexpected error processing subscriber {subscriber.subscriber_id}: {outcome}"
                )
                report.failed += 1
            elif outcome == "dispatched":
                report.dispatched += 1
            elif outcome == "suppressed":
                report.suppressed += 1
            elif outcome == "failed":
                report.failed += 1
            else:
                report.skipped += 1

        logger.info(
            f"Tick complete: {len(due)} due, {report.dispatched} sent, "
            f"{report.suppressed} unchanged, {report.failed} failed, {report.skipped} skipped"
        )
        return report

    async def _fetch_entities(
        self,
        cache: TickCache,
        due: List[Subscriber]
    ) -> Dict[str, Optional[EntitySnapshot]]:
        """
        Fetch the union of watched teams, each at most once

        Returns:
            Results by entity; teams that failed to fetch are absent
        """
        entities = sorted(set().union(*(s.watched_entities for s in due)))
        results = await asyncio.gather(
            *(cache.fetch_team(entity) for entity in entities),
            return_exceptions=True
        )

        snapshots: Dict[str, Optional[EntitySnapshot]] = {}
        for entity, result in zip(entities, results):
            if isinstance(result, UpstreamUnavailable):
                logger.warning(f"No data for {entity} this tick: {result}")
            elif isinstance(result, BaseException):
                logger.error(f"Unexpected error fetching {entity}: {result}")
            else:
                snapshots[entity] = result
        return snapshots

    async def _process_subscriber(
        self,
        subscriber: Subscriber,
        snapshots: Dict[str, Optional[EntitySnapshot]],
        now: datetime
    ) -> str:
        """Render, dedupe, dispatch and record for one subscriber"""
        subscriber_id = subscriber.subscriber_id
        if not any(entity in snapshots for entity in subscriber.watched_entities):
            logger.info(f"Skipping {subscriber_id}: none of its teams could be fetched")
            return "skipped"

        payload = render_update(subscriber.watched_entities, snapshots)
        digest = payload_hash(payload)

        if digest == subscriber.last_payload_hash:
            logger.debug(f"Update for {subscriber_id} unchanged, not sending")
            self.store.record_delivery(subscriber_id, digest, now)
            return "suppressed"

        try:
            await self.dispatcher.send(subscriber_id, payload)
        except DeliveryFailed as e:
            logger.warning(f"{e}; will retry next tick")
            return "failed"

        self.store.record_delivery(subscriber_id, digest, now)
        return "dispatched"
