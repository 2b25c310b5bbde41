# src/services/recheck_scheduler.py

"""Background recheck loop: fetch, record, alert, retire."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, TypeVar

from src.config.settings import Settings
from src.models.errors import FetchError, NotifyError, PriceTrackerError
from src.models.price_record import RecordOutcome
from src.models.product import ProductSnapshot
from src.models.tracked_item import AlertPayload, TrackedItem
from src.services.notifier import Notifier
from src.services.pacing import PacedGate
from src.storage.price_history_db import PriceHistoryDB
from src.storage.tracked_items_db import TrackedItemRegistry

logger = logging.getLogger("price_tracker.scheduler")

T = TypeVar("T")


class Fetcher(Protocol):
    """Returns the current snapshot of an item.  Raises FetchError."""

    def fetch(self, url: str) -> ProductSnapshot: ...


@dataclass
class TickReport:
    """Counters for one pass over the registry."""

    started_at: datetime
    subscriptions: int = 0
    checked: int = 0
    fetch_failures: int = 0
    recorded: int = 0
    alerts_sent: int = 0
    notify_failures: int = 0
    skipped: int = 0
    errors: int = 0
    interrupted: bool = False


class RecheckScheduler:
    """Periodically rechecks every tracked item, one at a time.

    Only one tick runs at any moment; a tick requested while another is
    in flight is skipped.  Stopping is cooperative: the stop flag is
    checked between items, so an item's record / notify / retire sequence
    always runs to completion.
    """

    def __init__(
        self,
        store: PriceHistoryDB,
        registry: TrackedItemRegistry,
        fetcher: Fetcher,
        notifier: Notifier,
        interval: float | None = None,
        gate: PacedGate | None = None,
        fetch_timeout: float | None = None,
        notify_timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.fetcher = fetcher
        self.notifier = notifier
        self.interval = (
            Settings.RECHECK_INTERVAL_SECONDS if interval is None else interval
        )
        self.gate = gate or PacedGate(Settings.ITEM_DELAY_SECONDS)
        self.fetch_timeout = (
            Settings.FETCH_TIMEOUT if fetch_timeout is None else fetch_timeout
        )
        self.notify_timeout = (
            Settings.NOTIFY_TIMEOUT
            if notify_timeout is None
            else notify_timeout
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tick_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # ── Lifecycle ────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Launch the periodic loop as a background task."""
        if self.running:
            logger.warning("Scheduler already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever())
        logger.info(
            "Recheck scheduler started (every %.0fs)", self.interval,
        )

    def request_stop(self) -> None:
        """Ask the loop to exit after the current item."""
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop the loop and wait for the in-flight item to finish."""
        self.request_stop()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Recheck scheduler stopped")

    async def wait(self) -> None:
        """Wait for the background loop to exit."""
        if self._task is not None:
            await self._task

    async def run_forever(self) -> None:
        """Tick, then sleep for the interval, until asked to stop."""
        while not self._stop_event.is_set():
            try:
                await self.run_tick()
            except Exception as exc:
                logger.error("Scheduler tick crashed: %s", exc, exc_info=True)
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval,
                )
            except TimeoutError:
                pass

    # ── Ticks ────────────────────────────────────────────

    async def run_tick(self) -> TickReport | None:
        """Recheck every subscription once.

        Returns None without doing anything if a tick is already running.
        """
        if self._tick_lock.locked():
            logger.warning("Previous tick still running, skipping this one")
            return None
        async with self._tick_lock:
            report = TickReport(started_at=self._clock())
            items = await asyncio.to_thread(self.registry.list_all)
            report.subscriptions = len(items)
            logger.info("Tick started: %d subscriptions", len(items))

            for item in items:
                if self._stop_event.is_set():
                    report.interrupted = True
                    logger.info("Stop requested, ending tick early")
                    break
                try:
                    await self._process_item(item, report)
                except Exception as exc:
                    report.errors += 1
                    logger.error(
                        "Unexpected error checking %s for %s: %s",
                        item.item_id,
                        item.owner_id,
                        exc,
                        exc_info=True,
                    )

            logger.info(
                "Tick finished: checked=%d recorded=%d alerts=%d "
                "fetch_failures=%d notify_failures=%d skipped=%d",
                report.checked,
                report.recorded,
                report.alerts_sent,
                report.fetch_failures,
                report.notify_failures,
                report.skipped,
            )
            return report

    async def _process_item(
        self, item: TrackedItem, report: TickReport,
    ) -> None:
        """Fetch, record and possibly alert for one subscription."""
        current = await asyncio.to_thread(
            self.registry.get, item.owner_id, item.item_id,
        )
        if current is None:
            report.skipped += 1
            logger.debug(
                "%s / %s unsubscribed mid-tick", item.owner_id, item.item_id,
            )
            return

        await self.gate.wait()
        snapshot = await self._fetch(current.item_id)
        if snapshot is None:
            report.fetch_failures += 1
            return
        report.checked += 1

        if snapshot.price <= 0:
            logger.warning(
                "Ignoring non-positive price %s for %s",
                snapshot.price,
                current.item_id,
            )
            return

        try:
            outcome = await asyncio.to_thread(
                self.store.record,
                current.item_id,
                snapshot.title,
                snapshot.price,
                snapshot.currency,
                self._clock(),
            )
            if outcome is RecordOutcome.RECORDED:
                report.recorded += 1
        except PriceTrackerError as exc:
            logger.error(
                "Could not record price for %s: %s", current.item_id, exc,
            )

        if snapshot.price > current.target_price:
            logger.debug(
                "%s at %s, target %s not reached",
                current.item_id,
                snapshot.price,
                current.target_price,
            )
            return

        payload = AlertPayload(
            title=snapshot.title,
            price=snapshot.price,
            target_price=current.target_price,
            item_id=current.item_id,
            currency=snapshot.currency,
        )
        if not await self._notify(current, payload):
            report.notify_failures += 1
            return
        report.alerts_sent += 1
        await asyncio.to_thread(self.registry.retire, current)

    async def _run_bounded(
        self, timeout: float, func: Callable[..., T], *args: Any,
    ) -> tuple["asyncio.Future[T]", bool]:
        """Run *func* on a worker thread and wait until that thread returns.

        The flag is True when *timeout* elapsed first.  An overrunning
        worker is still awaited, so the next upstream call never overlaps
        it.
        """
        worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
        done, _ = await asyncio.wait({worker}, timeout=timeout)
        if done:
            return worker, False
        await asyncio.wait({worker})
        return worker, True

    async def _fetch(self, item_id: str) -> ProductSnapshot | None:
        worker, timed_out = await self._run_bounded(
            self.fetch_timeout, self.fetcher.fetch, item_id,
        )
        error = worker.exception()
        if timed_out:
            logger.warning(
                "Fetch for %s exceeded %.1fs, counted as failed (%s)",
                item_id,
                self.fetch_timeout,
                error or "late result discarded",
            )
            return None
        if isinstance(error, FetchError):
            logger.warning("Fetch for %s failed: %s", item_id, error)
            return None
        return worker.result()

    async def _notify(
        self, item: TrackedItem, payload: AlertPayload,
    ) -> bool:
        worker, timed_out = await self._run_bounded(
            self.notify_timeout,
            self.notifier.notify,
            item.destination_id,
            item.owner_id,
            payload,
        )
        error = worker.exception()
        if error is None:
            if timed_out:
                logger.warning(
                    "Alert for %s to %s acknowledged after %.1fs",
                    item.item_id,
                    item.destination_id,
                    self.notify_timeout,
                )
            return True
        if not isinstance(error, NotifyError):
            raise error
        logger.warning(
            "Alert for %s to %s failed, will retry next tick: %s",
            item.item_id,
            item.destination_id,
            error,
        )
        return False
