"""Refresh Scheduler - rate-limited, single-flight snapshot refresh."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ingestion.config import TrackerConfig, DEFAULT_CONFIG
from ingestion.fetcher import FetchResult, HolderFetcher
from logic.errors import RateLimitRejection
from logic.ledger import Ledger, ReconcileResult

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    """Result of one completed refresh."""

    fetch: FetchResult
    reconcile: Optional[ReconcileResult] = None

    @property
    def holders_count(self) -> int:
        return len(self.fetch.holders)


class RefreshScheduler:
    """
    Drives the fetcher on a timer or on an explicit operator trigger.

    - A scheduled tick inside the refresh interval is skipped silently.
    - An explicit trigger for the tracked asset inside the interval is
      rejected with RateLimitRejection carrying the remaining wait.
    - Only one refresh runs at a time; a second request while one is in
      flight is skipped (tick) or rejected (trigger).
    - Every successful explicit trigger re-arms the periodic timer, cancelling
      the previous one, so exactly one timer is ever live.
    """

    def __init__(
        self,
        fetcher: HolderFetcher,
        ledger: Ledger,
        config: TrackerConfig = DEFAULT_CONFIG,
        on_refresh: Optional[Callable[[RefreshOutcome], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the scheduler.

        Args:
            fetcher: Holder fetcher (provider fallback chain)
            ledger: Ledger receiving reconciled snapshots
            config: Tracker configuration (refresh interval)
            on_refresh: Called synchronously after each completed refresh
            clock: Monotonic clock used for the rate gate
            wall_clock: Epoch clock used for ``next_refresh_ms``
        """
        self.fetcher = fetcher
        self.ledger = ledger
        self.config = config
        self.on_refresh = on_refresh
        self.clock = clock
        self.wall_clock = wall_clock

        self.tracked_mint: Optional[str] = config.token_mint
        self.requested_address: Optional[str] = None
        self.last_refresh: Optional[float] = None
        self.last_refresh_wall: Optional[float] = None

        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._refresh_count = 0

    @property
    def interval(self) -> float:
        return self.config.refresh_interval_seconds

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def seconds_until_allowed(self) -> float:
        """Remaining rate-limit wait, 0 when a refresh is allowed."""
        if self.last_refresh is None:
            return 0.0
        elapsed = self.clock() - self.last_refresh
        return min(self.interval, max(0.0, self.interval - elapsed))

    def next_refresh_ms(self) -> Optional[int]:
        if self.last_refresh_wall is None:
            return None
        return int((self.last_refresh_wall + self.interval) * 1000)

    def _is_tracked(self, address: str) -> bool:
        return address in (self.tracked_mint, self.requested_address)

    async def trigger(self, address: str) -> RefreshOutcome:
        """
        Explicit (operator) refresh.

        Raises:
            RateLimitRejection: refresh in flight, or same asset refreshed
                less than one interval ago
        """
        wait = self.seconds_until_allowed()
        if self.in_flight:
            raise RateLimitRejection(
                wait,
                self.next_refresh_ms(),
                reason="A holder refresh is already in progress",
            )
        if self._is_tracked(address) and wait > 0:
            raise RateLimitRejection(wait, self.next_refresh_ms())

        outcome = await self._refresh(address)
        self.requested_address = address
        self.arm()
        return outcome

    async def tick(self) -> Optional[RefreshOutcome]:
        """Scheduled refresh; silently skipped when not due."""
        if not self.tracked_mint:
            return None
        if self.in_flight:
            logger.debug("Skipping refresh, one is already running")
            return None
        if self.seconds_until_allowed() > 0:
            elapsed = self.clock() - self.last_refresh
            logger.info(f"⏳ Skipping refresh, last was {round(elapsed)}s ago")
            return None

        logger.info("🔄 Auto-refreshing holder data...")
        try:
            outcome = await self._refresh(self.tracked_mint)
        except Exception as e:
            logger.error(f"Auto-refresh error: {e}")
            return None
        logger.info(f"✅ Auto-refresh complete: {outcome.holders_count} holders")
        return outcome

    async def _refresh(self, address: str) -> RefreshOutcome:
        async with self._lock:
            result = await self.fetcher.fetch_holders(address)

            reconcile = None
            if not result.is_empty:
                reconcile = self.ledger.reconcile(result.holders)
            else:
                logger.warning(f"⚠️ No holders found for {result.token_mint}; ledger left unchanged")

            self.tracked_mint = result.token_mint
            self.last_refresh = self.clock()
            self.last_refresh_wall = self.wall_clock()
            self._refresh_count += 1

            outcome = RefreshOutcome(fetch=result, reconcile=reconcile)
            if self.on_refresh:
                try:
                    self.on_refresh(outcome)
                except Exception as e:
                    logger.error(f"Refresh callback failed: {e}")
            return outcome

    def arm(self) -> None:
        """(Re)start the periodic timer, cancelling any previous one."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._run_periodic())
        logger.info(f"⏰ Auto-refresh started (every {self.interval / 60:g} minutes)")

    async def _run_periodic(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Refresh timer error: {e}")

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

    def stats(self) -> dict:
        return {
            "tracked_mint": self.tracked_mint,
            "refresh_count": self._refresh_count,
            "in_flight": self.in_flight,
            "seconds_until_allowed": round(self.seconds_until_allowed(), 1),
            "next_refresh": self.next_refresh_ms(),
            "timer_active": self.timer_active,
        }
