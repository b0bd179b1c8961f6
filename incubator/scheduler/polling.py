"""
Periodic refresh tasks for display consumers.

A consumer owns a refresher for as long as it shows the data. Leaving the
``async with`` block cancels the loop, so nothing is scheduled after
teardown. Calls already dispatched to the connection manager are not
interrupted mid-retry; cancellation lands at the next suspension point.
"""

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from incubator.core.config import Settings, settings as default_settings
from incubator.core.exceptions import SolanaRPCError
from incubator.schemas.snapshots import BalanceSnapshot, LeaderboardSnapshot
from incubator.services.balance_service import BalanceService
from incubator.services.leaderboard_service import LeaderboardService


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RefreshState(Generic[T]):
    """What a consumer needs to tell loading, failed and possibly stale data apart."""
    data: Optional[T] = None
    is_loading: bool = True
    error: Optional[str] = None
    last_updated: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.data is not None


class PeriodicRefresher(Generic[T]):
    """Runs ``fetch`` every ``interval`` seconds while started."""

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        interval: float,
        max_retries: int = 0,
        retry_delay: float = 2.0,
        on_update: Optional[Callable[[RefreshState[T]], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.fetch = fetch
        self.interval = interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_update = on_update
        self.state: RefreshState[T] = RefreshState()
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> RefreshState[T]:
        """
        Fetch once, retrying failures with ``retry_delay * 2^n`` backoff.

        On failure the previous data is kept and ``error`` is set.
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                data = await self.fetch()
            except Exception as e:
                last_error = e
                self.state.error_count += 1
                logger.warning(
                    f"Refresh failed: {self.name}",
                    attempt=attempt + 1,
                    error=str(e),
                    error_count=self.state.error_count
                )
                if attempt < self.max_retries:
                    await self._sleep(self.retry_delay * (2 ** (attempt + 1)))
                continue

            self.state.data = data
            self.state.error = None
            self.state.last_updated = datetime.now(timezone.utc)
            break
        else:
            self.state.error = f"Failed to refresh {self.name}: {last_error}"

        self.state.is_loading = False
        self.state.run_count += 1
        snapshot = replace(self.state)
        if self.on_update:
            self.on_update(snapshot)
        return snapshot

    async def _run(self) -> None:
        logger.info(f"Starting refresher: {self.name}", interval=self.interval)
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Refresher loop error: {self.name}", error=str(e))
            await self._sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"refresh:{self.name}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Refresher stopped: {self.name}", run_count=self.state.run_count)

    async def __aenter__(self) -> "PeriodicRefresher[T]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


def balance_refresher(
    service: BalanceService,
    address: str,
    config: Optional[Settings] = None,
    on_update: Optional[Callable[[RefreshState[BalanceSnapshot]], None]] = None,
) -> PeriodicRefresher[BalanceSnapshot]:
    """Refresher polling ``address``'s balance at the configured interval."""
    config = config or default_settings
    return PeriodicRefresher(
        name=f"balance:{address}",
        fetch=lambda: service.get_balance(address),
        interval=config.balance_poll_interval,
        on_update=on_update,
    )


def leaderboard_refresher(
    service: LeaderboardService,
    limit: Optional[int] = None,
    config: Optional[Settings] = None,
    on_update: Optional[Callable[[RefreshState[LeaderboardSnapshot]], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> PeriodicRefresher[LeaderboardSnapshot]:
    """
    Refresher polling the leaderboard with consumer-level retries.

    A scan that fell back to cached or empty results counts as a failed
    refresh, so it is retried and never replaces data already shown.
    """
    config = config or default_settings

    async def fetch() -> LeaderboardSnapshot:
        snapshot = await service.get_leaderboard(limit)
        if not snapshot.success:
            raise SolanaRPCError("Leaderboard scan failed", {"is_stale": snapshot.is_stale})
        return snapshot

    return PeriodicRefresher(
        name="leaderboard",
        fetch=fetch,
        interval=config.leaderboard_poll_interval,
        max_retries=config.leaderboard_poll_retries,
        retry_delay=config.leaderboard_poll_retry_delay,
        on_update=on_update,
        sleep=sleep,
    )
