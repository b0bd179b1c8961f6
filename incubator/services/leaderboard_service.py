"""
Depositor leaderboard reconstructed from the campaign wallet's history.

A scan walks the most recent signatures touching the campaign wallet in
small concurrent batches, fetches each parsed transaction with its own retry
budget and folds positive token balance deltas into per-sender totals.

Attribution goes to the first signer that is not the campaign wallet. This
assumes one sender per transaction; relayed or multi-signer transfers may be
credited to the fee payer instead of the actual owner.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import structlog
from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey
from solders.signature import Signature

from incubator.core.config import Settings, SolanaConfig, settings as default_settings
from incubator.schemas.snapshots import DepositorEntry, LeaderboardSnapshot
from incubator.services.connection_manager import ConnectionManager
from incubator.utils.amounts import scale_amount


logger = structlog.get_logger(__name__)


@dataclass
class Depositor:
    """Running deposit total of one sender."""
    address: str
    amount: Decimal = Decimal(0)
    last_deposit_time: int = 0  # unix seconds, 0 when unknown

    def add_deposit(self, amount: Decimal, block_time: Optional[int]) -> None:
        self.amount += amount
        self.last_deposit_time = max(self.last_deposit_time, block_time or 0)

    def to_entry(self) -> DepositorEntry:
        last_deposit = None
        if self.last_deposit_time:
            last_deposit = datetime.fromtimestamp(self.last_deposit_time, tz=timezone.utc)
        return DepositorEntry(
            address=self.address,
            amount=self.amount,
            last_deposit_time=last_deposit
        )


def rank_depositors(depositors: Iterable[Depositor]) -> List[Depositor]:
    """Highest total first; ties go to the most recent depositor."""
    return sorted(
        depositors,
        key=lambda d: (d.amount, d.last_deposit_time),
        reverse=True
    )


@dataclass
class LeaderboardCache:
    ranked: Tuple[DepositorEntry, ...]
    fetched_at: float
    as_of: datetime


class LeaderboardService:
    """Top depositors into the campaign wallet, cached between scans."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.connection_manager = connection_manager
        self.settings = config or default_settings
        self.target = Pubkey.from_string(self.settings.incubator_wallet)
        self.mint = Pubkey.from_string(self.settings.token_mint)
        self.commitment = SolanaConfig.get_commitment(self.settings)
        self.logger = logger.bind(service="leaderboard_service")
        self._clock = clock
        self._sleep = sleep
        self._cache: Optional[LeaderboardCache] = None
        self._scan_lock = asyncio.Lock()

    async def get_top_depositors(self, limit: Optional[int] = None) -> List[DepositorEntry]:
        """Ranked depositors, best-effort: never raises for upstream failures."""
        snapshot = await self.get_leaderboard(limit)
        return snapshot.entries

    async def get_leaderboard(self, limit: Optional[int] = None) -> LeaderboardSnapshot:
        """
        Ranked depositors with freshness metadata.

        Serves the cache while it is younger than the configured TTL,
        otherwise rescans. A failed scan falls back to the previous ranking
        (marked stale) or to an empty snapshot.
        """
        if limit is None:
            limit = self.settings.leaderboard_default_limit
        if limit <= 0:
            return LeaderboardSnapshot(as_of=datetime.now(timezone.utc))

        cached = self._fresh_cache()
        if cached:
            return self._slice(cached, limit)

        async with self._scan_lock:
            # Another caller may have finished a scan while we waited.
            cached = self._fresh_cache()
            if cached:
                return self._slice(cached, limit)

            try:
                ranked = await self.connection_manager.execute_with_retry(self.scan)
            except Exception as e:
                self.logger.error("Leaderboard scan failed", error=str(e), error_type=type(e).__name__)
                if self._cache:
                    return self._slice(self._cache, limit, is_stale=True, success=False)
                return LeaderboardSnapshot.empty()

            self._cache = LeaderboardCache(
                ranked=tuple(depositor.to_entry() for depositor in ranked),
                fetched_at=self._clock(),
                as_of=datetime.now(timezone.utc)
            )
            self.logger.info("Leaderboard refreshed", depositors=len(ranked))
            return self._slice(self._cache, limit)

    def invalidate(self) -> None:
        self._cache = None

    def _fresh_cache(self) -> Optional[LeaderboardCache]:
        if self._cache and self._clock() - self._cache.fetched_at < self.settings.leaderboard_cache_ttl:
            return self._cache
        return None

    @staticmethod
    def _slice(
        cache: LeaderboardCache,
        limit: int,
        is_stale: bool = False,
        success: bool = True
    ) -> LeaderboardSnapshot:
        return LeaderboardSnapshot(
            entries=list(cache.ranked[:limit]),
            as_of=cache.as_of,
            is_stale=is_stale,
            success=success
        )

    async def scan(self, client: AsyncClient) -> List[Depositor]:
        """Full history scan against one verified client."""
        response = await client.get_signatures_for_address(
            self.target,
            limit=self.settings.leaderboard_signature_limit,
            commitment=self.commitment
        )
        signatures = response.value
        batch_size = self.settings.leaderboard_batch_size
        depositors: Dict[str, Depositor] = {}
        skipped = 0

        self.logger.info("Scanning campaign history", signatures=len(signatures))

        for start in range(0, len(signatures), batch_size):
            batch = signatures[start:start + batch_size]
            transactions = await asyncio.gather(*(
                self.fetch_transaction_with_retry(client, sig_info.signature)
                for sig_info in batch
            ))

            for sig_info, tx in zip(batch, transactions):
                if tx is None:
                    skipped += 1
                    continue
                deposit = self.extract_deposit(tx)
                if deposit is None:
                    continue
                sender, amount = deposit
                block_time = sig_info.block_time or tx.block_time
                depositors.setdefault(sender, Depositor(address=sender)).add_deposit(amount, block_time)

            if start + batch_size < len(signatures):
                await self._sleep(self.settings.leaderboard_batch_delay)

        if skipped:
            self.logger.warning("Skipped unfetchable transactions", skipped=skipped)

        return rank_depositors(depositors.values())

    async def fetch_transaction_with_retry(self, client: AsyncClient, signature: Signature) -> Optional[Any]:
        """Parsed transaction or None once the attempts are used up."""
        retries = self.settings.transaction_fetch_retries

        for attempt in range(retries):
            try:
                response = await client.get_transaction(
                    signature,
                    encoding="jsonParsed",
                    commitment=self.commitment,
                    max_supported_transaction_version=0
                )
                if response.value is not None:
                    return response.value
            except Exception as e:
                self.logger.debug(
                    "Transaction fetch failed",
                    signature=str(signature),
                    attempt=attempt + 1,
                    error=str(e)
                )

            if attempt < retries - 1:
                await self._sleep(self.settings.transaction_fetch_base_delay * (2 ** attempt))

        self.logger.warning("Giving up on transaction", signature=str(signature), attempts=retries)
        return None

    def extract_deposit(self, tx: Any) -> Optional[Tuple[str, Decimal]]:
        """
        Sender and amount when ``tx`` raised the campaign wallet's token balance.

        ``tx`` is the ``value`` of a jsonParsed ``getTransaction`` response.
        """
        meta = tx.transaction.meta
        if meta is None or meta.err is not None:
            return None

        pre = self._target_balance(meta.pre_token_balances)
        post = self._target_balance(meta.post_token_balances)
        if post <= pre:
            return None

        target = str(self.target)
        for account in tx.transaction.transaction.message.account_keys:
            if account.signer and str(account.pubkey) != target:
                return str(account.pubkey), post - pre
        return None

    def _target_balance(self, balances: Optional[List[Any]]) -> Decimal:
        target = str(self.target)
        mint = str(self.mint)
        for balance in balances or []:
            if balance.owner is not None and str(balance.owner) == target and str(balance.mint) == mint:
                amount = balance.ui_token_amount
                return scale_amount(int(amount.amount), amount.decimals)
        return Decimal(0)
