"""
Token balance lookups with a short-lived per-address cache.

Fresh entries are served without touching the network. When a refresh fails
after the connection manager's retries, the last known value is returned as a
stale snapshot instead of an error.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Optional

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.models import TokenAccountOpts
from solders.pubkey import Pubkey

from incubator.core.config import Settings, SolanaConfig, settings as default_settings
from incubator.schemas.snapshots import BalanceSnapshot
from incubator.services.connection_manager import ConnectionManager
from incubator.utils.amounts import parsed_token_amount
from incubator.utils.validation import parse_pubkey


logger = structlog.get_logger(__name__)


@dataclass
class BalanceCacheEntry:
    """Cached balance of one owner address."""
    address: str
    balance: Decimal
    fetched_at: float
    as_of: datetime

    def to_snapshot(self, is_stale: bool = False) -> BalanceSnapshot:
        return BalanceSnapshot(
            address=self.address,
            amount=self.balance,
            as_of=self.as_of,
            is_stale=is_stale
        )


class BalanceService:
    """Reads the configured token's balance for any owner address."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.connection_manager = connection_manager
        self.settings = config or default_settings
        self.mint = Pubkey.from_string(self.settings.token_mint)
        self.commitment = SolanaConfig.get_commitment(self.settings)
        self.logger = logger.bind(service="balance_service")
        self._clock = clock
        self._cache: Dict[str, BalanceCacheEntry] = {}

    async def get_balance(self, address: str) -> BalanceSnapshot:
        """
        Get the token balance of ``address`` in human-readable units.

        Raises:
            InvalidAddressError: If the address cannot be parsed
            Exception: The fetch error, when no cached value exists
        """
        owner = parse_pubkey(address)
        now = self._clock()

        cached = self._cache.get(address)
        if cached and now - cached.fetched_at < self.settings.balance_cache_ttl:
            return cached.to_snapshot()

        self._sweep_expired(now, keep=address)

        async def query(client: AsyncClient) -> Decimal:
            return await self.fetch_balance(client, owner)

        try:
            balance = await self.connection_manager.execute_with_retry(query)
        except Exception as e:
            cached = self._cache.get(address)
            if cached:
                self.logger.warning(
                    "Balance fetch failed, serving cached value",
                    address=address,
                    cached_age=round(self._clock() - cached.fetched_at, 1),
                    error=str(e)
                )
                return cached.to_snapshot(is_stale=True)
            self.logger.error("Balance fetch failed", address=address, error=str(e))
            raise

        entry = BalanceCacheEntry(
            address=address,
            balance=balance,
            fetched_at=self._clock(),
            as_of=datetime.now(timezone.utc)
        )
        self._cache[address] = entry
        return entry.to_snapshot()

    async def fetch_balance(self, client: AsyncClient, owner: Pubkey) -> Decimal:
        """Sum the owner's token accounts for the configured mint. No accounts means zero."""
        response = await client.get_token_accounts_by_owner_json_parsed(
            owner,
            TokenAccountOpts(mint=self.mint),
            commitment=self.commitment
        )

        total = Decimal(0)
        for keyed_account in response.value:
            parsed = keyed_account.account.data.parsed
            token_amount = parsed.get("info", {}).get("tokenAmount")
            total += parsed_token_amount(token_amount, self.settings.token_decimals)
        return total

    def get_cached_balance(self, address: str) -> Optional[BalanceSnapshot]:
        """Cached snapshot for ``address`` regardless of age, without I/O."""
        cached = self._cache.get(address)
        if cached is None:
            return None
        is_stale = self._clock() - cached.fetched_at >= self.settings.balance_cache_ttl
        return cached.to_snapshot(is_stale=is_stale)

    def invalidate(self, address: Optional[str] = None) -> None:
        """Drop one address from the cache, or everything."""
        if address is None:
            self._cache.clear()
        else:
            self._cache.pop(address, None)

    def _sweep_expired(self, now: float, keep: str) -> None:
        # The requested address survives so it can back a failed refresh.
        ttl = self.settings.balance_cache_ttl
        expired = [
            key for key, entry in self._cache.items()
            if key != keep and now - entry.fetched_at > ttl
        ]
        for key in expired:
            del self._cache[key]
