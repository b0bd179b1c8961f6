"""
Immutable snapshots handed to display consumers.
Each carries the time it was fetched and whether it is a degraded fallback.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Snapshot(BaseModel):
    """Base snapshot with freshness metadata."""
    model_config = ConfigDict(frozen=True)

    as_of: datetime = Field(description="When the underlying data was fetched")
    is_stale: bool = Field(
        default=False,
        description="True when served from cache after a failed refresh"
    )


class BalanceSnapshot(Snapshot):
    """Token balance of a wallet in human-readable units."""
    address: str = Field(description="Owner wallet address")
    amount: Decimal = Field(description="Balance scaled by the token decimals")


class DepositorEntry(BaseModel):
    """One ranked depositor."""
    model_config = ConfigDict(frozen=True)

    address: str = Field(description="Sender wallet address")
    amount: Decimal = Field(description="Cumulative deposited amount")
    last_deposit_time: Optional[datetime] = Field(
        None, description="Block time of the most recent deposit"
    )


class LeaderboardSnapshot(Snapshot):
    """Top depositors, highest total first."""
    entries: List[DepositorEntry] = Field(default_factory=list)
    success: bool = Field(
        default=True,
        description="False when the latest scan failed"
    )

    @classmethod
    def empty(cls) -> "LeaderboardSnapshot":
        return cls(as_of=datetime.now(timezone.utc), success=False)
