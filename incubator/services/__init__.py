"""
RPC access layer and the read/write services built on it.
"""

from .endpoint_pool import EndpointHealth, EndpointPool
from .connection_manager import (
    ConnectionManager,
    ConnectionState,
    get_connection_manager,
    close_connection_manager,
)
from .balance_service import BalanceService
from .leaderboard_service import Depositor, LeaderboardService, rank_depositors
from .deposit_service import DepositReceipt, DepositService, SignedDeposit, TransactionSigner

__all__ = [
    "EndpointHealth",
    "EndpointPool",
    "ConnectionManager",
    "ConnectionState",
    "get_connection_manager",
    "close_connection_manager",
    "BalanceService",
    "Depositor",
    "LeaderboardService",
    "rank_depositors",
    "DepositReceipt",
    "DepositService",
    "SignedDeposit",
    "TransactionSigner",
]
