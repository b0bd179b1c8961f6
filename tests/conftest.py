"""
Shared fixtures: a controllable clock, a recording sleep and an in-memory
stand-in for the Solana RPC endpoints shaped like solana-py responses.
"""

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Set

import pytest

from incubator.core.config import Settings
from incubator.services.connection_manager import ConnectionManager


RPC_A = "https://rpc-a.test"
RPC_B = "https://rpc-b.test"
RPC_C = "https://rpc-c.test"

# Valid base58 public keys used as wallets in tests
WALLET_A = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
WALLET_B = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
WALLET_C = "So11111111111111111111111111111111111111112"


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records delays, advances the clock and yields to the event loop."""

    def __init__(self, clock: FakeClock, log: Optional[List[Any]] = None):
        self.clock = clock
        self.calls: List[float] = []
        self.log = log

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.log is not None:
            self.log.append(("sleep", delay))
        self.clock.advance(delay)
        await asyncio.sleep(0)


def token_amount(ui_amount: float, decimals: int = 6) -> SimpleNamespace:
    return SimpleNamespace(amount=str(int(round(ui_amount * 10 ** decimals))), decimals=decimals)


def token_balance(owner: str, mint: str, ui_amount: float) -> SimpleNamespace:
    return SimpleNamespace(owner=owner, mint=mint, account_index=1, ui_token_amount=token_amount(ui_amount))


def make_transaction(
    signers: List[str],
    target: str,
    mint: str,
    pre: Optional[float],
    post: Optional[float],
    block_time: Optional[int] = None,
    err: Any = None,
) -> SimpleNamespace:
    """Value of a jsonParsed getTransaction response touching ``target``."""
    pre_balances = [] if pre is None else [token_balance(target, mint, pre)]
    post_balances = [] if post is None else [token_balance(target, mint, post)]
    account_keys = [SimpleNamespace(pubkey=key, signer=True, writable=True) for key in signers]
    account_keys.append(SimpleNamespace(pubkey=target, signer=False, writable=True))
    return SimpleNamespace(
        slot=1,
        block_time=block_time,
        transaction=SimpleNamespace(
            meta=SimpleNamespace(
                err=err,
                pre_token_balances=pre_balances,
                post_token_balances=post_balances,
            ),
            transaction=SimpleNamespace(message=SimpleNamespace(account_keys=account_keys)),
        ),
    )


class FakeNetwork:
    """In-memory ledger shared by every fake client."""

    def __init__(self):
        self.down: Set[str] = set()
        self.slow: Set[str] = set()
        self.calls: List[Any] = []
        self.clients: Dict[str, "FakeClient"] = {}
        self.created: List["FakeClient"] = []

        self.token_accounts: Dict[str, List[str]] = {}
        self.balance_error: Optional[Exception] = None

        self.signatures: List[SimpleNamespace] = []
        self.signatures_error: Optional[Exception] = None
        self.transactions: Dict[str, Any] = {}
        self.transaction_failures: Dict[str, int] = {}

        self.sent: List[bytes] = []
        self.send_error: Optional[Exception] = None
        self.confirm_error: Any = None

    def factory(self, url: str) -> "FakeClient":
        client = FakeClient(url, self)
        self.clients[url] = client
        self.created.append(client)
        return client

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def add_signature(self, signature: str, tx: Any, block_time: Optional[int] = None) -> None:
        self.signatures.append(SimpleNamespace(signature=signature, block_time=block_time, err=None))
        self.transactions[signature] = tx


class FakeClient:
    def __init__(self, url: str, network: FakeNetwork):
        self.url = url
        self.network = network
        self.closed = False

    async def get_slot(self):
        self.network.calls.append(("get_slot", self.url))
        if self.url in self.network.slow:
            await asyncio.sleep(1)
        if self.url in self.network.down:
            raise ConnectionError(f"{self.url} unreachable")
        return SimpleNamespace(value=1)

    async def get_token_accounts_by_owner_json_parsed(self, owner, opts, commitment=None):
        self.network.calls.append(("get_token_accounts_by_owner_json_parsed", str(owner)))
        if self.network.balance_error is not None:
            raise self.network.balance_error
        accounts = [
            SimpleNamespace(account=SimpleNamespace(data=SimpleNamespace(parsed={
                "type": "account",
                "info": {"tokenAmount": {"amount": raw, "decimals": 6}},
            })))
            for raw in self.network.token_accounts.get(str(owner), [])
        ]
        return SimpleNamespace(value=accounts)

    async def get_signatures_for_address(self, address, limit=None, commitment=None):
        self.network.calls.append(("get_signatures_for_address", str(address)))
        if self.network.signatures_error is not None:
            raise self.network.signatures_error
        return SimpleNamespace(value=list(self.network.signatures[:limit]))

    async def get_transaction(self, signature, encoding=None, commitment=None, max_supported_transaction_version=None):
        self.network.calls.append(("get_transaction", str(signature)))
        remaining = self.network.transaction_failures.get(signature, 0)
        if remaining:
            self.network.transaction_failures[signature] = remaining - 1
            raise ConnectionError(f"timeout fetching {signature}")
        return SimpleNamespace(value=self.network.transactions.get(signature))

    async def get_latest_blockhash(self, commitment=None):
        self.network.calls.append(("get_latest_blockhash", self.url))
        return SimpleNamespace(value=SimpleNamespace(blockhash="recent-blockhash", last_valid_block_height=100))

    async def send_raw_transaction(self, txn, opts=None):
        self.network.calls.append(("send_raw_transaction", self.url))
        self.network.sent.append(txn)
        if self.network.send_error is not None:
            error, self.network.send_error = self.network.send_error, None
            raise error
        return SimpleNamespace(value="deposit-signature")

    async def confirm_transaction(self, tx_sig, commitment=None, sleep_seconds=0.5, last_valid_block_height=None):
        self.network.calls.append(("confirm_transaction", str(tx_sig)))
        return SimpleNamespace(value=[SimpleNamespace(err=self.network.confirm_error)])

    async def close(self):
        self.closed = True


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None, rpc_endpoints=[RPC_A, RPC_B, RPC_C])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def manager_sleep(clock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def manager(config, network, clock, manager_sleep) -> ConnectionManager:
    return ConnectionManager(config, client_factory=network.factory, clock=clock, sleep=manager_sleep)
