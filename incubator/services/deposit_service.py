"""
Deposit submission into the campaign wallet.

Building and signing the transfer stays with the wallet integration behind
``TransactionSigner``. This service validates the request, checks the
sender's live balance and hands the signer a fresh blockhash under the
connection manager's retry wrapper. The signed bytes are then submitted and
confirmed in a second operation whose send failures are never retried.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException
from solana.rpc.models import TxOpts
from solders.hash import Hash

from incubator.core.config import Settings, SolanaConfig, settings as default_settings
from incubator.core.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    TransactionFailedError,
)
from incubator.services.balance_service import BalanceService
from incubator.services.connection_manager import ConnectionManager
from incubator.utils.amounts import to_base_units
from incubator.utils.validation import parse_pubkey


logger = structlog.get_logger(__name__)


class TransactionSigner(Protocol):
    """Wallet integration that builds and signs the token transfer."""

    async def sign_deposit(self, amount_base_units: int, recent_blockhash: Hash) -> bytes:
        """
        Return the serialized signed transfer.

        Raises ``UserCancelledError`` when the user rejects the request.
        """
        ...


@dataclass(frozen=True)
class SignedDeposit:
    """Signed transfer kept unchanged across rebroadcasts."""
    payload: bytes
    last_valid_block_height: int


@dataclass
class DepositReceipt:
    """Result of a confirmed deposit."""
    signature: str
    owner: str
    amount: Decimal
    confirmed_at: datetime


class DepositService:
    """Submits deposits from a wallet into the campaign address."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        balance_service: BalanceService,
        config: Optional[Settings] = None,
    ):
        self.connection_manager = connection_manager
        self.balance_service = balance_service
        self.settings = config or default_settings
        self.commitment = SolanaConfig.get_commitment(self.settings)
        self.logger = logger.bind(service="deposit_service")

    def validate_amount(self, amount: Any) -> Decimal:
        """Parse ``amount`` and check it lies in (0, max_deposit_amount]."""
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise InvalidAmountError(amount, "not a number")

        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(amount, "must be greater than zero")
        if value > self.settings.max_deposit_amount:
            raise InvalidAmountError(amount, f"exceeds maximum of {self.settings.max_deposit_amount}")
        if to_base_units(value, self.settings.token_decimals) == 0:
            raise InvalidAmountError(amount, "below the token's smallest unit")
        return value

    async def submit_deposit(self, owner: str, amount: Any, signer: TransactionSigner) -> DepositReceipt:
        """
        Transfer ``amount`` tokens from ``owner`` to the campaign wallet.

        Signing happens at most once. Retries before the transfer reaches a
        node only rebroadcast the same signed bytes; any failure once the
        bytes were handed to a node is reported, never retried.

        Raises:
            InvalidAddressError: If ``owner`` cannot be parsed
            InvalidAmountError: If the amount is out of range
            InsufficientFundsError: If the owner's balance is too low
            UserCancelledError: If the signer rejects
            TransactionFailedError: If the network rejects or fails the transfer,
                or its outcome is unknown
        """
        owner_key = parse_pubkey(owner)
        value = self.validate_amount(amount)
        base_units = to_base_units(value, self.settings.token_decimals)

        async def prepare(client: AsyncClient) -> SignedDeposit:
            available = await self.balance_service.fetch_balance(client, owner_key)
            if available < value:
                raise InsufficientFundsError(value, available)

            blockhash_resp = await client.get_latest_blockhash(commitment=self.commitment)
            signed = await signer.sign_deposit(base_units, blockhash_resp.value.blockhash)
            return SignedDeposit(
                payload=signed,
                last_valid_block_height=blockhash_resp.value.last_valid_block_height
            )

        deposit = await self.connection_manager.execute_with_retry(prepare)

        async def send(client: AsyncClient) -> DepositReceipt:
            return await self._send_and_confirm(client, owner, value, deposit)

        receipt = await self.connection_manager.execute_with_retry(send)

        self.balance_service.invalidate(owner)
        self.balance_service.invalidate(self.settings.incubator_wallet)

        self.logger.info(
            "Deposit confirmed",
            owner=owner,
            amount=str(value),
            signature=receipt.signature
        )
        return receipt

    async def _send_and_confirm(
        self,
        client: AsyncClient,
        owner: str,
        value: Decimal,
        deposit: SignedDeposit,
    ) -> DepositReceipt:
        try:
            send_resp = await client.send_raw_transaction(
                deposit.payload,
                opts=TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
            )
        except RPCException as e:
            raise TransactionFailedError("<unsent>", e) from e
        except Exception as e:
            # The node may have accepted the transfer before the transport failed.
            self.logger.error("Deposit outcome unknown", owner=owner, error=str(e))
            raise TransactionFailedError("<unknown>", e) from e

        signature = send_resp.value
        try:
            confirmation = await client.confirm_transaction(
                signature,
                commitment=self.commitment,
                last_valid_block_height=deposit.last_valid_block_height
            )
        except Exception as e:
            raise TransactionFailedError(str(signature), e) from e

        status = confirmation.value[0] if confirmation.value else None
        if status is None or status.err is not None:
            raise TransactionFailedError(str(signature), status.err if status else "status unavailable")

        return DepositReceipt(
            signature=str(signature),
            owner=owner,
            amount=value,
            confirmed_at=datetime.now(timezone.utc)
        )
