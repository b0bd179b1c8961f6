"""
Custom exception classes for the application.

Every exception carries an ``ErrorKind`` set where the failure happens, so the
retry layer decides on a typed category instead of inspecting messages.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Retry category of a failure."""
    INVALID_INPUT = "invalid_input"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    USER_CANCELLED = "user_cancelled"
    TRANSACTION_FAILED = "transaction_failed"
    TRANSIENT = "transient"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.TRANSIENT


class IncubatorException(Exception):
    """Base exception class for the incubator backend."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(IncubatorException):
    """Raised when there's a configuration error."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class SolanaRPCError(IncubatorException):
    """Raised when an RPC call against a Solana endpoint fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SOLANA_RPC_ERROR", details)


class EndpointUnavailableError(SolanaRPCError):
    """Raised when the active endpoint fails its liveness probe."""

    def __init__(self, endpoint: str, reason: str):
        super().__init__(
            f"RPC endpoint unavailable: {endpoint} ({reason})",
            {"endpoint": endpoint, "reason": reason}
        )
        self.code = "ENDPOINT_UNAVAILABLE"


class DomainError(IncubatorException):
    """Caller or business error that will recur on retry."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class InvalidAddressError(DomainError):
    """Raised when a wallet address cannot be parsed."""

    def __init__(self, address: str):
        super().__init__(
            f"Invalid wallet address: {address!r}",
            "INVALID_ADDRESS",
            {"address": address}
        )


class InvalidAmountError(DomainError):
    """Raised when a deposit amount is outside the accepted range."""

    def __init__(self, amount: Any, reason: str):
        super().__init__(
            f"Invalid transfer amount {amount}: {reason}",
            "INVALID_AMOUNT",
            {"amount": str(amount), "reason": reason}
        )


class InsufficientFundsError(DomainError):
    """Raised when there are insufficient funds for an operation."""

    kind = ErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient funds: required {required}, available {available}",
            "INSUFFICIENT_FUNDS",
            {"required": str(required), "available": str(available)}
        )


class UserCancelledError(DomainError):
    """Raised by a signer when the user rejects the request."""

    kind = ErrorKind.USER_CANCELLED

    def __init__(self, message: str = "Transaction cancelled by user"):
        super().__init__(message, "USER_CANCELLED")


class TransactionFailedError(DomainError):
    """Raised when a submitted transaction confirms with an error."""

    kind = ErrorKind.TRANSACTION_FAILED

    def __init__(self, signature: str, error: Any):
        super().__init__(
            f"Transaction {signature} failed to confirm: {error}",
            "TRANSACTION_FAILED",
            {"signature": signature, "error": str(error)}
        )


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map an exception raised by an RPC operation to its retry category.

    Incubator exceptions carry their own kind. ``ValueError`` and
    ``TypeError`` come from bad arguments and are not retried, except JSON
    decoding failures which indicate a broken upstream response.
    """
    if isinstance(error, IncubatorException):
        return error.kind
    if isinstance(error, json.JSONDecodeError):
        return ErrorKind.TRANSIENT
    if isinstance(error, (ValueError, TypeError)):
        return ErrorKind.INVALID_INPUT
    return ErrorKind.TRANSIENT
