"""
Solana address validation utilities.
"""

from typing import Any

from solders.pubkey import Pubkey

from incubator.core.exceptions import InvalidAddressError


class SolanaValidator:
    """Validator for Solana blockchain data."""

    @staticmethod
    def is_valid_pubkey(address: Any) -> bool:
        """
        Validate if a value is a valid Solana public key string.

        Args:
            address: Value to validate

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(address, str) or len(address) < 32 or len(address) > 44:
            return False
        try:
            Pubkey.from_string(address)
        except ValueError:
            return False
        return True


def parse_pubkey(address: Any) -> Pubkey:
    """Parse a wallet address, raising ``InvalidAddressError`` on bad input."""
    if not SolanaValidator.is_valid_pubkey(address):
        raise InvalidAddressError(str(address))
    return Pubkey.from_string(address)
