"""
Input validation for identifiers and transaction records.

Checks here run before any metric is computed so that out-of-domain input
fails fast with InvalidInputError instead of producing NaN or a silent zero.
"""

import re
from decimal import Decimal
from typing import Optional, Sequence

from mf_pilot.exceptions import InvalidInputError
from mf_pilot.models import Transaction


# PAN format: 5 letters, 4 digits, 1 letter
PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")


def normalize_pan(pan: str) -> str:
    """
    Normalize and validate a PAN identifier.

    Args:
        pan: PAN in any case, optionally padded with whitespace

    Returns:
        Upper-cased PAN

    Raises:
        InvalidInputError: If the PAN is empty or malformed
    """
    value = (pan or "").strip().upper()
    if not value:
        raise InvalidInputError("Please enter your PAN number")
    if not PAN_PATTERN.match(value):
        raise InvalidInputError(f"Invalid PAN format: {pan!r}. Example: ABCDE1234F")
    return value


def is_valid_pan(pan: str) -> bool:
    """Return True if pan matches the PAN format (case-insensitive)."""
    try:
        normalize_pan(pan)
    except InvalidInputError:
        return False
    return True


def check_transaction(
    txn: Transaction,
    amount_tolerance: Optional[Decimal] = None,
) -> None:
    """
    Validate a single transaction.

    Args:
        txn: Transaction to check
        amount_tolerance: If given, maximum allowed |amount - units * nav|

    Raises:
        InvalidInputError: If amount, units or nav is non-positive, or the
            amount disagrees with units * nav beyond the tolerance
    """
    if txn.amount <= Decimal("0"):
        raise InvalidInputError(f"Transaction on {txn.date} has non-positive amount: {txn.amount}")
    if txn.units <= Decimal("0"):
        raise InvalidInputError(f"Transaction on {txn.date} has non-positive units: {txn.units}")
    if txn.nav <= Decimal("0"):
        raise InvalidInputError(f"Transaction on {txn.date} has non-positive nav: {txn.nav}")

    if amount_tolerance is not None:
        mismatch = abs(txn.amount - txn.units * txn.nav)
        if mismatch > amount_tolerance:
            raise InvalidInputError(
                f"Transaction on {txn.date}: amount {txn.amount} differs from "
                f"units * nav ({txn.units * txn.nav}) by {mismatch}"
            )


def check_transactions(
    transactions: Sequence[Transaction],
    amount_tolerance: Optional[Decimal] = None,
) -> None:
    """
    Validate a non-empty sequence of transactions.

    Raises:
        InvalidInputError: If the sequence is empty or any transaction is invalid
    """
    if not transactions:
        raise InvalidInputError("At least one transaction is required")
    for txn in transactions:
        check_transaction(txn, amount_tolerance)


def check_positive(value: Decimal, field_name: str) -> None:
    """Raise InvalidInputError unless value > 0."""
    if value is None or value <= Decimal("0"):
        raise InvalidInputError(f"{field_name} must be positive, got {value}")
