"""
Input normalization for anything that ends up inside a transaction:
addresses, amounts, networks, claim codes and recipient e-mails.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Optional, Union

from algosdk import encoding
from django.conf import settings

from contracts.claim_escrow.claim_escrow import INNER_TXN_FEE

from .exceptions import (
    InvalidAddress,
    InvalidAmount,
    InvalidClaimCode,
    InvalidNetwork,
    InvalidRecipient,
)

MICROALGOS_PER_ALGO = 1_000_000
MAX_UINT64 = 2 ** 64 - 1
CLAIM_CODE_RE = re.compile(r'^[0-9A-F]{32}$')
EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

Amount = Union[Decimal, int, float, str]


def validate_address(address) -> str:
    """Return the trimmed address or raise InvalidAddress."""
    if not address or not isinstance(address, str):
        raise InvalidAddress('Address must be a valid string')

    trimmed = address.strip()
    if not trimmed:
        raise InvalidAddress('Address cannot be empty')

    if not encoding.is_valid_address(trimmed):
        raise InvalidAddress('Invalid Algorand address format')

    # is_valid_address already checks the checksum; decoding guards the key length
    try:
        encoding.decode_address(trimmed)
    except Exception as e:
        raise InvalidAddress(f'Address validation failed: {e}')

    return trimmed


def address_public_key(address: str) -> bytes:
    return encoding.decode_address(validate_address(address))


def to_base_units(amount: Amount) -> int:
    """
    Convert a display amount (ALGO) to microAlgos.

    Floats are routed through ``str`` so 0.1 stays 0.1; anything that rounds
    down to zero microAlgos is rejected, and so is anything whose funding
    (amount plus the payout fee) does not fit a ledger uint64.
    """
    if amount is None or isinstance(amount, bool):
        raise InvalidAmount()
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount()

    if not value.is_finite() or value <= 0:
        raise InvalidAmount()
    if value > MAX_UINT64:
        raise InvalidAmount('Amount is too large')

    micro = int((value * MICROALGOS_PER_ALGO).to_integral_value(ROUND_DOWN))
    if micro <= 0:
        raise InvalidAmount('Amount is smaller than 0.000001 ALGO')
    if micro + INNER_TXN_FEE > MAX_UINT64:
        raise InvalidAmount('Amount is too large')
    return micro


def from_base_units(micro: int) -> Decimal:
    return Decimal(int(micro)) / Decimal(MICROALGOS_PER_ALGO)


def validate_network(network: Optional[str]) -> str:
    name = (network or '').strip().lower()
    if name not in settings.ALGORAND_NETWORKS:
        raise InvalidNetwork()
    return name


def normalize_claim_code(code) -> str:
    """Codes are transcribed by humans: tolerate whitespace and lowercase."""
    if not code or not isinstance(code, str) or not code.strip():
        raise InvalidClaimCode('Claim code is required')
    normalized = code.strip().upper()
    if not CLAIM_CODE_RE.match(normalized):
        raise InvalidClaimCode()
    return normalized


def validate_recipient(recipient: Optional[str]) -> Optional[str]:
    """The recipient e-mail is optional; when given it must look like one."""
    if recipient is None or not recipient.strip():
        return None
    trimmed = recipient.strip()
    if not EMAIL_RE.match(trimmed):
        raise InvalidRecipient()
    return trimmed
