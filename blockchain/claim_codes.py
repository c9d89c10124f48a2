"""
Claim codes and their on-chain commitment.

A code is 16 bytes from the OS CSPRNG rendered as 32 uppercase hex
characters. Only ``commit(code)`` (SHA-256 of the UTF-8 text) is ever stored
in the escrow program.
"""
import hashlib
import secrets

CODE_BYTES = 16
COMMITMENT_SIZE = 32


def generate() -> str:
    return secrets.token_bytes(CODE_BYTES).hex().upper()


def commit(code: str) -> bytes:
    return hashlib.sha256(code.encode('utf-8')).digest()


def matches(code: str, commitment: bytes) -> bool:
    return secrets.compare_digest(commit(code), bytes(commitment))


def redact(code: str) -> str:
    """Log-safe form of a claim code."""
    if not code:
        return 'undefined'
    return f"{code[:8]}..."
