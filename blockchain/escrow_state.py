"""
Decoding of a claim escrow's on-chain global state.

Provides consistent parsing of Algorand global state into a typed EscrowState.
"""

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from algosdk import encoding

ESCROW_KEYS = ('hash', 'amount', 'sender', 'created', 'claimed')


def decode_state(state_array: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Decode Algorand state array into a dictionary

    Args:
        state_array: Raw state from algod (global-state key-value list)

    Returns:
        Dictionary with decoded keys; bytes values stay raw, uints are ints
    """
    result = {}

    for item in state_array:
        key = base64.b64decode(item['key']).decode('utf-8', errors='ignore')
        value_obj = item['value']

        if value_obj['type'] == 1:  # bytes
            result[key] = base64.b64decode(value_obj.get('bytes', ''))
        elif value_obj['type'] == 2:  # uint
            result[key] = value_obj.get('uint', 0)
        else:
            result[key] = value_obj

    return result


@dataclass(frozen=True)
class EscrowState:
    application_id: int
    creator: str
    commitment: bytes
    amount: int            # microAlgos
    owner: str
    created_at: int        # ledger unix timestamp
    claimed: bool

    @property
    def created_date(self) -> Optional[str]:
        if not self.created_at:
            return None
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat()

    def seconds_until_refundable(self, now: int, timeout: int) -> int:
        return max(0, self.created_at + timeout - int(now))

    @classmethod
    def from_application_info(cls, app_info: Dict[str, Any]) -> Optional['EscrowState']:
        """
        Build from an algod application record.

        Returns None when the application does not carry the escrow's keys,
        e.g. some other app created by the same account.
        """
        params = app_info.get('params', {})
        state = decode_state(params.get('global-state', []))
        if any(key not in state for key in ESCROW_KEYS):
            return None

        commitment = state['hash']
        owner_key = state['sender']
        if not isinstance(commitment, bytes) or len(commitment) != 32:
            return None
        if not isinstance(owner_key, bytes) or len(owner_key) != 32:
            return None

        return cls(
            application_id=int(app_info.get('id', 0)),
            creator=params.get('creator', ''),
            commitment=commitment,
            amount=int(state['amount']),
            owner=encoding.encode_address(owner_key),
            created_at=int(state['created']),
            claimed=int(state['claimed']) == 1,
        )
