"""
In-memory claim registry.

Maps a claim code to its lifecycle record. The registry is a cache of the
best-known on-chain status, not a source of truth: the escrow program's
``claimed`` flag is the only guard against double payout, and every record
can be rebuilt by reading the escrow's global state back from the ledger.

Locking is per claim code so requests for different claims never wait on
each other. The per-code lock serializes this process only; it does not and
cannot stop a second process from submitting the same redemption.
"""
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional

from . import claim_codes
from .exceptions import AlreadyClaimed, ClaimNotFound, RegistryConflict

logger = logging.getLogger(__name__)


class ClaimState(str, Enum):
    REQUESTED = 'Requested'
    AWAITING_DEPLOYMENT = 'AwaitingDeployment'
    DEPLOYED = 'Deployed'
    AWAITING_FUNDING = 'AwaitingFunding'
    FUNDED = 'Funded'
    AWAITING_REDEMPTION = 'AwaitingRedemption'
    REDEEMED = 'Redeemed'
    RECLAIMABLE = 'Reclaimable'
    RECLAIMED = 'Reclaimed'
    DELETABLE = 'Deletable'
    DELETED = 'Deleted'


TERMINAL_STATES = {ClaimState.REDEEMED, ClaimState.RECLAIMED, ClaimState.DELETABLE, ClaimState.DELETED}

# Forward edges of unconsumed records. Re-entering AwaitingX from itself covers
# an abandoned signature being requested again. A consumed record is frozen,
# so Deletable and Deleted are only ever derived from ledger state.
ALLOWED_TRANSITIONS = {
    ClaimState.REQUESTED: {ClaimState.AWAITING_DEPLOYMENT},
    ClaimState.AWAITING_DEPLOYMENT: {ClaimState.AWAITING_DEPLOYMENT, ClaimState.DEPLOYED},
    ClaimState.DEPLOYED: {
        ClaimState.AWAITING_FUNDING, ClaimState.FUNDED, ClaimState.AWAITING_REDEMPTION, ClaimState.RECLAIMABLE,
    },
    ClaimState.AWAITING_FUNDING: {
        ClaimState.AWAITING_FUNDING, ClaimState.FUNDED, ClaimState.AWAITING_REDEMPTION, ClaimState.RECLAIMABLE,
    },
    ClaimState.FUNDED: {ClaimState.AWAITING_REDEMPTION, ClaimState.RECLAIMABLE},
    ClaimState.AWAITING_REDEMPTION: {ClaimState.AWAITING_REDEMPTION, ClaimState.RECLAIMABLE},
    ClaimState.RECLAIMABLE: {ClaimState.AWAITING_REDEMPTION},
    ClaimState.REDEEMED: set(),
    ClaimState.RECLAIMED: set(),
    ClaimState.DELETABLE: set(),
    ClaimState.DELETED: set(),
}


@dataclass
class ClaimRecord:
    code: str
    commitment: bytes
    amount: int                      # microAlgos
    network: str
    sender_address: str
    recipient: Optional[str] = None
    message: Optional[str] = None
    state: ClaimState = ClaimState.REQUESTED
    deploy_transaction_id: Optional[str] = None
    escrow_id: Optional[int] = None
    escrow_address: Optional[str] = None
    funding_transaction_id: Optional[str] = None
    redeem_transaction_id: Optional[str] = None
    consumed: bool = False
    created_at: float = field(default_factory=time.time)
    consumed_at: Optional[float] = None

    @property
    def is_deployed(self) -> bool:
        return self.escrow_id is not None

    def snapshot(self) -> 'ClaimRecord':
        return replace(self)


class ClaimRegistry:
    """
    Thread-safe claim code → ClaimRecord map.

    ``get`` returns copies; all mutation goes through the registry methods so
    the consumed/escrow invariants are enforced in one place.
    """

    def __init__(self, clock=time.time):
        self._records: Dict[str, ClaimRecord] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._map_lock = threading.Lock()
        self._clock = clock

    def _lock_for(self, code: str) -> threading.RLock:
        with self._map_lock:
            lock = self._locks.get(code)
            if lock is None:
                lock = self._locks[code] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, code: str) -> Iterator[None]:
        """Serialize work on one claim code within this process."""
        with self._lock_for(code):
            yield

    def _record(self, code: str) -> ClaimRecord:
        record = self._records.get(code)
        if record is None:
            raise ClaimNotFound()
        return record

    def _mutable(self, code: str) -> ClaimRecord:
        record = self._record(code)
        if record.consumed:
            raise AlreadyClaimed()
        return record

    # ----- reads -----

    def get(self, code: str) -> Optional[ClaimRecord]:
        """None if the code was never registered; consumed records are returned as-is."""
        with self._lock_for(code):
            record = self._records.get(code)
            return record.snapshot() if record else None

    def require(self, code: str) -> ClaimRecord:
        record = self.get(code)
        if record is None:
            raise ClaimNotFound()
        return record

    def find_by_escrow(self, escrow_id: int, network: str) -> Optional[ClaimRecord]:
        with self._map_lock:
            codes = list(self._records)
        for code in codes:
            record = self.get(code)
            if record and record.escrow_id == escrow_id and record.network == network:
                return record
        return None

    def all(self) -> List[ClaimRecord]:
        with self._map_lock:
            codes = list(self._records)
        records = [self.get(code) for code in codes]
        return [r for r in records if r is not None]

    def __len__(self) -> int:
        return len(self._records)

    # ----- writes -----

    def put(self, record: ClaimRecord) -> ClaimRecord:
        with self._lock_for(record.code):
            if record.code in self._records:
                raise RegistryConflict('A claim with this code already exists.')
            self._records[record.code] = record.snapshot()
            logger.info('[ClaimRegistry] Registered %s on %s', claim_codes.redact(record.code), record.network)
            return record.snapshot()

    def transition(self, code: str, new_state: ClaimState) -> ClaimRecord:
        with self._lock_for(code):
            record = self._mutable(code)
            if new_state not in ALLOWED_TRANSITIONS[record.state]:
                raise RegistryConflict(
                    detail=f'{claim_codes.redact(code)}: {record.state.value} -> {new_state.value}'
                )
            record.state = new_state
            return record.snapshot()

    def advance(self, code: str, new_state: ClaimState) -> ClaimRecord:
        """Like transition, but an edge that is not allowed leaves the record as it is."""
        with self._lock_for(code):
            record = self._mutable(code)
            if new_state in ALLOWED_TRANSITIONS[record.state]:
                record.state = new_state
            return record.snapshot()

    def assign_escrow(self, code: str, escrow_id: int, escrow_address: str,
                      deploy_transaction_id: Optional[str] = None) -> ClaimRecord:
        """Attach the confirmed escrow. An escrow id is never replaced once set."""
        with self._lock_for(code):
            record = self._mutable(code)
            if record.escrow_id is not None and record.escrow_id != escrow_id:
                raise RegistryConflict(
                    'This claim is already bound to another escrow contract.',
                    detail=f'{claim_codes.redact(code)}: {record.escrow_id} != {escrow_id}',
                )
            record.escrow_id = escrow_id
            record.escrow_address = escrow_address
            if deploy_transaction_id:
                record.deploy_transaction_id = deploy_transaction_id
            if record.state in (ClaimState.REQUESTED, ClaimState.AWAITING_DEPLOYMENT):
                record.state = ClaimState.DEPLOYED
            return record.snapshot()

    def record_funding(self, code: str, funding_transaction_id: str) -> ClaimRecord:
        with self._lock_for(code):
            record = self._mutable(code)
            if record.escrow_id is None:
                raise RegistryConflict('Cannot record funding before the escrow is deployed.')
            record.funding_transaction_id = funding_transaction_id
            if record.state in (ClaimState.DEPLOYED, ClaimState.AWAITING_FUNDING):
                record.state = ClaimState.FUNDED
            return record.snapshot()

    def mark_consumed(self, code: str, final_state: ClaimState = ClaimState.REDEEMED,
                      transaction_id: Optional[str] = None) -> ClaimRecord:
        """
        Flip consumed false → true. Idempotent: later calls return the record
        unchanged, consumed_at keeps its first value.
        """
        with self._lock_for(code):
            record = self._record(code)
            if record.consumed:
                return record.snapshot()
            record.consumed = True
            record.consumed_at = self._clock()
            record.state = final_state
            if transaction_id:
                record.redeem_transaction_id = transaction_id
            logger.info('[ClaimRegistry] %s consumed (%s)', claim_codes.redact(code), final_state.value)
            return record.snapshot()

    # ----- eviction -----

    def evict(self, retention_seconds: float) -> int:
        """
        Drop consumed records, and records that never got an escrow, once
        they are older than ``retention_seconds``.
        """
        cutoff = self._clock() - retention_seconds
        removed = 0
        with self._map_lock:
            codes = list(self._records)
        for code in codes:
            with self._lock_for(code):
                record = self._records.get(code)
                if record is None:
                    continue
                if record.consumed:
                    stale = (record.consumed_at or record.created_at) <= cutoff
                else:
                    stale = record.escrow_id is None and record.created_at <= cutoff
                if stale:
                    del self._records[code]
                    removed += 1
        if removed:
            with self._map_lock:
                for code in codes:
                    if code not in self._records:
                        self._locks.pop(code, None)
            logger.info('[ClaimRegistry] Evicted %s claim records', removed)
        return removed
