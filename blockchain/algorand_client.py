"""
Algorand ledger client for the claim escrow flow, using py-algorand-sdk.

Every algod request carries ``ALGORAND_REQUEST_TIMEOUT`` and every algosdk
error is translated into the claim escrow error taxonomy here, so nothing
above this module ever sees a raw SDK exception.
"""
import base64
import binascii
import logging
import socket
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.error import URLError

from algosdk import encoding, logic, transaction
from algosdk.error import AlgodHTTPError, ConfirmationTimeoutError, TransactionRejectedError
from django.conf import settings

from .algorand_config import get_algod_client
from .escrow_state import EscrowState
from .exceptions import (
    BuildError,
    ClaimEscrowError,
    ConfirmationTimeout,
    ContractNotDeployed,
    MalformedReceipt,
    NetworkError,
    ProgramRejected,
    SubmissionUnconfirmed,
    TransactionRejected,
)
from .validators import validate_network

logger = logging.getLogger(__name__)

PROGRAM_REJECTION_MARKERS = (
    'logic eval error',
    'rejected by logic',
    'assert failed',
    'err opcode executed',
)


def is_program_rejection(message: str) -> bool:
    lowered = (message or '').lower()
    return any(marker in lowered for marker in PROGRAM_REJECTION_MARKERS)


def rejection_error(message: str) -> TransactionRejected:
    if is_program_rejection(message):
        return ProgramRejected(detail=message)
    return TransactionRejected(detail=message)


def never_reached_node(error: Exception) -> bool:
    """True when the request provably never left this host (refused or unresolvable)."""
    reason = error.reason if isinstance(error, URLError) else error
    return isinstance(reason, (ConnectionRefusedError, socket.gaierror))


def signed_transaction_id(signed_transaction_b64: str) -> str:
    if not signed_transaction_b64 or not isinstance(signed_transaction_b64, str):
        raise BuildError('Signed transaction is required')
    try:
        base64.b64decode(signed_transaction_b64, validate=True)
    except (binascii.Error, ValueError):
        raise BuildError('Signed transaction must be base64 encoded')
    try:
        return encoding.msgpack_decode(signed_transaction_b64).get_txid()
    except Exception as e:
        raise BuildError('Signed transaction could not be decoded', detail=str(e))


@dataclass(frozen=True)
class CompiledProgram:
    bytecode: bytes
    digest: str


@dataclass(frozen=True)
class ConfirmedReceipt:
    """The one confirmation shape we accept from algod's pending-transaction endpoint."""
    transaction_id: str
    confirmed_round: int
    application_index: Optional[int] = None

    @classmethod
    def from_pending_info(cls, transaction_id: str, info: Dict[str, Any]) -> 'ConfirmedReceipt':
        if not isinstance(info, dict):
            raise MalformedReceipt(detail=f'{transaction_id}: receipt is {type(info).__name__}')

        pool_error = info.get('pool-error') or ''
        if pool_error:
            raise rejection_error(pool_error)

        confirmed_round = info.get('confirmed-round')
        if isinstance(confirmed_round, bool) or not isinstance(confirmed_round, int) or confirmed_round <= 0:
            raise MalformedReceipt(detail=f'{transaction_id}: confirmed-round={confirmed_round!r}')

        app_index = info.get('application-index')
        if app_index is not None:
            if isinstance(app_index, bool) or not isinstance(app_index, int) or app_index <= 0:
                raise MalformedReceipt(detail=f'{transaction_id}: application-index={app_index!r}')

        return cls(
            transaction_id=transaction_id,
            confirmed_round=confirmed_round,
            application_index=app_index,
        )


class AlgorandClient:
    """
    Thin, typed wrapper over algod for one network.

    Reads are always fresh: nothing here is cached, callers that need a
    pre-submission check get the ledger's current view.
    """

    def __init__(self, network: str, algod_client=None, timeout: Optional[float] = None):
        self.network = validate_network(network)
        self._algod_client = algod_client
        self.timeout = timeout or settings.ALGORAND_REQUEST_TIMEOUT

    @property
    def algod(self):
        """Get the algod client instance"""
        if not self._algod_client:
            self._algod_client = get_algod_client(self.network)
        return self._algod_client

    def _http_error(self, operation: str, error: AlgodHTTPError) -> ClaimEscrowError:
        status_code = getattr(error, 'code', None)
        message = str(error)
        if is_program_rejection(message):
            return ProgramRejected(detail=message)
        if status_code is not None and 400 <= status_code < 500 and operation == 'send_raw_transaction':
            return TransactionRejected(detail=message)
        logger.warning('[AlgorandClient] %s failed on %s (HTTP %s): %s', operation, self.network, status_code, message)
        return NetworkError(detail=message)

    def _call(self, operation: str, fn: Callable, *args, allow_missing: bool = False):
        try:
            return fn(*args, timeout=self.timeout)
        except AlgodHTTPError as e:
            if allow_missing and getattr(e, 'code', None) == 404:
                return None
            raise self._http_error(operation, e)
        except Exception as e:
            logger.warning('[AlgorandClient] %s failed on %s: %r', operation, self.network, e)
            raise NetworkError(detail=f'{operation}: {e}')

    # ===== Node =====

    def status(self) -> Dict[str, Any]:
        return self._call('status', self.algod.status)

    def latest_timestamp(self) -> int:
        """Timestamp of the last committed block, the clock the escrow program sees."""
        last_round = self.status()['last-round']
        block = self._call('block_info', self.algod.block_info, last_round)
        return int(block['block'].get('ts', 0))

    def compile_program(self, source: str) -> CompiledProgram:
        response = self._call('compile', self.algod.compile, source)
        if not response or not response.get('result'):
            raise BuildError('TEAL compilation failed - no result returned')
        try:
            bytecode = base64.b64decode(response['result'])
        except (binascii.Error, ValueError) as e:
            raise BuildError('TEAL compilation returned invalid bytecode', detail=str(e))
        return CompiledProgram(bytecode=bytecode, digest=response.get('hash', ''))

    def suggested_params(self) -> transaction.SuggestedParams:
        return self._call('suggested_params', self.algod.suggested_params)

    # ===== Submission =====

    def send_raw_transaction(self, signed_transaction_b64: str) -> str:
        """
        Broadcast a signed transaction and return its id.

        A submission the node never answered is reported as
        SubmissionUnconfirmed: it may have landed, so it is not retryable.
        """
        txid = signed_transaction_id(signed_transaction_b64)
        try:
            returned = self.algod.send_raw_transaction(signed_transaction_b64, timeout=self.timeout)
        except AlgodHTTPError as e:
            error = self._http_error('send_raw_transaction', e)
            if isinstance(error, NetworkError):
                raise SubmissionUnconfirmed(txid, detail=error.detail)
            raise error
        except Exception as e:
            if never_reached_node(e):
                logger.warning('[AlgorandClient] %s not sent, node unreachable on %s: %r', txid, self.network, e)
                raise NetworkError(detail=f'send_raw_transaction: {e}')
            logger.warning('[AlgorandClient] No answer to submission of %s on %s: %r', txid, self.network, e)
            raise SubmissionUnconfirmed(txid, detail=repr(e))

        if returned != txid:
            raise MalformedReceipt(detail=f'send_raw_transaction returned {returned!r} for {txid}')
        return txid

    def wait_for_confirmation(self, txid: str, max_rounds: Optional[int] = None) -> ConfirmedReceipt:
        """
        Wait until confirmed, rejected, or the round budget is spent.

        Running out of rounds raises ConfirmationTimeout: the transaction may
        still confirm later, so callers must re-query rather than resubmit.
        """
        max_rounds = max_rounds or settings.CLAIM_CONFIRMATION_ROUNDS
        try:
            info = transaction.wait_for_confirmation(self.algod, txid, max_rounds, timeout=self.timeout)
        except ConfirmationTimeoutError:
            logger.warning('[AlgorandClient] %s not confirmed after %s rounds on %s', txid, max_rounds, self.network)
            raise ConfirmationTimeout(txid)
        except TransactionRejectedError as e:
            raise rejection_error(str(e))
        except Exception as e:
            # Already submitted, so a lost node is an unknown outcome too
            logger.warning('[AlgorandClient] Lost track of %s on %s: %r', txid, self.network, e)
            raise ConfirmationTimeout(txid, detail=repr(e))
        return ConfirmedReceipt.from_pending_info(txid, info)

    # ===== Accounts & applications =====

    def account_info(self, address: str) -> Dict[str, Any]:
        return self._call('account_info', self.algod.account_info, address)

    def get_balance(self, address: str) -> int:
        """Holding balance in microAlgos"""
        return int(self.account_info(address).get('amount', 0))

    def get_spendable_balance(self, address: str) -> int:
        info = self.account_info(address)
        return int(info.get('amount', 0)) - int(info.get('min-balance', 0))

    def application_info(self, app_id: int) -> Optional[Dict[str, Any]]:
        """None when the application does not exist (never created or deleted)"""
        return self._call('application_info', self.algod.application_info, app_id, allow_missing=True)

    def application_address(self, app_id: int) -> str:
        return logic.get_application_address(app_id)

    def get_escrow_state(self, app_id: int) -> EscrowState:
        app_info = self.application_info(app_id)
        if app_info is None:
            raise ContractNotDeployed('Escrow contract not found on the network.')
        state = EscrowState.from_application_info(app_info)
        if state is None:
            raise ContractNotDeployed(f'Application {app_id} is not a claim escrow.')
        return state

    def created_applications(self, address: str) -> List[Dict[str, Any]]:
        return list(self.account_info(address).get('created-apps') or [])
