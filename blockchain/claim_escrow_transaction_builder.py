"""
Claim Escrow Transaction Builder

Builds the unsigned transactions of the claim escrow lifecycle: deploy, fund,
redeem, reclaim and delete. Nothing here touches the network; suggested
params come in from the caller. Application argument order and encoding for
the escrow program live only in this module.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import List, Sequence

import msgpack
from algosdk import encoding, logic, transaction

from contracts.claim_escrow.claim_escrow import (
    ACTION_CLAIM,
    ACTION_REFUND,
    ACTION_SETUP,
    CLEAR_PROGRAM,
    GLOBAL_BYTES,
    GLOBAL_UINTS,
    INNER_TXN_FEE,
)

from . import claim_codes
from .exceptions import BuildError
from .validators import Amount, address_public_key, to_base_units, validate_address

FUNDING_NOTE = b"RandCash contract funding"
# Highest TEAL version byte we expect at the head of compiled bytecode
MAX_TEAL_VERSION = 10


@dataclass
class BuiltTransaction:
    transaction: transaction.Transaction
    transaction_id: str
    payload: str  # base64 msgpack, ready for the wallet to sign


@dataclass(frozen=True)
class DeployArguments:
    action: str
    commitment: bytes
    amount: int
    owner: str


def encode_unsigned(txn: transaction.Transaction) -> str:
    # Always produce canonical msgpack bytes then base64-encode
    raw_bytes = msgpack.packb(txn.dictify(), use_bin_type=True)
    return base64.b64encode(raw_bytes).decode()


def decode_unsigned(payload: str) -> transaction.Transaction:
    try:
        decoded = encoding.msgpack_decode(payload)
    except Exception as e:
        raise BuildError('Transaction payload could not be decoded', detail=str(e))
    if isinstance(decoded, transaction.SignedTransaction):
        return decoded.transaction
    if not isinstance(decoded, transaction.Transaction):
        raise BuildError('Payload is not a transaction')
    return decoded


def decode_deploy_arguments(payload: str) -> DeployArguments:
    """Read back the creation arguments of a (signed or unsigned) deploy transaction."""
    txn = decode_unsigned(payload)
    args = list(getattr(txn, 'app_args', None) or [])
    if getattr(txn, 'index', None) not in (0, None) or len(args) != 4:
        raise BuildError('Not a claim escrow deployment transaction')
    return DeployArguments(
        action=args[0].decode('utf-8', errors='replace'),
        commitment=bytes(args[1]),
        amount=int.from_bytes(args[2], 'big'),
        owner=encoding.encode_address(bytes(args[3])),
    )


class ClaimEscrowTransactionBuilder:
    """Builds unsigned claim escrow transactions for the wallet to sign."""

    @staticmethod
    def _params(params: transaction.SuggestedParams) -> transaction.SuggestedParams:
        if params is None:
            raise BuildError('Missing network parameters')
        for field in ('first', 'last', 'gh'):
            if not getattr(params, field, None):
                raise BuildError(f'Invalid transaction parameters received from network ({field})')

        min_fee = getattr(params, 'min_fee', None) or 1000
        return transaction.SuggestedParams(
            fee=min_fee,
            first=params.first,
            last=params.last,
            gh=params.gh,
            gen=params.gen,
            flat_fee=True,
        )

    @staticmethod
    def _app_args(args: Sequence) -> List[bytes]:
        for index, arg in enumerate(args):
            if not isinstance(arg, (bytes, bytearray)):
                raise BuildError(f'Application argument {index} is not a byte array')
        return [bytes(arg) for arg in args]

    @staticmethod
    def _application_id(application_id) -> int:
        if isinstance(application_id, bool) or not isinstance(application_id, int) or application_id <= 0:
            raise BuildError('Valid application ID is required')
        return application_id

    @staticmethod
    def _approval_program(program) -> bytes:
        if not isinstance(program, (bytes, bytearray)) or not program:
            raise BuildError('Invalid approval program - compilation may have failed')
        if not 1 <= program[0] <= MAX_TEAL_VERSION:
            raise BuildError('Invalid approval program - unexpected TEAL version byte')
        return bytes(program)

    @staticmethod
    def _built(txn: transaction.Transaction) -> BuiltTransaction:
        return BuiltTransaction(
            transaction=txn,
            transaction_id=txn.get_txid(),
            payload=encode_unsigned(txn),
        )

    # ----- argument packing -----

    @staticmethod
    def deploy_arguments(commitment: bytes, amount_micro: int, owner: str) -> List[bytes]:
        if not isinstance(commitment, (bytes, bytearray)) or len(commitment) != claim_codes.COMMITMENT_SIZE:
            raise BuildError('Invalid claim hash - must be 32 bytes')
        return [
            ACTION_SETUP.encode(),
            bytes(commitment),
            amount_micro.to_bytes(8, 'big'),
            address_public_key(owner),
        ]

    @staticmethod
    def redeem_arguments(code: str) -> List[bytes]:
        return [ACTION_CLAIM.encode(), code.encode('utf-8')]

    @staticmethod
    def reclaim_arguments() -> List[bytes]:
        return [ACTION_REFUND.encode()]

    # ----- transactions -----

    def build_deploy(
        self,
        approval_program: bytes,
        sender_address: str,
        commitment: bytes,
        amount: Amount,
        params: transaction.SuggestedParams,
    ) -> BuiltTransaction:
        sender = validate_address(sender_address)
        amount_micro = to_base_units(amount)
        program = self._approval_program(approval_program)
        sp = self._params(params)

        txn = transaction.ApplicationCreateTxn(
            sender=sender,
            sp=sp,
            on_complete=transaction.OnComplete.NoOpOC,
            approval_program=program,
            clear_program=CLEAR_PROGRAM,
            global_schema=transaction.StateSchema(num_uints=GLOBAL_UINTS, num_byte_slices=GLOBAL_BYTES),
            local_schema=transaction.StateSchema(num_uints=0, num_byte_slices=0),
            app_args=self._app_args(self.deploy_arguments(commitment, amount_micro, sender)),
        )
        return self._built(txn)

    def build_fund(
        self,
        sender_address: str,
        application_id: int,
        amount: Amount,
        params: transaction.SuggestedParams,
    ) -> BuiltTransaction:
        """Payment of the claim amount plus the escrow's own payout fee."""
        sender = validate_address(sender_address)
        app_id = self._application_id(application_id)
        amount_micro = to_base_units(amount)

        txn = transaction.PaymentTxn(
            sender=sender,
            sp=self._params(params),
            receiver=logic.get_application_address(app_id),
            amt=amount_micro + INNER_TXN_FEE,
            note=FUNDING_NOTE,
        )
        return self._built(txn)

    def build_redeem(
        self,
        claimer_address: str,
        application_id: int,
        code: str,
        params: transaction.SuggestedParams,
    ) -> BuiltTransaction:
        claimer = validate_address(claimer_address)
        app_id = self._application_id(application_id)

        txn = transaction.ApplicationNoOpTxn(
            sender=claimer,
            sp=self._params(params),
            index=app_id,
            app_args=self._app_args(self.redeem_arguments(code)),
        )
        return self._built(txn)

    def build_reclaim(
        self,
        owner_address: str,
        application_id: int,
        params: transaction.SuggestedParams,
    ) -> BuiltTransaction:
        owner = validate_address(owner_address)
        app_id = self._application_id(application_id)

        txn = transaction.ApplicationNoOpTxn(
            sender=owner,
            sp=self._params(params),
            index=app_id,
            app_args=self._app_args(self.reclaim_arguments()),
        )
        return self._built(txn)

    def build_delete(
        self,
        owner_address: str,
        application_id: int,
        params: transaction.SuggestedParams,
    ) -> BuiltTransaction:
        owner = validate_address(owner_address)
        app_id = self._application_id(application_id)

        txn = transaction.ApplicationDeleteTxn(
            sender=owner,
            sp=self._params(params),
            index=app_id,
        )
        return self._built(txn)
