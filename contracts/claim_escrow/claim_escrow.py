#!/usr/bin/env python3
"""
RandCash Claim Escrow Contract

Single-use hash-locked escrow. One application is deployed per claim code.

Lifecycle:
- Create: app args ["setup", commitment, amount, owner]. The template is
  rendered for one commitment/amount/owner and the creation branch refuses
  any other values, so the stored state always matches what was rendered.
- Claim: app args ["claim", preimage]. sha256(preimage) must equal the stored
  commitment and the escrow must be unclaimed. Pays `amount` to the caller and
  closes the remainder to the caller.
- Refund: app args ["refund"]. Only the owner, only once RECLAIM_TIMEOUT has
  elapsed since creation, only if unclaimed. Pays `amount` back to the owner.
- CloseOut / DeleteApplication: owner only, escrow balance at or below DUST.

Global state:
- hash (bytes): sha256 of the claim code
- amount (uint): payout in microAlgos
- sender (bytes): owner public key
- created (uint): LatestTimestamp at creation
- claimed (uint): 0 until claim or refund, then 1
"""

from pyteal import *

# Constants
RECLAIM_TIMEOUT_SECONDS = 300         # 5 minutes
DUST_THRESHOLD = 10_000               # 0.01 ALGO left for fees/minimum balance
INNER_TXN_FEE = 1000                  # paid by the escrow for its payout
TEAL_VERSION = 6

GLOBAL_UINTS = 3                      # amount, created, claimed
GLOBAL_BYTES = 2                      # hash, sender

# #pragma version 6; int 1; return
CLEAR_PROGRAM = bytes([0x06, 0x81, 0x01])

ACTION_SETUP = "setup"
ACTION_CLAIM = "claim"
ACTION_REFUND = "refund"


def claim_escrow(commitment: bytes, owner: str, amount: int):
    """
    Claim escrow approval program for one claim

    Args:
        commitment: 32-byte sha256 digest of the claim code
        owner: sender address allowed to refund and delete
        amount: payout in microAlgos
    """
    if len(commitment) != 32:
        raise ValueError("commitment must be 32 bytes")
    if amount <= 0:
        raise ValueError("amount must be positive")

    hash_key = Bytes("hash")
    amount_key = Bytes("amount")
    sender_key = Bytes("sender")
    created_key = Bytes("created")
    claimed_key = Bytes("claimed")

    expected_hash = Bytes("base16", commitment.hex())
    expected_owner = Addr(owner)

    @Subroutine(TealType.uint64)
    def initialize():
        return Seq([
            Assert(Txn.application_args.length() == Int(4)),
            Assert(Txn.application_args[0] == Bytes(ACTION_SETUP)),
            Assert(Txn.application_args[1] == expected_hash),
            Assert(Len(Txn.application_args[2]) == Int(8)),
            Assert(Btoi(Txn.application_args[2]) == Int(amount)),
            Assert(Txn.application_args[3] == expected_owner),
            Assert(Txn.sender() == expected_owner),
            Assert(Txn.rekey_to() == Global.zero_address()),

            App.globalPut(hash_key, Txn.application_args[1]),
            App.globalPut(amount_key, Btoi(Txn.application_args[2])),
            App.globalPut(sender_key, Txn.application_args[3]),
            App.globalPut(created_key, Global.latest_timestamp()),
            App.globalPut(claimed_key, Int(0)),

            Int(1)
        ])

    @Subroutine(TealType.none)
    def pay_out(receiver: Expr):
        return Seq([
            InnerTxnBuilder.Begin(),
            InnerTxnBuilder.SetFields({
                TxnField.type_enum: TxnType.Payment,
                TxnField.receiver: receiver,
                TxnField.amount: App.globalGet(amount_key),
                TxnField.fee: Int(INNER_TXN_FEE),
                TxnField.close_remainder_to: receiver,
            }),
            InnerTxnBuilder.Submit(),
        ])

    def escrow_covers_payout():
        return Balance(Global.current_application_address()) >= (
            App.globalGet(amount_key) + Int(INNER_TXN_FEE)
        )

    # Redeem with the plaintext claim code
    @Subroutine(TealType.uint64)
    def claim():
        return Seq([
            Assert(Txn.application_args.length() == Int(2)),
            Assert(Sha256(Txn.application_args[1]) == App.globalGet(hash_key)),
            Assert(App.globalGet(claimed_key) == Int(0)),
            Assert(Txn.rekey_to() == Global.zero_address()),
            Assert(escrow_covers_payout()),

            App.globalPut(claimed_key, Int(1)),
            pay_out(Txn.sender()),

            Log(Concat(Bytes("CLAIM|"), Itob(App.globalGet(amount_key)))),
            Int(1)
        ])

    # Owner reclaim after the timeout
    @Subroutine(TealType.uint64)
    def refund():
        return Seq([
            Assert(
                Global.latest_timestamp() - App.globalGet(created_key)
                >= Int(RECLAIM_TIMEOUT_SECONDS)
            ),
            Assert(App.globalGet(claimed_key) == Int(0)),
            Assert(Txn.sender() == App.globalGet(sender_key)),
            Assert(Txn.rekey_to() == Global.zero_address()),
            Assert(escrow_covers_payout()),

            App.globalPut(claimed_key, Int(1)),
            pay_out(App.globalGet(sender_key)),

            Log(Concat(Bytes("REFUND|"), Itob(App.globalGet(amount_key)))),
            Int(1)
        ])

    # CloseOut and DeleteApplication share the same guard
    @Subroutine(TealType.uint64)
    def teardown():
        return Seq([
            Assert(Txn.sender() == App.globalGet(sender_key)),
            Assert(
                Balance(Global.current_application_address()) <= Int(DUST_THRESHOLD)
            ),
            Int(1)
        ])

    program = Cond(
        [Txn.application_id() == Int(0), initialize()],

        [Txn.on_completion() == OnComplete.UpdateApplication, Int(0)],
        [Txn.on_completion() == OnComplete.OptIn, Int(0)],
        [Txn.on_completion() == OnComplete.CloseOut, teardown()],
        [Txn.on_completion() == OnComplete.DeleteApplication, teardown()],

        [Txn.on_completion() == OnComplete.NoOp, Cond(
            [Txn.application_args[0] == Bytes(ACTION_CLAIM), claim()],
            [Txn.application_args[0] == Bytes(ACTION_REFUND), refund()],
        )]
    )

    return program


def compile_claim_escrow(commitment: bytes, owner: str, amount: int) -> str:
    return compileTeal(claim_escrow(commitment, owner, amount), Mode.Application, version=TEAL_VERSION)

