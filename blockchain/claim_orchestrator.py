"""
Claim escrow lifecycle orchestration.

Sequences create → deploy → fund → redeem, and the create → reclaim → delete
branch, over the transaction builder, the ledger client, the registry and the
sponsorship gate. Every submission is followed by a confirmation wait and the
registry is only updated from confirmed results.

The ledger is the source of truth: when the escrow program rejects a
redemption, the escrow's ``claimed`` flag is re-read and decides between
"already claimed" and a plain program rejection.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Callable, List, Optional

from django.conf import settings

from contracts.claim_escrow.claim_escrow import INNER_TXN_FEE, compile_claim_escrow

from . import claim_codes
from .algorand_client import AlgorandClient, ConfirmedReceipt
from .algorand_config import get_network_config
from .claim_escrow_transaction_builder import ClaimEscrowTransactionBuilder, decode_deploy_arguments
from .claim_registry import ClaimRecord, ClaimRegistry, ClaimState
from .claim_sponsorship import SponsorshipGate, SponsorshipStatus
from .escrow_state import EscrowState
from .exceptions import (
    AlreadyClaimed,
    AlreadyRefunded,
    ClaimEscrowError,
    ClaimNotFound,
    ContractNotDeployed,
    ContractNotEmpty,
    InsufficientEscrowBalance,
    InvalidClaimCode,
    InvalidNetwork,
    MalformedReceipt,
    NotEscrowOwner,
    ProgramRejected,
    ReclaimNotYetAvailable,
    RegistryConflict,
)
from .validators import (
    from_base_units,
    normalize_claim_code,
    to_base_units,
    validate_address,
    validate_network,
    validate_recipient,
)

logger = logging.getLogger(__name__)


# ===== Results =====

@dataclass
class ClaimCreation:
    claim_code: str
    transaction_id: str
    program_hash: str
    deployment_transaction: str
    amount: Decimal
    network: str
    recipient: Optional[str] = None
    message: Optional[str] = None


@dataclass
class UnsignedTransaction:
    transaction_to_sign: str
    transaction_id: str
    application_id: Optional[int] = None
    contract_address: Optional[str] = None
    amount: Optional[Decimal] = None
    message: Optional[str] = None
    claim_code: Optional[str] = None
    sponsorship: SponsorshipStatus = SponsorshipStatus.NOT_NEEDED
    state: Optional[ClaimState] = None


@dataclass
class SubmissionResult:
    transaction_id: str
    confirmed_round: int
    application_id: Optional[int] = None
    contract_address: Optional[str] = None
    amount: Optional[Decimal] = None
    message: Optional[str] = None
    notification_sent: bool = False
    notification_method: str = 'not_attempted'
    state: Optional[ClaimState] = None


@dataclass
class WalletContract:
    application_id: int
    contract_address: str
    status: str                  # Active, Claimed, Refundable, Empty
    lifecycle: ClaimState
    amount: Decimal
    balance: Decimal
    claimed: bool
    can_refund: bool
    can_delete: bool
    created_timestamp: int
    created_date: Optional[str]


@dataclass
class WalletContracts:
    wallet_address: str
    network: str
    contracts: List[WalletContract] = field(default_factory=list)

    @property
    def total_contracts(self) -> int:
        return len(self.contracts)

    @property
    def active_contracts(self) -> int:
        return sum(1 for c in self.contracts if c.status == 'Active')

    @property
    def claimed_contracts(self) -> int:
        return sum(1 for c in self.contracts if c.status == 'Claimed')

    @property
    def refundable_contracts(self) -> int:
        return sum(1 for c in self.contracts if c.can_refund)

    @property
    def deletable_contracts(self) -> int:
        return sum(1 for c in self.contracts if c.can_delete)


@dataclass
class HealthReport:
    status: str
    timestamp: str
    network: str
    network_name: str
    node: str
    last_round: Optional[int] = None
    email: str = 'simulated'
    seed_wallet_configured: bool = False
    seed_wallet_address: Optional[str] = None
    seed_wallet_balance: Optional[Decimal] = None
    error: Optional[str] = None


@dataclass
class PendingClaim:
    code: str                    # redacted
    amount: Decimal
    network: str
    state: ClaimState
    recipient: Optional[str]
    application_id: Optional[int]
    contract_address: Optional[str]
    consumed: bool
    funding_transaction_id: Optional[str]
    created_at: float


def escrow_lifecycle_state(state: EscrowState, balance: int, now: int) -> ClaimState:
    """Where an escrow stands, read from the ledger alone."""
    if state.claimed:
        return ClaimState.DELETABLE if balance <= settings.CLAIM_ESCROW_DUST_MICROALGOS else ClaimState.REDEEMED
    if state.seconds_until_refundable(now, settings.CLAIM_RECLAIM_TIMEOUT_SECONDS) == 0:
        return ClaimState.RECLAIMABLE
    if balance >= state.amount + INNER_TXN_FEE:
        return ClaimState.FUNDED
    return ClaimState.AWAITING_FUNDING


class ClaimOrchestrator:
    def __init__(
        self,
        registry: Optional[ClaimRegistry] = None,
        ledger_factory: Callable[[str], AlgorandClient] = AlgorandClient,
        builder: Optional[ClaimEscrowTransactionBuilder] = None,
        sponsorship: Optional[SponsorshipGate] = None,
        notifier: Optional[Callable] = None,
    ):
        self.registry = registry if registry is not None else ClaimRegistry()
        self.ledger_factory = ledger_factory
        self.builder = builder or ClaimEscrowTransactionBuilder()
        self.sponsorship = sponsorship or SponsorshipGate()
        if notifier is None:
            from notifications.claim_email import send_claim_notification
            notifier = send_claim_notification
        self.notifier = notifier

    def _ledger(self, network: str) -> AlgorandClient:
        return self.ledger_factory(network)

    def _record_for(self, code: str, network: str) -> ClaimRecord:
        record = self.registry.get(code)
        if record is None:
            raise ClaimNotFound()
        if record.network != network:
            raise InvalidNetwork(f'This claim was created on {record.network}.')
        return record

    @staticmethod
    def _ensure_unconsumed(record: ClaimRecord):
        if record.state is ClaimState.RECLAIMED:
            raise AlreadyRefunded('The sender has already reclaimed these funds.')
        if record.consumed:
            raise AlreadyClaimed()

    def _submit(self, ledger: AlgorandClient, signed_transaction: str, tag: str) -> ConfirmedReceipt:
        txid = ledger.send_raw_transaction(signed_transaction)
        logger.info(f"[{tag}] Submitted {txid}, waiting for confirmation")
        receipt = ledger.wait_for_confirmation(txid)
        logger.info(f"[{tag}] {txid} confirmed in round {receipt.confirmed_round}")
        return receipt

    @staticmethod
    def _check_payout_balance(ledger: AlgorandClient, state: EscrowState, address: str,
                              funding_recorded: bool) -> int:
        balance = ledger.get_balance(address)
        required = state.amount + INNER_TXN_FEE
        if balance >= required:
            return balance
        if balance == 0 and not funding_recorded:
            raise InsufficientEscrowBalance(
                'Contract has not been funded yet. Please ask the sender to fund the claim first.',
                never_funded=True, balance=balance, required=required,
            )
        raise InsufficientEscrowBalance(
            f'Contract has insufficient funds. Has {from_base_units(balance)} ALGO but needs '
            f'{from_base_units(required)} ALGO ({from_base_units(state.amount)} + 0.001 for fees).',
            never_funded=False, balance=balance, required=required,
        )

    # ===== Create & deploy =====

    def create_claim(self, amount, sender_address: str, network: str,
                     recipient: Optional[str] = None, message: Optional[str] = None) -> ClaimCreation:
        network = validate_network(network)
        sender = validate_address(sender_address)
        amount_micro = to_base_units(amount)
        recipient = validate_recipient(recipient)

        code = claim_codes.generate()
        commitment = claim_codes.commit(code)
        logger.info(f"[CreateClaim] {from_base_units(amount_micro)} ALGO from {sender[:8]}... on {network}")

        ledger = self._ledger(network)
        compiled = ledger.compile_program(compile_claim_escrow(commitment, sender, amount_micro))
        built = self.builder.build_deploy(
            compiled.bytecode, sender, commitment, from_base_units(amount_micro), ledger.suggested_params(),
        )

        # Only claims with a deployment ready to sign are recorded
        self.registry.put(ClaimRecord(
            code=code,
            commitment=commitment,
            amount=amount_micro,
            network=network,
            sender_address=sender,
            recipient=recipient,
            message=message,
        ))
        self.registry.transition(code, ClaimState.AWAITING_DEPLOYMENT)

        logger.info(f"[CreateClaim] Deployment {built.transaction_id} ready for {claim_codes.redact(code)}")
        return ClaimCreation(
            claim_code=code,
            transaction_id=built.transaction_id,
            program_hash=compiled.digest,
            deployment_transaction=built.payload,
            amount=from_base_units(amount_micro),
            network=network,
            recipient=recipient,
            message=message,
        )

    def submit_transaction(self, signed_transaction: str, network: str,
                           claim_code: Optional[str] = None) -> SubmissionResult:
        """
        Submit a signed deployment and bind the created escrow to its claim.

        When a claim code is given, the signed transaction must create the
        escrow for that code's commitment.
        """
        network = validate_network(network)
        record = None
        if claim_code:
            code = normalize_claim_code(claim_code)
            record = self._record_for(code, network)
            deploy_args = decode_deploy_arguments(signed_transaction)
            if deploy_args.commitment != record.commitment or deploy_args.amount != record.amount:
                raise RegistryConflict('Signed transaction does not match this claim.')

        ledger = self._ledger(network)
        receipt = self._submit(ledger, signed_transaction, 'SubmitDeployment')

        app_id = receipt.application_index
        contract_address = ledger.application_address(app_id) if app_id else None
        result = SubmissionResult(
            transaction_id=receipt.transaction_id,
            confirmed_round=receipt.confirmed_round,
            application_id=app_id,
            contract_address=contract_address,
        )
        if record is None:
            return result
        if not app_id:
            raise MalformedReceipt(detail=f'{receipt.transaction_id}: deployment without application-index')

        record = self.registry.assign_escrow(record.code, app_id, contract_address, receipt.transaction_id)
        result.state = record.state
        result.amount = from_base_units(record.amount)
        logger.info(f"[SubmitDeployment] Escrow {app_id} bound to {claim_codes.redact(record.code)}")

        if record.recipient:
            try:
                notification = self.notifier(
                    record.recipient, record.code, from_base_units(record.amount), record.message, network, app_id,
                )
                result.notification_sent = notification.success
                result.notification_method = notification.method
            except Exception as e:
                logger.error(f"[SubmitDeployment] Notification failed for {claim_codes.redact(record.code)}: {e}")
                result.notification_method = 'failed'
        return result

    # ===== Funding =====

    def fund_contract(self, sender_address: str, network: str, amount=None,
                      claim_code: Optional[str] = None, application_id: Optional[int] = None) -> UnsignedTransaction:
        network = validate_network(network)
        sender = validate_address(sender_address)

        code = None
        if claim_code:
            code = normalize_claim_code(claim_code)
            record = self._record_for(code, network)
            self._ensure_unconsumed(record)
            if not record.is_deployed:
                raise ContractNotDeployed('Contract not yet deployed. Please submit the deployment transaction first.')
            application_id = record.escrow_id
            amount_micro = record.amount
        else:
            amount_micro = to_base_units(amount)

        ledger = self._ledger(network)
        built = self.builder.build_fund(sender, application_id, from_base_units(amount_micro), ledger.suggested_params())
        state = None
        if code:
            state = self.registry.advance(code, ClaimState.AWAITING_FUNDING).state

        logger.info(f"[FundContract] {from_base_units(amount_micro)} ALGO (+fee reserve) to app {application_id}")
        return UnsignedTransaction(
            transaction_to_sign=built.payload,
            transaction_id=built.transaction_id,
            application_id=application_id,
            contract_address=ledger.application_address(application_id),
            amount=from_base_units(amount_micro),
            claim_code=code,
            state=state,
        )

    def submit_funding_transaction(self, signed_transaction: str, network: str,
                                   claim_code: Optional[str] = None) -> SubmissionResult:
        network = validate_network(network)
        ledger = self._ledger(network)
        receipt = self._submit(ledger, signed_transaction, 'SubmitFunding')
        result = SubmissionResult(transaction_id=receipt.transaction_id, confirmed_round=receipt.confirmed_round)

        if claim_code:
            code = normalize_claim_code(claim_code)
            if self.registry.get(code) is None:
                logger.warning(f"[SubmitFunding] No claim {claim_codes.redact(code)} to attach funding {receipt.transaction_id}")
            else:
                record = self.registry.record_funding(code, receipt.transaction_id)
                result.application_id = record.escrow_id
                result.contract_address = record.escrow_address
                result.amount = from_base_units(record.amount)
                result.state = record.state
        return result

    # ===== Redemption =====

    def _prepare_redeem(self, ledger: AlgorandClient, code: str, claimer: str, network: str,
                        state: EscrowState, address: str, funding_recorded: bool):
        outcome = self.sponsorship.ensure_fee_coverage(claimer, network, code)
        self._check_payout_balance(ledger, state, address, funding_recorded)
        built = self.builder.build_redeem(claimer, state.application_id, code, ledger.suggested_params())
        return built, outcome

    def claim_funds(self, claim_code: str, claimer_address: str, network: str) -> UnsignedTransaction:
        network = validate_network(network)
        code = normalize_claim_code(claim_code)
        claimer = validate_address(claimer_address)

        record = self._record_for(code, network)
        self._ensure_unconsumed(record)
        if not record.is_deployed:
            raise ContractNotDeployed()

        logger.info(f"[ClaimFunds] {claim_codes.redact(code)} by {claimer[:8]}... on app {record.escrow_id}")
        ledger = self._ledger(network)
        state = ledger.get_escrow_state(record.escrow_id)
        if state.claimed:
            self.registry.mark_consumed(code)
            raise AlreadyClaimed()

        built, outcome = self._prepare_redeem(
            ledger, code, claimer, network, state, record.escrow_address, record.funding_transaction_id is not None,
        )
        record = self.registry.advance(code, ClaimState.AWAITING_REDEMPTION)
        return UnsignedTransaction(
            transaction_to_sign=built.payload,
            transaction_id=built.transaction_id,
            application_id=record.escrow_id,
            contract_address=record.escrow_address,
            amount=from_base_units(record.amount),
            message=record.message,
            claim_code=code,
            sponsorship=outcome.status,
            state=record.state,
        )

    def claim_with_code(self, application_id: int, claim_code: str, claimer_address: str,
                        network: str) -> UnsignedTransaction:
        """
        Redeem straight from the ledger, without a registry entry.

        The escrow's stored commitment must match the code. The registry
        record is rebuilt from the escrow state if this process has none.
        """
        network = validate_network(network)
        code = normalize_claim_code(claim_code)
        claimer = validate_address(claimer_address)

        ledger = self._ledger(network)
        state = ledger.get_escrow_state(application_id)
        if not claim_codes.matches(code, state.commitment):
            raise InvalidClaimCode()
        if state.claimed:
            if self.registry.get(code) is not None:
                self.registry.mark_consumed(code)
            raise AlreadyClaimed()

        address = ledger.application_address(state.application_id)
        record = self.registry.get(code)
        if record is None:
            self.registry.put(ClaimRecord(
                code=code,
                commitment=state.commitment,
                amount=state.amount,
                network=network,
                sender_address=state.owner,
                state=ClaimState.DEPLOYED,
                escrow_id=state.application_id,
                escrow_address=address,
            ))
            logger.info(f"[ClaimWithCode] Rebuilt claim {claim_codes.redact(code)} from app {state.application_id}")
            funding_recorded = False
        elif record.escrow_id != state.application_id:
            raise RegistryConflict('This claim code belongs to another escrow contract.')
        else:
            funding_recorded = record.funding_transaction_id is not None

        built, outcome = self._prepare_redeem(ledger, code, claimer, network, state, address, funding_recorded)
        record = self.registry.advance(code, ClaimState.AWAITING_REDEMPTION)
        return UnsignedTransaction(
            transaction_to_sign=built.payload,
            transaction_id=built.transaction_id,
            application_id=state.application_id,
            contract_address=address,
            amount=from_base_units(state.amount),
            message=record.message,
            claim_code=code,
            sponsorship=outcome.status,
            state=record.state,
        )

    def submit_claim(self, signed_transaction: str, claim_code: str, network: str) -> SubmissionResult:
        network = validate_network(network)
        code = normalize_claim_code(claim_code)
        record = self._record_for(code, network)
        self._ensure_unconsumed(record)
        if not record.is_deployed:
            raise ContractNotDeployed()

        ledger = self._ledger(network)
        try:
            receipt = self._submit(ledger, signed_transaction, 'SubmitClaim')
        except ProgramRejected:
            # The program said no; the escrow's flag says why
            if ledger.get_escrow_state(record.escrow_id).claimed:
                self.registry.mark_consumed(code)
                logger.info(f"[SubmitClaim] {claim_codes.redact(code)} was already claimed on-chain")
                raise AlreadyClaimed()
            raise

        record = self.registry.mark_consumed(code, ClaimState.REDEEMED, receipt.transaction_id)
        logger.info(f"[SubmitClaim] {claim_codes.redact(code)} redeemed, {from_base_units(record.amount)} ALGO")
        return SubmissionResult(
            transaction_id=receipt.transaction_id,
            confirmed_round=receipt.confirmed_round,
            application_id=record.escrow_id,
            contract_address=record.escrow_address,
            amount=from_base_units(record.amount),
            message=record.message,
            state=record.state,
        )

    # ===== Reclaim =====

    def refund_funds(self, application_id: int, owner_address: str, network: str) -> UnsignedTransaction:
        network = validate_network(network)
        owner = validate_address(owner_address)

        ledger = self._ledger(network)
        state = ledger.get_escrow_state(application_id)
        if state.owner != owner:
            raise NotEscrowOwner('Only the original sender can reclaim these funds.')
        if state.claimed:
            raise AlreadyRefunded()

        remaining = state.seconds_until_refundable(ledger.latest_timestamp(), settings.CLAIM_RECLAIM_TIMEOUT_SECONDS)
        if remaining > 0:
            raise ReclaimNotYetAvailable(remaining)

        address = ledger.application_address(state.application_id)
        record = self.registry.find_by_escrow(state.application_id, network)
        self._check_payout_balance(
            ledger, state, address, bool(record and record.funding_transaction_id),
        )
        built = self.builder.build_reclaim(owner, state.application_id, ledger.suggested_params())

        lifecycle = ClaimState.RECLAIMABLE
        if record and not record.consumed:
            lifecycle = self.registry.advance(record.code, ClaimState.RECLAIMABLE).state
        logger.info(f"[RefundFunds] Reclaim of app {state.application_id} prepared for {owner[:8]}...")
        return UnsignedTransaction(
            transaction_to_sign=built.payload,
            transaction_id=built.transaction_id,
            application_id=state.application_id,
            contract_address=address,
            amount=from_base_units(state.amount),
            state=lifecycle,
        )

    def submit_refund(self, signed_transaction: str, application_id: int, network: str) -> SubmissionResult:
        network = validate_network(network)
        ledger = self._ledger(network)
        try:
            receipt = self._submit(ledger, signed_transaction, 'SubmitRefund')
        except ProgramRejected:
            if ledger.get_escrow_state(application_id).claimed:
                raise AlreadyRefunded()
            raise

        record = self.registry.find_by_escrow(application_id, network)
        if record is not None:
            self.registry.mark_consumed(record.code, ClaimState.RECLAIMED, receipt.transaction_id)
        logger.info(f"[SubmitRefund] App {application_id} refunded in round {receipt.confirmed_round}")
        return SubmissionResult(
            transaction_id=receipt.transaction_id,
            confirmed_round=receipt.confirmed_round,
            application_id=application_id,
            contract_address=ledger.application_address(application_id),
            amount=from_base_units(record.amount) if record else None,
            state=ClaimState.RECLAIMED,
        )

    # ===== Teardown =====

    def delete_contract(self, application_id: int, owner_address: str, network: str) -> UnsignedTransaction:
        network = validate_network(network)
        owner = validate_address(owner_address)

        ledger = self._ledger(network)
        app_info = ledger.application_info(application_id)
        if app_info is None:
            raise ContractNotDeployed('Escrow contract not found on the network.')
        if app_info.get('params', {}).get('creator') != owner:
            raise NotEscrowOwner('Only the creator of the application can delete it')

        address = ledger.application_address(application_id)
        balance = ledger.get_balance(address)
        if balance > settings.CLAIM_ESCROW_DUST_MICROALGOS:
            raise ContractNotEmpty(
                f'Cannot delete contract with non-zero balance. Current balance: '
                f'{from_base_units(balance)} ALGO. Please refund or claim first.'
            )

        built = self.builder.build_delete(owner, application_id, ledger.suggested_params())
        logger.info(f"[DeleteContract] Delete of app {application_id} prepared")
        return UnsignedTransaction(
            transaction_to_sign=built.payload,
            transaction_id=built.transaction_id,
            application_id=application_id,
            contract_address=address,
            message='Transaction created successfully. Sign and submit to delete the contract.',
            state=ClaimState.DELETABLE,
        )

    def submit_delete(self, signed_transaction: str, application_id: int, network: str) -> SubmissionResult:
        network = validate_network(network)
        ledger = self._ledger(network)
        receipt = self._submit(ledger, signed_transaction, 'SubmitDelete')
        logger.info(f"[SubmitDelete] Contract {application_id} deleted")
        return SubmissionResult(
            transaction_id=receipt.transaction_id,
            confirmed_round=receipt.confirmed_round,
            application_id=application_id,
            message='Contract deleted successfully. Minimum balance has been freed.',
            state=ClaimState.DELETED,
        )

    # ===== Queries =====

    def wallet_contracts(self, wallet_address: str, network: str) -> WalletContracts:
        network = validate_network(network)
        wallet = validate_address(wallet_address)

        ledger = self._ledger(network)
        created_apps = ledger.created_applications(wallet)
        now = ledger.latest_timestamp() if created_apps else 0
        summary = WalletContracts(wallet_address=wallet, network=network)

        for app in created_apps:
            app_id = app.get('id')
            try:
                state = EscrowState.from_application_info(app) if app.get('params') else None
                if state is None:
                    state = ledger.get_escrow_state(app_id)
                address = ledger.application_address(app_id)
                try:
                    balance = ledger.get_balance(address)
                except ClaimEscrowError as e:
                    logger.warning(f"[WalletContracts] Could not get balance for contract {app_id}: {e.detail or e}")
                    balance = 0
            except ClaimEscrowError as e:
                logger.info(f"[WalletContracts] Skipping app {app_id}: {e.detail or e.user_message}")
                continue

            can_refund = not state.claimed and state.seconds_until_refundable(
                now, settings.CLAIM_RECLAIM_TIMEOUT_SECONDS) == 0
            if state.claimed:
                status = 'Claimed'
            elif balance > 0:
                status = 'Refundable' if can_refund else 'Active'
            else:
                status = 'Empty'

            summary.contracts.append(WalletContract(
                application_id=app_id,
                contract_address=address,
                status=status,
                lifecycle=escrow_lifecycle_state(state, balance, now),
                amount=from_base_units(state.amount),
                balance=from_base_units(balance),
                claimed=state.claimed,
                can_refund=can_refund,
                can_delete=balance <= settings.CLAIM_ESCROW_DUST_MICROALGOS,
                created_timestamp=state.created_at,
                created_date=state.created_date,
            ))

        logger.info(f"[WalletContracts] {summary.total_contracts} escrows for {wallet[:8]}... on {network}")
        return summary

    def health(self, network: str) -> HealthReport:
        from notifications.claim_email import notification_mode

        network = validate_network(network)
        cfg = get_network_config(network)
        report = HealthReport(
            status='OK',
            timestamp=datetime.now(timezone.utc).isoformat(),
            network=network,
            network_name=cfg['name'],
            node=cfg['algod_address'],
            email=notification_mode(),
        )
        try:
            report.last_round = self._ledger(network).status().get('last-round')
        except ClaimEscrowError as e:
            report.status = 'ERROR'
            report.error = e.user_message

        seed = self.sponsorship.funding_service.status(network)
        report.seed_wallet_configured = seed.configured
        report.seed_wallet_address = seed.address
        report.seed_wallet_balance = seed.balance
        return report

    def pending_claims(self) -> List[PendingClaim]:
        claims = []
        for record in self.registry.all():
            claims.append(PendingClaim(
                code=claim_codes.redact(record.code),
                amount=from_base_units(record.amount),
                network=record.network,
                state=record.state,
                recipient=record.recipient,
                application_id=record.escrow_id,
                contract_address=record.escrow_address,
                consumed=record.consumed,
                funding_transaction_id=(
                    f"{record.funding_transaction_id[:10]}..." if record.funding_transaction_id else None
                ),
                created_at=record.created_at,
            ))
        return claims

    def evict(self, retention_seconds: Optional[float] = None) -> int:
        if retention_seconds is None:
            retention_seconds = settings.CLAIM_REGISTRY_RETENTION_SECONDS
        return self.registry.evict(retention_seconds)


@lru_cache(maxsize=1)
def get_claim_orchestrator() -> ClaimOrchestrator:
    """Process-wide orchestrator; its registry lives as long as the process."""
    return ClaimOrchestrator(registry=ClaimRegistry(clock=time.time))
