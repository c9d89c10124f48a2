from decimal import Decimal
from unittest.mock import MagicMock

from algosdk import account
from django.core.cache import cache
from django.test import SimpleTestCase, override_settings

from blockchain import claim_codes
from blockchain.claim_escrow_transaction_builder import ClaimEscrowTransactionBuilder, decode_deploy_arguments
from blockchain.claim_orchestrator import ClaimOrchestrator
from blockchain.claim_registry import ClaimRegistry, ClaimState
from blockchain.claim_sponsorship import SponsorshipGate
from blockchain.exceptions import (
    AlreadyClaimed,
    AlreadyRefunded,
    ClaimNotFound,
    ConfirmationTimeout,
    ContractNotDeployed,
    ContractNotEmpty,
    InsufficientEscrowBalance,
    InvalidAmount,
    InvalidClaimCode,
    InvalidNetwork,
    InvalidRecipient,
    NetworkError,
    NotEscrowOwner,
    ProgramRejected,
    RateLimited,
    ReclaimNotYetAvailable,
    RegistryConflict,
)
from blockchain.seed_wallet_service import SeedWalletService
from blockchain.tests.fakes import FakeAlgod, sign
from notifications.claim_email import NotificationResult

NO_SEED_WALLET = {'testnet': '', 'mainnet': ''}


@override_settings(SEED_WALLET_MNEMONICS=NO_SEED_WALLET, CLAIM_RECLAIM_TIMEOUT_SECONDS=300)
class ClaimOrchestratorTestBase(SimpleTestCase):
    def setUp(self):
        cache.clear()
        self.algod = FakeAlgod()
        self.registry = ClaimRegistry()
        self.notifier = MagicMock(return_value=NotificationResult(success=True, method='simulated'))
        self.orchestrator = self.make_orchestrator(self.registry)

        self.sender_key, self.sender = account.generate_account()
        self.claimer_key, self.claimer = account.generate_account()
        self.algod.fund(self.sender, 20_000_000)
        self.algod.fund(self.claimer, 1_000_000)

    def make_orchestrator(self, registry):
        return ClaimOrchestrator(
            registry=registry,
            ledger_factory=self.algod.ledger_factory,
            sponsorship=SponsorshipGate(SeedWalletService(ledger_factory=self.algod.ledger_factory)),
            notifier=self.notifier,
        )

    def deploy(self, amount='5.0', recipient='friend@example.com', message='Enjoy'):
        creation = self.orchestrator.create_claim(amount, self.sender, 'testnet', recipient=recipient, message=message)
        result = self.orchestrator.submit_transaction(
            sign(creation.deployment_transaction, self.sender_key), 'testnet', creation.claim_code,
        )
        return creation, result

    def fund(self, code):
        unsigned = self.orchestrator.fund_contract(self.sender, 'testnet', claim_code=code)
        return self.orchestrator.submit_funding_transaction(
            sign(unsigned.transaction_to_sign, self.sender_key), 'testnet', code,
        )

    def redeem(self, code, orchestrator=None, key=None, address=None):
        orchestrator = orchestrator or self.orchestrator
        unsigned = orchestrator.claim_funds(code, address or self.claimer, 'testnet')
        return orchestrator.submit_claim(sign(unsigned.transaction_to_sign, key or self.claimer_key), code, 'testnet')

    def escrow_balance(self, app_id):
        return self.algod.balances.get(self.algod.ledger_factory('testnet').application_address(app_id), 0)


class CreateAndDeployTest(ClaimOrchestratorTestBase):
    def test_deployment_carries_commitment_of_returned_code(self):
        creation = self.orchestrator.create_claim('5.0', self.sender, 'testnet')

        args = decode_deploy_arguments(creation.deployment_transaction)
        self.assertEqual(args.commitment, claim_codes.commit(creation.claim_code))
        self.assertEqual(args.amount, 5_000_000)
        self.assertEqual(args.owner, self.sender)
        self.assertEqual(creation.amount, Decimal('5'))
        self.assertTrue(creation.program_hash)

        record = self.registry.get(creation.claim_code)
        self.assertEqual(record.state, ClaimState.AWAITING_DEPLOYMENT)
        self.assertIsNone(record.escrow_id)

    def test_create_validates_inputs(self):
        with self.assertRaises(InvalidNetwork):
            self.orchestrator.create_claim('1', self.sender, 'devnet')
        with self.assertRaises(InvalidRecipient):
            self.orchestrator.create_claim('1', self.sender, 'testnet', recipient='nobody')
        self.assertEqual(len(self.registry), 0)

    def test_oversized_amount_is_invalid(self):
        with self.assertRaises(InvalidAmount):
            self.orchestrator.create_claim('1e20', self.sender, 'testnet')
        self.assertEqual(len(self.registry), 0)

    def test_failed_build_records_nothing(self):
        self.algod.unreachable = True
        with self.assertRaises(NetworkError):
            self.orchestrator.create_claim('5.0', self.sender, 'testnet')
        self.assertEqual(len(self.registry), 0)

    def test_submit_binds_escrow_and_notifies(self):
        creation, result = self.deploy()

        record = self.registry.get(creation.claim_code)
        self.assertEqual(record.escrow_id, result.application_id)
        self.assertEqual(record.escrow_address, result.contract_address)
        self.assertEqual(record.state, ClaimState.DEPLOYED)
        self.assertTrue(result.notification_sent)
        self.notifier.assert_called_once_with(
            'friend@example.com', creation.claim_code, Decimal('5'), 'Enjoy', 'testnet', result.application_id,
        )

    def test_notification_failure_does_not_undo_deployment(self):
        self.notifier.side_effect = RuntimeError('smtp down')
        creation, result = self.deploy()
        self.assertFalse(result.notification_sent)
        self.assertEqual(self.registry.get(creation.claim_code).escrow_id, result.application_id)

    def test_no_recipient_no_notification(self):
        _, result = self.deploy(recipient=None)
        self.notifier.assert_not_called()
        self.assertEqual(result.notification_method, 'not_attempted')

    def test_signed_deployment_must_match_claim(self):
        first = self.orchestrator.create_claim('5.0', self.sender, 'testnet')
        second = self.orchestrator.create_claim('5.0', self.sender, 'testnet')
        with self.assertRaises(RegistryConflict):
            self.orchestrator.submit_transaction(
                sign(first.deployment_transaction, self.sender_key), 'testnet', second.claim_code,
            )
        self.assertEqual(self.algod.sent, [])

    def test_confirmation_timeout_leaves_claim_pending(self):
        self.algod.never_confirm = True
        creation = self.orchestrator.create_claim('5.0', self.sender, 'testnet')
        with self.assertRaises(ConfirmationTimeout):
            self.orchestrator.submit_transaction(
                sign(creation.deployment_transaction, self.sender_key), 'testnet', creation.claim_code,
            )
        record = self.registry.get(creation.claim_code)
        self.assertIsNone(record.escrow_id)
        self.assertEqual(record.state, ClaimState.AWAITING_DEPLOYMENT)


class RedeemTest(ClaimOrchestratorTestBase):
    def test_five_unit_claim_end_to_end(self):
        creation, deployed = self.deploy('5.0')
        app_id = deployed.application_id

        funded = self.fund(creation.claim_code)
        self.assertEqual(self.escrow_balance(app_id), 5_001_000)
        self.assertEqual(self.registry.get(creation.claim_code).funding_transaction_id, funded.transaction_id)

        result = self.redeem(creation.claim_code)

        self.assertEqual(result.amount, Decimal('5'))
        self.assertEqual(result.message, 'Enjoy')
        self.assertEqual(self.escrow_balance(app_id), 0)
        self.assertEqual(self.algod.escrows[app_id].claimed, 1)
        # claimer paid one fee, received the amount; the escrow paid its own inner fee
        self.assertEqual(self.algod.balances[self.claimer], 1_000_000 - 1000 + 5_000_000)

        record = self.registry.get(creation.claim_code)
        self.assertTrue(record.consumed)
        self.assertEqual(record.state, ClaimState.REDEEMED)
        self.assertEqual(record.redeem_transaction_id, result.transaction_id)

    def test_second_redeem_with_same_registry(self):
        creation, _ = self.deploy()
        self.fund(creation.claim_code)
        self.redeem(creation.claim_code)
        sent = len(self.algod.sent)

        with self.assertRaises(AlreadyClaimed):
            self.orchestrator.claim_funds(creation.claim_code, self.claimer, 'testnet')
        self.assertEqual(len(self.algod.sent), sent)

    def test_second_redeem_fails_at_confirmation(self):
        creation, deployed = self.deploy()
        self.fund(creation.claim_code)
        code = creation.claim_code

        # A second process that knows the code prepares its own redemption
        other_registry = ClaimRegistry()
        other = self.make_orchestrator(other_registry)
        other_key, other_address = account.generate_account()
        self.algod.fund(other_address, 1_000_000)
        second = other.claim_with_code(deployed.application_id, code, other_address, 'testnet')

        self.redeem(code)
        consumed_at = self.registry.get(code).consumed_at

        self.algod.reject_on_confirmation = True
        with self.assertRaises(AlreadyClaimed):
            other.submit_claim(sign(second.transaction_to_sign, other_key), code, 'testnet')

        self.assertTrue(other_registry.get(code).consumed)
        self.assertEqual(self.registry.get(code).consumed_at, consumed_at)
        self.assertEqual(self.algod.balances[other_address], 1_000_000)

    def test_wrong_preimage_is_rejected_by_program(self):
        creation, deployed = self.deploy()
        self.fund(creation.claim_code)
        params = self.algod.suggested_params()
        forged = ClaimEscrowTransactionBuilder().build_redeem(
            self.claimer, deployed.application_id, claim_codes.generate(), params,
        )

        with self.assertRaises(ProgramRejected):
            self.orchestrator.submit_claim(
                sign(forged.payload, self.claimer_key), creation.claim_code, 'testnet',
            )
        self.assertFalse(self.registry.get(creation.claim_code).consumed)
        self.assertEqual(self.algod.escrows[deployed.application_id].claimed, 0)

    def test_never_funded_and_overdrawn_are_distinct(self):
        never, _ = self.deploy()
        with self.assertRaises(InsufficientEscrowBalance) as unfunded:
            self.orchestrator.claim_funds(never.claim_code, self.claimer, 'testnet')
        self.assertTrue(unfunded.exception.never_funded)

        drained, deployed = self.deploy()
        self.fund(drained.claim_code)
        address = self.algod.ledger_factory('testnet').application_address(deployed.application_id)
        self.algod.balances[address] = 2_000_000
        with self.assertRaises(InsufficientEscrowBalance) as overdrawn:
            self.orchestrator.claim_funds(drained.claim_code, self.claimer, 'testnet')

        self.assertFalse(overdrawn.exception.never_funded)
        self.assertEqual(overdrawn.exception.required, 5_001_000)
        self.assertNotEqual(unfunded.exception.user_message, overdrawn.exception.user_message)

    def test_claim_lookup_errors(self):
        with self.assertRaises(ClaimNotFound):
            self.orchestrator.claim_funds(claim_codes.generate(), self.claimer, 'testnet')
        with self.assertRaises(InvalidClaimCode):
            self.orchestrator.claim_funds('not-a-code', self.claimer, 'testnet')

        creation = self.orchestrator.create_claim('1', self.sender, 'testnet')
        with self.assertRaises(ContractNotDeployed):
            self.orchestrator.claim_funds(creation.claim_code, self.claimer, 'testnet')
        with self.assertRaises(InvalidNetwork):
            self.orchestrator.claim_funds(creation.claim_code, self.claimer, 'mainnet')

    def test_code_is_case_insensitive(self):
        creation, _ = self.deploy()
        self.fund(creation.claim_code)
        unsigned = self.orchestrator.claim_funds(creation.claim_code.lower(), self.claimer, 'testnet')
        self.assertEqual(unsigned.claim_code, creation.claim_code)
        self.assertEqual(unsigned.state, ClaimState.AWAITING_REDEMPTION)

    def test_claim_detects_redemption_made_elsewhere(self):
        creation, deployed = self.deploy()
        self.fund(creation.claim_code)
        other = self.make_orchestrator(ClaimRegistry())
        unsigned = other.claim_with_code(deployed.application_id, creation.claim_code, self.claimer, 'testnet')
        other.submit_claim(sign(unsigned.transaction_to_sign, self.claimer_key), creation.claim_code, 'testnet')

        with self.assertRaises(AlreadyClaimed):
            self.orchestrator.claim_funds(creation.claim_code, self.claimer, 'testnet')
        self.assertTrue(self.registry.get(creation.claim_code).consumed)

    def test_claim_with_code_rebuilds_registry(self):
        creation, deployed = self.deploy()
        self.fund(creation.claim_code)

        fresh = ClaimRegistry()
        other = self.make_orchestrator(fresh)
        unsigned = other.claim_with_code(deployed.application_id, creation.claim_code, self.claimer, 'testnet')

        record = fresh.get(creation.claim_code)
        self.assertEqual(record.escrow_id, deployed.application_id)
        self.assertEqual(record.amount, 5_000_000)
        self.assertEqual(record.sender_address, self.sender)

        result = other.submit_claim(sign(unsigned.transaction_to_sign, self.claimer_key), creation.claim_code, 'testnet')
        self.assertEqual(result.state, ClaimState.REDEEMED)

    def test_claim_with_wrong_code(self):
        _, deployed = self.deploy()
        with self.assertRaises(InvalidClaimCode):
            self.orchestrator.claim_with_code(deployed.application_id, claim_codes.generate(), self.claimer, 'testnet')

    def test_rate_limited_sponsorship_stops_claim(self):
        creation, _ = self.deploy()
        self.fund(creation.claim_code)
        self.orchestrator.sponsorship = MagicMock()
        self.orchestrator.sponsorship.ensure_fee_coverage.side_effect = RateLimited()

        with self.assertRaises(RateLimited):
            self.orchestrator.claim_funds(creation.claim_code, self.claimer, 'testnet')
        self.assertEqual(self.registry.get(creation.claim_code).state, ClaimState.FUNDED)


class ReclaimAndDeleteTest(ClaimOrchestratorTestBase):
    def test_reclaim_rejected_at_60s_accepted_at_301s(self):
        creation, deployed = self.deploy('5.0')
        self.fund(creation.claim_code)
        app_id = deployed.application_id

        self.algod.advance(60)
        with self.assertRaises(ReclaimNotYetAvailable) as early:
            self.orchestrator.refund_funds(app_id, self.sender, 'testnet')
        self.assertEqual(early.exception.seconds_remaining, 240)

        # The program refuses it too, whatever the off-chain check says
        forged = ClaimEscrowTransactionBuilder().build_reclaim(self.sender, app_id, self.algod.suggested_params())
        with self.assertRaises(ProgramRejected):
            self.orchestrator.submit_refund(sign(forged.payload, self.sender_key), app_id, 'testnet')

        self.algod.advance(241)
        before = self.algod.balances[self.sender]
        unsigned = self.orchestrator.refund_funds(app_id, self.sender, 'testnet')
        self.assertEqual(unsigned.state, ClaimState.RECLAIMABLE)

        result = self.orchestrator.submit_refund(sign(unsigned.transaction_to_sign, self.sender_key), app_id, 'testnet')

        self.assertEqual(result.state, ClaimState.RECLAIMED)
        self.assertEqual(self.algod.balances[self.sender], before - 1000 + 5_000_000)
        record = self.registry.get(creation.claim_code)
        self.assertTrue(record.consumed)
        self.assertEqual(record.state, ClaimState.RECLAIMED)

        with self.assertRaises(AlreadyRefunded) as reclaimed:
            self.orchestrator.claim_funds(creation.claim_code, self.claimer, 'testnet')
        self.assertIn('reclaimed', reclaimed.exception.user_message)
        with self.assertRaises(AlreadyRefunded):
            self.orchestrator.submit_claim('SIGNED', creation.claim_code, 'testnet')
        with self.assertRaises(AlreadyRefunded):
            self.orchestrator.fund_contract(self.sender, 'testnet', claim_code=creation.claim_code)

    def test_reclaim_only_by_owner(self):
        _, deployed = self.deploy()
        self.algod.advance(301)
        with self.assertRaises(NotEscrowOwner):
            self.orchestrator.refund_funds(deployed.application_id, self.claimer, 'testnet')

    def test_reclaim_after_redemption(self):
        creation, deployed = self.deploy()
        self.fund(creation.claim_code)
        self.redeem(creation.claim_code)
        self.algod.advance(301)
        with self.assertRaises(AlreadyRefunded):
            self.orchestrator.refund_funds(deployed.application_id, self.sender, 'testnet')

    def test_delete_after_redemption(self):
        creation, deployed = self.deploy()
        app_id = deployed.application_id

        self.fund(creation.claim_code)
        with self.assertRaises(ContractNotEmpty):
            self.orchestrator.delete_contract(app_id, self.sender, 'testnet')

        self.redeem(creation.claim_code)
        with self.assertRaises(NotEscrowOwner):
            self.orchestrator.delete_contract(app_id, self.claimer, 'testnet')

        unsigned = self.orchestrator.delete_contract(app_id, self.sender, 'testnet')
        self.assertEqual(unsigned.state, ClaimState.DELETABLE)
        result = self.orchestrator.submit_delete(sign(unsigned.transaction_to_sign, self.sender_key), app_id, 'testnet')

        self.assertEqual(result.state, ClaimState.DELETED)
        self.assertNotIn(app_id, self.algod.escrows)
        with self.assertRaises(ContractNotDeployed):
            self.orchestrator.delete_contract(app_id, self.sender, 'testnet')


class QueriesTest(ClaimOrchestratorTestBase):
    def test_wallet_contracts(self):
        active, _ = self.deploy('1')
        self.fund(active.claim_code)
        redeemed, _ = self.deploy('2')
        self.fund(redeemed.claim_code)
        self.redeem(redeemed.claim_code)
        self.deploy('3')

        summary = self.orchestrator.wallet_contracts(self.sender, 'testnet')
        statuses = sorted(c.status for c in summary.contracts)
        self.assertEqual(statuses, ['Active', 'Claimed', 'Empty'])
        self.assertEqual(summary.total_contracts, 3)
        self.assertEqual(summary.active_contracts, 1)
        self.assertEqual(summary.claimed_contracts, 1)
        self.assertEqual(summary.refundable_contracts, 0)
        self.assertEqual(summary.deletable_contracts, 2)

        self.algod.advance(301)
        summary = self.orchestrator.wallet_contracts(self.sender, 'testnet')
        by_amount = {c.amount: c for c in summary.contracts}
        self.assertEqual(by_amount[Decimal('1')].status, 'Refundable')
        self.assertEqual(by_amount[Decimal('1')].lifecycle, ClaimState.RECLAIMABLE)
        self.assertEqual(by_amount[Decimal('2')].lifecycle, ClaimState.DELETABLE)
        self.assertEqual(summary.refundable_contracts, 2)

    def test_health(self):
        report = self.orchestrator.health('testnet')
        self.assertEqual(report.status, 'OK')
        self.assertEqual(report.last_round, self.algod.round)
        self.assertFalse(report.seed_wallet_configured)

        self.algod.unreachable = True
        report = self.orchestrator.health('testnet')
        self.assertEqual(report.status, 'ERROR')
        self.assertIsNone(report.last_round)

    def test_pending_claims_and_evict(self):
        creation, deployed = self.deploy()
        self.orchestrator.create_claim('1', self.sender, 'testnet')

        pending = self.orchestrator.pending_claims()
        self.assertEqual(len(pending), 2)
        self.assertTrue(all(p.code.endswith('...') and len(p.code) == 11 for p in pending))
        self.assertIn(deployed.application_id, [p.application_id for p in pending])

        self.assertEqual(self.orchestrator.evict(retention_seconds=0), 1)
        self.assertIsNotNone(self.registry.get(creation.claim_code))

    def test_fund_by_application_id(self):
        _, deployed = self.deploy()
        unsigned = self.orchestrator.fund_contract(
            self.sender, 'testnet', amount='5', application_id=deployed.application_id,
        )
        self.assertEqual(unsigned.amount, Decimal('5'))
        self.orchestrator.submit_funding_transaction(sign(unsigned.transaction_to_sign, self.sender_key), 'testnet')
        self.assertEqual(self.escrow_balance(deployed.application_id), 5_001_000)
