import threading

from django.test import SimpleTestCase

from blockchain import claim_codes
from blockchain.claim_registry import ClaimRecord, ClaimRegistry, ClaimState
from blockchain.exceptions import AlreadyClaimed, ClaimNotFound, RegistryConflict


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_record(code=None, **overrides):
    code = code or claim_codes.generate()
    values = dict(
        code=code,
        commitment=claim_codes.commit(code),
        amount=5_000_000,
        network='testnet',
        sender_address='SENDER',
        created_at=1000.0,
    )
    values.update(overrides)
    return ClaimRecord(**values)


class ClaimRegistryTest(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = ClaimRegistry(clock=self.clock)
        self.record = self.registry.put(make_record())
        self.code = self.record.code

    def test_get_unknown_code(self):
        self.assertIsNone(self.registry.get(claim_codes.generate()))
        with self.assertRaises(ClaimNotFound):
            self.registry.require(claim_codes.generate())

    def test_put_twice_conflicts(self):
        with self.assertRaises(RegistryConflict):
            self.registry.put(make_record(self.code))

    def test_get_returns_copies(self):
        copy = self.registry.get(self.code)
        copy.consumed = True
        self.assertFalse(self.registry.get(self.code).consumed)

    def test_forward_transitions(self):
        self.registry.transition(self.code, ClaimState.AWAITING_DEPLOYMENT)
        record = self.registry.assign_escrow(self.code, 42, 'ESCROW', 'DEPLOYTX')
        self.assertEqual(record.state, ClaimState.DEPLOYED)
        self.assertEqual(record.deploy_transaction_id, 'DEPLOYTX')

        record = self.registry.record_funding(self.code, 'FUNDTX')
        self.assertEqual(record.state, ClaimState.FUNDED)
        self.assertEqual(record.funding_transaction_id, 'FUNDTX')

    def test_illegal_transition(self):
        with self.assertRaises(RegistryConflict):
            self.registry.transition(self.code, ClaimState.FUNDED)

    def test_advance_ignores_illegal_edge(self):
        record = self.registry.advance(self.code, ClaimState.AWAITING_REDEMPTION)
        self.assertEqual(record.state, ClaimState.REQUESTED)

    def test_escrow_id_is_never_replaced(self):
        self.registry.assign_escrow(self.code, 42, 'ESCROW')
        # Same escrow again is fine
        self.registry.assign_escrow(self.code, 42, 'ESCROW')
        with self.assertRaises(RegistryConflict):
            self.registry.assign_escrow(self.code, 43, 'OTHER')
        self.assertEqual(self.registry.get(self.code).escrow_id, 42)

    def test_funding_requires_escrow(self):
        with self.assertRaises(RegistryConflict):
            self.registry.record_funding(self.code, 'FUNDTX')

    def test_mark_consumed_is_idempotent(self):
        first = self.registry.mark_consumed(self.code, transaction_id='TX1')
        self.clock.now += 50
        second = self.registry.mark_consumed(self.code, transaction_id='TX2')

        self.assertTrue(second.consumed)
        self.assertEqual(second.consumed_at, first.consumed_at)
        self.assertEqual(second.redeem_transaction_id, 'TX1')
        self.assertEqual(second.state, ClaimState.REDEEMED)

    def test_consumed_record_is_frozen(self):
        self.registry.assign_escrow(self.code, 42, 'ESCROW')
        self.registry.mark_consumed(self.code)
        with self.assertRaises(AlreadyClaimed):
            self.registry.record_funding(self.code, 'FUNDTX')
        with self.assertRaises(AlreadyClaimed):
            self.registry.transition(self.code, ClaimState.RECLAIMABLE)
        with self.assertRaises(AlreadyClaimed):
            self.registry.assign_escrow(self.code, 42, 'ESCROW')

    def test_find_by_escrow_is_network_scoped(self):
        self.registry.assign_escrow(self.code, 42, 'ESCROW')
        self.assertEqual(self.registry.find_by_escrow(42, 'testnet').code, self.code)
        self.assertIsNone(self.registry.find_by_escrow(42, 'mainnet'))

    def test_evict(self):
        deployed = self.registry.put(make_record())
        self.registry.assign_escrow(deployed.code, 7, 'ESCROW')
        consumed = self.registry.put(make_record())
        self.registry.mark_consumed(consumed.code)

        self.clock.now += 100
        self.assertEqual(self.registry.evict(retention_seconds=500), 0)

        self.clock.now += 1000
        self.assertEqual(self.registry.evict(retention_seconds=500), 2)
        self.assertIsNone(self.registry.get(self.code))
        self.assertIsNone(self.registry.get(consumed.code))
        # Deployed but unconsumed records stay: the escrow still holds funds
        self.assertIsNotNone(self.registry.get(deployed.code))

    def test_concurrent_mark_consumed_sets_once(self):
        results = []

        def consume():
            results.append(self.registry.mark_consumed(self.code).consumed_at)

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(set(results)), 1)
