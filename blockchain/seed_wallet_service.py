"""
Service to top up claimer wallets from the seed wallet

A claimer with an empty wallet cannot pay the fee of the redemption
transaction. The seed wallet sends a small amount first, rate limited per
wallet address and per claim code through the Django cache.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from algosdk import account, encoding, mnemonic
from algosdk.transaction import PaymentTxn
from django.conf import settings
from django.core.cache import cache

from . import claim_codes
from .algorand_client import AlgorandClient
from .exceptions import ClaimEscrowError
from .validators import from_base_units, to_base_units, validate_address, validate_network

logger = logging.getLogger(__name__)

SEED_NOTE = b"RandCash fee sponsorship"
# An account holding nothing cannot be sent less than the base minimum balance
BASE_MIN_BALANCE = 100_000
PAYMENT_FEE = 1000


@dataclass
class SponsorshipResult:
    success: bool
    amount: Decimal = Decimal('0')
    transaction_id: Optional[str] = None
    seed_wallet_balance: Optional[Decimal] = None
    reason: Optional[str] = None          # 'rate_limited', 'not_configured', 'insufficient_seed_balance', 'network_error'
    message: str = ''


@dataclass
class SeedWalletStatus:
    configured: bool
    address: Optional[str] = None
    balance: Optional[Decimal] = None
    error: Optional[str] = None


class SeedWalletService:
    """Funds claimer wallets for redemption fees, one network mnemonic per network"""

    RATE_LIMIT_ADDRESS_KEY = 'seed_wallet:address:{network}:{address}'
    RATE_LIMIT_CODE_KEY = 'seed_wallet:code:{network}:{code}'

    def __init__(self, ledger_factory: Callable[[str], AlgorandClient] = AlgorandClient):
        self.ledger_factory = ledger_factory

    def _private_key(self, network: str) -> Optional[str]:
        phrase = (settings.SEED_WALLET_MNEMONICS or {}).get(network) or ''
        if not phrase.strip():
            return None
        return mnemonic.to_private_key(phrase.strip())

    def is_configured(self, network: str) -> bool:
        return bool(((settings.SEED_WALLET_MNEMONICS or {}).get(network) or '').strip())

    def address(self, network: str) -> Optional[str]:
        key = self._private_key(network)
        return account.address_from_private_key(key) if key else None

    def status(self, network: str) -> SeedWalletStatus:
        network = validate_network(network)
        address = self.address(network)
        if not address:
            return SeedWalletStatus(configured=False)
        try:
            balance = self.ledger_factory(network).get_balance(address)
        except ClaimEscrowError as e:
            logger.warning(f"[SeedWallet] Could not read seed wallet balance on {network}: {e.detail or e}")
            return SeedWalletStatus(configured=True, address=address, error=e.user_message)
        return SeedWalletStatus(configured=True, address=address, balance=from_base_units(balance))

    def needs_seeding(self, address: str, network: str, minimum_balance) -> bool:
        """True when the wallet's spendable balance is below ``minimum_balance`` (ALGO)"""
        address = validate_address(address)
        ledger = self.ledger_factory(validate_network(network))
        return ledger.get_spendable_balance(address) < to_base_units(minimum_balance)

    def _acquire_rate_limit(self, network: str, address: str, claim_code: Optional[str]) -> bool:
        window = settings.SEED_WALLET_RATE_LIMIT_SECONDS
        address_key = self.RATE_LIMIT_ADDRESS_KEY.format(network=network, address=address)
        if not cache.add(address_key, True, timeout=window):
            return False
        if claim_code:
            code_key = self.RATE_LIMIT_CODE_KEY.format(network=network, code=claim_codes.commit(claim_code).hex())
            if not cache.add(code_key, True, timeout=window):
                cache.delete(address_key)
                return False
        return True

    def _release_rate_limit(self, network: str, address: str, claim_code: Optional[str]):
        cache.delete(self.RATE_LIMIT_ADDRESS_KEY.format(network=network, address=address))
        if claim_code:
            cache.delete(self.RATE_LIMIT_CODE_KEY.format(network=network, code=claim_codes.commit(claim_code).hex()))

    def fund_account(self, address: str, amount, network: str, claim_code: Optional[str] = None) -> SponsorshipResult:
        """
        Send ``amount`` ALGO (or more, if the account needs its minimum balance
        covered first) from the seed wallet to ``address``.

        Returns a SponsorshipResult; only input validation errors raise.
        """
        address = validate_address(address)
        network = validate_network(network)
        requested = to_base_units(amount)

        private_key = self._private_key(network)
        if not private_key:
            logger.info(f"[SeedWallet] Seed wallet not configured for {network}, skipping funding")
            return SponsorshipResult(success=False, reason='not_configured', message='Seed wallet service not configured')

        if not self._acquire_rate_limit(network, address, claim_code):
            logger.info(f"[SeedWallet] Rate limited {address[:10]}... ({claim_codes.redact(claim_code)})")
            return SponsorshipResult(
                success=False,
                reason='rate_limited',
                message='This wallet was funded recently. Please try again later.',
            )

        seed_address = account.address_from_private_key(private_key)
        ledger = self.ledger_factory(network)
        try:
            target = ledger.account_info(address)
            current = int(target.get('amount', 0))
            required = max(int(target.get('min-balance', 0)), BASE_MIN_BALANCE) + PAYMENT_FEE
            funding_amount = max(requested, required - current)

            seed_info = ledger.account_info(seed_address)
            seed_available = int(seed_info.get('amount', 0)) - int(seed_info.get('min-balance', 0))
            reserve = to_base_units(settings.SEED_WALLET_MIN_RESERVE)
            if seed_available < funding_amount + PAYMENT_FEE + reserve:
                logger.error(f"[SeedWallet] Seed wallet low on {network}: {seed_available} < {funding_amount}")
                self._release_rate_limit(network, address, claim_code)
                return SponsorshipResult(
                    success=False,
                    reason='insufficient_seed_balance',
                    seed_wallet_balance=from_base_units(int(seed_info.get('amount', 0))),
                    message='Seed wallet has insufficient balance',
                )

            txn = PaymentTxn(
                sender=seed_address,
                sp=ledger.suggested_params(),
                receiver=address,
                amt=funding_amount,
                note=SEED_NOTE,
            )
            signed_txn = txn.sign(private_key)
            tx_id = ledger.send_raw_transaction(encoding.msgpack_encode(signed_txn))
            ledger.wait_for_confirmation(tx_id)
            seed_balance = ledger.get_balance(seed_address)
        except ClaimEscrowError as e:
            logger.error(f"[SeedWallet] Funding {address[:10]}... failed: {e.detail or e}")
            self._release_rate_limit(network, address, claim_code)
            return SponsorshipResult(success=False, reason='network_error', message=e.user_message)

        logger.info(f"[SeedWallet] Funded {address[:10]}... with {funding_amount} microAlgos, tx {tx_id}")
        return SponsorshipResult(
            success=True,
            amount=from_base_units(funding_amount),
            transaction_id=tx_id,
            seed_wallet_balance=from_base_units(seed_balance),
            message='Account funded',
        )
