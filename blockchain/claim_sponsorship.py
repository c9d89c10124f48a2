"""
Sponsorship gate in front of redemption.

Decides whether a claimer can pay the redemption fee and, if not, asks the
seed wallet for a top-up. A rate-limited top-up stops the redemption; any
other funding failure is logged and the redemption is attempted anyway,
the ledger will refuse it if the fee truly cannot be paid.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from django.conf import settings

from . import claim_codes
from .exceptions import ClaimEscrowError, RateLimited
from .seed_wallet_service import SeedWalletService

logger = logging.getLogger(__name__)


class SponsorshipStatus(str, Enum):
    NOT_NEEDED = 'not_needed'
    SUCCEEDED = 'succeeded'
    RATE_LIMITED = 'rate_limited'
    FAILED = 'failed'


@dataclass
class SponsorshipOutcome:
    status: SponsorshipStatus
    amount: Decimal = Decimal('0')
    transaction_id: Optional[str] = None
    message: str = ''

    @property
    def funded(self) -> bool:
        return self.status == SponsorshipStatus.SUCCEEDED


class SponsorshipGate:
    def __init__(self, funding_service: Optional[SeedWalletService] = None):
        self.funding_service = funding_service or SeedWalletService()

    def needs_sponsorship(self, address: str, network: str, minimum_balance) -> bool:
        return self.funding_service.needs_seeding(address, network, minimum_balance)

    def sponsor(self, address: str, amount, network: str, correlation_id: Optional[str] = None) -> SponsorshipOutcome:
        result = self.funding_service.fund_account(address, amount, network, correlation_id)
        if result.success:
            return SponsorshipOutcome(
                status=SponsorshipStatus.SUCCEEDED,
                amount=result.amount,
                transaction_id=result.transaction_id,
                message=result.message,
            )
        if result.reason == 'rate_limited':
            return SponsorshipOutcome(status=SponsorshipStatus.RATE_LIMITED, message=result.message)
        return SponsorshipOutcome(status=SponsorshipStatus.FAILED, message=result.message)

    def ensure_fee_coverage(self, address: str, network: str, correlation_id: Optional[str] = None) -> SponsorshipOutcome:
        """
        Top up ``address`` when it cannot cover one transaction fee.

        Raises RateLimited when the seed wallet refuses for now; every other
        problem is returned as a FAILED outcome.
        """
        try:
            if not self.needs_sponsorship(address, network, settings.CLAIM_SPONSOR_MIN_BALANCE):
                return SponsorshipOutcome(status=SponsorshipStatus.NOT_NEEDED)
        except ClaimEscrowError as e:
            logger.warning(f"[Sponsorship] Balance check failed for {address[:10]}...: {e.detail or e}")
            return SponsorshipOutcome(status=SponsorshipStatus.FAILED, message=e.user_message)

        logger.info(f"[Sponsorship] {address[:10]}... needs fee funding ({claim_codes.redact(correlation_id)})")
        outcome = self.sponsor(address, settings.CLAIM_SPONSOR_AMOUNT, network, correlation_id)
        if outcome.status == SponsorshipStatus.RATE_LIMITED:
            raise RateLimited(outcome.message or None)
        if outcome.status == SponsorshipStatus.FAILED:
            logger.warning(f"[Sponsorship] Funding failed, continuing with claim: {outcome.message}")
        return outcome
