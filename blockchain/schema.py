"""
Blockchain GraphQL schema - claim escrow operations
"""
import logging

import graphene
from django.conf import settings

from .claim_mutations import (
    ClaimFunds,
    ClaimWithCode,
    CreateClaim,
    DeleteContract,
    FundContract,
    RefundFunds,
    SubmitClaim,
    SubmitClaimDeployment,
    SubmitDelete,
    SubmitFundingTransaction,
    SubmitRefund,
)
from .claim_orchestrator import get_claim_orchestrator
from .exceptions import ClaimEscrowError

logger = logging.getLogger(__name__)


class WalletContractType(graphene.ObjectType):
    application_id = graphene.Int()
    contract_address = graphene.String()
    status = graphene.String()
    lifecycle = graphene.String()
    amount = graphene.Float()
    balance = graphene.Float()
    claimed = graphene.Boolean()
    can_refund = graphene.Boolean()
    can_delete = graphene.Boolean()
    created_timestamp = graphene.Int()
    created_date = graphene.String()


class WalletContractsType(graphene.ObjectType):
    success = graphene.Boolean()
    error = graphene.String()
    wallet_address = graphene.String()
    network = graphene.String()
    contracts = graphene.List(WalletContractType)
    total_contracts = graphene.Int()
    active_contracts = graphene.Int()
    claimed_contracts = graphene.Int()
    refundable_contracts = graphene.Int()
    deletable_contracts = graphene.Int()


class ClaimEscrowHealthType(graphene.ObjectType):
    status = graphene.String()
    timestamp = graphene.String()
    network = graphene.String()
    network_name = graphene.String()
    node = graphene.String()
    last_round = graphene.Int()
    email = graphene.String()
    seed_wallet_configured = graphene.Boolean()
    seed_wallet_address = graphene.String()
    seed_wallet_balance = graphene.Float()
    error = graphene.String()


class Query(graphene.ObjectType):
    """Claim escrow queries"""
    wallet_contracts = graphene.Field(
        WalletContractsType,
        wallet_address=graphene.String(required=True),
        network=graphene.String(required=False),
    )
    claim_escrow_health = graphene.Field(ClaimEscrowHealthType, network=graphene.String(required=False))

    def resolve_wallet_contracts(self, info, wallet_address, network=None):
        network = network or settings.ALGORAND_DEFAULT_NETWORK
        try:
            summary = get_claim_orchestrator().wallet_contracts(wallet_address, network)
        except ClaimEscrowError as e:
            logger.warning(f"[WalletContracts] {e.code}: {e.detail or e.user_message}")
            return WalletContractsType(success=False, error=e.user_message, wallet_address=wallet_address,
                                       network=network, contracts=[])

        contracts = [
            WalletContractType(
                application_id=c.application_id,
                contract_address=c.contract_address,
                status=c.status,
                lifecycle=c.lifecycle.value,
                amount=float(c.amount),
                balance=float(c.balance),
                claimed=c.claimed,
                can_refund=c.can_refund,
                can_delete=c.can_delete,
                created_timestamp=c.created_timestamp,
                created_date=c.created_date,
            )
            for c in summary.contracts
        ]
        return WalletContractsType(
            success=True,
            wallet_address=summary.wallet_address,
            network=summary.network,
            contracts=contracts,
            total_contracts=summary.total_contracts,
            active_contracts=summary.active_contracts,
            claimed_contracts=summary.claimed_contracts,
            refundable_contracts=summary.refundable_contracts,
            deletable_contracts=summary.deletable_contracts,
        )

    def resolve_claim_escrow_health(self, info, network=None):
        try:
            report = get_claim_orchestrator().health(network or settings.ALGORAND_DEFAULT_NETWORK)
        except ClaimEscrowError as e:
            return ClaimEscrowHealthType(status='ERROR', network=network, error=e.user_message)
        return ClaimEscrowHealthType(
            status=report.status,
            timestamp=report.timestamp,
            network=report.network,
            network_name=report.network_name,
            node=report.node,
            last_round=report.last_round,
            email=report.email,
            seed_wallet_configured=report.seed_wallet_configured,
            seed_wallet_address=report.seed_wallet_address,
            seed_wallet_balance=float(report.seed_wallet_balance) if report.seed_wallet_balance is not None else None,
            error=report.error,
        )


class Mutation(graphene.ObjectType):
    """Claim escrow mutations"""
    create_claim = CreateClaim.Field()
    submit_claim_deployment = SubmitClaimDeployment.Field()
    fund_contract = FundContract.Field()
    submit_funding_transaction = SubmitFundingTransaction.Field()
    claim_funds = ClaimFunds.Field()
    claim_with_code = ClaimWithCode.Field()
    submit_claim = SubmitClaim.Field()
    refund_funds = RefundFunds.Field()
    submit_refund = SubmitRefund.Field()
    delete_contract = DeleteContract.Field()
    submit_delete = SubmitDelete.Field()
