"""
Claim escrow GraphQL mutations

The server builds every unsigned transaction; the wallet signs it and hands it
back to the matching submit mutation. The server never holds user keys.
"""
import logging

import graphene
from django.conf import settings

from .claim_orchestrator import get_claim_orchestrator
from .exceptions import ClaimEscrowError, ConfirmationTimeout, InsufficientEscrowBalance, ReclaimNotYetAvailable

logger = logging.getLogger(__name__)


def _network(network):
    return network or settings.ALGORAND_DEFAULT_NETWORK


def _float(value):
    return float(value) if value is not None else None


def _state(state):
    return state.value if state is not None else None


class ClaimMutationResult:
    """Result fields shared by every claim mutation."""
    success = graphene.Boolean()
    error = graphene.String()
    error_code = graphene.String()
    retryable = graphene.Boolean()
    transaction_id = graphene.String()

    @classmethod
    def run(cls, tag, operation):
        try:
            return operation()
        except ClaimEscrowError as e:
            logger.warning(f"[{tag}] {e.code}: {e.detail or e.user_message}")
            return cls.failure(e)
        except Exception as e:
            logger.exception(f"[{tag}] Unexpected error: {e}")
            return cls(
                success=False,
                error='Internal server error. Please try again later.',
                error_code='internal_error',
                retryable=False,
            )

    @classmethod
    def failure(cls, error):
        result = cls(success=False, error=error.user_message, error_code=error.code, retryable=error.retryable)
        if isinstance(error, ConfirmationTimeout):
            result.transaction_id = error.transaction_id
        return result

    @classmethod
    def from_unsigned(cls, unsigned, **extra):
        return cls(
            success=True,
            transaction_id=unsigned.transaction_id,
            transaction_to_sign=unsigned.transaction_to_sign,
            application_id=unsigned.application_id,
            contract_address=unsigned.contract_address,
            amount=_float(unsigned.amount),
            state=_state(unsigned.state),
            **extra,
        )

    @classmethod
    def from_submission(cls, result, **extra):
        return cls(
            success=True,
            transaction_id=result.transaction_id,
            confirmed_round=result.confirmed_round,
            application_id=result.application_id,
            contract_address=result.contract_address,
            state=_state(result.state),
            **extra,
        )


class UnsignedTransactionResult(ClaimMutationResult):
    transaction_to_sign = graphene.String()
    application_id = graphene.Int()
    contract_address = graphene.String()
    amount = graphene.Float()
    state = graphene.String()


class SubmissionResultFields(ClaimMutationResult):
    confirmed_round = graphene.Int()
    application_id = graphene.Int()
    contract_address = graphene.String()
    state = graphene.String()


# ===== Create & deploy =====

class CreateClaim(ClaimMutationResult, graphene.Mutation):
    """Generate a claim code and the unsigned escrow deployment for it."""

    class Arguments:
        amount = graphene.Float(required=True)
        sender_address = graphene.String(required=True)
        network = graphene.String(required=False)
        recipient = graphene.String(required=False)
        message = graphene.String(required=False)

    claim_code = graphene.String()
    program_hash = graphene.String()
    deployment_transaction = graphene.String()
    amount = graphene.Float()
    network = graphene.String()

    @classmethod
    def mutate(cls, root, info, amount, sender_address, network=None, recipient=None, message=None):
        def operation():
            creation = get_claim_orchestrator().create_claim(
                amount, sender_address, _network(network), recipient=recipient, message=message,
            )
            return cls(
                success=True,
                claim_code=creation.claim_code,
                transaction_id=creation.transaction_id,
                program_hash=creation.program_hash,
                deployment_transaction=creation.deployment_transaction,
                amount=_float(creation.amount),
                network=creation.network,
            )
        return cls.run('CreateClaim', operation)


class SubmitClaimDeployment(SubmissionResultFields, graphene.Mutation):
    class Arguments:
        signed_transaction = graphene.String(required=True)
        claim_code = graphene.String(required=False)
        network = graphene.String(required=False)

    amount = graphene.Float()
    notification_sent = graphene.Boolean()
    notification_method = graphene.String()

    @classmethod
    def mutate(cls, root, info, signed_transaction, claim_code=None, network=None):
        def operation():
            result = get_claim_orchestrator().submit_transaction(signed_transaction, _network(network), claim_code)
            return cls.from_submission(
                result,
                amount=_float(result.amount),
                notification_sent=result.notification_sent,
                notification_method=result.notification_method,
            )
        return cls.run('SubmitDeployment', operation)


# ===== Funding =====

class FundContract(UnsignedTransactionResult, graphene.Mutation):
    """Payment of the claim amount plus the escrow's inner fee reserve."""

    class Arguments:
        sender_address = graphene.String(required=True)
        network = graphene.String(required=False)
        amount = graphene.Float(required=False)
        claim_code = graphene.String(required=False)
        application_id = graphene.Int(required=False)

    @classmethod
    def mutate(cls, root, info, sender_address, network=None, amount=None, claim_code=None, application_id=None):
        def operation():
            unsigned = get_claim_orchestrator().fund_contract(
                sender_address, _network(network), amount=amount,
                claim_code=claim_code, application_id=application_id,
            )
            return cls.from_unsigned(unsigned)
        return cls.run('FundContract', operation)


class SubmitFundingTransaction(SubmissionResultFields, graphene.Mutation):
    class Arguments:
        signed_transaction = graphene.String(required=True)
        claim_code = graphene.String(required=False)
        network = graphene.String(required=False)

    @classmethod
    def mutate(cls, root, info, signed_transaction, claim_code=None, network=None):
        def operation():
            result = get_claim_orchestrator().submit_funding_transaction(
                signed_transaction, _network(network), claim_code,
            )
            return cls.from_submission(result)
        return cls.run('SubmitFunding', operation)


# ===== Redemption =====

class ClaimTransactionResult(UnsignedTransactionResult):
    message = graphene.String()
    sponsorship = graphene.String()
    never_funded = graphene.Boolean()

    @classmethod
    def failure(cls, error):
        result = super().failure(error)
        if isinstance(error, InsufficientEscrowBalance):
            result.never_funded = error.never_funded
        return result


class ClaimFunds(ClaimTransactionResult, graphene.Mutation):
    class Arguments:
        claim_code = graphene.String(required=True)
        claimer_address = graphene.String(required=True)
        network = graphene.String(required=False)

    @classmethod
    def mutate(cls, root, info, claim_code, claimer_address, network=None):
        def operation():
            unsigned = get_claim_orchestrator().claim_funds(claim_code, claimer_address, _network(network))
            return cls.from_unsigned(unsigned, message=unsigned.message, sponsorship=unsigned.sponsorship.value)
        return cls.run('ClaimFunds', operation)


class ClaimWithCode(ClaimTransactionResult, graphene.Mutation):
    """Redeem against an escrow by application id, checking the code on-chain."""

    class Arguments:
        application_id = graphene.Int(required=True)
        claim_code = graphene.String(required=True)
        claimer_address = graphene.String(required=True)
        network = graphene.String(required=False)

    @classmethod
    def mutate(cls, root, info, application_id, claim_code, claimer_address, network=None):
        def operation():
            unsigned = get_claim_orchestrator().claim_with_code(
                application_id, claim_code, claimer_address, _network(network),
            )
            return cls.from_unsigned(unsigned, message=unsigned.message, sponsorship=unsigned.sponsorship.value)
        return cls.run('ClaimWithCode', operation)


class SubmitClaim(SubmissionResultFields, graphene.Mutation):
    class Arguments:
        signed_transaction = graphene.String(required=True)
        claim_code = graphene.String(required=True)
        network = graphene.String(required=False)

    amount = graphene.Float()
    message = graphene.String()

    @classmethod
    def mutate(cls, root, info, signed_transaction, claim_code, network=None):
        def operation():
            result = get_claim_orchestrator().submit_claim(signed_transaction, claim_code, _network(network))
            return cls.from_submission(result, amount=_float(result.amount), message=result.message)
        return cls.run('SubmitClaim', operation)


# ===== Reclaim & teardown =====

class RefundFunds(UnsignedTransactionResult, graphene.Mutation):
    class Arguments:
        application_id = graphene.Int(required=True)
        owner_address = graphene.String(required=True)
        network = graphene.String(required=False)

    seconds_remaining = graphene.Int()

    @classmethod
    def failure(cls, error):
        result = super().failure(error)
        if isinstance(error, ReclaimNotYetAvailable):
            result.seconds_remaining = error.seconds_remaining
        return result

    @classmethod
    def mutate(cls, root, info, application_id, owner_address, network=None):
        def operation():
            unsigned = get_claim_orchestrator().refund_funds(application_id, owner_address, _network(network))
            return cls.from_unsigned(unsigned)
        return cls.run('RefundFunds', operation)


class SubmitRefund(SubmissionResultFields, graphene.Mutation):
    class Arguments:
        signed_transaction = graphene.String(required=True)
        application_id = graphene.Int(required=True)
        network = graphene.String(required=False)

    amount = graphene.Float()

    @classmethod
    def mutate(cls, root, info, signed_transaction, application_id, network=None):
        def operation():
            result = get_claim_orchestrator().submit_refund(signed_transaction, application_id, _network(network))
            return cls.from_submission(result, amount=_float(result.amount))
        return cls.run('SubmitRefund', operation)


class DeleteContract(UnsignedTransactionResult, graphene.Mutation):
    class Arguments:
        application_id = graphene.Int(required=True)
        owner_address = graphene.String(required=True)
        network = graphene.String(required=False)

    message = graphene.String()

    @classmethod
    def mutate(cls, root, info, application_id, owner_address, network=None):
        def operation():
            unsigned = get_claim_orchestrator().delete_contract(application_id, owner_address, _network(network))
            return cls.from_unsigned(unsigned, message=unsigned.message)
        return cls.run('DeleteContract', operation)


class SubmitDelete(SubmissionResultFields, graphene.Mutation):
    class Arguments:
        signed_transaction = graphene.String(required=True)
        application_id = graphene.Int(required=True)
        network = graphene.String(required=False)

    message = graphene.String()

    @classmethod
    def mutate(cls, root, info, signed_transaction, application_id, network=None):
        def operation():
            result = get_claim_orchestrator().submit_delete(signed_transaction, application_id, _network(network))
            return cls.from_submission(result, message=result.message)
        return cls.run('SubmitDelete', operation)
