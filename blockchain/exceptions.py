"""
Error taxonomy for the claim escrow flow.

Every failure carries a human-readable ``user_message``, a stable ``code`` for
clients, and a ``retryable`` flag telling the caller whether trying the same
request again can succeed without changing anything.
"""
from typing import Optional


class ClaimEscrowError(Exception):
    code = 'claim_error'
    retryable = False
    default_message = 'The claim could not be processed.'

    def __init__(self, user_message: Optional[str] = None, *, detail: Optional[str] = None):
        self.user_message = user_message or self.default_message
        # Internal context for logs; never shown to users
        self.detail = detail
        super().__init__(self.user_message)


# ----- Validation (fail fast, before any network call) -----

class ValidationError(ClaimEscrowError):
    code = 'validation_error'


class InvalidAddress(ValidationError):
    code = 'invalid_address'
    default_message = 'Invalid Algorand address format'


class InvalidAmount(ValidationError):
    code = 'invalid_amount'
    default_message = 'Invalid amount - must be a positive number'


class InvalidNetwork(ValidationError):
    code = 'invalid_network'
    default_message = 'Invalid network specified'


class InvalidClaimCode(ValidationError):
    code = 'invalid_claim_code'
    default_message = 'Invalid claim code. Please check your code and try again.'


class InvalidRecipient(ValidationError):
    code = 'invalid_recipient'
    default_message = 'Please provide a valid email address'


class BuildError(ClaimEscrowError):
    """Transaction inputs are malformed; a caller or configuration defect."""
    code = 'build_error'
    default_message = 'Failed to build transaction'


# ----- Ledger transport -----

class NetworkError(ClaimEscrowError):
    """Ledger unreachable or a read failed; safe to retry with backoff."""
    code = 'network_error'
    retryable = True
    default_message = 'Unable to reach the Algorand network. Please try again later.'


class MalformedReceipt(ClaimEscrowError):
    code = 'malformed_receipt'
    default_message = 'The network returned an unrecognized confirmation.'


class ConfirmationTimeout(ClaimEscrowError):
    """
    Confirmation polling ran out of rounds. The transaction may still land,
    so the caller must re-check status before submitting again.
    """
    code = 'confirmation_timeout'
    default_message = 'Transaction was not confirmed in time. Check its status before retrying.'

    def __init__(self, transaction_id: str, user_message: Optional[str] = None, **kwargs):
        self.transaction_id = transaction_id
        super().__init__(user_message, **kwargs)


class SubmissionUnconfirmed(ConfirmationTimeout):
    """
    The node never answered a submission. It may still have accepted it, so
    the transaction has to be looked up before anything is sent again.
    """
    code = 'submission_unconfirmed'
    default_message = 'The network did not answer in time. Check the transaction status before retrying.'


class TransactionRejected(ClaimEscrowError):
    """The ledger refused the transaction outright; it definitely did not land."""
    code = 'transaction_rejected'
    default_message = 'The network rejected the transaction.'


class ProgramRejected(TransactionRejected):
    """The escrow program refused the transaction; nothing changed on-chain."""
    code = 'program_rejected'
    default_message = 'The escrow contract rejected the transaction.'


# ----- Business outcomes (terminal, not retryable) -----

class AlreadyClaimed(ClaimEscrowError):
    code = 'already_claimed'
    default_message = 'This claim code has already been used.'


class AlreadyRefunded(ClaimEscrowError):
    code = 'already_refunded'
    default_message = 'This escrow has already been refunded or claimed.'


class InsufficientEscrowBalance(ClaimEscrowError):
    code = 'insufficient_escrow_balance'
    default_message = 'Contract has insufficient funds.'

    def __init__(self, user_message: Optional[str] = None, *, never_funded: bool = False,
                 balance: int = 0, required: int = 0, **kwargs):
        self.never_funded = never_funded
        self.balance = balance
        self.required = required
        super().__init__(user_message, **kwargs)


class RateLimited(ClaimEscrowError):
    """Sponsorship refused for now; the user should retry later."""
    code = 'rate_limited'
    default_message = 'Too many funding requests. Please try again later.'


class ClaimNotFound(ClaimEscrowError):
    code = 'claim_not_found'
    default_message = 'Invalid claim code. Please check your code and try again.'


class ContractNotDeployed(ClaimEscrowError):
    code = 'contract_not_deployed'
    default_message = 'Contract not yet deployed. Please wait for the sender to complete the transaction first.'


class NotEscrowOwner(ClaimEscrowError):
    code = 'not_escrow_owner'
    default_message = 'Only the creator of the application can perform this action'


class ReclaimNotYetAvailable(ClaimEscrowError):
    code = 'reclaim_not_available'
    default_message = 'Refund is not available yet.'

    def __init__(self, seconds_remaining: int, user_message: Optional[str] = None, **kwargs):
        self.seconds_remaining = seconds_remaining
        super().__init__(
            user_message or f'Refund becomes available in {seconds_remaining} seconds.',
            **kwargs,
        )


class ContractNotEmpty(ClaimEscrowError):
    code = 'contract_not_empty'
    default_message = 'Cannot delete contract with non-zero balance. Please refund or claim first.'


class RegistryConflict(ClaimEscrowError):
    code = 'registry_conflict'
    default_message = 'Claim record is in a conflicting state.'
