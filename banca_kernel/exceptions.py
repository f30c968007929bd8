"""
Typed Exception Hierarchy for the Banking Kernel.

Every error carries a stable ``code`` (machine-readable, API-safe) and
structured attributes. Callers catch by type, never by message.

===============================================================================
TWO KINDS OF FAILURE
===============================================================================

Business-rule outcomes found while prechecking a movement (insufficient
funds, limit exceeded, blocked account, unconfirmed beneficiary, contract
number mismatch) are NOT raised. They are returned as ``PrecheckError``
entries so the Transaction can be durably recorded as Failed with a reason.
Their codes are the ``code`` attributes of the classes below.

Exceptions are raised only when an operation could not even be attempted
(unknown transaction, actor lacks permission, illegal state transition,
malformed request) or when the infrastructure fails (``StorageError``).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BancaError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- TransactionNotFoundError
    |   +-- BeneficiaryNotFoundError
    |   +-- ProviderNotFoundError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountBlockedError
    |   +-- AccountClosedError
    |
    +-- CurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- FundsError
    |   +-- InsufficientFundsError
    |   +-- LimitExceededError
    |
    +-- DestinationError
    |   +-- BeneficiaryNotConfirmedError
    |   +-- InvalidContractNumberError
    |
    +-- StateError
    |   +-- InvalidStateError
    |   +-- ImmutabilityViolationError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentBalanceViolationError
    |
    +-- ForbiddenError
    |
    +-- ConfigurationError
    |
    +-- StorageError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When
-------------|-------------------------------|-----------------------------------
Validation   | VALIDATION_ERROR              | Malformed request field
NotFound     | TRANSACTION_NOT_FOUND         | Transaction id lookup miss
             | BENEFICIARY_NOT_FOUND         | Beneficiary id lookup miss
             | PROVIDER_NOT_FOUND            | Provider id lookup miss
Account      | ACCOUNT_NOT_FOUND             | Account id lookup miss
             | ACCOUNT_BLOCKED               | Account status is Blocked
             | ACCOUNT_CLOSED                | Account status is Closed
Currency     | UNSUPPORTED_CURRENCY          | Currency not configured
             | CURRENCY_MISMATCH             | Request vs account currency
Funds        | INSUFFICIENT_FUNDS            | balance - total debit < 0
             | LIMIT_EXCEEDED                | total debit > available limit
Destination  | BENEFICIARY_NOT_CONFIRMED     | Beneficiary still Inactive
             | INVALID_CONTRACT_NUMBER       | Contract fails provider rule
State        | INVALID_STATE                 | Illegal status transition
             | IMMUTABILITY_VIOLATION        | Write to a terminal transaction
Concurrency  | CONCURRENT_BALANCE_VIOLATION  | Balance changed under precheck
Forbidden    | FORBIDDEN                     | Actor has no rights on resource
Config       | CONFIGURATION_ERROR           | Invalid or missing configuration
Storage      | STORAGE_ERROR                 | Database unavailable / failed
"""

from typing import Any


class BancaError(Exception):
    """Base exception for all banking kernel errors."""

    code: str = "BANCA_ERROR"


# Validation


class ValidationError(BancaError):
    """A request field is malformed or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Lookup misses


class NotFoundError(BancaError):
    """Base exception for lookups of non-account resources."""

    code: str = "NOT_FOUND"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: Any):
        self.transaction_id = str(transaction_id)
        super().__init__(f"Transaction not found: {transaction_id}")


class BeneficiaryNotFoundError(NotFoundError):
    code: str = "BENEFICIARY_NOT_FOUND"

    def __init__(self, beneficiary_id: Any):
        self.beneficiary_id = str(beneficiary_id)
        super().__init__(f"Beneficiary not found: {beneficiary_id}")


class ProviderNotFoundError(NotFoundError):
    code: str = "PROVIDER_NOT_FOUND"

    def __init__(self, provider_id: Any):
        self.provider_id = str(provider_id)
        super().__init__(f"Service provider not found: {provider_id}")


# Account-related exceptions


class AccountError(BancaError):
    """Base exception for account-related errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """Account does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: Any):
        self.account_id = str(account_id)
        super().__init__(f"Account not found: {account_id}")


class AccountBlockedError(AccountError):
    code: str = "ACCOUNT_BLOCKED"

    def __init__(self, account_id: Any):
        self.account_id = str(account_id)
        super().__init__(f"Account is blocked: {account_id}")


class AccountClosedError(AccountError):
    code: str = "ACCOUNT_CLOSED"

    def __init__(self, account_id: Any):
        self.account_id = str(account_id)
        super().__init__(f"Account is closed: {account_id}")


# Currency-related exceptions


class CurrencyError(BancaError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class CurrencyMismatchError(CurrencyError):
    """Requested currency differs from the account currency."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Currency mismatch: expected {expected}, got {actual}")


# Funds


class FundsError(BancaError):
    """Base exception for balance and limit problems."""

    code: str = "FUNDS_ERROR"


class InsufficientFundsError(FundsError):
    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id: Any, balance: Any, required: Any):
        self.account_id = str(account_id)
        self.balance = str(balance)
        self.required = str(required)
        super().__init__(
            f"Insufficient funds in {account_id}: balance {balance}, required {required}"
        )


class LimitExceededError(FundsError):
    code: str = "LIMIT_EXCEEDED"

    def __init__(self, account_id: Any, limit: Any, requested: Any):
        self.account_id = str(account_id)
        self.limit = str(limit)
        self.requested = str(requested)
        super().__init__(
            f"Limit exceeded for {account_id}: available {limit}, requested {requested}"
        )


# Destination


class DestinationError(BancaError):
    """Base exception for transfer/payment destination problems."""

    code: str = "DESTINATION_ERROR"


class BeneficiaryNotConfirmedError(DestinationError):
    code: str = "BENEFICIARY_NOT_CONFIRMED"

    def __init__(self, beneficiary_id: Any):
        self.beneficiary_id = str(beneficiary_id)
        super().__init__(f"Beneficiary is not confirmed: {beneficiary_id}")


class InvalidContractNumberError(DestinationError):
    code: str = "INVALID_CONTRACT_NUMBER"

    def __init__(self, provider_id: Any, contract_number: str):
        self.provider_id = str(provider_id)
        self.contract_number = contract_number
        super().__init__(
            f"Contract number {contract_number!r} is not valid for provider {provider_id}"
        )


# State machine


class StateError(BancaError):
    """Base exception for lifecycle violations."""

    code: str = "STATE_ERROR"


class InvalidStateError(StateError):
    """Attempted transition is not in the transition table."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_id: Any, current_status: str, attempted: str):
        self.entity_id = str(entity_id)
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity_id}: current status is {current_status}"
        )


class ImmutabilityViolationError(StateError):
    """Attempted to modify a record in a terminal state."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Concurrency


class ConcurrencyError(BancaError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentBalanceViolationError(ConcurrencyError):
    """The balance became insufficient between precheck and apply."""

    code: str = "CONCURRENT_BALANCE_VIOLATION"

    def __init__(self, account_id: Any, required: Any):
        self.account_id = str(account_id)
        self.required = str(required)
        super().__init__(
            f"Balance of {account_id} no longer covers {required}"
        )


# Authorization


class ForbiddenError(BancaError):
    """Actor lacks permission over the resource."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: Any, resource_type: str, resource_id: Any, reason: str = ""):
        self.actor_id = str(actor_id)
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} may not act on {resource_type} {resource_id}"
            + (f": {reason}" if reason else "")
        )


# Configuration


class ConfigurationError(BancaError):
    """Configuration file is missing, malformed or inconsistent."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, errors: list[str] | str):
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


# Infrastructure


class StorageError(BancaError):
    """The persistence layer failed. Infrastructure fault, safe to retry."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")
