"""
Typed Exception Hierarchy for the Sales Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The boundary layer (controllers, batch jobs) maps every failure of the
sale-to-cash core to a user-facing response.  It must be able to do so by
TYPE and CODE, never by parsing a message:

    try:
        payments.complete(payment_id, actor_id=actor)
    except ExceedsBalanceError as e:
        api_response(code=e.code, balance=e.balance, requested=e.requested)
    except ConcurrencyConflictError:
        retry_whole_request()

Every exception:
  1. Has a ``code`` class attribute (machine-readable, API-safe)
  2. Carries structured attributes (not just a message string)
  3. Declares ``retryable`` -- only concurrency conflicts are retryable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SalesKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidArgumentError
    |   +-- ReferenceMismatchError
    |
    +-- InvalidStateError
    |   +-- EmptySaleError
    |
    +-- BalanceError
    |   +-- NegativeResultError
    |   +-- ExceedsBalanceError
    |   +-- ExceedsAmountError
    |
    +-- InvariantViolationError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- LookupFailure
        +-- EntityNotFoundError
        +-- DuplicateLedgerEntryError
        +-- PaymentAlreadyAppliedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                     | When Raised
-------------|--------------------------|-----------------------------------------
Validation   | VALIDATION_ERROR         | Malformed input to constructor/operation
             | INVALID_AMOUNT           | Money built from NaN/inf/over-precise value
             | INVALID_ARGUMENT         | Non-positive amount passed to a balance op
             | REFERENCE_MISMATCH       | Payment and ledger entry point at different sales
-------------|--------------------------|-----------------------------------------
State        | INVALID_STATE            | Transition not in the workflow table
             | EMPTY_SALE               | Confirm attempted with no line items
-------------|--------------------------|-----------------------------------------
Balance      | NEGATIVE_RESULT          | Money subtraction would go below zero
             | EXCEEDS_BALANCE          | Payment larger than remaining balance
             | EXCEEDS_AMOUNT           | Refund would push balance above amount
-------------|--------------------------|-----------------------------------------
Invariant    | INVARIANT_VIOLATION      | Aggregate failed its own consistency check
-------------|--------------------------|-----------------------------------------
Concurrency  | CONCURRENCY_CONFLICT     | Version mismatch on atomic update (retry!)
-------------|--------------------------|-----------------------------------------
Lookup       | ENTITY_NOT_FOUND         | Id/folio missing or soft-deleted
             | DUPLICATE_LEDGER_ENTRY   | Second ledger entry for the same sale
             | PAYMENT_ALREADY_APPLIED  | Same payment applied/reversed twice

===============================================================================
"""

from __future__ import annotations

from typing import Any


class SalesKernelError(Exception):
    """
    Base exception for all sales kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SALES_KERNEL_ERROR"
    retryable: bool = False


# Validation exceptions


class ValidationError(SalesKernelError):
    """Malformed input to a constructor or operation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """A monetary amount cannot be represented at the fixed scale."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: Any, reason: str):
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}", field="amount", value=value)


class InvalidArgumentError(ValidationError):
    """An operation argument is outside its accepted domain."""

    code: str = "INVALID_ARGUMENT"


class ReferenceMismatchError(ValidationError):
    """A payment is being reconciled against an entry for a different origin."""

    code: str = "REFERENCE_MISMATCH"

    def __init__(
        self,
        payment_id: Any,
        sale_id: Any,
        reference_type: str,
        reference_id: Any,
    ):
        self.payment_id = payment_id
        self.sale_id = sale_id
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(
            f"Payment {payment_id} for sale {sale_id} does not match "
            f"ledger entry reference {reference_type}/{reference_id}",
            field="sale_id",
            value=sale_id,
        )


# State machine exceptions


class InvalidStateError(SalesKernelError):
    """An operation was attempted from a state that forbids it."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_state: str,
        attempted: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.attempted = attempted
        super().__init__(
            message
            or f"{entity_type} {entity_id}: cannot {attempted} from {current_state}"
        )


class EmptySaleError(InvalidStateError):
    """A sale without line items cannot be confirmed."""

    code: str = "EMPTY_SALE"

    def __init__(self, sale_id: Any, current_state: str):
        super().__init__(
            entity_type="Sale",
            entity_id=sale_id,
            current_state=current_state,
            attempted="confirmed",
            message=f"Sale {sale_id}: cannot confirm a sale without line items",
        )


# Balance exceptions


class BalanceError(SalesKernelError):
    """Base exception for violations of the 0 <= balance <= amount rule."""

    code: str = "BALANCE_ERROR"


class NegativeResultError(BalanceError):
    """Money subtraction would produce a negative amount."""

    code: str = "NEGATIVE_RESULT"

    def __init__(self, minuend: Any, subtrahend: Any):
        self.minuend = minuend
        self.subtrahend = subtrahend
        super().__init__(f"Subtracting {subtrahend} from {minuend} would be negative")


class ExceedsBalanceError(BalanceError):
    """A payment is larger than the remaining balance."""

    code: str = "EXCEEDS_BALANCE"

    def __init__(self, entity_id: Any, balance: Any, requested: Any):
        self.entity_id = entity_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Amount {requested} exceeds remaining balance {balance} on {entity_id}"
        )


class ExceedsAmountError(BalanceError):
    """A refund would push the balance above the original amount."""

    code: str = "EXCEEDS_AMOUNT"

    def __init__(self, entity_id: Any, balance: Any, amount: Any, requested: Any):
        self.entity_id = entity_id
        self.balance = balance
        self.amount = amount
        self.requested = requested
        super().__init__(
            f"Restoring {requested} to balance {balance} on {entity_id} "
            f"would exceed original amount {amount}"
        )


class InvariantViolationError(SalesKernelError):
    """An aggregate failed its own consistency check."""

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any, invariant: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.invariant = invariant
        super().__init__(f"{entity_type} {entity_id} violates invariant: {invariant}")


# Concurrency exceptions


class ConcurrencyError(SalesKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Version mismatch detected during an atomic update.

    The caller must retry the whole operation (re-read, re-validate),
    not merely the write.
    """

    code: str = "CONCURRENCY_CONFLICT"
    retryable: bool = True

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


# Lookup exceptions


class LookupFailure(SalesKernelError):
    """Base exception for lookups against the persistence layer."""

    code: str = "LOOKUP_FAILURE"


class EntityNotFoundError(LookupFailure):
    """Entity with the given key does not exist or is soft-deleted."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, key: Any):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} not found: {key}")


class DuplicateLedgerEntryError(LookupFailure):
    """A ledger entry already exists for the given origin."""

    code: str = "DUPLICATE_LEDGER_ENTRY"

    def __init__(self, reference_type: str, reference_id: Any, existing_folio: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        self.existing_folio = existing_folio
        super().__init__(
            f"Ledger entry {existing_folio} already exists for "
            f"{reference_type}/{reference_id}"
        )


class PaymentAlreadyAppliedError(LookupFailure):
    """The payment has already been applied (or reversed) against the ledger."""

    code: str = "PAYMENT_ALREADY_APPLIED"

    def __init__(self, payment_id: Any, kind: str):
        self.payment_id = payment_id
        self.kind = kind
        super().__init__(f"Payment {payment_id} already recorded as {kind}")
