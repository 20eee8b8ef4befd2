"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the presentation layer, the backup scheduler, the admin CLI) must
react to ledger errors by category, not by parsing messages:

  - ValidationError       -> show the message verbatim, let the user fix input
  - ConstraintViolation   -> refresh the view and retry
  - NotFoundError         -> the row went away; refresh
  - TransactionStateError -> programming error; the operation was rolled back
  - IntegrityError        -> raised only by diagnostic scans; report it

Every class carries a CODE attribute (machine-readable) and structured
attributes so that the JSON log formatter can emit them as fields.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidExchangeRateError
    |   +-- UnsupportedCurrencyError
    |   +-- ScopeReferenceError
    |   +-- CategoryTypeMismatchError
    |   +-- SnapshotFormatError
    |
    +-- ConstraintViolation
    |   +-- OverAllocationError
    |   +-- AllocationTypeMismatchError
    |   +-- InactiveReferenceError
    |   +-- DefaultCategoryImmutableError
    |   +-- DuplicateProjectCodeError
    |   +-- RestoreConflictError
    |
    +-- NotFoundError
    |
    +-- TransactionStateError
    |
    +-- IntegrityError

===============================================================================
MESSAGE RULES
===============================================================================

ConstraintViolation messages name the invariant that failed ("allocation
exceeds invoice remaining balance") and never include row identifiers.
NotFoundError messages echo the id the caller supplied, which is not an
internal detail from the caller's point of view.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation errors


class ValidationError(LedgerKernelError):
    """Malformed or out-of-range input. Recoverable; message is user-facing."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """Amount is zero, negative, or not a number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Any, field: str = "amount"):
        self.amount = str(amount)
        super().__init__(f"{field} must be greater than zero", field=field)


class InvalidExchangeRateError(ValidationError):
    """Exchange rate is zero or negative."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate: Any):
        self.rate = str(rate)
        super().__init__("exchange_rate must be greater than zero", field="exchange_rate")


class UnsupportedCurrencyError(ValidationError):
    """Currency is not one of the configured base/alternate currencies."""

    code: str = "UNSUPPORTED_CURRENCY"

    def __init__(self, currency: str, allowed: tuple[str, ...]):
        self.currency = currency
        self.allowed = allowed
        super().__init__(
            f"Unsupported currency {currency!r}; expected one of {', '.join(allowed)}",
            field="currency",
        )


class ScopeReferenceError(ValidationError):
    """Transaction scope does not agree with its company/project references."""

    code: str = "SCOPE_REFERENCE_ERROR"

    def __init__(self, scope: str, reason: str):
        self.scope = scope
        self.reason = reason
        super().__init__(f"Invalid references for scope {scope!r}: {reason}", field="scope")


class CategoryTypeMismatchError(ValidationError):
    """Category type does not belong to the transaction's category group."""

    code: str = "CATEGORY_TYPE_MISMATCH"

    def __init__(self, category_type: str, expected_group: str):
        self.category_type = category_type
        self.expected_group = expected_group
        super().__init__(
            f"Category of type {category_type!r} cannot be used here; "
            f"expected a {expected_group!r} category",
            field="category_id",
        )


class SnapshotFormatError(ValidationError):
    """Snapshot bytes are not a ledger snapshot this version can load."""

    code: str = "SNAPSHOT_FORMAT_ERROR"

    def __init__(self, reason: str, violations: tuple[Any, ...] = ()):
        self.reason = reason
        self.violations = violations
        super().__init__(f"Invalid ledger snapshot: {reason}")


# Constraint violations


class ConstraintViolation(LedgerKernelError):
    """
    A ledger invariant would be breached. Recoverable: refresh and retry.

    The ``invariant`` attribute is a stable short name of the rule that
    failed; the message describes it in words.
    """

    code: str = "CONSTRAINT_VIOLATION"

    def __init__(self, message: str, invariant: str = "constraint"):
        self.invariant = invariant
        super().__init__(message)


class OverAllocationError(ConstraintViolation):
    """Allocations would exceed an invoice's or a payment's base amount."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, invariant: str, limit: Decimal, requested: Decimal):
        self.limit = limit
        self.requested = requested
        messages = {
            "invoice_remaining": "allocation exceeds invoice remaining balance",
            "payment_amount": "allocations exceed payment amount",
            "allocated_exceeds_amount": "amount is lower than what is already allocated",
        }
        super().__init__(
            f"{messages.get(invariant, invariant)} "
            f"(limit {limit}, requested {requested})",
            invariant=invariant,
        )


class AllocationTypeMismatchError(ConstraintViolation):
    """Allocation links transactions of the wrong types or directions."""

    code: str = "ALLOCATION_TYPE_MISMATCH"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"allocation type mismatch: {reason}", invariant="allocation_types")


class InactiveReferenceError(ConstraintViolation):
    """A transaction references an inactive company or project."""

    code: str = "INACTIVE_REFERENCE"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(
            f"referenced {entity_type} is not active",
            invariant="active_reference",
        )


class DefaultCategoryImmutableError(ConstraintViolation):
    """Default categories cannot be modified or deleted."""

    code: str = "DEFAULT_CATEGORY_IMMUTABLE"

    def __init__(self, action: str):
        self.action = action
        super().__init__(
            f"default categories cannot be {action}",
            invariant="default_category_immutable",
        )


class DuplicateProjectCodeError(ConstraintViolation):
    """Project code is already in use."""

    code: str = "DUPLICATE_PROJECT_CODE"

    def __init__(self, project_code: str):
        self.project_code = project_code
        super().__init__(
            f"project code {project_code!r} is already in use",
            invariant="unique_project_code",
        )


class RestoreConflictError(ConstraintViolation):
    """A trash bundle cannot be restored into the current ledger state."""

    code: str = "RESTORE_CONFLICT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"cannot restore: {reason}", invariant="restore_conflict")


# Lookup failures


class NotFoundError(LedgerKernelError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


# Transaction boundary


class TransactionStateError(LedgerKernelError):
    """
    begin/commit/rollback called in the wrong state.

    Fatal to the in-flight operation: the boundary rolls back whatever
    transaction is open.
    """

    code: str = "TRANSACTION_STATE_ERROR"

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while transaction state is {state}")


# Diagnostics


class IntegrityError(LedgerKernelError):
    """
    Diagnostic scan found stored data that breaks a ledger invariant.

    Never raised during normal operation; only by ``assert_healthy()``.
    Nothing is auto-corrected.
    """

    code: str = "INTEGRITY_ERROR"

    def __init__(self, violations: tuple[Any, ...]):
        self.violations = violations
        super().__init__(f"Ledger integrity check failed: {len(violations)} violation(s)")
