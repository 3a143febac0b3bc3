"""
Typed Exception Hierarchy for the Expense Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers at the operation boundary turn errors into user-facing notifications.
Matching on message text is fragile, so:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        manager.submit(...)
    except ValidationError as e:
        show_inline(e.field_errors)
    except NoApproverFoundError as e:
        notify(f"No approver for {e.employee_id}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseKernelError (base)
    |
    +-- ValidationError
    |
    +-- ForbiddenError
    |
    +-- InvalidStateError
    |   +-- InvalidApprovalTransitionError
    |
    +-- NotFoundError
    |   +-- CompanyNotFoundError
    |   +-- ProfileNotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- ApprovalRuleNotFoundError
    |
    +-- NoApproverFoundError
    |
    +-- ConflictError
    |
    +-- ReceiptError
        +-- InvalidReceiptError
        +-- ReceiptUploadError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|------------------------------------------------
VALIDATION_FAILED           | Bad submission input (one or more fields)
FORBIDDEN                   | Actor lacks the capability or ownership
INVALID_STATE               | Deciding a terminal expense / decided approval
INVALID_APPROVAL_TRANSITION | Status change not allowed by the state machine
*_NOT_FOUND                 | Entity id does not exist
NO_APPROVER_FOUND           | Workflow cannot resolve a required approver
CONFLICT                    | Row changed between read and update (CAS)
INVALID_RECEIPT             | Receipt type/size rejected before upload
RECEIPT_UPLOAD_FAILED       | Object store refused the upload
"""

from __future__ import annotations


class ExpenseKernelError(Exception):
    """
    Base exception for all expense kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Validation


class ValidationError(ExpenseKernelError):
    """
    One or more submitted fields are invalid.

    ``field_errors`` maps each offending field to a user-correctable message.
    Raised before anything is written.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        fields = ", ".join(sorted(self.field_errors))
        super().__init__(f"Validation failed for: {fields}")


# Authorization


class ForbiddenError(ExpenseKernelError):
    """Actor is not allowed to perform the action."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, action: str, reason: str = ""):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        message = f"Actor {actor_id} may not {action}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# State machine


class InvalidStateError(ExpenseKernelError):
    """State-machine precondition violated."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, status: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"{entity_type} {entity_id} is {status}: {reason}"
        )


class InvalidApprovalTransitionError(InvalidStateError):
    """Approval status transition is not in APPROVAL_TRANSITIONS."""

    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, approval_id: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            "Approval",
            approval_id,
            from_status,
            f"cannot transition to {to_status}",
        )


# Lookups


class NotFoundError(ExpenseKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class CompanyNotFoundError(NotFoundError):
    code: str = "COMPANY_NOT_FOUND"
    entity_type: str = "Company"


class ProfileNotFoundError(NotFoundError):
    code: str = "PROFILE_NOT_FOUND"
    entity_type: str = "Profile"


class ExpenseNotFoundError(NotFoundError):
    code: str = "EXPENSE_NOT_FOUND"
    entity_type: str = "Expense"


class ApprovalNotFoundError(NotFoundError):
    code: str = "APPROVAL_NOT_FOUND"
    entity_type: str = "Approval"


class ApprovalRuleNotFoundError(NotFoundError):
    code: str = "APPROVAL_RULE_NOT_FOUND"
    entity_type: str = "ApprovalRule"


# Workflow materialization


class NoApproverFoundError(ExpenseKernelError):
    """
    Workflow materialization could not resolve a required approver.

    Surfaces as a creation error so an expense is never persisted without
    anyone able to approve it.
    """

    code: str = "NO_APPROVER_FOUND"

    def __init__(self, employee_id: str, reason: str):
        self.employee_id = employee_id
        self.reason = reason
        super().__init__(f"No approver found for employee {employee_id}: {reason}")


# Concurrency


class ConflictError(ExpenseKernelError):
    """Row was modified between read and update (compare-and-swap failed)."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: "
            "row was modified by another writer"
        )


# Receipts


class ReceiptError(ExpenseKernelError):
    """Base exception for receipt handling."""

    code: str = "RECEIPT_ERROR"


class InvalidReceiptError(ReceiptError):
    """Receipt rejected before upload (type or size)."""

    code: str = "INVALID_RECEIPT"

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Invalid receipt {filename}: {reason}")


class ReceiptUploadError(ReceiptError):
    """Object store failed to accept the receipt."""

    code: str = "RECEIPT_UPLOAD_FAILED"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Receipt upload failed for {path}: {reason}")
