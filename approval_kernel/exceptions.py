"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval pipeline (HTTP handlers, batch jobs, operator
scripts) must react to failures precisely.  Matching on message text is
fragile, so every failure here is:
  1. A TYPED exception class (catch by type, not message)
  2. Tagged with a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (not just a message string)

Example:
    try:
        engine.process_approval_action(app_id, ApprovalAction.APPROVE, actor)
    except NoPendingAssignmentError as e:
        return {"error": e.code, "application_id": e.application_id}

Business outcomes ("approved", "moved to committee") are NOT exceptions;
they are returned as ``ActionResult`` values.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LoanApprovalError (base)
    |
    +-- ConfigurationError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidActionError
    |   +-- InvalidApplicationRecordError
    |   +-- UnknownStatusError
    |   +-- UnknownPageError
    |
    +-- TierError
    |   +-- NoMatchingTierError
    |   +-- TierNotFoundError
    |
    +-- WorkflowError
    |   +-- ApplicationNotFoundError
    |   +-- NoPendingAssignmentError
    |   +-- AlreadyDecidedError
    |   +-- InvalidStatusTransitionError
    |
    +-- AuthorizationError
    |   +-- NotACommitteeMemberError
    |   +-- NotAuthorizedError
    |
    +-- VotingError
    |   +-- VotingClosedError
    |   +-- DecisionStillPendingError
    |
    +-- StorageError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Tier catalog empty, gapped or ambiguous
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_AMOUNT              | Negative requested amount
                | INVALID_ACTION              | Action outside approve/reject/refer
                | INVALID_APPLICATION_RECORD  | Stored application missing a field
                | UNKNOWN_STATUS              | Status string outside the vocabulary
                | UNKNOWN_PAGE                | Work-queue name not in the page table
----------------|-----------------------------|-----------------------------------------
Tier            | NO_MATCHING_TIER            | No active tier covers the amount
                | TIER_NOT_FOUND              | Tier ID does not exist
----------------|-----------------------------|-----------------------------------------
Workflow        | APPLICATION_NOT_FOUND       | Application ID does not exist
                | NO_PENDING_ASSIGNMENT       | Nothing to act on (stale action)
                | ALREADY_DECIDED             | Terminal application / finalized vote
                | INVALID_STATUS_TRANSITION   | Status cannot move that way
----------------|-----------------------------|-----------------------------------------
Authorization   | NOT_A_COMMITTEE_MEMBER      | Caller is not an active member
                | NOT_AUTHORIZED              | Caller lacks the required role
----------------|-----------------------------|-----------------------------------------
Voting          | VOTING_CLOSED               | Vote cast after decision / not open
                | DECISION_STILL_PENDING      | Finalize before quorum + majority
----------------|-----------------------------|-----------------------------------------
Storage         | STORAGE_ERROR               | Store unreachable or write failed
                | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying history or a frozen tally

StorageError (and its subclass) is always safe to retry: every mutation
re-reads state before acting.
"""

from __future__ import annotations

from typing import Any


class LoanApprovalError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LOAN_APPROVAL_ERROR"


class ConfigurationError(LoanApprovalError):
    """The active tier catalog (or another configured input) is unusable."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Configuration error: {reason}")


# Validation-related exceptions


class ValidationError(LoanApprovalError):
    """Base exception for rejected inputs."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Requested amount cannot be classified (negative or not a number)."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Any):
        self.amount = str(amount)
        super().__init__(f"Invalid requested amount: {amount}")


class InvalidActionError(ValidationError):
    """Approval action is not one of approve, reject, refer_to_committee."""

    code: str = "INVALID_ACTION"

    def __init__(self, action: Any):
        self.action = str(action)
        super().__init__(f"Invalid approval action: {action!r}")


class InvalidApplicationRecordError(ValidationError):
    """A stored loan application row is missing a field the pipeline needs."""

    code: str = "INVALID_APPLICATION_RECORD"

    def __init__(self, application_id: str, field_name: str, reason: str):
        self.application_id = application_id
        self.field_name = field_name
        self.reason = reason
        super().__init__(
            f"Invalid application record {application_id}: "
            f"{field_name} {reason}"
        )


class UnknownStatusError(ValidationError):
    """Status string is outside the closed application status vocabulary."""

    code: str = "UNKNOWN_STATUS"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unknown application status: {status!r}")


class UnknownPageError(ValidationError):
    """Work-queue name is not in the page mapping."""

    code: str = "UNKNOWN_PAGE"

    def __init__(self, page_name: str):
        self.page_name = page_name
        super().__init__(f"Unknown page: {page_name!r}")


# Tier-related exceptions


class TierError(LoanApprovalError):
    """Base exception for tier lookups."""

    code: str = "TIER_ERROR"


class NoMatchingTierError(TierError):
    """No active tier covers the requested amount."""

    code: str = "NO_MATCHING_TIER"

    def __init__(self, amount: Any, borrower_type: str | None = None):
        self.amount = str(amount)
        self.borrower_type = borrower_type
        super().__init__(
            f"No active approval tier covers amount {amount}"
            + (f" (borrower type {borrower_type})" if borrower_type else "")
        )


class TierNotFoundError(TierError):
    """Tier with given ID was not found."""

    code: str = "TIER_NOT_FOUND"

    def __init__(self, tier_id: str):
        self.tier_id = tier_id
        super().__init__(f"Approval tier not found: {tier_id}")


# Workflow-related exceptions


class WorkflowError(LoanApprovalError):
    """Base exception for approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class ApplicationNotFoundError(WorkflowError):
    """Loan application with given ID was not found."""

    code: str = "APPLICATION_NOT_FOUND"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Loan application not found: {application_id}")


class NoPendingAssignmentError(WorkflowError):
    """
    The application has no pending assignment to act on.

    Usually a stale action: another approver already decided the
    assignment the caller was looking at.
    """

    code: str = "NO_PENDING_ASSIGNMENT"

    def __init__(self, application_id: str, status: str | None = None):
        self.application_id = application_id
        self.status = status
        super().__init__(
            f"No pending approval assignment for application {application_id}"
            + (f" (status {status})" if status else "")
        )


class AlreadyDecidedError(WorkflowError):
    """Application or committee decision is already final."""

    code: str = "ALREADY_DECIDED"

    def __init__(self, entity_type: str, entity_id: str, status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(f"{entity_type} {entity_id} is already decided: {status}")


class InvalidStatusTransitionError(WorkflowError):
    """Status cannot move from its current value to the requested one."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, application_id: str, from_status: str, to_status: str):
        self.application_id = application_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Application {application_id} cannot move "
            f"from {from_status} to {to_status}"
        )


# Authorization-related exceptions


class AuthorizationError(LoanApprovalError):
    """Base exception for caller capability checks."""

    code: str = "AUTHORIZATION_ERROR"


class NotACommitteeMemberError(AuthorizationError):
    """Caller is not an active committee member."""

    code: str = "NOT_A_COMMITTEE_MEMBER"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} is not an active committee member")


class NotAuthorizedError(AuthorizationError):
    """Caller does not hold the role the operation requires."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, user_id: str, required_role: str):
        self.user_id = user_id
        self.required_role = required_role
        super().__init__(f"User {user_id} must be {required_role} for this operation")


# Voting-related exceptions


class VotingError(LoanApprovalError):
    """Base exception for committee voting. Carries the current tally."""

    code: str = "VOTING_ERROR"


class VotingClosedError(VotingError):
    """A vote arrived after the decision resolved, or before voting opened."""

    code: str = "VOTING_CLOSED"

    def __init__(self, application_id: str, reason: str, tally: Any = None):
        self.application_id = application_id
        self.reason = reason
        self.tally = tally
        super().__init__(f"Voting closed for application {application_id}: {reason}")


class DecisionStillPendingError(VotingError):
    """Finalize was requested before quorum and a majority were reached."""

    code: str = "DECISION_STILL_PENDING"

    def __init__(self, application_id: str, tally: Any = None):
        self.application_id = application_id
        self.tally = tally
        super().__init__(
            f"Committee decision for application {application_id} is still pending"
        )


# Storage-related exceptions


class StorageError(LoanApprovalError):
    """The store failed or rejected a write. Safe to retry."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage failure during {operation}: {reason}")


class OptimisticLockError(StorageError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            operation=f"update {entity_type} {entity_id}",
            reason="entity was modified by another transaction",
        )


class ImmutabilityViolationError(LoanApprovalError):
    """Attempted to modify or delete an append-only or frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
