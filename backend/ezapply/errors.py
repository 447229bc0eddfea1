"""
EZApply - Typed Errors

Every lifecycle, ledger and disclosure operation reports failure by raising
one of these. Routers map them onto HTTP responses through ``status_code``.
"""
from typing import Optional


class LifecycleError(Exception):
    """Base error for account lifecycle, ledger and disclosure operations."""

    status_code = 400
    default_message = "Operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# =============================================================================
# ACCOUNT STATE MACHINE
# =============================================================================

class AlreadyRequested(LifecycleError):
    """Deactivation already requested or the account is already deactivated."""
    status_code = 409
    default_message = "Account deactivation has already been requested."


class NoPendingRequest(LifecycleError):
    """No cancellable deactivation request exists."""
    status_code = 409
    default_message = "This account does not have a pending deactivation request."


class PendingExists(LifecycleError):
    """An unresolved reactivation request already exists for the account."""
    status_code = 409
    default_message = "You already have a pending reactivation request. Please wait for admin review."


class NotDeactivated(LifecycleError):
    """Reactivation requested by an account that is not deactivated."""
    status_code = 409
    default_message = "Your account is not deactivated."


class AlreadyDeactivated(LifecycleError):
    """The account was deactivated before this operation ran."""
    status_code = 409
    default_message = "Account is already deactivated."


class DeactivationNotDue(LifecycleError):
    """Scheduled deactivation date has not been reached."""
    status_code = 409
    default_message = "Account deactivation is not due yet."


class AlreadyReviewed(LifecycleError):
    """Reactivation request already approved or rejected."""
    status_code = 409
    default_message = "This request has already been processed."


# =============================================================================
# ARCHIVAL ENGINE
# =============================================================================

class AlreadyActive(LifecycleError):
    """A live account already occupies the archived identity."""
    status_code = 409
    default_message = "A user with this ID already exists and is active."


class SnapshotInvalid(LifecycleError):
    """Archived snapshot does not match the snapshot schema."""
    status_code = 422
    default_message = "Archived snapshot is invalid."


# =============================================================================
# CREDIT LEDGER / DISCLOSURE GATE
# =============================================================================

class InsufficientBalance(LifecycleError):
    """Debit would take the ledger balance below zero."""
    status_code = 402
    default_message = "Insufficient credits."

    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Current balance: {balance}, required: {required}")


class AlreadyDisclosed(LifecycleError):
    """Field already paid for; callers treat this as success."""
    status_code = 200
    default_message = "Field already disclosed."


class DisclosureForbidden(LifecycleError):
    """Viewer may not purchase this applicant's data."""
    status_code = 403
    default_message = "You are not authorized to purchase this applicant."


# =============================================================================
# GENERIC
# =============================================================================

class NotFound(LifecycleError):
    """Referenced record does not exist or is already resolved."""
    status_code = 404
    default_message = "Record not found."


class InvalidRequest(LifecycleError):
    """Input failed validation."""
    status_code = 422
    default_message = "Invalid request."
