from typing import Optional


class LedgerError(Exception):
    """Base class for every error raised by the ledger."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str, lock_id: Optional[int] = None, address: Optional[str] = None) -> None:
        super().__init__(message)
        self.lock_id = lock_id
        self.address = address


class ValidationError(LedgerError, ValueError):
    code = "VALIDATION_ERROR"


class AuthorizationError(LedgerError):
    code = "AUTHORIZATION_ERROR"


class LockStateError(LedgerError):
    code = "LOCK_STATE_ERROR"


# Validation errors

class InvalidExpiry(ValidationError):
    code = "INVALID_EXPIRY"


class LockExpiringTooSoon(ValidationError):
    code = "LOCK_EXPIRING_TOO_SOON"


class ZeroAmount(ValidationError):
    code = "ZERO_AMOUNT"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class DelegateNotRegistered(ValidationError):
    code = "DELEGATE_NOT_REGISTERED"


class SelfDelegation(ValidationError):
    code = "SELF_DELEGATION"


class SameDelegate(ValidationError):
    code = "SAME_DELEGATE"


class ActionLimitExceeded(ValidationError):
    code = "ACTION_LIMIT_EXCEEDED"


# Authorization errors

class Unauthorized(AuthorizationError):
    code = "UNAUTHORIZED"


# State errors

class LockNotFound(LockStateError):
    code = "LOCK_NOT_FOUND"


class NotExpired(LockStateError):
    code = "NOT_EXPIRED"


class AlreadyUnlocked(LockStateError):
    code = "ALREADY_UNLOCKED"


class AlreadyDelegated(LockStateError):
    code = "ALREADY_DELEGATED"


class NotDelegated(LockStateError):
    code = "NOT_DELEGATED"


class AlreadyUndelegated(LockStateError):
    code = "ALREADY_UNDELEGATED"


# Reads

class EpochNotFinalized(LedgerError):
    code = "EPOCH_NOT_FINALIZED"

    def __init__(self, epoch: int) -> None:
        super().__init__(f"Total supply for epoch {epoch} is not finalized yet")
        self.epoch = epoch


# Custody

class InsufficientBalance(LedgerError):
    code = "INSUFFICIENT_BALANCE"


class InvariantViolation(LedgerError):
    """Raised when an aggregate or scheduler bucket would go negative."""

    code = "INVARIANT_VIOLATION"
