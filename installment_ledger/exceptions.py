"""Custom exception hierarchy for installment-ledger."""


class LedgerError(Exception):
    """Base exception for all installment-ledger errors."""


class EntityNotFoundError(LedgerError):
    """Raised when a referenced entity does not exist."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a foreign key reference is violated."""


class ValidationError(LedgerError):
    """Raised when an operation's input or resulting state is not acceptable."""


class InsufficientFundsError(ValidationError):
    """Raised when a balance cannot cover a withdrawal."""

    def __init__(self, message: str = "insufficient funds") -> None:
        super().__init__(message)


class ForbiddenError(LedgerError):
    """Raised when the acting user's role may not perform the operation."""


class ConflictError(LedgerError):
    """Raised when an entity's current state conflicts with the operation."""


class InvalidEntityStateError(ConflictError):
    """Raised when an entity is in an invalid state for the operation."""


class InternalError(LedgerError):
    """Raised when an unexpected failure aborts a unit of work."""


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""


class SinkError(LedgerError):
    """Raised when a sink operation fails."""
