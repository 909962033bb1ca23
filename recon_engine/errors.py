"""Errors raised by reconciliation operations."""


class ReconciliationError(Exception):
    """Base exception for reconciliation engine errors."""

    pass


class NotFoundError(ReconciliationError):
    """A referenced transaction, document, match record or alert does not exist."""

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(ReconciliationError):
    """Operation is not allowed in the current state."""

    pass


class ConcurrencyConflictError(InvalidStateError):
    """A concurrent writer changed a row this operation depends on."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class ValidationError(ReconciliationError):
    """Malformed input."""

    pass
