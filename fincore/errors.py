from typing import Optional


class FinanceError(Exception):
    """Base class for every error raised by the finance core."""


class ValidationError(FinanceError):
    """An entity failed validation. Nothing was stored or persisted."""

    def __init__(self, details: dict):
        self.details = dict(details)
        self.field = details.get("field")
        super().__init__(details.get("message", "invalid record"))


class PersistenceError(FinanceError):
    """A read or write against the persistence collaborator failed."""

    def __init__(self, entity_type: str, operation: str, entity_id: Optional[str] = None, message: str = ""):
        self.entity_type = entity_type
        self.operation = operation
        self.entity_id = entity_id
        text = f"{operation} failed for {entity_type}"
        if entity_id:
            text += f" ({entity_id})"
        if message:
            text += f": {message}"
        super().__init__(text)


class NotFoundError(FinanceError):
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} record {entity_id} not found")


class ReentrantMutationError(FinanceError):
    """Raised when a change handler tries to mutate the store it is listening to."""
