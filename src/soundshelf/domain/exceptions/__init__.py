"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is your base class - DON'T raise it directly! Use a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class DuplicateEntityException(DomainException):
    """Raised when trying to create a duplicate entity."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} already exists")
        self.entity_type = entity_type
        self.entity_id = entity_id


class EntityInUseException(DomainException):
    """Raised when deleting an entity that other rows still reference.

    The catalog never deletes an Artist/Album/Genre while a Track (or Album)
    points at it - that would orphan the track's required references.
    """

    def __init__(self, entity_type: str, entity_id: Any, referenced_by: str) -> None:
        super().__init__(
            f"{entity_type} with id {entity_id} is still referenced by {referenced_by}"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.referenced_by = referenced_by


class ValidationException(DomainException):
    """Raised when caller input violates a business rule (bad path, empty name)."""

    pass


class ConfigurationError(DomainException):
    """Raised when runtime configuration is unusable."""

    pass


__all__ = [
    "ConfigurationError",
    "DomainException",
    "DuplicateEntityException",
    "EntityInUseException",
    "EntityNotFoundException",
    "ValidationException",
]
