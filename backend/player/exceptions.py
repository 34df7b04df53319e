"""Domain-specific exceptions.

All exceptions raised by Player services inherit from PlayerError, so the
API layer can map the whole family to HTTP responses in one place.
"""
from __future__ import annotations


class PlayerError(Exception):
    """Base exception for all Player errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ForbiddenError(PlayerError):
    """The principal lacks the permissions required for the operation.

    Also raised when an immutable catalog entry or Role would be edited
    or deleted.
    """

    status_code = 403


class EntityNotFoundError(PlayerError):
    """A referenced entity (Role, Permission, Team, ...) does not exist."""

    status_code = 404

    def __init__(self, entity_type: str, entity_id: object = None) -> None:
        if entity_id is None:
            message = f"{entity_type} not found"
        else:
            message = f"{entity_type} {entity_id} not found"
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(PlayerError):
    """The operation would break a uniqueness or protected-entity rule.

    Examples: a duplicate Role name, deleting or renaming a default
    Team Role, deleting a Team Role that Teams still use.
    """

    status_code = 409


class InvalidRequestError(PlayerError):
    """The request is well-formed but cannot be carried out as given."""

    status_code = 400
