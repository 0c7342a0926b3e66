"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Every failure the issue engine can produce has its own exception type so
callers can tell a bad request from a stale read from a missing ticket.
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Malformed input. Nothing was applied; fix the input and retry."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.field = field
        super().__init__(message, details or ({"field": field} if field else {}))


class IllegalTransitionException(DomainException):
    """The requested status change is not allowed from the current status."""

    def __init__(
        self,
        current_status: Any,
        target_status: Any,
        details: Optional[dict] = None
    ):
        self.current_status = getattr(current_status, "value", current_status)
        self.target_status = getattr(target_status, "value", target_status)
        super().__init__(
            f"Cannot transition issue from '{self.current_status}' to '{self.target_status}'",
            details or {"current_status": self.current_status, "target_status": self.target_status}
        )


class UnauthorizedActorException(DomainException):
    """The actor is not a party allowed to perform this action on the ticket."""

    def __init__(
        self,
        actor_id: str,
        action: Any,
        details: Optional[dict] = None
    ):
        self.actor_id = actor_id
        self.action = getattr(action, "value", action)
        super().__init__(
            f"Actor '{actor_id}' is not permitted to perform '{self.action}'",
            details or {"actor_id": actor_id, "action": self.action}
        )


class ConcurrencyConflictException(RepositoryException):
    """Optimistic-lock mismatch. Re-read the ticket and re-validate before retrying."""

    def __init__(
        self,
        issue_id: str,
        expected_version: int,
        details: Optional[dict] = None
    ):
        self.issue_id = issue_id
        self.expected_version = expected_version
        super().__init__(
            f"Issue {issue_id} was modified concurrently (expected version {expected_version})",
            details or {"issue_id": issue_id, "expected_version": expected_version}
        )


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""
