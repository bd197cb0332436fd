"""
Orchestrator-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from orchestrator.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Onboarding", resource_id=onboarding_id)
    raise ValidationError("Invalid role", details={"role": "..."})
"""


class NotFoundError(Exception):
    """Raised when a referenced onboarding/task/stakeholder/integration does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Onboarding", "Task").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule; nothing has been written.

    Maps to HTTP 400 in the blueprint error handlers.

    Args:
        message: Human-readable explanation, surfaced verbatim to the caller.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an insert collides with a unique key (e.g. an escalation
    already claimed for the same task and day).

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PersistenceError(Exception):
    """Raised when the store rejects a write or is unreachable.

    Surfaced to the caller as a generic failure (HTTP 500); the core never
    retries.
    """
