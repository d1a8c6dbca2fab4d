"""
Sprintify exception hierarchy.

Services raise these; blueprints map them to HTTP status codes once
(see blueprints.register_error_handlers).  Every failure is surfaced as
a typed error with a human-readable message.

Usage:
    from sprintify.core.exceptions import NotFoundError, PreconditionFailedError

    raise NotFoundError(resource="Sprint", resource_id=42)
    raise PreconditionFailedError('WIP Limit Reached! "Doing" has a limit of 3')
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND rows that belong to another
    project or organization; the two cases produce the same message.

    Args:
        resource: Human-readable model/entity name (e.g. "Sprint", "WorkItem").
        resource_id: The PK that was looked up.
        project_id: Optional scope that was enforced. Kept for logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        project_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PreconditionFailedError(ValidationError):
    """Raised when an operation is refused because of current state.

    WIP limit reached, incomplete Definition of Done, sprint not in the
    expected lifecycle state, a dependency edge that would close a cycle,
    scheduling asked of an Agile project.

    Maps to HTTP 412.
    """


class ConflictError(Exception):
    """Raised when an operation collides with existing data.

    Duplicate keys, a second ACTIVE sprint, a dependency edge that already
    exists.  Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field or relation that collides.
        value: The conflicting value.
        message: Overrides the generated message when given.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
