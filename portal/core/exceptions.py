"""
Portal-wide exception hierarchy.

Services raise these types; blueprints register one set of handlers
(``portal.utils.errors.register_error_handlers``) and get consistent HTTP
status codes and ``{success, message, code}`` envelopes everywhere.

Usage:
    from portal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("Invalid stage", details={"stage_name": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Document").
        resource_id: The key that was looked up. Included in the message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation before any state is mutated.

    Covers malformed stage / requirement identifiers, unknown status values,
    missing required fields and rejected uploads (type or size).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDenied(Exception):
    """Raised when the acting user may not perform a mutation.

    Non-owner, non-admin users touching another user's project or
    document end up here. Maps to HTTP 403.
    """

    def __init__(self, user_id: int | None, action: str, reason: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        self.reason = reason
        msg = f"User {user_id} does not have permission for '{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Maps to HTTP 409. Upserts absorb their own duplicate-key races, so in
    practice this only surfaces from explicit state conflicts such as
    restoring a project that was never deleted.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} conflicts with current state"
        super().__init__(msg)
