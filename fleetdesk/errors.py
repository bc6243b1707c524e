# fleetdesk/errors.py
from __future__ import annotations

from typing import Any


class ActionError(Exception):
    """
    Base for every failure an action reports back to the caller.
    The message is user-facing; `details` is for logs only.
    """

    kind = "error"
    status_code = 400

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(ActionError):
    kind = "authentication"
    status_code = 401


class AuthorizationError(ActionError):
    kind = "authorization"
    status_code = 403


class ValidationError(ActionError):
    kind = "validation"
    status_code = 400


class NotFoundError(ActionError):
    kind = "not_found"
    status_code = 404


class StateConflictError(ActionError):
    kind = "state_conflict"
    status_code = 409


class DependencyError(ActionError):
    kind = "dependency"
    status_code = 502


STATUS_BY_KIND = {
    cls.kind: cls.status_code
    for cls in (
        ActionError,
        AuthenticationError,
        AuthorizationError,
        ValidationError,
        NotFoundError,
        StateConflictError,
        DependencyError,
    )
}
