# fleetdesk/utils/results.py
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import STATUS_BY_KIND, ActionError, DependencyError
from ..extensions import db


@dataclass
class ActionResult:
    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> "ActionResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def failure(cls, exc: ActionError) -> "ActionResult":
        return cls(success=False, error=exc.message, error_kind=exc.kind)

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return STATUS_BY_KIND.get(self.error_kind or "", 400)

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"success": self.success}
        if self.success:
            if self.data is not None:
                out["data"] = self.data
            if self.message:
                out["message"] = self.message
        else:
            out["error"] = self.error
        return out


def action(label: str, failure_message: str) -> Callable:
    """
    Action boundary: nothing raised inside escapes to the caller.

        @action("Create quote", "Failed to create quote")
        def create_quote(actor, payload): ...

    ActionError -> rollback + failed result carrying its message.
    SQLAlchemyError -> rollback + logged traceback + generic failure_message.
    """

    def decorator(fn: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
        @wraps(fn)
        def wrapped(*args, **kwargs) -> ActionResult:
            try:
                return fn(*args, **kwargs)
            except DependencyError as exc:
                db.session.rollback()
                current_app.logger.error("%s failed: %s", label, exc.details or exc.message)
                return ActionResult.failure(exc)
            except ActionError as exc:
                db.session.rollback()
                if exc.details:
                    current_app.logger.warning("%s rejected: %s (%s)", label, exc.message, exc.details)
                else:
                    current_app.logger.info("%s rejected: %s", label, exc.message)
                return ActionResult.failure(exc)
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception("%s failed", label)
                return ActionResult.failure(DependencyError(failure_message))

        return wrapped

    return decorator
