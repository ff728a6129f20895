"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Workflow engine taxonomy:
    InvalidTransitionError       action not legal for (state, role)       → 409
    MissingReferenceError        order / item / target id absent          → 404
    ConcurrentModificationError  item changed since it was read           → 409
    SideEffectFailure            notification / inventory dispatch failed → logged only

Usage:
    from printshop.core.exceptions import InvalidTransitionError, NotFoundError

    raise NotFoundError(resource="OrderItem", resource_id=42)
    raise InvalidTransitionError(stage="design", status="approved",
                                 action="approve", role="design")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Order", "OrderItem").
        resource_id: The key that was looked up. Included in logs and messages.
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
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint); this
    exception signals that the data was well-formed but violated a business
    rule (unknown stage key, empty production sequence, bad QC result).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


# ── Workflow engine ──────────────────────────────────────────────────────────


class InvalidTransitionError(Exception):
    """Raised when an action is not legal for the item's current state and the actor's role.

    Carries the offending (state, action, role) triple so callers and logs can
    name exactly what was refused. Raised before any write.
    """

    def __init__(
        self,
        *,
        stage: str | None,
        status: str | None,
        action: str,
        role: str | None,
        reason: str | None = None,
    ) -> None:
        self.stage = stage
        self.status = status
        self.action = action
        self.role = role
        self.reason = reason
        msg = f"Cannot '{action}' as role={role!r} from stage={stage!r} status={status!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict:
        return {
            "state": {"stage": self.stage, "status": self.status},
            "action": self.action,
            "role": self.role,
            "reason": self.reason,
        }


class MissingReferenceError(NotFoundError):
    """Raised when a required id (order, item, target user/department) is absent at call time."""


class ConcurrentModificationError(Exception):
    """Raised when the item row changed between read and write and retries are exhausted."""

    def __init__(self, item_id: int | str, attempts: int = 1) -> None:
        self.item_id = item_id
        self.attempts = attempts
        super().__init__(f"OrderItem id={item_id} changed while the action was applied; state changed, please retry")


class SideEffectFailure(Exception):
    """A post-commit side effect could not be dispatched.

    Never propagated to the caller as an error: the executor logs it and
    reports it as a soft warning next to the committed transition.
    """

    def __init__(self, kind: str, cause: Exception | str) -> None:
        self.kind = kind
        self.cause = cause
        super().__init__(f"Side effect '{kind}' failed: {cause}")
