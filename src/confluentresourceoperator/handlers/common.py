"""Helpers shared by the kopf handlers."""

from __future__ import annotations

__all__ = (
    "API_GROUP",
    "API_VERSION",
    "drift_status",
    "get_gateway",
    "get_int",
    "operation_context",
    "recorded_identity",
)

from datetime import datetime, timezone
from typing import Any

import kopf

from confluentresourceoperator import state
from confluentresourceoperator.errors import ValidationError
from confluentresourceoperator.gateway import ClusterGateway
from confluentresourceoperator.poller import OperationContext

API_GROUP = "confluentresourceoperator.io"
API_VERSION = "v1alpha1"


def get_gateway() -> ClusterGateway:
    """Get the gateway built at start-up.

    Raises
    ------
    kopf.TemporaryError
        Raised if the operator has not finished starting up.
    """
    if state.gateway is None:
        raise kopf.TemporaryError(
            "The cluster gateway is not ready.", delay=10
        )
    return state.gateway


def operation_context() -> OperationContext:
    """Create the cancellation context of one handler invocation."""
    return OperationContext.with_timeout(state.operation_timeout)


def recorded_identity(
    status: dict[str, Any], *handler_ids: str
) -> str | None:
    """Get the identity a handler stored in the resource status.

    Handlers are checked in the order given; the first recorded identity
    wins. Kopf stores a handler's return value under its id.
    """
    for handler_id in handler_ids:
        result = status.get(handler_id) or {}
        if result.get("identity"):
            return result["identity"]
    return None


def get_int(spec: dict[str, Any], key: str, default: int = 0) -> int:
    """Get an integer field from a resource spec.

    Raises
    ------
    ValidationError
        Raised if the value is not an integer.
    """
    value = spec.get(key)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ValidationError(
            f"{key} must be an integer, got: {value!r}"
        ) from err


def drift_status(reasons: list[str]) -> dict[str, Any]:
    """Build the ``status.drift`` record written by the drift checks."""
    return {
        "drifted": bool(reasons),
        "reasons": reasons,
        "lastChecked": datetime.now(timezone.utc).isoformat(),
    }
