"""Error taxonomy for the convergence engine.

The classes double as kopf retry signals: anything that is a
`kopf.PermanentError` is surfaced to the resource status and never retried,
anything that is a `kopf.TemporaryError` is retried by kopf after ``delay``
seconds. `ResourceNotFound` is neither; it is a signal that callers inspect
for read and delete idempotence.
"""

from __future__ import annotations

__all__ = (
    "Cancelled",
    "ConvergenceTimeout",
    "DriftDetected",
    "FatalGatewayError",
    "GatewayError",
    "MalformedIdentity",
    "OperatorError",
    "ResourceNotFound",
    "TransientGatewayError",
    "ValidationError",
    "resource_context",
)

from collections.abc import Iterator
from contextlib import contextmanager

import kopf


class OperatorError(Exception):
    """Base class for errors raised by the convergence engine.

    Parameters
    ----------
    message : `str`
        Description of the failure.
    resource : `str`, optional
        The topic name or binding identity the failure applies to. Usually
        attached afterwards by `resource_context`.
    """

    def __init__(self, message: str, *, resource: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.resource = resource

    def __str__(self) -> str:
        if self.resource:
            return f"{self.resource}: {self.message}"
        return self.message


class ValidationError(OperatorError, kopf.PermanentError):
    """The desired state can never be applied as requested."""


class MalformedIdentity(ValidationError):
    """A composite binding identity could not be decoded."""


class ResourceNotFound(OperatorError, LookupError):
    """The remote resource does not exist."""


class DriftDetected(ResourceNotFound):
    """The remote resource no longer matches the recorded desired state."""


class GatewayError(OperatorError):
    """A call against the cluster management API failed."""


class TransientGatewayError(GatewayError, kopf.TemporaryError):
    """A gateway failure that may succeed if the operation is repeated."""

    def __init__(
        self,
        message: str,
        *,
        resource: str | None = None,
        delay: float = 30,
    ) -> None:
        super().__init__(message, resource=resource)
        self.delay = delay


class FatalGatewayError(GatewayError, kopf.PermanentError):
    """A gateway failure that repeating the operation will not fix."""


class ConvergenceTimeout(OperatorError, kopf.TemporaryError):
    """The remote resource did not reach a target state in time.

    Parameters
    ----------
    message : `str`
        Description of the wait that timed out.
    last_state : `str`, optional
        The last state label reported by the refresh probe, or `None` if no
        probe completed.
    timeout : `float`
        The timeout, in seconds, that elapsed.
    resource : `str`, optional
        The resource being waited on.
    """

    def __init__(
        self,
        message: str,
        *,
        last_state: str | None = None,
        timeout: float = 0.0,
        resource: str | None = None,
        delay: float = 30,
    ) -> None:
        super().__init__(message, resource=resource)
        self.last_state = last_state
        self.timeout = timeout
        self.delay = delay


class Cancelled(OperatorError, kopf.TemporaryError):
    """The caller cancelled the operation, or its deadline passed."""

    def __init__(
        self,
        message: str,
        *,
        last_state: str | None = None,
        resource: str | None = None,
        delay: float = 10,
    ) -> None:
        super().__init__(message, resource=resource)
        self.last_state = last_state
        self.delay = delay


@contextmanager
def resource_context(resource: str) -> Iterator[None]:
    """Attach ``resource`` to any `OperatorError` raised in the block.

    The error keeps its class and is re-raised; a resource that is already
    set by an inner block is left untouched.
    """
    try:
        yield
    except OperatorError as err:
        if err.resource is None:
            err.resource = resource
        raise
