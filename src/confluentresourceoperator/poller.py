"""A generic wait-until-converged primitive.

The cluster management API is eventually consistent: a mutation call returns
as soon as the request is accepted, while the brokers catch up in the
background. `wait_for_state` blocks the calling operation and repeatedly asks
a refresh probe for the resource's current state until the probe reports a
target state, the probe fails, the timeout elapses, or the caller cancels.
"""

from __future__ import annotations

__all__ = (
    "ConvergenceOutcome",
    "ConvergenceTask",
    "OperationContext",
    "PollSettings",
    "RefreshFunc",
    "wait_for_state",
)

import threading
import time
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from typing import Any

import structlog

from confluentresourceoperator.errors import (
    Cancelled,
    ConvergenceTimeout,
    ValidationError,
)

RefreshFunc = Callable[[], tuple[Any, str]]
"""A probe returning ``(observation, state)``. Errors are raised."""


@dataclass(frozen=True)
class PollSettings:
    """Timing of a convergence wait, in seconds.

    Parameters
    ----------
    timeout : `float`
        How long to wait for a target state before giving up.
    delay : `float`
        How long to wait before the first probe.
    poll_interval : `float`
        Minimum time between the end of one probe and the start of the next.
    min_timeout : `float`
        Floor on the time before a target state is accepted. A target state
        reported earlier is confirmed by another probe once the floor is
        reached, so a stale first read never ends the wait.

    Raises
    ------
    confluentresourceoperator.errors.ValidationError
        Raised if a value is negative, or if ``min_timeout`` exceeds
        ``timeout``, which would time out a wait whose target state was
        already reported.
    """

    timeout: float = 120.0
    delay: float = 1.0
    poll_interval: float = 1.0
    min_timeout: float = 2.0

    def __post_init__(self) -> None:
        for name in ("timeout", "delay", "poll_interval", "min_timeout"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must not be negative")
        if self.min_timeout > self.timeout:
            raise ValidationError(
                f"min_timeout ({self.min_timeout}s) must not exceed "
                f"timeout ({self.timeout}s)"
            )


@dataclass
class OperationContext:
    """Cancellation signal and deadline of a whole resource operation.

    The context is created by the caller of an operation and handed down to
    every convergence wait it performs. Setting ``cancel_event`` or passing
    ``deadline`` (a `time.monotonic` timestamp) stops the wait at once.
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None

    @classmethod
    def with_timeout(
        cls, seconds: float, cancel_event: threading.Event | None = None
    ) -> OperationContext:
        """Create a context whose deadline is ``seconds`` from now."""
        return cls(
            cancel_event=cancel_event or threading.Event(),
            deadline=time.monotonic() + seconds,
        )

    def cancel(self) -> None:
        self.cancel_event.set()

    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def sleep_until(self, wake_at: float) -> bool:
        """Sleep until the monotonic time ``wake_at``.

        Returns
        -------
        cancelled : `bool`
            `True` if the context was cancelled before waking up.
        """
        while True:
            if self.cancelled():
                return True
            now = time.monotonic()
            if now >= wake_at:
                return False
            wait = wake_at - now
            if self.deadline is not None:
                wait = min(wait, max(self.deadline - now, 0.0))
            self.cancel_event.wait(wait)


@dataclass
class ConvergenceTask:
    """What a convergence wait is waiting for.

    Parameters
    ----------
    resource : `str`
        Name of the resource, for messages and errors.
    refresh : `RefreshFunc`
        The probe.
    pending : collection of `str`
        States that mean "not there yet".
    target : collection of `str`
        States that mean "converged".
    settings : `PollSettings`
        Timing of the wait.
    description : `str`
        What is being waited for, e.g. ``"replication factor to update"``.
    """

    resource: str
    refresh: RefreshFunc
    pending: Collection[str]
    target: Collection[str]
    settings: PollSettings = field(default_factory=PollSettings)
    description: str = "to converge"


@dataclass(frozen=True)
class ConvergenceOutcome:
    """Result of a successful convergence wait."""

    observation: Any
    state: str
    probes: int
    elapsed: float


def wait_for_state(
    task: ConvergenceTask,
    context: OperationContext | None = None,
    logger: Any | None = None,
) -> ConvergenceOutcome:
    """Poll ``task.refresh`` until it reports one of ``task.target``.

    Parameters
    ----------
    task : `ConvergenceTask`
        The probe, state vocabulary and timing.
    context : `OperationContext`, optional
        Cancellation signal and deadline of the calling operation.
    logger : optional
        Logger to use. If not provided, a structlog logger is used.

    Returns
    -------
    outcome : `ConvergenceOutcome`
        The observation and state of the converging probe.

    Raises
    ------
    ConvergenceTimeout
        Raised if no target state is reached within ``task.settings.timeout``.
        States that are in neither ``pending`` nor ``target`` are polled
        through until then.
    Cancelled
        Raised as soon as the context is cancelled or its deadline passes.
    Exception
        Any error raised by the probe, unchanged and without further polling.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)
    if context is None:
        context = OperationContext()

    settings = task.settings
    started = time.monotonic()
    timeout_at = started + settings.timeout
    accept_after = started + settings.min_timeout
    probes = 0
    last_state: str | None = None

    def cancelled() -> Cancelled:
        return Cancelled(
            f"cancelled while waiting for {task.resource} {task.description}",
            last_state=last_state,
            resource=task.resource,
        )

    if context.sleep_until(min(started + settings.delay, timeout_at)):
        raise cancelled()

    while True:
        if context.cancelled():
            raise cancelled()
        if probes > 0 and time.monotonic() >= timeout_at:
            raise ConvergenceTimeout(
                f"timeout while waiting for {task.resource} "
                f"{task.description} (last state: {last_state})",
                last_state=last_state,
                timeout=settings.timeout,
                resource=task.resource,
            )

        observation, state = task.refresh()
        probes += 1
        last_state = state
        probed_at = time.monotonic()
        next_probe = probed_at + settings.poll_interval

        if state in task.target:
            if probed_at >= accept_after:
                logger.info(
                    f"{task.resource} reached {state} after {probes} "
                    f"probe(s)"
                )
                return ConvergenceOutcome(
                    observation=observation,
                    state=state,
                    probes=probes,
                    elapsed=probed_at - started,
                )
            logger.debug(
                f"{task.resource} reported {state} early; confirming"
            )
            next_probe = max(next_probe, accept_after)
        elif state in task.pending:
            logger.debug(f"Waiting for {task.resource}: {state}")
        else:
            logger.warning(
                f"Unexpected state {state!r} for {task.resource}; "
                "polling until timeout"
            )

        if context.sleep_until(min(next_probe, timeout_at)):
            raise cancelled()
