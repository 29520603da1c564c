"""Tests for the confluentresourceoperator.poller module."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable

import pytest

from confluentresourceoperator.errors import (
    Cancelled,
    ConvergenceTimeout,
    FatalGatewayError,
    ValidationError,
)
from confluentresourceoperator.poller import (
    ConvergenceTask,
    OperationContext,
    PollSettings,
    wait_for_state,
)


class ScriptedProbe:
    """A refresh function that replays a list of states, then repeats the
    last one, recording when each probe ran.
    """

    def __init__(self, states: Iterable[str]) -> None:
        self.states = list(states)
        self.times: list[float] = []

    def __call__(self) -> tuple[int, str]:
        self.times.append(time.monotonic())
        index = min(len(self.times), len(self.states)) - 1
        return len(self.times), self.states[index]


def make_task(probe, settings: PollSettings) -> ConvergenceTask:
    return ConvergenceTask(
        resource="orders",
        refresh=probe,
        pending=("Updating",),
        target=("Ready",),
        settings=settings,
        description="to become ready",
    )


def test_pending_then_target(fast_settings: PollSettings) -> None:
    probe = ScriptedProbe(["Updating", "Updating", "Updating", "Ready"])
    outcome = wait_for_state(make_task(probe, fast_settings))

    assert outcome.state == "Ready"
    assert outcome.probes == 4
    assert outcome.observation == 4
    gaps = [b - a for a, b in zip(probe.times, probe.times[1:])]
    assert all(gap >= fast_settings.poll_interval for gap in gaps)


def test_delay_before_first_probe() -> None:
    settings = PollSettings(
        timeout=2.0, delay=0.1, poll_interval=0.01, min_timeout=0.0
    )
    probe = ScriptedProbe(["Ready"])
    started = time.monotonic()
    wait_for_state(make_task(probe, settings))
    assert probe.times[0] - started >= 0.1


def test_timeout_reports_last_state() -> None:
    settings = PollSettings(
        timeout=0.1, delay=0.0, poll_interval=0.01, min_timeout=0.0
    )
    probe = ScriptedProbe(["Updating"])
    with pytest.raises(ConvergenceTimeout) as excinfo:
        wait_for_state(make_task(probe, settings))

    assert excinfo.value.last_state == "Updating"
    assert excinfo.value.timeout == 0.1
    assert excinfo.value.resource == "orders"
    assert len(probe.times) >= 2


def test_unexpected_state_polls_until_timeout() -> None:
    settings = PollSettings(
        timeout=0.1, delay=0.0, poll_interval=0.01, min_timeout=0.0
    )
    probe = ScriptedProbe(["1 != 3"])
    with pytest.raises(ConvergenceTimeout) as excinfo:
        wait_for_state(make_task(probe, settings))
    assert excinfo.value.last_state == "1 != 3"


def test_unexpected_state_then_target(fast_settings: PollSettings) -> None:
    probe = ScriptedProbe(["1 != 3", "Ready"])
    outcome = wait_for_state(make_task(probe, fast_settings))
    assert outcome.state == "Ready"
    assert outcome.probes == 2


def test_probe_error_propagates_immediately(
    fast_settings: PollSettings,
) -> None:
    calls = []

    def refresh():
        calls.append(None)
        if len(calls) == 2:
            raise FatalGatewayError("403 Forbidden")
        return None, "Updating"

    with pytest.raises(FatalGatewayError):
        wait_for_state(make_task(refresh, fast_settings))
    assert len(calls) == 2


def test_min_timeout_confirms_early_target() -> None:
    settings = PollSettings(
        timeout=2.0, delay=0.0, poll_interval=0.01, min_timeout=0.1
    )
    probe = ScriptedProbe(["Ready"])
    outcome = wait_for_state(make_task(probe, settings))

    assert outcome.probes == 2
    assert outcome.elapsed >= 0.1


def test_min_timeout_longer_than_timeout_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        PollSettings(timeout=1.0, min_timeout=2.0)
    assert "min_timeout" in str(excinfo.value)


@pytest.mark.parametrize("name", ["timeout", "delay", "poll_interval"])
def test_negative_poll_setting_is_rejected(name: str) -> None:
    with pytest.raises(ValidationError):
        PollSettings(**{name: -1.0, "min_timeout": 0.0})


def test_min_timeout_rejects_stale_first_read() -> None:
    settings = PollSettings(
        timeout=2.0, delay=0.0, poll_interval=0.01, min_timeout=0.1
    )
    probe = ScriptedProbe(["Ready", "Updating", "Ready"])
    outcome = wait_for_state(make_task(probe, settings))

    assert outcome.probes == 3


def test_cancel_event_raises_cancelled(fast_settings: PollSettings) -> None:
    context = OperationContext()
    calls = []

    def refresh():
        calls.append(None)
        if len(calls) == 2:
            context.cancel()
        return None, "Updating"

    with pytest.raises(Cancelled) as excinfo:
        wait_for_state(make_task(refresh, fast_settings), context=context)

    assert not isinstance(excinfo.value, ConvergenceTimeout)
    assert excinfo.value.last_state == "Updating"
    assert len(calls) == 2


def test_cancel_from_another_thread_wakes_sleep() -> None:
    settings = PollSettings(
        timeout=30.0, delay=0.0, poll_interval=10.0, min_timeout=0.0
    )
    context = OperationContext()
    timer = threading.Timer(0.05, context.cancel)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(Cancelled):
            wait_for_state(
                make_task(ScriptedProbe(["Updating"]), settings),
                context=context,
            )
    finally:
        timer.cancel()
    assert time.monotonic() - started < 5.0


def test_deadline_raises_cancelled() -> None:
    settings = PollSettings(
        timeout=30.0, delay=0.0, poll_interval=0.01, min_timeout=0.0
    )
    context = OperationContext.with_timeout(0.05)
    with pytest.raises(Cancelled):
        wait_for_state(
            make_task(ScriptedProbe(["Updating"]), settings), context=context
        )


def test_already_cancelled_never_probes(fast_settings: PollSettings) -> None:
    context = OperationContext()
    context.cancel()
    probe = ScriptedProbe(["Ready"])
    with pytest.raises(Cancelled) as excinfo:
        wait_for_state(make_task(probe, fast_settings), context=context)
    assert probe.times == []
    assert excinfo.value.last_state is None
