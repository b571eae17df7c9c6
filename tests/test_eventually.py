"""Tests for the bounded-retry assertion engine."""

import asyncio

import pytest
from conftest import FakeClock

from perfconform.assertion.eventually import await_condition, eventually
from perfconform.domain.errors import InvariantViolation, MismatchFailure, ProbeError, TimeoutFailure
from perfconform.domain.models import ComparisonResult


def scripted(*results: object):
    """Poll returning (or raising) each item in turn, repeating the last."""
    queue = list(results)

    async def _poll() -> ComparisonResult:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        assert isinstance(item, ComparisonResult)
        return item

    return _poll


MISS = ComparisonResult(matched=False, expected="a", observed="b")
HIT = ComparisonResult(matched=True, expected="a", observed="a")


class TestAwaitCondition:
    async def test_immediate_match(self, clock: FakeClock) -> None:
        outcome = await await_condition(scripted(HIT), interval=1, timeout=5, clock=clock, sleep=clock.sleep)
        assert outcome.passed
        assert outcome.attempts == 1
        assert outcome.elapsed_seconds == 0
        assert clock.sleeps == []

    async def test_converges_after_three_mismatches(self, clock: FakeClock) -> None:
        outcome = await await_condition(
            scripted(MISS, MISS, MISS, HIT),
            interval=1,
            timeout=5,
            name="probe",
            target="node/a",
            clock=clock,
            sleep=clock.sleep,
        )
        assert outcome.passed
        assert outcome.attempts == 4
        assert outcome.elapsed_seconds == 3
        assert outcome.name == "probe"
        assert outcome.target == "node/a"

    async def test_times_out(self, clock: FakeClock) -> None:
        outcome = await await_condition(scripted(MISS), interval=1, timeout=5, clock=clock, sleep=clock.sleep)
        assert not outcome.passed
        assert outcome.attempts == 6
        assert outcome.elapsed_seconds == 5
        assert outcome.error_kind == "TimeoutFailure"
        assert outcome.expected == "a"
        assert outcome.observed == "b"

    async def test_zero_timeout_polls_once(self, clock: FakeClock) -> None:
        outcome = await await_condition(scripted(MISS), interval=1, timeout=0, clock=clock, sleep=clock.sleep)
        assert not outcome.passed
        assert outcome.attempts == 1

    async def test_probe_errors_count_as_not_yet(self, clock: FakeClock) -> None:
        poll = scripted(ProbeError("connection refused"), MismatchFailure("nope", expected="a", observed="c"), HIT)
        outcome = await await_condition(poll, interval=2, timeout=10, clock=clock, sleep=clock.sleep)
        assert outcome.passed
        assert outcome.attempts == 3
        assert clock.sleeps == [2, 2]

    async def test_last_error_reported_on_timeout(self, clock: FakeClock) -> None:
        poll = scripted(ProbeError("exec failed", expected="x", observed="stderr"))
        outcome = await await_condition(poll, interval=1, timeout=2, clock=clock, sleep=clock.sleep)
        assert not outcome.passed
        assert outcome.observed == "stderr"
        assert "ProbeError" in outcome.detail

    async def test_invariant_violation_propagates(self, clock: FakeClock) -> None:
        with pytest.raises(InvariantViolation):
            await await_condition(scripted(InvariantViolation("broken")), interval=1, timeout=5, clock=clock, sleep=clock.sleep)

    async def test_slow_poll_does_not_sleep_extra(self, clock: FakeClock) -> None:
        calls = 0

        async def _slow() -> ComparisonResult:
            nonlocal calls
            calls += 1
            clock.now += 3
            return HIT if calls == 2 else MISS

        outcome = await await_condition(_slow, interval=1, timeout=10, clock=clock, sleep=clock.sleep)
        assert outcome.passed
        assert clock.sleeps == [0.0]

    async def test_hung_poll_is_cut_off_at_deadline(self) -> None:
        async def _hang() -> ComparisonResult:
            await asyncio.Event().wait()
            return HIT

        outcome = await asyncio.wait_for(await_condition(_hang, interval=0.05, timeout=0.2), 2.0)
        assert not outcome.passed
        assert outcome.error_kind == "TimeoutFailure"
        assert "did not finish" in outcome.detail

    async def test_rejects_non_positive_interval(self, clock: FakeClock) -> None:
        with pytest.raises(ValueError, match="interval"):
            await await_condition(scripted(HIT), interval=0, timeout=5, clock=clock, sleep=clock.sleep)


class TestEventually:
    async def test_returns_outcome_on_match(self, clock: FakeClock) -> None:
        outcome = await eventually(scripted(MISS, HIT), interval=1, timeout=5, clock=clock, sleep=clock.sleep)
        assert outcome.attempts == 2

    async def test_raises_timeout_failure(self, clock: FakeClock) -> None:
        with pytest.raises(TimeoutFailure) as exc_info:
            await eventually(
                scripted(MISS),
                interval=1,
                timeout=3,
                name="active-profile",
                target="node/a",
                clock=clock,
                sleep=clock.sleep,
            )
        err = exc_info.value
        assert err.outcome is not None
        assert err.outcome.attempts == 4
        assert err.check == "active-profile"
        assert err.target == "node/a"
        assert err.expected == "a"
        assert err.observed == "b"
