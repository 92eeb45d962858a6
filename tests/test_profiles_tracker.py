"""Tests for src/profiles/tracker.py - latest-request-wins build tracking."""

import threading

import pytest

from src.profiles.errors import AnalyticsRequestError, ProfileBuildError, StaleBuildError
from src.profiles.tracker import BuildTracker


class ControlledAssembler:
    """Assembler whose builds finish only when the test releases them."""

    def __init__(self):
        self.gates = {}
        self.started = {}
        self.failures = {}

    def gate(self, scope):
        self.gates[scope] = threading.Event()
        self.started[scope] = threading.Event()
        return self.gates[scope]

    def assemble(self, scope, reporting_year, **kwargs):
        if scope in self.gates:
            self.started[scope].set()
            assert self.gates[scope].wait(timeout=5)
        if scope in self.failures:
            raise self.failures[scope]
        return {"scope": scope, "year": reporting_year}


def _run_in_thread(func, *args):
    outcome = {}

    def target():
        try:
            outcome["result"] = func(*args)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=target)
    thread.start()
    return thread, outcome


class TestBuildTracker:
    def test_request_publishes_record(self):
        tracker = BuildTracker(ControlledAssembler())
        record = tracker.request("ou1", 2024)
        assert record == {"scope": "ou1", "year": 2024}
        assert tracker.current == record
        assert tracker.generation == 1

    def test_stale_result_never_overwrites_newer(self):
        assembler = ControlledAssembler()
        slow_gate = assembler.gate("slow")
        tracker = BuildTracker(assembler)

        thread, outcome = _run_in_thread(tracker.request, "slow", 2023)
        assert assembler.started["slow"].wait(timeout=5)

        fresh = tracker.request("fast", 2024)
        slow_gate.set()
        thread.join(timeout=5)

        assert isinstance(outcome.get("error"), StaleBuildError)
        assert tracker.current == fresh
        assert tracker.generation == 2

    def test_failure_of_latest_request_recorded(self):
        assembler = ControlledAssembler()
        error = ProfileBuildError("ou1", 2024, AnalyticsRequestError("/api/analytics", "down"))
        assembler.failures["ou1"] = error
        tracker = BuildTracker(assembler)

        tracker.request("ou0", 2024)
        with pytest.raises(ProfileBuildError):
            tracker.request("ou1", 2024)

        assert tracker.latest_error is error
        assert tracker.current is None

    def test_stale_failure_does_not_replace_fresh_state(self):
        assembler = ControlledAssembler()
        slow_gate = assembler.gate("slow")
        assembler.failures["slow"] = ProfileBuildError("slow", 2023, RuntimeError("late"))
        tracker = BuildTracker(assembler)

        thread, outcome = _run_in_thread(tracker.request, "slow", 2023)
        assert assembler.started["slow"].wait(timeout=5)
        fresh = tracker.request("fast", 2024)
        slow_gate.set()
        thread.join(timeout=5)

        assert isinstance(outcome.get("error"), StaleBuildError)
        assert tracker.latest_error is None
        assert tracker.current == fresh

    def test_success_clears_previous_error(self):
        assembler = ControlledAssembler()
        assembler.failures["bad"] = ProfileBuildError("bad", 2024, RuntimeError("x"))
        tracker = BuildTracker(assembler)

        with pytest.raises(ProfileBuildError):
            tracker.request("bad", 2024)
        tracker.request("good", 2024)

        assert tracker.latest_error is None
        assert tracker.current["scope"] == "good"

    def test_kwargs_forwarded(self):
        calls = []

        class Recorder:
            def assemble(self, scope, reporting_year, **kwargs):
                calls.append(kwargs)
                return {}

        BuildTracker(Recorder()).request("ou1", 2024, include_charts=True)
        assert calls == [{"include_charts": True}]
