"""Tests for the per-machine provisioning state machine."""

from __future__ import annotations

import pytest

from fleetcore.core.errors import InvalidTransitionError
from fleetcore.core.machine_tracker import MachineTracker
from fleetcore.models.state import MachineState


def _walk_to_ready(tracker: MachineTracker, machine_id: str) -> None:
    tracker.request(machine_id)
    for state in (
        MachineState.HARDWARE_SELECTED,
        MachineState.LAUNCHED,
        MachineState.ADDRESSES_RESOLVED,
        MachineState.READY,
    ):
        tracker.transition(machine_id, state)


class TestMachineTracker:
    def test_happy_path(self):
        tracker = MachineTracker()
        _walk_to_ready(tracker, "1")
        assert tracker.state("1") is MachineState.READY
        assert [t.to_state for t in tracker.history("1")] == [
            MachineState.REQUESTED,
            MachineState.HARDWARE_SELECTED,
            MachineState.LAUNCHED,
            MachineState.ADDRESSES_RESOLVED,
            MachineState.READY,
        ]

    def test_skipping_a_state_rejected(self):
        tracker = MachineTracker()
        tracker.request("1")
        with pytest.raises(InvalidTransitionError, match="Allowed"):
            tracker.transition("1", MachineState.LAUNCHED)

    def test_unknown_machine_rejected(self):
        with pytest.raises(InvalidTransitionError, match="never requested"):
            MachineTracker().transition("9", MachineState.HARDWARE_SELECTED)

    def test_request_twice_rejected(self):
        tracker = MachineTracker()
        tracker.request("1")
        with pytest.raises(InvalidTransitionError):
            tracker.request("1")

    def test_failed_machine_can_be_retried(self):
        tracker = MachineTracker()
        tracker.request("1")
        tracker.fail("1", "boom")
        assert tracker.state("1") is MachineState.FAILED
        tracker.request("1")
        assert tracker.state("1") is MachineState.REQUESTED

    def test_fail_is_noop_on_terminal_or_unknown(self):
        tracker = MachineTracker()
        _walk_to_ready(tracker, "1")
        tracker.fail("1", "late")
        tracker.fail("2", "never seen")
        assert tracker.state("1") is MachineState.READY
        assert tracker.state("2") is None

    def test_ready_machine_cannot_be_requested_until_forgotten(self):
        tracker = MachineTracker()
        _walk_to_ready(tracker, "0")
        with pytest.raises(InvalidTransitionError):
            tracker.request("0")
        tracker.forget("0")
        tracker.request("0")
        assert tracker.state("0") is MachineState.REQUESTED
        assert len(tracker.history("0")) == 6

    def test_history_records_detail(self):
        tracker = MachineTracker()
        tracker.request("1")
        tracker.transition("1", MachineState.HARDWARE_SELECTED, "m1.small")
        last = tracker.history()[-1]
        assert last.detail == "m1.small"
        assert last.from_state is MachineState.REQUESTED
