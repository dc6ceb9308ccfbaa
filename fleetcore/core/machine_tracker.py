"""Per-machine provisioning state machine.

Every machine walks ``requested -> hardware_selected -> launched ->
addresses_resolved -> ready``; ``failed`` is reachable from any
non-terminal state.  Transitions outside VALID_MACHINE_TRANSITIONS raise
``InvalidTransitionError``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from fleetcore.core.errors import InvalidTransitionError
from fleetcore.models.state import VALID_MACHINE_TRANSITIONS, MachineState

logger = logging.getLogger(__name__)


class MachineTransition(BaseModel):
    """Records a single state transition for the audit trail."""

    model_config = ConfigDict(frozen=True)

    machine_id: str
    from_state: MachineState | None
    to_state: MachineState
    detail: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class MachineTracker:
    """Tracks the sub-flow state of every machine started in this process."""

    def __init__(self) -> None:
        self._states: dict[str, MachineState] = {}
        self._history: list[MachineTransition] = []
        self._lock = threading.Lock()

    def request(self, machine_id: str) -> None:
        """Enter ``requested``.  A machine that ended in ``failed`` may be retried."""
        with self._lock:
            current = self._states.get(machine_id)
            if current not in (None, MachineState.FAILED):
                raise InvalidTransitionError(
                    f"machine {machine_id} is already {current.value}"
                )
            self._record(machine_id, current, MachineState.REQUESTED, "")

    def transition(self, machine_id: str, target: MachineState, detail: str = "") -> None:
        with self._lock:
            current = self._states.get(machine_id)
            if current is None:
                raise InvalidTransitionError(f"machine {machine_id} was never requested")
            allowed = VALID_MACHINE_TRANSITIONS.get(current, set())
            if target not in allowed:
                raise InvalidTransitionError(
                    f"Cannot transition machine {machine_id} from {current.value} "
                    f"to {target.value}. Allowed: {sorted(s.value for s in allowed)}"
                )
            self._record(machine_id, current, target, detail)

    def fail(self, machine_id: str, detail: str) -> None:
        """Move to ``failed`` unless the machine is already terminal."""
        with self._lock:
            current = self._states.get(machine_id)
            if current is None or not VALID_MACHINE_TRANSITIONS.get(current):
                return
            self._record(machine_id, current, MachineState.FAILED, detail)

    def _record(
        self, machine_id: str, current: MachineState | None,
        target: MachineState, detail: str,
    ) -> None:
        self._states[machine_id] = target
        self._history.append(
            MachineTransition(
                machine_id=machine_id, from_state=current, to_state=target, detail=detail
            )
        )
        logger.debug(
            "machine %s: %s -> %s %s",
            machine_id, current.value if current else "-", target.value, detail,
        )

    def forget(self, machine_id: str) -> None:
        """Drop a machine's current state so its id can be requested again.

        The audit history is kept.
        """
        with self._lock:
            self._states.pop(machine_id, None)

    def state(self, machine_id: str) -> MachineState | None:
        with self._lock:
            return self._states.get(machine_id)

    def history(self, machine_id: str | None = None) -> list[MachineTransition]:
        with self._lock:
            return [
                t for t in self._history
                if machine_id is None or t.machine_id == machine_id
            ]
