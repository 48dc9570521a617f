"""Pipeline state machine.

States advance through the lifecycle of one circuit build. FAILED is
absorbing: once a stage fails, the machine accepts no further transitions.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from circomkit.codes import Stage
from circomkit.errors import InvalidTransition


class PipelineState(str, Enum):
    UNCOMPILED = "uncompiled"
    COMPILED = "compiled"
    WITNESS_GENERATED = "witness_generated"
    KEYS_SETUP = "keys_setup"
    PROVED = "proved"
    VERIFIED = "verified"
    FAILED = "failed"


TRANSITIONS: Dict[Stage, Tuple[FrozenSet[PipelineState], PipelineState]] = {
    Stage.COMPILE: (frozenset({PipelineState.UNCOMPILED}), PipelineState.COMPILED),
    Stage.WITNESS: (
        frozenset({PipelineState.COMPILED, PipelineState.WITNESS_GENERATED}),
        PipelineState.WITNESS_GENERATED,
    ),
    Stage.SETUP: (
        frozenset({PipelineState.COMPILED, PipelineState.WITNESS_GENERATED}),
        PipelineState.KEYS_SETUP,
    ),
    Stage.PROVE: (
        frozenset({PipelineState.KEYS_SETUP, PipelineState.PROVED, PipelineState.VERIFIED}),
        PipelineState.PROVED,
    ),
    Stage.VERIFY: (
        frozenset({PipelineState.KEYS_SETUP, PipelineState.PROVED, PipelineState.VERIFIED}),
        PipelineState.VERIFIED,
    ),
}


def target(stage: Stage, current: PipelineState) -> PipelineState:
    """Return the state ``stage`` leads to from ``current``, or raise InvalidTransition."""
    if current is PipelineState.FAILED:
        raise InvalidTransition(f"Cannot run {stage.value}: pipeline has failed")
    allowed, to = TRANSITIONS[stage]
    if current not in allowed:
        raise InvalidTransition(
            f"Cannot run {stage.value} from state {current.value}; "
            f"requires one of {sorted(s.value for s in allowed)}"
        )
    return to


class StateMachine:
    """Tracks the current state and the stage that caused a failure."""

    def __init__(self, state: PipelineState = PipelineState.UNCOMPILED):
        self.state = state
        self.failed_stage: Optional[Stage] = None
        self._pending: Optional[Tuple[Stage, PipelineState]] = None

    def begin(self, stage: Stage) -> PipelineState:
        to = target(stage, self.state)
        self._pending = (stage, to)
        return to

    def complete(self) -> PipelineState:
        if self._pending is None:
            raise InvalidTransition("No transition in progress")
        _, to = self._pending
        self._pending = None
        self.state = to
        return to

    def fail(self, stage: Stage) -> None:
        self._pending = None
        self.state = PipelineState.FAILED
        self.failed_stage = stage

    def abort(self) -> None:
        """Drop the pending transition, keeping the current state (cancellation)."""
        self._pending = None

    def can_run(self, stage: Stage) -> bool:
        if self.state is PipelineState.FAILED:
            return False
        return self.state in TRANSITIONS[stage][0]
