"""
Discovery run state machine.

States:
    queued ──> running ──> completed
      │           ├──────> failed
      │           ├──────> cancelled
      │           └──────> skipped   (job or daily cap re-check)
      ├──> skipped
      ├──> cancelled
      └──> failed        (dispatch failure or reaper)

Every transition is a compare-and-set UPDATE filtered on the allowed source
states, so a worker and an API request racing on the same run cannot both
win: a run cancelled while its executor is finishing stays cancelled.

Usage:
    if not transition_run(run.id, RunState.RUNNING, started_at=timezone.now()):
        return  # someone else moved the run first
"""

import logging
from enum import Enum
from typing import Dict, Optional, Set

from django.utils import timezone

from .models import DiscoveryRun

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Valid states for a discovery run."""
    QUEUED = DiscoveryRun.STATUS_QUEUED
    RUNNING = DiscoveryRun.STATUS_RUNNING
    COMPLETED = DiscoveryRun.STATUS_COMPLETED
    FAILED = DiscoveryRun.STATUS_FAILED
    CANCELLED = DiscoveryRun.STATUS_CANCELLED
    SKIPPED = DiscoveryRun.STATUS_SKIPPED

    @classmethod
    def from_string(cls, value: str) -> 'RunState':
        for state in cls:
            if state.value == value:
                return state
        raise ValueError(f"Unknown run state: {value}")

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self]


VALID_TRANSITIONS: Dict[RunState, Set[RunState]] = {
    RunState.QUEUED: {RunState.RUNNING, RunState.SKIPPED, RunState.CANCELLED, RunState.FAILED},
    RunState.RUNNING: {RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED, RunState.SKIPPED},
    RunState.COMPLETED: set(),
    RunState.FAILED: set(),
    RunState.CANCELLED: set(),
    RunState.SKIPPED: set(),
}


class TransitionError(Exception):
    """Raised when a run state transition is invalid."""
    pass


def can_transition(current, target) -> bool:
    if isinstance(current, str):
        current = RunState.from_string(current)
    if isinstance(target, str):
        target = RunState.from_string(target)
    return target in VALID_TRANSITIONS[current]


def source_states(target: RunState) -> Set[str]:
    """Statuses from which `target` may be entered."""
    return {src.value for src, targets in VALID_TRANSITIONS.items() if target in targets}


def transition_run(run_id, target, from_states: Optional[Set] = None, **fields) -> bool:
    """
    Atomically move a run to `target` if it is currently in an allowed state.

    Args:
        run_id: DiscoveryRun primary key
        target: RunState or status string
        from_states: Narrow the allowed source states (must be a subset of
            the valid sources for `target`)
        **fields: Extra columns to write in the same UPDATE

    Returns:
        True if this call performed the transition, False if the run was
        not in an allowed source state (lost a race, or already terminal).

    Raises:
        TransitionError: If from_states contains an edge that is not allowed
    """
    if isinstance(target, str):
        target = RunState.from_string(target)

    allowed = source_states(target)
    if from_states is not None:
        requested = {s.value if isinstance(s, RunState) else s for s in from_states}
        invalid = requested - allowed
        if invalid:
            raise TransitionError(
                f"Invalid transition to {target.value} from {sorted(invalid)}. "
                f"Valid sources: {sorted(allowed)}"
            )
        allowed = requested

    if target.is_terminal:
        fields.setdefault('finished_at', timezone.now())
    fields['updated_at'] = timezone.now()

    updated = DiscoveryRun.objects.filter(pk=run_id, status__in=allowed).update(
        status=target.value, **fields
    )

    if updated:
        logger.info(f"Run {run_id} -> {target.value}")
    else:
        logger.debug(f"Run {run_id} not moved to {target.value} (status not in {sorted(allowed)})")
    return bool(updated)
