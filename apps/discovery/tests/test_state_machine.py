"""
Tests for the discovery run state machine.

Tests cover:
- Allowed and rejected edges
- Compare-and-set transitions (lost races return False)
- finished_at stamping on terminal states
- Cancelled runs never reach completed
"""

import pytest

from apps.discovery.models import DiscoveryRun
from apps.discovery.state_machine import (
    RunState,
    TransitionError,
    VALID_TRANSITIONS,
    can_transition,
    source_states,
    transition_run,
)


# ============================================================================
# Edge table
# ============================================================================

class TestEdges:

    def test_queued_edges(self):
        assert can_transition('queued', 'running')
        assert can_transition('queued', 'skipped')
        assert can_transition('queued', 'cancelled')
        assert can_transition('queued', 'failed')
        assert not can_transition('queued', 'completed')

    def test_running_edges(self):
        assert can_transition(RunState.RUNNING, RunState.COMPLETED)
        assert can_transition(RunState.RUNNING, RunState.FAILED)
        assert can_transition(RunState.RUNNING, RunState.CANCELLED)
        assert not can_transition(RunState.RUNNING, RunState.QUEUED)

    @pytest.mark.parametrize('state', ['completed', 'failed', 'cancelled', 'skipped'])
    def test_terminal_states_have_no_exits(self, state):
        terminal = RunState.from_string(state)
        assert terminal.is_terminal
        assert VALID_TRANSITIONS[terminal] == set()

    def test_source_states_for_completed(self):
        assert source_states(RunState.COMPLETED) == {'running'}

    def test_unknown_state(self):
        with pytest.raises(ValueError):
            RunState.from_string('paused')


# ============================================================================
# Compare-and-set transitions
# ============================================================================

@pytest.mark.django_db
class TestTransitionRun:

    def test_transition_updates_status(self, job, make_run):
        run = make_run(job)

        assert transition_run(run.id, RunState.RUNNING) is True

        run.refresh_from_db()
        assert run.status == DiscoveryRun.STATUS_RUNNING
        assert run.finished_at is None

    def test_terminal_transition_sets_finished_at(self, job, make_run):
        run = make_run(job, status=DiscoveryRun.STATUS_RUNNING)

        assert transition_run(run.id, 'failed', error='boom') is True

        run.refresh_from_db()
        assert run.status == 'failed'
        assert run.error == 'boom'
        assert run.finished_at is not None

    def test_cancelled_run_cannot_complete(self, job, make_run):
        run = make_run(job, status=DiscoveryRun.STATUS_RUNNING)
        assert transition_run(run.id, RunState.CANCELLED) is True

        assert transition_run(run.id, RunState.COMPLETED) is False

        run.refresh_from_db()
        assert run.status == DiscoveryRun.STATUS_CANCELLED

    def test_from_states_narrows_sources(self, job, make_run):
        run = make_run(job, status=DiscoveryRun.STATUS_RUNNING)

        assert transition_run(run.id, RunState.FAILED, from_states={RunState.QUEUED}) is False

        run.refresh_from_db()
        assert run.status == DiscoveryRun.STATUS_RUNNING

    def test_invalid_from_states_raise(self, job, make_run):
        run = make_run(job, status=DiscoveryRun.STATUS_COMPLETED)

        with pytest.raises(TransitionError):
            transition_run(run.id, RunState.RUNNING, from_states={'completed'})
