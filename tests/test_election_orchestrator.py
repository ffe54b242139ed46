"""
Tests for the timed election orchestrator.

Time only moves when the VirtualScheduler is advanced, so message timing and
ordering can be asserted exactly.
"""

import pytest

from bullysim.core.config import SimulatorSettings
from bullysim.core.errors import (
    ElectionAlreadyInProgress,
    InitiatorInactive,
    NoActiveProcesses,
    UnknownProcess,
)
from bullysim.core.events import LogCategory
from bullysim.core.scheduler import VirtualScheduler
from bullysim.datastructures.messages import MessageKind
from bullysim.election.orchestrator import (
    ElectionRejection,
    ElectionRequest,
    OrchestratorState,
    SessionStatus,
)

ELECTION = MessageKind.ELECTION
OK = MessageKind.OK
COORDINATOR = MessageKind.COORDINATOR


class TestSingleHopElection:
    """Election traffic with no intermediate cascade."""

    @pytest.fixture
    def settings(self) -> SimulatorSettings:
        return SimulatorSettings(cascade_hops=0)

    def test_phases_are_strictly_ordered(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler, settings
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3, 4, 5], settings)

        request = orchestrator.start_election(1)
        scheduler.run_until_idle()

        assert request.started
        assert [
            (m.kind, m.sender_id, m.receiver_id) for m in recorder.messages
        ] == [
            (ELECTION, 1, 2),
            (ELECTION, 1, 3),
            (ELECTION, 1, 4),
            (ELECTION, 1, 5),
            (OK, 2, 1),
            (OK, 3, 1),
            (OK, 4, 1),
            (OK, 5, 1),
            (COORDINATOR, 5, 1),
            (COORDINATOR, 5, 2),
            (COORDINATOR, 5, 3),
            (COORDINATOR, 5, 4),
        ]
        assert recorder.completions == [5]
        assert orchestrator.state is OrchestratorState.IDLE

    def test_message_pacing(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler, settings
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5], settings)

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        times = [m.created_at for m in recorder.messages]
        expected = [0.0, 0.2, 0.4, 0.6, 0.8, 0.95, 1.1, 1.25, 1.4, 1.5, 1.6, 1.7]
        assert times == pytest.approx(expected)

    def test_message_ids_are_not_wasted(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler, settings
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5], settings)

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        assert [m.id for m in recorder.messages] == [f"msg-{i}" for i in range(1, 13)]

    def test_completion_follows_last_coordinator(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler, settings
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5], settings)
        orchestrator.start_election(1)

        scheduler.advance(1.65)
        assert recorder.completions == []
        assert orchestrator.state is OrchestratorState.SETTLING

        scheduler.advance(0.1)
        assert recorder.completions == [5]
        assert orchestrator.session is None


class TestCascadingElection:
    """Default settings: one intermediate process runs its own round."""

    def test_intermediate_round_is_visualized(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3, 4, 5])

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        assert recorder.pairs(ELECTION) == [
            (1, 2), (1, 3), (1, 4), (1, 5), (2, 3), (2, 4), (2, 5),
        ]
        assert recorder.pairs(OK) == [
            (2, 1), (3, 1), (4, 1), (5, 1), (3, 2), (4, 2), (5, 2),
        ]
        assert recorder.pairs(COORDINATOR) == [(5, 1), (5, 2), (5, 3), (5, 4)]
        assert recorder.completions == [5]
        assert "Process P2 starts its own election" in recorder.log_texts

    def test_initiator_traffic_is_ordered_by_phase(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5])

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        kinds = recorder.kinds()
        last_election = max(i for i, k in enumerate(kinds) if k is ELECTION)
        first_coordinator = kinds.index(COORDINATOR)
        assert last_election < first_coordinator
        assert all(k is COORDINATOR for k in kinds[first_coordinator:])

    def test_completion_time(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5])
        orchestrator.start_election(1)

        scheduler.advance(2.7)
        assert recorder.completions == []
        scheduler.advance(0.1)
        assert recorder.completions == [5]

    def test_extra_hops_walk_up_the_roster(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator(
            [1, 2, 3, 4, 5], SimulatorSettings(cascade_hops=3)
        )

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        senders = []
        for sender, _ in recorder.pairs(ELECTION):
            if sender not in senders:
                senders.append(sender)
        assert senders == [1, 2, 3, 4]
        assert recorder.completions == [5]


class TestDeclaration:
    def test_highest_process_declares_immediately(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3])

        orchestrator.start_election(3)
        scheduler.run_until_idle()

        assert recorder.kinds() == [COORDINATOR, COORDINATOR]
        assert recorder.pairs(COORDINATOR) == [(3, 1), (3, 2)]
        assert recorder.completions == [3]
        assert "Process P3 declares itself as leader" in recorder.log_texts

    def test_sole_process_elects_itself(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([4])

        orchestrator.start_election()
        scheduler.run_until_idle()

        assert recorder.messages == []
        assert recorder.completions == [4]

    def test_winner_skips_failed_processes(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3, 4, 5])
        processes.toggle(5)

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        assert recorder.completions == [4]
        assert all(5 not in (m.sender_id, m.receiver_id) for m in recorder.messages)

    def test_winner_is_reevaluated_when_it_fails_mid_session(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3, 4, 5])
        orchestrator.start_election(1)

        scheduler.advance(1.0)
        processes.toggle(5)
        scheduler.run_until_idle()

        assert recorder.completions == [4]
        assert (5, 1) not in recorder.pairs(COORDINATOR)

    def test_log_milestones(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2])

        orchestrator.start_election(1)
        scheduler.run_until_idle()

        assert recorder.logs[0] == ("Election started by Process P1", LogCategory.ELECTION)
        assert ("Process P1 sent ELECTION to Process P2", LogCategory.ELECTION) in recorder.logs
        assert ("Process P2 sent OK to Process P1", LogCategory.ELECTION) in recorder.logs
        assert ("Process P2 sent COORDINATOR to Process P1", LogCategory.LEADER) in recorder.logs
        assert recorder.logs[-1] == ("Process P2 elected as leader", LogCategory.LEADER)


class TestSessionLifecycle:
    def test_single_session_at_a_time(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5])

        first = orchestrator.start_election(1)
        scheduler.advance(0.5)
        second = orchestrator.start_election(2)

        assert first.started
        assert second.rejection is ElectionRejection.ALREADY_IN_PROGRESS
        with pytest.raises(ElectionAlreadyInProgress):
            second.raise_for_rejection()

        scheduler.run_until_idle()
        assert recorder.completions == [5]

    def test_new_session_after_completion(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3])

        first = orchestrator.start_election(1)
        scheduler.run_until_idle()
        second = orchestrator.start_election(2)
        scheduler.run_until_idle()

        assert second.started
        assert second.session_id == (first.session_id or 0) + 1
        assert recorder.completions == [3, 3]

    def test_default_initiator_is_lowest_active(
        self, make_orchestrator, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3])
        processes.toggle(1)

        request = orchestrator.start_election()

        assert request.initiator_id == 2
        assert orchestrator.session is not None
        assert orchestrator.session.initiator_id == 2

    def test_inactive_initiator_is_rejected(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3])
        processes.toggle(1)

        request = orchestrator.start_election(1)

        assert request.rejection is ElectionRejection.INITIATOR_INACTIVE
        assert not orchestrator.is_busy
        with pytest.raises(InitiatorInactive, match="P1 is inactive"):
            request.raise_for_rejection()

    def test_unknown_initiator_is_rejected(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3])

        request = orchestrator.start_election(42)

        assert request.rejection is ElectionRejection.UNKNOWN_INITIATOR
        assert not orchestrator.is_busy
        with pytest.raises(UnknownProcess, match="42"):
            request.raise_for_rejection()

    def test_no_active_processes(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3])
        for process_id in (1, 2, 3):
            processes.toggle(process_id)

        request = orchestrator.start_election()
        scheduler.advance(60.0)

        assert request.rejection is ElectionRejection.NO_ACTIVE_PROCESSES
        assert orchestrator.session is None
        assert recorder.completions == []
        assert recorder.logs == [
            ("No active processes; election not started", LogCategory.FAILURE)
        ]
        with pytest.raises(NoActiveProcesses):
            request.raise_for_rejection()

    def test_clear_session_cancels_everything(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, _ = make_orchestrator([1, 2, 3, 4, 5])
        orchestrator.start_election(1)
        scheduler.advance(0.3)
        emitted = len(recorder.messages)

        orchestrator.clear_session()
        scheduler.advance(30.0)

        assert len(recorder.messages) == emitted
        assert recorder.completions == []
        assert orchestrator.state is OrchestratorState.IDLE
        assert scheduler.pending_count == 0

    def test_clear_session_when_idle_is_noop(self, make_orchestrator) -> None:
        orchestrator, _ = make_orchestrator([1, 2])
        orchestrator.clear_session()
        assert orchestrator.session is None

    def test_abandoned_when_everyone_fails(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2])
        orchestrator.start_election(1)

        processes.toggle(1)
        processes.toggle(2)
        scheduler.run_until_idle()

        assert recorder.completions == []
        assert not orchestrator.is_busy
        assert "Election abandoned: no active processes remain" in recorder.log_texts


class TestResponseTimeout:
    def test_initiator_proclaims_itself_after_timeout(
        self, make_orchestrator, recorder, scheduler: VirtualScheduler
    ) -> None:
        orchestrator, processes = make_orchestrator([1, 2, 3])
        orchestrator.start_election(1)

        scheduler.advance(0.3)
        processes.toggle(2)
        processes.toggle(3)

        scheduler.advance(0.2)
        assert orchestrator.session is not None
        assert orchestrator.session.status is SessionStatus.TIMED_OUT

        scheduler.advance(3.8)
        assert recorder.completions == []

        scheduler.advance(0.2)
        assert recorder.completions == [1]
        assert recorder.pairs(OK) == []


class TestElectionRequest:
    def test_started_xor_rejected(self) -> None:
        with pytest.raises(ValueError):
            ElectionRequest(1)
        with pytest.raises(ValueError):
            ElectionRequest(1, session_id=1, rejection=ElectionRejection.NO_ACTIVE_PROCESSES)

    def test_started_request_does_not_raise(self) -> None:
        ElectionRequest(1, session_id=1).raise_for_rejection()
