"""
Timed orchestration of Bully election sessions.

The orchestrator turns the pure BullyRules into a paced, multi-round protocol
run. Exactly one session can be active at a time. Every protocol step is a
scheduled callback that re-reads the ProcessSet when it fires, so a step never
acts on a roster that changed after it was scheduled.

Session timeline (each batch is emitted one message at a time):

    ELECTION (initiator)  ->  OK (targets -> initiator)
        -> [ELECTION / OK from the next intermediate process] x cascade_hops
        -> COORDINATOR (winner -> everyone) -> completion

The eventual winner is the highest active process. The intermediate traffic is
generated for observability only; the cascade is bounded by ``cascade_hops``
instead of simulating every process's own sub-election.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum

from loguru import logger

from ..core.config import SimulatorSettings
from ..core.errors import (
    ElectionAlreadyInProgress,
    InitiatorInactive,
    NoActiveProcesses,
    UnknownProcess,
)
from ..core.events import LogCallback, LogCategory, MessageCallback
from ..core.scheduler import ScheduledHandle, Scheduler
from ..datastructures.bully_rules import BullyRules
from ..datastructures.messages import Message, MessageKind
from ..datastructures.process_set import ProcessSet
from ..datastructures.type_aliases import (
    DurationSeconds,
    ProcessId,
    SessionId,
    Timestamp,
)


class OrchestratorState(Enum):
    """Lifecycle of the orchestrator."""

    IDLE = "idle"  # no session
    RUNNING = "running"  # ELECTION / OK traffic in flight
    SETTLING = "settling"  # winner declared, COORDINATOR announcements in flight


class SessionStatus(Enum):
    """Progress of one election session."""

    PENDING = "pending"
    AWAITING_RESPONSES = "awaiting_responses"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"


class ElectionRejection(Enum):
    """Why an election request did not start a session."""

    ALREADY_IN_PROGRESS = "already_in_progress"
    NO_ACTIVE_PROCESSES = "no_active_processes"
    INITIATOR_INACTIVE = "initiator_inactive"
    UNKNOWN_INITIATOR = "unknown_initiator"


@dataclass(frozen=True, slots=True)
class ElectionRequest:
    """Outcome of ``start_election``: either a session id or a rejection."""

    initiator_id: ProcessId | None
    session_id: SessionId | None = None
    rejection: ElectionRejection | None = None

    def __post_init__(self) -> None:
        if (self.session_id is None) == (self.rejection is None):
            raise ValueError("A request is either started or rejected")

    @property
    def started(self) -> bool:
        return self.rejection is None

    def raise_for_rejection(self) -> None:
        """Raise the error matching the rejection, if any."""
        match self.rejection:
            case None:
                return
            case ElectionRejection.ALREADY_IN_PROGRESS:
                raise ElectionAlreadyInProgress(self.initiator_id)
            case ElectionRejection.NO_ACTIVE_PROCESSES:
                raise NoActiveProcesses()
            case ElectionRejection.INITIATOR_INACTIVE:
                raise InitiatorInactive(self.initiator_id)
            case ElectionRejection.UNKNOWN_INITIATOR:
                raise UnknownProcess(self.initiator_id)


@dataclass(slots=True)
class ElectionSession:
    """State of the single in-flight election."""

    session_id: SessionId
    initiator_id: ProcessId
    started_at: Timestamp
    status: SessionStatus = SessionStatus.PENDING
    pending_handle: ScheduledHandle | None = None
    winner_id: ProcessId | None = None
    messages_sent: int = 0

    def cancel_pending(self) -> None:
        if self.pending_handle is not None:
            self.pending_handle.cancel()
            self.pending_handle = None


@dataclass(slots=True)
class ElectionOrchestrator:
    """
    Timed state machine running one Bully election at a time.

    Hooks:
        on_message: receives every emitted protocol message, in order
        on_log: receives protocol milestones for the event log
        on_complete: called exactly once per finished session with the winner
    """

    processes: ProcessSet
    rules: BullyRules
    scheduler: Scheduler
    settings: SimulatorSettings = field(default_factory=SimulatorSettings)
    on_message: MessageCallback | None = None
    on_log: LogCallback | None = None
    on_complete: Callable[[ProcessId], None] | None = None

    state: OrchestratorState = field(default=OrchestratorState.IDLE, init=False)
    _session: ElectionSession | None = field(default=None, init=False)
    _session_ids: itertools.count[int] = field(
        default_factory=lambda: itertools.count(1), init=False
    )

    @property
    def session(self) -> ElectionSession | None:
        return self._session

    @property
    def is_busy(self) -> bool:
        return self.state is not OrchestratorState.IDLE

    def start_election(self, initiator_id: ProcessId | None = None) -> ElectionRequest:
        """
        Start a session from ``initiator_id`` (default: lowest active process).

        Rejections are reported in the returned ElectionRequest, never raised.
        """
        if self.is_busy:
            logger.warning(
                f"Election request from P{initiator_id} rejected: "
                f"session {self._session.session_id if self._session else '?'} in progress"
            )
            return ElectionRequest(
                initiator_id, rejection=ElectionRejection.ALREADY_IN_PROGRESS
            )

        if self.processes.highest_active() is None:
            self._log("No active processes; election not started", LogCategory.FAILURE)
            logger.warning("Election request ignored: no active processes")
            return ElectionRequest(
                initiator_id, rejection=ElectionRejection.NO_ACTIVE_PROCESSES
            )

        if initiator_id is None:
            initiator_id = self.processes.lowest_active()

        if initiator_id is None or initiator_id not in self.processes:
            logger.warning(f"Election request rejected: P{initiator_id} is not in the roster")
            return ElectionRequest(
                initiator_id, rejection=ElectionRejection.UNKNOWN_INITIATOR
            )

        if not self.processes.is_active(initiator_id):
            logger.warning(
                f"Election request rejected: P{initiator_id} is not an active process"
            )
            return ElectionRequest(
                initiator_id, rejection=ElectionRejection.INITIATOR_INACTIVE
            )

        session = ElectionSession(
            session_id=next(self._session_ids),
            initiator_id=initiator_id,
            started_at=self.scheduler.now(),
        )
        self._session = session
        self.state = OrchestratorState.RUNNING

        logger.info(f"Election session {session.session_id} started by P{initiator_id}")
        self._log(f"Election started by Process P{initiator_id}", LogCategory.ELECTION)
        self._schedule(
            0.0,
            lambda: self._election_phase(initiator_id, self.settings.cascade_hops),
        )
        return ElectionRequest(initiator_id, session_id=session.session_id)

    def clear_session(self) -> None:
        """Cancel the active session, if any, without a completion callback."""
        session = self._session
        if session is None:
            return
        session.cancel_pending()
        self._session = None
        self.state = OrchestratorState.IDLE
        logger.info(f"Election session {session.session_id} cleared")

    # Protocol steps

    def _election_phase(self, sender_id: ProcessId, hops_left: int) -> None:
        batch = self.rules.start_election(sender_id, self.processes.snapshot())
        if not batch:
            if self.processes.is_active(sender_id):
                self._log(
                    f"Process P{sender_id} has no higher active process",
                    LogCategory.ELECTION,
                )
            self._declare_phase()
            return

        session = self._require_session()
        session.status = SessionStatus.AWAITING_RESPONSES
        targets = [message.receiver_id for message in batch]
        self._emit_batch(
            batch,
            self.settings.election_spacing,
            then=lambda: self._response_phase(sender_id, targets, hops_left),
        )

    def _response_phase(
        self, sender_id: ProcessId, targets: Sequence[ProcessId], hops_left: int
    ) -> None:
        snapshot = self.processes.snapshot()
        replies = [
            message
            for target in targets
            for message in self.rules.acknowledge_election(target, sender_id, snapshot)
        ]

        if not replies:
            session = self._require_session()
            session.status = SessionStatus.TIMED_OUT
            self._log(
                f"Process P{sender_id} received no OK; waiting "
                f"{self.settings.election_timeout:g}s before proclaiming itself",
                LogCategory.ELECTION,
            )
            self._schedule(
                self.settings.election_timeout,
                lambda: self._election_timed_out(sender_id),
            )
            return

        self._emit_batch(
            replies,
            self.settings.response_spacing,
            then=lambda: self._after_responses(sender_id, hops_left),
        )

    def _after_responses(self, sender_id: ProcessId, hops_left: int) -> None:
        if hops_left > 0:
            intermediate = self._next_intermediate(sender_id)
            if intermediate is not None:
                self._log(
                    f"Process P{intermediate} starts its own election",
                    LogCategory.ELECTION,
                )
                self._election_phase(intermediate, hops_left - 1)
                return
        self._declare_phase()

    def _election_timed_out(self, sender_id: ProcessId) -> None:
        if self.processes.is_active(sender_id) and self.rules.should_self_proclaim(
            sender_id, self.processes.snapshot()
        ):
            logger.info(f"P{sender_id} timed out waiting for OK; self-proclaiming")
        self._declare_phase()

    def _declare_phase(self) -> None:
        session = self._require_session()
        winner_id = self.processes.highest_active()
        if winner_id is None:
            self._log(
                "Election abandoned: no active processes remain", LogCategory.FAILURE
            )
            logger.warning(f"Election session {session.session_id} abandoned")
            self.clear_session()
            return

        session.winner_id = winner_id
        self.state = OrchestratorState.SETTLING
        self._log(f"Process P{winner_id} declares itself as leader", LogCategory.LEADER)

        batch = self.rules.announce_coordinator(winner_id, self.processes.snapshot())
        if not batch:
            self._finish(winner_id)
            return
        self._emit_batch(
            batch,
            self.settings.coordinator_spacing,
            then=lambda: self._finish(winner_id),
            then_delay=0.0,
        )

    def _finish(self, winner_id: ProcessId) -> None:
        session = self._require_session()
        session.status = SessionStatus.COMPLETED
        session.pending_handle = None
        self._session = None
        self.state = OrchestratorState.IDLE

        elapsed = self.scheduler.now() - session.started_at
        logger.info(
            f"Election session {session.session_id} completed: leader P{winner_id} "
            f"after {session.messages_sent} messages ({elapsed:.2f}s)"
        )
        self._log(f"Process P{winner_id} elected as leader", LogCategory.LEADER)
        if self.on_complete:
            self.on_complete(winner_id)

    # Helpers

    def _next_intermediate(self, sender_id: ProcessId) -> ProcessId | None:
        """Lowest active process strictly between the sender and the winner."""
        winner_id = self.processes.highest_active()
        if winner_id is None:
            return None
        return min(
            (pid for pid in self.processes.active_ids() if sender_id < pid < winner_id),
            default=None,
        )

    def _emit_batch(
        self,
        batch: Sequence[Message],
        spacing: DurationSeconds,
        then: Callable[[], None],
        then_delay: DurationSeconds | None = None,
    ) -> None:
        """Emit ``batch`` one message per ``spacing``, then continue with ``then``."""

        def emit(index: int) -> None:
            self._deliver(batch[index])
            if index + 1 < len(batch):
                self._schedule(spacing, lambda: emit(index + 1))
            else:
                self._schedule(spacing if then_delay is None else then_delay, then)

        emit(0)

    def _deliver(self, message: Message) -> None:
        message = replace(message, created_at=self.scheduler.now())
        if not self.processes.is_active(message.sender_id) or (
            message.receiver_id not in self.processes
        ):
            logger.debug(f"Dropping {message.describe()}: endpoint left the roster")
            return

        session = self._require_session()
        session.messages_sent += 1
        logger.debug(f"Session {session.session_id}: {message.describe()}")
        if self.on_message:
            self.on_message(message)

        category = (
            LogCategory.LEADER
            if message.kind is MessageKind.COORDINATOR
            else LogCategory.ELECTION
        )
        self._log(
            f"Process P{message.sender_id} sent {message.kind.value} "
            f"to Process P{message.receiver_id}",
            category,
        )

    def _schedule(self, delay: DurationSeconds, step: Callable[[], None]) -> None:
        session = self._require_session()

        def fire() -> None:
            if self._session is not session:
                return
            session.pending_handle = None
            step()

        session.pending_handle = self.scheduler.call_later(delay, fire)

    def _require_session(self) -> ElectionSession:
        if self._session is None:
            raise RuntimeError("No election session is active")
        return self._session

    def _log(self, text: str, category: LogCategory) -> None:
        if self.on_log:
            self.on_log(text, category)
