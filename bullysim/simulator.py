"""
BullySimulator: the inbound surface of the election engine.

The simulator owns the ProcessSet, the orchestrator, the heartbeat monitor,
the event log and the table of in-flight messages. Its public methods are the
only mutating entry points; everything the engine produces reaches external
collaborators through SimulationCallbacks.

Example:
    >>> from bullysim import BullySimulator, VirtualScheduler
    >>> scheduler = VirtualScheduler()
    >>> sim = BullySimulator(scheduler)
    >>> sim.toggle(5).is_active
    False
    >>> sim.start_election().started
    True
    >>> _ = scheduler.run_until_idle()
    >>> sim.leader_id
    4
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from .core.config import SimulatorSettings
from .core.events import EventLog, LogCategory, LogEvent, SimulationCallbacks
from .core.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from .datastructures.bully_rules import BullyRules
from .datastructures.messages import (
    Message,
    MessageFactory,
    MessageIdGenerator,
    UlidIdGenerator,
)
from .datastructures.process_set import Process, ProcessSet, validate_process_ids
from .datastructures.type_aliases import MessageIdString, ProcessId
from .election.heartbeat import HeartbeatMonitor
from .election.orchestrator import ElectionOrchestrator, ElectionRequest


class BullySimulator:
    """Facade wiring ProcessSet, BullyRules, orchestrator and monitor together."""

    def __init__(
        self,
        scheduler: Scheduler,
        settings: SimulatorSettings | None = None,
        callbacks: SimulationCallbacks | None = None,
        id_generator: MessageIdGenerator | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.settings = settings or SimulatorSettings()
        self.callbacks = callbacks or SimulationCallbacks()

        self.processes = ProcessSet.from_ids(self.settings.default_process_ids)
        self.event_log = EventLog(retention=self.settings.log_retention)
        self.rules = BullyRules(
            MessageFactory(
                timing=self.settings.message_timing(),
                id_generator=id_generator or UlidIdGenerator(),
                clock=scheduler.now,
            )
        )
        self.orchestrator = ElectionOrchestrator(
            processes=self.processes,
            rules=self.rules,
            scheduler=scheduler,
            settings=self.settings,
            on_message=self._emit_message,
            on_log=self._log,
            on_complete=self._election_completed,
        )
        self.monitor = HeartbeatMonitor(
            processes=self.processes,
            rules=self.rules,
            orchestrator=self.orchestrator,
            scheduler=scheduler,
            settings=self.settings,
            on_message=self._emit_message,
            on_log=self._log,
        )

        self._messages: dict[MessageIdString, Message] = {}
        self._expiry_handles: dict[MessageIdString, ScheduledHandle] = {}

    @classmethod
    def for_event_loop(
        cls,
        settings: SimulatorSettings | None = None,
        callbacks: SimulationCallbacks | None = None,
    ) -> BullySimulator:
        """Simulator driven by the running asyncio loop's real timers."""
        return cls(AsyncioScheduler(), settings=settings, callbacks=callbacks)

    # Inbound operations

    def configure(self, ids: Iterable[ProcessId]) -> None:
        """
        Replace the roster; the highest id becomes leader.

        Raises:
            InvalidConfig: if the ids are invalid (nothing is changed)
        """
        sorted_ids = validate_process_ids(ids)

        self.orchestrator.clear_session()
        self.monitor.cancel_pending_heartbeats()
        self._clear_messages()

        previous_leader = self.processes.leader_id
        self.processes.configure(sorted_ids)
        logger.info(f"Roster reconfigured: {list(sorted_ids)}")
        self._log(
            f"System reconfigured with nodes: [{', '.join(map(str, sorted_ids))}]",
            LogCategory.INFO,
        )
        self._notify_leader(previous_leader)

    def toggle(self, process_id: ProcessId) -> Process | None:
        """
        Fail or recover a process. Unknown ids are a silent no-op.

        While running, a recovered process that outranks the current leader
        (or finds no leader) starts an election of its own.
        """
        previous_leader = self.processes.leader_id
        updated = self.processes.toggle(process_id)
        if updated is None:
            return None

        if updated.is_active:
            self._log(f"Process {updated.label} recovered", LogCategory.RECOVERY)
        else:
            self._log(f"Process {updated.label} failed", LogCategory.FAILURE)
        self._notify_leader(previous_leader)

        leader_id = self.processes.leader_id
        if (
            updated.is_active
            and self.monitor.is_running
            and (leader_id is None or process_id > leader_id)
        ):
            self.start_election(process_id)

        return updated

    def start_election(self, initiator_id: ProcessId | None = None) -> ElectionRequest:
        """Start an election; rejections are returned, not raised."""
        return self.orchestrator.start_election(initiator_id)

    def reset(self) -> None:
        """Restore the default roster with everything stopped and cleared."""
        self.orchestrator.clear_session()
        self.monitor.stop()
        self._clear_messages()
        self.event_log.clear()

        previous_leader = self.processes.leader_id
        self.processes.configure(self.settings.default_process_ids)
        logger.info("Simulation reset")
        self._log("System reset - all processes restored", LogCategory.INFO)
        self._notify_leader(previous_leader)

    def set_running(self, running: bool) -> None:
        if running:
            self.monitor.start()
        else:
            self.monitor.stop()

    def toggle_running(self) -> bool:
        self.set_running(not self.monitor.is_running)
        return self.monitor.is_running

    # Read-only views

    @property
    def leader_id(self) -> ProcessId | None:
        return self.processes.leader_id

    @property
    def is_running(self) -> bool:
        return self.monitor.is_running

    @property
    def is_election_in_progress(self) -> bool:
        return self.orchestrator.is_busy

    @property
    def messages(self) -> tuple[Message, ...]:
        """Messages still visible, in emission order."""
        return tuple(self._messages.values())

    @property
    def logs(self) -> tuple[LogEvent, ...]:
        return tuple(self.event_log)

    def snapshot(self) -> tuple[Process, ...]:
        return self.processes.snapshot()

    # Engine hooks

    def _emit_message(self, message: Message) -> None:
        self._messages[message.id] = message
        self._expiry_handles[message.id] = self.scheduler.call_later(
            message.visible_duration, lambda: self._expire_message(message.id)
        )
        self.callbacks.message(message)

    def _expire_message(self, message_id: MessageIdString) -> None:
        self._expiry_handles.pop(message_id, None)
        message = self._messages.pop(message_id, None)
        if message is not None:
            self.callbacks.message_expired(message)

    def _clear_messages(self) -> None:
        for handle in self._expiry_handles.values():
            handle.cancel()
        self._expiry_handles.clear()
        self._messages.clear()

    def _election_completed(self, leader_id: ProcessId) -> None:
        previous_leader = self.processes.leader_id
        if self.processes.is_active(leader_id):
            self.processes.set_leader(leader_id)
        else:
            logger.warning(f"Elected leader P{leader_id} failed before settling")
        self._notify_leader(previous_leader)
        self.callbacks.election_complete(leader_id)

        # A process that recovered while the session was busy was rejected;
        # it bullies the settled leader now.
        challenger_id = self.processes.highest_active()
        current = self.processes.leader_id
        if (
            self.monitor.is_running
            and current is not None
            and challenger_id is not None
            and challenger_id > current
        ):
            logger.info(f"P{challenger_id} outranks new leader P{current}")
            self.start_election(challenger_id)

    def _notify_leader(self, previous_leader: ProcessId | None) -> None:
        current = self.processes.leader_id
        if current != previous_leader:
            logger.info(f"Leader changed: {previous_leader} -> {current}")
            self.callbacks.leader_changed(current)

    def _log(self, text: str, category: LogCategory) -> None:
        self.event_log.append(LogEvent(text, category, self.scheduler.now()))
        logger.debug(f"[{category.value}] {text}")
        self.callbacks.log(text, category)
