"""
Heartbeat-based leader liveness monitoring.

While the simulation runs, the monitor ticks every ``heartbeat_interval``.
A healthy leader broadcasts heartbeats to every other active process. When
the recorded leader is missing or inactive, the lowest active process detects
the failure and starts a new election. Detection happens on the tick itself;
there is no separate missed-heartbeat timeout.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from loguru import logger

from ..core.config import SimulatorSettings
from ..core.events import LogCallback, LogCategory, MessageCallback
from ..core.scheduler import ScheduledHandle, Scheduler
from ..datastructures.bully_rules import BullyRules
from ..datastructures.messages import Message
from ..datastructures.process_set import ProcessSet
from ..datastructures.type_aliases import ProcessId, Timestamp
from .orchestrator import ElectionOrchestrator


@dataclass(slots=True)
class HeartbeatMonitor:
    """Periodic liveness checker that triggers recovery elections."""

    processes: ProcessSet
    rules: BullyRules
    orchestrator: ElectionOrchestrator
    scheduler: Scheduler
    settings: SimulatorSettings = field(default_factory=SimulatorSettings)
    on_message: MessageCallback | None = None
    on_log: LogCallback | None = None

    last_heartbeat: Timestamp | None = field(default=None, init=False)
    _running: bool = field(default=False, init=False)
    _tick_handle: ScheduledHandle | None = field(default=None, init=False)
    _emit_handle: ScheduledHandle | None = field(default=None, init=False)

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.debug("Heartbeat monitor already running")
            return
        self._running = True
        self.last_heartbeat = self.scheduler.now()
        self._schedule_tick()
        logger.info(
            f"Heartbeat monitor started (interval={self.settings.heartbeat_interval}s)"
        )
        self._log("Simulation started - heartbeat monitoring active", LogCategory.INFO)

    def stop(self) -> None:
        """Stop ticking; pending ticks and heartbeat emissions are cancelled."""
        if not self._running:
            return
        self._running = False
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self.cancel_pending_heartbeats()
        logger.info("Heartbeat monitor stopped")
        self._log("Simulation paused - heartbeat monitoring stopped", LogCategory.INFO)

    def cancel_pending_heartbeats(self) -> None:
        if self._emit_handle is not None:
            self._emit_handle.cancel()
            self._emit_handle = None

    def check(self) -> None:
        """Run one liveness check against the current roster."""
        leader_id = self.processes.leader_id
        if leader_id is not None and self.processes.is_active(leader_id):
            self._send_heartbeats(leader_id)
        else:
            self._detect_failure(leader_id)

    def _schedule_tick(self) -> None:
        self._tick_handle = self.scheduler.call_later(
            self.settings.heartbeat_interval, self._tick
        )

    def _tick(self) -> None:
        if not self._running:
            return
        self._schedule_tick()
        self.check()

    def _send_heartbeats(self, leader_id: ProcessId) -> None:
        self.last_heartbeat = self.scheduler.now()
        batch = self.rules.heartbeat_messages(leader_id, self.processes.snapshot())
        if not batch:
            logger.debug(f"Leader P{leader_id} has no peers to heartbeat")
            return

        self._log(
            f"Leader P{leader_id} sending heartbeat to {len(batch)} processes",
            LogCategory.INFO,
        )
        self.cancel_pending_heartbeats()
        self._emit(batch, 0)

    def _emit(self, batch: Sequence[Message], index: int) -> None:
        self._emit_handle = None
        message = replace(batch[index], created_at=self.scheduler.now())
        if (
            self.processes.leader_id == message.sender_id
            and self.processes.is_active(message.sender_id)
            and message.receiver_id in self.processes
        ):
            if self.on_message:
                self.on_message(message)
        else:
            logger.debug(f"Dropping stale heartbeat {message.describe()}")

        if index + 1 < len(batch):
            self._emit_handle = self.scheduler.call_later(
                self.settings.heartbeat_spacing,
                lambda: self._emit(batch, index + 1),
            )

    def _detect_failure(self, leader_id: ProcessId | None) -> None:
        if self.orchestrator.is_busy:
            logger.debug("No leader, but an election is already running")
            return

        initiator_id = self.processes.lowest_active()
        if initiator_id is None:
            logger.debug("No leader and no active processes; nothing to do")
            return

        if leader_id is not None:
            logger.warning(f"Leader P{leader_id} is down; starting recovery election")
        self._log(
            f"Leader failure detected! Process P{initiator_id} initiating election",
            LogCategory.FAILURE,
        )
        self.orchestrator.start_election(initiator_id)

    def _log(self, text: str, category: LogCategory) -> None:
        if self.on_log:
            self.on_log(text, category)
