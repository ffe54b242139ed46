"""Pytest configuration and fixtures for BullySim testing.

Every engine fixture runs on a VirtualScheduler so tests advance time
explicitly instead of sleeping. Engine output is captured by a
RecordingCallbacks instance for inspection.
"""

from collections.abc import Callable, Iterator
from typing import TypeAlias

import pytest
from loguru import logger

from bullysim.core.config import SimulatorSettings
from bullysim.core.events import LogCategory, SimulationCallbacks
from bullysim.core.scheduler import VirtualScheduler
from bullysim.datastructures.bully_rules import BullyRules
from bullysim.datastructures.messages import (
    CounterIdGenerator,
    Message,
    MessageFactory,
    MessageKind,
)
from bullysim.datastructures.process_set import ProcessSet
from bullysim.datastructures.type_aliases import ProcessId
from bullysim.election.orchestrator import ElectionOrchestrator
from bullysim.simulator import BullySimulator


class RecordingCallbacks:
    """Collects everything the engine emits, in order."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.expired: list[Message] = []
        self.logs: list[tuple[str, LogCategory]] = []
        self.completions: list[ProcessId] = []
        self.leader_changes: list[ProcessId | None] = []

    def as_callbacks(self) -> SimulationCallbacks:
        return SimulationCallbacks(
            on_message=self.messages.append,
            on_log=lambda text, category: self.logs.append((text, category)),
            on_election_complete=self.completions.append,
            on_leader_changed=self.leader_changes.append,
            on_message_expired=self.expired.append,
        )

    @property
    def log_texts(self) -> list[str]:
        return [text for text, _ in self.logs]

    def protocol_messages(self) -> list[Message]:
        """Messages excluding heartbeats."""
        return [m for m in self.messages if not m.is_heartbeat]

    def heartbeats(self) -> list[Message]:
        return [m for m in self.messages if m.is_heartbeat]

    def kinds(self) -> list[MessageKind]:
        return [m.kind for m in self.protocol_messages()]

    def pairs(self, kind: MessageKind) -> list[tuple[ProcessId, ProcessId]]:
        return [
            (m.sender_id, m.receiver_id)
            for m in self.protocol_messages()
            if m.kind is kind
        ]

    def reset(self) -> None:
        self.messages.clear()
        self.expired.clear()
        self.logs.clear()
        self.completions.clear()
        self.leader_changes.clear()


@pytest.fixture(autouse=True, scope="session")
def quiet_logging() -> Iterator[None]:
    """Keep engine diagnostics out of the test output."""
    logger.disable("bullysim")
    yield
    logger.enable("bullysim")


@pytest.fixture
def settings() -> SimulatorSettings:
    return SimulatorSettings()


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture
def recorder() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest.fixture
def rules() -> BullyRules:
    return BullyRules(MessageFactory(id_generator=CounterIdGenerator(), clock=lambda: 0.0))


@pytest.fixture
def simulator(
    scheduler: VirtualScheduler,
    settings: SimulatorSettings,
    recorder: RecordingCallbacks,
) -> BullySimulator:
    """Simulator on the default roster {1..5} with leader P5."""
    return BullySimulator(
        scheduler,
        settings,
        recorder.as_callbacks(),
        id_generator=CounterIdGenerator(),
    )


OrchestratorFactory: TypeAlias = Callable[
    ..., tuple[ElectionOrchestrator, ProcessSet]
]


@pytest.fixture
def make_orchestrator(
    scheduler: VirtualScheduler, recorder: RecordingCallbacks
) -> OrchestratorFactory:
    """Factory for bare orchestrators wired straight to the recorder."""

    def build(
        ids: list[ProcessId], settings: SimulatorSettings | None = None
    ) -> tuple[ElectionOrchestrator, ProcessSet]:
        processes = ProcessSet.from_ids(ids)
        orchestrator = ElectionOrchestrator(
            processes=processes,
            rules=BullyRules(
                MessageFactory(id_generator=CounterIdGenerator(), clock=scheduler.now)
            ),
            scheduler=scheduler,
            settings=settings or SimulatorSettings(),
            on_message=recorder.messages.append,
            on_log=lambda text, category: recorder.logs.append((text, category)),
            on_complete=recorder.completions.append,
        )
        return orchestrator, processes

    return build
