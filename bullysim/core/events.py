"""
Engine output: protocol log events and the collaborator callback contract.

Rendering, log display and input widgets live outside the engine. They
receive everything through SimulationCallbacks; the engine never reads any of
it back.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, TypeAlias

from ..datastructures.type_aliases import LogText, ProcessId, Timestamp

if TYPE_CHECKING:
    from ..datastructures.messages import Message

DEFAULT_LOG_RETENTION = 100


class LogCategory(Enum):
    """Category of a protocol milestone in the event log."""

    INFO = "info"
    ELECTION = "election"
    FAILURE = "failure"
    RECOVERY = "recovery"
    LEADER = "leader"


@dataclass(frozen=True, slots=True)
class LogEvent:
    """One line of the simulation's event log."""

    text: LogText
    category: LogCategory
    timestamp: Timestamp

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("Log text cannot be empty")


@dataclass(slots=True)
class EventLog:
    """Append-only event log that keeps only a trailing window of entries."""

    retention: int = DEFAULT_LOG_RETENTION
    _entries: deque[LogEvent] = field(init=False)

    def __post_init__(self) -> None:
        if self.retention <= 0:
            raise ValueError("Log retention must be positive")
        self._entries = deque(maxlen=self.retention)

    def append(self, event: LogEvent) -> None:
        self._entries.append(event)

    def clear(self) -> None:
        self._entries.clear()

    def texts(self) -> list[LogText]:
        return [event.text for event in self._entries]

    def by_category(self, category: LogCategory) -> list[LogEvent]:
        return [event for event in self._entries if event.category is category]

    def __iter__(self) -> Iterator[LogEvent]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


MessageCallback: TypeAlias = Callable[["Message"], None]
LogCallback: TypeAlias = Callable[[LogText, LogCategory], None]
LeaderCallback: TypeAlias = Callable[[ProcessId], None]
LeaderChangedCallback: TypeAlias = Callable[[ProcessId | None], None]


@dataclass(slots=True)
class SimulationCallbacks:
    """
    Outbound contract towards external collaborators.

    Every callback is optional. They are invoked synchronously from the
    single control thread, in emission order; exceptions propagate to the
    code that triggered the event.
    """

    on_message: MessageCallback | None = None
    on_log: LogCallback | None = None
    on_election_complete: LeaderCallback | None = None
    on_leader_changed: LeaderChangedCallback | None = None
    on_message_expired: MessageCallback | None = None

    def message(self, message: Message) -> None:
        if self.on_message:
            self.on_message(message)

    def log(self, text: LogText, category: LogCategory) -> None:
        if self.on_log:
            self.on_log(text, category)

    def election_complete(self, leader_id: ProcessId) -> None:
        if self.on_election_complete:
            self.on_election_complete(leader_id)

    def leader_changed(self, leader_id: ProcessId | None) -> None:
        if self.on_leader_changed:
            self.on_leader_changed(leader_id)

    def message_expired(self, message: Message) -> None:
        if self.on_message_expired:
            self.on_message_expired(message)
