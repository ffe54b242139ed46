"""
Protocol messages exchanged by simulated processes.

A Message is one in-flight Bully protocol event. Messages are immutable; the
MessageFactory stamps ids, creation times, visible durations and display
priorities so the rules that decide *which* messages to send never deal with
presentation details.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

import ulid

from .type_aliases import (
    DisplayPriority,
    DurationSeconds,
    MessageIdString,
    ProcessId,
    Timestamp,
)

HEARTBEAT_ID_PREFIX = "heartbeat-"


class MessageKind(Enum):
    """The three message kinds of the Bully protocol."""

    ELECTION = "ELECTION"  # election call to every higher process
    OK = "OK"  # acknowledgment from a higher process
    COORDINATOR = "COORDINATOR"  # winner announcement


class MessagePriority:
    """Display priorities used when messages overlap (higher = more important)."""

    ELECTION: DisplayPriority = 3
    OK: DisplayPriority = 2
    COORDINATOR: DisplayPriority = 2
    HEARTBEAT: DisplayPriority = 1

    @classmethod
    def for_kind(cls, kind: MessageKind, is_heartbeat: bool = False) -> DisplayPriority:
        if is_heartbeat:
            return cls.HEARTBEAT
        return getattr(cls, kind.name)


@dataclass(frozen=True, slots=True)
class Message:
    """A single Bully protocol message between two processes."""

    id: MessageIdString
    kind: MessageKind
    sender_id: ProcessId
    receiver_id: ProcessId
    created_at: Timestamp
    visible_duration: DurationSeconds
    is_heartbeat: bool = False
    priority: DisplayPriority = MessagePriority.COORDINATOR

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Message ID cannot be empty")
        if self.sender_id == self.receiver_id:
            raise ValueError(f"Message cannot be sent to itself: P{self.sender_id}")
        if self.visible_duration <= 0:
            raise ValueError("Visible duration must be positive")
        if self.is_heartbeat and self.kind is not MessageKind.COORDINATOR:
            raise ValueError("Heartbeats are COORDINATOR messages")

    @property
    def expires_at(self) -> Timestamp:
        return self.created_at + self.visible_duration

    def describe(self) -> str:
        kind = "HEARTBEAT" if self.is_heartbeat else self.kind.value
        return f"P{self.sender_id} -> P{self.receiver_id} {kind}"


@runtime_checkable
class MessageIdGenerator(Protocol):
    """Source of unique message identifiers."""

    def next_id(self) -> MessageIdString: ...


@dataclass(slots=True)
class UlidIdGenerator:
    """Production id source: lexicographically sortable ULIDs."""

    prefix: str = "msg-"

    def next_id(self) -> MessageIdString:
        return f"{self.prefix}{ulid.new()}"


@dataclass(slots=True)
class CounterIdGenerator:
    """Monotonic id source for reproducible runs."""

    prefix: str = "msg-"
    _counter: itertools.count[int] = field(
        default_factory=lambda: itertools.count(1), init=False
    )

    def next_id(self) -> MessageIdString:
        return f"{self.prefix}{next(self._counter)}"


@dataclass(frozen=True, slots=True)
class MessageTiming:
    """How long each kind of message stays visible once emitted."""

    election: DurationSeconds = 3.0
    ok: DurationSeconds = 2.5
    coordinator: DurationSeconds = 2.0
    heartbeat: DurationSeconds = 1.0

    def __post_init__(self) -> None:
        for name in ("election", "ok", "coordinator", "heartbeat"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} duration must be positive")

    def duration_for(
        self, kind: MessageKind, is_heartbeat: bool = False
    ) -> DurationSeconds:
        if is_heartbeat:
            return self.heartbeat
        match kind:
            case MessageKind.ELECTION:
                return self.election
            case MessageKind.OK:
                return self.ok
            case MessageKind.COORDINATOR:
                return self.coordinator


@dataclass(slots=True)
class MessageFactory:
    """Builds fully stamped messages from (kind, sender, receiver) triples."""

    timing: MessageTiming = field(default_factory=MessageTiming)
    id_generator: MessageIdGenerator = field(default_factory=UlidIdGenerator)
    clock: Callable[[], Timestamp] = time.time

    def create(
        self,
        kind: MessageKind,
        sender_id: ProcessId,
        receiver_id: ProcessId,
        is_heartbeat: bool = False,
    ) -> Message:
        message_id = self.id_generator.next_id()
        if is_heartbeat:
            message_id = f"{HEARTBEAT_ID_PREFIX}{message_id}"

        return Message(
            id=message_id,
            kind=kind,
            sender_id=sender_id,
            receiver_id=receiver_id,
            created_at=self.clock(),
            visible_duration=self.timing.duration_for(kind, is_heartbeat),
            is_heartbeat=is_heartbeat,
            priority=MessagePriority.for_kind(kind, is_heartbeat),
        )
