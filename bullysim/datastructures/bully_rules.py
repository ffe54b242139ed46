"""
Message-generation rules of the Bully algorithm.

Every rule is a pure function of its inputs and a ProcessSnapshot: no timing,
no mutation of the roster. The only collaborator is the MessageFactory, which
stamps ids and presentation metadata onto the messages a rule decides to send.

Rules return messages ordered by ascending receiver id, so for a fixed
snapshot the produced message contents are deterministic. Pacing the
messages over time is the orchestrator's concern.

Example:
    >>> from bullysim.datastructures import BullyRules, ProcessSet
    >>> rules = BullyRules()
    >>> snapshot = ProcessSet.from_ids([1, 2, 3]).snapshot()
    >>> [m.receiver_id for m in rules.start_election(1, snapshot)]
    [2, 3]
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .messages import Message, MessageFactory, MessageKind
from .process_set import Process, ProcessSnapshot
from .type_aliases import ProcessId


def _find_active(process_id: ProcessId, snapshot: ProcessSnapshot) -> Process | None:
    for process in snapshot:
        if process.id == process_id and process.is_active:
            return process
    return None


def _higher_active(process_id: ProcessId, snapshot: ProcessSnapshot) -> list[Process]:
    return sorted(
        (p for p in snapshot if p.is_active and p.id > process_id),
        key=lambda p: p.id,
    )


def _other_active(process_id: ProcessId, snapshot: ProcessSnapshot) -> list[Process]:
    return sorted(
        (p for p in snapshot if p.is_active and p.id != process_id),
        key=lambda p: p.id,
    )


@dataclass(slots=True)
class BullyRules:
    """Decides which messages a process must send in response to an event."""

    factory: MessageFactory = field(default_factory=MessageFactory)

    def start_election(
        self, initiator_id: ProcessId, snapshot: ProcessSnapshot
    ) -> list[Message]:
        """
        ELECTION messages from the initiator to every higher active process.

        An empty result means either the initiator is not an active member or
        no higher active peer exists; in the latter case the initiator should
        proclaim itself leader.
        """
        if _find_active(initiator_id, snapshot) is None:
            return []

        return [
            self.factory.create(MessageKind.ELECTION, initiator_id, target.id)
            for target in _higher_active(initiator_id, snapshot)
        ]

    def respond_to_election(
        self,
        receiver_id: ProcessId,
        sender_id: ProcessId,
        snapshot: ProcessSnapshot,
    ) -> list[Message]:
        """
        Reaction of a process that received an ELECTION message.

        An active receiver acknowledges with OK and then starts its own
        election. An inactive receiver stays silent.
        """
        acknowledgment = self.acknowledge_election(receiver_id, sender_id, snapshot)
        if not acknowledgment:
            return []
        return [*acknowledgment, *self.start_election(receiver_id, snapshot)]

    def acknowledge_election(
        self,
        receiver_id: ProcessId,
        sender_id: ProcessId,
        snapshot: ProcessSnapshot,
    ) -> list[Message]:
        """The OK reply alone (receiver -> sender); empty if the receiver is down."""
        if _find_active(receiver_id, snapshot) is None:
            return []
        return [self.factory.create(MessageKind.OK, receiver_id, sender_id)]

    def announce_coordinator(
        self, leader_id: ProcessId, snapshot: ProcessSnapshot
    ) -> list[Message]:
        """COORDINATOR messages from the leader to every other active process."""
        if _find_active(leader_id, snapshot) is None:
            return []

        return [
            self.factory.create(MessageKind.COORDINATOR, leader_id, target.id)
            for target in _other_active(leader_id, snapshot)
        ]

    def heartbeat_messages(
        self, leader_id: ProcessId, snapshot: ProcessSnapshot
    ) -> list[Message]:
        """Heartbeat-flavoured COORDINATOR messages from the leader."""
        if _find_active(leader_id, snapshot) is None:
            return []

        return [
            self.factory.create(
                MessageKind.COORDINATOR, leader_id, target.id, is_heartbeat=True
            )
            for target in _other_active(leader_id, snapshot)
        ]

    @staticmethod
    def should_self_proclaim(process_id: ProcessId, snapshot: ProcessSnapshot) -> bool:
        """True when no active process has a strictly greater id."""
        return not _higher_active(process_id, snapshot)

    @staticmethod
    def election_targets(
        process_id: ProcessId, snapshot: ProcessSnapshot
    ) -> list[ProcessId]:
        return [p.id for p in _higher_active(process_id, snapshot)]

    @staticmethod
    def can_participate(process_id: ProcessId, snapshot: ProcessSnapshot) -> bool:
        return _find_active(process_id, snapshot) is not None

    @staticmethod
    def highest_active(snapshot: ProcessSnapshot) -> ProcessId | None:
        """The rightful leader of a snapshot, or None if nothing is active."""
        return max((p.id for p in snapshot if p.is_active), default=None)
