"""Error types raised or reported by the election engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..datastructures.type_aliases import ProcessId


class BullySimError(Exception):
    """Base class for all BullySim errors."""


class InvalidConfig(BullySimError, ValueError):
    """Raised when a process roster cannot be applied."""


class ElectionAlreadyInProgress(BullySimError):
    """An election was requested while another session is still active."""

    def __init__(self, initiator_id: ProcessId | None = None) -> None:
        self.initiator_id = initiator_id
        super().__init__(
            f"Election already in progress (requested by P{initiator_id})"
            if initiator_id is not None
            else "Election already in progress"
        )


class InitiatorInactive(BullySimError):
    """An election was requested from a process that is currently down."""

    def __init__(self, process_id: ProcessId) -> None:
        self.process_id = process_id
        super().__init__(
            f"Process P{process_id} is inactive and cannot start an election"
        )


class UnknownProcess(BullySimError):
    """A process id that is not part of the current roster."""

    def __init__(self, process_id: ProcessId) -> None:
        self.process_id = process_id
        super().__init__(f"Unknown process: {process_id}")


class NoActiveProcesses(BullySimError):
    """An election was requested but no process is active."""

    def __init__(self) -> None:
        super().__init__("No active processes; there is no leader to elect")
