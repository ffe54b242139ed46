"""
Process registry for the Bully simulation.

The ProcessSet is the single authoritative owner of every process's liveness
and leadership state. Process records are immutable; every mutation goes
through a ProcessSet operation which swaps in a replacement record.

Key Features:
- Atomic roster replacement with validation (no partial swaps)
- Leadership bookkeeping with at most one leader at any time
- Lazy, restartable view over active process ids
- Immutable snapshots for the pure Bully rules
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import TypeAlias
from dataclasses import dataclass, field, replace

from loguru import logger

from ..core.errors import InvalidConfig
from .type_aliases import ProcessId, ProcessLabel

ProcessSnapshot: TypeAlias = "tuple[Process, ...]"
"""Immutable view of the roster in ascending id order."""


@dataclass(frozen=True, slots=True)
class Process:
    """A single numbered process in the simulation."""

    id: ProcessId
    is_active: bool = True
    is_leader: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValueError("Process id must be an integer")
        if self.id <= 0:
            raise ValueError("Process id must be positive")
        if self.is_leader and not self.is_active:
            raise ValueError("An inactive process cannot be leader")

    @property
    def label(self) -> ProcessLabel:
        return f"P{self.id}"


class ActiveProcessIds:
    """
    Lazy view over the active ids of a ProcessSet.

    Each iteration re-reads the owning set, so the view can be iterated any
    number of times and always reflects the current roster.
    """

    __slots__ = ("_owner",)

    def __init__(self, owner: ProcessSet) -> None:
        self._owner = owner

    def __iter__(self) -> Iterator[ProcessId]:
        for process in self._owner:
            if process.is_active:
                yield process.id

    def __repr__(self) -> str:
        return f"ActiveProcessIds({list(self)})"


def validate_process_ids(ids: Iterable[ProcessId]) -> tuple[ProcessId, ...]:
    """
    Validate a candidate roster and return it sorted ascending.

    Raises:
        InvalidConfig: empty roster, non-integer, non-positive or duplicate ids
    """
    try:
        candidate = list(ids)
    except TypeError as e:
        raise InvalidConfig(f"Process ids must be iterable: {e}") from e

    if not candidate:
        raise InvalidConfig("Process roster cannot be empty")

    for process_id in candidate:
        if isinstance(process_id, bool) or not isinstance(process_id, int):
            raise InvalidConfig(f"Process id must be an integer: {process_id!r}")
        if process_id <= 0:
            raise InvalidConfig(f"Process id must be positive: {process_id}")

    if len(set(candidate)) != len(candidate):
        duplicates = sorted({pid for pid in candidate if candidate.count(pid) > 1})
        raise InvalidConfig(f"Duplicate process ids: {duplicates}")

    return tuple(sorted(candidate))


@dataclass(slots=True)
class ProcessSet:
    """
    Authoritative mapping from process id to its liveness/leadership state.

    Processes are kept in ascending id order. The recorded leader, when set,
    is always an active process.
    """

    _processes: dict[ProcessId, Process] = field(default_factory=dict)
    _leader_id: ProcessId | None = None

    @classmethod
    def from_ids(cls, ids: Iterable[ProcessId]) -> ProcessSet:
        """Create a configured ProcessSet in a single step."""
        process_set = cls()
        process_set.configure(ids)
        return process_set

    # Roster operations

    def configure(self, ids: Iterable[ProcessId]) -> None:
        """
        Replace the roster.

        Every process starts active and the highest id becomes leader. On
        failure the existing roster is left untouched.

        Raises:
            InvalidConfig: if the id collection is invalid
        """
        sorted_ids = validate_process_ids(ids)
        leader_id = sorted_ids[-1]

        self._processes = {
            pid: Process(id=pid, is_active=True, is_leader=pid == leader_id)
            for pid in sorted_ids
        }
        self._leader_id = leader_id
        logger.debug(f"Roster configured: {list(sorted_ids)} (leader P{leader_id})")

    def toggle(self, process_id: ProcessId) -> Process | None:
        """
        Flip the liveness of a process.

        Unknown ids are ignored and return None. If the leader goes down the
        leadership is cleared until the next election settles it.
        """
        process = self._processes.get(process_id)
        if process is None:
            logger.debug(f"Ignoring toggle of unknown process {process_id}")
            return None

        updated = replace(process, is_active=not process.is_active, is_leader=False)
        self._processes[process_id] = updated

        if self._leader_id == process_id:
            # Only an active process can lead, so the leader just went down.
            self._leader_id = None
            logger.debug(f"Leader P{process_id} went down; leadership cleared")

        return updated

    def set_leader(self, process_id: ProcessId | None) -> bool:
        """
        Record the authoritative leader.

        Returns:
            True if the recorded leader changed

        Raises:
            ValueError: if the process is unknown or inactive
        """
        if process_id is not None:
            process = self._processes.get(process_id)
            if process is None:
                raise ValueError(f"Cannot make unknown process {process_id} leader")
            if not process.is_active:
                raise ValueError(f"Cannot make inactive process {process_id} leader")

        if process_id == self._leader_id:
            return False

        previous = self._leader_id
        if previous is not None and previous in self._processes:
            self._processes[previous] = replace(
                self._processes[previous], is_leader=False
            )
        if process_id is not None:
            self._processes[process_id] = replace(
                self._processes[process_id], is_leader=True
            )
        self._leader_id = process_id
        return True

    def clear(self) -> None:
        """Drop every process and the leader."""
        self._processes = {}
        self._leader_id = None

    # Queries

    @property
    def leader_id(self) -> ProcessId | None:
        return self._leader_id

    @property
    def ids(self) -> tuple[ProcessId, ...]:
        return tuple(self._processes)

    def get(self, process_id: ProcessId) -> Process | None:
        return self._processes.get(process_id)

    def is_active(self, process_id: ProcessId) -> bool:
        process = self._processes.get(process_id)
        return process is not None and process.is_active

    def highest_active(self) -> ProcessId | None:
        """Greatest active id, or None when nothing is active."""
        return max(self.active_ids(), default=None)

    def lowest_active(self) -> ProcessId | None:
        """Smallest active id, or None when nothing is active."""
        return min(self.active_ids(), default=None)

    def active_ids(self) -> ActiveProcessIds:
        return ActiveProcessIds(self)

    def snapshot(self) -> ProcessSnapshot:
        return tuple(self._processes.values())

    def __contains__(self, process_id: object) -> bool:
        return process_id in self._processes

    def __iter__(self) -> Iterator[Process]:
        return iter(tuple(self._processes.values()))

    def __len__(self) -> int:
        return len(self._processes)
