"""
Core engine services: configuration, timing, events, errors and logging.
"""

from __future__ import annotations

from .config import SimulatorSettings
from .errors import (
    BullySimError,
    ElectionAlreadyInProgress,
    InitiatorInactive,
    InvalidConfig,
    NoActiveProcesses,
    UnknownProcess,
)
from .events import (
    EventLog,
    LogCategory,
    LogEvent,
    SimulationCallbacks,
)
from .logging import configure_logging
from .scheduler import (
    AsyncioScheduler,
    ScheduledHandle,
    Scheduler,
    VirtualScheduler,
)

__all__ = [
    "AsyncioScheduler",
    "BullySimError",
    "ElectionAlreadyInProgress",
    "EventLog",
    "InitiatorInactive",
    "InvalidConfig",
    "LogCategory",
    "LogEvent",
    "NoActiveProcesses",
    "ScheduledHandle",
    "Scheduler",
    "SimulationCallbacks",
    "SimulatorSettings",
    "UnknownProcess",
    "VirtualScheduler",
    "configure_logging",
]
