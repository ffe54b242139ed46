"""
BullySim - Bully leader election simulation core

A timed, observable engine for the Bully leader-election algorithm: a set of
numbered processes, a heartbeat monitor that notices when the leader is gone,
and an orchestrator that paces ELECTION, OK and COORDINATOR traffic so every
step can be watched.

## Architecture

- **datastructures**: ProcessSet, Message and the pure BullyRules
- **election**: ElectionOrchestrator and HeartbeatMonitor
- **core**: settings, schedulers, event log, callbacks, errors and logging
- **cli**: headless runner printing the protocol trace

## Quick Start

```python
from bullysim import BullySimulator, SimulationCallbacks, VirtualScheduler

scheduler = VirtualScheduler()
sim = BullySimulator(
    scheduler,
    callbacks=SimulationCallbacks(on_log=lambda text, category: print(text)),
)
sim.toggle(5)
sim.start_election()
scheduler.run_until_idle()
assert sim.leader_id == 4
```
"""

# Core exports
from .core import (
    AsyncioScheduler,
    BullySimError,
    ElectionAlreadyInProgress,
    EventLog,
    InitiatorInactive,
    InvalidConfig,
    LogCategory,
    LogEvent,
    NoActiveProcesses,
    Scheduler,
    SimulationCallbacks,
    SimulatorSettings,
    UnknownProcess,
    VirtualScheduler,
    configure_logging,
)

# Datastructure exports
from .datastructures import (
    BullyRules,
    CounterIdGenerator,
    Message,
    MessageKind,
    Process,
    ProcessSet,
)

# Election engine exports
from .election import (
    ElectionOrchestrator,
    ElectionRejection,
    ElectionRequest,
    HeartbeatMonitor,
)
from .simulator import BullySimulator

# Version info
__version__ = "1.0.0"
__license__ = "MIT"

__all__ = [
    "AsyncioScheduler",
    "BullyRules",
    "BullySimError",
    "BullySimulator",
    "CounterIdGenerator",
    "ElectionAlreadyInProgress",
    "ElectionOrchestrator",
    "ElectionRejection",
    "ElectionRequest",
    "EventLog",
    "HeartbeatMonitor",
    "InitiatorInactive",
    "InvalidConfig",
    "LogCategory",
    "LogEvent",
    "Message",
    "MessageKind",
    "NoActiveProcesses",
    "Process",
    "ProcessSet",
    "Scheduler",
    "SimulationCallbacks",
    "SimulatorSettings",
    "UnknownProcess",
    "VirtualScheduler",
    "configure_logging",
]
