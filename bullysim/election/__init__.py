"""
Election engine: the timed Bully orchestrator and the heartbeat monitor.
"""

from __future__ import annotations

from .heartbeat import HeartbeatMonitor
from .orchestrator import (
    ElectionOrchestrator,
    ElectionRejection,
    ElectionRequest,
    ElectionSession,
    OrchestratorState,
    SessionStatus,
)

__all__ = [
    "ElectionOrchestrator",
    "ElectionRejection",
    "ElectionRequest",
    "ElectionSession",
    "HeartbeatMonitor",
    "OrchestratorState",
    "SessionStatus",
]
