"""
BullySim datastructures.

Key datastructures:
- ProcessSet: authoritative registry of process liveness and leadership
- Message: immutable Bully protocol message (ELECTION / OK / COORDINATOR)
- BullyRules: pure message-generation rules of the Bully algorithm
"""

from __future__ import annotations

from .bully_rules import BullyRules
from .messages import (
    CounterIdGenerator,
    Message,
    MessageFactory,
    MessageIdGenerator,
    MessageKind,
    MessagePriority,
    MessageTiming,
    UlidIdGenerator,
)
from .process_set import (
    ActiveProcessIds,
    Process,
    ProcessSet,
    ProcessSnapshot,
    validate_process_ids,
)

__all__ = [
    "ActiveProcessIds",
    "BullyRules",
    "CounterIdGenerator",
    "Message",
    "MessageFactory",
    "MessageIdGenerator",
    "MessageKind",
    "MessagePriority",
    "MessageTiming",
    "Process",
    "ProcessSet",
    "ProcessSnapshot",
    "UlidIdGenerator",
    "validate_process_ids",
]
