"""
Semantic type aliases for BullySim datastructures.

These aliases keep signatures self-documenting: a ``ProcessId`` is not just
any integer and a ``DurationSeconds`` is not just any float.
"""

from typing import TypeAlias

# Time and timestamp types
Timestamp: TypeAlias = float
DurationSeconds: TypeAlias = float

# ID and identifier types
ProcessId: TypeAlias = int
MessageIdString: TypeAlias = str
SessionId: TypeAlias = int

# Display types
ProcessLabel: TypeAlias = str
DisplayPriority: TypeAlias = int
LogText: TypeAlias = str
