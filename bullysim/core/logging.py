"""
Diagnostic logging setup for BullySim.

The event log shown to users is domain output (see ``core.events``); this
module only configures loguru for developer diagnostics. Engine modules log
per-message traffic at DEBUG, which is noisy for a full run, so DEBUG can be
enabled for selected engine scopes only:

    configure_logging("INFO", debug_scopes=("election.orchestrator",))
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable
from typing import Any, TextIO, TypeAlias

from loguru import logger

PACKAGE_PREFIX = "bullysim."

LOG_FORMAT = (
    "{time:HH:mm:ss.SSS} | {level: <8} | "
    "<cyan>{name}</cyan>:{line} - {message}"
)

RecordFilter: TypeAlias = Callable[[dict[str, Any]], bool]


def qualify_scope(scope: str) -> str:
    """Expand a short engine scope (``"election"``) to its module prefix."""
    scope = scope.strip()
    if scope.startswith(PACKAGE_PREFIX) or scope == PACKAGE_PREFIX.rstrip("."):
        return scope
    return f"{PACKAGE_PREFIX}{scope}"


def scoped_debug_filter(scopes: Iterable[str]) -> RecordFilter:
    """Pass only DEBUG records emitted from modules under ``scopes``."""
    prefixes = tuple(qualify_scope(scope) for scope in scopes if scope.strip())

    def _filter(record: dict[str, Any]) -> bool:
        if record["level"].name != "DEBUG":
            return False
        return (record["name"] or "").startswith(prefixes)

    return _filter


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
    sink: TextIO | None = None,
) -> tuple[int, ...]:
    """
    Replace every loguru sink with BullySim's diagnostic sink.

    Returns the ids of the added handlers. A second sink is added for the
    requested ``debug_scopes`` unless ``level`` already includes DEBUG.
    """
    logger.remove()
    target = sink or sys.stderr

    handler_ids = [
        logger.add(target, level=level, format=LOG_FORMAT, colorize=colorize)
    ]

    scopes = [scope for scope in debug_scopes if scope.strip()]
    if scopes and level.upper() != "DEBUG":
        handler_ids.append(
            logger.add(
                target,
                level="DEBUG",
                format=LOG_FORMAT,
                colorize=colorize,
                filter=scoped_debug_filter(scopes),
            )
        )
        logger.debug(f"Scoped DEBUG logging enabled for {scopes}")

    return tuple(handler_ids)
