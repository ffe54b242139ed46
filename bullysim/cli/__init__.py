"""
BullySim Command Line Interface.

Headless runner for single elections and scripted failure/recovery timelines.
"""

from .main import cli, main

__all__ = ["main", "cli"]
