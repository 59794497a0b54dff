"""Cursor iteration and the scan-and-apply engine."""

from .cursor import KeyCursor
from .engine import EngineState, ScanEngine
from .tally import OutcomeTally

__all__ = [
    "EngineState",
    "KeyCursor",
    "OutcomeTally",
    "ScanEngine",
]
