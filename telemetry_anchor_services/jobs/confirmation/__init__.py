"""Confirmation poller.

Modules:
- config: PollerConfig dataclass
- runner: run_once cycle and the background ConfirmationPoller thread
- cli: CLI entry point (main)
"""

from .config import PollerConfig
from .runner import ConfirmationPoller, CycleResult, run_once
from .cli import main

__all__ = ["ConfirmationPoller", "CycleResult", "PollerConfig", "main", "run_once"]
