"""Confirmation poller configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from ...common.config import Settings


@dataclass(frozen=True)
class PollerConfig:
    interval_seconds: float = 60.0
    batch_size: int = 50
    workers: int = 4
    once: bool = False

    @classmethod
    def from_env(cls) -> "PollerConfig":
        return cls(
            interval_seconds=float(os.getenv("POLLER_INTERVAL_SECONDS", "60")),
            batch_size=int(os.getenv("POLLER_BATCH_SIZE", "50")),
            workers=int(os.getenv("POLLER_WORKERS", "4")),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollerConfig":
        return cls(
            interval_seconds=settings.poller_interval_seconds,
            batch_size=settings.poller_batch_size,
            workers=settings.poller_workers,
        )
