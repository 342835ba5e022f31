"""Read-only aggregates over uploaded batches.

Time-to-confirm is confirmed_at - sent_at for the account chain (confirmed rows
only). DAG batches are confirmed when the submit call returns, so their
submit duration stands in for it.
"""

from __future__ import annotations

import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..domain.models import Chain, UploadedMessage, UploadStatus
from ..persistence import AttemptRecorder, UploadRecordStore


def percentile(values: Sequence[int], pct: float) -> Optional[float]:
    """Nearest-rank percentile; None for an empty sequence."""
    if not values:
        return None
    ordered = sorted(values)
    rank = max(1, math.ceil(pct / 100.0 * len(ordered)))
    return float(ordered[min(rank, len(ordered)) - 1])


def _mean(values: Sequence[float]) -> float:
    return float(sum(values)) / len(values) if values else 0.0


@dataclass(frozen=True)
class UploadStats:
    chain: Chain
    uploads: int
    total_data_kb: float
    total_readings: int
    avg_readings_per_upload: float
    avg_time_to_confirm_ms: float
    p50_time_to_confirm_ms: Optional[float]
    p95_time_to_confirm_ms: Optional[float]
    total_cost: int
    avg_cost_per_reading: float
    pending: int
    confirmed: int
    failed_attempts: int
    durations_ms: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class DailyStats:
    day: str
    uploads: int
    readings: int
    bytes: int
    cost: int
    avg_elapsed_ms: float


_OPEN_STATUSES = (UploadStatus.PENDING, UploadStatus.SENT)


def confirm_durations(chain: Chain, records: Sequence[UploadedMessage]) -> list[int]:
    if chain is Chain.IOTA:
        return [r.elapsed_ms for r in records]
    return [
        r.time_to_confirm_ms
        for r in records
        if r.confirmed and r.time_to_confirm_ms is not None
    ]


def summarize(chain: Chain, records: Sequence[UploadedMessage], failed_attempts: int = 0) -> UploadStats:
    durations = confirm_durations(chain, records)
    total_bytes = sum(r.payload_size for r in records)
    total_readings = sum(r.reading_count for r in records)
    total_cost = sum(r.fee or 0 for r in records)
    confirmed = sum(1 for r in records if r.confirmed)
    pending = sum(1 for r in records if r.status in _OPEN_STATUSES)

    return UploadStats(
        chain=chain,
        uploads=len(records),
        total_data_kb=total_bytes / 1024.0,
        total_readings=total_readings,
        avg_readings_per_upload=_mean([r.reading_count for r in records]),
        avg_time_to_confirm_ms=_mean(durations),
        p50_time_to_confirm_ms=percentile(durations, 50),
        p95_time_to_confirm_ms=percentile(durations, 95),
        total_cost=total_cost,
        avg_cost_per_reading=(total_cost / total_readings) if total_readings else 0.0,
        pending=pending,
        confirmed=confirmed,
        failed_attempts=failed_attempts,
        durations_ms=durations,
    )


def summarize_daily(records: Sequence[UploadedMessage]) -> list[DailyStats]:
    buckets: "OrderedDict[str, list[UploadedMessage]]" = OrderedDict()
    for r in sorted(records, key=lambda m: m.sent_at_ms):
        day = datetime.fromtimestamp(r.sent_at_ms / 1000.0, tz=timezone.utc).strftime("%Y-%m-%d")
        buckets.setdefault(day, []).append(r)

    return [
        DailyStats(
            day=day,
            uploads=len(items),
            readings=sum(i.reading_count for i in items),
            bytes=sum(i.payload_size for i in items),
            cost=sum(i.fee or 0 for i in items),
            avg_elapsed_ms=_mean([i.elapsed_ms for i in items]),
        )
        for day, items in buckets.items()
    ]


class StatsService:
    def __init__(self, uploads: UploadRecordStore, attempts: AttemptRecorder):
        self.uploads = uploads
        self.attempts = attempts

    def get_upload_stats(self, chain: Chain) -> UploadStats:
        records = self.uploads.list_for_chain(chain)
        return summarize(chain, records, failed_attempts=self.attempts.count_for_chain(chain))

    def get_daily_stats(self, chain: Chain) -> list[DailyStats]:
        return summarize_daily(self.uploads.list_for_chain(chain))
