"""Canonical payload for a batch of readings.

The serialized text must be byte-identical for identical input so that the
payload hash (and therefore the correlation id of retries) is stable.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from ..domain.models import Reading


@dataclass(frozen=True)
class BuiltPayload:
    document: dict[str, Any]
    text: str
    size_bytes: int
    payload_hash: str

    @property
    def data(self) -> bytes:
        return self.text.encode("utf-8")


def format_timestamp(ts_ms: int | None) -> str | None:
    """UTC ISO-8601 with millisecond precision, e.g. 2025-08-14T19:15:31.000Z."""
    if ts_ms is None:
        return None
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts_ms % 1000:03d}Z"


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_payload(readings: Sequence[Reading]) -> BuiltPayload:
    if not readings:
        raise ValueError("cannot build a payload from zero readings")

    first = readings[0]
    document = {
        "chipID": first.chip_id,
        "macAddress": first.mac_address,
        "readings": [
            {
                "temperature": r.temperature,
                "timestamp": format_timestamp(r.source_ts_ms),
            }
            for r in readings
        ],
    }

    text = json.dumps(document, separators=(",", ":"), ensure_ascii=False)
    return BuiltPayload(
        document=document,
        text=text,
        size_bytes=len(text.encode("utf-8")),
        payload_hash=sha256_hex(text),
    )
