"""Parsers for the device text messages.

Temperature:  ``ESP32-D0WD1@8C:4B:14:08:12:58 | Temp: 21.5°C | time: 14.08.2025 21:15:31``
Status:       ``ESP32-D0WD1@8C:4B:14:08:12:58 | Wifi OK | MQTT OK | Time: 14.10.2024 20:57:29``

Device clocks send wall-clock time without an offset; it is interpreted in
the configured source timezone. A message that does not match is returned as
a ParseFailure, never guessed.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

DEVICE_TIME_FORMAT = "%d.%m.%Y %H:%M:%S"

_TEMP_RE = re.compile(r"^\s*temp\s*:\s*(?P<value>[-+]?\d+(?:[.,]\d+)?)\s*(?:°\s*C|C)?\s*$", re.IGNORECASE)
_TIME_RE = re.compile(r"^\s*time\s*:\s*(?P<value>.+?)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class TemperatureMessage:
    chip_id: str
    mac_address: str
    temperature: float
    source_ts_ms: int


@dataclass(frozen=True)
class StatusMessage:
    chip_id: str
    mac_address: str
    status: str
    device_time: Optional[str]


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    raw: str


ParsedMessage = Union[TemperatureMessage, StatusMessage, ParseFailure]


def _split_device(part: str) -> Optional[tuple[str, str]]:
    chip, sep, mac = part.partition("@")
    chip, mac = chip.strip(), mac.strip()
    if not sep or not chip or not mac:
        return None
    return chip, mac


def parse_device_time(value: str, source_tz: str) -> int:
    """Wall-clock device time in `source_tz` to UTC epoch milliseconds."""
    naive = datetime.strptime(value.strip(), DEVICE_TIME_FORMAT)
    local = naive.replace(tzinfo=ZoneInfo(source_tz))
    return int(local.astimezone(timezone.utc).timestamp() * 1000)


def start_of_day_ms(source_tz: str, now_ms: int) -> int:
    """Local midnight in `source_tz` for the day containing `now_ms`."""
    tz = ZoneInfo(source_tz)
    local = datetime.fromtimestamp(now_ms / 1000, tz)
    midnight = datetime(local.year, local.month, local.day, tzinfo=tz)
    return int(midnight.timestamp() * 1000)


def parse_temperature_message(raw: str, source_tz: str) -> ParsedMessage:
    parts = [p.strip() for p in raw.split("|")]
    if len(parts) != 3:
        return ParseFailure("expected 3 '|'-separated fields", raw)

    device = _split_device(parts[0])
    if device is None:
        return ParseFailure("missing chip@mac", raw)

    temp_match = _TEMP_RE.match(parts[1])
    if not temp_match:
        return ParseFailure("unreadable temperature", raw)
    temperature = float(temp_match.group("value").replace(",", "."))
    if math.isnan(temperature) or math.isinf(temperature):
        return ParseFailure("temperature is not finite", raw)

    time_match = _TIME_RE.match(parts[2])
    if not time_match:
        return ParseFailure("missing time field", raw)
    try:
        ts_ms = parse_device_time(time_match.group("value"), source_tz)
    except ValueError:
        return ParseFailure("invalid device time", raw)

    return TemperatureMessage(
        chip_id=device[0],
        mac_address=device[1],
        temperature=temperature,
        source_ts_ms=ts_ms,
    )


def parse_status_message(raw: str) -> ParsedMessage:
    parts = [p.strip() for p in raw.split("|")]
    if len(parts) < 2:
        return ParseFailure("expected chip@mac followed by status fields", raw)

    device = _split_device(parts[0])
    if device is None:
        return ParseFailure("missing chip@mac", raw)

    status_parts = parts[1:]
    device_time = None
    time_match = _TIME_RE.match(status_parts[-1])
    if time_match:
        device_time = time_match.group("value")
        status_parts = status_parts[:-1]

    status = " | ".join(p for p in status_parts if p)
    if not status:
        return ParseFailure("empty status", raw)

    return StatusMessage(
        chip_id=device[0],
        mac_address=device[1],
        status=status,
        device_time=device_time,
    )
