from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from ...common.db import utc_now_ms
from ..auth import require_api_key
from ..container import Container
from ..mqtt.parsers import ParseFailure, parse_status_message, start_of_day_ms
from ..persistence.readings import ERRORS_TOPIC
from ..schemas import RawMessageOut, StatusMessageOut, TemperatureReadingOut
from ..upload.payload_builder import format_timestamp
from .deps import get_container

router = APIRouter(prefix="/readings", tags=["readings"], dependencies=[Depends(require_api_key)])

UNKNOWN = "Unknown"


@router.get("/temperature", response_model=List[TemperatureReadingOut])
def list_temperature(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    container: Container = Depends(get_container),
):
    return [
        TemperatureReadingOut(
            id=r.id,
            chip_id=r.chip_id,
            mac_address=r.mac_address,
            temperature=r.temperature,
            timestamp=format_timestamp(r.source_ts_ms),
            received_at=format_timestamp(r.received_at_ms),
            uploaded_by=sorted(r.uploaded_by),
        )
        for r in container.readings.list_temperature(limit=limit, offset=offset)
    ]


@router.get("/status/last", response_model=StatusMessageOut)
def last_status(container: Container = Depends(get_container)):
    last = container.readings.last_message("status")
    if last is None:
        raise HTTPException(status_code=404, detail="No status message found")

    since_ms = max(0, utc_now_ms() - last.received_at_ms)
    parsed = parse_status_message(last.message or "")
    if isinstance(parsed, ParseFailure):
        return StatusMessageOut(
            topic=last.topic,
            chip_id=UNKNOWN,
            mac_address=UNKNOWN,
            status=UNKNOWN,
            timestamp=UNKNOWN,
            received_at=format_timestamp(last.received_at_ms),
            time_since_received_ms=since_ms,
        )
    return StatusMessageOut(
        topic=last.topic,
        chip_id=parsed.chip_id,
        mac_address=parsed.mac_address,
        status=parsed.status,
        timestamp=parsed.device_time or UNKNOWN,
        received_at=format_timestamp(last.received_at_ms),
        time_since_received_ms=since_ms,
    )


@router.get("/errors/today", response_model=List[RawMessageOut])
def errors_today(container: Container = Depends(get_container)):
    since = start_of_day_ms(container.settings.source_tz, utc_now_ms())
    return [
        RawMessageOut(
            id=m.id,
            topic=m.topic,
            message=m.message,
            received_at=format_timestamp(m.received_at_ms),
        )
        for m in container.readings.list_since(ERRORS_TOPIC, since)
    ]
