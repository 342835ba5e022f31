from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..auth import require_api_key
from ..container import Container
from ..domain.models import Chain
from ..schemas import DailyStatsOut, ExplorerLinkOut, ExplorerLinksPage, UploadStatsOut
from .deps import chain_param, get_container

router = APIRouter(prefix="/stats", tags=["stats"], dependencies=[Depends(require_api_key)])


@router.get("/{chain}/uploads", response_model=UploadStatsOut)
def upload_stats(
    chain: Chain = Depends(chain_param),
    container: Container = Depends(get_container),
):
    s = container.stats.get_upload_stats(chain)
    return UploadStatsOut(
        chain=s.chain.value,
        uploads=s.uploads,
        total_data_kb=round(s.total_data_kb, 3),
        total_readings=s.total_readings,
        avg_readings_per_upload=s.avg_readings_per_upload,
        avg_time_to_confirm_ms=s.avg_time_to_confirm_ms,
        p50_time_to_confirm_ms=s.p50_time_to_confirm_ms,
        p95_time_to_confirm_ms=s.p95_time_to_confirm_ms,
        total_cost=s.total_cost,
        avg_cost_per_reading=s.avg_cost_per_reading,
        pending=s.pending,
        confirmed=s.confirmed,
        failed_attempts=s.failed_attempts,
        durations_ms=s.durations_ms,
    )


@router.get("/{chain}/daily", response_model=List[DailyStatsOut])
def daily_stats(
    chain: Chain = Depends(chain_param),
    container: Container = Depends(get_container),
):
    return [
        DailyStatsOut(
            day=d.day,
            uploads=d.uploads,
            readings=d.readings,
            bytes=d.bytes,
            cost=d.cost,
            avg_elapsed_ms=d.avg_elapsed_ms,
        )
        for d in container.stats.get_daily_stats(chain)
    ]


@router.get("/{chain}/explorer-links", response_model=ExplorerLinksPage)
def explorer_links(
    chain: Chain = Depends(chain_param),
    confirmed: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    container: Container = Depends(get_container),
):
    items, total = container.uploads.list_explorer_links(chain, confirmed=confirmed, page=page, limit=limit)
    return ExplorerLinksPage(
        items=[
            ExplorerLinkOut(
                batch_id=m.batch_id,
                tx_id=m.tx_id,
                explorer_url=m.explorer_url,
                confirmed=m.confirmed,
                status=m.status.value,
                reading_count=m.reading_count,
                sent_at_ms=m.sent_at_ms,
                confirmed_at_ms=m.confirmed_at_ms,
            )
            for m in items
        ],
        total=total,
        page=page,
        limit=limit,
    )
