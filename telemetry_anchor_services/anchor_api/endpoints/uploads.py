"""Upload endpoints: anchor a selection of readings on a chain."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..auth import current_user_id, require_api_key
from ..container import Container
from ..domain.models import Chain
from ..schemas import UploadAttemptOut, UploadRequest, UploadResponse
from .deps import chain_param, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"], dependencies=[Depends(require_api_key)])


@router.post("/{chain}", response_model=UploadResponse)
def upload_to_chain(
    body: Optional[UploadRequest] = None,
    chain: Chain = Depends(chain_param),
    user_id: str = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    reading_ids = body.reading_ids if body is not None else None
    outcome = container.uploader.upload_to_chain(user_id, chain, reading_ids)
    return UploadResponse(
        batch_id=outcome.batch_id,
        chain=outcome.chain.value,
        transaction_id=outcome.transaction_id,
        explorer_url=outcome.explorer_url,
        payload_size_bytes=outcome.payload_size_bytes,
        elapsed_ms=outcome.elapsed_ms,
        status=outcome.status.value,
        reading_count=outcome.reading_count,
        tag=outcome.tag,
        fee=outcome.fee,
    )


@router.get("/attempts", response_model=List[UploadAttemptOut])
def list_attempts(
    chain: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    """Failed submissions of the caller, newest first."""
    chain_filter = chain_param(chain) if chain else None
    attempts = container.attempts.list_for_user(user_id, chain_filter, limit=limit, offset=offset)
    return [
        UploadAttemptOut(
            id=a.id,
            chain=a.chain.value,
            correlation_id=a.correlation_id,
            attempt_no=a.attempt_no,
            status=a.status,
            tag=a.tag,
            node_url=a.node_url,
            node_host=a.node_host,
            network=a.network,
            fee_planck=a.fee_planck,
            tx_id=a.tx_id,
            payload_hash=a.payload_hash,
            payload_size=a.payload_size,
            reading_count=a.reading_count,
            reading_ids=a.reading_ids,
            occurred_at_ms=a.occurred_at_ms,
            elapsed_ms=a.elapsed_ms,
            http_status=a.http_status,
            error_type=a.error_type,
            error_code=a.error_code,
            error_message=a.error_message,
        )
        for a in attempts
    ]
