"""Internal confirmation endpoint, called by jobs with the internal key."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import require_internal_key
from ..container import Container
from ..domain.models import Chain
from ..schemas import ConfirmRequest, ConfirmResponse
from .deps import chain_param, get_container

router = APIRouter(prefix="/internal", tags=["internal"], dependencies=[Depends(require_internal_key)])


@router.post("/{chain}/confirm", response_model=ConfirmResponse)
def confirm_transaction(
    body: ConfirmRequest,
    chain: Chain = Depends(chain_param),
    container: Container = Depends(get_container),
):
    result = container.confirmation.confirm_transaction(chain, body.tx_id)
    return ConfirmResponse(
        tx_id=result.tx_id,
        confirmed=result.confirmed,
        block_height=result.block_height,
        confirmed_at_ms=result.confirmed_at_ms,
        updated=result.updated,
    )
