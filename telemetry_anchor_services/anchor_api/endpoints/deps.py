from __future__ import annotations

from fastapi import HTTPException, Request

from ..container import Container
from ..domain.models import Chain


def get_container(request: Request) -> Container:
    return request.app.state.container


def chain_param(chain: str) -> Chain:
    try:
        return Chain.parse(chain)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
