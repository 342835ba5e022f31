from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import current_user_id, require_api_key
from ..container import Container
from ..domain.models import Chain, UserPreferences
from ..schemas import UserSettingsIn, UserSettingsOut
from .deps import get_container

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_api_key)])


def _to_out(prefs: UserPreferences, container: Container) -> UserSettingsOut:
    return UserSettingsOut(
        user_id=prefs.user_id,
        iota_tag_prefix=prefs.iota_tag_prefix,
        signum_tag_prefix=prefs.signum_tag_prefix,
        iota_node_address=prefs.iota_node_address,
        signum_node_address=prefs.signum_node_address,
        effective_iota_node=prefs.node_address_for(Chain.IOTA) or container.ledgers.tangle.default_node,
        effective_signum_node=prefs.node_address_for(Chain.SIGNUM) or container.ledgers.signum.default_node,
    )


@router.get("/me/settings", response_model=UserSettingsOut)
def read_user_settings(
    user_id: str = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    return _to_out(container.users.get(user_id), container)


@router.put("/me/settings", response_model=UserSettingsOut)
def update_user_settings(
    body: UserSettingsIn,
    user_id: str = Depends(current_user_id),
    container: Container = Depends(get_container),
):
    saved = container.users.upsert(
        UserPreferences(
            user_id=user_id,
            iota_tag_prefix=body.iota_tag_prefix,
            signum_tag_prefix=body.signum_tag_prefix,
            iota_node_address=body.iota_node_address,
            signum_node_address=body.signum_node_address,
        )
    )
    return _to_out(saved, container)
