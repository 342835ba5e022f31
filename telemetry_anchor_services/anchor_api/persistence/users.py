from __future__ import annotations

from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ...common.db import utc_now_ms
from ..domain.models import UserPreferences

_FIELDS = ("iota_tag_prefix", "signum_tag_prefix", "iota_node_address", "signum_node_address")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class UserPreferencesRepository:
    """Per-user chain preferences. Unknown users get an all-defaults record."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self, user_id: str) -> UserPreferences:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT iota_tag_prefix, signum_tag_prefix, iota_node_address, signum_node_address
                    FROM user_preferences
                    WHERE user_id = :user_id
                    """
                ),
                {"user_id": str(user_id)},
            ).fetchone()
        if not row:
            return UserPreferences(user_id=str(user_id))
        return UserPreferences(user_id=str(user_id), **dict(zip(_FIELDS, row)))

    def upsert(self, prefs: UserPreferences) -> UserPreferences:
        values = {name: _blank_to_none(getattr(prefs, name)) for name in _FIELDS}
        params = {"user_id": str(prefs.user_id), "updated_at_ms": utc_now_ms(), **values}
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO user_preferences
                        (user_id, iota_tag_prefix, signum_tag_prefix,
                         iota_node_address, signum_node_address, updated_at_ms)
                    VALUES
                        (:user_id, :iota_tag_prefix, :signum_tag_prefix,
                         :iota_node_address, :signum_node_address, :updated_at_ms)
                    ON CONFLICT (user_id) DO UPDATE SET
                        iota_tag_prefix = excluded.iota_tag_prefix,
                        signum_tag_prefix = excluded.signum_tag_prefix,
                        iota_node_address = excluded.iota_node_address,
                        signum_node_address = excluded.signum_node_address,
                        updated_at_ms = excluded.updated_at_ms
                    """
                ),
                params,
            )
        return UserPreferences(user_id=str(prefs.user_id), **values)
