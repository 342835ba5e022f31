"""Reading storage and the per-user, per-chain "already uploaded" view."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine

from ...common.db import utc_now_ms
from ..domain.models import Chain, Reading

logger = logging.getLogger(__name__)

TEMPERATURE_TOPIC = "temperature"
ERRORS_TOPIC = "errors"

_READING_COLUMNS = (
    "id, topic, chip_id, mac_address, temperature, source_ts_ms, received_at_ms, message"
)

# Readings without a device timestamp sort by receipt time.
_ORDER_ASC = "ORDER BY COALESCE(source_ts_ms, received_at_ms) ASC, id ASC"


def _row_to_reading(row, uploaded_by: Iterable[str] = ()) -> Reading:
    return Reading(
        id=int(row[0]),
        topic=row[1],
        chip_id=row[2],
        mac_address=row[3],
        temperature=float(row[4]) if row[4] is not None else None,
        source_ts_ms=int(row[5]) if row[5] is not None else None,
        received_at_ms=int(row[6]),
        message=row[7],
        uploaded_by=frozenset(uploaded_by),
    )


class ReadingRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def insert(
        self,
        *,
        topic: str,
        chip_id: Optional[str] = None,
        mac_address: Optional[str] = None,
        temperature: Optional[float] = None,
        source_ts_ms: Optional[int] = None,
        message: Optional[str] = None,
        received_at_ms: Optional[int] = None,
    ) -> int:
        with self.engine.begin() as conn:
            row = conn.execute(
                text(
                    """
                    INSERT INTO readings
                        (topic, chip_id, mac_address, temperature, source_ts_ms, received_at_ms, message)
                    VALUES
                        (:topic, :chip_id, :mac_address, :temperature, :source_ts_ms, :received_at_ms, :message)
                    RETURNING id
                    """
                ),
                {
                    "topic": topic,
                    "chip_id": chip_id,
                    "mac_address": mac_address,
                    "temperature": temperature,
                    "source_ts_ms": source_ts_ms,
                    "received_at_ms": received_at_ms if received_at_ms is not None else utc_now_ms(),
                    "message": message,
                },
            ).fetchone()
        return int(row[0])

    def select_unsent(
        self,
        user_id: str,
        chain: Chain,
        reading_ids: Optional[Sequence[int]] = None,
        limit: Optional[int] = None,
    ) -> list[Reading]:
        """Temperature readings the user has not yet uploaded to `chain`, oldest first.

        With `reading_ids` the selection is restricted to those ids; without it
        every unsent reading qualifies (batch mode), capped at `limit`.
        """
        params: dict = {"topic": TEMPERATURE_TOPIC, "user_id": str(user_id), "chain": chain.value}
        where_ids = ""
        if reading_ids is not None:
            if not reading_ids:
                return []
            where_ids = "AND r.id IN :ids"
            params["ids"] = sorted(set(int(i) for i in reading_ids))

        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT :limit"
            params["limit"] = int(limit)

        stmt = text(
            f"""
            SELECT {_READING_COLUMNS}
            FROM readings r
            WHERE r.topic = :topic
              {where_ids}
              AND NOT EXISTS (
                  SELECT 1 FROM reading_uploads u
                  WHERE u.reading_id = r.id AND u.user_id = :user_id AND u.chain = :chain
              )
            {_ORDER_ASC}
            {limit_sql}
            """
        )
        if reading_ids is not None:
            stmt = stmt.bindparams(bindparam("ids", expanding=True))

        with self.engine.connect() as conn:
            rows = conn.execute(stmt, params).fetchall()
        return [_row_to_reading(r) for r in rows]

    def list_temperature(self, limit: int = 100, offset: int = 0) -> list[Reading]:
        """Newest temperature readings first, each with its uploaded-by set."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"""
                    SELECT {_READING_COLUMNS}
                    FROM readings
                    WHERE topic = :topic
                    ORDER BY COALESCE(source_ts_ms, received_at_ms) DESC, id DESC
                    LIMIT :limit OFFSET :offset
                    """
                ),
                {"topic": TEMPERATURE_TOPIC, "limit": int(limit), "offset": int(offset)},
            ).fetchall()
            uploaded = self._uploaded_by(conn, [int(r[0]) for r in rows])
        return [_row_to_reading(r, uploaded.get(int(r[0]), ())) for r in rows]

    def last_message(self, topic: str) -> Optional[Reading]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(
                    f"""
                    SELECT {_READING_COLUMNS}
                    FROM readings
                    WHERE topic = :topic
                    ORDER BY received_at_ms DESC, id DESC
                    LIMIT 1
                    """
                ),
                {"topic": topic},
            ).fetchone()
        return _row_to_reading(row) if row else None

    def list_since(self, topic: str, since_ms: int) -> list[Reading]:
        """Raw messages on `topic` received at or after `since_ms`, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"""
                    SELECT {_READING_COLUMNS}
                    FROM readings
                    WHERE topic = :topic AND received_at_ms >= :since_ms
                    ORDER BY received_at_ms DESC, id DESC
                    """
                ),
                {"topic": topic, "since_ms": int(since_ms)},
            ).fetchall()
        return [_row_to_reading(r) for r in rows]

    def uploaded_by(self, reading_ids: Sequence[int]) -> dict[int, frozenset]:
        with self.engine.connect() as conn:
            found = self._uploaded_by(conn, reading_ids)
        return {rid: frozenset(users) for rid, users in found.items()}

    @staticmethod
    def _uploaded_by(conn, reading_ids: Sequence[int]) -> dict[int, set]:
        if not reading_ids:
            return {}
        stmt = text(
            "SELECT DISTINCT reading_id, user_id FROM reading_uploads WHERE reading_id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        result: dict[int, set] = defaultdict(set)
        for reading_id, user_id in conn.execute(stmt, {"ids": list(reading_ids)}).fetchall():
            result[int(reading_id)].add(str(user_id))
        return result
