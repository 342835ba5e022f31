"""Successful batch submissions and their confirmation state."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from ...common.db import utc_now_ms
from ..domain.errors import NoMatchingRecord
from ..domain.models import Chain, UploadedMessage, UploadStatus, can_transition

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (UploadStatus.PENDING.value, UploadStatus.SENT.value)


@dataclass(frozen=True)
class ConfirmationWrite:
    record: UploadedMessage
    updated: bool


def _row_to_message(row) -> UploadedMessage:
    return UploadedMessage(
        id=int(row["id"]),
        batch_id=row["batch_id"],
        user_id=row["user_id"],
        chain=Chain(row["chain"]),
        tx_id=row["tx_id"],
        tag=row["tag"],
        node_url=row["node_url"],
        payload_hash=row["payload_hash"],
        correlation_id=row["correlation_id"],
        reading_ids=json.loads(row["reading_ids"]),
        payload_size=int(row["payload_size"]),
        sent_at_ms=int(row["sent_at_ms"]),
        elapsed_ms=int(row["elapsed_ms"]),
        fee=int(row["fee"]) if row["fee"] is not None else None,
        status=UploadStatus(row["status"]),
        confirmed=bool(row["confirmed"]),
        confirmed_at_ms=int(row["confirmed_at_ms"]) if row["confirmed_at_ms"] is not None else None,
        block_index=int(row["block_index"]) if row["block_index"] is not None else None,
        explorer_url=row["explorer_url"],
        network=row["network"],
    )


class UploadRecordStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_success(self, record: UploadedMessage) -> UploadedMessage:
        """Insert the batch record and mark its readings as uploaded, atomically."""
        reading_ids = sorted(set(int(i) for i in record.reading_ids))
        now_ms = utc_now_ms()

        with self.engine.begin() as conn:
            row = conn.execute(
                text(
                    """
                    INSERT INTO uploaded_messages
                        (batch_id, user_id, chain, tx_id, tag, node_url, payload_hash, correlation_id,
                         reading_ids, reading_count, payload_size, sent_at_ms, elapsed_ms, fee,
                         status, confirmed, confirmed_at_ms, block_index, explorer_url, network)
                    VALUES
                        (:batch_id, :user_id, :chain, :tx_id, :tag, :node_url, :payload_hash, :correlation_id,
                         :reading_ids, :reading_count, :payload_size, :sent_at_ms, :elapsed_ms, :fee,
                         :status, :confirmed, :confirmed_at_ms, :block_index, :explorer_url, :network)
                    RETURNING id
                    """
                ),
                {
                    "batch_id": record.batch_id,
                    "user_id": str(record.user_id),
                    "chain": record.chain.value,
                    "tx_id": record.tx_id,
                    "tag": record.tag,
                    "node_url": record.node_url,
                    "payload_hash": record.payload_hash,
                    "correlation_id": record.correlation_id,
                    "reading_ids": json.dumps(reading_ids),
                    "reading_count": len(reading_ids),
                    "payload_size": record.payload_size,
                    "sent_at_ms": record.sent_at_ms,
                    "elapsed_ms": record.elapsed_ms,
                    "fee": record.fee,
                    "status": record.status.value,
                    "confirmed": bool(record.confirmed),
                    "confirmed_at_ms": record.confirmed_at_ms,
                    "block_index": record.block_index,
                    "explorer_url": record.explorer_url,
                    "network": record.network,
                },
            ).fetchone()

            conn.execute(
                text(
                    """
                    INSERT INTO reading_uploads (reading_id, user_id, chain, batch_id, uploaded_at_ms)
                    VALUES (:reading_id, :user_id, :chain, :batch_id, :uploaded_at_ms)
                    ON CONFLICT (reading_id, user_id, chain) DO NOTHING
                    """
                ),
                [
                    {
                        "reading_id": rid,
                        "user_id": str(record.user_id),
                        "chain": record.chain.value,
                        "batch_id": record.batch_id,
                        "uploaded_at_ms": now_ms,
                    }
                    for rid in reading_ids
                ],
            )

        logger.info(
            "[UPLOAD] Stored batch=%s chain=%s tx_id=%s readings=%d status=%s",
            record.batch_id,
            record.chain.value,
            record.tx_id,
            len(reading_ids),
            record.status.value,
        )
        return replace(record, id=int(row[0]), reading_ids=reading_ids)

    def find_by_tx(self, chain: Chain, tx_id: str) -> Optional[UploadedMessage]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(
                    """
                    SELECT * FROM uploaded_messages
                    WHERE chain = :chain AND tx_id = :tx_id
                    ORDER BY id ASC
                    LIMIT 1
                    """
                ),
                {"chain": chain.value, "tx_id": tx_id},
            ).mappings().fetchone()
        return _row_to_message(row) if row else None

    def mark_confirmed(
        self,
        chain: Chain,
        tx_id: str,
        block_height: int,
        confirmed_at_ms: int,
    ) -> ConfirmationWrite:
        """One-way PENDING/SENT -> CONFIRMED. Confirmed rows are returned untouched."""
        current = self.find_by_tx(chain, tx_id)
        if current is None:
            raise NoMatchingRecord(tx_id)

        if current.confirmed or not can_transition(chain, current.status, UploadStatus.CONFIRMED):
            return ConfirmationWrite(record=current, updated=False)

        with self.engine.begin() as conn:
            result = conn.execute(
                text(
                    """
                    UPDATE uploaded_messages
                    SET confirmed = :confirmed,
                        status = :status,
                        block_index = :block_index,
                        confirmed_at_ms = :confirmed_at_ms
                    WHERE chain = :chain AND tx_id = :tx_id AND confirmed = :unconfirmed
                    """
                ),
                {
                    "confirmed": True,
                    "unconfirmed": False,
                    "status": UploadStatus.CONFIRMED.value,
                    "block_index": int(block_height),
                    "confirmed_at_ms": int(confirmed_at_ms),
                    "chain": chain.value,
                    "tx_id": tx_id,
                },
            )
            updated = result.rowcount > 0

        if updated:
            logger.info(
                "[UPLOAD] Confirmed chain=%s tx_id=%s height=%d", chain.value, tx_id, block_height
            )
        return ConfirmationWrite(record=self.find_by_tx(chain, tx_id), updated=updated)

    def list_pending(self, chain: Chain, limit: int = 50) -> list[UploadedMessage]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(
                    """
                    SELECT * FROM uploaded_messages
                    WHERE chain = :chain AND confirmed = :unconfirmed AND status IN (:pending, :sent)
                    ORDER BY sent_at_ms ASC, id ASC
                    LIMIT :limit
                    """
                ),
                {
                    "chain": chain.value,
                    "unconfirmed": False,
                    "pending": _OPEN_STATUSES[0],
                    "sent": _OPEN_STATUSES[1],
                    "limit": int(limit),
                },
            ).mappings().fetchall()
        return [_row_to_message(r) for r in rows]

    def list_for_chain(self, chain: Chain) -> list[UploadedMessage]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text("SELECT * FROM uploaded_messages WHERE chain = :chain ORDER BY sent_at_ms ASC, id ASC"),
                {"chain": chain.value},
            ).mappings().fetchall()
        return [_row_to_message(r) for r in rows]

    def list_explorer_links(
        self,
        chain: Chain,
        confirmed: Optional[bool] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[UploadedMessage], int]:
        where = "WHERE chain = :chain"
        params: dict = {"chain": chain.value}
        if confirmed is not None:
            where += " AND confirmed = :confirmed"
            params["confirmed"] = bool(confirmed)

        page = max(1, int(page))
        limit = max(1, int(limit))
        with self.engine.connect() as conn:
            total = conn.execute(
                text(f"SELECT COUNT(*) FROM uploaded_messages {where}"), params
            ).scalar()
            rows = conn.execute(
                text(
                    f"""
                    SELECT * FROM uploaded_messages {where}
                    ORDER BY sent_at_ms DESC, id DESC
                    LIMIT :limit OFFSET :offset
                    """
                ),
                {**params, "limit": limit, "offset": (page - 1) * limit},
            ).mappings().fetchall()
        return [_row_to_message(r) for r in rows], int(total or 0)
