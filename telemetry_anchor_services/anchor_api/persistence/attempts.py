"""Immutable log of failed submissions.

Retries of the same selection share a correlation id and get increasing
attempt numbers. Recording is best effort: a failure to write the attempt is
logged and never replaces the error the caller is about to receive.
"""

from __future__ import annotations

import hashlib
import json
import logging
import traceback
from typing import Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...common.db import utc_now_ms
from ..domain.errors import AnchorError, NodeSubmissionError
from ..domain.models import AttemptContext, Chain, UploadAttempt

logger = logging.getLogger(__name__)

FAILED = "FAILED"
MAX_INSERT_TRIES = 3


def make_correlation_id(chain: Chain, user_id: str, payload_hash: str, reading_ids: Sequence[int]) -> str:
    ids = ",".join(str(i) for i in sorted(int(r) for r in reading_ids))
    raw = f"{chain.value}|{user_id}|{payload_hash}|{ids}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _error_fields(error: BaseException) -> dict:
    code: Optional[str] = None
    if isinstance(error, NodeSubmissionError):
        code = error.node_code
    if code is None and isinstance(error, AnchorError):
        code = error.code
    message = error.message if isinstance(error, AnchorError) else str(error)
    return {
        "error_type": type(error).__name__,
        "error_code": code,
        "error_message": message,
        "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }


def _http_status(context: AttemptContext, error: BaseException) -> Optional[int]:
    if context.http_status is not None:
        return context.http_status
    if isinstance(error, NodeSubmissionError) and error.node_status is not None:
        return error.node_status
    if isinstance(error, AnchorError):
        return error.http_status
    return 500


class AttemptRecorder:
    def __init__(self, engine: Engine):
        self.engine = engine

    def record(self, context: AttemptContext, error: BaseException) -> Optional[UploadAttempt]:
        correlation_id = make_correlation_id(
            context.chain, context.user_id, context.payload_hash, context.reading_ids
        )
        reading_ids = sorted(int(i) for i in context.reading_ids)
        row = {
            "user_id": str(context.user_id),
            "chain": context.chain.value,
            "correlation_id": correlation_id,
            "status": FAILED,
            "tag": context.tag,
            "node_url": context.node_url,
            "node_host": context.node_host,
            "network": context.network,
            "fee_planck": context.fee_planck,
            "tx_id": context.tx_id,
            "payload_hash": context.payload_hash,
            "payload_size": int(context.payload_size),
            "reading_count": len(reading_ids),
            "reading_ids": json.dumps(reading_ids),
            "occurred_at_ms": utc_now_ms(),
            "elapsed_ms": context.elapsed_ms,
            "http_status": _http_status(context, error),
            **_error_fields(error),
        }

        for attempt in range(1, MAX_INSERT_TRIES + 1):
            try:
                with self.engine.begin() as conn:
                    row["attempt_no"] = self._next_attempt_no(conn, row)
                    inserted = conn.execute(
                        text(
                            """
                            INSERT INTO upload_attempts
                                (user_id, chain, correlation_id, attempt_no, status, tag, node_url,
                                 node_host, network, fee_planck, tx_id, payload_hash, payload_size,
                                 reading_count, reading_ids, occurred_at_ms, elapsed_ms, http_status,
                                 error_type, error_code, error_message, stack)
                            VALUES
                                (:user_id, :chain, :correlation_id, :attempt_no, :status, :tag, :node_url,
                                 :node_host, :network, :fee_planck, :tx_id, :payload_hash, :payload_size,
                                 :reading_count, :reading_ids, :occurred_at_ms, :elapsed_ms, :http_status,
                                 :error_type, :error_code, :error_message, :stack)
                            RETURNING id
                            """
                        ),
                        row,
                    ).fetchone()
            except IntegrityError:
                logger.warning(
                    "[ATTEMPT] attempt_no collision correlation=%s try=%d/%d",
                    correlation_id[:12],
                    attempt,
                    MAX_INSERT_TRIES,
                )
                continue
            except SQLAlchemyError:
                logger.exception("[ATTEMPT] Failed to record attempt correlation=%s", correlation_id[:12])
                return None

            logger.info(
                "[ATTEMPT] Recorded user=%s chain=%s attempt_no=%d error_type=%s status=%s",
                row["user_id"],
                row["chain"],
                row["attempt_no"],
                row["error_type"],
                row["http_status"],
            )
            return _row_to_attempt({**row, "id": int(inserted[0])})

        logger.error(
            "[ATTEMPT] Giving up recording attempt correlation=%s after %d collisions",
            correlation_id[:12],
            MAX_INSERT_TRIES,
        )
        return None

    @staticmethod
    def _next_attempt_no(conn, row: dict) -> int:
        count = conn.execute(
            text(
                """
                SELECT COUNT(*) FROM upload_attempts
                WHERE user_id = :user_id AND chain = :chain AND correlation_id = :correlation_id
                """
            ),
            {"user_id": row["user_id"], "chain": row["chain"], "correlation_id": row["correlation_id"]},
        ).scalar()
        return int(count or 0) + 1

    def list_for_user(
        self,
        user_id: str,
        chain: Optional[Chain] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[UploadAttempt]:
        chain_sql = "AND chain = :chain" if chain is not None else ""
        params = {"user_id": str(user_id), "limit": int(limit), "offset": int(offset)}
        if chain is not None:
            params["chain"] = chain.value
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(
                    f"""
                    SELECT * FROM upload_attempts
                    WHERE user_id = :user_id {chain_sql}
                    ORDER BY occurred_at_ms DESC, id DESC
                    LIMIT :limit OFFSET :offset
                    """
                ),
                params,
            ).mappings().fetchall()
        return [_row_to_attempt(dict(r)) for r in rows]

    def count_for_chain(self, chain: Chain) -> int:
        with self.engine.connect() as conn:
            return int(
                conn.execute(
                    text("SELECT COUNT(*) FROM upload_attempts WHERE chain = :chain"),
                    {"chain": chain.value},
                ).scalar()
                or 0
            )


def _row_to_attempt(row: dict) -> UploadAttempt:
    return UploadAttempt(
        id=int(row["id"]),
        user_id=row["user_id"],
        chain=Chain(row["chain"]),
        correlation_id=row["correlation_id"],
        attempt_no=int(row["attempt_no"]),
        status=row["status"],
        payload_hash=row["payload_hash"],
        payload_size=int(row["payload_size"]),
        reading_ids=json.loads(row["reading_ids"]),
        occurred_at_ms=int(row["occurred_at_ms"]),
        tag=row.get("tag"),
        node_url=row.get("node_url"),
        node_host=row.get("node_host"),
        network=row.get("network"),
        fee_planck=row.get("fee_planck"),
        tx_id=row.get("tx_id"),
        elapsed_ms=row.get("elapsed_ms"),
        http_status=row.get("http_status"),
        error_type=row.get("error_type"),
        error_code=row.get("error_code"),
        error_message=row.get("error_message"),
        stack=row.get("stack"),
    )
