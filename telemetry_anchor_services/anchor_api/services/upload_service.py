"""Upload orchestration: select, build, size-check, submit, record.

Every submission ends in exactly one of two durable records: an
UploadedMessage (plus the readings' uploaded-by marks) on success, or an
UploadAttempt row on failure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ...common.config import Settings
from ...common.db import utc_now_ms
from ..domain.errors import (
    ChainMisconfigured,
    InternalError,
    InvalidSelection,
    NoMatchingReadings,
    NodeSubmissionError,
    PayloadTooLarge,
)
from ..domain.models import AttemptContext, Chain, UploadedMessage, UploadStatus, initial_status
from ..ledger import LedgerClients, SigningKeys, SubmitReceipt
from ..metrics import SUBMIT_LATENCY, UPLOAD_ATTEMPTS_RECORDED, UPLOADS_TOTAL
from ..persistence import AttemptRecorder, ReadingRepository, UploadRecordStore, UserPreferencesRepository
from ..persistence.attempts import make_correlation_id
from ..upload import BuiltPayload, build_payload, build_tag, check_size, compute_fee

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    batch_id: str
    chain: Chain
    transaction_id: str
    explorer_url: str
    payload_size_bytes: int
    elapsed_ms: int
    status: UploadStatus
    reading_count: int
    tag: str
    fee: Optional[int] = None


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def validate_selection(reading_ids: Optional[Sequence[int]]) -> Optional[list[int]]:
    """Collapse duplicates; None selects every unsent reading."""
    if reading_ids is None:
        return None
    if len(reading_ids) == 0:
        raise InvalidSelection("No readings selected")
    cleaned = []
    for rid in reading_ids:
        if isinstance(rid, bool) or not isinstance(rid, int) or rid <= 0:
            raise InvalidSelection(f"Invalid reading id: {rid!r}")
        cleaned.append(rid)
    return sorted(set(cleaned))


class UploadOrchestrator:
    def __init__(
        self,
        settings: Settings,
        readings: ReadingRepository,
        users: UserPreferencesRepository,
        attempts: AttemptRecorder,
        uploads: UploadRecordStore,
        ledgers: LedgerClients,
        clock: Callable[[], int] = utc_now_ms,
        today: Callable[[], date] = _utc_today,
    ):
        self.settings = settings
        self.readings = readings
        self.users = users
        self.attempts = attempts
        self.uploads = uploads
        self.ledgers = ledgers
        self.clock = clock
        self.today = today

    def upload_to_chain(
        self,
        user_id: str,
        chain: Chain,
        reading_ids: Optional[Sequence[int]] = None,
    ) -> UploadOutcome:
        user_id = str(user_id)
        selection = validate_selection(reading_ids)
        limit = self.settings.max_batch_readings if selection is None else None

        try:
            selected = self.readings.select_unsent(user_id, chain, selection, limit=limit)
            prefs = self.users.get(user_id) if selected else None
        except SQLAlchemyError as exc:
            logger.exception("[UPLOAD] Failed to load readings user=%s chain=%s", user_id, chain.value)
            UPLOADS_TOTAL.labels(chain=chain.value, outcome="internal_error").inc()
            raise InternalError("Could not load readings for upload") from exc

        if not selected:
            UPLOADS_TOTAL.labels(chain=chain.value, outcome="rejected").inc()
            raise NoMatchingReadings()

        client = self.ledgers.for_chain(chain)
        node = (prefs.node_address_for(chain) or client.default_node).rstrip("/")

        payload = build_payload(selected)
        ids = [r.id for r in selected]
        tag = build_tag(prefs.tag_prefix_for(chain), user_id, self.settings.app_namespace, self.today())
        fee = compute_fee(chain, payload.size_bytes, self.settings.signum_fee_unit_planck)

        context = AttemptContext(
            user_id=user_id,
            chain=chain,
            payload_hash=payload.payload_hash,
            reading_ids=ids,
            payload_size=payload.size_bytes,
            tag=tag,
            node_url=node if chain is Chain.IOTA else None,
            node_host=node if chain is Chain.SIGNUM else None,
            network=client.network,
            fee_planck=fee,
        )

        logger.info(
            "[UPLOAD] Start user=%s chain=%s readings=%d bytes=%d fee=%s",
            user_id,
            chain.value,
            len(ids),
            payload.size_bytes,
            fee,
        )

        try:
            check_size(chain, payload.size_bytes)
        except PayloadTooLarge as exc:
            context.elapsed_ms = 0
            context.http_status = exc.http_status
            self._record_failure(context, exc)
            UPLOADS_TOTAL.labels(chain=chain.value, outcome="rejected").inc()
            logger.warning(
                "[UPLOAD] Payload too large user=%s chain=%s size=%d limit=%d",
                user_id,
                chain.value,
                exc.size_bytes,
                exc.limit_bytes,
            )
            raise

        signing_keys = self._signing_keys(chain)

        sent_at_ms = self.clock()
        started = time.perf_counter()
        try:
            receipt = self._submit(chain, node, tag, payload, fee, signing_keys)
        except NodeSubmissionError as exc:
            context.elapsed_ms = int((time.perf_counter() - started) * 1000)
            context.http_status = exc.node_status
            self._record_failure(context, exc)
            UPLOADS_TOTAL.labels(chain=chain.value, outcome="node_error").inc()
            logger.error(
                "[UPLOAD] Submission failed user=%s chain=%s elapsed_ms=%d: %s",
                user_id,
                chain.value,
                context.elapsed_ms,
                exc.message,
            )
            raise
        finally:
            SUBMIT_LATENCY.labels(chain=chain.value).observe(time.perf_counter() - started)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        finished_at_ms = self.clock()
        status = initial_status(chain)
        correlation_id = make_correlation_id(chain, user_id, payload.payload_hash, ids)

        record = UploadedMessage(
            # same-millisecond uploads by one user differ in their readings
            batch_id=f"{chain.value}-{user_id}-{sent_at_ms}-{correlation_id[:8]}",
            user_id=user_id,
            chain=chain,
            tx_id=receipt.transaction_id,
            payload_hash=payload.payload_hash,
            correlation_id=correlation_id,
            reading_ids=ids,
            payload_size=payload.size_bytes,
            sent_at_ms=sent_at_ms,
            elapsed_ms=elapsed_ms,
            status=status,
            confirmed=status is UploadStatus.CONFIRMED,
            confirmed_at_ms=finished_at_ms if status is UploadStatus.CONFIRMED else None,
            tag=tag,
            node_url=receipt.node,
            fee=fee,
            explorer_url=client.explorer_url(receipt.transaction_id),
            network=client.network,
        )

        try:
            stored = self.uploads.create_success(record)
        except SQLAlchemyError as exc:
            logger.exception(
                "[UPLOAD] Submitted but failed to store user=%s chain=%s tx_id=%s",
                user_id,
                chain.value,
                receipt.transaction_id,
            )
            context.tx_id = receipt.transaction_id
            context.elapsed_ms = elapsed_ms
            context.http_status = InternalError.http_status
            self._record_failure(context, exc)
            UPLOADS_TOTAL.labels(chain=chain.value, outcome="internal_error").inc()
            raise InternalError(
                f"Transaction {receipt.transaction_id} was submitted but could not be stored"
            ) from exc

        UPLOADS_TOTAL.labels(chain=chain.value, outcome="success").inc()
        logger.info(
            "[UPLOAD] Done user=%s chain=%s batch=%s tx_id=%s elapsed_ms=%d",
            user_id,
            chain.value,
            stored.batch_id,
            stored.tx_id,
            elapsed_ms,
        )
        return UploadOutcome(
            batch_id=stored.batch_id,
            chain=chain,
            transaction_id=stored.tx_id,
            explorer_url=stored.explorer_url,
            payload_size_bytes=stored.payload_size,
            elapsed_ms=elapsed_ms,
            status=stored.status,
            reading_count=stored.reading_count,
            tag=tag,
            fee=fee,
        )

    def _signing_keys(self, chain: Chain) -> Optional[SigningKeys]:
        if chain is not Chain.SIGNUM:
            return None
        if not self.settings.signum_passphrase or not self.settings.signum_recipient_id:
            raise ChainMisconfigured("Signum passphrase or recipient id is not configured")
        return SigningKeys(passphrase=self.settings.signum_passphrase)

    def _submit(
        self,
        chain: Chain,
        node: str,
        tag: str,
        payload: BuiltPayload,
        fee: Optional[int],
        signing_keys: Optional[SigningKeys],
    ) -> SubmitReceipt:
        if chain is Chain.IOTA:
            return self.ledgers.tangle.submit_tagged(node, tag, payload.data)
        return self.ledgers.signum.submit_message(
            recipient_id=self.settings.signum_recipient_id,
            fee_planck=fee,
            payload_text=payload.text,
            signing_keys=signing_keys,
            node_host=node,
        )

    def _record_failure(self, context: AttemptContext, error: BaseException) -> None:
        attempt = self.attempts.record(context, error)
        if attempt is not None:
            UPLOAD_ATTEMPTS_RECORDED.labels(chain=context.chain.value, error_type=attempt.error_type).inc()
