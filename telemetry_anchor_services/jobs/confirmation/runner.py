"""Confirmation cycle: fan pending account-chain uploads out to a worker pool."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ...anchor_api.domain.errors import AnchorError, NotYetIncluded
from ...anchor_api.domain.models import Chain
from ...anchor_api.metrics import CONFIRMATION_CHECKS, PENDING_UPLOADS
from ...anchor_api.persistence import UploadRecordStore
from ...anchor_api.services import ConfirmationService
from .config import PollerConfig

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
ALREADY_CONFIRMED = "already_confirmed"
PENDING = "pending"
ERROR = "error"


@dataclass
class CycleResult:
    checked: int = 0
    results: Counter = field(default_factory=Counter)
    elapsed_ms: float = 0.0

    @property
    def confirmed(self) -> int:
        return self.results[CONFIRMED]


def check_one(confirmation: ConfirmationService, chain: Chain, tx_id: str) -> str:
    """Never raises: lookup failures leave the record pending for the next cycle."""
    try:
        result = confirmation.confirm_transaction(chain, tx_id)
    except NotYetIncluded:
        outcome = PENDING
    except (AnchorError, SQLAlchemyError) as exc:
        logger.warning("[POLLER] Check failed chain=%s tx_id=%s: %s", chain.value, tx_id, exc)
        outcome = ERROR
    else:
        outcome = CONFIRMED if result.updated else ALREADY_CONFIRMED

    CONFIRMATION_CHECKS.labels(chain=chain.value, result=outcome).inc()
    return outcome


def _drain(work: "queue.SimpleQueue[str]", confirmation: ConfirmationService, chain: Chain) -> Counter:
    seen: Counter = Counter()
    while True:
        try:
            tx_id = work.get_nowait()
        except queue.Empty:
            return seen
        seen[check_one(confirmation, chain, tx_id)] += 1


def run_once(
    cfg: PollerConfig,
    uploads: UploadRecordStore,
    confirmation: ConfirmationService,
    chain: Chain = Chain.SIGNUM,
) -> CycleResult:
    t0 = time.monotonic()
    pending = uploads.list_pending(chain, limit=cfg.batch_size)
    PENDING_UPLOADS.labels(chain=chain.value).set(len(pending))

    cycle = CycleResult(checked=len(pending))
    if not pending:
        logger.debug("[POLLER] Nothing pending chain=%s", chain.value)
        return cycle

    work: "queue.SimpleQueue[str]" = queue.SimpleQueue()
    for record in pending:
        work.put(record.tx_id)

    num_workers = max(1, min(cfg.workers, len(pending)))
    with ThreadPoolExecutor(max_workers=num_workers, thread_name_prefix="confirm") as pool:
        futures = [pool.submit(_drain, work, confirmation, chain) for _ in range(num_workers)]
        for fut in as_completed(futures):
            try:
                cycle.results.update(fut.result())
            except Exception as exc:
                logger.error("[POLLER] Worker crashed chain=%s: %s", chain.value, exc)

    cycle.elapsed_ms = (time.monotonic() - t0) * 1000
    logger.info(
        "[POLLER] cycle chain=%s ms=%.1f checked=%d confirmed=%d pending=%d errors=%d workers=%d",
        chain.value,
        cycle.elapsed_ms,
        cycle.checked,
        cycle.results[CONFIRMED],
        cycle.results[PENDING],
        cycle.results[ERROR],
        num_workers,
    )
    return cycle


class ConfirmationPoller:
    """Runs run_once() on a fixed interval in a daemon thread."""

    def __init__(self, cfg: PollerConfig, uploads: UploadRecordStore, confirmation: ConfirmationService):
        self.cfg = cfg
        self.uploads = uploads
        self.confirmation = confirmation
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="confirmation-poller", daemon=True)
        self._thread.start()
        logger.info(
            "[POLLER] Started interval=%.1fs batch=%d workers=%d",
            self.cfg.interval_seconds,
            self.cfg.batch_size,
            self.cfg.workers,
        )

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("[POLLER] Stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                run_once(self.cfg, self.uploads, self.confirmation)
            except SQLAlchemyError as exc:
                logger.error("[POLLER] Cycle failed: %s", exc)
            self._stop.wait(self.cfg.interval_seconds)
