from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..domain.errors import NoMatchingRecord, NotYetIncluded
from ..domain.models import Chain
from ..ledger import LedgerClients
from ..persistence import UploadRecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationResult:
    tx_id: str
    confirmed: bool
    block_height: Optional[int]
    confirmed_at_ms: Optional[int]
    updated: bool


class ConfirmationService:
    """Checks one transaction against its chain and marks the record confirmed."""

    def __init__(self, uploads: UploadRecordStore, ledgers: LedgerClients):
        self.uploads = uploads
        self.ledgers = ledgers

    def confirm_transaction(self, chain: Chain, tx_id: str) -> ConfirmationResult:
        tx_id = str(tx_id).strip()
        current = self.uploads.find_by_tx(chain, tx_id)
        if current is None:
            raise NoMatchingRecord(tx_id)

        if current.confirmed:
            logger.debug("[CONFIRM] Already confirmed chain=%s tx_id=%s", chain.value, tx_id)
            return ConfirmationResult(
                tx_id=tx_id,
                confirmed=True,
                block_height=current.block_index,
                confirmed_at_ms=current.confirmed_at_ms,
                updated=False,
            )

        inclusion = self.ledgers.for_chain(chain).lookup_transaction(tx_id)
        if inclusion is None:
            raise NotYetIncluded(tx_id)

        write = self.uploads.mark_confirmed(
            chain, tx_id, inclusion.height, inclusion.block_timestamp_ms
        )
        return ConfirmationResult(
            tx_id=tx_id,
            confirmed=write.record.confirmed,
            block_height=write.record.block_index,
            confirmed_at_ms=write.record.confirmed_at_ms,
            updated=write.updated,
        )
