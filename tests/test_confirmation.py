"""Confirmation of account-chain uploads: single lookups and poller cycles."""

from unittest.mock import MagicMock

import pytest

from telemetry_anchor_services.anchor_api.domain.errors import NoMatchingRecord, NotYetIncluded
from telemetry_anchor_services.anchor_api.domain.models import Chain, UploadStatus
from telemetry_anchor_services.anchor_api.services.confirmation import ConfirmationResult
from telemetry_anchor_services.jobs.confirmation.config import PollerConfig
from telemetry_anchor_services.jobs.confirmation.runner import (
    ALREADY_CONFIRMED,
    CONFIRMED,
    ERROR,
    PENDING,
    check_one,
    run_once,
)

from conftest import BASE_TS_MS, connection_refused


@pytest.fixture
def pending_upload(container, seed_readings):
    ids = seed_readings(1)
    return container.uploader.upload_to_chain("42", Chain.SIGNUM, ids)


# =============================================================================
# confirm_transaction
# =============================================================================

class TestConfirmTransaction:

    def test_not_yet_included(self, container, pending_upload):
        with pytest.raises(NotYetIncluded):
            container.confirmation.confirm_transaction(Chain.SIGNUM, pending_upload.transaction_id)

        record = container.uploads.find_by_tx(Chain.SIGNUM, pending_upload.transaction_id)
        assert record.status is UploadStatus.PENDING

    def test_unknown_record(self, container):
        with pytest.raises(NoMatchingRecord):
            container.confirmation.confirm_transaction(Chain.SIGNUM, "123")

    def test_confirms_once(self, container, ledgers, pending_upload):
        tx_id = pending_upload.transaction_id
        ledgers.signum.include(tx_id, height=555, block_timestamp_ms=BASE_TS_MS + 4_000_000)

        first = container.confirmation.confirm_transaction(Chain.SIGNUM, tx_id)
        second = container.confirmation.confirm_transaction(Chain.SIGNUM, tx_id)

        assert first.updated is True
        assert first.block_height == 555
        assert first.confirmed_at_ms == BASE_TS_MS + 4_000_000
        assert second.updated is False
        assert second.confirmed is True
        assert ledgers.signum.lookups == [tx_id]

        record = container.uploads.find_by_tx(Chain.SIGNUM, tx_id)
        assert record.status is UploadStatus.CONFIRMED
        assert record.time_to_confirm_ms == BASE_TS_MS + 4_000_000 - record.sent_at_ms

    def test_iota_record_already_confirmed(self, container, ledgers, seed_readings):
        outcome = container.uploader.upload_to_chain("42", Chain.IOTA, seed_readings(1))

        result = container.confirmation.confirm_transaction(Chain.IOTA, outcome.transaction_id)

        assert result.confirmed is True
        assert result.updated is False
        assert ledgers.tangle.lookups == []

    def test_mark_confirmed_is_one_way(self, container, pending_upload):
        tx_id = pending_upload.transaction_id
        container.uploads.mark_confirmed(Chain.SIGNUM, tx_id, 10, BASE_TS_MS)

        write = container.uploads.mark_confirmed(Chain.SIGNUM, tx_id, 99, BASE_TS_MS + 1)

        assert write.updated is False
        assert write.record.block_index == 10
        assert write.record.confirmed_at_ms == BASE_TS_MS


# =============================================================================
# POLLER
# =============================================================================

class TestPollerCycle:

    def test_pending_until_included(self, container, ledgers, pending_upload):
        cfg = PollerConfig(batch_size=10, workers=1)

        cycle = run_once(cfg, container.uploads, container.confirmation)
        assert cycle.checked == 1
        assert cycle.results[PENDING] == 1

        ledgers.signum.include(pending_upload.transaction_id)
        cycle = run_once(cfg, container.uploads, container.confirmation)
        assert cycle.confirmed == 1

        cycle = run_once(cfg, container.uploads, container.confirmation)
        assert cycle.checked == 0
        assert container.uploads.list_pending(Chain.SIGNUM) == []

    def test_lookup_error_leaves_record_pending(self, container, ledgers, pending_upload):
        ledgers.signum.lookup_error = connection_refused()

        cycle = run_once(PollerConfig(workers=1), container.uploads, container.confirmation)

        assert cycle.results[ERROR] == 1
        record = container.uploads.find_by_tx(Chain.SIGNUM, pending_upload.transaction_id)
        assert record.confirmed is False
        assert record.status is UploadStatus.PENDING

    def test_batch_size_caps_cycle(self, container, ledgers, seed_readings):
        for _ in range(3):
            container.uploader.upload_to_chain("42", Chain.SIGNUM, seed_readings(1))

        cycle = run_once(PollerConfig(batch_size=2, workers=1), container.uploads, container.confirmation)
        assert cycle.checked == 2

    def test_workers_drain_shared_queue(self):
        records = [MagicMock(tx_id=str(i)) for i in range(10)]
        uploads = MagicMock()
        uploads.list_pending.return_value = records
        confirmation = MagicMock()
        confirmation.confirm_transaction.side_effect = lambda chain, tx_id: ConfirmationResult(
            tx_id=tx_id, confirmed=True, block_height=1, confirmed_at_ms=1, updated=tx_id != "0"
        )

        cycle = run_once(PollerConfig(batch_size=10, workers=3), uploads, confirmation)

        assert cycle.checked == 10
        assert cycle.results[CONFIRMED] == 9
        assert cycle.results[ALREADY_CONFIRMED] == 1
        checked = sorted(call.args[1] for call in confirmation.confirm_transaction.call_args_list)
        assert checked == sorted(str(i) for i in range(10))
        uploads.list_pending.assert_called_once_with(Chain.SIGNUM, limit=10)

    def test_check_one_never_raises(self):
        confirmation = MagicMock()
        confirmation.confirm_transaction.side_effect = NoMatchingRecord("1")
        assert check_one(confirmation, Chain.SIGNUM, "1") == ERROR
