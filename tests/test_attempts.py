"""Attempt log: correlation ids, attempt numbering and collision handling."""

import hashlib
from unittest.mock import patch

import pytest

from telemetry_anchor_services.anchor_api.domain.errors import NodeRejected, PayloadTooLarge
from telemetry_anchor_services.anchor_api.domain.models import AttemptContext, Chain
from telemetry_anchor_services.anchor_api.persistence.attempts import AttemptRecorder, make_correlation_id

from conftest import connection_refused


def _context(**overrides) -> AttemptContext:
    values = dict(
        user_id="42",
        chain=Chain.SIGNUM,
        payload_hash="ab" * 32,
        reading_ids=[3, 1, 2],
        payload_size=321,
        tag="42@LilyBridge_14082025",
        node_host="https://signum.test",
        fee_planck=735000,
    )
    values.update(overrides)
    return AttemptContext(**values)


# =============================================================================
# CORRELATION ID
# =============================================================================

class TestCorrelationId:

    def test_matches_documented_formula(self):
        expected = hashlib.sha256(b"SIGNUM|42|hash|1,2,3").hexdigest()
        assert make_correlation_id(Chain.SIGNUM, "42", "hash", [3, 1, 2]) == expected

    def test_independent_of_id_order(self):
        assert make_correlation_id(Chain.IOTA, "7", "h", [1, 2, 3]) == make_correlation_id(
            Chain.IOTA, "7", "h", [3, 2, 1]
        )

    def test_differs_per_chain_and_user(self):
        base = make_correlation_id(Chain.IOTA, "7", "h", [1])
        assert base != make_correlation_id(Chain.SIGNUM, "7", "h", [1])
        assert base != make_correlation_id(Chain.IOTA, "8", "h", [1])


# =============================================================================
# RECORDING
# =============================================================================

class TestAttemptRecorder:

    @pytest.fixture
    def recorder(self, engine):
        return AttemptRecorder(engine)

    def test_attempt_numbers_increase(self, recorder):
        first = recorder.record(_context(), connection_refused())
        second = recorder.record(_context(), connection_refused())
        third = recorder.record(_context(), NodeRejected("bad fee", node_status=400, node_code="4"))

        assert [first.attempt_no, second.attempt_no, third.attempt_no] == [1, 2, 3]
        assert first.correlation_id == second.correlation_id == third.correlation_id

    def test_new_selection_starts_at_one(self, recorder):
        recorder.record(_context(), connection_refused())
        other = recorder.record(_context(reading_ids=[9]), connection_refused())
        assert other.attempt_no == 1

    def test_fields_from_error(self, recorder):
        attempt = recorder.record(_context(elapsed_ms=12), connection_refused())

        assert attempt.status == "FAILED"
        assert attempt.error_type == "NodeConnectionFailed"
        assert attempt.http_status == 503
        assert attempt.reading_ids == [1, 2, 3]
        assert attempt.reading_count == 3
        assert attempt.elapsed_ms == 12
        assert "NodeConnectionFailed" in attempt.stack

    def test_oversize_attempt(self, recorder):
        attempt = recorder.record(
            _context(http_status=413, elapsed_ms=0),
            PayloadTooLarge(size_bytes=1200, limit_bytes=1000),
        )
        assert attempt.error_type == "PayloadTooLarge"
        assert attempt.error_message == "Payload too large"
        assert attempt.http_status == 413

    def test_collision_is_retried(self, recorder):
        recorder.record(_context(), connection_refused())

        with patch.object(AttemptRecorder, "_next_attempt_no", side_effect=[1, 2]):
            attempt = recorder.record(_context(), connection_refused())

        assert attempt is not None
        assert attempt.attempt_no == 2

    def test_persistent_collision_is_swallowed(self, recorder):
        recorder.record(_context(), connection_refused())

        with patch.object(AttemptRecorder, "_next_attempt_no", return_value=1) as counter:
            attempt = recorder.record(_context(), connection_refused())

        assert attempt is None
        assert counter.call_count == 3
        assert len(recorder.list_for_user("42")) == 1

    def test_list_for_user_filters_chain(self, recorder):
        recorder.record(_context(), connection_refused())
        recorder.record(_context(chain=Chain.IOTA, fee_planck=None), connection_refused())
        recorder.record(_context(user_id="99"), connection_refused())

        assert len(recorder.list_for_user("42")) == 2
        assert [a.chain for a in recorder.list_for_user("42", Chain.IOTA)] == [Chain.IOTA]
        assert recorder.count_for_chain(Chain.SIGNUM) == 2
