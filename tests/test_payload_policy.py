"""Payload builder and per-chain tag/size/fee rules.

Run:
    pytest tests/test_payload_policy.py -v
"""

import json
from dataclasses import replace
from datetime import date

import pytest

from telemetry_anchor_services.anchor_api.domain.errors import PayloadTooLarge
from telemetry_anchor_services.anchor_api.domain.models import Chain, Reading
from telemetry_anchor_services.anchor_api.upload.payload_builder import build_payload, format_timestamp
from telemetry_anchor_services.anchor_api.upload.policy import (
    IOTA_MAX_PAYLOAD_BYTES,
    SIGNUM_MAX_PAYLOAD_BYTES,
    build_tag,
    check_size,
    compute_fee,
    fee_bucket,
    sanitize_prefix,
)

from conftest import BASE_TS_MS


@pytest.fixture
def readings():
    return [
        Reading(
            id=i + 1,
            chip_id="ESP32-D0WD1",
            mac_address="8C:4B:14:08:12:58",
            temperature=21.5 + i,
            source_ts_ms=BASE_TS_MS + i * 60_000,
            received_at_ms=BASE_TS_MS + i * 60_000 + 150,
        )
        for i in range(3)
    ]


# =============================================================================
# PAYLOAD BUILDER
# =============================================================================

class TestPayloadBuilder:

    def test_document_shape(self, readings):
        built = build_payload(readings)

        assert built.document["chipID"] == "ESP32-D0WD1"
        assert built.document["macAddress"] == "8C:4B:14:08:12:58"
        assert built.document["readings"][0] == {
            "temperature": 21.5,
            "timestamp": "2025-08-14T19:15:31.000Z",
        }
        assert len(built.document["readings"]) == 3

    def test_text_is_compact_json(self, readings):
        built = build_payload(readings)

        assert " " not in built.text
        assert json.loads(built.text) == built.document
        assert built.size_bytes == len(built.text.encode("utf-8"))

    def test_hash_is_deterministic(self, readings):
        assert build_payload(readings).payload_hash == build_payload(list(readings)).payload_hash

    def test_hash_changes_with_temperature(self, readings):
        changed = [replace(readings[0], temperature=30.0)] + readings[1:]
        assert build_payload(readings).payload_hash != build_payload(changed).payload_hash

    def test_hash_changes_with_timestamp(self, readings):
        changed = [replace(readings[0], source_ts_ms=BASE_TS_MS + 1)] + readings[1:]
        assert build_payload(readings).payload_hash != build_payload(changed).payload_hash

    def test_empty_selection_rejected(self):
        with pytest.raises(ValueError):
            build_payload([])

    def test_format_timestamp_keeps_milliseconds(self):
        assert format_timestamp(BASE_TS_MS + 42) == "2025-08-14T19:15:31.042Z"
        assert format_timestamp(None) is None


# =============================================================================
# TAGS
# =============================================================================

class TestTags:

    def test_prefix_used_when_set(self):
        assert build_tag("Lily", "42", "LilyBridge", date(2025, 8, 14)) == "Lily@LilyBridge_14082025"

    def test_falls_back_to_user_id(self):
        assert build_tag(None, "42", "LilyBridge", date(2025, 1, 2)) == "42@LilyBridge_02012025"
        assert build_tag("   ", "42", "LilyBridge", date(2025, 1, 2)) == "42@LilyBridge_02012025"

    def test_prefix_sanitized_and_truncated(self):
        assert sanitize_prefix("My Tag-01!") == "MyTag01"
        assert sanitize_prefix("a" * 40) == "a" * 16


# =============================================================================
# SIZE LIMITS AND FEES
# =============================================================================

class TestSizeAndFee:

    @pytest.mark.parametrize(
        "size,bucket",
        [(0, 1), (120, 1), (166, 1), (167, 2), (500, 3), (1000, 6), (5000, 6)],
    )
    def test_fee_bucket(self, size, bucket):
        assert fee_bucket(size) == bucket

    def test_signum_fee_is_bucket_times_unit(self):
        assert compute_fee(Chain.SIGNUM, 120) == 735000
        assert compute_fee(Chain.SIGNUM, 500, unit_planck=1000) == 3000

    def test_iota_has_no_fee(self):
        assert compute_fee(Chain.IOTA, 500) is None

    def test_limits(self):
        check_size(Chain.SIGNUM, SIGNUM_MAX_PAYLOAD_BYTES)
        check_size(Chain.IOTA, IOTA_MAX_PAYLOAD_BYTES)

        with pytest.raises(PayloadTooLarge) as exc:
            check_size(Chain.SIGNUM, 1200)
        assert exc.value.size_bytes == 1200
        assert exc.value.limit_bytes == 1000
        assert exc.value.http_status == 413
        assert exc.value.message == "Payload too large"

        with pytest.raises(PayloadTooLarge):
            check_size(Chain.IOTA, IOTA_MAX_PAYLOAD_BYTES + 1)
