"""HTTP surface via FastAPI TestClient."""

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from telemetry_anchor_services.anchor_api.container import build_container
from telemetry_anchor_services.anchor_api.main import create_app
from telemetry_anchor_services.common.db import utc_now_ms

from conftest import connection_refused

USER = {"X-User-Id": "42"}


@pytest.fixture
def client(container):
    return TestClient(create_app(container=container))


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health_and_ready(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/ready").json() == {"status": "ready"}

    def test_metrics_exposed(self, client):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "anchor_uploads_total" in resp.text


# =============================================================================
# UPLOADS
# =============================================================================

class TestUploadEndpoint:

    def test_iota_upload(self, client, seed_readings):
        ids = seed_readings(3)

        resp = client.post("/uploads/iota", json={"ids": ids}, headers=USER)

        assert resp.status_code == 200
        body = resp.json()
        assert body["readingCount"] == 3
        assert body["status"] == "CONFIRMED"
        assert body["explorerUrl"].endswith(body["transactionId"])
        assert body["payloadSizeBytes"] > 0
        assert body["fee"] is None

    def test_signum_oversize(self, client, seed_readings):
        ids = seed_readings(20)

        resp = client.post("/uploads/SIGNUM", json={"ids": ids}, headers=USER)

        assert resp.status_code == 413
        body = resp.json()
        assert body["message"] == "Payload too large"
        assert body["limitBytes"] == 1000
        assert body["payloadSizeBytes"] > 1000

    def test_no_matching_readings(self, client):
        resp = client.post("/uploads/iota", json={"ids": [12345]}, headers=USER)
        assert resp.status_code == 400
        assert resp.json()["message"] == "No matching messages found to upload"

    def test_node_failure_is_bad_gateway(self, client, ledgers, seed_readings):
        ids = seed_readings(1)
        ledgers.tangle.fail_with = connection_refused()

        resp = client.post("/uploads/iota", json={"ids": ids}, headers=USER)

        assert resp.status_code == 502
        assert "connection refused" in resp.json()["message"]

        attempts = client.get("/uploads/attempts", headers=USER).json()
        assert len(attempts) == 1
        assert attempts[0]["errorType"] == "NodeConnectionFailed"
        assert attempts[0]["httpStatus"] == 503

    def test_invalid_body(self, client):
        assert client.post("/uploads/iota", json={"ids": []}, headers=USER).status_code == 422
        assert client.post("/uploads/iota", json={"ids": [-1]}, headers=USER).status_code == 422

    def test_unknown_chain(self, client):
        assert client.post("/uploads/bitcoin", json={"ids": [1]}, headers=USER).status_code == 400

    def test_user_identity_required(self, client):
        assert client.post("/uploads/iota", json={"ids": [1]}).status_code == 401

    def test_api_key_enforced(self, settings, engine, ledgers):
        container = build_container(replace(settings, api_key="s3cret"), engine, ledgers=ledgers)
        client = TestClient(create_app(container=container))

        assert client.get("/stats/iota/uploads").status_code == 401
        assert client.get("/stats/iota/uploads", headers={"X-API-Key": "wrong"}).status_code == 401
        assert client.get("/stats/iota/uploads", headers={"X-API-Key": "s3cret"}).status_code == 200


# =============================================================================
# INTERNAL CONFIRM
# =============================================================================

class TestConfirmEndpoint:

    @pytest.fixture
    def tx_id(self, client, seed_readings):
        resp = client.post("/uploads/signum", json={"ids": seed_readings(1)}, headers=USER)
        return resp.json()["transactionId"]

    def test_requires_internal_key(self, client, tx_id):
        assert client.post("/internal/signum/confirm", json={"txId": tx_id}).status_code == 401
        resp = client.post("/internal/signum/confirm", json={"txId": tx_id}, headers={"x-internal-key": "nope"})
        assert resp.status_code == 401

    def test_not_yet_included(self, client, tx_id):
        resp = client.post("/internal/signum/confirm", json={"txId": tx_id}, headers={"x-internal-key": "job-key"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_yet_included"

    def test_confirm_with_misspelled_header(self, client, ledgers, tx_id):
        ledgers.signum.include(tx_id, height=321)

        resp = client.post("/internal/signum/confirm", json={"txId": tx_id}, headers={"x-inernal-key": "job-key"})

        assert resp.status_code == 200
        assert resp.json()["confirmed"] is True
        assert resp.json()["blockHeight"] == 321

    def test_unknown_record(self, client):
        resp = client.post("/internal/signum/confirm", json={"txId": "999"}, headers={"x-internal-key": "job-key"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "no_matching_record"


# =============================================================================
# STATS / READINGS / SETTINGS
# =============================================================================

class TestReadEndpoints:

    def test_stats(self, client, seed_readings):
        client.post("/uploads/iota", json={"ids": seed_readings(2)}, headers=USER)

        body = client.get("/stats/iota/uploads").json()
        assert body["uploads"] == 1
        assert body["totalReadings"] == 2
        assert "totalDataKB" in body

        links = client.get("/stats/iota/explorer-links", params={"confirmed": "true"}).json()
        assert links["total"] == 1
        assert links["items"][0]["explorerUrl"].startswith("https://explorer.shimmer.network/")

        assert len(client.get("/stats/iota/daily").json()) == 1

    def test_temperature_listing_shows_uploaders(self, client, seed_readings):
        ids = seed_readings(2)
        client.post("/uploads/iota", json={"ids": ids[:1]}, headers=USER)

        rows = client.get("/readings/temperature").json()

        by_id = {r["id"]: r for r in rows}
        assert by_id[ids[0]]["uploadedBy"] == ["42"]
        assert by_id[ids[1]]["uploadedBy"] == []
        assert by_id[ids[0]]["chipID"] == "ESP32-D0WD1"

    def test_last_status(self, client, container):
        assert client.get("/readings/status/last").status_code == 404

        container.readings.insert(topic="status", message="ESP32@8C:4B | Wifi OK | MQTT OK | Time: 14.10.2024 20:57:29")
        body = client.get("/readings/status/last").json()

        assert body["chipID"] == "ESP32"
        assert body["status"] == "Wifi OK | MQTT OK"
        assert body["timestamp"] == "14.10.2024 20:57:29"
        assert body["timeSinceReceivedMs"] >= 0

    def test_time_since_last_status(self, client, container):
        container.readings.insert(
            topic="status",
            message="ESP32@8C:4B | Wifi OK",
            received_at_ms=utc_now_ms() - 90_000,
        )

        body = client.get("/readings/status/last").json()

        assert 90_000 <= body["timeSinceReceivedMs"] < 600_000

    def test_errors_today_newest_first(self, client, container):
        now = utc_now_ms()
        container.readings.insert(topic="errors", message="old failure", received_at_ms=now - 3 * 86_400_000)
        first = container.readings.insert(topic="errors", message="sensor timeout", received_at_ms=now - 1)
        second = container.readings.insert(topic="errors", message="wifi lost", received_at_ms=now)
        container.readings.insert(topic="status", message="ESP32@8C:4B | Wifi OK", received_at_ms=now)

        rows = client.get("/readings/errors/today").json()

        assert [r["id"] for r in rows] == [second, first]
        assert rows[0]["message"] == "wifi lost"
        assert rows[0]["topic"] == "errors"

    def test_user_settings_roundtrip(self, client):
        initial = client.get("/users/me/settings", headers=USER).json()
        assert initial["effectiveIotaNode"] == "https://iota.test"

        resp = client.put(
            "/users/me/settings",
            json={"iotaTagPrefix": "Lily", "signumNodeAddress": "https://node.example"},
            headers=USER,
        )
        assert resp.status_code == 200
        assert resp.json()["effectiveSignumNode"] == "https://node.example"
        assert client.get("/users/me/settings", headers=USER).json()["iotaTagPrefix"] == "Lily"

    def test_user_settings_rejects_bad_node(self, client):
        resp = client.put("/users/me/settings", json={"iotaNodeAddress": "ftp://x"}, headers=USER)
        assert resp.status_code == 422
