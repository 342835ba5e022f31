"""Prometheus metrics shared by the API, the MQTT receiver and the poller."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

UPLOADS_TOTAL = Counter(
    "anchor_uploads_total",
    "Batch uploads by chain and outcome",
    ["chain", "outcome"],  # success, rejected, node_error, internal_error
)

UPLOAD_ATTEMPTS_RECORDED = Counter(
    "anchor_upload_attempts_recorded_total",
    "Failed submissions written to the attempt log",
    ["chain", "error_type"],
)

SUBMIT_LATENCY = Histogram(
    "anchor_submit_seconds",
    "Time spent submitting a payload to a chain node",
    ["chain"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

CONFIRMATION_CHECKS = Counter(
    "anchor_confirmation_checks_total",
    "Confirmation lookups by chain and result",
    ["chain", "result"],  # confirmed, already_confirmed, pending, error
)

PENDING_UPLOADS = Gauge(
    "anchor_pending_uploads",
    "Pending uploads seen by the last poller cycle",
    ["chain"],
)

MQTT_MESSAGES = Counter(
    "anchor_mqtt_messages_total",
    "MQTT messages received by topic and outcome",
    ["topic", "outcome"],  # stored, parse_error, store_error
)

MQTT_CONNECTED = Gauge(
    "anchor_mqtt_connected",
    "MQTT receiver connection status",
)
