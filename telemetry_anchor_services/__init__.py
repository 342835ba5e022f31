"""Sensor telemetry ingestion and ledger anchoring services."""
