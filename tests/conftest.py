"""Shared fixtures: a file-backed SQLite schema, settings and fake chain nodes."""

from __future__ import annotations

import itertools
from datetime import date
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine

from telemetry_anchor_services.anchor_api.container import build_container
from telemetry_anchor_services.anchor_api.domain.errors import NodeConnectionFailed
from telemetry_anchor_services.anchor_api.domain.models import Chain
from telemetry_anchor_services.anchor_api.ledger import LedgerClients, SubmitReceipt, TransactionInclusion
from telemetry_anchor_services.anchor_api.persistence import ensure_schema
from telemetry_anchor_services.common.config import Settings

# 2025-08-14T19:15:31Z
BASE_TS_MS = 1755198931000


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite://",
        mqtt_enabled=False,
        mqtt_host="localhost",
        mqtt_port=1883,
        mqtt_username=None,
        mqtt_password=None,
        mqtt_topics=("temperature", "status", "errors"),
        source_tz="Europe/Belgrade",
        iota_node_url="https://iota.test",
        iota_network="shimmer",
        iota_explorer_base="https://explorer.shimmer.network/shimmer/block",
        signum_node_host="https://signum.test",
        signum_network="mainnet",
        signum_explorer_base="https://explorer.signum.network/tx",
        signum_passphrase="correct horse battery staple",
        signum_recipient_id="1234567890",
        signum_fee_unit_planck=735000,
        signum_deadline_minutes=1440,
        app_namespace="LilyBridge",
        node_timeout_seconds=5.0,
        internal_job_key="job-key",
        api_key=None,
        max_batch_readings=500,
        poller_enabled=False,
        poller_interval_seconds=60.0,
        poller_batch_size=50,
        poller_workers=2,
    )
    values.update(overrides)
    return Settings(**values)


class FakeLedger:
    """In-memory stand-in for a chain client."""

    def __init__(self, chain: Chain, default_node: str, explorer_base: str, network: str):
        self.chain = chain
        self.default_node = default_node
        self.explorer_base = explorer_base
        self.network = network
        self.submissions: List[dict] = []
        self.included: Dict[str, TransactionInclusion] = {}
        self.lookups: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.lookup_error: Optional[Exception] = None
        self._ids = itertools.count(1)

    def explorer_url(self, tx_id: str) -> str:
        return f"{self.explorer_base}/{tx_id}"

    def _submit(self, node: str, **kwargs) -> SubmitReceipt:
        if self.fail_with is not None:
            raise self.fail_with
        tx_id = f"{self.chain.value.lower()}-tx-{next(self._ids)}"
        self.submissions.append({"node": node, "tx_id": tx_id, **kwargs})
        return SubmitReceipt(transaction_id=tx_id, node=node)

    def submit_tagged(self, node_address, tag, payload_bytes):
        return self._submit(node_address or self.default_node, tag=tag, data=payload_bytes)

    def submit_message(self, recipient_id, fee_planck, payload_text, signing_keys, node_host=None):
        return self._submit(
            node_host or self.default_node,
            recipient=recipient_id,
            fee=fee_planck,
            text=payload_text,
            passphrase=signing_keys.passphrase,
        )

    def include(self, tx_id: str, height: int = 1000, block_timestamp_ms: int = BASE_TS_MS + 240_000):
        self.included[tx_id] = TransactionInclusion(tx_id, height, block_timestamp_ms)

    def lookup_transaction(self, tx_id):
        self.lookups.append(tx_id)
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.included.get(tx_id)

    def close(self):
        pass


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'anchor.db'}", future=True)
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def ledgers(settings) -> LedgerClients:
    return LedgerClients(
        tangle=FakeLedger(Chain.IOTA, settings.iota_node_url, settings.iota_explorer_base, "shimmer"),
        signum=FakeLedger(Chain.SIGNUM, settings.signum_node_host, settings.signum_explorer_base, "mainnet"),
    )


@pytest.fixture
def container(settings, engine, ledgers):
    c = build_container(settings, engine, ledgers=ledgers)
    c.uploader.today = lambda: date(2025, 8, 14)
    # one second per clock read
    c.uploader.clock = itertools.count(BASE_TS_MS + 3_600_000, 1000).__next__
    return c


@pytest.fixture
def seed_readings(container):
    """Insert n temperature readings one minute apart; returns their ids."""

    def _seed(n: int = 3, chip_id: str = "ESP32-D0WD1", mac: str = "8C:4B:14:08:12:58", start_ms: int = BASE_TS_MS):
        return [
            container.readings.insert(
                topic="temperature",
                chip_id=chip_id,
                mac_address=mac,
                temperature=round(21.5 + i / 10, 1),
                source_ts_ms=start_ms + i * 60_000,
            )
            for i in range(n)
        ]

    return _seed


def connection_refused() -> NodeConnectionFailed:
    return NodeConnectionFailed("Failed to connect to node: connection refused", node_status=503)
