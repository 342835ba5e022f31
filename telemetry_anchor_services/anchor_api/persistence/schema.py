"""Table definitions.

Tables are only declared here so that create_all() emits the right DDL for
the backend in use. Queries live in the sibling modules as plain SQL.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_Id = BigInteger().with_variant(Integer(), "sqlite")

readings = Table(
    "readings",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("topic", String(32), nullable=False),
    Column("chip_id", String(64)),
    Column("mac_address", String(32)),
    Column("temperature", Float),
    Column("source_ts_ms", BigInteger),
    Column("received_at_ms", BigInteger, nullable=False),
    Column("message", Text),
    Index("ix_readings_topic_source_ts", "topic", "source_ts_ms"),
)

reading_uploads = Table(
    "reading_uploads",
    metadata,
    Column("reading_id", BigInteger, nullable=False),
    Column("user_id", String(64), nullable=False),
    Column("chain", String(16), nullable=False),
    Column("batch_id", String(128), nullable=False),
    Column("uploaded_at_ms", BigInteger, nullable=False),
    PrimaryKeyConstraint("reading_id", "user_id", "chain", name="pk_reading_uploads"),
)

user_preferences = Table(
    "user_preferences",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("iota_tag_prefix", String(64)),
    Column("signum_tag_prefix", String(64)),
    Column("iota_node_address", String(255)),
    Column("signum_node_address", String(255)),
    Column("updated_at_ms", BigInteger, nullable=False),
)

upload_attempts = Table(
    "upload_attempts",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("user_id", String(64), nullable=False),
    Column("chain", String(16), nullable=False),
    Column("correlation_id", String(64), nullable=False),
    Column("attempt_no", Integer, nullable=False),
    Column("status", String(16), nullable=False),
    Column("tag", String(128)),
    Column("node_url", String(255)),
    Column("node_host", String(255)),
    Column("network", String(32)),
    Column("fee_planck", BigInteger),
    Column("tx_id", String(128)),
    Column("payload_hash", String(64), nullable=False),
    Column("payload_size", Integer, nullable=False),
    Column("reading_count", Integer, nullable=False),
    Column("reading_ids", Text, nullable=False),
    Column("occurred_at_ms", BigInteger, nullable=False),
    Column("elapsed_ms", Integer),
    Column("http_status", Integer),
    Column("error_type", String(64)),
    Column("error_code", String(64)),
    Column("error_message", Text),
    Column("stack", Text),
    UniqueConstraint(
        "user_id", "chain", "correlation_id", "attempt_no", name="uq_upload_attempts_attempt"
    ),
)

uploaded_messages = Table(
    "uploaded_messages",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("batch_id", String(128), nullable=False, unique=True),
    Column("user_id", String(64), nullable=False),
    Column("chain", String(16), nullable=False),
    Column("tx_id", String(128), nullable=False),
    Column("tag", String(128)),
    Column("node_url", String(255)),
    Column("payload_hash", String(64), nullable=False),
    Column("correlation_id", String(64), nullable=False),
    Column("reading_ids", Text, nullable=False),
    Column("reading_count", Integer, nullable=False),
    Column("payload_size", Integer, nullable=False),
    Column("sent_at_ms", BigInteger, nullable=False),
    Column("elapsed_ms", Integer, nullable=False),
    Column("fee", BigInteger),
    Column("status", String(16), nullable=False),
    Column("confirmed", Boolean, nullable=False, default=False),
    Column("confirmed_at_ms", BigInteger),
    Column("block_index", BigInteger),
    Column("explorer_url", String(512)),
    Column("network", String(32)),
    Index("ix_uploaded_messages_chain_tx", "chain", "tx_id"),
    Index("ix_uploaded_messages_chain_confirmed", "chain", "confirmed"),
)


def ensure_schema(engine: Engine) -> None:
    metadata.create_all(engine, checkfirst=True)
    logger.info("[DB] Schema ensured (%d tables)", len(metadata.tables))
