"""Domain model for readings, upload attempts and uploaded batches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, List, Optional


class Chain(str, Enum):
    """Supported ledgers."""
    IOTA = "IOTA"      # DAG-style tangle, inclusion == success
    SIGNUM = "SIGNUM"  # account-based, submitted first, confirmed later

    @classmethod
    def parse(cls, value: str) -> "Chain":
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported chain: {value}") from None

    @property
    def has_pending_state(self) -> bool:
        return self is Chain.SIGNUM


class UploadStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


# Allowed status transitions per chain. IOTA batches are born confirmed.
_TRANSITIONS = {
    Chain.IOTA: {},
    Chain.SIGNUM: {
        UploadStatus.PENDING: {UploadStatus.CONFIRMED, UploadStatus.FAILED},
        UploadStatus.SENT: {UploadStatus.CONFIRMED, UploadStatus.FAILED},
    },
}


def initial_status(chain: Chain) -> UploadStatus:
    return UploadStatus.PENDING if chain.has_pending_state else UploadStatus.CONFIRMED


def can_transition(chain: Chain, current: UploadStatus, target: UploadStatus) -> bool:
    return target in _TRANSITIONS[chain].get(current, set())


def ms_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


@dataclass(frozen=True)
class Reading:
    """Temperature reading received over MQTT."""
    id: int
    chip_id: Optional[str]
    mac_address: Optional[str]
    temperature: Optional[float]
    source_ts_ms: Optional[int]
    received_at_ms: int
    topic: str = "temperature"
    message: Optional[str] = None
    uploaded_by: FrozenSet[str] = frozenset()

    @property
    def source_timestamp(self) -> Optional[datetime]:
        return ms_to_datetime(self.source_ts_ms)

    @property
    def received_at(self) -> datetime:
        return ms_to_datetime(self.received_at_ms)


@dataclass(frozen=True)
class UserPreferences:
    """Per-user chain preferences; None means "use the configured default"."""
    user_id: str
    iota_tag_prefix: Optional[str] = None
    signum_tag_prefix: Optional[str] = None
    iota_node_address: Optional[str] = None
    signum_node_address: Optional[str] = None

    def tag_prefix_for(self, chain: Chain) -> Optional[str]:
        return self.iota_tag_prefix if chain is Chain.IOTA else self.signum_tag_prefix

    def node_address_for(self, chain: Chain) -> Optional[str]:
        return self.iota_node_address if chain is Chain.IOTA else self.signum_node_address


@dataclass
class AttemptContext:
    """Everything known about a submission at the moment it failed."""
    user_id: str
    chain: Chain
    payload_hash: str
    reading_ids: List[int]
    payload_size: int
    tag: Optional[str] = None
    node_url: Optional[str] = None
    node_host: Optional[str] = None
    network: str = "mainnet"
    fee_planck: Optional[int] = None
    tx_id: Optional[str] = None
    elapsed_ms: Optional[int] = None
    http_status: Optional[int] = None


@dataclass(frozen=True)
class UploadAttempt:
    id: int
    user_id: str
    chain: Chain
    correlation_id: str
    attempt_no: int
    status: str
    payload_hash: str
    payload_size: int
    reading_ids: List[int]
    occurred_at_ms: int
    tag: Optional[str] = None
    node_url: Optional[str] = None
    node_host: Optional[str] = None
    network: Optional[str] = None
    fee_planck: Optional[int] = None
    tx_id: Optional[str] = None
    elapsed_ms: Optional[int] = None
    http_status: Optional[int] = None
    error_type: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    stack: Optional[str] = None

    @property
    def reading_count(self) -> int:
        return len(self.reading_ids)


@dataclass
class UploadedMessage:
    """One successful batch submission."""
    batch_id: str
    user_id: str
    chain: Chain
    tx_id: str
    payload_hash: str
    correlation_id: str
    reading_ids: List[int]
    payload_size: int
    sent_at_ms: int
    elapsed_ms: int
    status: UploadStatus
    confirmed: bool
    tag: Optional[str] = None
    node_url: Optional[str] = None
    fee: Optional[int] = None
    confirmed_at_ms: Optional[int] = None
    block_index: Optional[int] = None
    explorer_url: Optional[str] = None
    network: Optional[str] = None
    id: Optional[int] = None

    @property
    def reading_count(self) -> int:
        return len(self.reading_ids)

    @property
    def time_to_confirm_ms(self) -> Optional[int]:
        if self.confirmed_at_ms is None:
            return None
        return self.confirmed_at_ms - self.sent_at_ms
