from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


class UploadRequest(CamelModel):
    # Omitted => upload every reading the user has not sent to this chain yet.
    reading_ids: Optional[List[int]] = Field(default=None, alias="ids")

    @field_validator("reading_ids")
    @classmethod
    def validate_ids(cls, v):
        if v is None:
            return v
        if not v:
            raise ValueError("ids must not be empty")
        if any(i <= 0 for i in v):
            raise ValueError("ids must be positive integers")
        return v


class UploadResponse(CamelModel):
    batch_id: str
    chain: str
    transaction_id: str
    explorer_url: str
    payload_size_bytes: int
    elapsed_ms: int
    status: str
    reading_count: int
    tag: str
    fee: Optional[int] = None


class UploadAttemptOut(CamelModel):
    id: int
    chain: str
    correlation_id: str
    attempt_no: int
    status: str
    tag: Optional[str] = None
    node_url: Optional[str] = None
    node_host: Optional[str] = None
    network: Optional[str] = None
    fee_planck: Optional[int] = None
    tx_id: Optional[str] = None
    payload_hash: str
    payload_size: int
    reading_count: int
    reading_ids: List[int]
    occurred_at_ms: int
    elapsed_ms: Optional[int] = None
    http_status: Optional[int] = None
    error_type: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------


class ConfirmRequest(CamelModel):
    tx_id: str = Field(..., min_length=1, max_length=128)

    @field_validator("tx_id")
    @classmethod
    def strip_tx_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("txId is required")
        return v


class ConfirmResponse(CamelModel):
    tx_id: str
    confirmed: bool
    block_height: Optional[int] = None
    confirmed_at_ms: Optional[int] = None
    updated: bool


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class UploadStatsOut(CamelModel):
    chain: str
    uploads: int
    total_data_kb: float = Field(..., alias="totalDataKB")
    total_readings: int
    avg_readings_per_upload: float
    avg_time_to_confirm_ms: float
    p50_time_to_confirm_ms: Optional[float] = None
    p95_time_to_confirm_ms: Optional[float] = None
    total_cost: int
    avg_cost_per_reading: float
    pending: int
    confirmed: int
    failed_attempts: int
    durations_ms: List[int] = Field(default_factory=list)


class DailyStatsOut(CamelModel):
    day: str
    uploads: int
    readings: int
    bytes: int
    cost: int
    avg_elapsed_ms: float


class ExplorerLinkOut(CamelModel):
    batch_id: str
    tx_id: str
    explorer_url: Optional[str] = None
    confirmed: bool
    status: str
    reading_count: int
    sent_at_ms: int
    confirmed_at_ms: Optional[int] = None


class ExplorerLinksPage(CamelModel):
    items: List[ExplorerLinkOut]
    total: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# Readings / users
# ---------------------------------------------------------------------------


class TemperatureReadingOut(CamelModel):
    id: int
    chip_id: Optional[str] = Field(default=None, alias="chipID")
    mac_address: Optional[str] = None
    temperature: Optional[float] = None
    timestamp: Optional[str] = None
    received_at: str
    uploaded_by: List[str] = Field(default_factory=list)


class StatusMessageOut(CamelModel):
    topic: str
    chip_id: str = Field(..., alias="chipID")
    mac_address: str
    status: str
    timestamp: str
    received_at: str
    time_since_received_ms: int


class RawMessageOut(CamelModel):
    id: int
    topic: str
    message: Optional[str] = None
    received_at: str


class UserSettingsIn(CamelModel):
    iota_tag_prefix: Optional[str] = Field(default=None, max_length=64)
    signum_tag_prefix: Optional[str] = Field(default=None, max_length=64)
    iota_node_address: Optional[str] = Field(default=None, max_length=255)
    signum_node_address: Optional[str] = Field(default=None, max_length=255)

    @field_validator("iota_node_address", "signum_node_address")
    @classmethod
    def validate_node_address(cls, v):
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("node address must be an http(s) URL")
        return v


class UserSettingsOut(CamelModel):
    user_id: str
    iota_tag_prefix: Optional[str] = None
    signum_tag_prefix: Optional[str] = None
    iota_node_address: Optional[str] = None
    signum_node_address: Optional[str] = None
    effective_iota_node: str
    effective_signum_node: str
