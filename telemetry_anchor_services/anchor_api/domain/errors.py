"""Errors surfaced by the upload and confirmation core.

Each error knows the HTTP status the API layer answers with.
"""

from __future__ import annotations

from typing import Any, Optional


class AnchorError(Exception):
    """Base class for every error returned to callers of the core."""

    http_status: int = 500
    code: str = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class InvalidSelection(AnchorError):
    http_status = 400
    code = "invalid_selection"


class NoMatchingReadings(AnchorError):
    """All selected readings are unknown or were already uploaded by the user."""

    http_status = 400
    code = "no_matching_readings"

    def __init__(self, message: str = "No matching messages found to upload"):
        super().__init__(message)


class PayloadTooLarge(AnchorError):
    http_status = 413
    code = "payload_too_large"

    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__("Payload too large")

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["payloadSizeBytes"] = self.size_bytes
        detail["limitBytes"] = self.limit_bytes
        return detail


class NodeSubmissionError(AnchorError):
    """The chain node could not be reached or refused the submission."""

    http_status = 502
    code = "node_error"

    def __init__(
        self,
        message: str,
        node_status: Optional[int] = None,
        node_code: Optional[str] = None,
    ):
        self.node_status = node_status
        self.node_code = node_code
        super().__init__(message)


class NodeConnectionFailed(NodeSubmissionError):
    code = "node_connection_failed"


class NodeRejected(NodeSubmissionError):
    code = "node_rejected"


class ChainMisconfigured(AnchorError):
    """Credentials or recipient for a chain are missing from the configuration."""

    http_status = 500
    code = "chain_misconfigured"


class InternalError(AnchorError):
    http_status = 500
    code = "internal_error"


class NotYetIncluded(AnchorError):
    http_status = 404
    code = "not_yet_included"

    def __init__(self, tx_id: str):
        self.tx_id = tx_id
        super().__init__("Transaction not yet included in a block")


class NoMatchingRecord(AnchorError):
    http_status = 404
    code = "no_matching_record"

    def __init__(self, tx_id: str):
        self.tx_id = tx_id
        super().__init__("No matching upload record found for this txId")


class InvalidTransactionId(AnchorError):
    http_status = 400
    code = "invalid_transaction_id"

    def __init__(self, tx_id: str):
        self.tx_id = tx_id
        super().__init__("Invalid transaction ID")
