"""Domain model and errors of the anchoring core."""

from .errors import (
    AnchorError,
    ChainMisconfigured,
    InternalError,
    InvalidSelection,
    InvalidTransactionId,
    NoMatchingReadings,
    NoMatchingRecord,
    NodeConnectionFailed,
    NodeRejected,
    NodeSubmissionError,
    NotYetIncluded,
    PayloadTooLarge,
)
from .models import (
    AttemptContext,
    Chain,
    Reading,
    UploadAttempt,
    UploadedMessage,
    UploadStatus,
    UserPreferences,
    can_transition,
    initial_status,
)

__all__ = [
    "AnchorError",
    "ChainMisconfigured",
    "InternalError",
    "InvalidSelection",
    "InvalidTransactionId",
    "NoMatchingReadings",
    "NoMatchingRecord",
    "NodeConnectionFailed",
    "NodeRejected",
    "NodeSubmissionError",
    "NotYetIncluded",
    "PayloadTooLarge",
    "AttemptContext",
    "Chain",
    "Reading",
    "UploadAttempt",
    "UploadedMessage",
    "UploadStatus",
    "UserPreferences",
    "can_transition",
    "initial_status",
]
