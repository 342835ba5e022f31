from .confirmation import ConfirmationResult, ConfirmationService
from .stats import DailyStats, StatsService, UploadStats
from .upload_service import UploadOrchestrator, UploadOutcome

__all__ = [
    "ConfirmationResult",
    "ConfirmationService",
    "DailyStats",
    "StatsService",
    "UploadOrchestrator",
    "UploadOutcome",
    "UploadStats",
]
