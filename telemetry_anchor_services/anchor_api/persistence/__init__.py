from .attempts import AttemptRecorder, make_correlation_id
from .readings import ReadingRepository
from .schema import ensure_schema
from .uploads import ConfirmationWrite, UploadRecordStore
from .users import UserPreferencesRepository

__all__ = [
    "AttemptRecorder",
    "ConfirmationWrite",
    "ReadingRepository",
    "UploadRecordStore",
    "UserPreferencesRepository",
    "ensure_schema",
    "make_correlation_id",
]
