"""Request guards: API key, internal job key and caller identity."""

from .api_key import current_user_id, require_api_key, require_internal_key

__all__ = [
    "current_user_id",
    "require_api_key",
    "require_internal_key",
]
