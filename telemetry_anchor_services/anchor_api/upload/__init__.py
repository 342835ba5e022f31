from .payload_builder import BuiltPayload, build_payload
from .policy import build_tag, check_size, compute_fee, fee_bucket, policy_for

__all__ = [
    "BuiltPayload",
    "build_payload",
    "build_tag",
    "check_size",
    "compute_fee",
    "fee_bucket",
    "policy_for",
]
