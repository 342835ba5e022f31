"""Per-chain tag, size limit and fee rules.

Pure functions of (payload size, user preference, date); nothing here talks to
the network or the database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ..domain.errors import PayloadTooLarge
from ..domain.models import Chain

IOTA_MAX_PAYLOAD_BYTES = 32 * 1024
SIGNUM_MAX_PAYLOAD_BYTES = 1000

FEE_BUCKETS = 6
DEFAULT_FEE_UNIT_PLANCK = 735_000

TAG_PREFIX_MAX_LEN = 16

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class ChainPolicy:
    chain: Chain
    max_payload_bytes: int
    charges_fee: bool


POLICIES = {
    Chain.IOTA: ChainPolicy(Chain.IOTA, IOTA_MAX_PAYLOAD_BYTES, charges_fee=False),
    Chain.SIGNUM: ChainPolicy(Chain.SIGNUM, SIGNUM_MAX_PAYLOAD_BYTES, charges_fee=True),
}


def policy_for(chain: Chain) -> ChainPolicy:
    return POLICIES[chain]


def sanitize_prefix(raw: Optional[str]) -> str:
    if not raw:
        return ""
    return _NON_ALNUM.sub("", raw)[:TAG_PREFIX_MAX_LEN]


def build_tag(prefix: Optional[str], user_id: str, namespace: str, today: date) -> str:
    """`{prefix}@{namespace}_{DDMMYYYY}`; falls back to the user id as prefix."""
    effective = sanitize_prefix(prefix) or str(user_id)
    return f"{effective}@{namespace}_{today.strftime('%d%m%Y')}"


def check_size(chain: Chain, size_bytes: int) -> None:
    limit = policy_for(chain).max_payload_bytes
    if size_bytes > limit:
        raise PayloadTooLarge(size_bytes=size_bytes, limit_bytes=limit)


def fee_bucket(size_bytes: int) -> int:
    """Bucket 1..6 over 0..1000 bytes: ceil(size * 6 / 1000), at least 1, at most 6."""
    bucket = -(-max(size_bytes, 0) * FEE_BUCKETS // SIGNUM_MAX_PAYLOAD_BYTES)
    return min(FEE_BUCKETS, max(1, bucket))


def compute_fee(chain: Chain, size_bytes: int, unit_planck: int = DEFAULT_FEE_UNIT_PLANCK) -> Optional[int]:
    if not policy_for(chain).charges_fee:
        return None
    return fee_bucket(size_bytes) * unit_planck
