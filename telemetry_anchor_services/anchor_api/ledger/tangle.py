"""Client for the DAG-style chain (IOTA / Shimmer node core API v2).

A tagged-data block is posted without parents or nonce; the node picks tips
and does the proof of work. Inclusion of the block is treated as success.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.errors import NodeRejected
from ..domain.models import Chain
from .base import LedgerClient, SubmitReceipt, TransactionInclusion

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 2
TAGGED_DATA_PAYLOAD_TYPE = 5


def utf8_to_hex(value: str | bytes) -> str:
    raw = value.encode("utf-8") if isinstance(value, str) else value
    return "0x" + raw.hex()


def _json_object(response, what: str) -> dict:
    try:
        body = response.json()
    except ValueError as exc:
        raise NodeRejected(f"Node returned a non-JSON response for {what}", node_status=response.status_code) from exc
    if not isinstance(body, dict):
        raise NodeRejected(f"Unexpected response for {what}", node_status=response.status_code)
    return body


class TangleClient(LedgerClient):
    chain = Chain.IOTA

    def submit_tagged(self, node_address: Optional[str], tag: str, payload_bytes: bytes) -> SubmitReceipt:
        node = (node_address or self.default_node).rstrip("/")
        body = {
            "protocolVersion": PROTOCOL_VERSION,
            "payload": {
                "type": TAGGED_DATA_PAYLOAD_TYPE,
                "tag": utf8_to_hex(tag),
                "data": utf8_to_hex(payload_bytes),
            },
        }

        response = self._request("POST", f"{node}/api/core/v2/blocks", json=body)
        data = _json_object(response, "block submission")
        block_id = data.get("blockId")
        if not block_id:
            raise NodeRejected("Node response did not contain a blockId", node_status=response.status_code)

        logger.info("[TANGLE] Block posted tag=%s block_id=%s node=%s", tag, block_id, node)
        return SubmitReceipt(transaction_id=block_id, node=node, raw=data)

    def lookup_transaction(self, tx_id: str) -> Optional[TransactionInclusion]:
        meta_resp = self._request(
            "GET",
            f"{self.default_node}/api/core/v2/blocks/{tx_id}/metadata",
            allow_statuses=(404,),
        )
        if meta_resp.status_code == 404:
            return None

        index = _json_object(meta_resp, "block metadata").get("referencedByMilestoneIndex")
        if index is None:
            return None

        ms_resp = self._request(
            "GET",
            f"{self.default_node}/api/core/v2/milestones/by-index/{int(index)}",
            allow_statuses=(404,),
        )
        if ms_resp.status_code == 404:
            return None

        timestamp = _json_object(ms_resp, "milestone").get("timestamp")
        if timestamp is None:
            return None

        return TransactionInclusion(
            transaction_id=tx_id,
            height=int(index),
            block_timestamp_ms=int(timestamp) * 1000,
        )
