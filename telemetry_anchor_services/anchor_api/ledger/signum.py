"""Client for the account-based chain (Signum node HTTP API).

Messages are signed by the node from the secret phrase sent with the request,
so the passphrase must only ever be sent to a trusted node over TLS.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.errors import InvalidTransactionId, NodeRejected
from ..domain.models import Chain
from .base import LedgerClient, SubmitReceipt, TransactionInclusion

logger = logging.getLogger(__name__)

# 2014-08-11T02:00:00Z; block timestamps count seconds from here.
GENESIS_EPOCH_MS = 1407722400000

# Height reported for transactions still sitting in the unconfirmed pool.
UNCONFIRMED_HEIGHT = 2147483647

ERROR_INCORRECT_PARAMETER = 4
ERROR_UNKNOWN_TRANSACTION = 5


@dataclass(frozen=True)
class SigningKeys:
    passphrase: str = field(repr=False)


def block_timestamp_to_ms(block_timestamp: int) -> int:
    return GENESIS_EPOCH_MS + int(block_timestamp) * 1000


class SignumClient(LedgerClient):
    chain = Chain.SIGNUM

    def __init__(self, *args, deadline_minutes: int = 1440, **kwargs):
        super().__init__(*args, **kwargs)
        self.deadline_minutes = deadline_minutes

    def _call(self, host: str, request_type: str, params: dict[str, Any], *, post: bool) -> dict[str, Any]:
        query = {"requestType": request_type}
        if post:
            response = self._request("POST", f"{host}/api", params=query, data=params)
        else:
            query.update(params)
            response = self._request("GET", f"{host}/api", params=query)

        try:
            body = response.json()
        except ValueError as exc:
            raise NodeRejected(
                f"Node returned a non-JSON response for {request_type}",
                node_status=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise NodeRejected(f"Unexpected response for {request_type}", node_status=response.status_code)
        return body

    def submit_message(
        self,
        recipient_id: str,
        fee_planck: int,
        payload_text: str,
        signing_keys: SigningKeys,
        node_host: Optional[str] = None,
    ) -> SubmitReceipt:
        host = (node_host or self.default_node).rstrip("/")
        params = {
            "recipient": recipient_id,
            "message": payload_text,
            "messageIsText": "true",
            "feeNQT": str(fee_planck),
            "deadline": str(self.deadline_minutes),
            "secretPhrase": signing_keys.passphrase,
        }

        body = self._call(host, "sendMessage", params, post=True)
        if "errorCode" in body:
            code = str(body.get("errorCode"))
            description = body.get("errorDescription") or "unknown error"
            logger.error("[SIGNUM] sendMessage rejected code=%s: %s", code, description)
            raise NodeRejected(f"Node rejected transaction: {description}", node_status=400, node_code=code)

        tx_id = body.get("transaction")
        if not tx_id:
            raise NodeRejected("Node response did not contain a transaction id", node_status=502)

        logger.info(
            "[SIGNUM] Message sent tx_id=%s fee=%s bytes=%d host=%s",
            tx_id,
            fee_planck,
            len(payload_text.encode("utf-8")),
            host,
        )
        return SubmitReceipt(transaction_id=str(tx_id), node=host, raw=body)

    def lookup_transaction(self, tx_id: str) -> Optional[TransactionInclusion]:
        if not str(tx_id).isdigit():
            raise InvalidTransactionId(tx_id)

        body = self._call(self.default_node, "getTransaction", {"transaction": tx_id}, post=False)
        if "errorCode" in body:
            code = int(body.get("errorCode"))
            if code == ERROR_UNKNOWN_TRANSACTION:
                return None
            if code == ERROR_INCORRECT_PARAMETER:
                raise InvalidTransactionId(tx_id)
            raise NodeRejected(
                body.get("errorDescription") or "getTransaction failed",
                node_status=400,
                node_code=str(code),
            )

        height = body.get("height")
        block_ts = body.get("blockTimestamp")
        if block_ts is None or height is None or int(height) >= UNCONFIRMED_HEIGHT:
            return None

        return TransactionInclusion(
            transaction_id=str(tx_id),
            height=int(height),
            block_timestamp_ms=block_timestamp_to_ms(block_ts),
        )
