"""Common interface of the chain clients.

Clients never retry. A transport failure raises NodeConnectionFailed, a node
refusal raises NodeRejected, and a transaction that is not in a block yet is
reported as None by lookup_transaction().
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..domain.errors import NodeConnectionFailed, NodeRejected
from ..domain.models import Chain

logger = logging.getLogger(__name__)

# HTTP-like status recorded when the node could not be reached at all.
CONNECTION_FAILURE_STATUS = 503


@dataclass(frozen=True)
class SubmitReceipt:
    transaction_id: str
    node: str
    raw: Optional[dict] = None


@dataclass(frozen=True)
class TransactionInclusion:
    transaction_id: str
    height: int
    block_timestamp_ms: int


class LedgerClient(ABC):
    """Capabilities shared by both chain variants."""

    chain: Chain

    def __init__(
        self,
        default_node: str,
        network: str,
        explorer_base: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.default_node = default_node.rstrip("/")
        self.network = network
        self.explorer_base = explorer_base.rstrip("/")
        self._http = http_client or httpx.Client(timeout=timeout)

    def explorer_url(self, tx_id: str) -> str:
        return f"{self.explorer_base}/{tx_id}"

    def close(self) -> None:
        self._http.close()

    @abstractmethod
    def lookup_transaction(self, tx_id: str) -> Optional[TransactionInclusion]:
        """Return block inclusion data, or None while the transaction is not in a block."""

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        allow_statuses: tuple[int, ...] = (),
    ) -> httpx.Response:
        tag = self.chain.value
        try:
            logger.debug("[%s] Request: %s %s params=%s", tag, method, url, params)
            response = self._http.request(method, url, params=params, data=data, json=json)
        except httpx.TimeoutException as exc:
            logger.error("[%s] Timeout talking to %s: %s", tag, url, exc)
            raise NodeConnectionFailed(
                f"Timed out connecting to node: {exc}",
                node_status=CONNECTION_FAILURE_STATUS,
            ) from exc
        except httpx.RequestError as exc:
            logger.error("[%s] Connection error talking to %s: %s", tag, url, exc)
            raise NodeConnectionFailed(
                f"Failed to connect to node: {exc}",
                node_status=CONNECTION_FAILURE_STATUS,
            ) from exc

        if response.status_code in allow_statuses:
            return response

        if response.is_error:
            message = _error_message(response)
            logger.error("[%s] Node returned HTTP %d: %s", tag, response.status_code, message)
            raise NodeRejected(
                f"Node rejected request: {message}",
                node_status=response.status_code,
                node_code=str(response.status_code),
            )
        return response


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err)
        for key in ("errorDescription", "message", "error"):
            if body.get(key):
                return str(body[key])
    return str(body)
