from __future__ import annotations

from dataclasses import dataclass

from ..domain.models import Chain
from .base import LedgerClient, SubmitReceipt, TransactionInclusion
from .signum import SignumClient, SigningKeys
from .tangle import TangleClient


@dataclass
class LedgerClients:
    tangle: TangleClient
    signum: SignumClient

    def for_chain(self, chain: Chain) -> LedgerClient:
        return self.tangle if chain is Chain.IOTA else self.signum

    def close(self) -> None:
        self.tangle.close()
        self.signum.close()


__all__ = [
    "LedgerClient",
    "LedgerClients",
    "SignumClient",
    "SigningKeys",
    "SubmitReceipt",
    "TangleClient",
    "TransactionInclusion",
]
