"""Application container: owns the engine-backed stores and the chain clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from ..common.config import Settings
from .ledger import LedgerClients, SignumClient, TangleClient
from .persistence import (
    AttemptRecorder,
    ReadingRepository,
    UploadRecordStore,
    UserPreferencesRepository,
)
from .services import ConfirmationService, StatsService, UploadOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: Engine
    readings: ReadingRepository
    users: UserPreferencesRepository
    attempts: AttemptRecorder
    uploads: UploadRecordStore
    ledgers: LedgerClients
    uploader: UploadOrchestrator
    confirmation: ConfirmationService
    stats: StatsService

    def close(self) -> None:
        self.ledgers.close()


def build_ledgers(settings: Settings) -> LedgerClients:
    return LedgerClients(
        tangle=TangleClient(
            settings.iota_node_url,
            settings.iota_network,
            settings.iota_explorer_base,
            timeout=settings.node_timeout_seconds,
        ),
        signum=SignumClient(
            settings.signum_node_host,
            settings.signum_network,
            settings.signum_explorer_base,
            timeout=settings.node_timeout_seconds,
            deadline_minutes=settings.signum_deadline_minutes,
        ),
    )


def build_container(
    settings: Settings,
    engine: Engine,
    ledgers: Optional[LedgerClients] = None,
) -> Container:
    ledgers = ledgers or build_ledgers(settings)
    readings = ReadingRepository(engine)
    users = UserPreferencesRepository(engine)
    attempts = AttemptRecorder(engine)
    uploads = UploadRecordStore(engine)

    logger.info(
        "[APP] Container ready iota_node=%s signum_node=%s",
        ledgers.tangle.default_node,
        ledgers.signum.default_node,
    )
    return Container(
        settings=settings,
        engine=engine,
        readings=readings,
        users=users,
        attempts=attempts,
        uploads=uploads,
        ledgers=ledgers,
        uploader=UploadOrchestrator(settings, readings, users, attempts, uploads, ledgers),
        confirmation=ConfirmationService(uploads, ledgers),
        stats=StatsService(uploads, attempts),
    )
