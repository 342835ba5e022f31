"""CLI entry point for the confirmation poller."""

from __future__ import annotations

import argparse
import logging
import os
import time

from sqlalchemy.exc import SQLAlchemyError

from ...anchor_api.container import build_container
from ...anchor_api.persistence import ensure_schema
from ...common.config import get_settings
from ...common.db import get_engine
from .config import PollerConfig
from .runner import run_once

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    defaults = PollerConfig.from_env()
    p = argparse.ArgumentParser(description="Confirm pending account-chain uploads")
    p.add_argument("--interval-seconds", type=float, default=defaults.interval_seconds)
    p.add_argument("--batch-size", type=int, default=defaults.batch_size)
    p.add_argument("--workers", type=int, default=defaults.workers)
    p.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = p.parse_args(argv)

    cfg = PollerConfig(
        interval_seconds=args.interval_seconds,
        batch_size=args.batch_size,
        workers=max(1, args.workers),
        once=bool(args.once),
    )

    settings = get_settings()
    engine = get_engine(settings)
    ensure_schema(engine)
    container = build_container(settings, engine)

    logger.info(
        "[POLLER] Config: interval=%.1fs batch=%d workers=%d",
        cfg.interval_seconds,
        cfg.batch_size,
        cfg.workers,
    )

    try:
        while True:
            try:
                run_once(cfg, container.uploads, container.confirmation)
                if cfg.once:
                    return
            except SQLAlchemyError as e:
                logger.error("[POLLER] Cycle error: %s", e)
                if cfg.once:
                    raise
            time.sleep(cfg.interval_seconds)
    finally:
        container.close()


if __name__ == "__main__":
    main()
