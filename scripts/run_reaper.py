#!/usr/bin/env python3
"""
Run the inventory hold expiry reaper as a standalone worker.

Expires order intents whose hold has run out and returns their stock.
Runs until interrupted, or a single pass with --once.

Usage:
    python3 scripts/run_reaper.py
    python3 scripts/run_reaper.py --once
    python3 scripts/run_reaper.py --config prod.yaml --interval 15
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Expire timed-out order intents")
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML")
    parser.add_argument("--once", action="store_true", help="Run one pass and exit")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between passes")
    parser.add_argument("--batch-size", type=int, default=None, help="Intents per pass")
    args = parser.parse_args()

    from checkout_batch.reaper import ExpiryReaper
    from checkout_config import get_active_config
    from checkout_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from checkout_kernel.logging_config import configure_logging, get_logger

    config = get_active_config(args.config)
    configure_logging(level=getattr(logging, config.logging.level))
    logger = get_logger("scripts.run_reaper")

    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    create_tables()

    reaper = ExpiryReaper(
        get_session_factory(),
        interval_seconds=args.interval or config.reaper.interval_seconds,
        batch_size=args.batch_size or config.reaper.batch_size,
    )

    if args.once:
        result = reaper.tick()
        print(
            f"candidates={result.candidates} expired={result.expired} "
            f"stranded_released={result.stranded_released} failed={result.failed}"
        )
        return 1 if result.failed else 0

    stop = threading.Event()

    def _shutdown(signum, frame):
        logger.info("reaper_signal_received", extra={"signal": signum})
        stop.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    reaper.start()
    stop.wait()
    reaper.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
