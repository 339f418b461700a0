#!/usr/bin/env python3
"""
Seed variant stock from the configured catalog.

Registers every catalog variant that declares ``initial_stock`` in the
stock ledger.  Existing variants are left alone unless --reset is given,
which sets total_stock back to the configured value (never below what is
currently locked).

Usage:
    python3 scripts/seed_stock.py
    python3 scripts/seed_stock.py --config dev.yaml --reset
    python3 scripts/seed_stock.py --drop
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

SEED_ACTOR_ID = "system:seed"


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed variant stock from config")
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML")
    parser.add_argument("--reset", action="store_true", help="Overwrite existing totals")
    parser.add_argument("--drop", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()

    from checkout_config import get_active_config
    from checkout_config.bridges import build_catalog
    from checkout_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
    )
    from checkout_kernel.exceptions import CheckoutKernelError
    from checkout_kernel.logging_config import configure_logging
    from checkout_kernel.selectors.inventory_selector import InventorySelector
    from checkout_kernel.services.checkout_orchestrator import CheckoutOrchestrator

    config = get_active_config(args.config)
    configure_logging(level=getattr(logging, config.logging.level))
    init_engine_from_url(config.database.url, echo=config.database.echo)
    if args.drop:
        drop_tables()
    create_tables()

    session = get_session()
    orchestrator = CheckoutOrchestrator(session, build_catalog(config))
    existing = {level.variant_id for level in InventorySelector(session).stock_levels()}
    seeded = skipped = failed = 0
    try:
        for variant in config.catalog:
            if variant.initial_stock <= 0:
                continue
            if variant.variant_id in existing and not args.reset:
                skipped += 1
                continue
            try:
                level = orchestrator.register_stock(
                    variant.variant_id,
                    variant.initial_stock,
                    variant.product_id,
                    actor_id=SEED_ACTOR_ID,
                )
            except CheckoutKernelError as exc:
                print(f"  FAILED {variant.variant_id}: {exc}")
                failed += 1
                continue
            print(f"  {level.variant_id}: total={level.total_stock} available={level.available}")
            seeded += 1
    finally:
        session.close()

    print(f"seeded={seeded} skipped={skipped} failed={failed}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
