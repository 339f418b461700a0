#!/usr/bin/env python3
"""
Serve the checkout API with uvicorn.

Usage:
    python3 scripts/serve_api.py
    python3 scripts/serve_api.py --port 8080 --no-reaper
"""

import argparse
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Serve the checkout API")
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--no-reaper",
        action="store_true",
        help="Do not run the expiry reaper in-process (run scripts/run_reaper.py instead)",
    )
    args = parser.parse_args()

    import uvicorn

    from checkout_api.app import create_app
    from checkout_config import get_active_config

    config = get_active_config(args.config)
    app = create_app(config, start_reaper=False if args.no_reaper else None)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
