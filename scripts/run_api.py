#!/usr/bin/env python3
"""
Serve the contract signing API with uvicorn.

Configuration comes from get_active_config(): the shipped default set, or
the file named by --config / CONTRACT_CONFIG_PATH, with CONTRACT_* overrides.

Usage:
    python3 scripts/run_api.py [--config path.yaml] [--host 0.0.0.0] [--port 8000]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the contract signing API.")
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML file.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables and triggers before serving (local/dev databases).",
    )
    return parser.parse_args()


def main() -> int:
    import uvicorn

    from contract_api.app import create_app
    from contract_config import get_active_config
    from contract_config.bridges import init_engine
    from contract_kernel.db.engine import create_tables

    args = _parse_args()
    config = get_active_config(args.config)
    init_engine(config)
    if args.create_tables:
        create_tables()

    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
