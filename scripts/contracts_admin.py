#!/usr/bin/env python3
"""
Contract engine maintenance commands.

Commands:
    init-db        Create tables and immutability triggers.
    show ID        Print a contract with its derived status, signatures and history.
    sync-expired   Rewrite stale cached statuses (e.g. sent -> expired).

Usage:
    python3 scripts/contracts_admin.py [--config path.yaml] init-db
    python3 scripts/contracts_admin.py show 42
    python3 scripts/contracts_admin.py sync-expired --actor ops
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Contract engine maintenance.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML file.")
    sub = parser.add_subparsers(dest="command", required=True)

    init_db = sub.add_parser("init-db", help="Create tables and triggers.")
    init_db.add_argument("--no-triggers", action="store_true", help="Skip trigger installation.")

    show = sub.add_parser("show", help="Show one contract.")
    show.add_argument("contract_id", type=int)

    sync = sub.add_parser("sync-expired", help="Rewrite stale cached statuses.")
    sync.add_argument("--actor", default="maintenance")

    return parser.parse_args(argv)


def _show(contract_id: int) -> int:
    from contract_kernel.db.engine import session_scope
    from contract_kernel.exceptions import ContractNotFoundError
    from contract_kernel.selectors.contract_selector import ContractSelector

    with session_scope() as session:
        selector = ContractSelector(session)
        try:
            info = selector.get(contract_id)
        except ContractNotFoundError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(f"{info.contract_number}  {info.title}")
        print(f"  status:          {info.status.value} (stored: {info.stored_status.value})")
        print(f"  sent_at:         {info.sent_at}")
        print(f"  links expire at: {info.tokens_expire_at}")
        print(f"  fully executed:  {info.fully_executed_at}")
        for party in info.parties:
            print(f"  {party.signer_type.value:<8} {party.name} <{party.email}> signed_at={party.signed_at}")
        print("  signatures:")
        for sig in selector.signatures(contract_id):
            print(f"    #{sig.id} {sig.signer_type.value} {sig.signer_name} at {sig.signed_at} from {sig.ip_address}")
        print("  history:")
        for event in selector.history(contract_id):
            print(f"    {event.occurred_at} {event.action:<15} by {event.actor}")
    return 0


def _sync(config, actor: str) -> int:
    from contract_config.bridges import build_notification_dispatcher, build_token_issuer
    from contract_kernel.db.engine import session_scope
    from contract_kernel.services.contract_service import ContractLifecycleService

    with session_scope() as session:
        service = ContractLifecycleService(
            session,
            build_token_issuer(config),
            dispatcher=build_notification_dispatcher(config),
        )
        result = service.sync_statuses(actor=actor)
    print(f"examined {result.examined} contract(s), updated {len(result.updated)}")
    for contract_id, old, new in result.updated:
        print(f"  {contract_id}: {old.value} -> {new.value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    from contract_config import get_active_config
    from contract_config.bridges import init_engine
    from contract_kernel.db.engine import create_tables

    args = _parse_args(argv)
    config = get_active_config(args.config)
    init_engine(config)

    if args.command == "init-db":
        create_tables(install_triggers=not args.no_triggers)
        print(f"tables created on {config.database.url.split(':', 1)[0]}")
        return 0
    if args.command == "show":
        return _show(args.contract_id)
    if args.command == "sync-expired":
        return _sync(config, args.actor)
    return 2


if __name__ == "__main__":
    sys.exit(main())
