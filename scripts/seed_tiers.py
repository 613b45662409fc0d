#!/usr/bin/env python3
"""
Seed the approval tier catalog from a YAML configuration.

Loads the configuration through ``approval_config.get_active_config()``,
creates missing tables, creates or updates tiers by name, checks that the
resulting active catalog is usable, and commits.

Usage:
    python3 scripts/seed_tiers.py [--config PATH] [--database-url URL]
"""

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seed approval tiers from YAML")
    parser.add_argument("--config", type=Path, default=None,
                        help="Configuration file (default: packaged default.yaml)")
    parser.add_argument("--database-url", default=os.environ.get("DATABASE_URL"),
                        help="SQLAlchemy URL (default: $DATABASE_URL)")
    parser.add_argument("--actor-id", type=UUID, default=SYSTEM_ACTOR_ID)
    parser.add_argument("--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.database_url:
        print("Error: pass --database-url or set DATABASE_URL", file=sys.stderr)
        return 2

    import logging

    from approval_config import get_active_config
    from approval_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from approval_kernel.exceptions import ConfigurationError
    from approval_kernel.logging_config import configure_logging
    from approval_kernel.services.tier_catalog import ApprovalTierCatalog

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    config = get_active_config(args.config)
    init_engine_from_url(args.database_url)
    create_tables()

    try:
        with session_scope() as session:
            catalog = ApprovalTierCatalog(session)
            catalog.seed_from_config(config, args.actor_id)
            active = catalog.list_active_tiers()
    except ConfigurationError as exc:
        print(f"Catalog is not usable after seeding: {exc.reason}", file=sys.stderr)
        return 1

    print(f"Seeded {len(config.tiers)} tier(s) from {config.config_id} "
          f"(checksum {config.checksum[:16]}...)")
    for tier in active:
        upper = tier.max_amount if tier.max_amount is not None else "unbounded"
        committee = " +committee" if tier.requires_committee_approval else ""
        print(f"  {tier.name:<20} [{tier.min_amount}, {upper})  "
              f"{tier.authority_role.value}{committee}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
