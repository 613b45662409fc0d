#!/usr/bin/env python3
"""
Reconcile pending loan applications against the live tier catalog.

Runs ``ApprovalWorkflowEngine.reconcile_all`` in one transaction and
prints one line per application.  ``--dry-run`` rolls the transaction
back instead of committing.

Usage:
    python3 scripts/reconcile_statuses.py [--database-url URL] [--dry-run]
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
    parser = argparse.ArgumentParser(
        description="Reconcile pending applications with the tier catalog",
    )
    parser.add_argument("--database-url", default=os.environ.get("DATABASE_URL"),
                        help="SQLAlchemy URL (default: $DATABASE_URL)")
    parser.add_argument("--actor-id", type=UUID, default=SYSTEM_ACTOR_ID)
    parser.add_argument("--dry-run", action="store_true",
                        help="Report changes without committing them")
    parser.add_argument("--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.database_url:
        print("Error: pass --database-url or set DATABASE_URL", file=sys.stderr)
        return 2

    import logging

    from approval_kernel.db.engine import get_session, init_engine_from_url
    from approval_kernel.logging_config import LogContext, configure_logging
    from approval_kernel.services.workflow_service import ApprovalWorkflowEngine

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    init_engine_from_url(args.database_url)

    session = get_session()
    try:
        with LogContext.bind(actor_id=args.actor_id):
            results = ApprovalWorkflowEngine(session).reconcile_all(args.actor_id)
        if args.dry_run:
            session.rollback()
        else:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    changed = failed = 0
    for result in results:
        if not result.success:
            failed += 1
            print(f"  FAILED  {result.application_id}: {result.message}")
        elif result.details.get("changed"):
            changed += 1
            print(f"  CHANGED {result.application_id}: {result.message}")

    mode = " (dry run, rolled back)" if args.dry_run else ""
    print(f"Reconciled {len(results)} application(s): {changed} changed, "
          f"{failed} failed{mode}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
