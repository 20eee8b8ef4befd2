#!/usr/bin/env python3
"""
Operator commands for a ledger database.

  init            create the schema and apply pending migrations
  check           run the foreign-key and integrity scans; exit 1 on violations
  export PATH     write a snapshot of the whole ledger to PATH
  import PATH     replace the ledger with the snapshot in PATH

Settings come from the packaged defaults, the optional --settings file and
the LEDGER_* environment variables, in that order.

Usage:
  python3 scripts/ledger_admin.py [--settings FILE] [--db-url URL] init
  python3 scripts/ledger_admin.py export backups/ledger-2024-06-30.json
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ledger_config.settings import load_settings  # noqa: E402
from ledger_kernel.db.engine import LedgerDatabase  # noqa: E402
from ledger_kernel.exceptions import LedgerKernelError  # noqa: E402
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger  # noqa: E402

logger = get_logger("scripts.admin")


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Ledger database administration")
    p.add_argument("--settings", help="Site settings YAML overriding the packaged defaults")
    p.add_argument("--db-url", help="Database URL (overrides settings and LEDGER_DATABASE_URL)")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create schema and apply migrations")
    sub.add_parser("check", help="Run integrity diagnostics")
    export = sub.add_parser("export", help="Write a snapshot file")
    export.add_argument("path")
    load = sub.add_parser("import", help="Load a snapshot file, replacing the ledger")
    load.add_argument("path")
    return p.parse_args(argv)


def _cmd_check(db: LedgerDatabase) -> int:
    violations = db.check_foreign_keys().violations + db.check_integrity().violations
    for v in violations:
        print(f"  {v.check:<26} {v.table:<20} {v.row_id!s:<8} {v.detail}")
    if violations:
        print(f"  {len(violations)} violation(s)", file=sys.stderr)
        return 1
    print("  ledger OK")
    return 0


def main(argv=None) -> int:
    args = _parse_args(argv)
    settings = load_settings(args.settings)
    if args.db_url:
        settings = dataclasses.replace(settings, database_url=args.db_url)
    configure_logging(level=getattr(logging, settings.log_level, logging.INFO))
    LogContext.set(actor_id="ledger_admin")

    db = LedgerDatabase(settings)
    try:
        db.initialize()
        if args.command == "init":
            print(f"  initialized {settings.database_url}")
            return 0
        if args.command == "check":
            return _cmd_check(db)
        if args.command == "export":
            data = db.export_snapshot()
            Path(args.path).write_bytes(data)
            print(f"  wrote {len(data)} bytes to {args.path}")
            return 0
        if args.command == "import":
            db.load_from_snapshot(Path(args.path).read_bytes())
            print(f"  loaded {args.path}")
            return 0
    except LedgerKernelError as exc:
        logger.error("admin_command_failed", extra={"command": args.command}, exc_info=True)
        print(f"  ERROR [{exc.code}] {exc}", file=sys.stderr)
        return 1
    finally:
        db.close()
    return 2


if __name__ == "__main__":
    sys.exit(main())
