from __future__ import annotations

import argparse
import getpass
import logging
from datetime import timedelta

from escort.activity import attach_sheet_log
from escort.auth.sessions import PropertyStore, SessionManager
from escort.auth.users import set_password
from escort.config import load_config
from escort.errors import EscortError
from escort.formatting import local_now
from escort.ids import generate_missing_request_ids
from escort.notifications import BULK_FILTERS, NOTIFICATION_TYPES, Mailer, select_bulk_targets, send_bulk_notifications
from escort.sheets.client import open_workbook
from escort.sheets.readers import diagnose_headers
from escort.sheets.schema import CANONICAL_COLUMNS
from escort.sheets.writers import append_missing_columns
from escort.store import SheetStore

logger = logging.getLogger("escort.cli")


def _store(cfg) -> SheetStore:
    return SheetStore(open_workbook(cfg), cache_ttl=cfg.cache_ttl_seconds)


def cmd_serve(cfg, args) -> int:
    from escort.web.app import create_app

    app = create_app(cfg)
    app.run(host=args.host or cfg.host, port=args.port or cfg.port, debug=args.debug, threaded=True)
    return 0


def cmd_generate_ids(cfg, args) -> int:
    store = _store(cfg)
    if not args.dry_run:
        attach_sheet_log(store, cfg.timezone)
    filled = generate_missing_request_ids(store, local_now(cfg.timezone), dry_run=args.dry_run)
    for row_num, new_id in filled:
        print(f"row={row_num} request_id={new_id}")
    print(f"generated={len(filled)} dry_run={args.dry_run}")
    return 0


def cmd_notify(cfg, args) -> int:
    store = _store(cfg)
    now = local_now(cfg.timezone)
    if args.dry_run:
        targets = select_bulk_targets(store, args.filter, now.date())
        for a in targets:
            print(f"[DRY-RUN] would notify assignment={a['Assignment ID']} rider={a['Rider Name']}")
        print(f"targets={len(targets)} filter={args.filter} type={args.type} dry_run=True")
        return 0

    attach_sheet_log(store, cfg.timezone)
    result = send_bulk_notifications(store, Mailer.from_config(cfg), args.filter, args.type, now)
    for err in result["errors"]:
        print(f"error {err}")
    print(f"successful={result['successful']} failed={result['failed']}")
    return 0 if result["failed"] == 0 else 1


def cmd_check_headers(cfg, args) -> int:
    store = _store(cfg)
    problems = 0
    for name, expected in CANONICAL_COLUMNS.items():
        table = store.table(name, required=False)
        report = diagnose_headers(name, table.header)
        bad = report["missing"] or report["duplicates"] or report["blank_positions"]
        problems += 1 if bad else 0
        print(
            f"sheet={name} missing={len(report['missing'])} duplicates={len(report['duplicates'])} "
            f"blank={len(report['blank_positions'])} unknown={len(report['unknown'])} out_of_order={report['out_of_order']}"
        )
        for col in report["missing"]:
            print(f"  missing: {col}")
        for col in report["duplicates"]:
            print(f"  duplicate: {col}")

        if args.repair and report["missing"]:
            if args.dry_run:
                print(f"  [DRY-RUN] would append {len(report['missing'])} column(s)")
                continue
            ws = store.worksheet(name, create=True)
            added = append_missing_columns(ws, table.header, expected)
            store.invalidate(name)
            print(f"  appended={len(added)}")
    print(f"sheets_with_problems={problems}")
    return 0 if problems == 0 or args.repair else 1


def cmd_purge_sessions(cfg, args) -> int:
    manager = SessionManager(PropertyStore(cfg.session_store_path), timedelta(hours=cfg.session_hours))
    print(f"purged={manager.purge_expired()}")
    return 0


def cmd_set_password(cfg, args) -> int:
    password = getpass.getpass(f"Password for {args.email}: ")
    if password != getpass.getpass("Repeat: "):
        print("ERROR passwords do not match")
        return 1
    created = set_password(_store(cfg), args.email, password, args.role, args.name)
    print(f"user={args.email} created={created}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="escort")
    parser.add_argument("--backend", choices=["gsheets", "memory"], help="Override ESCORT_BACKEND.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the development web server.")
    p.add_argument("--host", default="")
    p.add_argument("--port", type=int, default=0)
    p.add_argument("--debug", action="store_true")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("generate-ids", help="Give request rows without a valid ID a new one.")
    p.add_argument("--dry-run", action="store_true", help="Report without writing.")
    p.set_defaults(func=cmd_generate_ids)

    p = sub.add_parser("notify", help="Send assignment notifications in bulk.")
    p.add_argument("--filter", choices=BULK_FILTERS, default="pending")
    p.add_argument("--type", choices=NOTIFICATION_TYPES, default="Both")
    p.add_argument("--dry-run", action="store_true", help="List targets without sending.")
    p.set_defaults(func=cmd_notify)

    p = sub.add_parser("check-headers", help="Diagnose header rows against the canonical columns.")
    p.add_argument("--repair", action="store_true", help="Append missing columns.")
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_check_headers)

    p = sub.add_parser("purge-sessions", help="Delete expired sessions.")
    p.set_defaults(func=cmd_purge_sessions)

    p = sub.add_parser("set-password", help="Create a user or reset their password.")
    p.add_argument("email")
    p.add_argument("--role", default="", choices=["", "admin", "dispatcher", "rider"])
    p.add_argument("--name", default="")
    p.set_defaults(func=cmd_set_password)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_config(**({"backend": args.backend} if args.backend else {}))
        return args.func(cfg, args)
    except (EscortError, RuntimeError) as e:
        logger.debug("command failed", exc_info=True)
        print(f"ERROR command={args.command} err={e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
