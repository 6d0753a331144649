#!/usr/bin/env python3
"""Command-line interface for the matchmaking core.

Commands:
  - import      : Import an attendee roster (csv/xlsx/xls)
  - scan        : Record a badge scan between two identifiers
  - auto-pack   : Greedily schedule a day's pending meeting requests
  - meetings    : List meetings for an actor
  - export-ics  : Export an actor's scheduled meetings as .ics

Typical usage:
  python -m src.cli import roster.csv --dry-run
  python -m src.cli auto-pack 2025-09-15
  python -m src.cli export-ics a-123 --out meetings.ics

The default in-memory store does not persist between invocations; set
STORE_BACKEND=postgres and DATABASE_URL for real use.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from src.configs.settings import get_settings
from src.exceptions import MatchmakingError
from src.factory import create_services
from src.ingestion.merge import MergeStrategy
from src.ingestion.parsers import detect_file_format
from src.ingestion.pipeline import UploadConfig
from src.monitoring.logging import configure_from_settings
from src.schemas.meeting import MeetingStatus


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="matchmaking", description="Matchmaking core CLI")
    sub = p.add_subparsers(dest="cmd")

    # import
    pi = sub.add_parser("import", help="Import an attendee roster")
    pi.add_argument("file", help="Path to the roster file")
    pi.add_argument(
        "--format",
        choices=["csv", "xlsx", "xls"],
        default=None,
        help="File format (default: from extension)",
    )
    pi.add_argument(
        "--mapping",
        default=None,
        help="Path to a JSON object mapping source columns to target fields",
    )
    pi.add_argument("--dry-run", action="store_true", help="Validate only, write nothing")
    pi.add_argument(
        "--skip-duplicates", action="store_true", help="Skip rows matching an attendee"
    )
    pi.add_argument(
        "--merge-strategy",
        choices=[s.value for s in MergeStrategy],
        default=MergeStrategy.MERGE.value,
        help="How to combine a duplicate row with the stored attendee",
    )
    pi.add_argument("--uploaded-by", default=None, help="Uploader recorded in the audit log")

    # scan
    ps = sub.add_parser("scan", help="Record a badge scan")
    ps.add_argument("from_identifier", help="Scanning actor id, badge id or QR token")
    ps.add_argument("to_identifier", nargs="?", default=None, help="Scanned identifier")
    ps.add_argument(
        "--payload",
        default=None,
        help="Raw scanner payload to decode instead of to_identifier",
    )

    # auto-pack
    pa = sub.add_parser("auto-pack", help="Schedule pending meetings for a day")
    pa.add_argument("day", help="ISO day, e.g. 2025-09-15")
    pa.add_argument("--profile", default="default", help="Match scoring profile")

    # meetings
    pm = sub.add_parser("meetings", help="List meetings for an actor")
    pm.add_argument("actor_id", help="Actor id")
    pm.add_argument(
        "--status", choices=[s.value for s in MeetingStatus], default=None
    )

    # export-ics
    pe = sub.add_parser("export-ics", help="Export scheduled meetings as .ics")
    pe.add_argument("actor_id", help="Actor whose meetings to export")
    pe.add_argument("--out", "-o", default=None, help="Output path (default: stdout)")

    return p.parse_args(argv)


def _read_json(path: str) -> dict:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Mapping not found: {p}")
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}", file=sys.stderr)
        return 1
    except MatchmakingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    settings = get_settings()
    configure_from_settings(settings)
    services = create_services(settings)

    try:
        if args.cmd == "import":
            path = Path(args.file)
            if not path.exists():
                raise FileNotFoundError(f"Roster not found: {path}")
            config = UploadConfig(
                mapping=_read_json(args.mapping) if args.mapping else {},
                dry_run=bool(args.dry_run),
                skip_duplicates=bool(args.skip_duplicates),
                merge_strategy=MergeStrategy(args.merge_strategy),
                file_name=path.name,
                uploaded_by=args.uploaded_by,
            )
            file_format = args.format or detect_file_format(path.name)
            result = services.pipeline.process_upload(
                path.read_bytes(), file_format, config
            )
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            return 0 if result.failed == 0 else 3

        if args.cmd == "scan":
            if args.payload is not None:
                scan = services.scan_processor.process_scanner_payload(
                    args.from_identifier, args.payload
                )
            elif args.to_identifier:
                scan = services.scan_processor.process_scan(
                    args.from_identifier, args.to_identifier
                )
            else:
                print("Error: to_identifier or --payload is required", file=sys.stderr)
                return 1
            print(json.dumps(scan.to_document(), indent=2, ensure_ascii=False))
            return 0

        if args.cmd == "auto-pack":
            result = services.scheduler.auto_pack_meetings(args.day, args.profile)
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            return 0

        if args.cmd == "meetings":
            meetings = services.scheduler.get_meetings_for_actor(
                args.actor_id, args.status
            )
            print(
                json.dumps(
                    [m.to_document() for m in meetings], indent=2, ensure_ascii=False
                )
            )
            return 0

        if args.cmd == "export-ics":
            meetings = services.scheduler.get_meetings_for_actor(
                args.actor_id, MeetingStatus.SCHEDULED
            )
            calendar = services.scheduler.export_to_ics(meetings)
            if args.out:
                Path(args.out).write_text(calendar, encoding="utf-8")
                print(f"Wrote {len(meetings)} meetings to {args.out}")
            else:
                sys.stdout.write(calendar)
            return 0
    finally:
        services.close()

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
