"""Check bookable slots for a technique or a mixed group as JSON or table.

Reads the snapshot from DATA_API_URL when set, otherwise from the JSON files
in DATA_DIR (default: data/).

Run with: python scripts/check_availability.py --technique potters_wheel --participants 2
Slot:     python scripts/check_availability.py --technique painting --participants 4 --date 2026-02-12 --time 11:00
Range:    python scripts/check_availability.py --technique hand_modeling --participants 1 --days 14
Group:    python scripts/check_availability.py --potters 2 --painting 3 --date 2026-02-14 --table

Valid techniques: potters_wheel, hand_modeling, painting (molding = hand_modeling)

Exit codes:
  0 = success (JSON or table on stdout)
  1 = error (message on stderr)
"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.availability.config import get_config  # noqa: E402
from src.availability.errors import AvailabilityError  # noqa: E402
from src.availability.logging import setup_logging  # noqa: E402
from src.availability.service import AvailabilityService  # noqa: E402
from src.availability.store import get_store  # noqa: E402


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check studio slot availability as JSON or table.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--technique", type=str, default=None, help="Technique to book.")
    parser.add_argument(
        "--participants", type=int, default=1, help="Seats needed (default: 1)."
    )
    parser.add_argument(
        "--date", type=str, default=None, help="Date YYYY-MM-DD (default: today)."
    )
    parser.add_argument(
        "--time", type=str, default=None, help="Single start time HH:MM (needs --date)."
    )
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Days to scan from --date (default: 1 with --date, else SEARCH_DAYS).",
    )

    group = parser.add_argument_group("mixed group (replaces --technique/--participants)")
    group.add_argument("--potters", type=int, default=0, help="Potter's wheel seats.")
    group.add_argument("--hand-modeling", type=int, default=0, help="Hand modeling seats.")
    group.add_argument("--painting", type=int, default=0, help="Painting seats.")

    parser.add_argument(
        "--table",
        action="store_true",
        help="Output a human-readable table instead of JSON.",
    )
    return parser.parse_args(argv)


def _build_query(args: argparse.Namespace) -> tuple[str, dict[str, str]]:
    """Translate CLI flags to the API's query parameters."""
    query: dict[str, str] = {}
    if args.date:
        query["date"] = args.date
    if args.time:
        query["time"] = args.time
    if args.days is not None:
        query["daysAhead"] = str(args.days)

    if args.potters or args.hand_modeling or args.painting:
        query["pottersWheel"] = str(args.potters)
        query["handModeling"] = str(args.hand_modeling)
        query["painting"] = str(args.painting)
        return "group", query

    query["technique"] = args.technique or ""
    query["participants"] = str(args.participants)
    return "single", query


def _format_table(slots: list[dict]) -> str:
    """Format decisions as a human-readable table.

    Columns: Date | Time | Bookable | Reason | Free
    """
    if not slots:
        return "(no open slots in range)"

    headers = ["Date", "Time", "Bookable", "Reason", "Free"]

    rows = []
    for s in slots:
        if "availableCount" in s:
            free = f"{s['availableCount']}/{s['totalCapacity']}"
        else:
            parts = []
            if s.get("potters"):
                parts.append(f"wheel {s['potters']['availableCount']}")
            if s.get("handWork"):
                parts.append(f"hand {s['handWork']['availableCount']}")
            free = ", ".join(parts) or "-"
        rows.append(
            [
                s["date"],
                s["time"],
                "yes" if s["canBook"] else "no",
                s["blockedReason"] if s["blockedReason"] != "none" else "-",
                free,
            ]
        )

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [
        " | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows
    ]

    return "\n".join([header_line, separator, *row_lines])


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)

    mode, query = _build_query(args)
    service = AvailabilityService(get_store(config), config)
    _log(f"check_availability: {mode} query {query}")

    try:
        if mode == "group":
            result = service.group_availability(query)
        else:
            result = service.availability(query)
    except AvailabilityError as e:
        _log(f"ERROR: {e}")
        return 1

    slots = [result["slot"]] if "slot" in result else result["slots"]
    if args.table:
        print(_format_table(slots))
    else:
        print(json.dumps(result, indent=2, ensure_ascii=False))

    _log(f"check_availability: {sum(1 for s in slots if s['canBook'])}/{len(slots)} bookable")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
