"""
Service scheduler entry point.

Runs the HTTP API under uvicorn, or prints the seeded center's slot board
for a date as an offline developer aid.

Usage:
    API server:   python main.py serve
    Slot board:   python main.py console 2025-03-18 [--duration 60]
"""

import argparse
import logging
from datetime import date, timedelta

from service_scheduler.config import settings
from service_scheduler.data.centers import DEFAULT_CENTER_ID
from service_scheduler.engine import SchedulingEngine
from service_scheduler.errors import SchedulingError

logger = logging.getLogger(__name__)

GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


def _run_server() -> None:
    """Start the API server."""
    import uvicorn

    from service_scheduler.api import create_app

    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


def _run_console(day: str, duration: int) -> int:
    """Print availability and eligible technicians for every slot of ``day``."""
    engine = SchedulingEngine()
    try:
        slots = engine.availability(DEFAULT_CENTER_ID, day, duration)
    except SchedulingError as e:
        print(f"{RED}{e.message}{RESET}")
        return 1

    print(f"{BOLD}{DEFAULT_CENTER_ID} on {day}, {duration}-minute service{RESET}")
    if not slots:
        print(f"{DIM}  closed{RESET}")
        return 0

    for slot in slots:
        if slot.is_past:
            colour, label = DIM, "past"
        elif not slot.available:
            colour, label = RED, "full"
        elif slot.requires_approval:
            colour, label = YELLOW, "needs approval"
        else:
            colour, label = GREEN, "open"
        techs = engine.available_technicians(DEFAULT_CENTER_ID, day, slot.time, duration, [])
        names = ", ".join(t.name for t in techs) or "-"
        print(f"{colour}  {slot.time}-{slot.end_time}  {label:<15}{RESET} {DIM}{names}{RESET}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="EV service center scheduler")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the HTTP API")
    console = sub.add_parser("console", help="Print a slot board")
    console.add_argument(
        "date", nargs="?", default=(date.today() + timedelta(days=1)).isoformat(),
        help="YYYY-MM-DD (default: tomorrow)",
    )
    console.add_argument("--duration", type=int, default=60, help="Minutes (default: 60)")
    args = parser.parse_args()

    if args.command == "console":
        return _run_console(args.date, args.duration)
    _run_server()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
