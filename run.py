import argparse
import asyncio
import json
import logging
import sys
import uuid
from datetime import date

import uvicorn

from rollcall.api.deps import get_feed, get_store
from rollcall.core.config import get_settings
from rollcall.core.exceptions import AttendanceError
from rollcall.core.logger import setup_logger
from rollcall.schemas.calendar import CalendarResponse
from rollcall.services.calendar_view import generate_working_days
from rollcall.services.reconciler import AttendanceReconciler, ThreadedHistory


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Face attendance matching and calendar service")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP/WebSocket API")
    serve.add_argument("--host", default="0.0.0.0", help="Host interface")
    serve.add_argument("--port", type=int, default=8000, help="Port")

    working = subparsers.add_parser("working-days", help="List the working days of a month")
    working.add_argument("year", type=int)
    working.add_argument("month", type=int)

    cal = subparsers.add_parser("calendar", help="Print an identity's attendance calendar as JSON")
    cal.add_argument("identity_id", type=uuid.UUID, help="Enrolled identity id")
    cal.add_argument("--year", type=int, default=None)
    cal.add_argument("--month", type=int, default=None)
    cal.add_argument("--date", dest="selected_date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")

    subparsers.add_parser("list-identities", help="List enrolled identities")
    return parser


async def _calendar(identity_id: uuid.UUID, year, month, selected_date) -> CalendarResponse:
    store = get_store()
    async with AttendanceReconciler.from_settings(ThreadedHistory(store), get_feed()) as reconciler:
        await reconciler.select_identity(identity_id, year=year, month=month)
        if selected_date is not None:
            await reconciler.select_date(selected_date)
        return CalendarResponse.from_state(reconciler.calendar)


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    settings = get_settings()
    setup_logger(settings)
    logger = logging.getLogger("rollcall.main")

    try:
        if args.command == "serve":
            uvicorn.run("rollcall.main:app", host=args.host, port=args.port, log_level=settings.log_level.lower())
            return 0

        if args.command == "working-days":
            days = generate_working_days(args.year, args.month, settings.non_working_weekdays)
            for day in days:
                print(day.isoformat())
            return 0

        if args.command == "calendar":
            response = asyncio.run(_calendar(args.identity_id, args.year, args.month, args.selected_date))
            print(json.dumps(response.model_dump(mode="json"), indent=2))
            return 0

        if args.command == "list-identities":
            identities = get_store().list_enrolled()
            if not identities:
                print("No identities registered.")
                return 0

            print(f"{'Identity':<38} {'Employee ID':<16} {'Name'}")
            print("-" * 80)
            for identity in identities:
                print(f"{str(identity.identity_id):<38} {identity.employee_id:<16} {identity.display_name}")
            return 0

    except AttendanceError as exc:
        logger.error("Application error: %s", exc)
        print(f"Error: {exc}")
        return 1
    except KeyboardInterrupt:
        print("\nStopped by user.")
        return 1
    except Exception as exc:
        logger.exception("Unexpected failure")
        print(f"Unexpected error: {exc}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
