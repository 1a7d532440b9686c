"""
Command-line entry point.

Usage:
    Console demo:      python main.py console [--scenario commit]
    New secret:        python main.py generate-secret
    Check a slot:      python main.py availability 2024-06-04 14:00
    Confirm a link:    python main.py confirm <token>

``availability`` and ``confirm`` talk to Google Calendar and need
GOOGLE_CALENDAR_ID and GOOGLE_ACCESS_TOKEN in the environment.
"""

import argparse
import asyncio
import logging
import sys

from turnero.config import settings

logger = logging.getLogger(__name__)


def _build_live_workflow():
    """Workflow wired to Google Calendar; emails are only logged."""
    from turnero.booking.config_store import InMemoryConfigStore
    from turnero.booking.workflow import build_workflow
    from turnero.tools.google_calendar import GoogleCalendarGateway
    from turnero.tools.notifications import LogDispatcher

    if not settings.calendar.calendar_id or not settings.calendar.access_token:
        logger.error("GOOGLE_CALENDAR_ID and GOOGLE_ACCESS_TOKEN must be set")
        sys.exit(1)
    return build_workflow(
        config_store=InMemoryConfigStore.from_settings(settings),
        gateway=GoogleCalendarGateway.from_config(settings.calendar),
        dispatcher=LogDispatcher(),
    )


def _run_console_mode(scenario) -> None:
    """Start the offline console demo (no credentials required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    if scenario:
        asyncio.run(session.run_scenario(scenario))
    else:
        asyncio.run(session.run())


def _run_availability(civil_date: str, civil_time: str) -> int:
    from turnero.errors import BookingError

    workflow = _build_live_workflow()
    try:
        available = asyncio.run(workflow.check_availability(civil_date, civil_time))
    except BookingError as exc:
        logger.error("Availability check failed: %s", exc)
        sys.stderr.write(exc.user_message + "\n")
        return 1
    sys.stdout.write(("disponible" if available else "ocupado") + "\n")
    return 0


def _run_confirm(token: str) -> int:
    from turnero.errors import BookingError

    workflow = _build_live_workflow()
    try:
        result = asyncio.run(workflow.confirm(token))
    except BookingError as exc:
        logger.error("Confirmation failed: %s", exc)
        sys.stderr.write(exc.user_message + "\n")
        return 1
    sys.stdout.write(result.message + "\n")
    if result.event_id:
        sys.stdout.write(f"eventId: {result.event_id}\n")
    return 0 if result.committed else 2


def main() -> int:
    parser = argparse.ArgumentParser(description="Appointment booking service tools.")
    commands = parser.add_subparsers(dest="command", required=True)

    console = commands.add_parser("console", help="Run the offline console demo.")
    console.add_argument("--scenario", default=None, help="Auto-play a pre-scripted scenario.")

    commands.add_parser("generate-secret", help="Print a new ENCRYPTION_SECRET value.")

    availability = commands.add_parser("availability", help="Check one slot in Google Calendar.")
    availability.add_argument("date", help="YYYY-MM-DD")
    availability.add_argument("time", help="HH:MM")

    confirm = commands.add_parser("confirm", help="Confirm a booking from its token.")
    confirm.add_argument("token")

    args = parser.parse_args()

    if args.command == "console":
        _run_console_mode(args.scenario)
        return 0
    if args.command == "generate-secret":
        from turnero.booking.token_codec import generate_secret

        sys.stdout.write(f"ENCRYPTION_SECRET={generate_secret()}\n")
        return 0
    if args.command == "availability":
        return _run_availability(args.date, args.time)
    return _run_confirm(args.token)


if __name__ == "__main__":
    sys.exit(main())
