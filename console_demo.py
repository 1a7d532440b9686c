"""
Offline console demo: runs the request and confirmation flows end to end.

Uses the real workflow, token codec, and state machine against an
in-memory calendar and an outbox instead of Google Calendar and email.
No network calls, no credentials.

Usage:
    python console_demo.py
    python console_demo.py --scenario commit
    python console_demo.py --scenario conflict
"""

import argparse
import asyncio
from typing import Optional

from turnero.booking.config_store import InMemoryConfigStore
from turnero.booking.time_normalizer import slot_range
from turnero.booking.token_codec import TokenCodec
from turnero.booking.workflow import BookingWorkflow
from turnero.config import settings
from turnero.errors import BookingError
from turnero.schemas.booking_schema import BookingRequest, SystemConfig
from turnero.tools.availability import InMemoryCalendar
from turnero.tools.notifications import OutboxDispatcher

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_ADMIN_EMAIL = "admin@turnero.local"

DEMO_REQUEST = {
    "nombre": "Ana",
    "apellido": "Gomez",
    "email": "ana@example.com",
    "fecha": "2024-06-04",
    "hora": "14:00",
}


class ConsoleSession:
    """Drives the booking workflow from the terminal."""

    SCENARIOS = ("commit", "conflict", "double", "disabled", "tampered")

    def __init__(self) -> None:
        self.calendar = InMemoryCalendar()
        self.outbox = OutboxDispatcher()
        self.config_store = InMemoryConfigStore(SystemConfig(admin_notify_email=DEMO_ADMIN_EMAIL))
        self.workflow = BookingWorkflow(
            config_store=self.config_store,
            codec=TokenCodec(settings.security.encryption_secret),
            gateway=self.calendar,
            dispatcher=self.outbox,
            base_url=settings.base_url,
        )

    def say(self, text: str, color: str = GREEN) -> None:
        print(f"{color}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  TURNERO - {title}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    # ------------------------------------------------------------------ #
    # Flow steps
    # ------------------------------------------------------------------ #

    async def submit(self, request: BookingRequest) -> Optional[str]:
        """Run the request flow; returns the token or None on rejection."""
        print(f"\n{BLUE}[Visitante]{RESET} {request.full_name} pide {request.date} {request.time}")
        try:
            result = await self.workflow.submit_request(request)
        except BookingError as exc:
            self.say(f"Solicitud rechazada: {exc.user_message}", RED)
            return None
        self.system_log(f"State trace: {' -> '.join(result.state_trace)}")
        self.system_log(f"Emails in outbox: {len(self.outbox.outbox)}")
        self.say(f"Link enviado al admin: {result.confirm_url[:80]}...")
        return result.token

    async def confirm(self, token: str) -> None:
        print(f"\n{BLUE}[Admin]{RESET} sigue el link de confirmación")
        try:
            result = await self.workflow.confirm(token)
        except BookingError as exc:
            self.say(f"Confirmación rechazada: {exc.user_message}", RED)
            return
        self.system_log(f"State trace: {' -> '.join(result.state_trace)}")
        if result.committed:
            self.say(f"{result.message} (evento {result.event_id})")
        else:
            self.say(result.message, YELLOW)

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        if scenario not in self.SCENARIOS:
            self.say(f"Unknown scenario: {scenario}", RED)
            return
        self._banner(f"Scenario: {scenario}")
        request = BookingRequest.model_validate(DEMO_REQUEST)

        if scenario == "disabled":
            self.config_store.set({"enabled": False})
            self.system_log("Admin disabled bookings")
            await self.submit(request)
        else:
            token = await self.submit(request)
            if token is None:
                return
            if scenario == "conflict":
                self.calendar.block(slot_range(request.date, request.time), "Reunión")
                self.system_log("Someone else took the slot before the admin clicked")
            elif scenario == "tampered":
                token = token[:-1] + ("0" if token[-1] != "0" else "1")
                self.system_log("Last hex digit of the token flipped")
            await self.confirm(token)
            if scenario == "double":
                self.system_log("Admin clicks the same link again")
                await self.confirm(token)

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Calendar events: {len(self.calendar.events)}{RESET}")
        print(f"{DIM}  Emails sent: {[e.to for e in self.outbox.outbox]}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{BOLD}  Horarios: {self.config_store.get().start_hour}-"
              f"{self.config_store.get().end_hour} hs, Type 'quit' to exit{RESET}")

        while True:
            values = {}
            for wire_name, label in (
                ("nombre", "Nombre"),
                ("apellido", "Apellido"),
                ("email", "Email"),
                ("fecha", "Fecha (YYYY-MM-DD)"),
                ("hora", "Hora (HH:MM)"),
            ):
                answer = input(f"{BLUE}{label}: {RESET}").strip()
                if answer.lower() in ("quit", "exit", "q"):
                    print(f"\n{DIM}Session ended.{RESET}")
                    return
                values[wire_name] = answer

            token = await self.submit(BookingRequest.model_validate(values))
            if token is None:
                continue
            answer = input(f"{BLUE}¿Confirmar como admin? (s/n): {RESET}").strip().lower()
            if answer.startswith("s"):
                await self.confirm(token)


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=list(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(session.run())


if __name__ == "__main__":
    main()
