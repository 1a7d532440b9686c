"""Shared test fixtures and helpers."""

from typing import Optional

import pytest

from turnero.booking.config_store import InMemoryConfigStore
from turnero.booking.state_machine import BookingStateMachine
from turnero.booking.token_codec import TokenCodec
from turnero.booking.workflow import BookingWorkflow
from turnero.errors import UpstreamError
from turnero.schemas.booking_schema import BookingRequest, SystemConfig, TimeRange
from turnero.tools.availability import InMemoryCalendar
from turnero.tools.notifications import OutboxDispatcher

TEST_SECRET = "test-secret-for-confirmation-links"
ADMIN_EMAIL = "admin@example.com"
CLIENT_EMAIL = "ana@example.com"
BASE_URL = "https://turnos.example.com"


def make_request(**overrides) -> BookingRequest:
    """Helper to create a BookingRequest inside the default policy."""
    data = {
        "first_name": "Ana",
        "last_name": "Gomez",
        "email": CLIENT_EMAIL,
        "date": "2024-06-04",  # Tuesday
        "time": "14:00",
    }
    data.update(overrides)
    return BookingRequest(**data)


class StubGateway:
    """Gateway with a fixed answer that records every call."""

    def __init__(
        self,
        available: bool = True,
        event_id: str = "google-evt-123",
        fail_on: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.available = available
        self.event_id = event_id
        self.fail_on = fail_on
        self.error = error or UpstreamError("calendar down")
        self.availability_calls: list[TimeRange] = []
        self.create_calls: list[tuple[str, TimeRange, list[str]]] = []

    async def is_available(self, time_range: TimeRange) -> bool:
        self.availability_calls.append(time_range)
        if self.fail_on == "is_available":
            raise self.error
        return self.available

    async def create_event(self, title: str, time_range: TimeRange, attendee_emails: list[str]) -> str:
        self.create_calls.append((title, time_range, list(attendee_emails)))
        if self.fail_on == "create_event":
            raise self.error
        return self.event_id


@pytest.fixture
def codec():
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def calendar():
    return InMemoryCalendar()


@pytest.fixture
def outbox():
    return OutboxDispatcher()


@pytest.fixture
def config_store():
    return InMemoryConfigStore(SystemConfig(admin_notify_email=ADMIN_EMAIL))


@pytest.fixture
def stub_gateway():
    return StubGateway()


def make_workflow(config_store, codec, gateway, dispatcher) -> BookingWorkflow:
    return BookingWorkflow(
        config_store=config_store,
        codec=codec,
        gateway=gateway,
        dispatcher=dispatcher,
        base_url=BASE_URL,
    )


@pytest.fixture
def workflow(config_store, codec, calendar, outbox):
    return make_workflow(config_store, codec, calendar, outbox)


@pytest.fixture
def request_sm():
    return BookingStateMachine.for_request()


@pytest.fixture
def confirmation_sm():
    return BookingStateMachine.for_confirmation()
