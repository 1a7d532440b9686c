"""Tests for the request and confirmation flows."""

import json
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from turnero.booking.config_store import InMemoryConfigStore
from turnero.booking.time_normalizer import slot_range
from turnero.booking.workflow import (
    MSG_CONFIRMED,
    MSG_CONFLICT,
    MSG_RESERVE_CONFLICT,
    MSG_RESERVED,
    build_workflow,
)
from turnero.errors import (
    ConfigurationError,
    CorruptPayload,
    DispatchError,
    InvalidToken,
    UpstreamError,
    ValidationError,
)
from turnero.schemas.booking_schema import ConfirmationStatus, SystemConfig
from turnero.tools.notifications import OutboxDispatcher
from tests.conftest import (
    ADMIN_EMAIL,
    BASE_URL,
    CLIENT_EMAIL,
    StubGateway,
    TEST_SECRET,
    make_request,
    make_workflow,
)


def _token_for(codec, **overrides) -> str:
    return codec.encode(make_request(**overrides).serialize())


class TestSubmitRequest:
    @pytest.mark.asyncio
    async def test_admin_receives_link(self, workflow, outbox):
        result = await workflow.submit_request(make_request())
        assert len(outbox.outbox) == 1
        email = outbox.outbox[0]
        assert email.to == ADMIN_EMAIL
        assert email.subject == "Nueva Solicitud de Turno - Ana Gomez"
        assert "Confirmar Turno" in email.html_body
        assert result.confirm_url in email.html_body

    @pytest.mark.asyncio
    async def test_confirm_url_carries_token(self, workflow):
        result = await workflow.submit_request(make_request())
        parsed = urlparse(result.confirm_url)
        assert result.confirm_url.startswith(f"{BASE_URL}/confirmar-turno?data=")
        assert parse_qs(parsed.query)["data"] == [result.token]

    @pytest.mark.asyncio
    async def test_token_opens_to_same_request(self, workflow):
        request = make_request()
        result = await workflow.submit_request(request)
        assert workflow.open_token(result.token) == request

    @pytest.mark.asyncio
    async def test_state_trace(self, workflow):
        result = await workflow.submit_request(make_request())
        assert result.state_trace == ["submitted", "validated", "notified"]

    @pytest.mark.asyncio
    async def test_no_calendar_call_on_submit(self, config_store, codec, stub_gateway, outbox):
        workflow = make_workflow(config_store, codec, stub_gateway, outbox)
        await workflow.submit_request(make_request())
        assert stub_gateway.availability_calls == []
        assert stub_gateway.create_calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"first_name": ""}, "nombre"),
            ({"last_name": "   "}, "apellido"),
            ({"email": ""}, "email"),
            ({"email": "ana@example"}, "email"),
            ({"email": "ana @example.com"}, "email"),
            ({"date": "2024-13-04"}, "slot"),
            ({"time": "2pm"}, "slot"),
            ({"time": "14:15"}, "hora"),
            ({"date": "2024-06-02"}, "fecha"),  # Sunday
            ({"date": "2024-06-03"}, "fecha"),  # Monday
            ({"time": "09:30"}, "hora"),
            ({"time": "20:00"}, "hora"),
        ],
    )
    async def test_invalid_requests_rejected_without_side_effects(self, workflow, outbox, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.submit_request(make_request(**overrides))
        assert exc_info.value.field == field
        assert outbox.outbox == []

    @pytest.mark.asyncio
    async def test_missing_fields_user_message(self, workflow):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.submit_request(make_request(first_name="", time=""))
        assert exc_info.value.field == "nombre,hora"
        assert exc_info.value.user_message == "Todos los campos son requeridos."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("time", ["10:00", "19:30"])
    async def test_hour_window_edges_accepted(self, workflow, time):
        result = await workflow.submit_request(make_request(time=time))
        assert result.token

    @pytest.mark.asyncio
    async def test_disabled_bookings_rejected(self, workflow, config_store, outbox):
        config_store.set({"enabled": False})
        with pytest.raises(ValidationError) as exc_info:
            await workflow.submit_request(make_request())
        assert exc_info.value.field == "enabled"
        assert outbox.outbox == []

    @pytest.mark.asyncio
    async def test_policy_change_takes_effect_immediately(self, workflow, config_store):
        config_store.set({"allowed_days": [1]})
        with pytest.raises(ValidationError):
            await workflow.submit_request(make_request())
        result = await workflow.submit_request(make_request(date="2024-06-03"))
        assert result.token

    @pytest.mark.asyncio
    async def test_missing_admin_email(self, codec, calendar, outbox):
        workflow = make_workflow(InMemoryConfigStore(SystemConfig()), codec, calendar, outbox)
        with pytest.raises(ConfigurationError):
            await workflow.submit_request(make_request())
        assert outbox.outbox == []

    @pytest.mark.asyncio
    async def test_admin_dispatch_failure_propagates(self, config_store, codec, calendar):
        outbox = OutboxDispatcher(fail_for={ADMIN_EMAIL})
        workflow = make_workflow(config_store, codec, calendar, outbox)
        with pytest.raises(DispatchError):
            await workflow.submit_request(make_request())

    @pytest.mark.asyncio
    async def test_unexpected_dispatcher_error_is_wrapped(self, config_store, codec, calendar):
        class BrokenDispatcher:
            async def send(self, to, subject, html_body):
                raise ConnectionError("smtp unreachable")

        workflow = make_workflow(config_store, codec, calendar, BrokenDispatcher())
        with pytest.raises(DispatchError) as exc_info:
            await workflow.submit_request(make_request())
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestConfirm:
    @pytest.mark.asyncio
    async def test_commit_creates_exact_event(self, config_store, codec, outbox):
        gateway = StubGateway(event_id="google-evt-123")
        workflow = make_workflow(config_store, codec, gateway, outbox)

        result = await workflow.confirm(_token_for(codec))

        assert result.status == ConfirmationStatus.COMMITTED
        assert result.committed
        assert result.event_id == "google-evt-123"
        assert result.message == MSG_CONFIRMED
        assert len(gateway.create_calls) == 1
        title, time_range, attendees = gateway.create_calls[0]
        assert title == "Turno - Ana Gomez"
        assert time_range.start == datetime(2024, 6, 4, 17, 0, tzinfo=timezone.utc)
        assert time_range.end == datetime(2024, 6, 4, 17, 30, tzinfo=timezone.utc)
        assert attendees == [ADMIN_EMAIL, CLIENT_EMAIL]

    @pytest.mark.asyncio
    async def test_recheck_uses_same_range_as_create(self, config_store, codec, outbox):
        gateway = StubGateway()
        workflow = make_workflow(config_store, codec, gateway, outbox)
        await workflow.confirm(_token_for(codec))
        assert gateway.availability_calls == [gateway.create_calls[0][1]]

    @pytest.mark.asyncio
    async def test_commit_notifies_requester_then_admin(self, workflow, outbox, codec):
        await workflow.confirm(_token_for(codec))
        assert [e.to for e in outbox.outbox] == [CLIENT_EMAIL, ADMIN_EMAIL]
        assert all(e.subject == "Turno Confirmado" for e in outbox.outbox)
        assert "Hola Ana Gomez" in outbox.outbox[0].html_body
        assert "Hola Administrador" in outbox.outbox[1].html_body

    @pytest.mark.asyncio
    async def test_full_round_trip_through_calendar(self, workflow, calendar, outbox):
        submitted = await workflow.submit_request(make_request())
        result = await workflow.confirm(submitted.token)
        assert result.committed
        assert [e.event_id for e in calendar.events] == [result.event_id]
        assert result.state_trace == ["link_followed", "decoded", "rechecked", "committed"]

    @pytest.mark.asyncio
    async def test_slot_taken_between_request_and_confirm(self, workflow, calendar, outbox):
        submitted = await workflow.submit_request(make_request())
        calendar.block(slot_range("2024-06-04", "14:00"))
        outbox.reset()

        result = await workflow.confirm(submitted.token)

        assert result.status == ConfirmationStatus.CONFLICT
        assert result.message == MSG_CONFLICT
        assert result.event_id is None
        assert len(calendar.events) == 1
        assert outbox.outbox == []
        assert result.state_trace == ["link_followed", "decoded", "rejected"]

    @pytest.mark.asyncio
    async def test_overlapping_block_also_conflicts(self, workflow, calendar, codec):
        calendar.block(slot_range("2024-06-04", "13:30", minutes=45))
        result = await workflow.confirm(_token_for(codec))
        assert result.status == ConfirmationStatus.CONFLICT

    @pytest.mark.asyncio
    async def test_busy_gateway_never_creates(self, config_store, codec, outbox):
        gateway = StubGateway(available=False)
        workflow = make_workflow(config_store, codec, gateway, outbox)
        result = await workflow.confirm(_token_for(codec))
        assert not result.committed
        assert gateway.create_calls == []

    @pytest.mark.asyncio
    async def test_double_confirmation_books_once(self, workflow, calendar):
        submitted = await workflow.submit_request(make_request())
        first = await workflow.confirm(submitted.token)
        second = await workflow.confirm(submitted.token)
        assert first.committed
        assert second.status == ConfirmationStatus.CONFLICT
        assert len(calendar.events) == 1

    @pytest.mark.asyncio
    async def test_requester_dispatch_failure_does_not_undo_commit(self, config_store, codec, calendar):
        outbox = OutboxDispatcher(fail_for={CLIENT_EMAIL})
        workflow = make_workflow(config_store, codec, calendar, outbox)
        result = await workflow.confirm(_token_for(codec))
        assert result.committed
        assert len(calendar.events) == 1
        assert [e.to for e in outbox.outbox] == [ADMIN_EMAIL]

    @pytest.mark.asyncio
    async def test_admin_dispatch_failure_does_not_undo_commit(self, config_store, codec, calendar):
        outbox = OutboxDispatcher(fail_for={ADMIN_EMAIL})
        workflow = make_workflow(config_store, codec, calendar, outbox)
        result = await workflow.confirm(_token_for(codec))
        assert result.committed
        assert [e.to for e in outbox.outbox] == [CLIENT_EMAIL]

    @pytest.mark.asyncio
    async def test_disabled_after_submit(self, workflow, config_store, calendar):
        submitted = await workflow.submit_request(make_request())
        config_store.set({"enabled": False})
        with pytest.raises(ValidationError) as exc_info:
            await workflow.confirm(submitted.token)
        assert exc_info.value.field == "enabled"
        assert calendar.events == []

    @pytest.mark.asyncio
    async def test_hours_change_after_submit_does_not_block_confirm(self, workflow, config_store):
        submitted = await workflow.submit_request(make_request())
        config_store.set({"start_hour": 15, "allowed_days": [6]})
        result = await workflow.confirm(submitted.token)
        assert result.committed

    @pytest.mark.asyncio
    async def test_admin_email_removed_after_submit(self, workflow, config_store, calendar):
        submitted = await workflow.submit_request(make_request())
        config_store.set({"admin_notify_email": ""})
        with pytest.raises(ConfigurationError):
            await workflow.confirm(submitted.token)
        assert calendar.events == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fail_on", ["is_available", "create_event"])
    async def test_upstream_failure_propagates(self, config_store, codec, outbox, fail_on):
        gateway = StubGateway(fail_on=fail_on)
        workflow = make_workflow(config_store, codec, gateway, outbox)
        with pytest.raises(UpstreamError):
            await workflow.confirm(_token_for(codec))
        assert outbox.outbox == []

    @pytest.mark.asyncio
    async def test_unexpected_gateway_error_is_wrapped(self, config_store, codec, outbox):
        gateway = StubGateway(fail_on="is_available", error=RuntimeError("socket closed"))
        workflow = make_workflow(config_store, codec, gateway, outbox)
        with pytest.raises(UpstreamError) as exc_info:
            await workflow.confirm(_token_for(codec))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert gateway.create_calls == []


class TestConfirmRejectsBadTokens:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "garbage", "abc:def", "00" * 16 + ":" + "11" * 15])
    async def test_invalid_tokens(self, config_store, codec, outbox, token):
        gateway = StubGateway()
        workflow = make_workflow(config_store, codec, gateway, outbox)
        with pytest.raises(InvalidToken):
            await workflow.confirm(token)
        assert gateway.availability_calls == []
        assert outbox.outbox == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            b"not json at all",
            b"[1, 2, 3]",
            b"\xff\xfe\xfd",
            json.dumps({"nombre": "Ana", "apellido": "Gomez", "email": "ana@example.com", "fecha": "2024-06-04"}).encode(),
            json.dumps({"nombre": "Ana", "apellido": "Gomez", "email": "a@b.com", "fecha": "2024-06-04", "hora": ""}).encode(),
            json.dumps({"nombre": "Ana", "apellido": "Gomez", "email": "a@b.com", "fecha": "2024-06-04", "hora": 14}).encode(),
            json.dumps({"nombre": "Ana", "apellido": "Gomez", "email": "a@b.com", "fecha": "04/06/2024", "hora": "14:00"}).encode(),
        ],
    )
    async def test_corrupt_payloads(self, config_store, codec, outbox, payload):
        gateway = StubGateway()
        workflow = make_workflow(config_store, codec, gateway, outbox)
        with pytest.raises(CorruptPayload):
            await workflow.confirm(codec.encode(payload))
        assert gateway.availability_calls == []

    @pytest.mark.asyncio
    async def test_rejected_token_is_not_logged_in_full(self, workflow, caplog):
        token = "ab" * 16 + ":" + "cd" * 40
        with pytest.raises(InvalidToken):
            await workflow.confirm(token)
        assert token not in caplog.text


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_free_slot(self, workflow):
        assert await workflow.check_availability("2024-06-04", "14:00") is True

    @pytest.mark.asyncio
    async def test_busy_slot(self, workflow, calendar):
        calendar.block(slot_range("2024-06-04", "14:00"))
        assert await workflow.check_availability("2024-06-04", "14:00") is False
        assert await workflow.check_availability("2024-06-04", "14:30") is True

    @pytest.mark.asyncio
    async def test_malformed_slot(self, workflow):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.check_availability("2024-06-04", "9:00")
        assert exc_info.value.field == "slot"

    @pytest.mark.asyncio
    async def test_upstream_failure(self, config_store, codec, outbox):
        workflow = make_workflow(config_store, codec, StubGateway(fail_on="is_available"), outbox)
        with pytest.raises(UpstreamError):
            await workflow.check_availability("2024-06-04", "14:00")


class TestReserve:
    @pytest.mark.asyncio
    async def test_reserve_without_email(self, config_store, codec, outbox):
        gateway = StubGateway()
        workflow = make_workflow(config_store, codec, gateway, outbox)
        result = await workflow.reserve(make_request(email=""))
        assert result.committed
        assert result.message == MSG_RESERVED
        assert gateway.create_calls[0][2] == [ADMIN_EMAIL]
        assert outbox.outbox == []
        assert result.state_trace == ["submitted", "validated", "rechecked", "committed"]

    @pytest.mark.asyncio
    async def test_reserve_without_admin_email(self, codec, outbox):
        gateway = StubGateway()
        workflow = make_workflow(InMemoryConfigStore(SystemConfig()), codec, gateway, outbox)
        result = await workflow.reserve(make_request())
        assert result.committed
        assert gateway.create_calls[0][2] == []

    @pytest.mark.asyncio
    async def test_reserve_conflict(self, workflow, calendar):
        calendar.block(slot_range("2024-06-04", "14:00"))
        result = await workflow.reserve(make_request())
        assert result.status == ConfirmationStatus.CONFLICT
        assert result.message == MSG_RESERVE_CONFLICT

    @pytest.mark.asyncio
    async def test_reserve_still_enforces_policy(self, workflow, calendar):
        with pytest.raises(ValidationError):
            await workflow.reserve(make_request(date="2024-06-02"))
        assert calendar.events == []

    @pytest.mark.asyncio
    async def test_reserve_rejects_malformed_email_when_given(self, workflow):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.reserve(make_request(email="nope"))
        assert exc_info.value.field == "email"


class TestBuildWorkflow:
    @pytest.mark.asyncio
    async def test_explicit_secret_and_base_url(self, config_store, calendar, outbox, codec):
        workflow = build_workflow(
            config_store, calendar, outbox,
            secret=TEST_SECRET,
            base_url="https://example.org",
        )
        result = await workflow.submit_request(make_request())
        assert result.confirm_url.startswith("https://example.org/confirmar-turno?data=")
        assert codec.decode(result.token) == make_request().serialize()
