"""
Booking workflow: request -> sealed token -> (out of band) confirm -> commit.

The two halves run as independent short executions. ``submit_request``
validates a visitor's request, seals it into a token and mails the admin a
link. ``confirm`` runs later when that link is followed. It opens the
token and asks the calendar again whether the slot is free, because it may
have been taken since the request. Only then does it create the event.

The calendar is the only arbiter of occupancy. There is no local lock or
reservation table. ``is_available`` followed by ``create_event`` is not
atomic, so two confirmations racing for one slot can both pass the check
if the calendar does not serialize them.
"""

from datetime import timezone
from typing import Awaitable, Optional, TypeVar

from turnero.booking.config_store import ConfigStore
from turnero.booking.state_machine import BookingStateMachine, BookingTrigger
from turnero.booking.time_normalizer import (
    ARGENTINA_TZ,
    day_of_week,
    parse_civil_date,
    parse_civil_time,
    slot_range,
)
from turnero.booking.token_codec import TokenCodec
from turnero.config import settings
from turnero.errors import (
    ConfigurationError,
    CorruptPayload,
    DispatchError,
    InvalidToken,
    UpstreamError,
    ValidationError,
)
from turnero.logging_context import get_request_logger, new_request_id
from turnero.messages.email_templates import (
    build_confirm_url,
    build_confirmation_email,
    build_request_email,
)
from turnero.schemas.booking_schema import (
    BookingRequest,
    ConfirmationResult,
    ConfirmationStatus,
    SubmissionResult,
    SystemConfig,
)
from turnero.tools.availability import AvailabilityGateway
from turnero.tools.notifications import NotificationDispatcher
from turnero.utils import is_valid_email, mask_token

logger = get_request_logger(__name__)

T = TypeVar("T")

EVENT_TITLE = "Turno - {first_name} {last_name}"
SLOT_STEP_MINUTES = 30

MSG_CONFIRMED = "Turno confirmado exitosamente. Se han enviado emails de confirmación."
MSG_CONFLICT = (
    "El horario seleccionado ya no está disponible. "
    "Puede que haya sido reservado mientras procesabas la solicitud."
)
MSG_RESERVED = "Turno reservado exitosamente."
MSG_RESERVE_CONFLICT = "El horario seleccionado no está disponible."
MSG_DISABLED = "Las reservas están deshabilitadas temporalmente."


def event_title(request: BookingRequest) -> str:
    return EVENT_TITLE.format(first_name=request.first_name, last_name=request.last_name)


class BookingWorkflow:
    """Request and confirmation flows over injected collaborators."""

    def __init__(
        self,
        config_store: ConfigStore,
        codec: TokenCodec,
        gateway: AvailabilityGateway,
        dispatcher: NotificationDispatcher,
        base_url: str = "http://localhost:3000",
        zone: timezone = ARGENTINA_TZ,
    ) -> None:
        self._config_store = config_store
        self._codec = codec
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._base_url = base_url
        self._zone = zone

    # ------------------------------------------------------------------ #
    # Request flow
    # ------------------------------------------------------------------ #

    async def submit_request(self, request: BookingRequest) -> SubmissionResult:
        """Validate, seal, and mail the admin a confirmation link.

        Raises:
            ValidationError: Bad input or outside the current policy.
            ConfigurationError: No admin address to notify.
            DispatchError: The admin email could not be sent. Nothing is
                kept; the visitor has to submit again.
        """
        new_request_id()
        sm = BookingStateMachine.for_request()
        config = self._config_store.get()

        try:
            self._validate_fields(request, require_email=True)
            self._check_policy(request, config)
            admin_email = self._require_admin_email(config)
        except (ValidationError, ConfigurationError) as exc:
            sm.transition(BookingTrigger.VALIDATION_FAILED)
            logger.info("Booking request rejected (%s): %s", type(exc).__name__, exc)
            raise
        sm.transition(BookingTrigger.VALIDATION_PASSED)

        token = self._codec.encode(request.serialize())
        confirm_url = build_confirm_url(self._base_url, token)
        subject, body = build_request_email(request, confirm_url)

        try:
            await self._dispatch(admin_email, subject, body)
        except DispatchError:
            sm.transition(BookingTrigger.NOTIFICATION_FAILED)
            logger.error("Admin notification failed for request on %s %s", request.date, request.time)
            raise
        sm.transition(BookingTrigger.NOTIFICATION_SENT)

        logger.info(
            "Booking request for %s %s sent to admin (token %s)",
            request.date, request.time, mask_token(token),
        )
        return SubmissionResult(token=token, confirm_url=confirm_url, state_trace=sm.get_state_trace())

    # ------------------------------------------------------------------ #
    # Confirmation flow
    # ------------------------------------------------------------------ #

    def open_token(self, token: str) -> BookingRequest:
        """Decode a confirmation token into the request it seals.

        Raises:
            InvalidToken: Structural or decryption failure.
            CorruptPayload: Decrypted bytes are not a complete request.
        """
        request = BookingRequest.from_payload(self._codec.decode(token))
        try:
            parse_civil_date(request.date)
            parse_civil_time(request.time)
        except ValueError as exc:
            raise CorruptPayload(f"payload carries an invalid slot: {exc}") from exc
        return request

    async def confirm(self, token: str) -> ConfirmationResult:
        """Re-check the slot and commit the booking to the calendar.

        Returns a ``conflict`` result when the slot is no longer free; in
        that case no event is created.

        Raises:
            InvalidToken, CorruptPayload: The token cannot be trusted.
            ValidationError: Bookings were disabled after the request.
            ConfigurationError: No admin address configured.
            UpstreamError: The calendar failed. Not retried.
        """
        new_request_id()
        sm = BookingStateMachine.for_confirmation()

        try:
            request = self.open_token(token)
        except (InvalidToken, CorruptPayload) as exc:
            sm.transition(BookingTrigger.TOKEN_REJECTED)
            logger.warning("Rejected confirmation token %s: %s", mask_token(token), exc)
            raise
        sm.transition(BookingTrigger.TOKEN_DECODED)

        config = self._config_store.get()
        if not config.enabled:
            sm.transition(BookingTrigger.BOOKINGS_DISABLED)
            logger.info("Confirmation refused: bookings disabled")
            raise ValidationError("enabled", "bookings are disabled", user_message=MSG_DISABLED)
        try:
            admin_email = self._require_admin_email(config)
        except ConfigurationError:
            sm.transition(BookingTrigger.VALIDATION_FAILED)
            raise

        time_range = slot_range(request.date, request.time, self._zone)
        try:
            available = await self._call_gateway("availability check", self._gateway.is_available(time_range))
        except UpstreamError:
            sm.transition(BookingTrigger.UPSTREAM_FAILED)
            raise

        if not available:
            sm.transition(BookingTrigger.SLOT_TAKEN)
            logger.warning("Slot %s %s was taken before confirmation", request.date, request.time)
            return ConfirmationResult(
                status=ConfirmationStatus.CONFLICT,
                message=MSG_CONFLICT,
                state_trace=sm.get_state_trace(),
            )
        sm.transition(BookingTrigger.SLOT_FREE)

        try:
            event_id = await self._call_gateway(
                "event creation",
                self._gateway.create_event(event_title(request), time_range, [admin_email, request.email]),
            )
        except UpstreamError:
            sm.transition(BookingTrigger.UPSTREAM_FAILED)
            raise
        sm.transition(BookingTrigger.EVENT_CREATED)
        logger.info("Booking committed: event %s for %s %s", event_id, request.date, request.time)

        # The calendar event is authoritative from here on; nothing below may undo it.
        await self._notify_committed(request, admin_email)

        return ConfirmationResult(
            status=ConfirmationStatus.COMMITTED,
            message=MSG_CONFIRMED,
            event_id=event_id,
            state_trace=sm.get_state_trace(),
        )

    # ------------------------------------------------------------------ #
    # Direct operations
    # ------------------------------------------------------------------ #

    async def check_availability(self, civil_date: str, civil_time: str) -> bool:
        """Probe the calendar for one slot, for the booking form.

        Raises:
            ValidationError: Malformed date or time.
            UpstreamError: The calendar failed.
        """
        new_request_id()
        try:
            time_range = slot_range(civil_date, civil_time, self._zone)
        except ValueError as exc:
            raise ValidationError(
                "slot", str(exc), user_message="Fecha y hora son requeridos en formato válido."
            ) from exc
        available = await self._call_gateway("availability check", self._gateway.is_available(time_range))
        logger.info("Availability for %s %s: %s", civil_date, civil_time, available)
        return available

    async def reserve(self, request: BookingRequest) -> ConfirmationResult:
        """Book a slot immediately, skipping the emailed link.

        Used by the admin. The visitor email is optional and no
        notifications are sent.
        """
        new_request_id()
        sm = BookingStateMachine.for_request()
        config = self._config_store.get()

        try:
            self._validate_fields(request, require_email=False)
            self._check_policy(request, config)
        except ValidationError as exc:
            sm.transition(BookingTrigger.VALIDATION_FAILED)
            logger.info("Direct reservation rejected: %s", exc)
            raise
        sm.transition(BookingTrigger.VALIDATION_PASSED)

        time_range = slot_range(request.date, request.time, self._zone)
        try:
            available = await self._call_gateway("availability check", self._gateway.is_available(time_range))
        except UpstreamError:
            sm.transition(BookingTrigger.UPSTREAM_FAILED)
            raise
        if not available:
            sm.transition(BookingTrigger.SLOT_TAKEN)
            return ConfirmationResult(
                status=ConfirmationStatus.CONFLICT,
                message=MSG_RESERVE_CONFLICT,
                state_trace=sm.get_state_trace(),
            )
        sm.transition(BookingTrigger.SLOT_FREE)

        attendees = [config.admin_notify_email] if config.admin_notify_email else []
        try:
            event_id = await self._call_gateway(
                "event creation",
                self._gateway.create_event(event_title(request), time_range, attendees),
            )
        except UpstreamError:
            sm.transition(BookingTrigger.UPSTREAM_FAILED)
            raise
        sm.transition(BookingTrigger.EVENT_CREATED)
        logger.info("Direct reservation committed: event %s", event_id)
        return ConfirmationResult(
            status=ConfirmationStatus.COMMITTED,
            message=MSG_RESERVED,
            event_id=event_id,
            state_trace=sm.get_state_trace(),
        )

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_fields(request: BookingRequest, require_email: bool) -> None:
        missing = [
            name for name in request.missing_fields()
            if require_email or name != "email"
        ]
        if missing:
            raise ValidationError(
                ",".join(missing),
                f"missing fields: {', '.join(missing)}",
                user_message="Todos los campos son requeridos.",
            )
        if request.email and not is_valid_email(request.email):
            raise ValidationError("email", user_message="El formato del email no es válido.")
        try:
            parse_civil_date(request.date)
            slot_time = parse_civil_time(request.time)
        except ValueError as exc:
            raise ValidationError(
                "slot", str(exc), user_message="La fecha u hora no tiene un formato válido."
            ) from exc
        if slot_time.minute % SLOT_STEP_MINUTES:
            raise ValidationError(
                "hora",
                f"time {request.time} is not on a {SLOT_STEP_MINUTES}-minute boundary",
                user_message="Los turnos comienzan en punto o y media.",
            )

    def _check_policy(self, request: BookingRequest, config: SystemConfig) -> None:
        if not config.enabled:
            raise ValidationError("enabled", "bookings are disabled", user_message=MSG_DISABLED)
        weekday = day_of_week(request.date, self._zone)
        if weekday not in config.allowed_days:
            raise ValidationError(
                "fecha",
                f"weekday {weekday} not in {list(config.allowed_days)}",
                user_message="El día seleccionado no está disponible para reservas.",
            )
        hour = parse_civil_time(request.time).hour
        if hour < config.start_hour or hour >= config.end_hour:
            raise ValidationError(
                "hora",
                f"hour {hour} outside {config.start_hour}-{config.end_hour}",
                user_message="El horario seleccionado está fuera del rango permitido.",
            )

    @staticmethod
    def _require_admin_email(config: SystemConfig) -> str:
        if not config.admin_notify_email:
            raise ConfigurationError("admin notify email is not configured")
        return config.admin_notify_email

    # ------------------------------------------------------------------ #
    # Collaborator calls
    # ------------------------------------------------------------------ #

    async def _call_gateway(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except UpstreamError as exc:
            logger.error("Calendar %s failed: %s", operation, exc)
            raise
        except Exception as exc:
            logger.error("Calendar %s failed: %s", operation, exc)
            raise UpstreamError(f"{operation} failed: {exc}") from exc

    async def _dispatch(self, to: str, subject: str, html_body: str) -> None:
        try:
            await self._dispatcher.send(to, subject, html_body)
        except DispatchError:
            raise
        except Exception as exc:
            raise DispatchError(f"sending '{subject}' to {to} failed: {exc}") from exc

    async def _notify_committed(self, request: BookingRequest, admin_email: str) -> None:
        """Best-effort confirmation emails; each failure is logged and skipped."""
        for recipient, for_admin in ((request.email, False), (admin_email, True)):
            subject, body = build_confirmation_email(request, for_admin=for_admin)
            try:
                await self._dispatch(recipient, subject, body)
            except DispatchError as exc:
                logger.warning("Booking committed but confirmation email to %s failed: %s", recipient, exc)


def build_workflow(
    config_store: ConfigStore,
    gateway: AvailabilityGateway,
    dispatcher: NotificationDispatcher,
    secret: Optional[str] = None,
    base_url: Optional[str] = None,
) -> BookingWorkflow:
    """Wire a workflow using process settings for anything not given."""
    return BookingWorkflow(
        config_store=config_store,
        codec=TokenCodec(secret or settings.security.encryption_secret),
        gateway=gateway,
        dispatcher=dispatcher,
        base_url=base_url or settings.base_url,
    )
