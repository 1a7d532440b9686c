"""Error taxonomy for the booking workflow.

Every error carries a short ``user_message`` that is safe to show to a
visitor or admin. Internal detail goes in the exception args and the logs,
never in ``user_message``.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for all booking workflow failures."""

    user_message: str = "No se pudo procesar el turno."

    def __init__(self, detail: str = "", user_message: Optional[str] = None) -> None:
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ValidationError(BookingError):
    """Bad or out-of-policy input. Correctable by the user."""

    user_message = "Los datos del turno no son válidos."

    def __init__(
        self,
        field: str,
        detail: str = "",
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(detail or f"invalid field: {field}", user_message)
        self.field = field


class InvalidToken(BookingError):
    """Token is malformed or fails decryption."""

    user_message = "Datos de confirmación inválidos o corruptos."


class CorruptPayload(BookingError):
    """Token decrypted but does not carry a complete booking request."""

    user_message = "Datos incompletos en la solicitud."


class UpstreamError(BookingError):
    """The calendar gateway is unreachable or returned an error."""

    user_message = "El calendario no está disponible en este momento. Intentá más tarde."


class DispatchError(BookingError):
    """A notification email could not be sent."""

    user_message = "Error al enviar el email."


class ConfigurationError(BookingError):
    """A required operator setting is missing."""

    user_message = "No se ha configurado el email del administrador."
