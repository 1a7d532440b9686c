"""Email subject and HTML body construction for booking notifications."""

from datetime import datetime
from html import escape
from urllib.parse import quote

from turnero.schemas.booking_schema import BookingRequest

# Locale-independent Spanish names; index 0 is Monday to match date.weekday()
WEEKDAY_NAMES = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]
MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

REQUEST_SUBJECT = "Nueva Solicitud de Turno - {full_name}"
CONFIRMATION_SUBJECT = "Turno Confirmado"

_STYLE = """
  body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
  .header { background-color: %(accent)s; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }
  .content { background-color: #f9f9f9; padding: 20px; border: 1px solid #ddd; }
  .info { background-color: white; padding: 15px; margin: 10px 0; border-left: 4px solid %(accent)s; }
  .footer { text-align: center; margin-top: 20px; color: #666; font-size: 12px; }
"""

_FOOTER = '<div class="footer"><p>Este es un email automático del sistema de gestión de turnos.</p></div>'


def format_slot(civil_date: str, civil_time: str) -> str:
    """Render a slot the way an Argentine reader expects it.

    Examples:
        >>> format_slot("2024-06-04", "14:00")
        'martes, 4 de junio de 2024, 14:00 hs'
    """
    slot = datetime.strptime(f"{civil_date} {civil_time}", "%Y-%m-%d %H:%M")
    return (
        f"{WEEKDAY_NAMES[slot.weekday()]}, {slot.day} de {MONTH_NAMES[slot.month - 1]} "
        f"de {slot.year}, {slot.strftime('%H:%M')} hs"
    )


def build_confirm_url(base_url: str, token: str) -> str:
    """Admin link that resumes the booking from the token alone."""
    return f"{base_url.rstrip('/')}/confirmar-turno?data={quote(token, safe='')}"


def _wrap(title: str, accent: str, content: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<style>{_STYLE % {'accent': accent}}</style>\n</head>\n<body>\n"
        f'<div class="header"><h1>{title}</h1></div>\n'
        f'<div class="content">\n{content}\n</div>\n'
        f"{_FOOTER}\n</body>\n</html>\n"
    )


def build_request_email(request: BookingRequest, confirm_url: str) -> tuple[str, str]:
    """Admin notification carrying the confirmation link."""
    subject = REQUEST_SUBJECT.format(full_name=request.full_name)
    url = escape(confirm_url, quote=True)
    content = (
        "<p>Has recibido una nueva solicitud de turno:</p>\n"
        '<div class="info">'
        f"<strong>Cliente:</strong> {escape(request.full_name)}<br>"
        f"<strong>Email:</strong> {escape(request.email)}<br>"
        f"<strong>Fecha y Hora:</strong> {format_slot(request.date, request.time)}"
        "</div>\n"
        '<div style="text-align: center;">'
        f'<a href="{url}" class="button" style="background-color: #1976d2; color: white; '
        'text-decoration: none; padding: 12px 30px; border-radius: 5px; font-weight: bold; '
        'display: inline-block;">Confirmar Turno</a></div>\n'
        '<p style="font-size: 12px; color: #666;">O copia y pega este enlace en tu navegador:<br>'
        f'<a href="{url}">{url}</a></p>'
    )
    return subject, _wrap("Nueva Solicitud de Turno", "#1976d2", content)


def build_confirmation_email(request: BookingRequest, for_admin: bool = False) -> tuple[str, str]:
    """Confirmation sent to the requester or to the admin after commit."""
    recipient = "Administrador" if for_admin else request.full_name
    content = (
        f"<p>Hola {escape(recipient)},</p>\n"
        "<p>El turno ha sido confirmado exitosamente:</p>\n"
        '<div class="info">'
        f"<strong>Cliente:</strong> {escape(request.full_name)}<br>"
        f"<strong>Fecha y Hora:</strong> {format_slot(request.date, request.time)}"
        "</div>\n"
        "<p>El evento ya figura en el calendario.</p>"
    )
    return CONFIRMATION_SUBJECT, _wrap("Turno Confirmado", "#4caf50", content)
