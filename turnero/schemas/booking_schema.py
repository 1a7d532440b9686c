"""Booking, policy, and result data models."""

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator
from pydantic import ValidationError as SchemaValidationError

from turnero.errors import CorruptPayload
from turnero.utils import is_valid_email


class BookingRequest(BaseModel):
    """Appointment request as submitted by a visitor.

    The aliases are the keys stored inside confirmation tokens. They must
    not change, or links already sitting in admin inboxes stop decoding.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, str_strip_whitespace=True)

    first_name: str = Field(alias="nombre")
    last_name: str = Field(alias="apellido")
    email: str
    date: str = Field(alias="fecha")
    time: str = Field(alias="hora")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def missing_fields(self) -> list[str]:
        """Return the wire names of empty fields."""
        return [
            info.alias or name
            for name, info in type(self).model_fields.items()
            if not getattr(self, name)
        ]

    def serialize(self) -> bytes:
        """Compact UTF-8 JSON, key order nombre/apellido/email/fecha/hora."""
        return json.dumps(
            self.model_dump(by_alias=True),
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes) -> "BookingRequest":
        """Parse a decrypted token payload, raising CorruptPayload on any gap."""
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise CorruptPayload("payload is not UTF-8 JSON") from exc
        if not isinstance(data, dict):
            raise CorruptPayload(f"payload is a JSON {type(data).__name__}, not an object")
        try:
            request = cls.model_validate(data)
        except SchemaValidationError as exc:
            raise CorruptPayload(f"payload does not match booking shape: {exc.error_count()} error(s)") from exc
        missing = request.missing_fields()
        if missing:
            raise CorruptPayload(f"payload missing fields: {', '.join(missing)}")
        return request


class TimeRange(BaseModel):
    """Absolute [start, end) interval handed to the calendar gateway."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_bounds(self) -> "TimeRange":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeRange bounds must be timezone-aware")
        if self.end <= self.start:
            raise ValueError("TimeRange end must be after start")
        return self

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end


class SystemConfig(BaseModel):
    """Operational booking policy, changed by the admin at runtime."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    enabled: bool = True
    start_hour: int = Field(default=10, ge=0, le=23, alias="startHour")
    end_hour: int = Field(default=20, ge=0, le=23, alias="endHour")
    # 0=Sunday ... 6=Saturday
    allowed_days: tuple[StrictInt, ...] = Field(default=(2, 3, 4, 5, 6), alias="allowedDays")
    admin_notify_email: str = Field(default="", alias="adminNotifyEmail")

    @field_validator("allowed_days")
    @classmethod
    def _check_days(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"allowed day must be 0-6, got {day}")
        return tuple(sorted(set(value)))

    @field_validator("admin_notify_email")
    @classmethod
    def _check_admin_email(cls, value: str) -> str:
        value = value.strip()
        if value and not is_valid_email(value):
            raise ValueError(f"invalid admin email: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_hours(self) -> "SystemConfig":
        if self.start_hour >= self.end_hour:
            raise ValueError(
                f"start_hour must be lower than end_hour, got {self.start_hour} >= {self.end_hour}"
            )
        return self

    def merged(self, partial: Mapping[str, Any]) -> "SystemConfig":
        """Return a new config with ``partial`` applied on top.

        Keys may be field names or camelCase aliases. ``None`` values are
        treated as unspecified and keep the current value.
        """
        aliases = {
            info.alias: name
            for name, info in type(self).model_fields.items()
            if info.alias
        }
        updates = {
            aliases.get(key, key): value
            for key, value in partial.items()
            if value is not None
        }
        return type(self).model_validate({**self.model_dump(), **updates})


class SubmissionResult(BaseModel):
    """Outcome of a successful booking request."""

    token: str
    confirm_url: str
    state_trace: list[str] = Field(default_factory=list)


class ConfirmationStatus(str, Enum):
    COMMITTED = "committed"
    CONFLICT = "conflict"


class ConfirmationResult(BaseModel):
    """Outcome of a confirmation or a direct reservation."""

    status: ConfirmationStatus
    message: str
    event_id: Optional[str] = None
    state_trace: list[str] = Field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.status == ConfirmationStatus.COMMITTED
