"""
Runtime holder for the admin-editable booking policy.

Readers always get a complete, immutable ``SystemConfig``. Writers merge a
partial update into the current value and swap the whole object under a
lock, so a reader never sees half an update.

The default store lives in process memory and is lost on restart.
``JsonFileConfigStore`` is the opt-in alternative when that matters.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Union

from pydantic import ValidationError as SchemaValidationError

from turnero.config import AppConfig
from turnero.errors import ValidationError
from turnero.schemas.booking_schema import SystemConfig

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    def get(self) -> SystemConfig: ...

    def set(self, partial: Union[Mapping[str, Any], SystemConfig]) -> SystemConfig: ...


def config_from_settings(app_config: AppConfig) -> SystemConfig:
    """Initial policy seeded from environment configuration."""
    defaults = app_config.booking
    return SystemConfig(
        enabled=defaults.enabled,
        start_hour=defaults.start_hour,
        end_hour=defaults.end_hour,
        allowed_days=defaults.allowed_days,
        admin_notify_email=defaults.admin_email,
    )


def _as_mapping(partial: Union[Mapping[str, Any], SystemConfig]) -> Mapping[str, Any]:
    if isinstance(partial, SystemConfig):
        return partial.model_dump()
    return partial


class InMemoryConfigStore:
    """Thread-safe copy-on-write store."""

    def __init__(self, initial: Optional[SystemConfig] = None) -> None:
        self._lock = threading.Lock()
        self._config = initial or SystemConfig()

    @classmethod
    def from_settings(cls, app_config: AppConfig) -> "InMemoryConfigStore":
        return cls(config_from_settings(app_config))

    def get(self) -> SystemConfig:
        return self._config

    def set(self, partial: Union[Mapping[str, Any], SystemConfig]) -> SystemConfig:
        """Merge ``partial`` into the current config and return the result.

        Raises:
            ValidationError: If the merged config is invalid. The current
                config is left untouched.
        """
        updates = _as_mapping(partial)
        with self._lock:
            try:
                updated = self._config.merged(updates)
            except SchemaValidationError as exc:
                fields = ", ".join(
                    ".".join(str(part) for part in err["loc"]) or "config"
                    for err in exc.errors()
                )
                raise ValidationError(
                    field=fields,
                    detail=f"invalid configuration update: {fields}",
                    user_message="Error actualizando configuración.",
                ) from exc
            self._persist(updated)
            self._config = updated
        logger.info(
            "Booking policy updated: enabled=%s hours=%d-%d days=%s",
            updated.enabled, updated.start_hour, updated.end_hour, list(updated.allowed_days),
        )
        return updated

    def _persist(self, config: SystemConfig) -> None:
        """Hook for durable stores. Called with the lock held."""


class JsonFileConfigStore(InMemoryConfigStore):
    """Store that survives restarts by rewriting a JSON file on every change."""

    def __init__(self, path: Union[str, Path], default: Optional[SystemConfig] = None) -> None:
        self._path = Path(path)
        initial = default or SystemConfig()
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                initial = SystemConfig.model_validate(data)
            except (ValueError, SchemaValidationError) as exc:
                raise ValidationError(
                    field="config_file",
                    detail=f"Invalid booking config file {self._path}: {exc}",
                ) from exc
            logger.info("Booking policy loaded from %s", self._path)
        super().__init__(initial)

    def _persist(self, config: SystemConfig) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(config.model_dump(mode="json", by_alias=True), indent=2),
            encoding="utf-8",
        )
        os.replace(tmp_path, self._path)
