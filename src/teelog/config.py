"""
Logger Configuration.

Every option may be passed as a keyword to ``Logger.create`` or picked up from
the environment with the ``TEELOG_`` prefix (e.g. ``TEELOG_LEVEL=debug``,
``TEELOG_ENABLE_OTLP=true``).
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .context import FieldExtractor
from .exceptions import UnknownOptionError


class LoggerSettings(BaseSettings):
    """Logger configuration. Built once, immutable afterwards."""

    model_config = SettingsConfigDict(
        env_prefix="TEELOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    as_json: bool = Field(default=True, description="Console output as JSON (true) or aligned text (false)")
    enable_stdout: bool = Field(default=True, description="Enable the console sink")
    enable_otlp: bool = Field(default=False, description="Enable the OTLP export sink")
    level: str = Field(default="info", description="Minimum level (debug, info, warn, error, fatal)")
    logger_name: Optional[str] = Field(default=None, description="Name reported in the 'logger' key")

    otlp_endpoint: str = Field(default="localhost:4317", description="OTLP gRPC collector endpoint")
    otlp_use_tls: bool = Field(default=False, description="Use TLS for the OTLP connection")
    service_name: str = Field(default="unknown_service", description="service.name resource attribute")
    service_environment: str = Field(
        default="development",
        description="deployment.environment resource attribute",
    )

    shutdown_timeout: float = Field(default=2.0, ge=0, description="Seconds allowed for flush/shutdown")
    emit_timeout: float = Field(default=0.5, ge=0, description="Seconds allowed per OTLP emit (0 = default)")

    field_extractors: List[FieldExtractor] = Field(
        default_factory=list,
        exclude=True,
        description="Callables producing extra fields from the request context",
    )

    @classmethod
    def check_option_names(cls, overrides: Mapping[str, Any]) -> None:
        """Reject keyword options that are not settings fields.

        The environment and ``.env`` may carry unrelated keys, but a keyword
        passed in code is always meant for us.
        """
        unknown = sorted(set(overrides) - set(cls.model_fields))
        if unknown:
            raise UnknownOptionError(unknown)

    def merged(self, **overrides: Any) -> "LoggerSettings":
        """Copy of these settings with ``overrides`` applied and re-validated."""
        type(self).check_option_names(overrides)
        if not overrides:
            return self
        data = self.model_dump()
        data["field_extractors"] = list(self.field_extractors)
        data.update(overrides)
        return type(self).model_validate(data)
