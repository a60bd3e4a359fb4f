"""Runtime settings with typed configuration and fail-fast validation.

This module provides :class:`ProblemDetailSettings`
(``pydantic_settings.BaseSettings``) read from ``PROBLEMDETAIL_*``
environment variables. Validation failures surface as
:class:`~problemdetail.errors.SettingsError`.

Examples
--------
>>> import os
>>> os.environ["PROBLEMDETAIL_MEDIA_SUBTYPE"] = "xml"
>>> ProblemDetailSettings().media_subtype  # doctest: +SKIP
'xml'
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from problemdetail.errors import SettingsError
from problemdetail.logging import get_logger, setup_logging

__all__ = [
    "ProblemDetailSettings",
    "load_settings",
]

logger = get_logger(__name__)


class ProblemDetailSettings(BaseSettings):
    """Configuration loaded from ``PROBLEMDETAIL_*`` environment variables.

    Attributes
    ----------
    log_level : str
        Root logging level used by :meth:`configure_logging`. Defaults to ``"INFO"``.
    log_format : {"json", "text"}
        Log record format used by :meth:`configure_logging`. Defaults to ``"json"``.
    media_subtype : str
        Wire format subtype of rendered problems, e.g. ``json``. Defaults to ``"json"``.
    handler_timeout : float | None
        Timeout in seconds of the HTTP exception handler, None for none
        (``PROBLEMDETAIL_HANDLER_TIMEOUT=none``). Defaults to ``10.0``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROBLEMDETAIL_",
        extra="forbid",
        case_sensitive=False,
        env_parse_none_str="none",
        frozen=True,
    )

    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["json", "text"] = Field(
        default="json", description="Logging format ('json' or 'text')"
    )
    media_subtype: str = Field(
        default="json", description="Media type subtype of rendered problems"
    )
    handler_timeout: float | None = Field(
        default=10.0, gt=0, description="Timeout of the HTTP exception handler in seconds"
    )

    def __init__(self, **overrides: object) -> None:
        """Initialise settings with fail-fast validation."""
        try:
            super().__init__(**overrides)  # type: ignore[arg-type]
        except ValidationError as exc:
            logger.exception(
                "Settings validation failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            msg = f"Configuration validation failed: {exc}"
            raise SettingsError(msg, validation_error=str(exc)) from exc

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"unknown log level {value!r}"
            raise ValueError(msg)
        return level

    @field_validator("media_subtype")
    @classmethod
    def _plain_subtype(cls, value: str) -> str:
        subtype = value.strip().lower()
        if not subtype or "/" in subtype:
            msg = f"media subtype must be a bare subtype like 'json', got {value!r}"
            raise ValueError(msg)
        return subtype

    def configure_logging(self) -> None:
        """Configure the root logger from ``log_level`` and ``log_format``."""
        setup_logging(level=self.log_level, fmt=self.log_format)


@lru_cache(maxsize=1)
def load_settings() -> ProblemDetailSettings:
    """Return the process-wide settings, loaded once.

    Call ``load_settings.cache_clear()`` after changing the environment.

    Raises
    ------
    SettingsError
        If the environment holds invalid values.
    """
    return ProblemDetailSettings()
