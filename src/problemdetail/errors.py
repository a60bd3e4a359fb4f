"""Exceptions raised by problemdetail itself.

The exceptions carry the library's own markers, so an application that maps
all exceptions through :class:`problemdetail.ProblemDetails` renders them
like any other problem.

Examples
--------
>>> from problemdetail.errors import SettingsError
>>> error = SettingsError("Configuration validation failed", validation_error="log_level")
>>> error.validation_error
'log_level'
"""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus
from typing import Annotated

from problemdetail.markers import (
    STATUS_ATTRIBUTE,
    Detail,
    Extension,
    LogLevel,
    logging_policy,
    status,
)

__all__ = [
    "ProblemDetailError",
    "RemoteProblemError",
    "SettingsError",
    "URISyntaxError",
    "UnknownProblemTypeError",
]

_KNOWN_STATUSES = frozenset(HTTPStatus)


@status(HTTPStatus.INTERNAL_SERVER_ERROR)
class ProblemDetailError(RuntimeError):
    """Base exception for all problemdetail errors."""


class SettingsError(ProblemDetailError):
    """Raised when the environment holds an invalid configuration.

    Parameters
    ----------
    message : str
        Human-readable error message.
    validation_error : str, optional
        Rendered validation failure. Defaults to ``""``.
    """

    validation_error: Annotated[str, Extension("validation_error")]

    def __init__(self, message: str, *, validation_error: str = "") -> None:
        super().__init__(message)
        self.validation_error = validation_error


@status(HTTPStatus.NOT_FOUND)
@logging_policy(at=LogLevel.DEBUG)
class UnknownProblemTypeError(ProblemDetailError, LookupError):
    """Raised when a problem type URI cannot be mapped to an exception class."""

    type_uri: Annotated[str, Extension("type_uri")]

    def __init__(self, type_uri: str) -> None:
        super().__init__(f"no exception class known for problem type {type_uri!r}")
        self.type_uri = type_uri


class RemoteProblemError(ProblemDetailError):
    """A problem received from a remote party that maps to no local exception.

    Parameters
    ----------
    problem : Mapping[str, object]
        The received Problem Details body.

    Attributes
    ----------
    problem : dict[str, object]
        Copy of the received body.
    status : int | None
        The ``status`` member of the body, when it is an int. A known HTTP
        status also becomes the status this exception renders with.
    """

    problem: dict[str, object]
    summary: Annotated[str, Detail()]

    def __init__(self, problem: Mapping[str, object]) -> None:
        self.problem = dict(problem)
        status_member = self.problem.get("status")
        self.status = status_member if isinstance(status_member, int) else None
        if self.status in _KNOWN_STATUSES:
            setattr(self, STATUS_ATTRIBUTE, HTTPStatus(self.status))
        detail = self.problem.get("detail")
        self.summary = str(detail if detail is not None else self.problem.get("title", ""))
        super().__init__(self.summary)


class URISyntaxError(ValueError):
    """Raised when a string is not a valid URI reference.

    Parameters
    ----------
    source : str
        The rejected input.
    reason : str
        What is wrong, e.g. ``"Illegal character in path"``.
    index : int
        Position of the offending character, ``-1`` when unknown.
    """

    def __init__(self, source: str, reason: str, index: int = -1) -> None:
        self.source = source
        self.reason = reason
        self.index = index
        position = f" at index {index}" if index >= 0 else ""
        super().__init__(f"{reason}{position}: {source}")
