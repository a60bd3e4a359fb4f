"""Declarative metadata for exception classes and their members.

Class-level metadata is attached with decorators and stored as dunder
attributes on the class. Member markers are small frozen dataclasses that are
either attached to methods by the ``detail``/``instance``/``extension``
decorators or placed in ``typing.Annotated`` metadata of class attribute
annotations.

Examples
--------
>>> from typing import Annotated
>>> from http import HTTPStatus
>>> from problemdetail.markers import Extension, Instance, detail, status, title
>>> @status(HTTPStatus.FORBIDDEN)
... @title("Out of credit")
... class OutOfCreditException(Exception):
...     balance: Annotated[int, Extension()]
...     account: Annotated[str, Instance()]
...
...     @detail
...     def reason(self) -> str:
...         return f"balance is {self.balance}"
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from http import HTTPStatus
from typing import Final

__all__ = [
    "MODULE_LOGGING_ATTRIBUTE",
    "Detail",
    "Extension",
    "Instance",
    "LogLevel",
    "LoggingPolicy",
    "MemberMarker",
    "detail",
    "extension",
    "instance",
    "logging_policy",
    "problem_type",
    "status",
    "title",
]

STATUS_ATTRIBUTE: Final[str] = "__problem_status__"
TYPE_ATTRIBUTE: Final[str] = "__problem_type__"
TITLE_ATTRIBUTE: Final[str] = "__problem_title__"
LOGGING_ATTRIBUTE: Final[str] = "__problem_logging__"
MEMBER_MARKERS_ATTRIBUTE: Final[str] = "__problem_markers__"

MODULE_LOGGING_ATTRIBUTE: Final[str] = "__problem_logging__"
"""Module (or package ``__init__``) attribute holding a :class:`LoggingPolicy`."""


class LogLevel(StrEnum):
    """Level a problem occurrence is logged at.

    Attributes
    ----------
    AUTO
        ``DEBUG`` for ``4xx`` and ``ERROR`` for ``5xx`` and anything else.
        Resolved at log time, never handed to a logger.
    ERROR
        Logged at ``ERROR`` with the traceback.
    WARNING
        Logged at ``WARNING`` with the traceback.
    INFO
        Logged at ``INFO``, message only.
    DEBUG
        Logged at ``DEBUG``, message only.
    OFF
        Not logged.
    """

    AUTO = "auto"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"
    OFF = "off"


@dataclass(frozen=True, slots=True)
class LoggingPolicy:
    """Where and at which level a problem occurrence is logged.

    An empty ``to`` means "not declared"; so does ``LogLevel.AUTO`` for
    ``at`` when policies are merged.

    Attributes
    ----------
    to : str
        Name of the logger channel. Defaults to ``""``.
    at : LogLevel
        Level to log at. Defaults to ``LogLevel.AUTO``.
    """

    to: str = ""
    at: LogLevel = LogLevel.AUTO


@dataclass(frozen=True, slots=True)
class MemberMarker:
    """Base class of the member markers."""


@dataclass(frozen=True, slots=True)
class Detail(MemberMarker):
    """Marks a member whose value contributes to the ``detail`` text."""


@dataclass(frozen=True, slots=True)
class Instance(MemberMarker):
    """Marks a member providing the ``instance`` URI."""


@dataclass(frozen=True, slots=True)
class Extension(MemberMarker):
    """Marks a member rendered as an extension member.

    Attributes
    ----------
    name : str
        Key in the body; the member name is used when empty.
    """

    name: str = ""


def status[T: type[BaseException]](value: int | HTTPStatus) -> Callable[[T], T]:
    """Declare the HTTP status of an exception class.

    Parameters
    ----------
    value : int | HTTPStatus
        Status code; must be a code known to :class:`http.HTTPStatus`.

    Returns
    -------
    Callable[[T], T]
        Class decorator.
    """
    code = HTTPStatus(value)

    def decorate(cls: T) -> T:
        setattr(cls, STATUS_ATTRIBUTE, code)
        return cls

    return decorate


def problem_type[T: type[BaseException]](uri: str) -> Callable[[T], T]:
    """Declare an explicit type URI, replacing the one derived from the class name."""

    def decorate(cls: T) -> T:
        setattr(cls, TYPE_ATTRIBUTE, uri)
        return cls

    return decorate


def title[T: type[BaseException]](text: str) -> Callable[[T], T]:
    """Declare an explicit title, replacing the one derived from the class name."""

    def decorate(cls: T) -> T:
        setattr(cls, TITLE_ATTRIBUTE, text)
        return cls

    return decorate


def logging_policy[T: type[BaseException]](
    to: str = "", at: LogLevel = LogLevel.AUTO
) -> Callable[[T], T]:
    """Declare the logging policy of an exception class.

    Either part may be left at its default to inherit it from the policy
    declared on the owning module or package.

    Parameters
    ----------
    to : str, optional
        Logger channel name. Defaults to ``""``.
    at : LogLevel, optional
        Level to log at. Defaults to ``LogLevel.AUTO``.

    Returns
    -------
    Callable[[T], T]
        Class decorator.
    """
    policy = LoggingPolicy(to=to, at=LogLevel(at))

    def decorate(cls: T) -> T:
        setattr(cls, LOGGING_ATTRIBUTE, policy)
        return cls

    return decorate


def _mark[F](function: F, marker: MemberMarker) -> F:
    markers: tuple[MemberMarker, ...] = getattr(function, MEMBER_MARKERS_ATTRIBUTE, ())
    setattr(function, MEMBER_MARKERS_ATTRIBUTE, (*markers, marker))
    return function


def detail[F: Callable[..., object]](function: F) -> F:
    """Mark a zero-argument method as a contributor to ``detail``."""
    return _mark(function, Detail())


def instance[F: Callable[..., object]](function: F) -> F:
    """Mark a zero-argument method as a provider of ``instance``."""
    return _mark(function, Instance())


def extension[F: Callable[..., object]](
    name: str | F = "",
) -> F | Callable[[F], F]:
    """Mark a zero-argument method as an extension member.

    Usable bare (``@extension``) or with a name override
    (``@extension("cost")``).
    """
    if callable(name):
        return _mark(name, Extension())

    def decorate(function: F) -> F:
        return _mark(function, Extension(name=name))

    return decorate
