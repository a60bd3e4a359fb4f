"""Translation of exceptions into RFC 9457 Problem Details.

:class:`ProblemDetails` derives every member of the body from declarative
metadata on the exception class and its members (see
:mod:`problemdetail.markers`) and from the exception's runtime values. It is
independent of any web framework: the embedding layer subclasses it and
supplies the fallback status, the default-message check and the media type
subtype. The ``build_*`` methods are template methods and may be overridden
to provide framework specifics.

Examples
--------
>>> class OutOfCreditException(Exception):
...     pass
>>> problem = StandaloneProblemDetails(OutOfCreditException("not enough money"))
>>> problem.body["type"], problem.body["title"], problem.body["status"]
('urn:problem-type:out-of-credit', 'Out Of Credit', 500)
>>> problem.media_type
'application/problem+json'
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import TYPE_CHECKING, Final, Self

from problemdetail.logging import get_logger
from problemdetail.markers import (
    STATUS_ATTRIBUTE,
    TITLE_ATTRIBUTE,
    TYPE_ATTRIBUTE,
    Detail,
    Extension,
    Instance,
    LogLevel,
)
from problemdetail.members import fields_marked, methods_marked
from problemdetail.policy import resolve_logging_policy
from problemdetail.settings import load_settings
from problemdetail.uris import create_safe_uri

if TYPE_CHECKING:
    from problemdetail.types import ProblemBody

__all__ = [
    "CORE_MEMBERS",
    "URN_PROBLEM_TYPE_PREFIX",
    "ProblemDetails",
    "StandaloneProblemDetails",
    "build_type_uri",
]

logger = get_logger(__name__)

URN_PROBLEM_TYPE_PREFIX: Final[str] = "urn:problem-type:"

CORE_MEMBERS: Final[frozenset[str]] = frozenset(
    {"type", "title", "status", "detail", "instance"}
)


def _camel_to_words(name: str, delimiter: str) -> str:
    out: list[str] = []
    for char in name:
        if char.isupper() and out:
            out.append(delimiter)
        out.append(char)
    return "".join(out)


def _words_from_type_name(kind: type[BaseException], delimiter: str) -> str:
    words = _camel_to_words(kind.__name__, delimiter)
    suffix = f"{delimiter}Exception"
    if words.endswith(suffix):
        words = words[: -len(suffix)]
    return words


def build_type_uri(kind: type[BaseException]) -> str:
    """Return the problem type URI of an exception class.

    An explicit :func:`~problemdetail.markers.problem_type` declared on the
    class itself is returned verbatim. Otherwise the URI is
    ``urn:problem-type:`` followed by the class name split before each
    uppercase letter, joined with ``-``, lowercased, with a trailing
    ``-exception`` removed. :class:`problemdetail.registry.ProblemTypeRegistry`
    inverts this derivation.

    Parameters
    ----------
    kind : type[BaseException]
        Exception class.

    Returns
    -------
    str
        The type URI.

    Examples
    --------
    >>> class OutOfCreditException(Exception):
    ...     pass
    >>> build_type_uri(OutOfCreditException)
    'urn:problem-type:out-of-credit'
    """
    explicit = vars(kind).get(TYPE_ATTRIBUTE)
    if explicit is not None:
        return str(explicit)
    return URN_PROBLEM_TYPE_PREFIX + _words_from_type_name(kind, "-").lower()


class ProblemDetails(ABC):
    """Problem Details of one exception occurrence.

    ``status``, ``body``, ``media_type`` and ``log_message`` are computed on
    first access and cached for the lifetime of the instance. Instances are
    meant to be created per occurrence by the thread handling it and are
    not safe for concurrent use.

    Parameters
    ----------
    exception : BaseException
        The exception to translate.

    Attributes
    ----------
    exception : BaseException
        The exception being translated.
    exception_type : type[BaseException]
        Its class, the source of all declarative metadata.
    """

    def __init__(self, exception: BaseException) -> None:
        self.exception = exception
        self.exception_type: type[BaseException] = type(exception)
        self._status: HTTPStatus | None = None
        self._body: ProblemBody | None = None
        self._media_type: str | None = None
        self._log_message: str | None = None

    @property
    def status(self) -> HTTPStatus:
        """HTTP status of the problem."""
        if self._status is None:
            self._status = self.build_status()
        return self._status

    @property
    def body(self) -> ProblemBody:
        """The Problem Details body."""
        if self._body is None:
            self._body = self.build_body()
        return self._body

    @property
    def media_type(self) -> str:
        """Media type of the rendered body."""
        if self._media_type is None:
            self._media_type = self.build_media_type()
        return self._media_type

    @property
    def log_message(self) -> str:
        """Message written by :meth:`log`."""
        if self._log_message is None:
            self._log_message = self.build_log_message()
        return self._log_message

    def build_body(self) -> ProblemBody:
        """Assemble the body: core members first, then the sorted extensions."""
        body: ProblemBody = {
            "type": self.build_type_uri(),
            "title": self.build_title(),
            "status": int(self.status),
        }
        detail = self.build_detail()
        if detail is not None:
            body["detail"] = detail
        body["instance"] = self.build_instance()
        body.update(self.build_extensions())
        return body

    def build_status(self) -> HTTPStatus:
        """Return the declared status, 400 for ``ValueError``, else the fallback.

        The status is looked up on the exception itself, so an instance may
        override the status declared on its class.
        """
        declared = getattr(self.exception, STATUS_ATTRIBUTE, None)
        if declared is not None:
            return HTTPStatus(declared)
        if isinstance(self.exception, ValueError):
            return HTTPStatus.BAD_REQUEST
        return self.fallback_status()

    def fallback_status(self) -> HTTPStatus:
        """Status of exceptions without declared status; the embedding layer may refine it."""
        return HTTPStatus.INTERNAL_SERVER_ERROR

    def build_type_uri(self) -> str:
        return build_type_uri(self.exception_type)

    def build_title(self) -> str:
        explicit = vars(self.exception_type).get(TITLE_ATTRIBUTE)
        if explicit is not None:
            return str(explicit)
        return _words_from_type_name(self.exception_type, " ")

    def build_detail(self) -> str | None:
        """Join the values of the ``Detail`` members, or fall back to the message.

        Marked methods are read before marked fields. Without any marked
        member the exception message is used, unless the embedding layer
        reports that the status carries a default message already.

        Returns
        -------
        str | None
            The detail text, or None when there is none to report.
        """
        kind = self.exception_type
        details = [accessor.read(self.exception) for accessor, _ in methods_marked(kind, Detail)]
        details += [accessor.read(self.exception) for accessor, _ in fields_marked(kind, Detail)]
        if details:
            return ". ".join(str(value) for value in details)
        if self.has_default_message():
            return None
        return self.exception_message()

    @abstractmethod
    def has_default_message(self) -> bool:
        """Whether the status already carries a default message like ``404 Not Found``.

        We don't want to repeat such messages as ``detail``.
        """

    def exception_message(self) -> str | None:
        """Return the message of the exception, None when it is empty."""
        return str(self.exception) or None

    def build_instance(self) -> str:
        """Return the instance URI.

        The first non-None ``Instance`` field wins, then the first non-None
        ``Instance`` method, then a random ``urn:uuid:``. The value is made
        safe with :func:`~problemdetail.uris.create_safe_uri`.
        """
        kind = self.exception_type
        candidates = (
            *(accessor for accessor, _ in fields_marked(kind, Instance)),
            *(accessor for accessor, _ in methods_marked(kind, Instance)),
        )
        values = (accessor.read(self.exception) for accessor in candidates)
        instance = next((value for value in values if value is not None), None)
        if instance is None:
            instance = f"urn:uuid:{uuid.uuid4()}"
        return create_safe_uri(str(instance))

    def build_extensions(self) -> dict[str, object]:
        """Return the ``Extension`` members keyed by name, sorted by key.

        Members named like a core member are dropped with a warning.
        """
        kind = self.exception_type
        extensions: dict[str, object] = {}
        marked = [*methods_marked(kind, Extension), *fields_marked(kind, Extension)]
        for accessor, marker in marked:
            name = marker.name if isinstance(marker, Extension) and marker.name else accessor.name
            if name in CORE_MEMBERS:
                logger.warning(
                    "Ignoring extension %r of %s: it collides with a core member",
                    name,
                    kind.__qualname__,
                )
                continue
            extensions[name] = accessor.read(self.exception)
        return dict(sorted(extensions.items()))

    def build_media_type(self) -> str:
        subtype = self.find_media_type_subtype()
        # browsers send, e.g., `text/html, application/xhtml+xml, application/xml;q=0.9, */*;q=0.8`
        # so the extra `problem+` is acceptable only by the wildcard and that starts a download
        return "text/html" if subtype == "xhtml+xml" else f"application/problem+{subtype}"

    @abstractmethod
    def find_media_type_subtype(self) -> str:
        """Return the wire format subtype, e.g. ``json``, ``xml`` or ``xhtml+xml``."""

    def build_log_message(self) -> str:
        lines = "\n".join(f"  {key}: {value}" for key, value in self.body.items())
        return f"ProblemDetail:\n{lines}\nException"

    def log_context(self) -> dict[str, object]:
        """Structured fields attached to the log record."""
        return {
            "problem_type": self.body["type"],
            "problem_status": int(self.status),
            "problem_instance": self.body["instance"],
        }

    def log(self) -> Self:
        """Log the occurrence according to the resolved logging policy.

        Repeated calls log again but reuse the cached message.

        Returns
        -------
        Self
            This instance.
        """
        policy = resolve_logging_policy(self.exception_type)
        if policy.at is LogLevel.OFF:
            return self
        channel = get_logger(policy.to, null_handler=False, **self.log_context())
        message = self.log_message
        match policy.at:
            case LogLevel.AUTO:
                if self.status.is_client_error:
                    channel.debug(message)
                else:
                    channel.error(message, exc_info=self.exception)
            case LogLevel.ERROR:
                channel.error(message, exc_info=self.exception)
            case LogLevel.WARNING:
                channel.warning(message, exc_info=self.exception)
            case LogLevel.INFO:
                channel.info(message)
            case LogLevel.DEBUG:
                channel.debug(message)
        return self


class StandaloneProblemDetails(ProblemDetails):
    """Problem Details outside of any web framework, e.g. in CLIs and workers.

    Parameters
    ----------
    exception : BaseException
        The exception to translate.
    media_subtype : str | None, optional
        Wire format subtype; defaults to the configured ``media_subtype``.
    """

    def __init__(self, exception: BaseException, *, media_subtype: str | None = None) -> None:
        super().__init__(exception)
        self._media_subtype = media_subtype

    def has_default_message(self) -> bool:
        return False

    def find_media_type_subtype(self) -> str:
        if self._media_subtype is not None:
            return self._media_subtype
        return load_settings().media_subtype
