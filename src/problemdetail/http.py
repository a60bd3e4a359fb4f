"""FastAPI adapters turning exceptions into Problem Details responses.

This module binds :class:`~problemdetail.problem_details.ProblemDetails` to
Starlette/FastAPI: it supplies the framework-specific fallback status and
default-message check, builds the response and registers the exception
handlers.

Examples
--------
>>> from fastapi import FastAPI
>>> from problemdetail.http import register_problem_details_handler
>>> app = FastAPI()
>>> register_problem_details_handler(app)
"""

from __future__ import annotations

import asyncio
import time
from http import HTTPStatus
from typing import TYPE_CHECKING

from fastapi import HTTPException
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from problemdetail.logging import get_logger
from problemdetail.problem_details import URN_PROBLEM_TYPE_PREFIX, ProblemDetails
from problemdetail.registry import DEFAULT_REGISTRY
from problemdetail.rendering import render_problem
from problemdetail.settings import load_settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from fastapi import FastAPI, Request

    from problemdetail.registry import ProblemTypeRegistry

__all__ = [
    "StarletteProblemDetails",
    "http_exception_from_problem",
    "problem_details_response",
    "register_http_problem_types",
    "register_problem_details_handler",
]

logger = get_logger(__name__)

_FRAMEWORK_HTTP_EXCEPTIONS = (StarletteHTTPException, HTTPException)


def _known_status(code: int) -> HTTPStatus | None:
    try:
        return HTTPStatus(code)
    except ValueError:
        return None


def _status_type_uri(http_status: HTTPStatus) -> str:
    return URN_PROBLEM_TYPE_PREFIX + http_status.phrase.lower().replace(" ", "-")


_STATUS_BY_TYPE_URI = {_status_type_uri(http_status): http_status for http_status in HTTPStatus}


class StarletteProblemDetails(ProblemDetails):
    """Problem Details of an exception raised while handling a Starlette request.

    ``HTTPException`` carries its own status, so it is rendered with that
    status and its reason phrase as title and type (``404`` becomes
    ``urn:problem-type:not-found``, titled ``Not Found``).

    Parameters
    ----------
    exception : BaseException
        The exception to translate.
    request : Request | None, optional
        The request being handled. Defaults to None.
    """

    def __init__(self, exception: BaseException, request: Request | None = None) -> None:
        super().__init__(exception)
        self.request = request

    def _http_status(self) -> HTTPStatus | None:
        if isinstance(self.exception, StarletteHTTPException):
            return _known_status(self.exception.status_code)
        return None

    def fallback_status(self) -> HTTPStatus:
        return self._http_status() or super().fallback_status()

    def build_type_uri(self) -> str:
        http_status = self._http_status()
        if http_status is not None and type(self.exception) in _FRAMEWORK_HTTP_EXCEPTIONS:
            return _status_type_uri(http_status)
        return super().build_type_uri()

    def build_title(self) -> str:
        http_status = self._http_status()
        if http_status is not None and type(self.exception) in _FRAMEWORK_HTTP_EXCEPTIONS:
            return http_status.phrase
        return super().build_title()

    def has_default_message(self) -> bool:
        http_status = self._http_status()
        if http_status is None or not isinstance(self.exception, StarletteHTTPException):
            return False
        return self.exception.detail == http_status.phrase

    def exception_message(self) -> str | None:
        if isinstance(self.exception, StarletteHTTPException):
            return str(self.exception.detail) or None
        return super().exception_message()

    def find_media_type_subtype(self) -> str:
        return load_settings().media_subtype

    def log_context(self) -> dict[str, object]:
        context = super().log_context()
        if self.request is not None:
            context["http_method"] = self.request.method
            context["http_path"] = self.request.url.path
        return context


def problem_details_response(
    exception: BaseException,
    request: Request | None = None,
) -> Response:
    """Log ``exception`` and convert it to a Problem Details response.

    Parameters
    ----------
    exception : BaseException
        Exception to convert.
    request : Request | None, optional
        Request during which it was raised. Defaults to None.

    Returns
    -------
    Response
        Response with the problem status, media type and rendered body.
    """
    problem = StarletteProblemDetails(exception, request).log()
    headers: dict[str, str] | None = None
    if isinstance(exception, StarletteHTTPException) and exception.headers:
        headers = dict(exception.headers)
    return Response(
        content=render_problem(problem.body),
        status_code=int(problem.status),
        media_type=problem.media_type,
        headers=headers,
    )


def http_exception_from_problem(problem: Mapping[str, object]) -> HTTPException | None:
    """Rebuild an ``HTTPException`` from a body typed after a status phrase.

    Inverts the types :class:`StarletteProblemDetails` gives plain
    ``HTTPException``s, e.g. ``urn:problem-type:not-found`` becomes
    ``HTTPException(404)``. Usable as a
    :data:`~problemdetail.registry.ProblemResolver`.

    Parameters
    ----------
    problem : Mapping[str, object]
        The received body.

    Returns
    -------
    HTTPException | None
        The rebuilt exception, or None when the type is no status phrase type.
    """
    type_member = problem.get("type")
    if not isinstance(type_member, str):
        return None
    http_status = _STATUS_BY_TYPE_URI.get(type_member)
    if http_status is None:
        return None
    detail = problem.get("detail")
    return HTTPException(
        status_code=int(http_status), detail=None if detail is None else str(detail)
    )


def register_http_problem_types(registry: ProblemTypeRegistry = DEFAULT_REGISTRY) -> None:
    """Let ``registry`` rebuild ``HTTPException``s from status phrase types."""
    registry.add_resolver(http_exception_from_problem)


async def _await_with_timeout[T](coro: Awaitable[T], timeout_seconds: float | None) -> T:
    if timeout_seconds is None:
        return await coro
    return await asyncio.wait_for(coro, timeout_seconds)


def _timed_exception_handler(
    handler: Callable[[Request, Exception], Awaitable[Response]],
    *,
    name: str,
    timeout: float | None,
) -> Callable[[Request, Exception], Awaitable[Response]]:
    """Wrap ``handler`` with debug logging and a timeout."""

    async def _wrapped(request: Request, exc: Exception) -> Response:
        log = logger.bind(operation=name)
        start = time.perf_counter()
        try:
            result = await _await_with_timeout(handler(request, exc), timeout_seconds=timeout)
        except TimeoutError:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.exception(
                "exception_handler.timeout",
                extra={"status": "timeout", "duration_ms": duration_ms},
            )
            raise
        duration_ms = (time.perf_counter() - start) * 1000.0
        log.debug(
            "exception_handler.success",
            extra={
                "status": "success",
                "duration_ms": duration_ms,
                "exception_type": type(exc).__name__,
            },
        )
        return result

    return _wrapped


def register_problem_details_handler(app: FastAPI) -> None:
    """Register Problem Details exception handlers on ``app``.

    Handles ``HTTPException`` (replacing FastAPI's default handler) and any
    other ``Exception``. Request validation errors keep FastAPI's own
    handler. Starlette re-raises unhandled exceptions after the response for
    ``Exception`` has been sent, so servers still see them. Also registers
    :func:`http_exception_from_problem` with the default registry.
    """
    register_http_problem_types()

    async def _handler(request: Request, exc: Exception) -> Response:
        return await asyncio.to_thread(problem_details_response, exc, request)

    wrapped = _timed_exception_handler(
        _handler,
        name="problem_details_handler",
        timeout=load_settings().handler_timeout,
    )
    app.add_exception_handler(StarletteHTTPException, wrapped)
    app.add_exception_handler(Exception, wrapped)
