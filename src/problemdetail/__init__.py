"""Declarative translation of Python exceptions into RFC 9457 Problem Details.

Annotate exception classes with :mod:`problemdetail.markers` and let a
:class:`ProblemDetails` subclass build the body, status, media type and log
record of each occurrence. The FastAPI integration lives in
:mod:`problemdetail.http` and needs the ``http`` extra.

Examples
--------
>>> from problemdetail import StandaloneProblemDetails, status
>>> @status(403)
... class OutOfCreditException(Exception):
...     pass
>>> StandaloneProblemDetails(OutOfCreditException("balance is 30")).body["status"]
403
"""

from __future__ import annotations

from problemdetail.errors import (
    ProblemDetailError,
    RemoteProblemError,
    SettingsError,
    UnknownProblemTypeError,
    URISyntaxError,
)
from problemdetail.logging import get_logger, setup_logging
from problemdetail.markers import (
    Detail,
    Extension,
    Instance,
    LoggingPolicy,
    LogLevel,
    detail,
    extension,
    instance,
    logging_policy,
    problem_type,
    status,
    title,
)
from problemdetail.problem_details import (
    URN_PROBLEM_TYPE_PREFIX,
    ProblemDetails,
    StandaloneProblemDetails,
    build_type_uri,
)
from problemdetail.registry import (
    DEFAULT_REGISTRY,
    ProblemResolver,
    ProblemTypeRegistry,
    add_resolver,
    compute_from,
    exception_from_problem,
    register,
)
from problemdetail.rendering import render_problem
from problemdetail.settings import ProblemDetailSettings, load_settings
from problemdetail.uris import create_safe_uri, parse_uri

__all__ = [
    "DEFAULT_REGISTRY",
    "URN_PROBLEM_TYPE_PREFIX",
    "Detail",
    "Extension",
    "Instance",
    "LogLevel",
    "LoggingPolicy",
    "ProblemDetailError",
    "ProblemDetailSettings",
    "ProblemDetails",
    "ProblemResolver",
    "ProblemTypeRegistry",
    "RemoteProblemError",
    "SettingsError",
    "StandaloneProblemDetails",
    "URISyntaxError",
    "UnknownProblemTypeError",
    "add_resolver",
    "build_type_uri",
    "compute_from",
    "create_safe_uri",
    "detail",
    "exception_from_problem",
    "extension",
    "get_logger",
    "instance",
    "load_settings",
    "logging_policy",
    "parse_uri",
    "problem_type",
    "register",
    "render_problem",
    "setup_logging",
    "status",
    "title",
]
