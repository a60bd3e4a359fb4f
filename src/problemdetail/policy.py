"""Resolution of the logging policy of an exception class.

A policy may be declared on the exception class with
:func:`~problemdetail.markers.logging_policy` and, independently, on the
module defining the class or any of its parent packages with a module-level
``__problem_logging__ = LoggingPolicy(...)``. When both exist the class-level
policy overrides the module-level one field by field, but only where it
declares something: a non-empty channel, a level other than ``AUTO``.

Examples
--------
>>> from problemdetail.markers import LogLevel, logging_policy
>>> @logging_policy(at=LogLevel.INFO)
... class PaymentDeclinedException(Exception):
...     pass
>>> resolve_logging_policy(PaymentDeclinedException).at
<LogLevel.INFO: 'info'>
"""

from __future__ import annotations

import sys

from problemdetail.markers import (
    LOGGING_ATTRIBUTE,
    MODULE_LOGGING_ATTRIBUTE,
    LogLevel,
    LoggingPolicy,
)

__all__ = [
    "default_channel",
    "find_module_policy",
    "find_type_policy",
    "merge_policies",
    "resolve_logging_policy",
]


def default_channel(kind: type[BaseException]) -> str:
    """Return the channel used when no policy names one: the class's qualified name."""
    return f"{kind.__module__}.{kind.__qualname__}"


def find_type_policy(kind: type[BaseException]) -> LoggingPolicy | None:
    """Return the policy declared on ``kind`` or inherited from a base class."""
    policy = getattr(kind, LOGGING_ATTRIBUTE, None)
    return policy if isinstance(policy, LoggingPolicy) else None


def find_module_policy(kind: type[BaseException]) -> LoggingPolicy | None:
    """Return the policy of the nearest module or package owning ``kind``.

    The defining module is consulted first, then each parent package up to
    the top-level one. Modules that are not imported are skipped.
    """
    module_name = kind.__module__
    while module_name:
        module = sys.modules.get(module_name)
        policy = getattr(module, MODULE_LOGGING_ATTRIBUTE, None)
        if isinstance(policy, LoggingPolicy):
            return policy
        module_name, _, _ = module_name.rpartition(".")
    return None


def merge_policies(
    on_type: LoggingPolicy | None, on_module: LoggingPolicy | None
) -> LoggingPolicy | None:
    """Merge a class-level and a module-level policy.

    Parameters
    ----------
    on_type : LoggingPolicy | None
        Policy declared on the exception class.
    on_module : LoggingPolicy | None
        Policy declared on the owning module or package.

    Returns
    -------
    LoggingPolicy | None
        ``None`` when neither is declared, the declared one when only one
        is, otherwise the field-wise merge.
    """
    if on_module is None:
        return on_type
    if on_type is None:
        return on_module
    return LoggingPolicy(
        to=on_type.to or on_module.to,
        at=on_module.at if on_type.at is LogLevel.AUTO else on_type.at,
    )


def resolve_logging_policy(kind: type[BaseException]) -> LoggingPolicy:
    """Return the effective policy of ``kind`` with the channel always filled in.

    Parameters
    ----------
    kind : type[BaseException]
        Exception class.

    Returns
    -------
    LoggingPolicy
        Merged policy; the channel defaults to :func:`default_channel` and
        the level to ``LogLevel.AUTO``.
    """
    declared = merge_policies(find_type_policy(kind), find_module_policy(kind))
    if declared is None:
        return LoggingPolicy(to=default_channel(kind), at=LogLevel.AUTO)
    return LoggingPolicy(to=declared.to or default_channel(kind), at=declared.at)
