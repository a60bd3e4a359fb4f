"""Mapping of problem type URIs back to exception classes.

Clients receiving a Problem Details body use a :class:`ProblemTypeRegistry`
to raise a matching exception. Classes registered explicitly are found by
their exact type URI. Other ``urn:problem-type:`` URIs are inverted by
convention: the kebab-case remainder is turned into an UpperCamel name and
looked up among the built-in exceptions with the suffixes ``Exception``,
``Error`` and none.

Examples
--------
>>> registry = ProblemTypeRegistry()
>>> registry.compute_from("urn:problem-type:value-error")
<class 'ValueError'>
>>> class OutOfCreditException(Exception):
...     pass
>>> registry.register(OutOfCreditException)
'urn:problem-type:out-of-credit'
>>> registry.compute_from("urn:problem-type:out-of-credit") is OutOfCreditException
True
"""

from __future__ import annotations

import builtins
from typing import TYPE_CHECKING

from problemdetail.errors import RemoteProblemError, UnknownProblemTypeError
from problemdetail.logging import get_logger
from problemdetail.problem_details import URN_PROBLEM_TYPE_PREFIX, build_type_uri

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

__all__ = [
    "DEFAULT_REGISTRY",
    "ProblemResolver",
    "ProblemTypeRegistry",
    "add_resolver",
    "compute_from",
    "exception_from_problem",
    "register",
]

logger = get_logger(__name__)

_BUILTIN_SUFFIXES = ("Exception", "Error", "")

# Rebuilds an exception from a received body, or None when it does not handle it
type ProblemResolver = Callable[[Mapping[str, object]], BaseException | None]


def _kebab_to_upper_camel(value: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in value.split("-"))


class ProblemTypeRegistry:
    """Type URI to exception class mapping."""

    def __init__(self) -> None:
        self._kinds: dict[str, type[BaseException]] = {}
        self._resolvers: list[ProblemResolver] = []

    def register(self, kind: type[BaseException]) -> str:
        """Register ``kind`` under its type URI and return that URI.

        Raises
        ------
        ValueError
            If another class is registered under the same URI.
        """
        type_uri = build_type_uri(kind)
        existing = self._kinds.get(type_uri)
        if existing is not None and existing is not kind:
            msg = f"{type_uri} is already registered for {existing.__qualname__}"
            raise ValueError(msg)
        self._kinds[type_uri] = kind
        logger.debug("Registered problem type %s for %s", type_uri, kind.__qualname__)
        return type_uri

    def add_resolver(self, resolver: ProblemResolver) -> None:
        """Add a fallback that rebuilds exceptions no class is known for.

        Resolvers are consulted in the order they were added by
        :meth:`exception_from_problem` when :meth:`compute_from` finds no
        class. A resolver returns None for bodies it does not handle. Adding
        the same resolver again has no effect.
        """
        if resolver not in self._resolvers:
            self._resolvers.append(resolver)

    def lookup(self, type_uri: str) -> type[BaseException]:
        """Return the class registered or derivable for ``type_uri``.

        Raises
        ------
        UnknownProblemTypeError
            If no class matches.
        """
        kind = self.compute_from(type_uri)
        if kind is None:
            raise UnknownProblemTypeError(type_uri)
        return kind

    def compute_from(self, type_uri: str | None) -> type[BaseException] | None:
        """Return the class for ``type_uri``, or None when nothing matches.

        Parameters
        ----------
        type_uri : str | None
            The ``type`` member of a received body.

        Returns
        -------
        type[BaseException] | None
            A registered class, a matching built-in exception, or None.
        """
        if not type_uri:
            return None
        registered = self._kinds.get(type_uri)
        if registered is not None:
            return registered
        if not type_uri.startswith(URN_PROBLEM_TYPE_PREFIX):
            return None
        camel = _kebab_to_upper_camel(type_uri[len(URN_PROBLEM_TYPE_PREFIX) :])
        if not camel:
            return None
        for suffix in _BUILTIN_SUFFIXES:
            candidate = getattr(builtins, camel + suffix, None)
            if isinstance(candidate, type) and issubclass(candidate, Exception):
                return candidate
        return None

    def exception_from_problem(self, problem: Mapping[str, object]) -> BaseException:
        """Rebuild an exception from a received Problem Details body.

        The matching class is instantiated with the ``detail`` (or, lacking
        one, the ``title``) as its only argument. Without a matching class the
        resolvers added with :meth:`add_resolver` are asked. When none of them
        handles the body, or the class cannot be built from a message alone, a
        :class:`~problemdetail.errors.RemoteProblemError` carrying the body
        is returned instead.

        Parameters
        ----------
        problem : Mapping[str, object]
            The received body.

        Returns
        -------
        BaseException
            The exception to raise.
        """
        type_member = problem.get("type")
        kind = self.compute_from(type_member if isinstance(type_member, str) else None)
        if kind is None:
            for resolver in self._resolvers:
                resolved = resolver(problem)
                if resolved is not None:
                    return resolved
            return RemoteProblemError(problem)
        detail = problem.get("detail")
        message = str(detail if detail is not None else problem.get("title", ""))
        try:
            return kind(message)
        except TypeError as error:
            logger.debug(
                "Cannot instantiate %s from a message: %s", kind.__qualname__, error
            )
            return RemoteProblemError(problem)


DEFAULT_REGISTRY = ProblemTypeRegistry()


def register(kind: type[BaseException]) -> str:
    """Register ``kind`` in :data:`DEFAULT_REGISTRY`."""
    return DEFAULT_REGISTRY.register(kind)


def add_resolver(resolver: ProblemResolver) -> None:
    """Add ``resolver`` to :data:`DEFAULT_REGISTRY`."""
    DEFAULT_REGISTRY.add_resolver(resolver)


def compute_from(type_uri: str | None) -> type[BaseException] | None:
    """Resolve ``type_uri`` with :data:`DEFAULT_REGISTRY`."""
    return DEFAULT_REGISTRY.compute_from(type_uri)


def exception_from_problem(problem: Mapping[str, object]) -> BaseException:
    """Rebuild an exception with :data:`DEFAULT_REGISTRY`."""
    return DEFAULT_REGISTRY.exception_from_problem(problem)
