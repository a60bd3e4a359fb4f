"""Discovery of marked members and failure-free reads of their values.

Members are either *fields* (class-level annotations carrying a marker in
``typing.Annotated`` metadata) or *methods* (functions or properties
decorated with :func:`~problemdetail.markers.detail`,
:func:`~problemdetail.markers.instance` or
:func:`~problemdetail.markers.extension`). Both are exposed through the
:class:`MemberAccessor` protocol, whose ``read`` never raises: a failing
read yields a diagnostic string instead, so rendering an error can never
become the source of a new one.

Members are collected along the MRO, base classes first. A member
redefined in a subclass takes the place of the inherited one.
"""

from __future__ import annotations

import inspect
import typing
import weakref
from dataclasses import dataclass
from typing import Annotated, Protocol, get_args, get_origin

from problemdetail.logging import get_logger
from problemdetail.markers import MEMBER_MARKERS_ATTRIBUTE, MemberMarker

__all__ = [
    "FieldAccessor",
    "MemberAccessor",
    "MethodAccessor",
    "declared_members",
    "fields_marked",
    "methods_marked",
]

logger = get_logger(__name__)

type _Members = tuple[tuple[MethodAccessor, ...], tuple[FieldAccessor, ...]]

# Accessors hold no class references, so entries go away with their class
_SCANNED: weakref.WeakKeyDictionary[type[BaseException], _Members] = weakref.WeakKeyDictionary()


class MemberAccessor(Protocol):
    """Capability interface of a marked member."""

    name: str
    owner_name: str
    markers: tuple[MemberMarker, ...]

    def find_marker[M: MemberMarker](self, marker_type: type[M]) -> M | None:
        """Return the first marker of ``marker_type``, or None."""
        ...

    def read(self, exception: BaseException) -> object:
        """Return the member value of ``exception`` or a diagnostic string."""
        ...


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class _MarkedMember:
    __slots__ = ()

    def find_marker[M: MemberMarker](self, marker_type: type[M]) -> M | None:
        return next((m for m in self.markers if isinstance(m, marker_type)), None)


@dataclass(frozen=True, slots=True)
class FieldAccessor(_MarkedMember):
    """Reads an annotated attribute of the exception."""

    name: str
    owner_name: str
    markers: tuple[MemberMarker, ...]

    def read(self, exception: BaseException) -> object:
        try:
            return getattr(exception, self.name)
        except Exception as error:  # noqa: BLE001 - member reads never propagate
            return f"could not get {self.owner_name}.{self.name}: {_describe(error)}"


@dataclass(frozen=True, slots=True)
class MethodAccessor(_MarkedMember):
    """Invokes a marked zero-argument method, or reads a marked property."""

    name: str
    owner_name: str
    markers: tuple[MemberMarker, ...]
    is_property: bool = False

    def _invocation_failed(self, detail: str) -> str:
        return f"could not invoke {self.owner_name}.{self.name}: {detail}"

    def read(self, exception: BaseException) -> object:
        try:
            member = getattr(exception, self.name)
            if self.is_property:
                return member
            parameter_count = len(inspect.signature(member).parameters)
            if parameter_count != 0:
                return self._invocation_failed(f"expected no args but got {parameter_count}")
            return member()
        except Exception as error:  # noqa: BLE001 - member reads never propagate
            return self._invocation_failed(_describe(error))


def _own_classes(kind: type[BaseException]) -> list[type]:
    """Return the MRO of ``kind`` without builtins, base classes first."""
    return [cls for cls in reversed(kind.__mro__) if cls.__module__ != "builtins"]


def _annotations(kind: type[BaseException]) -> dict[str, object]:
    try:
        return typing.get_type_hints(kind, include_extras=True)
    except (NameError, TypeError, SyntaxError) as error:
        # Unresolvable forward references: fall back to the evaluated annotations only
        logger.warning(
            "Could not resolve annotations of %s: %s",
            kind.__qualname__,
            _describe(error),
        )
        resolved: dict[str, object] = {}
        for cls in _own_classes(kind):
            for name, hint in inspect.get_annotations(cls).items():
                if not isinstance(hint, str):
                    resolved[name] = hint
        return resolved


def _field_owner(kind: type[BaseException], name: str) -> type[BaseException]:
    for cls in kind.__mro__:
        if name in inspect.get_annotations(cls):
            return cls
    return kind


def declared_members(kind: type[BaseException]) -> _Members:
    """Return the marked methods and fields of ``kind`` in declaration order.

    Each class is scanned once; the result is cached for as long as the class
    is alive.

    Parameters
    ----------
    kind : type[BaseException]
        Exception class to scan.

    Returns
    -------
    tuple[tuple[MethodAccessor, ...], tuple[FieldAccessor, ...]]
        Marked methods, then marked fields.
    """
    members = _SCANNED.get(kind)
    if members is None:
        members = _scan(kind)
        _SCANNED[kind] = members
    return members


def _scan(kind: type[BaseException]) -> _Members:
    methods: dict[str, MethodAccessor] = {}
    for cls in _own_classes(kind):
        for name, attribute in vars(cls).items():
            function = attribute.fget if isinstance(attribute, property) else attribute
            markers = tuple(getattr(function, MEMBER_MARKERS_ATTRIBUTE, ()))
            if markers and callable(function):
                methods[name] = MethodAccessor(
                    name=name,
                    owner_name=cls.__name__,
                    markers=markers,
                    is_property=isinstance(attribute, property),
                )
            elif name in methods:
                del methods[name]

    fields: list[FieldAccessor] = []
    for name, hint in _annotations(kind).items():
        if get_origin(hint) is not Annotated:
            continue
        markers = tuple(m for m in get_args(hint)[1:] if isinstance(m, MemberMarker))
        if markers:
            owner = _field_owner(kind, name)
            fields.append(FieldAccessor(name=name, owner_name=owner.__name__, markers=markers))

    return tuple(methods.values()), tuple(fields)


def methods_marked(
    kind: type[BaseException], marker_type: type[MemberMarker]
) -> list[tuple[MethodAccessor, MemberMarker]]:
    """Return ``(accessor, marker)`` pairs of the methods carrying ``marker_type``."""
    methods, _ = declared_members(kind)
    pairs: list[tuple[MethodAccessor, MemberMarker]] = []
    for accessor in methods:
        marker = accessor.find_marker(marker_type)
        if marker is not None:
            pairs.append((accessor, marker))
    return pairs


def fields_marked(
    kind: type[BaseException], marker_type: type[MemberMarker]
) -> list[tuple[FieldAccessor, MemberMarker]]:
    """Return ``(accessor, marker)`` pairs of the fields carrying ``marker_type``."""
    _, fields = declared_members(kind)
    pairs: list[tuple[FieldAccessor, MemberMarker]] = []
    for accessor in fields:
        marker = accessor.find_marker(marker_type)
        if marker is not None:
            pairs.append((accessor, marker))
    return pairs
