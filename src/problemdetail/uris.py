"""URI syntax checks and the never-failing instance URI fallback.

:func:`parse_uri` accepts RFC 3986 URI references (absolute URIs, opaque
URNs and relative references alike) and raises :class:`URISyntaxError`
naming the offending component and index otherwise. :func:`create_safe_uri`
turns any string into a usable URI and never raises.

Examples
--------
>>> create_safe_uri("order-42")
'order-42'
>>> create_safe_uri("bad uri")
'urn:bad+uri'
"""

from __future__ import annotations

import re
from typing import Final
from urllib.parse import quote, urlencode

from problemdetail.errors import URISyntaxError

__all__ = [
    "INVALID_URI_SYNTAX",
    "create_safe_uri",
    "parse_uri",
]

INVALID_URI_SYNTAX: Final[str] = "urn:invalid-uri-syntax"

_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")
_HEX_DIGITS: Final[frozenset[str]] = frozenset("0123456789abcdefABCDEF")
# unreserved, gen-delims except brackets, sub-delims
_ALLOWED_ASCII: Final[frozenset[str]] = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    "-._~:/?#@!$&'()*+,;="
)


def _is_allowed(char: str, *, brackets: bool) -> bool:
    if char in _ALLOWED_ASCII:
        return True
    if char in "[]":
        return brackets
    # non-ASCII characters other than spaces and controls are accepted as is
    return ord(char) > 0x7F and char.isprintable() and not char.isspace()


def _check_component(
    value: str, start: int, end: int, component: str, *, brackets: bool = False
) -> None:
    index = start
    while index < end:
        char = value[index]
        if char == "%":
            escape = value[index + 1 : index + 3]
            if index + 3 > end or not all(digit in _HEX_DIGITS for digit in escape):
                raise URISyntaxError(value, "Malformed escape pair", index)
            index += 3
            continue
        if not _is_allowed(char, brackets=brackets):
            raise URISyntaxError(value, f"Illegal character in {component}", index)
        index += 1


def parse_uri(value: str) -> str:
    """Check that ``value`` is a syntactically valid URI reference.

    Parameters
    ----------
    value : str
        Candidate URI.

    Returns
    -------
    str
        ``value`` unchanged.

    Raises
    ------
    URISyntaxError
        If ``value`` violates the URI grammar.
    """
    length = len(value)
    fragment_at = value.find("#")
    end = fragment_at if fragment_at >= 0 else length
    if fragment_at >= 0:
        second = value.find("#", fragment_at + 1)
        if second >= 0:
            raise URISyntaxError(value, "Illegal character in fragment", second)
        _check_component(value, fragment_at + 1, length, "fragment")

    query_at = value.find("?", 0, end)
    if query_at >= 0:
        _check_component(value, query_at + 1, end, "query")
        end = query_at

    position = 0
    slash = value.find("/", 0, end)
    hierarchy_end = slash if slash >= 0 else end
    colon = value.find(":", 0, end)
    opaque = False
    if 0 <= colon < hierarchy_end:
        if colon == 0:
            raise URISyntaxError(value, "Expected scheme name", 0)
        scheme = value[:colon]
        if not _SCHEME.fullmatch(scheme):
            bad = next(i for i in range(len(scheme)) if not _SCHEME.fullmatch(scheme[: i + 1]))
            raise URISyntaxError(value, "Illegal character in scheme name", bad)
        position = colon + 1
        if position == end:
            raise URISyntaxError(value, "Expected scheme-specific part", position)
        opaque = not value.startswith("/", position)

    if opaque:
        _check_component(value, position, end, "opaque part")
        return value

    if value.startswith("//", position):
        authority_end = value.find("/", position + 2, end)
        if authority_end < 0:
            authority_end = end
        _check_component(value, position + 2, authority_end, "authority", brackets=True)
        position = authority_end

    _check_component(value, position, end, "path")
    return value


def create_safe_uri(value: str) -> str:
    """Return ``value`` as a URI, repairing or wrapping it when it is invalid.

    Three tiers are tried in order: ``value`` itself, ``"urn:" + value`` with
    spaces replaced by ``+``, and finally a diagnostic
    ``urn:invalid-uri-syntax`` URI whose percent-encoded ``source`` and
    ``exception`` query parameters carry the original value and the parse
    error of the first tier.

    Parameters
    ----------
    value : str
        Candidate instance URI.

    Returns
    -------
    str
        A syntactically valid URI.
    """
    try:
        return parse_uri(value)
    except URISyntaxError as error:
        try:
            return parse_uri("urn:" + value.replace(" ", "+"))
        except URISyntaxError:
            query = urlencode(
                {"source": value, "exception": f"{type(error).__name__}: {error}"},
                quote_via=quote,
                safe="",
            )
            return f"{INVALID_URI_SYNTAX}?{query}"
