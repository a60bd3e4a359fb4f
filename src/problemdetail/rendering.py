"""Serialization of Problem Details bodies.

Examples
--------
>>> render_problem({"type": "urn:problem-type:out-of-credit", "status": 403})
'{"type": "urn:problem-type:out-of-credit", "status": 403}'
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = ["render_problem"]


def render_problem(problem: Mapping[str, object]) -> str:
    """Render a Problem Details body as JSON.

    Member order is preserved. Extension values that are not JSON
    serializable are rendered with ``str``.

    Parameters
    ----------
    problem : Mapping[str, object]
        Problem Details body.

    Returns
    -------
    str
        JSON document (minified, no trailing newline, non-ASCII preserved).
    """
    return json.dumps(dict(problem), default=str, ensure_ascii=False)
