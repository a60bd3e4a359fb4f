"""Shared pytest fixtures.

Every test starts from a clean environment: ``PROBLEMDETAIL_*`` variables
are removed, the cached settings are dropped and no correlation ID is set.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from problemdetail.logging import set_correlation_id
from problemdetail.settings import load_settings

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate tests from ``PROBLEMDETAIL_*`` environment variables."""
    for name in list(os.environ):
        if name.startswith("PROBLEMDETAIL_"):
            monkeypatch.delenv(name)
    load_settings.cache_clear()
    set_correlation_id(None)
    yield
    load_settings.cache_clear()
    set_correlation_id(None)
