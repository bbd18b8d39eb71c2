from __future__ import annotations

import os

import pytest

from servicebus_demo.config.settings import Settings

from tests.factories import make_settings
from tests.stubs import FakeTokenSource


os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with a token cache isolated to the test's temporary directory."""

    return make_settings(token_cache_path=tmp_path / "cache.bin")


@pytest.fixture
def token_source() -> FakeTokenSource:
    return FakeTokenSource(token="header.payload.signature", expires_on=1500)
