from __future__ import annotations

import pytest

from autotool.core.config import Settings


@pytest.fixture()
def settings() -> Settings:
    return Settings(environment="test")
