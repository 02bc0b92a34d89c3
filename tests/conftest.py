from datetime import datetime

import pytest

from deep_research.config import AppConfig
from deep_research.models import ProviderKind, ProviderSettings


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        provider="gemini",
        api_key="test-key",
        search_delay=0,
        request_timeout=0,
        history_path=tmp_path / "history.json",
    )


@pytest.fixture
def settings():
    return ProviderSettings(provider=ProviderKind.GEMINI, api_key="test-key", model="gemini-2.5-flash")


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2026, 3, 14, 9, 30)
