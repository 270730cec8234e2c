"""Root test configuration for DupGate.

Scrubs every DUPGATE_* environment variable so a developer's shell settings
never leak into config loading or the app lifespan during tests.
"""

import pytest

_ENV_VARS = (
    "DUPGATE_CONFIG",
    "DUPGATE_PORT",
    "DUPGATE_PLATFORM_URL",
    "DUPGATE_PLATFORM_TOKEN",
)


@pytest.fixture(autouse=True)
def clean_dupgate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove DupGate environment overrides for the duration of each test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
