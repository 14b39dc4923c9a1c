"""Root pytest configuration and shared fixtures.

Provides common test fixtures used across all test modules:
- clock: a manually advanced epoch-millisecond clock
- notifier: a Notifier that records every call instead of sending
- registry / engine: fresh monitoring services wired to the two above
- client / admin_headers / volunteer_headers / token_for: the full API with
  JWT auth
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.core.config import Settings, settings
from src.monitoring.alert_engine import AlertEngine
from src.monitoring.errors import DispatchError
from src.monitoring.metrics_registry import MetricsRegistry
from src.monitoring.notifier import Notifier


class ManualClock:
    """Deterministic clock; tests move time with :meth:`advance`."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.current = start_ms

    def now_ms(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms


class RecordingNotifier(Notifier):
    """Captures sends; channels listed in ``failing`` raise DispatchError."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failing: set[str] = set()

    def _record(self, channel: str, **kwargs: Any) -> None:
        self.calls.append((channel, kwargs))
        if channel in self.failing:
            raise DispatchError(channel, "simulated outage")

    def calls_for(self, channel: str) -> list[dict[str, Any]]:
        return [kw for ch, kw in self.calls if ch == channel]

    async def send_email(self, recipients, subject, body):
        self._record("email", recipients=recipients, subject=subject, body=body)

    async def send_sms(self, recipients, body):
        self._record("sms", recipients=recipients, body=body)

    async def send_webhook(self, url, payload, auth_token=None):
        self._record("webhook", url=url, payload=payload, auth_token=auth_token)

    async def send_chat_message(self, webhook_url, payload):
        self._record("slack", webhook_url=webhook_url, payload=payload)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def registry(clock: ManualClock) -> MetricsRegistry:
    return MetricsRegistry(clock=clock)


@pytest.fixture
def engine(notifier: RecordingNotifier, registry: MetricsRegistry, clock: ManualClock) -> AlertEngine:
    return AlertEngine(notifier=notifier, metrics=registry, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------

TEST_JWT_SECRET = "test-only-jwt-secret-0123456789abcdef"


def issue_token(subject: str, role: str | None, expires_in: timedelta = timedelta(minutes=5)) -> str:
    """Sign a token the way the volunteer-app auth service does."""
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {"sub": subject, "iat": now, "exp": now + expires_in}
    if role is not None:
        claims["role"] = role
    return jwt.encode(claims, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def api_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """App settings plus a known JWT secret on the singleton used by auth."""
    monkeypatch.setattr(settings, "jwt_secret_key", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "debug", False)
    return Settings(
        _env_file=None,
        slack_webhook_url="https://hooks.slack.com/services/T000/B000/XXXX",
    )


@pytest.fixture
def client(api_settings: Settings, notifier: RecordingNotifier, clock: ManualClock):
    """TestClient over the full app, with the lifespan running."""
    app = create_app(app_settings=api_settings, notifier=notifier, clock=clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(api_settings: Settings) -> dict[str, str]:
    token = issue_token("admin-1", "ADMIN")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def volunteer_headers(api_settings: Settings) -> dict[str, str]:
    token = issue_token("vol-7", "VOLUNTEER")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token_for(api_settings: Settings):
    """Token factory for tests that need custom claims."""
    return issue_token
