"""Shared test doubles and fixtures for the monitoring engine tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from smartsos.adapters import demo_profile
from smartsos.config import MonitoringConfig
from smartsos.domain.models import Insight, InsightCategory, PatientProfile, PatientSnapshot, PatientState
from smartsos.domain.result import Result
from smartsos.services.insight_gateway import InsightRequestGateway, InsightUnavailableError
from smartsos.services.notifications import NotificationDispatcher
from smartsos.services.patient_store import PatientStateStore


@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "")


class FixedClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set_time(self, hour: int, minute: int) -> None:
        self.now = self.now.replace(hour=hour, minute=minute)


class FakeSpeech:
    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.cancels = 0

    def speak(self, text: str) -> None:
        self.spoken.append(text)

    def cancel(self) -> None:
        self.cancels += 1


class FakeRelay:
    """Records every send. `delivered` controls the reported outcome."""

    def __init__(self, delivered: bool = True, error: Exception | None = None) -> None:
        self.delivered = delivered
        self.error = error
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, credential: str, target: str, text: str) -> bool:
        self.sent.append((credential, target, text))
        if self.error is not None:
            raise self.error
        return self.delivered


class FakeGenerator:
    """Insight generator returning a fixed insight, or failing when `insight` is None."""

    def __init__(self, insight: Insight | None = None) -> None:
        self.insight = insight
        self.snapshots: list[PatientSnapshot] = []

    async def generate(self, snapshot: PatientSnapshot) -> Result[Insight]:
        self.snapshots.append(snapshot)
        if self.insight is None:
            return Result.err(InsightUnavailableError("No insight API key configured"))
        return Result.ok(self.insight)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 1, 5, 9, 10, tzinfo=UTC))


@pytest.fixture
def profile() -> PatientProfile:
    return demo_profile().model_copy(
        update={"telegram_bot_token": "123:ABC", "telegram_chat_id": "42"}
    )


@pytest.fixture
def store(profile: PatientProfile, clock: FixedClock) -> PatientStateStore:
    return PatientStateStore(PatientState.initial(profile, now=clock()))


@pytest.fixture
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator(Insight(content="All good.", category=InsightCategory.POSITIVE))


@pytest.fixture
def dispatcher(
    store: PatientStateStore, speech: FakeSpeech, relay: FakeRelay
) -> NotificationDispatcher:
    return NotificationDispatcher(store, speech, relay)


@pytest.fixture
def insights(store: PatientStateStore, generator: FakeGenerator) -> InsightRequestGateway:
    return InsightRequestGateway(store, generator)


@pytest.fixture
def fast_monitoring() -> MonitoringConfig:
    return MonitoringConfig(
        vitals_interval_seconds=0.01,
        compliance_interval_seconds=0.01,
        countdown_tick_seconds=0.01,
        insight_delay_seconds=0.0,
    )
