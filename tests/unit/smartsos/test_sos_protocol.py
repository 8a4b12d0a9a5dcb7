"""
Tests for the SOS escalation protocol.

Covers:
- Trigger: escalation, logging, fan-out and the delayed insight refresh
- System test: local-only alarm with a shorter countdown
- Countdown decrementing to zero and then stopping
- Resolution, supersession and the no-op resolve
"""

from __future__ import annotations

import asyncio

import pytest

from smartsos.config import MonitoringConfig
from smartsos.domain.models import (
    AlertLevel,
    EmergencyLogEntry,
    LogKind,
    NotificationCategory,
    SOSKind,
)
from smartsos.services.alert_state import AlertStateMachine
from smartsos.services.insight_gateway import InsightRequestGateway
from smartsos.services.notifications import NotificationDispatcher
from smartsos.services.patient_store import PatientStateStore
from smartsos.services.sos_protocol import SOSPhase, SOSProtocolController


@pytest.fixture
def slow_monitoring() -> MonitoringConfig:
    """Countdown ticker that never fires on its own during a test."""
    return MonitoringConfig(countdown_tick_seconds=60, insight_delay_seconds=0)


def _controller(
    store: PatientStateStore,
    dispatcher: NotificationDispatcher,
    insights: InsightRequestGateway,
    config: MonitoringConfig,
    clock,
) -> SOSProtocolController:
    return SOSProtocolController(
        store, AlertStateMachine(store), dispatcher, insights, config, clock=clock
    )


@pytest.fixture
def controller(store, dispatcher, insights, slow_monitoring, clock) -> SOSProtocolController:
    return _controller(store, dispatcher, insights, slow_monitoring, clock)


async def _shutdown(controller: SOSProtocolController, dispatcher, insights) -> None:
    controller.shutdown()
    await dispatcher.drain()
    await insights.drain()


class TestTrigger:
    async def test_cardiac_trigger(
        self, controller: SOSProtocolController, store, dispatcher, insights, speech, relay, generator
    ):
        entry = controller.trigger(SOSKind.CARDIAC)

        state = store.current
        assert state.status == AlertLevel.CRITICAL
        assert state.logs[0] == entry
        assert entry.kind == LogKind.CRITICAL_VITALS_SPIKE
        assert entry.resolved is False
        assert entry.notes == "Heart rate > 140 BPM detected."
        assert controller.phase == SOSPhase.COUNTDOWN
        assert controller.countdown == 10

        notification = dispatcher.notifications[0]
        assert notification.category == NotificationCategory.CRITICAL
        assert notification.title == "CRITICAL ALERT"
        assert speech.spoken[-1].startswith("Warning.")

        await dispatcher.drain()
        await insights.drain()
        text = relay.sent[0][2]
        assert "SOS EMERGENCY ALERT" in text
        assert "Patient: Margaret Thompson" in text
        assert "Heart Rate Spike" in text
        assert "142 Oak Street, Springfield" in text
        assert generator.snapshots[-1].status == AlertLevel.CRITICAL

        await _shutdown(controller, dispatcher, insights)

    async def test_fall_trigger(self, controller: SOSProtocolController, store, dispatcher, insights):
        entry = controller.trigger(SOSKind.FALL)

        assert entry.kind == LogKind.FALL_DETECTED
        assert entry.notes == "Sudden fall detected by motion sensor."
        assert store.current.status == AlertLevel.CRITICAL
        await _shutdown(controller, dispatcher, insights)

    async def test_trigger_while_open_supersedes(
        self, controller: SOSProtocolController, store, dispatcher, insights
    ):
        controller.trigger(SOSKind.CARDIAC)
        controller.tick_countdown()
        controller.tick_countdown()
        assert controller.countdown == 8

        controller.trigger(SOSKind.FALL)

        assert controller.countdown == 10
        assert len(store.current.unresolved_logs) == 2
        await _shutdown(controller, dispatcher, insights)


class TestCountdown:
    async def test_manual_ticks_stop_at_zero(
        self, controller: SOSProtocolController, store, dispatcher, insights
    ):
        controller.trigger(SOSKind.CARDIAC)

        for expected in range(9, -1, -1):
            assert controller.tick_countdown() is True
            assert controller.countdown == expected

        assert controller.tick_countdown() is False
        assert controller.countdown == 0
        # Reaching zero changes nothing else.
        assert store.current.status == AlertLevel.CRITICAL
        assert store.current.logs[0].resolved is False
        await _shutdown(controller, dispatcher, insights)

    async def test_ticker_runs_down_and_finishes(
        self, store, dispatcher, insights, fast_monitoring, clock
    ):
        controller = _controller(store, dispatcher, insights, fast_monitoring, clock)
        controller.run_system_test()

        async def finished() -> None:
            while controller._countdown.is_running:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(finished(), timeout=2)

        assert controller.countdown == 0
        assert controller.phase == SOSPhase.COUNTDOWN
        await _shutdown(controller, dispatcher, insights)


class TestSystemTest:
    async def test_system_test_is_local_only(
        self, controller: SOSProtocolController, store, dispatcher, insights, speech, relay, generator
    ):
        entry = controller.run_system_test()

        assert entry.kind == LogKind.SYSTEM_TEST
        assert entry.resolved is True
        assert store.current.status == AlertLevel.STABLE
        assert controller.countdown == 5
        assert controller.test_mode is True
        assert speech.spoken == ["System test initiated. Alarm speakers functional."]
        assert len(dispatcher.notifications) == 0

        assert controller.resolve() is True
        await dispatcher.drain()
        await insights.drain()

        assert relay.sent == []
        assert generator.snapshots == []
        assert speech.spoken[-1] == "Alarm cancelled. Systems returning to normal."
        await _shutdown(controller, dispatcher, insights)

    async def test_system_test_supersedes_open_sos(
        self, controller: SOSProtocolController, store, dispatcher, insights, relay
    ):
        controller.trigger(SOSKind.CARDIAC)
        await dispatcher.drain()
        await insights.drain()

        controller.run_system_test()
        assert controller.countdown == 5
        assert store.current.status == AlertLevel.CRITICAL

        assert controller.resolve() is True
        await dispatcher.drain()

        assert store.current.status == AlertLevel.STABLE
        assert store.current.unresolved_logs == []
        # Only the SOS alert went out; a test-mode resolve stays local.
        assert len(relay.sent) == 1
        await _shutdown(controller, dispatcher, insights)


class TestResolve:
    async def test_resolve_after_trigger(
        self, controller: SOSProtocolController, store, dispatcher, insights, relay, generator
    ):
        controller.trigger(SOSKind.CARDIAC)
        await dispatcher.drain()
        await insights.drain()

        assert controller.resolve() is True
        await dispatcher.drain()
        await insights.drain()

        state = store.current
        assert state.status == AlertLevel.STABLE
        assert state.logs[0].resolved is True
        assert state.logs[0].notes.endswith(" [Acknowledged]")
        assert controller.phase == SOSPhase.IDLE
        assert controller.countdown is None

        assert len(relay.sent) == 2
        assert "Alert Resolved" in relay.sent[1][2]
        assert [s.status for s in generator.snapshots] == [AlertLevel.CRITICAL, AlertLevel.STABLE]
        await _shutdown(controller, dispatcher, insights)

    async def test_resolved_controller_accepts_new_trigger(
        self, controller: SOSProtocolController, store, dispatcher, insights, speech
    ):
        phases = []
        speak = speech.speak

        def recording_speak(text: str) -> None:
            phases.append(controller.phase)
            speak(text)

        speech.speak = recording_speak

        controller.trigger(SOSKind.CARDIAC)
        controller.resolve()

        assert phases[-1] == SOSPhase.RESOLVED
        assert controller.phase == SOSPhase.IDLE

        controller.trigger(SOSKind.FALL)
        assert controller.phase == SOSPhase.COUNTDOWN
        assert controller.countdown == 10
        assert store.current.status == AlertLevel.CRITICAL
        await _shutdown(controller, dispatcher, insights)

    async def test_session_records_start_time(
        self, controller: SOSProtocolController, dispatcher, insights, clock
    ):
        started = clock()
        controller.trigger(SOSKind.CARDIAC)
        session = controller.session

        assert session.started_at == started
        clock.set_time(9, 12)
        assert session.elapsed(clock()).total_seconds() == 120
        await _shutdown(controller, dispatcher, insights)

    async def test_resolve_acknowledges_medication_alerts(
        self, controller: SOSProtocolController, store, dispatcher, insights
    ):
        store.append_log(EmergencyLogEntry(kind=LogKind.MEDICATION_ALERT, notes="missed"))
        controller.trigger(SOSKind.FALL)
        controller.resolve()

        assert store.current.unresolved_logs == []
        await _shutdown(controller, dispatcher, insights)

    def test_resolve_without_session_is_noop(
        self, controller: SOSProtocolController, store, speech
    ):
        assert controller.resolve() is False
        assert controller.phase == SOSPhase.IDLE
        assert speech.spoken == []
        assert store.current.status == AlertLevel.STABLE

    async def test_second_resolve_is_noop(
        self, controller: SOSProtocolController, dispatcher, insights, relay
    ):
        controller.trigger(SOSKind.CARDIAC)
        assert controller.resolve() is True
        assert controller.resolve() is False

        await dispatcher.drain()
        assert len(relay.sent) == 2
        await _shutdown(controller, dispatcher, insights)

    async def test_shutdown_returns_to_idle(
        self, controller: SOSProtocolController, dispatcher, insights
    ):
        controller.trigger(SOSKind.CARDIAC)
        controller.shutdown()

        assert controller.phase == SOSPhase.IDLE
        assert controller.countdown is None
        insights.cancel_pending()
        await insights.drain()
        await dispatcher.drain()
