"""
SOS escalation protocol.

Phases: IDLE -> COUNTDOWN -> RESOLVED -> IDLE. RESOLVED only lasts while
resolution side effects run; the controller then rests in IDLE until the next
trigger. At most one session is open; a new trigger or system test while a
session is open supersedes it (the old countdown is cancelled and reset).

The countdown only counts. Reaching zero stops the ticker and nothing else
happens: resolution is always manual.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import structlog

from smartsos.config import MonitoringConfig
from smartsos.domain.models import (
    AlertLevel,
    Clock,
    EmergencyLogEntry,
    LogKind,
    NotificationCategory,
    SOSKind,
    local_now,
)
from smartsos.services.alert_state import AlertStateMachine
from smartsos.services.insight_gateway import InsightRequestGateway
from smartsos.services.notifications import NotificationDispatcher
from smartsos.services.patient_store import PatientStateStore
from smartsos.services.ticker import PeriodicTicker

logger = structlog.get_logger(__name__)


class SOSPhase(str, Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class SOSProfile:
    """Kind-specific wording for an SOS trigger."""

    log_kind: LogKind
    notes: str
    reason: str
    spoken: str
    message: str


SOS_PROFILES: dict[SOSKind, SOSProfile] = {
    SOSKind.CARDIAC: SOSProfile(
        log_kind=LogKind.CRITICAL_VITALS_SPIKE,
        notes="Heart rate > 140 BPM detected.",
        reason="Heart Rate Spike",
        spoken="Warning. Heart rate anomaly detected. Emergency protocols initiated.",
        message="Abnormal heart rate detected. Emergency contacts are being notified.",
    ),
    SOSKind.FALL: SOSProfile(
        log_kind=LogKind.FALL_DETECTED,
        notes="Sudden fall detected by motion sensor.",
        reason="Fall Detected",
        spoken="Warning. A fall has been detected. Emergency protocols initiated.",
        message="A fall has been detected. Emergency contacts are being notified.",
    ),
}


@dataclass
class SOSSession:
    kind: SOSKind | None
    test_mode: bool
    remaining: int
    started_at: datetime

    def elapsed(self, now: datetime) -> timedelta:
        return now - self.started_at


class SOSProtocolController:
    """Runs the emergency countdown, the system-test variant and resolution."""

    def __init__(
        self,
        store: PatientStateStore,
        alerts: AlertStateMachine,
        dispatcher: NotificationDispatcher,
        insights: InsightRequestGateway,
        config: MonitoringConfig,
        clock: Clock = local_now,
    ) -> None:
        self.store = store
        self.alerts = alerts
        self.dispatcher = dispatcher
        self.insights = insights
        self.config = config
        self.clock = clock

        self.phase = SOSPhase.IDLE
        self.session: SOSSession | None = None
        self._countdown = PeriodicTicker(
            "sos-countdown", config.countdown_tick_seconds, self._countdown_step
        )
        self.logger = logger.bind(component="sos_protocol")

    @property
    def is_open(self) -> bool:
        return self.phase == SOSPhase.COUNTDOWN and self.session is not None

    @property
    def countdown(self) -> int | None:
        return self.session.remaining if self.is_open and self.session else None

    @property
    def test_mode(self) -> bool:
        return bool(self.session and self.session.test_mode)

    def trigger(self, kind: SOSKind) -> EmergencyLogEntry:
        """Escalate to CRITICAL, log the incident and alert every channel."""
        profile = SOS_PROFILES[kind]
        now = self.clock()

        self.alerts.escalate()
        entry = EmergencyLogEntry(
            timestamp=now, kind=profile.log_kind, resolved=False, notes=profile.notes
        )
        self.store.append_log(entry)
        self._open(SOSSession(kind, False, self.config.sos_countdown_seconds, now))

        state = self.store.current
        self.dispatcher.dispatch(
            NotificationCategory.CRITICAL,
            "CRITICAL ALERT",
            profile.message,
            spoken=profile.spoken,
            relay_text=(
                "🚨 *SOS EMERGENCY ALERT* 🚨\n\n"
                f"Patient: {state.name}\n"
                f"Status: CRITICAL ({profile.reason})\n"
                f"Location: {state.location.address}\n\n"
                "Please respond immediately."
            ),
        )
        self.insights.request_later(self.config.insight_delay_seconds, AlertLevel.CRITICAL)

        self.logger.warning("sos_triggered", kind=kind.value, log_id=entry.id)
        return entry

    def run_system_test(self) -> EmergencyLogEntry:
        """Exercise the alarm without touching status or external channels."""
        now = self.clock()
        entry = EmergencyLogEntry(
            timestamp=now,
            kind=LogKind.SYSTEM_TEST,
            resolved=True,
            notes="User initiated alarm system diagnostic check.",
        )
        self.store.append_log(entry)
        self._open(SOSSession(None, True, self.config.test_countdown_seconds, now))
        self.dispatcher.speak("System test initiated. Alarm speakers functional.")

        self.logger.info("system_test_started", log_id=entry.id)
        return entry

    def resolve(self) -> bool:
        """
        Close the open session and stand the patient down to STABLE.

        Without an open session this is a no-op returning False.
        """
        session = self.session
        if not self.is_open or session is None:
            self.logger.debug("resolve_ignored_no_open_session", phase=self.phase.value)
            return False

        self._countdown.cancel()
        self.session = None
        self.phase = SOSPhase.RESOLVED

        self.alerts.stand_down()
        acknowledged = self.store.acknowledge_unresolved()
        self.dispatcher.speak("Alarm cancelled. Systems returning to normal.")

        if not session.test_mode:
            state = self.store.current
            self.dispatcher.send_to_caregiver(
                f"✅ *Alert Resolved*\n\nPatient {state.name} has cancelled the SOS alarm "
                "and marked themselves as safe."
            )
            self.insights.request_insight(state.snapshot(status=AlertLevel.STABLE))

        self.logger.info(
            "sos_resolved",
            test_mode=session.test_mode,
            acknowledged_entries=acknowledged,
            remaining=session.remaining,
            elapsed_seconds=round(session.elapsed(self.clock()).total_seconds(), 1),
        )
        self.phase = SOSPhase.IDLE
        return True

    def tick_countdown(self) -> bool:
        """Decrement the countdown once. Returns False when there was nothing to count."""
        session = self.session
        if not self.is_open or session is None or session.remaining <= 0:
            return False

        session.remaining -= 1
        if session.remaining == 0:
            self.logger.info("sos_countdown_elapsed", test_mode=session.test_mode)
        return True

    def shutdown(self) -> None:
        """Drop any open session without side effects (session end)."""
        self._countdown.cancel()
        self.session = None
        self.phase = SOSPhase.IDLE

    def _open(self, session: SOSSession) -> None:
        if self.is_open:
            self.logger.info("sos_session_superseded", test_mode=self.test_mode)
        self._countdown.cancel()
        self.session = session
        self.phase = SOSPhase.COUNTDOWN
        self._countdown.start()

    def _countdown_step(self) -> bool:
        return self.tick_countdown() and self.session is not None and self.session.remaining > 0
