"""
Monitoring engine: the facade the dashboard talks to.

Owns one patient session at a time and wires the pipeline together:
1. Hydrate PatientState from the signed-in profile
2. Run the vitals and compliance tickers against the shared store
3. Route SOS triggers, tests and resolution through the protocol controller
4. Fan state changes out through the notification dispatcher

Every collaborator is injectable; defaults come from configuration.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from random import Random
from typing import Protocol

import structlog

from smartsos.adapters import InMemoryProfileStore, LoggedSpeechOutput, NominatimGeocoder, TelegramRelay
from smartsos.config import AppConfig, get_config
from smartsos.domain.models import (
    Clock,
    EmergencyContact,
    Insight,
    Location,
    Medication,
    MedicationSpec,
    NotificationEvent,
    PatientProfile,
    PatientState,
    SOSKind,
    local_now,
)
from smartsos.domain.result import Result
from smartsos.services.alert_state import AlertStateMachine
from smartsos.services.compliance_scheduler import MedicationComplianceScheduler
from smartsos.services.insight_gateway import (
    InsightGenerator,
    InsightRequestGateway,
    PydanticAIInsightGenerator,
)
from smartsos.services.notifications import MessagingRelay, NotificationDispatcher, SpeechOutput
from smartsos.services.patient_store import PatientStateStore
from smartsos.services.sos_protocol import SOSProtocolController
from smartsos.services.ticker import PeriodicTicker
from smartsos.services.vitals_sampler import VitalsSampler

logger = structlog.get_logger(__name__)

LOCATION_FALLBACK = "Location Updated"


class ReverseGeocoder(Protocol):
    async def reverse(self, lat: float, lng: float) -> Result[str]: ...


class ProfileStore(Protocol):
    """Session/profile collaborator: read at session start, written through on edits."""

    def current_user(self) -> PatientProfile | None: ...

    def update_user(self, user_id: str, updates: dict[str, object]) -> PatientProfile: ...


@dataclass
class SessionServices:
    """Components bound to one session's state store. Discarded at session end."""

    store: PatientStateStore
    dispatcher: NotificationDispatcher
    insights: InsightRequestGateway
    alerts: AlertStateMachine
    vitals: VitalsSampler
    compliance: MedicationComplianceScheduler
    sos: SOSProtocolController


class MonitoringEngine:
    """
    Single owning controller for a patient monitoring session.

    Public operations mirror what the UI layer may do. Everything else
    (tickers, delayed insight refreshes, relay sends) runs as background
    tasks on the current event loop and is cancelled together at session end.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        profiles: ProfileStore | None = None,
        speech: SpeechOutput | None = None,
        relay: MessagingRelay | None = None,
        generator: InsightGenerator | None = None,
        geocoder: ReverseGeocoder | None = None,
        clock: Clock = local_now,
        rng: Random | None = None,
    ) -> None:
        self.config = config or get_config()
        messaging = self.config.messaging

        self.profiles = profiles or InMemoryProfileStore.with_demo_user()
        self.speech = speech or LoggedSpeechOutput()
        self.relay = relay or TelegramRelay(messaging.telegram_api_base)
        self.generator = generator or PydanticAIInsightGenerator(self.config.insight)
        self.geocoder = geocoder or NominatimGeocoder(messaging.geocode_url, messaging.user_agent)
        self.clock = clock
        self.rng = rng

        self._services: SessionServices | None = None
        self._tickers: list[PeriodicTicker] = []
        self.logger = logger.bind(component="monitoring_engine")

    # Session lifecycle

    @property
    def is_active(self) -> bool:
        return self._services is not None

    @property
    def services(self) -> SessionServices:
        """Components of the active session. Every session-bound operation goes through here."""
        if self._services is None:
            raise RuntimeError("No active session - call start_session() first")
        return self._services

    @property
    def store(self) -> PatientStateStore:
        return self.services.store

    @property
    def state(self) -> PatientState:
        return self.store.current

    async def start_session(self, profile: PatientProfile | None = None) -> PatientState:
        """Hydrate state from the profile and start every ticker."""
        if self.is_active:
            await self.end_session()

        profile = profile or self.profiles.current_user()
        if profile is None:
            raise RuntimeError("No signed-in user to monitor")

        monitoring = self.config.monitoring
        state = PatientState.initial(
            profile,
            window=monitoring.history_window,
            sample_interval=timedelta(seconds=monitoring.vitals_interval_seconds),
            now=self.clock(),
        )
        services = self._build_services(PatientStateStore(state))
        self._services = services

        self._tickers = [
            PeriodicTicker("vitals", monitoring.vitals_interval_seconds, services.vitals.tick),
            PeriodicTicker(
                "compliance", monitoring.compliance_interval_seconds, services.compliance.tick
            ),
        ]
        for ticker in self._tickers:
            ticker.start()

        services.insights.request_insight(state.snapshot())
        self.logger.info("session_started", patient_id=state.id, medications=len(state.medications))
        return state

    async def end_session(self) -> None:
        """Cancel every ticker and pending task, then drop the session's components."""
        services = self._services
        if services is None:
            return

        # Detached before unwinding: operations from here on raise.
        self._services = None
        for ticker in self._tickers:
            await ticker.stop()
        self._tickers = []
        services.sos.shutdown()
        services.dispatcher.cancel_pending()
        services.insights.cancel_pending()

        self.logger.info("session_ended", patient_id=services.store.current.id)

    @asynccontextmanager
    async def session(self, profile: PatientProfile | None = None) -> AsyncIterator["MonitoringEngine"]:
        """Run a monitoring session for the duration of the block."""
        await self.start_session(profile)
        try:
            yield self
        finally:
            await self.end_session()

    def _build_services(self, store: PatientStateStore) -> SessionServices:
        monitoring = self.config.monitoring

        dispatcher = NotificationDispatcher(
            store, self.speech, self.relay, queue_size=monitoring.notification_queue_size
        )
        insights = InsightRequestGateway(store, self.generator)
        alerts = AlertStateMachine(store)
        return SessionServices(
            store=store,
            dispatcher=dispatcher,
            insights=insights,
            alerts=alerts,
            vitals=VitalsSampler(store, clock=self.clock, rng=self.rng),
            compliance=MedicationComplianceScheduler(store, dispatcher, clock=self.clock),
            sos=SOSProtocolController(
                store, alerts, dispatcher, insights, monitoring, clock=self.clock
            ),
        )

    # SOS

    def trigger_sos(self, kind: SOSKind = SOSKind.CARDIAC) -> None:
        self.services.sos.trigger(kind)

    def run_system_test(self) -> None:
        self.services.sos.run_system_test()

    def resolve(self) -> bool:
        return self.services.sos.resolve()

    @property
    def countdown(self) -> int | None:
        return self.services.sos.countdown if self.is_active else None

    # Medications

    def toggle_medication_taken(self, medication_id: str) -> Medication | None:
        return self.store.toggle_medication_taken(medication_id)

    def add_medication(self, spec: MedicationSpec) -> Medication:
        medication = self.store.add_medication(spec)
        self.logger.info(
            "medication_added", medication_id=medication.id, scheduled_time=medication.scheduled_time
        )
        return medication

    def reset_medication_day(self) -> int:
        """External day-boundary reset; the compliance scheduler never does this itself."""
        count = self.store.reset_medication_day()
        self.logger.info("medication_day_reset", medications=count)
        return count

    # Notifications and insight

    @property
    def notifications(self) -> list[NotificationEvent]:
        return list(self.services.dispatcher.notifications)

    def dismiss_notification(self, notification_id: str) -> bool:
        return self.services.dispatcher.dismiss(notification_id)

    def clear_notifications(self) -> None:
        self.services.dispatcher.clear()

    async def test_notification_channel(self) -> bool:
        return await self.services.dispatcher.test_channel()

    @property
    def insight(self) -> Insight | None:
        return self.services.insights.current

    # Profile, contacts, location

    def update_profile(self, **updates: object) -> dict[str, object]:
        """Apply profile edits to the live state and write them through to the store."""
        applied = self.store.update_profile(**updates)
        if not applied:
            return applied

        try:
            self.profiles.update_user(self.state.id, applied)
        except KeyError:
            self.logger.warning("profile_write_through_skipped", patient_id=self.state.id)
        return applied

    def add_contact(
        self, name: str, relation: str = "", phone: str = "", is_primary: bool = False
    ) -> EmergencyContact:
        contact = EmergencyContact(name=name, relation=relation, phone=phone, is_primary=is_primary)
        return self.store.add_contact(contact)

    def remove_contact(self, contact_id: str) -> bool:
        return self.store.remove_contact(contact_id)

    async def update_location(self, lat: float, lng: float) -> Location:
        """Record a position fix, degrading to a static address on geocode failure."""
        try:
            result = await self.geocoder.reverse(lat, lng)
        except Exception as e:
            self.logger.warning("reverse_geocode_raised", error=str(e))
            result = Result.err(e)

        location = Location(lat=lat, lng=lng, address=result.unwrap_or(LOCATION_FALLBACK))
        if self.is_active:
            self.store.set_location(location)
        return location

    async def drain(self) -> None:
        """Wait for in-flight relay sends and insight requests."""
        services = self.services
        await services.dispatcher.drain()
        await services.insights.drain()
