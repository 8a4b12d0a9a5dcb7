"""
Medication adherence tracking.

Every tick compares each pending dose's scheduled time-of-day with the wall
clock (both as minutes since midnight). An overdue dose is flagged once,
logged as a "Medication Alert" and announced on every channel. The scheduler
never clears reminder_sent; that is the job of an external day-boundary reset.
"""

from datetime import datetime

import structlog

from smartsos.domain.models import (
    Clock,
    EmergencyLogEntry,
    LogKind,
    MalformedScheduleError,
    Medication,
    NotificationCategory,
    local_now,
)
from smartsos.services.notifications import NotificationDispatcher
from smartsos.services.patient_store import PatientStateStore

logger = structlog.get_logger(__name__)


class MedicationComplianceScheduler:
    """Scans scheduled doses against the clock and raises missed-dose events."""

    def __init__(
        self,
        store: PatientStateStore,
        dispatcher: NotificationDispatcher,
        clock: Clock = local_now,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.logger = logger.bind(component="compliance_scheduler")

    def overdue(self, now: datetime) -> list[Medication]:
        """Pending, un-reminded doses whose scheduled time has been reached."""
        current_minutes = now.hour * 60 + now.minute
        due = []

        for medication in self.store.current.medications:
            if medication.taken or medication.reminder_sent:
                continue
            try:
                scheduled_minutes = medication.scheduled_minutes
            except MalformedScheduleError as e:
                self.logger.warning(
                    "medication_schedule_unparsable",
                    medication_id=medication.id,
                    scheduled_time=medication.scheduled_time,
                    error=str(e),
                )
                continue

            if current_minutes >= scheduled_minutes:
                due.append(medication)

        return due

    def tick(self) -> list[EmergencyLogEntry]:
        """Run one compliance scan. Returns the log entries it created."""
        now = self.clock()
        created = []

        for medication in self.overdue(now):
            entry = self._missed_dose_entry(medication, now)
            if not self.store.flag_missed_dose(medication.id, entry):
                continue

            created.append(entry)
            self._announce(medication)
            self.logger.info(
                "missed_dose_flagged",
                medication_id=medication.id,
                medication=medication.name,
                scheduled_time=medication.scheduled_time,
            )

        return created

    def _missed_dose_entry(self, medication: Medication, now: datetime) -> EmergencyLogEntry:
        contact = self.store.current.notification_contact()
        return EmergencyLogEntry(
            timestamp=now,
            kind=LogKind.MEDICATION_ALERT,
            resolved=False,
            notes=f"Alert: Medication Missed ({medication.name}). Notification sent to {contact}.",
        )

    def _announce(self, medication: Medication) -> None:
        patient = self.store.current.name
        self.dispatcher.dispatch(
            NotificationCategory.MEDICATION,
            "Medication Reminder",
            f"You missed your {medication.name} dose at {medication.scheduled_time}. "
            "Please take it now.",
            spoken=(
                f"Reminder: You missed your {medication.name}. "
                "A notification has been sent to your caregiver."
            ),
            relay_text=(
                f"⚠️ *Medication Reminder*\n\nPatient {patient} missed their dose of "
                f"*{medication.name}* at {medication.scheduled_time}. Please check on them."
            ),
        )
