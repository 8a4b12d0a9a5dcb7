"""
Single owner of the mutable PatientState aggregate.

Tickers, the SOS controller and the public facade never mutate fields
directly. They submit intents ("record sample", "flag missed dose") to the
store, and every periodic or delayed callback reads `store.current` at
invocation time rather than closing over a state captured at registration.
All intents run to completion without awaiting, so on a single event loop
each one is atomic.
"""

import math

import structlog

from smartsos.domain.models import (
    AlertLevel,
    BloodPressureReading,
    EmergencyContact,
    EmergencyLogEntry,
    Location,
    Medication,
    MedicationSpec,
    PatientState,
    VitalReading,
    VitalsSample,
)

logger = structlog.get_logger(__name__)

PROFILE_FIELDS = frozenset(
    {"name", "age", "phone_number", "telegram_bot_token", "telegram_chat_id"}
)


class PatientStateStore:
    """Holds the live aggregate and exposes discrete mutation intents."""

    def __init__(self, state: PatientState) -> None:
        self._state = state
        self.logger = logger.bind(component="patient_store", patient_id=state.id)

    @property
    def current(self) -> PatientState:
        """The live aggregate. Always re-read this, never cache it in a callback."""
        return self._state

    # Vitals

    def record_vitals(self, sample: VitalsSample) -> None:
        state = self._state
        state.heart_rate.record(
            VitalReading(time=sample.time, value=sample.heart_rate),
            current_value=math.floor(sample.heart_rate),
        )
        state.blood_pressure.record(
            BloodPressureReading(
                time=sample.time, systolic=sample.systolic, diastolic=sample.diastolic
            )
        )
        state.oxygen_level.record(VitalReading(time=sample.time, value=sample.oxygen_level))
        state.temperature.record(VitalReading(time=sample.time, value=sample.temperature))

    # Alert level and incident log

    def set_status(self, level: AlertLevel) -> AlertLevel:
        """Write the alert level, returning the previous one."""
        previous = self._state.status
        self._state.status = level
        return previous

    def append_log(self, entry: EmergencyLogEntry) -> None:
        self._state.logs = [entry, *self._state.logs]

    def acknowledge_unresolved(self) -> int:
        """Resolve every open log entry, returning how many were closed."""
        closed = 0
        logs = []
        for entry in self._state.logs:
            if entry.resolved:
                logs.append(entry)
            else:
                logs.append(entry.acknowledged())
                closed += 1
        self._state.logs = logs
        return closed

    # Medications

    def flag_missed_dose(self, medication_id: str, entry: EmergencyLogEntry) -> bool:
        """
        Mark a dose as reminded and log it, if it is still eligible.

        Returns False when the dose was taken or already reminded in the
        meantime, which keeps reminder_sent a one-way flag per occurrence.
        """
        medication = self._state.find_medication(medication_id)
        if medication is None or medication.taken or medication.reminder_sent:
            return False

        medication.reminder_sent = True
        self.append_log(entry)
        return True

    def toggle_medication_taken(self, medication_id: str) -> Medication | None:
        medication = self._state.find_medication(medication_id)
        if medication is None:
            self.logger.debug("medication_not_found", medication_id=medication_id)
            return None
        medication.taken = not medication.taken
        return medication

    def add_medication(self, spec: MedicationSpec) -> Medication:
        medication = Medication(**spec.model_dump(), taken=False, reminder_sent=False)
        self._state.medications = [*self._state.medications, medication]
        return medication

    def reset_medication_day(self) -> int:
        """Start a new day: every dose becomes untaken and un-reminded."""
        for medication in self._state.medications:
            medication.taken = False
            medication.reminder_sent = False
        return len(self._state.medications)

    # Profile, contacts, location

    def update_profile(self, **updates: object) -> dict[str, object]:
        """
        Apply profile edits, all or nothing.

        Values are validated against the state's field constraints on a copy
        first, so a rejected edit (pydantic ValidationError) leaves the live
        state untouched. Returns the validated values that were applied.
        """
        unknown = set(updates) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        candidate = self._state.model_copy()
        for name, value in updates.items():
            if value is not None:
                setattr(candidate, name, value)

        applied = {k: getattr(candidate, k) for k, v in updates.items() if v is not None}
        for name, value in applied.items():
            setattr(self._state, name, value)
        return applied

    def add_contact(self, contact: EmergencyContact) -> EmergencyContact:
        self._state.contacts = [*self._state.contacts, contact]
        return contact

    def remove_contact(self, contact_id: str) -> bool:
        remaining = [c for c in self._state.contacts if c.id != contact_id]
        removed = len(remaining) != len(self._state.contacts)
        self._state.contacts = remaining
        return removed

    def set_location(self, location: Location) -> None:
        self._state.location = location
