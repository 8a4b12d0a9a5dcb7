"""
Domain models for patient monitoring and emergency alerting.

These models represent the core business concepts and are framework-agnostic.
Value records (readings, log entries, notifications, snapshots) are frozen.
The one mutable aggregate, PatientState, is owned by PatientStateStore and
must only be changed through the store's intent methods.
"""

import math
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

Clock = Callable[[], datetime]

ACKNOWLEDGED_SUFFIX = " [Acknowledged]"
DEFAULT_ADDRESS = "142 Oak Street, Springfield"


def local_now() -> datetime:
    """Wall-clock time in the local timezone (medication schedules are local)."""
    return datetime.now().astimezone()


def new_id() -> str:
    return uuid.uuid4().hex


class MalformedScheduleError(ValueError):
    """A medication time that cannot be read as HH:MM."""


def minutes_since_midnight(value: str) -> int:
    """Convert an "HH:MM" time-of-day into minutes since midnight."""
    try:
        hours_text, minutes_text = value.strip().split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as e:
        raise MalformedScheduleError(f"Unparsable schedule time: {value!r}") from e

    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise MalformedScheduleError(f"Schedule time out of range: {value!r}")
    return hours * 60 + minutes


class AlertLevel(str, Enum):
    """Patient alert classification driving UI emphasis and notifications."""

    STABLE = "STABLE"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class MedicationType(str, Enum):
    PILL = "pill"
    LIQUID = "liquid"
    INJECTION = "injection"


class SOSKind(str, Enum):
    """What set off an SOS session."""

    CARDIAC = "cardiac"
    FALL = "fall"


class LogKind(str, Enum):
    """Closed set of emergency log entry kinds."""

    CRITICAL_VITALS_SPIKE = "Critical Vitals Spike"
    FALL_DETECTED = "Fall Detected"
    SYSTEM_TEST = "System Test"
    MEDICATION_ALERT = "Medication Alert"


class NotificationCategory(str, Enum):
    """Closed set of notification categories shown in the in-app queue."""

    CRITICAL = "critical"
    MEDICATION = "medication"
    MESSAGING = "messaging"
    SYSTEM = "system"


class InsightCategory(str, Enum):
    INFO = "info"
    WARNING = "warning"
    POSITIVE = "positive"


def trend_between(previous: float, current: float, tolerance: float = 0.5) -> Trend:
    """Classify the movement from one reading to the next."""
    delta = current - previous
    if delta > tolerance:
        return Trend.UP
    if delta < -tolerance:
        return Trend.DOWN
    return Trend.STABLE


class VitalReading(BaseModel):
    """Single timestamped sample in a vital-sign history window."""

    model_config = ConfigDict(frozen=True)

    time: datetime
    value: float


class BloodPressureReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: datetime
    systolic: float
    diastolic: float


class VitalSign(BaseModel):
    """
    One monitored physiological channel with a fixed-length history.

    The history is a sliding window: recording appends the new reading and
    drops the oldest, so its length never changes after creation.
    """

    value: float
    unit: str
    label: str
    trend: Trend = Trend.STABLE
    history: list[VitalReading] = Field(default_factory=list)

    def record(self, reading: VitalReading, current_value: float | None = None) -> None:
        value = reading.value if current_value is None else current_value
        self.trend = trend_between(self.value, value)
        self.value = value
        self.history = [*self.history[1:], reading]


class BloodPressure(BaseModel):
    systolic: int
    diastolic: int
    history: list[BloodPressureReading] = Field(default_factory=list)

    def record(self, reading: BloodPressureReading) -> None:
        self.systolic = math.floor(reading.systolic)
        self.diastolic = math.floor(reading.diastolic)
        self.history = [*self.history[1:], reading]


class Medication(BaseModel):
    """
    A scheduled daily dose.

    reminder_sent flips to True at most once per scheduled occurrence; only an
    external day-boundary reset clears it again.
    """

    id: str = Field(default_factory=new_id)
    name: str
    dosage: str = ""
    scheduled_time: str = Field(description="Local time-of-day, HH:MM")
    taken: bool = False
    reminder_sent: bool = False
    type: MedicationType = MedicationType.PILL

    @property
    def scheduled_minutes(self) -> int:
        return minutes_since_midnight(self.scheduled_time)


class MedicationSpec(BaseModel):
    """Fields a caller supplies when adding a medication."""

    name: str = Field(min_length=1)
    dosage: str = ""
    scheduled_time: str = Field(min_length=1)
    type: MedicationType = MedicationType.PILL


class EmergencyLogEntry(BaseModel):
    """Append-only incident record. Only resolution produces a changed copy."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=local_now)
    kind: LogKind
    resolved: bool = False
    notes: str = ""

    def acknowledged(self) -> "EmergencyLogEntry":
        return self.model_copy(
            update={"resolved": True, "notes": f"{self.notes}{ACKNOWLEDGED_SUFFIX}"}
        )


class EmergencyContact(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    relation: str = ""
    phone: str = ""
    is_primary: bool = False


class NotificationEvent(BaseModel):
    """Transient in-app notification consumed by presentation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    category: NotificationCategory
    title: str
    message: str
    timestamp: datetime = Field(default_factory=local_now)


class Location(BaseModel):
    lat: float
    lng: float
    address: str


class PatientProfile(BaseModel):
    """Identity, credentials and care-plan data read at session start."""

    id: str
    name: str
    age: int = Field(ge=0)
    email: str = ""
    phone_number: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    contacts: list[EmergencyContact] = Field(default_factory=list)
    medications: list[Medication] = Field(default_factory=list)


class PatientSnapshot(BaseModel):
    """Point-in-time copy of status and vitals sent to the insight generator."""

    model_config = ConfigDict(frozen=True)

    status: AlertLevel
    heart_rate: float
    systolic: int
    diastolic: int
    oxygen_level: float
    temperature: float
    taken_at: datetime = Field(default_factory=local_now)


class Insight(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    timestamp: datetime = Field(default_factory=local_now)
    category: InsightCategory = InsightCategory.INFO


class PatientState(BaseModel):
    """The single mutable aggregate describing the monitored patient."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    name: str
    age: int = Field(ge=0)
    phone_number: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    status: AlertLevel = AlertLevel.STABLE

    heart_rate: VitalSign
    blood_pressure: BloodPressure
    oxygen_level: VitalSign
    temperature: VitalSign

    medications: list[Medication] = Field(default_factory=list)
    logs: list[EmergencyLogEntry] = Field(default_factory=list, description="Newest first")
    contacts: list[EmergencyContact] = Field(default_factory=list)
    location: Location = Field(
        default_factory=lambda: Location(lat=34.0522, lng=-118.2437, address=DEFAULT_ADDRESS)
    )

    @classmethod
    def initial(
        cls,
        profile: PatientProfile,
        window: int = 20,
        sample_interval: timedelta = timedelta(seconds=2),
        now: datetime | None = None,
    ) -> "PatientState":
        """Hydrate a fresh state from a profile with baseline-filled history windows."""
        now = now or local_now()
        times = [now - sample_interval * (window - i) for i in range(window)]

        def channel(value: float, unit: str, label: str) -> VitalSign:
            return VitalSign(
                value=value,
                unit=unit,
                label=label,
                history=[VitalReading(time=t, value=value) for t in times],
            )

        return cls(
            id=profile.id,
            name=profile.name,
            age=profile.age,
            phone_number=profile.phone_number,
            telegram_bot_token=profile.telegram_bot_token,
            telegram_chat_id=profile.telegram_chat_id,
            heart_rate=channel(72, "BPM", "Heart Rate"),
            blood_pressure=BloodPressure(
                systolic=118,
                diastolic=76,
                history=[BloodPressureReading(time=t, systolic=118, diastolic=76) for t in times],
            ),
            oxygen_level=channel(98, "%", "SpO2"),
            temperature=channel(98.6, "°F", "Temperature"),
            medications=[m.model_copy() for m in profile.medications],
            contacts=[c.model_copy() for c in profile.contacts],
        )

    @property
    def has_relay_credentials(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def unresolved_logs(self) -> list[EmergencyLogEntry]:
        return [log for log in self.logs if not log.resolved]

    def find_medication(self, medication_id: str) -> Medication | None:
        return next((m for m in self.medications if m.id == medication_id), None)

    def notification_contact(self) -> str:
        """Name of the primary contact, else the first contact, else a generic label."""
        primary = next((c for c in self.contacts if c.is_primary), None)
        if primary:
            return primary.name
        if self.contacts:
            return self.contacts[0].name
        return "caregiver"

    def snapshot(self, status: AlertLevel | None = None) -> PatientSnapshot:
        return PatientSnapshot(
            status=status or self.status,
            heart_rate=self.heart_rate.value,
            systolic=self.blood_pressure.systolic,
            diastolic=self.blood_pressure.diastolic,
            oxygen_level=self.oxygen_level.value,
            temperature=round(self.temperature.value, 1),
        )


class VitalsSample(BaseModel):
    """One tick's worth of synthetic readings across every channel."""

    model_config = ConfigDict(frozen=True)

    time: datetime
    heart_rate: float
    systolic: float
    diastolic: float
    oxygen_level: float
    temperature: float
