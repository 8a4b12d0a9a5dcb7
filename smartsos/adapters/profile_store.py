"""In-memory session/profile store used by the demo and the tests."""

import structlog

from smartsos.domain.models import EmergencyContact, Medication, PatientProfile

logger = structlog.get_logger(__name__)


def demo_profile() -> PatientProfile:
    """The seeded demo patient with her care team and daily medications."""
    return PatientProfile(
        id="user_demo_1",
        name="Margaret Thompson",
        age=72,
        email="margaret@example.com",
        phone_number="+15550109988",
        contacts=[
            EmergencyContact(
                id="c1",
                name="Dr. Michael Chen",
                relation="Cardiologist",
                phone="555-0123",
                is_primary=True,
            ),
            EmergencyContact(
                id="c2", name="Sarah Thompson", relation="Daughter", phone="555-0199"
            ),
        ],
        medications=[
            Medication(id="1", name="Lisinopril", dosage="10mg", scheduled_time="08:00", taken=True),
            Medication(id="2", name="Metformin", dosage="500mg", scheduled_time="12:00"),
            Medication(id="3", name="Aspirin", dosage="81mg", scheduled_time="21:00"),
        ],
    )


class InMemoryProfileStore:
    """Holds profiles for the session lifetime. Nothing is written to disk."""

    def __init__(
        self, profiles: list[PatientProfile] | None = None, current_user_id: str | None = None
    ) -> None:
        self._profiles = {p.id: p for p in profiles or []}
        self._current_user_id = current_user_id
        self.logger = logger.bind(component="profile_store")

    @classmethod
    def with_demo_user(cls) -> "InMemoryProfileStore":
        profile = demo_profile()
        return cls([profile], current_user_id=profile.id)

    def current_user(self) -> PatientProfile | None:
        if self._current_user_id is None:
            return None
        return self._profiles.get(self._current_user_id)

    def update_user(self, user_id: str, updates: dict[str, object]) -> PatientProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise KeyError(f"Unknown user: {user_id}")

        updated = PatientProfile.model_validate({**profile.model_dump(), **updates})
        self._profiles[user_id] = updated
        self.logger.info("profile_updated", user_id=user_id, fields=sorted(updates))
        return updated

    def logout(self) -> None:
        self._current_user_id = None
