"""
Patient alert level state machine.

STABLE -> CRITICAL on an SOS trigger and CRITICAL -> STABLE on resolution are
the only automatic paths. WARNING is representable and reachable through an
explicit `transition()` call, but nothing in the engine enters it on its own:
no threshold policy is defined for it.
"""

import structlog

from smartsos.domain.models import AlertLevel
from smartsos.services.patient_store import PatientStateStore

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[AlertLevel, frozenset[AlertLevel]] = {
    AlertLevel.STABLE: frozenset({AlertLevel.CRITICAL, AlertLevel.WARNING}),
    AlertLevel.WARNING: frozenset({AlertLevel.CRITICAL, AlertLevel.STABLE}),
    AlertLevel.CRITICAL: frozenset({AlertLevel.STABLE}),
}


class AlertStateMachine:
    """Mediates every write to the patient's alert level."""

    def __init__(self, store: PatientStateStore) -> None:
        self.store = store
        self.logger = logger.bind(component="alert_state_machine")

    @property
    def level(self) -> AlertLevel:
        return self.store.current.status

    def can_transition(self, target: AlertLevel) -> bool:
        return target == self.level or target in ALLOWED_TRANSITIONS[self.level]

    def transition(self, target: AlertLevel) -> bool:
        """
        Move to `target` in a single write.

        A disallowed transition is a no-op and returns False; it is not an
        error. Re-entering the current level is accepted without a write.
        """
        current = self.level
        if target == current:
            return True

        if target not in ALLOWED_TRANSITIONS[current]:
            self.logger.debug(
                "alert_transition_ignored", current=current.value, target=target.value
            )
            return False

        self.store.set_status(target)
        self.logger.info("alert_level_changed", previous=current.value, current=target.value)
        return True

    def escalate(self) -> bool:
        return self.transition(AlertLevel.CRITICAL)

    def stand_down(self) -> bool:
        return self.transition(AlertLevel.STABLE)
