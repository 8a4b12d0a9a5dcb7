"""
Synthetic vital-sign generation.

Simulated readings stand in for a wearable. Ranges are deliberately disjoint
between normal and critical mode so that an escalated patient is numerically
unambiguous on the dashboard:

- Normal: heart rate 72 ± 2, systolic 118 ± 3, temperature 98.6 ± 0.4 °F
- Critical: heart rate in [130, 170), systolic in [160, 180)
"""

import math
import random

import structlog

from smartsos.domain.models import AlertLevel, Clock, VitalsSample, local_now
from smartsos.services.patient_store import PatientStateStore

logger = structlog.get_logger(__name__)

CRITICAL_HEART_RATE = (130.0, 170.0)
CRITICAL_SYSTOLIC = (160.0, 180.0)


def _half_open(rng: random.Random, low: float, high: float) -> float:
    """Uniform draw from [low, high); float rounding must never reach high."""
    value = low + rng.random() * (high - low)
    return min(value, math.nextafter(high, low))


class VitalsSampler:
    """Produces one sample per channel per tick and submits it to the store."""

    def __init__(
        self,
        store: PatientStateStore,
        clock: Clock = local_now,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.rng = rng or random.Random()
        self.logger = logger.bind(component="vitals_sampler")

    def sample(self, status: AlertLevel, diastolic: float = 76.0) -> VitalsSample:
        """Draw one reading per channel. Pure apart from the RNG."""
        rng = self.rng

        if status == AlertLevel.CRITICAL:
            heart_rate = _half_open(rng, *CRITICAL_HEART_RATE)
            systolic = _half_open(rng, *CRITICAL_SYSTOLIC)
        else:
            heart_rate = 72 + rng.uniform(-2, 2)
            systolic = 118 + rng.uniform(-3, 3)

        return VitalsSample(
            time=self.clock(),
            heart_rate=heart_rate,
            systolic=systolic,
            diastolic=diastolic,
            oxygen_level=round(rng.uniform(97, 99), 1),
            temperature=98.6 + rng.uniform(-0.4, 0.4),
        )

    def tick(self) -> VitalsSample:
        state = self.store.current
        sample = self.sample(state.status, diastolic=state.blood_pressure.diastolic)
        self.store.record_vitals(sample)
        self.logger.debug(
            "vitals_sampled",
            status=state.status.value,
            heart_rate=round(sample.heart_rate, 1),
            systolic=round(sample.systolic, 1),
        )
        return sample
