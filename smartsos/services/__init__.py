"""
Core services for the monitoring engine.

This package contains the state store, the tickers, the alert and SOS state
machines, notification fan-out and insight generation.
"""

from .alert_state import AlertStateMachine
from .compliance_scheduler import MedicationComplianceScheduler
from .insight_gateway import InsightRequestGateway, PydanticAIInsightGenerator
from .monitoring_engine import MonitoringEngine
from .notifications import NotificationDispatcher
from .patient_store import PatientStateStore
from .sos_protocol import SOSPhase, SOSProtocolController
from .ticker import PeriodicTicker
from .vitals_sampler import VitalsSampler

__all__ = [
    "AlertStateMachine",
    "InsightRequestGateway",
    "MedicationComplianceScheduler",
    "MonitoringEngine",
    "NotificationDispatcher",
    "PatientStateStore",
    "PeriodicTicker",
    "PydanticAIInsightGenerator",
    "SOSPhase",
    "SOSProtocolController",
    "VitalsSampler",
]
