"""
Adapters for the collaborators the engine talks to but does not own.

Each adapter structurally satisfies a Protocol declared by the service that
consumes it, so tests can swap in plain test doubles.
"""

from .geocoding import NominatimGeocoder
from .profile_store import InMemoryProfileStore, demo_profile
from .speech import LoggedSpeechOutput
from .telegram import TelegramRelay

__all__ = [
    "InMemoryProfileStore",
    "LoggedSpeechOutput",
    "NominatimGeocoder",
    "TelegramRelay",
    "demo_profile",
]
