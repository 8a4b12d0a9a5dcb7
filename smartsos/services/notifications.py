"""
Notification fan-out to speech, the in-app queue and the caregiver relay.

One logical event becomes up to three independent, best-effort side effects.
A failure on one channel never stops the others and never reaches the caller,
except in `test_channel()`, whose whole point is to report success.
"""

import asyncio
from collections import deque
from collections.abc import Coroutine
from enum import Enum
from typing import Any, Protocol

import structlog

from smartsos.domain.models import NotificationCategory, NotificationEvent
from smartsos.services.patient_store import PatientStateStore

logger = structlog.get_logger(__name__)

TEST_MESSAGE = "🏥 *SmartSOS Test Message*\n\nYour notification system is working correctly."


class SpeechOutput(Protocol):
    """Text-to-speech device. Speaking replaces any utterance in progress."""

    def speak(self, text: str) -> None: ...

    def cancel(self) -> None: ...


class MessagingRelay(Protocol):
    """External messaging collaborator: one attempt, True when delivered."""

    async def send(self, credential: str, target: str, text: str) -> bool: ...


class Channel(str, Enum):
    SPEECH = "speech"
    IN_APP = "in_app"
    RELAY = "relay"


ALL_CHANNELS = frozenset(Channel)


class NotificationDispatcher:
    """Dispatches events and owns the visible in-app notification queue."""

    def __init__(
        self,
        store: PatientStateStore,
        speech: SpeechOutput,
        relay: MessagingRelay,
        queue_size: int = 100,
    ) -> None:
        self.store = store
        self.speech = speech
        self.relay = relay
        self.notifications: deque[NotificationEvent] = deque(maxlen=queue_size)
        self._pending: set[asyncio.Task[bool]] = set()
        self.logger = logger.bind(component="notification_dispatcher")

    def dispatch(
        self,
        category: NotificationCategory,
        title: str,
        message: str,
        *,
        spoken: str | None = None,
        relay_text: str | None = None,
        channels: frozenset[Channel] = ALL_CHANNELS,
    ) -> NotificationEvent | None:
        """Fan one event out to the selected channels. Returns the in-app event, if any."""
        event = None

        if Channel.SPEECH in channels:
            self.speak(spoken or message)
        if Channel.IN_APP in channels:
            event = self.post(category, title, message)
        if Channel.RELAY in channels:
            self.send_to_caregiver(relay_text or f"*{title}*\n\n{message}")

        self.logger.info(
            "notification_dispatched",
            category=category.value,
            title=title,
            channels=sorted(c.value for c in channels),
        )
        return event

    def speak(self, text: str) -> None:
        try:
            self.speech.cancel()
            self.speech.speak(text)
        except Exception as e:
            self.logger.warning("speech_output_failed", error=str(e))

    def post(self, category: NotificationCategory, title: str, message: str) -> NotificationEvent:
        event = NotificationEvent(category=category, title=title, message=message)
        self.notifications.appendleft(event)
        return event

    def dismiss(self, notification_id: str) -> bool:
        for event in self.notifications:
            if event.id == notification_id:
                self.notifications.remove(event)
                return True
        return False

    def clear(self) -> None:
        self.notifications.clear()

    def send_to_caregiver(self, text: str) -> asyncio.Task[bool] | None:
        """Fire-and-forget relay send, skipped when no credentials are configured."""
        state = self.store.current
        if not state.has_relay_credentials:
            self.logger.debug("relay_skipped_no_credentials")
            return None

        return self._spawn(
            self._send(state.telegram_bot_token, state.telegram_chat_id, text)
        )

    async def test_channel(self) -> bool:
        """Send a test message and report the outcome back to the user."""
        self.post(NotificationCategory.MESSAGING, "Telegram Bot", "Sending test message...")

        state = self.store.current
        delivered = state.has_relay_credentials and await self._send(
            state.telegram_bot_token, state.telegram_chat_id, TEST_MESSAGE
        )

        if delivered:
            self.speak("Test message sent successfully.")
            self.post(
                NotificationCategory.MESSAGING,
                "Telegram Bot",
                "Success! Check your Telegram app.",
            )
        else:
            self.speak("Could not send message. Please check your bot token.")
            self.post(
                NotificationCategory.SYSTEM,
                "Connection Failed",
                "Could not send a Telegram message. Check the Bot Token and Chat ID in settings.",
            )
        return delivered

    async def drain(self) -> None:
        """Wait for every in-flight relay send to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()

    async def _send(self, credential: str, target: str, text: str) -> bool:
        try:
            return await self.relay.send(credential, target, text)
        except Exception as e:
            self.logger.warning("relay_send_failed", error=str(e))
            return False

    def _spawn(self, coro: Coroutine[Any, Any, bool]) -> asyncio.Task[bool]:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
