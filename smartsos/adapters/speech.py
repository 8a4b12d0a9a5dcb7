"""Speech output backed by the structured log."""

from collections import deque

import structlog

logger = structlog.get_logger(__name__)


class LoggedSpeechOutput:
    """
    Stand-in text-to-speech device.

    Keeps the utterance currently "playing" and a short history so the
    dashboard and tests can see what was said. Speaking cancels whatever was
    in progress, exactly like a real synthesizer queue of depth one.
    """

    def __init__(self, rate: float = 0.9, history_size: int = 50) -> None:
        self.rate = rate
        self.current: str | None = None
        self.spoken: deque[str] = deque(maxlen=history_size)
        self.logger = logger.bind(component="speech_output")

    def cancel(self) -> None:
        if self.current is not None:
            self.logger.debug("speech_cancelled", text=self.current)
        self.current = None

    def speak(self, text: str) -> None:
        self.current = text
        self.spoken.append(text)
        self.logger.info("speech_output", text=text, rate=self.rate)
