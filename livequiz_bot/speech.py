# livequiz_bot/speech.py

from __future__ import annotations

import logging
from typing import List, Protocol

logger = logging.getLogger(__name__)


class SpeechOutput(Protocol):
    def speak(self, text: str) -> None:
        ...


class NullSpeech:
    def speak(self, text: str) -> None:
        pass


class LoggingSpeech:
    """Writes announcements to the log. Handy for the terminal demo."""

    def __init__(self, name: str = "announcer"):
        self._logger = logging.getLogger(f"{__name__}.{name}")

    def speak(self, text: str) -> None:
        self._logger.info("🔊 %s", text)


class RecordingSpeech:
    def __init__(self):
        self.spoken: List[str] = []

    def speak(self, text: str) -> None:
        self.spoken.append(text)


def say(speech: SpeechOutput, text: str) -> None:
    """Fire-and-forget; a broken speaker never stalls a round."""
    try:
        speech.speak(text)
    except Exception:
        logger.exception("Speech output failed for %r", text[:60])
