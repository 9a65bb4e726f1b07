"""
Quiz preferences: timer length, leaderboard size and speech settings.

Stored as JSON and merged over defaults, so a partial or stale file still
loads. A broken file falls back to defaults rather than blocking a game.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from livequiz_bot.trivia.constants import (
    DEFAULT_TIMER_SECONDS,
    DEFAULT_TOP_PLAYERS,
    MAX_TIMER_SECONDS,
    MIN_TIMER_SECONDS,
    TOP_PLAYER_CHOICES,
)

logger = logging.getLogger(__name__)

SPEECH_LANGUAGES = ("tr-TR", "en-US")


@dataclass(frozen=True)
class SpeechSettings:
    enabled: bool = True
    language: str = "tr-TR"
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0

    def __post_init__(self):
        if self.language not in SPEECH_LANGUAGES:
            raise ValueError(f"Unsupported speech language {self.language!r}")
        if not 0.5 <= self.rate <= 2.0:
            raise ValueError("Speech rate must be between 0.5 and 2.0")
        if not 0.5 <= self.pitch <= 2.0:
            raise ValueError("Speech pitch must be between 0.5 and 2.0")
        if not 0.0 <= self.volume <= 1.0:
            raise ValueError("Speech volume must be between 0.0 and 1.0")


@dataclass(frozen=True)
class GamePreferences:
    question_timer_seconds: int = DEFAULT_TIMER_SECONDS
    top_player_count: int = DEFAULT_TOP_PLAYERS
    speech: SpeechSettings = field(default_factory=SpeechSettings)

    def __post_init__(self):
        if not isinstance(self.question_timer_seconds, int) or isinstance(self.question_timer_seconds, bool):
            raise ValueError("Question timer must be an integer number of seconds.")
        if not MIN_TIMER_SECONDS <= self.question_timer_seconds <= MAX_TIMER_SECONDS:
            raise ValueError(
                f"Question timer must be between {MIN_TIMER_SECONDS} and {MAX_TIMER_SECONDS} seconds."
            )
        if self.top_player_count not in TOP_PLAYER_CHOICES:
            raise ValueError(f"Top player count must be one of {TOP_PLAYER_CHOICES}.")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GamePreferences":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and k != "speech"}
        speech_data = data.get("speech") or {}
        speech_known = {f.name for f in fields(SpeechSettings)}
        speech = SpeechSettings(**{k: v for k, v in speech_data.items() if k in speech_known})
        return cls(speech=speech, **values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PreferenceStore:
    """
    JSON-file backed preferences.

    `current` is what the engine reads at round/session start; saving
    mid-round only affects rounds that start afterwards.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._current = self.load()

    @property
    def current(self) -> GamePreferences:
        return self._current

    # read by RoundEngine at each round start
    @property
    def question_timer_seconds(self) -> int:
        return self._current.question_timer_seconds

    @property
    def top_player_count(self) -> int:
        return self._current.top_player_count

    def load(self) -> GamePreferences:
        if self.path is None or not self.path.exists():
            return GamePreferences()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            defaults = GamePreferences().to_dict()
            defaults.update({k: v for k, v in raw.items() if k != "speech"})
            defaults["speech"].update(raw.get("speech") or {})
            return GamePreferences.from_dict(defaults)
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Could not read preferences from %s (%s); using defaults", self.path, exc)
            return GamePreferences()

    def save(self, **changes) -> GamePreferences:
        speech_changes = changes.pop("speech", None)
        updated = replace(self._current, **changes)
        if speech_changes:
            updated = replace(updated, speech=replace(updated.speech, **speech_changes))
        self._current = updated
        if self.path is not None:
            self.path.write_text(json.dumps(updated.to_dict(), indent=2), encoding="utf-8")
        logger.info("Preferences saved: timer=%ss top=%s", updated.question_timer_seconds, updated.top_player_count)
        return updated
