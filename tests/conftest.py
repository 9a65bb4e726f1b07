import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from livequiz_bot.channel.transport import MessageHub
from livequiz_bot.speech import RecordingSpeech
from livequiz_bot.trivia.questions import QUESTIONS, QuestionRepository
from livequiz_bot.trivia.state import AnswerEvent

TRUSTED_BASE = "https://widget.example.com"
TRUSTED_ORIGIN = "https://widget.example.com"


@dataclass
class FakePreferences:
    # no range checks here: tests want two-second rounds
    question_timer_seconds: int = 3
    top_player_count: int = 3


@pytest.fixture()
def prefs():
    return FakePreferences()


@pytest.fixture()
def repository():
    return QuestionRepository(QUESTIONS)


@pytest.fixture()
def short_repository():
    return QuestionRepository(QUESTIONS[:2])


@pytest.fixture()
def hub():
    return MessageHub()


@pytest.fixture()
def speech():
    return RecordingSpeech()


@pytest.fixture()
def make_event():
    def _make(participant="P1", text="A", key=None, round_id=0):
        return AnswerEvent(
            participant_id=participant,
            raw_text=text,
            observed_at=datetime.now(timezone.utc),
            dedup_key=key or f"{participant}_{uuid.uuid4().hex}",
            round_id=round_id,
        )

    return _make
