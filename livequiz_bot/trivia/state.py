# livequiz_bot/trivia/state.py

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from livequiz_bot.trivia.constants import OPTION_LABELS
from livequiz_bot.trivia.questions import Question


class RoundPhase(enum.Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    LOCKED = "locked"
    ADVANCING = "advancing"
    FINISHED = "finished"


def normalize_label(text: Optional[str]) -> str:
    """Trim and upper-case free chat text so ' a ' and 'A' compare equal."""
    return (text or "").strip().upper()


@dataclass(frozen=True)
class AnswerEvent:
    participant_id: str
    raw_text: str
    observed_at: datetime
    dedup_key: str
    round_id: int = 0
    demo: bool = False

    @property
    def label(self) -> str:
        return normalize_label(self.raw_text)

    @property
    def is_valid(self) -> bool:
        return self.label in OPTION_LABELS


@dataclass(frozen=True)
class RevealPayload:
    correct_label: str
    local_answer: Optional[str]
    local_correct: bool
    points_awarded: int
    cause: str


@dataclass(frozen=True)
class RoundState:
    round_id: int
    phase: RoundPhase
    index: int = -1
    total: int = 0
    question: Optional[Question] = None
    remaining_seconds: int = 0
    local_answer: Optional[str] = None
    locked: bool = False
    reveal: Optional[RevealPayload] = None

    @classmethod
    def idle(cls, round_id: int = 0) -> "RoundState":
        return cls(round_id=round_id, phase=RoundPhase.IDLE)

    def evolve(self, **changes) -> "RoundState":
        # locked never goes back to False within a round
        if self.locked and changes.get("locked") is False and changes.get("round_id", self.round_id) == self.round_id:
            raise ValueError("A locked round cannot be unlocked.")
        return replace(self, **changes)


@dataclass(frozen=True)
class VoteTally:
    counts: Mapping[str, int]

    @classmethod
    def empty(cls) -> "VoteTally":
        return cls.of({})

    @classmethod
    def of(cls, counts: Mapping[str, int]) -> "VoteTally":
        full = {label: int(counts.get(label, 0)) for label in OPTION_LABELS}
        return cls(counts=MappingProxyType(full))

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def __getitem__(self, label: str) -> int:
        return self.counts[label]

    def as_dict(self) -> Dict[str, int]:
        return dict(self.counts)


class ParticipantStat:
    """
    Running accuracy for one chat participant.

    Counts only move through `add_answer`; the accuracy ratio is always derived
    from them and has no setter.
    """

    __slots__ = ("_total", "_correct")

    def __init__(self, total_answers: int = 0, correct_answers: int = 0):
        if total_answers < 0 or correct_answers < 0 or correct_answers > total_answers:
            raise ValueError("correct_answers must be between 0 and total_answers")
        self._total = total_answers
        self._correct = correct_answers

    @property
    def total_answers(self) -> int:
        return self._total

    @property
    def correct_answers(self) -> int:
        return self._correct

    @property
    def percent_correct(self) -> Optional[float]:
        """Share of correct answers as a ratio in [0, 1]; None before any answer."""
        if self._total == 0:
            return None
        return self._correct / self._total

    def add_answer(self, correct: bool) -> None:
        self._total += 1
        if correct:
            self._correct += 1

    def copy(self) -> "ParticipantStat":
        return ParticipantStat(self._total, self._correct)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ParticipantStat):
            return NotImplemented
        return (self._total, self._correct) == (other._total, other._correct)

    def __repr__(self) -> str:
        return f"ParticipantStat({self._correct}/{self._total})"


@dataclass(frozen=True)
class RoundResult:
    question_id: str
    correct_label: str
    tally: VoteTally
    local_answer: Optional[str]
    points_awarded: int


@dataclass(frozen=True)
class SessionSummary:
    local_score: int
    local_correct: int
    question_count: int
    top_participants: List[Tuple[str, ParticipantStat]]
    participants: List[Tuple[str, ParticipantStat]]
    rounds: List[RoundResult] = field(default_factory=list)
