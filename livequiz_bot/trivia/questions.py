"""
Static question bank.

Ten fixed questions, four lettered options each. Validation runs once when a
Question is built, so everything past this module can trust the shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple

from livequiz_bot.trivia.constants import OPTION_LABELS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Option:
    label: str
    text: str


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    options: Tuple[Option, ...]
    correct_label: str
    points: int
    difficulty: int = 1

    def __post_init__(self):
        labels = [o.label for o in self.options]
        if len(self.options) != 4:
            raise ValueError(f"Question {self.id} must have exactly four options.")
        if sorted(labels) != list(OPTION_LABELS):
            raise ValueError(f"Question {self.id} must use the labels A, B, C and D once each.")
        if self.correct_label not in OPTION_LABELS:
            raise ValueError(f"Question {self.id} has an invalid correct label {self.correct_label!r}.")
        if self.points <= 0:
            raise ValueError(f"Question {self.id} must be worth a positive number of points.")
        if self.difficulty not in (1, 2, 3):
            raise ValueError(f"Question {self.id} has an invalid difficulty {self.difficulty!r}.")
        if not self.text.strip():
            raise ValueError(f"Question {self.id} text must not be empty.")

    def option_text(self, label: str) -> str:
        for option in self.options:
            if option.label == label:
                return option.text
        raise KeyError(label)


def _q(qid: str, text: str, options: Iterable[str], correct: str, difficulty: int, points: int) -> Question:
    return Question(
        id=qid,
        text=text,
        options=tuple(Option(label, t) for label, t in zip(OPTION_LABELS, options)),
        correct_label=correct,
        points=points,
        difficulty=difficulty,
    )


QUESTIONS: Tuple[Question, ...] = (
    _q("q1", "What is the capital of Turkey?",
       ["Istanbul", "Ankara", "Izmir", "Bursa"], "B", 1, 100),
    _q("q2", "In which region is the world's largest country located?",
       ["Europe", "Asia", "Africa", "America"], "B", 2, 250),
    _q("q3", "Who came up with the formula E=mc²?",
       ["Isaac Newton", "Albert Einstein", "Stephen Hawking", "Nikola Tesla"], "B", 1, 100),
    _q("q4", "How often are the Olympic Games held?",
       ["Every 2 years", "Every 4 years", "Every 6 years", "Every 8 years"], "B", 1, 100),
    _q("q5", "What is the name of the world's deepest ocean?",
       ["Atlantic Ocean", "Indian Ocean", "Pacific Ocean", "Arctic Ocean"], "C", 2, 250),
    _q("q6", "In which year was the Python programming language first released?",
       ["1989", "1995", "2000", "2005"], "A", 2, 250),
    _q("q7", "Who painted the Mona Lisa?",
       ["Michelangelo", "Leonardo da Vinci", "Raphael", "Donatello"], "B", 1, 100),
    _q("q8", "Which is the fastest land animal?",
       ["Lion", "Antelope", "Cheetah", "Zebra"], "C", 1, 100),
    _q("q9", "What does a qubit represent in quantum computing?",
       ["A classical bit", "A quantum bit", "Quantum information", "A fast bit"], "B", 3, 500),
    _q("q10", "Which country hosted the first World Cup?",
       ["Italy", "England", "Brazil", "Uruguay"], "D", 2, 250),
)


class QuestionRepository:
    """Ordered, read-only view over a question list."""

    def __init__(self, questions: Iterable[Question] = QUESTIONS):
        self._questions: Tuple[Question, ...] = tuple(questions)
        if not self._questions:
            raise ValueError("Quiz must contain at least one question.")
        ids = [q.id for q in self._questions]
        if len(set(ids)) != len(ids):
            raise ValueError("Question ids must be unique.")
        logger.debug("Loaded %d questions", len(self._questions))

    def all(self) -> Tuple[Question, ...]:
        return self._questions

    def get(self, question_id: str) -> Optional[Question]:
        return next((q for q in self._questions if q.id == question_id), None)

    def total_points(self) -> int:
        return sum(q.points for q in self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._questions)
