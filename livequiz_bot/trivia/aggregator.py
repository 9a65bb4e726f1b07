"""
Vote and accuracy aggregation.

Behavior:
- Tally is per round; reset() zeroes it at round start.
- Participant stats accumulate over the whole session; clear() wipes them.
- Ranking ties keep first-seen order (dict insertion order + stable sort).
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

from livequiz_bot.trivia.constants import FIRST_RESPONDERS_CAP, OPTION_LABELS
from livequiz_bot.trivia.state import AnswerEvent, ParticipantStat, RoundResult, VoteTally

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class Aggregator:
    def __init__(self, responders_cap: int = FIRST_RESPONDERS_CAP):
        self._responders_cap = responders_cap
        self._tally: Dict[str, int] = {label: 0 for label in OPTION_LABELS}
        self._responders: List[AnswerEvent] = []
        self._responder_count = 0
        self._stats: Dict[str, ParticipantStat] = {}
        self._history: List[RoundResult] = []

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def reset(self) -> None:
        """Start a new round. Cross-round stats and history are kept."""
        self._tally = {label: 0 for label in OPTION_LABELS}
        self._responders = []
        self._responder_count = 0

    def clear(self) -> None:
        """Forget everything, as on a full session restart."""
        self.reset()
        self._stats = {}
        self._history = []

    # -----------------------------
    # Ingestion
    # -----------------------------

    def record(self, event: AnswerEvent, correct_label: str, count_vote: bool = True) -> bool:
        """
        Record one accepted answer.

        With count_vote=False only the participant's accuracy moves; the
        round tally and responder log stay frozen (used after lock).
        """
        if not event.is_valid:
            logger.debug("Ignoring non-option answer %r from %s", event.raw_text, event.participant_id)
            return False

        label = event.label

        if count_vote:
            self._tally[label] += 1
            self._responder_count += 1
            if len(self._responders) < self._responders_cap:
                self._responders.append(event)

        stat = self._stats.get(event.participant_id)
        if stat is None:
            stat = ParticipantStat()
            self._stats[event.participant_id] = stat
        stat.add_answer(label == correct_label)
        return True

    def close_round(
        self,
        question_id: str,
        correct_label: str,
        local_answer: Optional[str],
        points_awarded: int,
    ) -> RoundResult:
        result = RoundResult(
            question_id=question_id,
            correct_label=correct_label,
            tally=self.tally,
            local_answer=local_answer,
            points_awarded=points_awarded,
        )
        self._history.append(result)
        return result

    # -----------------------------
    # Views
    # -----------------------------

    @property
    def tally(self) -> VoteTally:
        return VoteTally.of(self._tally)

    @property
    def total_votes(self) -> int:
        return sum(self._tally.values())

    def percentages(self) -> Dict[str, int]:
        total = self.total_votes
        if total == 0:
            return {label: 0 for label in OPTION_LABELS}
        return {label: _round_half_up(100 * count / total) for label, count in self._tally.items()}

    @property
    def first_responders(self) -> List[AnswerEvent]:
        return list(self._responders)

    @property
    def responder_count(self) -> int:
        return self._responder_count

    @property
    def stats(self) -> Dict[str, ParticipantStat]:
        return {pid: stat.copy() for pid, stat in self._stats.items()}

    def stat_for(self, participant_id: str) -> Optional[ParticipantStat]:
        stat = self._stats.get(participant_id)
        return stat.copy() if stat is not None else None

    @property
    def history(self) -> List[RoundResult]:
        return list(self._history)

    def leaderboard(self) -> List[Tuple[str, ParticipantStat]]:
        return sorted(
            ((pid, stat.copy()) for pid, stat in self._stats.items()),
            key=lambda kv: kv[1].correct_answers,
            reverse=True,
        )

    def top_participants(self, n: int) -> List[Tuple[str, ParticipantStat]]:
        if n <= 0:
            return []
        return self.leaderboard()[:n]
