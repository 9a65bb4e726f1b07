"""
Round engine.

IDLE -> COUNTDOWN -> LOCKED -> ADVANCING -> COUNTDOWN ... -> FINISHED

Every round gets a new epoch (round_id). Timer tasks capture the epoch they
were started for and do nothing if it has moved on, so a late tick or a
reveal timer can never act on a round that was already locked or torn down.
Transitions are plain synchronous methods; on one event loop they cannot
interleave.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from livequiz_bot.speech import NullSpeech, SpeechOutput, say
from livequiz_bot.trivia.aggregator import Aggregator
from livequiz_bot.trivia.constants import (
    LOCK_CAUSE_LOCAL,
    LOCK_CAUSE_TIMEOUT,
    OPTION_LABELS,
    REVEAL_DELAY_SECONDS,
    TICK_INTERVAL_SECONDS,
)
from livequiz_bot.trivia.questions import Question
from livequiz_bot.trivia.state import AnswerEvent, RevealPayload, RoundPhase, RoundState, normalize_label

logger = logging.getLogger(__name__)

StateListener = Callable[[RoundState], None]


class RoundEngine:
    def __init__(
        self,
        aggregator: Aggregator,
        preferences,
        *,
        channel=None,
        speech: Optional[SpeechOutput] = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        reveal_delay: float = REVEAL_DELAY_SECONDS,
    ):
        self.aggregator = aggregator
        self.preferences = preferences
        self.channel = channel
        self.speech = speech or NullSpeech()
        self.tick_interval = tick_interval
        self.reveal_delay = reveal_delay

        self._questions: Tuple[Question, ...] = ()
        self._epoch = 0
        self._state = RoundState.idle()
        self._countdown_task: Optional[asyncio.Task] = None
        self._reveal_task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []

    # -----------------------------
    # Observation
    # -----------------------------

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def phase(self) -> RoundPhase:
        return self._state.phase

    @property
    def epoch(self) -> int:
        return self._epoch

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed in phase %s", state.phase.value)

    # -----------------------------
    # Commands
    # -----------------------------

    def begin(self, questions: Sequence[Question]) -> None:
        """Start the first round. Needs a running event loop."""
        if self._state.phase is not RoundPhase.IDLE:
            raise RuntimeError(f"Cannot start from phase {self._state.phase.value}")
        if not questions:
            raise ValueError("No questions to play.")
        self._questions = tuple(questions)
        self._start_round(0)

    def submit_local(self, label: str) -> bool:
        """
        Local player's answer. Locks the round if it is still counting down.
        Returns False (no-op) when the round is not accepting answers.
        """
        answer = normalize_label(label)
        if answer not in OPTION_LABELS:
            logger.debug("Ignoring local answer %r", label)
            return False
        if self._state.phase is not RoundPhase.COUNTDOWN:
            return False
        return self._lock(LOCK_CAUSE_LOCAL, answer)

    def handle_answer(self, event: AnswerEvent) -> bool:
        """
        Feed one audience answer.

        During the countdown it counts for the tally and the player's stats.
        After lock (same round) it still counts for stats, but the tally shown
        for the round stays frozen. Any other phase drops it.
        """
        state = self._state
        if event.round_id and event.round_id != state.round_id:
            logger.debug("Dropping answer %s from round %s", event.dedup_key, event.round_id)
            return False
        if state.question is None:
            return False

        if state.phase is RoundPhase.COUNTDOWN:
            recorded = self.aggregator.record(event, state.question.correct_label)
        elif state.phase is RoundPhase.LOCKED:
            recorded = self.aggregator.record(event, state.question.correct_label, count_vote=False)
        else:
            return False

        if recorded:
            self._notify()
        return recorded

    def restart(self) -> None:
        """Tear everything down and go back to IDLE."""
        self._epoch += 1
        self._cancel_task(self._countdown_task)
        self._cancel_task(self._reveal_task)
        self._countdown_task = None
        self._reveal_task = None
        self._questions = ()
        self.aggregator.clear()
        self._state = RoundState.idle(self._epoch)
        logger.info("Round engine restarted")
        self._notify()

    # -----------------------------
    # Transitions
    # -----------------------------

    def _start_round(self, index: int) -> None:
        self._epoch += 1
        epoch = self._epoch
        question = self._questions[index]
        # read per round: preference changes never touch a running round
        seconds = int(self.preferences.question_timer_seconds)

        self.aggregator.reset()
        if self.channel is not None:
            self.channel.rearm(epoch)

        self._state = RoundState(
            round_id=epoch,
            phase=RoundPhase.COUNTDOWN,
            index=index,
            total=len(self._questions),
            question=question,
            remaining_seconds=seconds,
        )
        self._countdown_task = asyncio.create_task(self._run_countdown(epoch))
        logger.info("Round %d/%d started (%s, %ss)", index + 1, len(self._questions), question.id, seconds)

        say(self.speech, question.text)
        self._notify()

    async def _run_countdown(self, epoch: int) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            if not self.tick(epoch):
                return

    def tick(self, epoch: int) -> bool:
        """One second passed. Returns whether the countdown keeps running."""
        state = self._state
        if epoch != self._epoch or state.phase is not RoundPhase.COUNTDOWN:
            logger.debug("Ignoring late tick for round %s", epoch)
            return False

        remaining = max(0, state.remaining_seconds - 1)
        self._state = state.evolve(remaining_seconds=remaining)
        self._notify()

        if remaining == 0:
            self._lock(LOCK_CAUSE_TIMEOUT)
            return False
        return True

    def _lock(self, cause: str, local_answer: Optional[str] = None) -> bool:
        state = self._state
        if state.phase is not RoundPhase.COUNTDOWN or state.locked:
            return False

        question = state.question
        correct = local_answer is not None and local_answer == question.correct_label
        points = question.points if correct else 0
        reveal = RevealPayload(
            correct_label=question.correct_label,
            local_answer=local_answer,
            local_correct=correct,
            points_awarded=points,
            cause=cause,
        )

        if self._countdown_task is not asyncio.current_task():
            self._cancel_task(self._countdown_task)
        self._countdown_task = None

        self.aggregator.close_round(question.id, question.correct_label, local_answer, points)
        self._state = state.evolve(
            phase=RoundPhase.LOCKED,
            locked=True,
            local_answer=local_answer,
            reveal=reveal,
        )
        self._reveal_task = asyncio.create_task(self._run_reveal(state.round_id))
        logger.info(
            "Round %d locked by %s (answer=%s, correct=%s, +%d)",
            state.index + 1, cause, local_answer, question.correct_label, points,
        )

        say(self.speech, self._announcement(question, reveal))
        self._notify()
        return True

    async def _run_reveal(self, epoch: int) -> None:
        await asyncio.sleep(self.reveal_delay)
        self.advance(epoch)

    def advance(self, epoch: int) -> None:
        state = self._state
        if epoch != self._epoch or state.phase is not RoundPhase.LOCKED:
            return
        self._reveal_task = None

        self._state = state.evolve(phase=RoundPhase.ADVANCING)
        self._notify()
        if self._epoch != epoch:
            # a listener restarted us
            return

        next_index = state.index + 1
        if next_index < len(self._questions):
            self._start_round(next_index)
        else:
            self._state = self._state.evolve(phase=RoundPhase.FINISHED)
            logger.info("Session finished after %d rounds", len(self._questions))
            self._notify()

    # -----------------------------
    # Helpers
    # -----------------------------

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    @staticmethod
    def _announcement(question: Question, reveal: RevealPayload) -> str:
        answer = f"{reveal.correct_label}: {question.option_text(reveal.correct_label)}"
        if reveal.local_correct:
            return f"Correct! +{reveal.points_awarded} points. The answer is {answer}."
        if reveal.cause == LOCK_CAUSE_TIMEOUT and reveal.local_answer is None:
            return f"Time's up! The correct answer is {answer}."
        return f"Wrong! The correct answer is {answer}."
