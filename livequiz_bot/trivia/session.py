# livequiz_bot/trivia/session.py

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from livequiz_bot.channel.answer_channel import AnswerChannel, ChannelError
from livequiz_bot.channel.transport import MessageHub
from livequiz_bot.speech import NullSpeech, SpeechOutput
from livequiz_bot.trivia.aggregator import Aggregator
from livequiz_bot.trivia.constants import REVEAL_DELAY_SECONDS, TICK_INTERVAL_SECONDS
from livequiz_bot.trivia.engine import RoundEngine
from livequiz_bot.trivia.questions import QuestionRepository
from livequiz_bot.trivia.state import RoundPhase, RoundState, SessionSummary

logger = logging.getLogger(__name__)


class SessionController:
    """
    Runs the whole question list once, keeps the local player's score and
    builds the summary when the engine reports FINISHED.

    Collaborators (questions, preferences, speech, answer channel) are all
    injected so a session can be driven end to end in tests.
    """

    def __init__(
        self,
        repository: QuestionRepository,
        preferences,
        *,
        speech: Optional[SpeechOutput] = None,
        transport: Optional[MessageHub] = None,
        channel_factory: Optional[Callable[[], AnswerChannel]] = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        reveal_delay: float = REVEAL_DELAY_SECONDS,
    ):
        self.repository = repository
        self.preferences = preferences
        self.speech = speech or NullSpeech()
        self.transport = transport
        self.channel_factory = channel_factory

        self.aggregator = Aggregator()
        self.engine = RoundEngine(
            self.aggregator,
            preferences,
            speech=self.speech,
            tick_interval=tick_interval,
            reveal_delay=reveal_delay,
        )
        self.engine.subscribe(self._on_state)

        self.channel: Optional[AnswerChannel] = None
        self.channel_errors: List[ChannelError] = []
        self.score = 0
        self.local_correct = 0
        self.summary: Optional[SessionSummary] = None

        self._top_n = preferences.top_player_count
        self._scored_round: Optional[int] = None
        self._finished = asyncio.Event()

    @property
    def phase(self) -> RoundPhase:
        return self.engine.phase

    @property
    def is_running(self) -> bool:
        return self.engine.phase not in (RoundPhase.IDLE, RoundPhase.FINISHED)

    # -----------------------------
    # Commands
    # -----------------------------

    def start(self) -> None:
        if self.engine.phase is not RoundPhase.IDLE:
            raise RuntimeError("A session is already running; restart it first.")

        self._top_n = self.preferences.top_player_count
        self.summary = None
        self._finished.clear()

        if self.channel_factory is not None and self.transport is not None:
            self.channel = self.channel_factory()
            self.channel.open(
                self.transport,
                on_answer=self.engine.handle_answer,
                on_error=self._on_channel_error,
            )
            self.engine.channel = self.channel

        logger.info("Session starting with %d questions", len(self.repository))
        self.engine.begin(self.repository.all())

    def submit_answer(self, label: str) -> bool:
        return self.engine.submit_local(label)

    def restart(self) -> None:
        """Back to a fresh, not-yet-started session on the same questions."""
        self._close_channel()
        self.engine.restart()
        self.score = 0
        self.local_correct = 0
        self.summary = None
        self.channel_errors = []
        self._scored_round = None
        self._finished.clear()
        logger.info("Session restarted")

    async def wait_finished(self) -> SessionSummary:
        await self._finished.wait()
        return self.summary

    # -----------------------------
    # Engine / channel callbacks
    # -----------------------------

    def _on_state(self, state: RoundState) -> None:
        if state.phase is RoundPhase.LOCKED and state.reveal is not None:
            if self._scored_round == state.round_id:
                return
            self._scored_round = state.round_id
            self.score += state.reveal.points_awarded
            if state.reveal.local_correct:
                self.local_correct += 1
        elif state.phase is RoundPhase.FINISHED and self.summary is None:
            self.summary = self._build_summary()
            self._close_channel()
            self._finished.set()
            logger.info("Final score: %d", self.score)

    def _on_channel_error(self, exc: ChannelError) -> None:
        # rounds keep running on the timer; there just won't be audience votes
        self.channel_errors.append(exc)
        logger.warning("No audience data: %s", exc)

    def _close_channel(self) -> None:
        if self.channel is not None:
            self.channel.close()
            self.channel = None
        self.engine.channel = None

    def _build_summary(self) -> SessionSummary:
        return SessionSummary(
            local_score=self.score,
            local_correct=self.local_correct,
            question_count=len(self.repository),
            top_participants=self.aggregator.top_participants(self._top_n),
            participants=self.aggregator.leaderboard(),
            rounds=self.aggregator.history,
        )
