# scripts/demo_session.py
#
# Plays one full session in the terminal with fake audience answers.
# The "local player" picks randomly too, some of the time.

import asyncio
import logging
import random

from livequiz_bot.channel.answer_channel import AnswerChannel
from livequiz_bot.channel.transport import MessageHub
from livequiz_bot.config import FALLBACK_TIMEOUT_MS, LOG_LEVEL, PREFERENCES_PATH, WIDGET_BASE_URL
from livequiz_bot.speech import LoggingSpeech
from livequiz_bot.trivia.preferences import PreferenceStore
from livequiz_bot.trivia.questions import QuestionRepository
from livequiz_bot.trivia.session import SessionController
from livequiz_bot.trivia.state import RoundPhase

DEMO_CHANNEL_ID = "demo"


async def main():
    hub = MessageHub()
    prefs = PreferenceStore(PREFERENCES_PATH)

    session = SessionController(
        QuestionRepository(),
        prefs,
        speech=LoggingSpeech(),
        transport=hub,
        channel_factory=lambda: AnswerChannel(
            DEMO_CHANNEL_ID,
            WIDGET_BASE_URL,
            timeout=FALLBACK_TIMEOUT_MS / 1000,
            demo_mode=True,
        ),
    )

    async def local_player():
        while session.phase is not RoundPhase.FINISHED:
            await asyncio.sleep(random.uniform(2.0, prefs.question_timer_seconds + 2.0))
            if session.phase is RoundPhase.COUNTDOWN:
                session.submit_answer(random.choice("ABCD"))

    session.start()
    player = asyncio.create_task(local_player())
    summary = await session.wait_finished()
    player.cancel()

    print(f"\n🎉 Final score: {summary.local_score} ({summary.local_correct}/{summary.question_count})")
    for i, (name, stat) in enumerate(summary.top_participants, start=1):
        print(f"  {i}. {name}: {stat.correct_answers}/{stat.total_answers} ({stat.percent_correct:.0%})")


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    asyncio.run(main())
