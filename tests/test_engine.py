import asyncio

import pytest

from livequiz_bot.trivia.aggregator import Aggregator
from livequiz_bot.trivia.engine import RoundEngine
from livequiz_bot.trivia.questions import QUESTIONS
from livequiz_bot.trivia.state import ParticipantStat, RoundPhase

# Long intervals so nothing fires on its own; tests drive tick()/advance().
MANUAL = dict(tick_interval=100, reveal_delay=100)


def make_engine(prefs, **kwargs):
    options = dict(MANUAL)
    options.update(kwargs)
    agg = Aggregator()
    return RoundEngine(agg, prefs, **options), agg


def tick_until_locked(engine):
    epoch = engine.epoch
    while engine.tick(epoch):
        pass


class RearmRecorder:
    def __init__(self):
        self.round_ids = []

    def rearm(self, round_id):
        self.round_ids.append(round_id)


def test_begin_starts_countdown(prefs, speech):
    async def scenario():
        channel = RearmRecorder()
        engine, agg = make_engine(prefs, speech=speech, channel=channel)
        engine.begin(QUESTIONS)

        state = engine.state
        assert state.phase is RoundPhase.COUNTDOWN
        assert state.question.id == "q1"
        assert state.remaining_seconds == 3
        assert state.total == 10
        assert not state.locked
        assert speech.spoken == [QUESTIONS[0].text]
        assert channel.round_ids == [state.round_id]

        with pytest.raises(RuntimeError):
            engine.begin(QUESTIONS)

    asyncio.run(scenario())


def test_countdown_hits_zero_then_locks(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        seen = []
        engine.subscribe(lambda s: seen.append((s.phase, s.remaining_seconds)))
        engine.begin(QUESTIONS)

        tick_until_locked(engine)

        countdown = [r for phase, r in seen if phase is RoundPhase.COUNTDOWN]
        assert countdown == [3, 2, 1, 0]
        assert min(r for _, r in seen) == 0
        state = engine.state
        assert state.phase is RoundPhase.LOCKED
        assert state.remaining_seconds == 0
        assert state.local_answer is None
        assert state.reveal.cause == "timeout"
        assert state.reveal.points_awarded == 0

    asyncio.run(scenario())


def test_timer_then_local_is_same_as_timer(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        engine.begin(QUESTIONS)
        tick_until_locked(engine)
        once = engine.state

        assert engine.submit_local("B") is False
        assert engine.tick(engine.epoch) is False
        assert engine.state == once

    asyncio.run(scenario())


def test_local_then_timer_is_same_as_local(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        engine.begin(QUESTIONS)
        epoch = engine.epoch
        assert engine.submit_local("b") is True
        once = engine.state

        assert engine.tick(epoch) is False
        assert engine.tick(epoch) is False
        assert engine.submit_local("B") is False
        assert engine.state == once
        assert once.remaining_seconds == 3
        assert once.reveal.cause == "local"

    asyncio.run(scenario())


@pytest.mark.parametrize("answer,points,correct", [("B", 100, True), ("A", 0, False), ("d", 0, False)])
def test_scoring_is_exact(prefs, answer, points, correct):
    async def scenario():
        engine, agg = make_engine(prefs)
        engine.begin(QUESTIONS)
        engine.submit_local(answer)

        reveal = engine.state.reveal
        assert reveal.correct_label == "B"
        assert reveal.local_correct is correct
        assert reveal.points_awarded == points
        assert agg.history[-1].points_awarded == points

    asyncio.run(scenario())


def test_invalid_local_answer_is_ignored(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        engine.begin(QUESTIONS)
        assert engine.submit_local("E") is False
        assert engine.submit_local("") is False
        assert engine.phase is RoundPhase.COUNTDOWN

    asyncio.run(scenario())


def test_answers_during_countdown_count(prefs, make_event):
    async def scenario():
        engine, agg = make_engine(prefs)
        engine.begin(QUESTIONS)
        rid = engine.state.round_id

        assert engine.handle_answer(make_event("P1", "B", round_id=rid))
        assert engine.handle_answer(make_event("P2", "c"))
        assert not engine.handle_answer(make_event("P3", "B", round_id=rid + 50))

        assert agg.tally.as_dict() == {"A": 0, "B": 1, "C": 1, "D": 0}
        assert agg.stat_for("P3") is None

    asyncio.run(scenario())


def test_late_answers_update_stats_not_tally(prefs, make_event):
    async def scenario():
        engine, agg = make_engine(prefs)
        engine.begin(QUESTIONS)
        engine.handle_answer(make_event("P1", "A"))
        engine.submit_local("B")
        frozen = agg.tally

        assert engine.handle_answer(make_event("P2", "B"))
        assert agg.tally == frozen
        assert agg.history[-1].tally == frozen
        assert agg.stat_for("P2") == ParticipantStat(1, 1)

        engine.advance(engine.epoch)
        # new round: nothing from before lock leaks into the tally
        assert agg.tally.total == 0

    asyncio.run(scenario())


def test_advance_moves_to_next_round_and_ignores_stale_epoch(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        engine.begin(QUESTIONS)
        first = engine.epoch
        engine.submit_local("B")

        engine.advance(first - 1)
        assert engine.phase is RoundPhase.LOCKED

        engine.advance(first)
        state = engine.state
        assert state.phase is RoundPhase.COUNTDOWN
        assert state.index == 1
        assert state.round_id != first
        assert state.local_answer is None
        assert not state.locked

        # a tick from round one can't touch round two
        assert engine.tick(first) is False
        assert engine.state.remaining_seconds == 3

    asyncio.run(scenario())


def test_last_round_finishes(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        phases = []
        engine.subscribe(lambda s: phases.append(s.phase))
        engine.begin(QUESTIONS[:2])

        for _ in range(2):
            engine.submit_local("B")
            engine.advance(engine.epoch)

        assert engine.phase is RoundPhase.FINISHED
        assert phases[-2:] == [RoundPhase.ADVANCING, RoundPhase.FINISHED]
        assert engine.submit_local("A") is False

    asyncio.run(scenario())


def test_timer_length_is_read_at_round_start(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        engine.begin(QUESTIONS)
        prefs.question_timer_seconds = 7
        assert engine.state.remaining_seconds == 3

        engine.submit_local("A")
        engine.advance(engine.epoch)
        assert engine.state.remaining_seconds == 7

    asyncio.run(scenario())


def test_restart_tears_down(prefs, make_event):
    async def scenario():
        engine, agg = make_engine(prefs)
        engine.begin(QUESTIONS)
        old = engine.epoch
        engine.handle_answer(make_event("P1", "B"))

        engine.restart()
        assert engine.phase is RoundPhase.IDLE
        assert agg.stats == {}
        assert agg.tally.total == 0
        assert engine.tick(old) is False
        assert engine.phase is RoundPhase.IDLE

        engine.begin(QUESTIONS)
        assert engine.state.index == 0
        assert engine.phase is RoundPhase.COUNTDOWN

    asyncio.run(scenario())


def test_restart_while_locked_cancels_reveal(prefs):
    async def scenario():
        engine, _ = make_engine(prefs, tick_interval=100, reveal_delay=0.01)
        engine.begin(QUESTIONS)
        engine.submit_local("B")
        engine.restart()
        await asyncio.sleep(0.05)
        assert engine.phase is RoundPhase.IDLE

    asyncio.run(scenario())


def test_real_timers_run_through_all_phases(prefs):
    async def scenario():
        prefs.question_timer_seconds = 2
        engine, _ = make_engine(prefs, tick_interval=0.01, reveal_delay=0.01)
        phases = []

        def record(state):
            if not phases or phases[-1] is not state.phase:
                phases.append(state.phase)

        engine.subscribe(record)
        engine.begin(QUESTIONS[:2])
        for _ in range(200):
            if engine.phase is RoundPhase.FINISHED:
                break
            await asyncio.sleep(0.01)

        assert phases == [
            RoundPhase.COUNTDOWN,
            RoundPhase.LOCKED,
            RoundPhase.ADVANCING,
            RoundPhase.COUNTDOWN,
            RoundPhase.LOCKED,
            RoundPhase.ADVANCING,
            RoundPhase.FINISHED,
        ]

    asyncio.run(scenario())


def test_broken_listener_and_speech_do_not_stop_rounds(prefs):
    class BrokenSpeech:
        def speak(self, text):
            raise RuntimeError("no audio device")

    def broken_listener(state):
        raise ValueError("ui crashed")

    async def scenario():
        engine, _ = make_engine(prefs, speech=BrokenSpeech())
        engine.subscribe(broken_listener)
        engine.begin(QUESTIONS)
        assert engine.submit_local("B")
        assert engine.state.reveal.points_awarded == 100

    asyncio.run(scenario())


def test_unsubscribe(prefs):
    async def scenario():
        engine, _ = make_engine(prefs)
        seen = []
        unsubscribe = engine.subscribe(seen.append)
        unsubscribe()
        engine.begin(QUESTIONS)
        assert seen == []

    asyncio.run(scenario())
