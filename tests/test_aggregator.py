import pytest

from livequiz_bot.trivia.aggregator import Aggregator
from livequiz_bot.trivia.state import ParticipantStat


def test_record_updates_tally_and_stats(make_event):
    agg = Aggregator()
    assert agg.record(make_event("P1", "a"), "A")
    assert agg.record(make_event("P2", " b "), "A")

    assert agg.tally.as_dict() == {"A": 1, "B": 1, "C": 0, "D": 0}
    assert agg.stat_for("P1") == ParticipantStat(1, 1)
    assert agg.stat_for("P2") == ParticipantStat(1, 0)


def test_invalid_label_is_ignored(make_event):
    agg = Aggregator()
    assert not agg.record(make_event("P1", "hello"), "A")
    assert agg.total_votes == 0
    assert agg.stats == {}


def test_percentages_zero_when_no_votes():
    assert Aggregator().percentages() == {"A": 0, "B": 0, "C": 0, "D": 0}


def test_percentages_round_half_up(make_event):
    agg = Aggregator()
    agg.record(make_event("P1", "A"), "A")
    for i in range(7):
        agg.record(make_event(f"B{i}", "B"), "A")

    assert agg.percentages() == {"A": 13, "B": 88, "C": 0, "D": 0}


def test_percent_correct_is_derived():
    stat = ParticipantStat()
    assert stat.percent_correct is None

    stat.add_answer(True)
    stat.add_answer(False)
    stat.add_answer(True)
    stat.add_answer(True)
    assert stat.percent_correct == 0.75
    assert ParticipantStat(2, 2).percent_correct == 1.0
    assert ParticipantStat(3, 0).percent_correct == 0.0

    with pytest.raises(AttributeError):
        stat.percent_correct = 10
    with pytest.raises(AttributeError):
        stat.correct_answers = 10


def test_stats_are_copies(make_event):
    agg = Aggregator()
    agg.record(make_event("P1", "A"), "A")
    agg.stats["P1"].add_answer(False)
    assert agg.stat_for("P1") == ParticipantStat(1, 1)


def test_late_vote_updates_stats_only(make_event):
    agg = Aggregator()
    agg.record(make_event("P1", "A"), "A")
    agg.record(make_event("P2", "A"), "A", count_vote=False)

    assert agg.tally.total == 1
    assert [e.participant_id for e in agg.first_responders] == ["P1"]
    assert agg.stat_for("P2") == ParticipantStat(1, 1)


def test_reset_keeps_stats_clear_drops_them(make_event):
    agg = Aggregator()
    agg.record(make_event("P1", "A"), "A")
    agg.close_round("q1", "A", None, 0)

    agg.reset()
    assert agg.tally.total == 0
    assert agg.first_responders == []
    assert agg.stat_for("P1") == ParticipantStat(1, 1)
    assert len(agg.history) == 1

    agg.clear()
    assert agg.stats == {}
    assert agg.history == []


def test_first_responders_are_capped_but_counted(make_event):
    agg = Aggregator()
    for i in range(7):
        agg.record(make_event(f"P{i}", "C"), "C")

    assert [e.participant_id for e in agg.first_responders] == ["P0", "P1", "P2", "P3", "P4"]
    assert agg.responder_count == 7
    assert agg.tally["C"] == 7


def test_top_participants_ties_keep_first_seen_order(make_event):
    agg = Aggregator()
    # P1 seen first, then P2, then P3; P3 ends with 3/5, P1 and P2 with 5/5
    for round_no in range(5):
        agg.record(make_event("P1", "A"), "A")
        agg.record(make_event("P2", "A"), "A")
        agg.record(make_event("P3", "A" if round_no < 3 else "B"), "A")

    top = agg.top_participants(3)
    assert [pid for pid, _ in top] == ["P1", "P2", "P3"]
    assert [(s.correct_answers, s.total_answers) for _, s in top] == [(5, 5), (5, 5), (3, 5)]


def test_top_participants_tie_order_follows_first_seen_not_name(make_event):
    agg = Aggregator()
    agg.record(make_event("zed", "A"), "A")
    agg.record(make_event("amy", "A"), "A")
    assert [pid for pid, _ in agg.top_participants(2)] == ["zed", "amy"]
    assert agg.top_participants(0) == []


def test_close_round_snapshots_tally(make_event):
    agg = Aggregator()
    agg.record(make_event("P1", "D"), "D")
    result = agg.close_round("q10", "D", "D", 250)
    agg.reset()

    assert result.tally.as_dict() == {"A": 0, "B": 0, "C": 0, "D": 1}
    assert agg.history[0].points_awarded == 250
