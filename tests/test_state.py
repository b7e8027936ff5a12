"""Tests for sqlite session persistence."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from misfit_alliance.models import (
    ForumPost,
    Intensity,
    MatchEntry,
    MatchHistoryEntry,
    MatchOutcome,
    Player,
    SeasonState,
)
from misfit_alliance.state import GameState

NOW = datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)


def _player(pid="1", name="Griezmann"):
    return Player(
        id=pid,
        name=name,
        nickname="French Soft Shrimp",
        backstory="Bench warmer",
        redemption_score=18,
        history=(
            MatchEntry(rating=6.5, goals=1, assists=0, position="CF", timestamp=NOW),
            MatchEntry(rating=None, timestamp=NOW + timedelta(days=1)),
        ),
        trust_bonus=True,
    )


def _post(content="Useless again"):
    post = ForumPost.create(
        author="Fan12", content=content, intensity=Intensity.TOXIC, player_id="1", now=NOW
    )
    return post.liked().disliked().with_reply("Coach (you)", "Give him time", NOW)


def _history_entry(index, when):
    return MatchHistoryEntry(
        id=f"m{index}",
        outcome=MatchOutcome.WIN if index % 2 else MatchOutcome.LOSS,
        score=f"{index}-0",
        possession=55.5,
        ratings={"Griezmann": 7.1, "Sancho": None},
        hostility=0.4,
        headline=f"Match {index}",
        timestamp=when,
    )


def test_defaults_for_fresh_database(tmp_path):
    state = GameState(tmp_path / "state.sqlite")

    assert state.load_players() == []
    assert state.load_posts() == []
    assert not state.has_hostility()
    assert state.load_hostility() == pytest.approx(0.5)
    assert state.load_hostility(0.7) == pytest.approx(0.7)
    assert state.load_season() == SeasonState()
    assert state.load_match_history() == []


def test_round_trip_every_slot(tmp_path):
    state = GameState(tmp_path / "state.sqlite")
    players = [_player("1", "Griezmann"), _player("2", "Coutinho")]
    posts = [_post("first"), _post("second")]
    season = SeasonState(wins=2, losses=1, draws=0, match_count=3,
                         recent_results=(MatchOutcome.WIN, MatchOutcome.LOSS, MatchOutcome.WIN))
    entry = _history_entry(1, NOW)

    state.save_players(players)
    state.save_posts(posts)
    state.save_hostility(0.42)
    state.save_season(season)
    state.record_match_history(entry)

    reopened = GameState(tmp_path / "state.sqlite")
    assert reopened.load_players() == players
    assert reopened.load_posts() == posts
    assert reopened.load_hostility() == pytest.approx(0.42)
    assert reopened.load_season() == season
    assert reopened.load_match_history() == [entry]


def test_save_players_replaces_roster_and_keeps_order(tmp_path):
    state = GameState(tmp_path / "state.sqlite")
    state.save_players([_player("1", "A"), _player("2", "B")])
    state.save_players([_player("9", "Z"), _player("3", "C")])
    assert [p.name for p in state.load_players()] == ["Z", "C"]


def test_match_history_is_capped_newest_first(tmp_path):
    state = GameState(tmp_path / "state.sqlite")
    for index in range(20):
        state.record_match_history(_history_entry(index, NOW + timedelta(hours=index)))

    history = state.load_match_history()
    assert len(history) == 15
    assert history[0].id == "m19"
    assert history[-1].id == "m5"
    with sqlite3.connect(tmp_path / "state.sqlite") as conn:
        assert conn.execute("SELECT COUNT(*) FROM match_history").fetchone()[0] == 15


def test_commit_match_writes_all_slots(tmp_path):
    state = GameState(tmp_path / "state.sqlite")
    season = SeasonState().record(MatchOutcome.WIN)
    state.commit_match(
        players=[_player()],
        posts=[_post()],
        hostility=0.33,
        season=season,
        history_entry=_history_entry(1, NOW),
    )
    assert len(state.load_players()) == 1
    assert len(state.load_posts()) == 1
    assert state.load_hostility() == pytest.approx(0.33)
    assert state.load_season() == season
    assert [h.id for h in state.load_match_history()] == ["m1"]


def test_commit_match_rolls_back_on_failure(tmp_path):
    state = GameState(tmp_path / "state.sqlite")
    original = [_player("1", "Griezmann")]
    state.save_players(original)
    state.save_hostility(0.6)

    duplicate = _player("7", "Twin")
    with pytest.raises(sqlite3.IntegrityError):
        state.commit_match(
            players=[duplicate, duplicate],
            posts=[_post()],
            hostility=0.1,
            season=SeasonState().record(MatchOutcome.WIN),
        )

    assert state.load_players() == original
    assert state.load_posts() == []
    assert state.load_hostility() == pytest.approx(0.6)
    assert state.load_season() == SeasonState()


def test_malformed_rows_are_skipped(tmp_path):
    db = tmp_path / "state.sqlite"
    state = GameState(db)
    state.save_players([_player("1", "Good")])
    with sqlite3.connect(db) as conn:
        conn.execute("INSERT INTO players (id, position, data) VALUES ('bad', 1, '{not json')")
    assert [p.name for p in state.load_players()] == ["Good"]


def test_clear_all(tmp_path):
    state = GameState(tmp_path / "state.sqlite")
    state.save_players([_player()])
    state.save_hostility(0.9)
    state.record_match_history(_history_entry(1, NOW))
    state.clear_all()

    assert state.load_players() == []
    assert not state.has_hostility()
    assert state.load_match_history() == []
