"""Tests for the immutable entity model."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from misfit_alliance.models import (
    CommunitySentiment,
    ForumPost,
    Intensity,
    MatchOutcome,
    Player,
    RedemptionState,
    SeasonState,
    get_redemption_state,
)


@pytest.mark.parametrize(
    "score, expected",
    [
        (0, RedemptionState.FALLEN),
        (20, RedemptionState.FALLEN),
        (21, RedemptionState.WAKING),
        (80, RedemptionState.WAKING),
        (81, RedemptionState.REDEEMED),
        (100, RedemptionState.REDEEMED),
    ],
)
def test_redemption_state_boundaries(score, expected):
    assert get_redemption_state(score) is expected


def test_player_score_clamped_on_construction():
    assert Player(id="a", name="A", redemption_score=150).redemption_score == 100
    assert Player(id="b", name="B", redemption_score=-12).redemption_score == 0


def test_player_state_is_derived_from_score():
    player = Player(id="p", name="Sancho", redemption_score=18)
    assert player.redemption_state is RedemptionState.FALLEN
    assert player.with_trust_bonus().redemption_state is RedemptionState.FALLEN


def test_with_profile_keeps_identity_and_history():
    player = Player.create("Coutinho", nickname="Flop", redemption_score=5)
    renamed = player.with_profile(nickname="Little Magician", backstory="Back from the dead")

    assert renamed.id == player.id
    assert renamed.nickname == "Little Magician"
    assert renamed.backstory == "Back from the dead"
    assert renamed.redemption_score == 5
    # The original value is untouched.
    assert player.nickname == "Flop"
    assert player.with_profile() is player


def test_trust_bonus_toggle():
    player = Player.create("Griezmann")
    assert not player.trust_bonus
    trusted = player.with_trust_bonus()
    assert trusted.trust_bonus
    assert not trusted.with_trust_bonus(False).trust_bonus


def test_forum_post_reactions_return_new_values():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    post = ForumPost.create(author="Fan1", content="Shocking", intensity=Intensity.TOXIC, now=now)

    liked = post.liked().liked()
    disliked = post.disliked()
    replied = post.with_reply("Coach (you)", "Stay with us", now)

    assert (post.likes, post.dislikes, post.replies) == (0, 0, ())
    assert liked.likes == 2
    assert disliked.dislikes == 1
    assert len(replied.replies) == 1
    assert replied.replies[0].author == "Coach (you)"
    assert replied.replies[0].timestamp == now
    assert replied.id == post.id


def test_community_sentiment_clamps():
    assert CommunitySentiment(1.7).hostility == 1.0
    assert CommunitySentiment(-0.3).hostility == 0.0
    assert CommunitySentiment(float("nan")).hostility == 0.5


def test_community_sentiment_bootstrap_prefers_stored_value():
    assert CommunitySentiment.bootstrap(None, 0.7).hostility == pytest.approx(0.7)
    assert CommunitySentiment.bootstrap(0.2, 0.7).hostility == pytest.approx(0.2)


def test_match_outcome_parse():
    assert MatchOutcome.parse("WIN") is MatchOutcome.WIN
    assert MatchOutcome.parse(" loss ") is MatchOutcome.LOSS
    assert MatchOutcome.parse(MatchOutcome.DRAW) is MatchOutcome.DRAW
    assert MatchOutcome.parse("abandoned") is None
    assert MatchOutcome.parse(None) is None


def test_season_record_counts_and_bounds_recent_results():
    season = SeasonState()
    for outcome in [MatchOutcome.WIN, MatchOutcome.LOSS, MatchOutcome.DRAW,
                    MatchOutcome.WIN, MatchOutcome.WIN, MatchOutcome.LOSS]:
        season = season.record(outcome, limit=5)

    assert (season.wins, season.losses, season.draws) == (3, 2, 1)
    assert season.match_count == 6
    assert season.recent_results == (
        MatchOutcome.LOSS,
        MatchOutcome.DRAW,
        MatchOutcome.WIN,
        MatchOutcome.WIN,
        MatchOutcome.LOSS,
    )


def test_season_record_unknown_outcome_only_counts_match():
    season = SeasonState().record(None)
    assert season.match_count == 1
    assert season.recent_results == ()
    assert (season.wins, season.losses, season.draws) == (0, 0, 0)
