"""Tests for forum comment selection."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from misfit_alliance.models import Intensity, MatchEntry, Player, RedemptionState
from misfit_alliance.narrative import CommentSelector, CommentTemplates, tone_for
from misfit_alliance.rng import DeterministicRNG

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)


class FirstChoiceRNG:
    """Pins template selection to the first entry of every pool."""

    def choice(self, seq):
        return seq[0]

    def randint(self, a, b):
        return 7


@pytest.fixture
def templates(tmp_path):
    path = tmp_path / "templates.yaml"
    path.write_text(
        "player:\n"
        "  toxic: ['{name} toxic {rating}']\n"
        "  grumble: ['{name} grumble {rating}']\n"
        "  hype: ['{name} hype {goals_clause}{nickname}']\n"
        "  divided: ['{rating}? {nickname} will always be {nickname}']\n"
        "filler:\n"
        "  toxic: ['filler toxic']\n"
        "  hype: ['filler hype']\n",
        encoding="utf-8",
    )
    return CommentTemplates(path)


@pytest.mark.parametrize(
    "state, rating, expected",
    [
        (RedemptionState.FALLEN, 9.0, Intensity.TOXIC),
        (RedemptionState.WAKING, 7.0, Intensity.HYPE),
        (RedemptionState.WAKING, 6.9, Intensity.TOXIC),
        (RedemptionState.WAKING, None, Intensity.TOXIC),
        (RedemptionState.REDEEMED, 3.0, Intensity.HYPE),
    ],
)
def test_tone_for_state(state, rating, expected):
    assert tone_for(state, rating) is expected


def test_fallen_player_gets_toxic_post(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Coutinho", nickname="Flop", redemption_score=5)
    post = selector.compose_post(player, MatchEntry(rating=5.2, timestamp=NOW), 0.8, now=NOW)

    assert post.intensity is Intensity.TOXIC
    assert post.content == "Coutinho toxic 5.2"
    assert post.player_id == "p1"
    assert post.author == "Fan7"
    assert post.timestamp == NOW


def test_mild_forum_and_decent_rating_grumbles(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Sancho", redemption_score=15)
    post = selector.compose_post(player, MatchEntry(rating=6.4), 0.55)
    assert post.intensity is Intensity.TOXIC
    assert post.content == "Sancho grumble 6.4"


def test_redeemed_player_hype_includes_goals(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Griezmann", nickname="Shrimp", redemption_score=90)
    post = selector.compose_post(player, MatchEntry(rating=8.1, goals=2), 0.9)
    assert post.intensity is Intensity.HYPE
    assert post.content == "Griezmann hype scored 2, Shrimp"


def test_generated_text_wins_over_templates(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Griezmann", redemption_score=90)
    post = selector.compose_post(player, MatchEntry(rating=8.1), 0.2, content="  Take a bow!  ")
    assert post.content == "Take a bow!"


def test_missing_rating_renders_placeholder(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Sancho", redemption_score=5)
    post = selector.compose_post(player, MatchEntry(rating=None), 0.9)
    assert post.content == "Sancho toxic N/A"


def test_missing_rating_on_mild_forum_grumbles(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Sancho", redemption_score=5)
    post = selector.compose_post(player, MatchEntry(rating=None), 0.4)
    assert post.intensity is Intensity.TOXIC
    assert post.content == "Sancho grumble N/A"


def test_divided_posts_pair_praise_with_rebuttal(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    player = Player(id="p1", name="Sancho", nickname="Ghost", redemption_score=40)
    praise, rebuttal = selector.divided_posts(player, MatchEntry(rating=7.4), 0.5, now=NOW)

    assert praise.intensity is Intensity.HYPE
    assert praise.content == "Sancho hype Ghost"
    assert rebuttal.intensity is Intensity.TOXIC
    assert rebuttal.content == "7.4? Ghost will always be Ghost"
    assert praise.player_id == rebuttal.player_id == "p1"
    assert praise.timestamp == rebuttal.timestamp == NOW
    assert praise.id != rebuttal.id


def test_divided_posts_without_templates_fall_back(tmp_path):
    selector = CommentSelector(CommentTemplates(tmp_path / "absent.yaml"), FirstChoiceRNG())
    player = Player(id="p1", name="Sancho", redemption_score=40)
    praise, rebuttal = selector.divided_posts(player, MatchEntry(rating=7.0), 0.5)
    assert praise.content == "What a performance from Sancho!"
    assert rebuttal.content == "One good game doesn't wash Sancho clean."


def test_filler_posts_follow_hostility(templates):
    selector = CommentSelector(templates, FirstChoiceRNG())
    toxic = selector.filler_post(0.51, NOW)
    calm = selector.filler_post(0.5, NOW)

    assert toxic.intensity is Intensity.TOXIC
    assert toxic.content == "filler toxic"
    assert toxic.player_id is None
    assert calm.intensity is Intensity.HYPE
    assert calm.content == "filler hype"


def test_missing_template_file_falls_back(tmp_path):
    selector = CommentSelector(CommentTemplates(tmp_path / "absent.yaml"), FirstChoiceRNG())
    player = Player(id="p1", name="Sancho", redemption_score=90)
    post = selector.compose_post(player, MatchEntry(rating=8.0), 0.2)
    assert post.content == "What a performance from Sancho!"


def test_bundled_templates_render_without_leftover_placeholders():
    selector = CommentSelector(rng=DeterministicRNG(11))
    player = Player(id="p1", name="Griezmann", nickname="French Soft Shrimp", redemption_score=50)
    for rating in (4.0, 6.3, 7.4, 9.1):
        for hostility in (0.2, 0.9):
            post = selector.compose_post(player, MatchEntry(rating=rating, goals=1), hostility)
            assert "{" not in post.content
            assert post.content
            for divided in selector.divided_posts(player, MatchEntry(rating=rating), hostility):
                assert "{" not in divided.content


def test_same_seed_same_posts():
    player = Player(id="p1", name="Griezmann", redemption_score=10)
    entry = MatchEntry(rating=5.5)
    first = CommentSelector(rng=DeterministicRNG(3)).compose_post(player, entry, 0.7)
    second = CommentSelector(rng=DeterministicRNG(3)).compose_post(player, entry, 0.7)
    assert (first.author, first.content) == (second.author, second.content)
