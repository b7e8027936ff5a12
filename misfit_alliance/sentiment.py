"""Community sentiment model.

Hostility is a single scalar in ``[0, 1]`` describing how the forum feels
about the team.  Match results push it around, streaks amplify the swing
and the derived display metrics (intensity, impression score, peak flag)
are pure functions of the current value.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Iterable, Optional, Sequence

from .config import SentimentRules
from .models import CommunitySentiment, Intensity, MatchOutcome, clamp
from .redemption import coerce_rating

logger = logging.getLogger(__name__)

NEUTRAL_RATING = 6.5
NEUTRAL_HOSTILITY = 0.5

_SCORE_PATTERN = re.compile(r"^\s*(\d+)\s*[-:]\s*(\d+)\s*$")

_LABELS = (
    (0.8, "furious"),
    (0.6, "hostile"),
    (0.4, "tense"),
    (0.2, "wary"),
)


def score_difference(score: Optional[str]) -> int:
    """Absolute goal differential of an ``"N-M"`` score string (0 if unreadable)."""

    if not score:
        return 0
    match = _SCORE_PATTERN.match(str(score))
    if not match:
        return 0
    return abs(int(match.group(1)) - int(match.group(2)))


def average_rating(ratings: Iterable[object]) -> float:
    values = [rating for rating in (coerce_rating(item) for item in ratings) if rating is not None]
    if not values:
        return NEUTRAL_RATING
    return sum(values) / len(values)


class SentimentEngine:
    """Computes hostility changes under a set of rules."""

    def __init__(self, rules: SentimentRules | None = None) -> None:
        self.rules = rules or SentimentRules()

    def update_hostility(
        self,
        current: float,
        result: MatchOutcome | str | None,
        score_diff: float = 0,
        average_rating: float = NEUTRAL_RATING,
    ) -> float:
        rules = self.rules
        outcome = MatchOutcome.parse(result)
        level = coerce_rating(current)
        if level is None:
            logger.debug("Unusable hostility %r; restarting from default", current)
            level = rules.default_hostility
        diff = abs(coerce_rating(score_diff) or 0)
        if outcome is MatchOutcome.WIN:
            change = rules.win_base + rules.win_per_goal * diff
        elif outcome is MatchOutcome.DRAW:
            change = rules.draw_base
        elif outcome is MatchOutcome.LOSS:
            change = rules.loss_base + rules.loss_per_goal * diff
        else:
            logger.debug("Unknown match result %r; no outcome change", result)
            change = 0.0

        rating = coerce_rating(average_rating)
        if rating is None:
            rating = NEUTRAL_RATING
        if rating < rules.rating_floor:
            change += (rules.rating_floor - rating) * rules.low_rating_weight
        elif rating > rules.rating_ceiling:
            change -= (rating - rules.rating_ceiling) * rules.high_rating_weight

        return clamp(level + change, 0.0, 1.0)

    def calculate_trend(self, recent_results: Sequence[MatchOutcome | str]) -> float:
        length = self.rules.streak_length
        if length <= 0 or len(recent_results) < length:
            return 0.0
        window = [MatchOutcome.parse(item) for item in recent_results[-length:]]
        if all(item is MatchOutcome.WIN for item in window):
            return self.rules.win_streak
        if all(item is MatchOutcome.LOSS for item in window):
            return self.rules.loss_streak
        return 0.0

    def apply_match(
        self,
        sentiment: CommunitySentiment,
        result: MatchOutcome | str | None,
        score_diff: float = 0,
        average_rating: float = NEUTRAL_RATING,
        recent_results: Sequence[MatchOutcome | str] = (),
    ) -> CommunitySentiment:
        """Outcome update plus the streak adjustment, clamped after each step."""

        updated = self.update_hostility(sentiment.hostility, result, score_diff, average_rating)
        trend = self.calculate_trend(recent_results)
        if trend:
            logger.info("Result streak detected; hostility trend %+.2f", trend)
        return CommunitySentiment(updated + trend)

    def apply_reply(self, sentiment: CommunitySentiment) -> CommunitySentiment:
        return CommunitySentiment(sentiment.hostility - self.rules.reply_relief)

    def apply_oppose(self, sentiment: CommunitySentiment) -> CommunitySentiment:
        return CommunitySentiment(sentiment.hostility + self.rules.oppose_penalty)

    def get_comment_intensity(self, hostility: float) -> Intensity:
        return Intensity.TOXIC if hostility > self.rules.toxic_threshold else Intensity.HYPE

    def is_hostility_peak(self, hostility: float) -> bool:
        return hostility >= self.rules.peak_threshold


def get_impression_score(hostility: float) -> int:
    value = coerce_rating(hostility)
    if value is None:
        value = NEUTRAL_HOSTILITY
    # Half-up rounding; Python's round() would send 0.5 to the even neighbour.
    return int(clamp(math.floor((1 - value) * 100 + 0.5), 0, 100))


def hostility_label(hostility: float) -> str:
    for threshold, label in _LABELS:
        if hostility >= threshold:
            return label
    return "harmonious"


_DEFAULT_ENGINE = SentimentEngine()


def update_hostility(
    current: float,
    result: MatchOutcome | str | None,
    score_diff: float = 0,
    average_rating: float = NEUTRAL_RATING,
) -> float:
    return _DEFAULT_ENGINE.update_hostility(current, result, score_diff, average_rating)


def calculate_trend(recent_results: Sequence[MatchOutcome | str]) -> float:
    return _DEFAULT_ENGINE.calculate_trend(recent_results)


def get_comment_intensity(hostility: float) -> Intensity:
    return _DEFAULT_ENGINE.get_comment_intensity(hostility)


def is_hostility_peak(hostility: float) -> bool:
    return _DEFAULT_ENGINE.is_hostility_peak(hostility)


__all__ = [
    "NEUTRAL_HOSTILITY",
    "NEUTRAL_RATING",
    "SentimentEngine",
    "average_rating",
    "calculate_trend",
    "get_comment_intensity",
    "get_impression_score",
    "hostility_label",
    "is_hostility_peak",
    "score_difference",
    "update_hostility",
]
