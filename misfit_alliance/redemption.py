"""Redemption score engine.

Each processed match moves a player's redemption score according to the
rating they earned, whether their form is trending upward and whether the
coach spent a one-shot vote of confidence on them.  All calculations are
pure: they return new :class:`~misfit_alliance.models.Player` values rather
than mutating the ones passed in.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from numbers import Real
from typing import Any, List, Mapping, Optional, Sequence

from .config import RedemptionRules
from .models import MatchEntry, Player, clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedemptionChange:
    delta: int
    base: int
    trend_bonus: int
    trust_consumed: bool


@dataclass(frozen=True)
class RedemptionUpdate:
    player: Player
    delta: int
    new_score: int
    trust_consumed: bool = False


def coerce_rating(value: Any) -> Optional[float]:
    """Return a finite float rating or ``None`` for anything unusable."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Real):
        rating = float(value)
    else:
        try:
            rating = float(str(value).strip())
        except ValueError:
            return None
    if math.isnan(rating) or math.isinf(rating):
        return None
    return rating


def _coerce_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def match_entry_from(data: Mapping[str, Any], now: Optional[datetime] = None) -> MatchEntry:
    """Normalise a loosely typed match-result mapping."""

    position = data.get("position")
    return MatchEntry(
        rating=coerce_rating(data.get("rating")),
        goals=_coerce_count(data.get("goals", 0)),
        assists=_coerce_count(data.get("assists", 0)),
        position=str(position) if position else None,
        timestamp=now or datetime.now(timezone.utc),
    )


class RedemptionEngine:
    """Applies per-match redemption deltas under a set of rules."""

    def __init__(self, rules: RedemptionRules | None = None) -> None:
        self.rules = rules or RedemptionRules()

    def base_delta(self, rating: Optional[float]) -> int:
        if rating is None:
            return 0
        if rating > self.rules.surge_rating:
            return self.rules.surge_delta
        if rating < self.rules.slump_rating:
            return self.rules.slump_delta
        return 0

    def has_rising_trend(self, history: Sequence[MatchEntry]) -> bool:
        window = self.rules.trend_window
        if window < 2 or len(history) < window:
            return False
        ratings = [entry.rating for entry in history[-window:]]
        if any(rating is None for rating in ratings):
            return False
        return all(earlier < later for earlier, later in zip(ratings, ratings[1:]))

    def compute_change(
        self,
        history: Sequence[MatchEntry],
        rating: Optional[float],
        trust_bonus: bool,
    ) -> RedemptionChange:
        """Score delta for a match whose entry is already the last in ``history``."""

        base = self.base_delta(rating)
        trend = self.rules.trend_bonus if self.has_rising_trend(history) else 0
        delta = base + trend
        if trust_bonus:
            delta = math.floor(delta * self.rules.trust_multiplier)
        return RedemptionChange(delta=delta, base=base, trend_bonus=trend, trust_consumed=trust_bonus)

    def update(
        self,
        player: Player,
        match: MatchEntry | Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> RedemptionUpdate:
        entry = match if isinstance(match, MatchEntry) else match_entry_from(match, now)
        if now is not None and entry.timestamp != now:
            entry = replace(entry, timestamp=now)
        limit = max(1, self.rules.history_limit)
        history = (player.history + (entry,))[-limit:]
        change = self.compute_change(history, entry.rating, player.trust_bonus)
        new_score = int(
            clamp(player.redemption_score + change.delta, self.rules.score_min, self.rules.score_max)
        )
        updated = replace(
            player,
            history=history,
            redemption_score=new_score,
            trust_bonus=False if change.trust_consumed else player.trust_bonus,
        )
        if change.trust_consumed:
            logger.info("Trust bonus consumed for %s (delta %+d)", player.name, change.delta)
        return RedemptionUpdate(
            player=updated,
            delta=change.delta,
            new_score=new_score,
            trust_consumed=change.trust_consumed,
        )

    def batch_update(
        self,
        players: Sequence[Player],
        matches: Sequence[MatchEntry | Mapping[str, Any] | None],
        now: Optional[datetime] = None,
    ) -> List[RedemptionUpdate]:
        results: List[RedemptionUpdate] = []
        for index, player in enumerate(players):
            match = matches[index] if index < len(matches) else None
            if match is None:
                results.append(RedemptionUpdate(player=player, delta=0, new_score=player.redemption_score))
                continue
            results.append(self.update(player, match, now))
        return results


_DEFAULT_ENGINE = RedemptionEngine()


def update_redemption(
    player: Player,
    match: MatchEntry | Mapping[str, Any],
    now: Optional[datetime] = None,
) -> RedemptionUpdate:
    """Apply one match to a player under the default rules."""

    return _DEFAULT_ENGINE.update(player, match, now)


def batch_update_players(
    players: Sequence[Player],
    matches: Sequence[MatchEntry | Mapping[str, Any] | None],
    now: Optional[datetime] = None,
) -> List[RedemptionUpdate]:
    return _DEFAULT_ENGINE.batch_update(players, matches, now)


__all__ = [
    "RedemptionChange",
    "RedemptionEngine",
    "RedemptionUpdate",
    "batch_update_players",
    "coerce_rating",
    "match_entry_from",
    "update_redemption",
]
