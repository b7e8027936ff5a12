"""Forum comment selection and local template generation."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from .models import ForumPost, Intensity, MatchEntry, Player, RedemptionState
from .rng import DeterministicRNG, RandomSource
from .sentiment import SentimentEngine

logger = logging.getLogger(__name__)

_TEMPLATE_PATH = Path(__file__).parent / "data" / "comment_templates.yaml"

WAKING_HYPE_RATING = 7.0
GRUMBLE_MAX_HOSTILITY = 0.6
GRUMBLE_MIN_RATING = 6.0

_LAST_RESORT = {
    Intensity.TOXIC: "{name}... no words.",
    Intensity.HYPE: "What a performance from {name}!",
}
_DIVIDED_LAST_RESORT = "One good game doesn't wash {name} clean."


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def tone_for(state: RedemptionState, rating: Optional[float]) -> Intensity:
    """Comment tone for a player's current redemption state."""

    if state is RedemptionState.FALLEN:
        return Intensity.TOXIC
    if state is RedemptionState.REDEEMED:
        return Intensity.HYPE
    if rating is not None and rating >= WAKING_HYPE_RATING:
        return Intensity.HYPE
    return Intensity.TOXIC


class CommentTemplates:
    """Loads comment pools and exposes them per tone."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _TEMPLATE_PATH
        self._player: Dict[str, List[str]] = {}
        self._filler: Dict[str, List[str]] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            logger.warning("Comment template file %s missing; using built-in lines", self._path)
            return
        with self._path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        self._player = self._normalise(raw.get("player"))
        self._filler = self._normalise(raw.get("filler"))

    @staticmethod
    def _normalise(section) -> Dict[str, List[str]]:
        if not isinstance(section, dict):
            return {}
        return {
            str(key): [str(item) for item in (values or []) if item]
            for key, values in section.items()
        }

    def player_pool(self, key: str) -> List[str]:
        return list(self._player.get(key, []))

    def filler_pool(self, intensity: Intensity) -> List[str]:
        return list(self._filler.get(intensity.value, []))


class CommentSelector:
    """Turns redemption state and hostility into forum posts."""

    def __init__(
        self,
        templates: CommentTemplates | None = None,
        rng: RandomSource | None = None,
        sentiment: SentimentEngine | None = None,
    ) -> None:
        self.templates = templates or CommentTemplates()
        self.rng = rng or DeterministicRNG()
        self.sentiment = sentiment or SentimentEngine()

    def author_handle(self) -> str:
        return f"Fan{self.rng.randint(0, 9999)}"

    def tone_for(self, player: Player, rating: Optional[float]) -> Intensity:
        return tone_for(player.redemption_state, rating)

    def _pool_key(self, tone: Intensity, hostility: float, rating: Optional[float]) -> str:
        if tone is Intensity.HYPE:
            return "hype"
        # Only a heated forum or a confirmed poor rating earns the toxic pool.
        if hostility <= GRUMBLE_MAX_HOSTILITY and (rating is None or rating >= GRUMBLE_MIN_RATING):
            return "grumble"
        return "toxic"

    def render(
        self,
        tone: Intensity,
        player: Player,
        entry: MatchEntry,
        hostility: float,
    ) -> str:
        pool = self.templates.player_pool(self._pool_key(tone, hostility, entry.rating))
        if not pool:
            pool = self.templates.player_pool(tone.value) or [_LAST_RESORT[tone]]
        return self._fill(self.rng.choice(pool), player, entry)

    @staticmethod
    def _fill(template: str, player: Player, entry: MatchEntry) -> str:
        rating = "N/A" if entry.rating is None else f"{entry.rating:.1f}"
        goals_clause = f"scored {entry.goals}, " if entry.goals > 0 else ""
        values = _SafeDict(
            name=player.name,
            nickname=player.nickname or player.name,
            rating=rating,
            goals=entry.goals,
            goals_clause=goals_clause,
        )
        return template.format_map(values)

    def compose_post(
        self,
        player: Player,
        entry: MatchEntry,
        hostility: float,
        content: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ForumPost:
        """Post about ``player``; ``player`` must already reflect this match."""

        tone = self.tone_for(player, entry.rating)
        text = (content or "").strip()
        if not text:
            text = self.render(tone, player, entry, hostility)
        return ForumPost.create(
            author=self.author_handle(),
            content=text,
            intensity=tone,
            player_id=player.id,
            now=now,
        )

    def divided_posts(
        self,
        player: Player,
        entry: MatchEntry,
        hostility: float,
        now: Optional[datetime] = None,
    ) -> Tuple[ForumPost, ForumPost]:
        """A hype post and a toxic rebuttal about the same performance."""

        praise = ForumPost.create(
            author=self.author_handle(),
            content=self.render(Intensity.HYPE, player, entry, hostility),
            intensity=Intensity.HYPE,
            player_id=player.id,
            now=now,
        )
        pool = self.templates.player_pool("divided") or [_DIVIDED_LAST_RESORT]
        rebuttal = ForumPost.create(
            author=self.author_handle(),
            content=self._fill(self.rng.choice(pool), player, entry),
            intensity=Intensity.TOXIC,
            player_id=player.id,
            now=now,
        )
        return praise, rebuttal

    def filler_post(self, hostility: float, now: Optional[datetime] = None) -> ForumPost:
        intensity = self.sentiment.get_comment_intensity(hostility)
        pool = self.templates.filler_pool(intensity)
        text = self.rng.choice(pool) if pool else "..."
        return ForumPost.create(
            author=self.author_handle(),
            content=text,
            intensity=intensity,
            player_id=None,
            now=now,
        )


__all__ = ["CommentSelector", "CommentTemplates", "tone_for"]
