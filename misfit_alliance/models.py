"""Core data models for the Misfit Alliance forum simulation."""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

SCORE_MIN = 0
SCORE_MAX = 100
FALLEN_MAX = 20
WAKING_MAX = 80


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


class RedemptionState(str, Enum):
    FALLEN = "Fallen"
    WAKING = "Waking"
    REDEEMED = "Redeemed"


class Intensity(str, Enum):
    TOXIC = "toxic"
    HYPE = "hype"


class MatchOutcome(str, Enum):
    WIN = "win"
    DRAW = "draw"
    LOSS = "loss"

    @classmethod
    def parse(cls, value: object) -> Optional["MatchOutcome"]:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


def get_redemption_state(score: int) -> RedemptionState:
    """Bucket a redemption score; closed ranges with no hysteresis band."""

    if score <= FALLEN_MAX:
        return RedemptionState.FALLEN
    if score <= WAKING_MAX:
        return RedemptionState.WAKING
    return RedemptionState.REDEEMED


@dataclass(frozen=True)
class MatchEntry:
    rating: Optional[float]
    goals: int = 0
    assists: int = 0
    position: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    nickname: str = ""
    backstory: str = ""
    redemption_score: int = 0
    history: Tuple[MatchEntry, ...] = ()
    trust_bonus: bool = False

    def __post_init__(self) -> None:
        score = int(clamp(int(self.redemption_score), SCORE_MIN, SCORE_MAX))
        object.__setattr__(self, "redemption_score", score)
        object.__setattr__(self, "history", tuple(self.history))

    @classmethod
    def create(
        cls,
        name: str,
        *,
        nickname: str = "",
        backstory: str = "",
        redemption_score: int = 50,
    ) -> "Player":
        return cls(
            id=_new_id(),
            name=name,
            nickname=nickname,
            backstory=backstory,
            redemption_score=redemption_score,
        )

    @property
    def redemption_state(self) -> RedemptionState:
        return get_redemption_state(self.redemption_score)

    def with_profile(
        self,
        *,
        name: Optional[str] = None,
        nickname: Optional[str] = None,
        backstory: Optional[str] = None,
    ) -> "Player":
        """Return a copy with the given display fields replaced."""

        changes: Dict[str, str] = {}
        if name is not None:
            changes["name"] = name
        if nickname is not None:
            changes["nickname"] = nickname
        if backstory is not None:
            changes["backstory"] = backstory
        return replace(self, **changes) if changes else self

    def with_trust_bonus(self, enabled: bool = True) -> "Player":
        return replace(self, trust_bonus=enabled)


@dataclass(frozen=True)
class Reply:
    id: str
    author: str
    content: str
    timestamp: datetime


@dataclass(frozen=True)
class ForumPost:
    id: str
    author: str
    content: str
    intensity: Intensity
    timestamp: datetime
    likes: int = 0
    dislikes: int = 0
    replies: Tuple[Reply, ...] = ()
    player_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        author: str,
        content: str,
        intensity: Intensity,
        player_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "ForumPost":
        return cls(
            id=_new_id(),
            author=author,
            content=content,
            intensity=Intensity(intensity),
            timestamp=now or _utcnow(),
            player_id=player_id,
        )

    def with_reply(
        self, author: str, content: str, now: Optional[datetime] = None
    ) -> "ForumPost":
        reply = Reply(id=_new_id(), author=author, content=content, timestamp=now or _utcnow())
        return replace(self, replies=self.replies + (reply,))

    def liked(self) -> "ForumPost":
        return replace(self, likes=self.likes + 1)

    def disliked(self) -> "ForumPost":
        return replace(self, dislikes=self.dislikes + 1)


@dataclass(frozen=True)
class CommunitySentiment:
    """Holder for the community hostility scalar, always within [0, 1]."""

    hostility: float

    def __post_init__(self) -> None:
        value = float(self.hostility)
        if not math.isfinite(value):
            value = 0.5
        object.__setattr__(self, "hostility", clamp(value, 0.0, 1.0))

    @classmethod
    def bootstrap(cls, stored: Optional[float], default: float) -> "CommunitySentiment":
        """Seed the sentiment on first use when nothing was persisted."""

        return cls(default if stored is None else stored)


@dataclass(frozen=True)
class SeasonState:
    wins: int = 0
    losses: int = 0
    draws: int = 0
    match_count: int = 0
    recent_results: Tuple[MatchOutcome, ...] = ()

    def record(self, outcome: Optional[MatchOutcome], limit: int = 5) -> "SeasonState":
        if outcome is None:
            return replace(self, match_count=self.match_count + 1)
        recent = (self.recent_results + (outcome,))[-limit:] if limit > 0 else ()
        return SeasonState(
            wins=self.wins + (outcome is MatchOutcome.WIN),
            losses=self.losses + (outcome is MatchOutcome.LOSS),
            draws=self.draws + (outcome is MatchOutcome.DRAW),
            match_count=self.match_count + 1,
            recent_results=recent,
        )


@dataclass(frozen=True)
class NewsReport:
    title: str
    content: str
    highlights: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class MatchHistoryEntry:
    """Archived summary of a committed match."""

    id: str
    outcome: Optional[MatchOutcome]
    score: Optional[str]
    possession: Optional[float]
    ratings: Dict[str, Optional[float]]
    hostility: float
    headline: str
    timestamp: datetime


__all__ = [
    "RedemptionState",
    "Intensity",
    "MatchOutcome",
    "get_redemption_state",
    "clamp",
    "MatchEntry",
    "Player",
    "Reply",
    "ForumPost",
    "CommunitySentiment",
    "SeasonState",
    "NewsReport",
    "MatchHistoryEntry",
]
