"""High-level game service orchestrating a forum session."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import yaml

from .config import Settings, get_settings
from .llm_client import LLMClient
from .models import (
    CommunitySentiment,
    ForumPost,
    MatchEntry,
    MatchHistoryEntry,
    NewsReport,
    Player,
    SeasonState,
)
from .narrative import CommentSelector, CommentTemplates
from .redemption import RedemptionEngine, RedemptionUpdate
from .rng import DeterministicRNG, RandomSource
from .schemas import LineupRecognition, MatchRecognition
from .sentiment import (
    SentimentEngine,
    average_rating,
    get_impression_score,
    hostility_label,
    score_difference,
)
from .state import GameState, deserialize_player
from .uploads import to_data_url, validate_image

logger = logging.getLogger(__name__)

_DEFAULT_ROSTER_PATH = Path(__file__).parent / "data" / "default_roster.yaml"

RecognizedRating = Tuple[Optional[float], Optional[str]]


class NoPendingMatchError(RuntimeError):
    """Raised when confirming without a recognised match draft."""


class UnknownPlayerError(KeyError):
    """Raised for a player id that is not on the roster."""


class UnknownPostError(KeyError):
    """Raised for a post id that is not on the forum."""


def _normalise_name(name: str) -> str:
    return " ".join(name.split()).casefold()


@dataclass(frozen=True)
class MatchDraft:
    """Recognised match held until the user confirms or discards it."""

    recognition: MatchRecognition
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class LineupDraft:
    recognition: LineupRecognition
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class MatchReport:
    news: NewsReport
    updates: Tuple[RedemptionUpdate, ...]
    hostility_before: float
    hostility_after: float
    impression_score: int
    mood: str
    hostility_peak: bool
    new_posts: Tuple[ForumPost, ...]
    unmatched_players: Tuple[str, ...] = ()


class GameService:
    """Coordinates state, engines and the AI collaborators for one session.

    There is exactly one writer.  A confirmed match is computed entirely in
    memory, committed to storage in a single transaction and only then
    swapped into the live session.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        settings: Settings | None = None,
        llm: LLMClient | None = None,
        rng: RandomSource | None = None,
        templates: CommentTemplates | None = None,
        roster_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.state = GameState(db_path, history_limit=self.settings.forum.match_history_limit)
        self.rng = rng or DeterministicRNG()
        self.llm = llm or LLMClient(rng=self.rng)
        self.redemption = RedemptionEngine(self.settings.redemption)
        self.sentiment_engine = SentimentEngine(self.settings.sentiment)
        self.selector = CommentSelector(templates, self.rng, self.sentiment_engine)
        self._roster_path = roster_path or _DEFAULT_ROSTER_PATH
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._draft: Optional[MatchDraft] = None
        self._lineup_draft: Optional[LineupDraft] = None
        self._load()

    # Session snapshot ------------------------------------------------------
    def _load(self) -> None:
        self._players: List[Player] = self.state.load_players()
        self._posts: List[ForumPost] = self.state.load_posts()
        self._sentiment = CommunitySentiment(
            self.state.load_hostility(self.settings.sentiment.default_hostility)
        )
        self._season: SeasonState = self.state.load_season()

    def bootstrap(self) -> None:
        """Seed the default roster and opening hostility on first use."""

        if not self.state.load_players():
            roster = self._default_roster()
            self.state.save_players(roster)
            logger.info("Seeded default roster with %d players", len(roster))
        if not self.state.has_hostility():
            seeded = CommunitySentiment.bootstrap(None, self.settings.sentiment.bootstrap_hostility)
            self.state.save_hostility(seeded.hostility)
        self._load()

    def _default_roster(self) -> List[Player]:
        if not self._roster_path.exists():
            logger.warning("Default roster %s missing; starting empty", self._roster_path)
            return []
        with self._roster_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        return [deserialize_player(item) for item in raw.get("players", [])]

    @property
    def players(self) -> List[Player]:
        return list(self._players)

    @property
    def posts(self) -> List[ForumPost]:
        return list(self._posts)

    @property
    def hostility(self) -> float:
        return self._sentiment.hostility

    @property
    def season(self) -> SeasonState:
        return self._season

    @property
    def pending_draft(self) -> Optional[MatchDraft]:
        return self._draft

    def match_history(self) -> List[MatchHistoryEntry]:
        return self.state.load_match_history()

    def get_player(self, player_id: str) -> Player:
        for player in self._players:
            if player.id == player_id:
                return player
        raise UnknownPlayerError(player_id)

    # Match lifecycle -------------------------------------------------------
    async def recognize_match(self, image: bytes, content_type: str) -> MatchDraft:
        """Validate a screenshot and hold its recognised result as a draft."""

        validate_image(content_type, len(image), self.settings.uploads)
        recognition = await self.llm.recognize_screenshot(to_data_url(image, content_type))
        return self.set_draft(recognition)

    def set_draft(self, recognition: MatchRecognition) -> MatchDraft:
        self._draft = MatchDraft(recognition=recognition, created_at=self._clock())
        return self._draft

    def cancel_match(self) -> None:
        if self._draft is not None:
            logger.info("Discarded pending match draft")
        self._draft = None

    async def confirm_match(self) -> MatchReport:
        """Apply the pending draft as one unit: scores, mood, comments, commit."""

        if self._draft is None:
            raise NoPendingMatchError("No recognised match is waiting for confirmation")
        recognition = self._draft.recognition
        now = self._clock()

        news = await self.llm.generate_news_report(recognition)

        by_name: Dict[str, RecognizedRating] = {}
        for recognized in recognition.players:
            by_name.setdefault(_normalise_name(recognized.name), (recognized.rating, recognized.position))

        updated_players: List[Player] = []
        updates: List[RedemptionUpdate] = []
        matched: List[Tuple[Player, MatchEntry]] = []
        for player in self._players:
            found = by_name.get(_normalise_name(player.name))
            if found is None:
                updated_players.append(player)
                continue
            rating, position = found
            entry = MatchEntry(rating=rating, position=position, timestamp=now)
            update = self.redemption.update(player, entry)
            updates.append(update)
            updated_players.append(update.player)
            matched.append((update.player, entry))
        roster_names = {_normalise_name(p.name) for p in self._players}
        unmatched = tuple(
            p.name for p in recognition.players if _normalise_name(p.name) not in roster_names
        )

        season = self._season.record(recognition.result, self.settings.forum.recent_results_limit)
        hostility_before = self._sentiment.hostility
        sentiment = self.sentiment_engine.apply_match(
            self._sentiment,
            recognition.result,
            score_difference(recognition.score),
            average_rating(p.rating for p in recognition.players),
            season.recent_results,
        )
        hostility = sentiment.hostility

        new_posts: List[ForumPost] = []
        for player, entry in matched:
            tone = self.selector.tone_for(player, entry.rating)
            content = await self.llm.generate_comment(player, entry.rating, hostility, tone)
            new_posts.append(self.selector.compose_post(player, entry, hostility, content, now))
        while len(new_posts) < self.settings.forum.min_posts_per_match:
            new_posts.append(self.selector.filler_post(hostility, now))

        posts = new_posts + self._posts
        history_entry = MatchHistoryEntry(
            id=uuid.uuid4().hex,
            outcome=recognition.result,
            score=recognition.score,
            possession=recognition.possession,
            ratings={p.name: p.rating for p in recognition.players},
            hostility=hostility,
            headline=news.title,
            timestamp=now,
        )
        self.state.commit_match(
            players=updated_players,
            posts=posts,
            hostility=hostility,
            season=season,
            history_entry=history_entry,
        )

        self._players = updated_players
        self._posts = posts
        self._sentiment = sentiment
        self._season = season
        self._draft = None

        peak = self.sentiment_engine.is_hostility_peak(hostility)
        if peak:
            logger.warning("Hostility burst: community hostility at %.2f", hostility)
        logger.info(
            "Match confirmed: %s, hostility %.2f -> %.2f, %d posts",
            recognition.result.value,
            hostility_before,
            hostility,
            len(new_posts),
        )
        return MatchReport(
            news=news,
            updates=tuple(updates),
            hostility_before=hostility_before,
            hostility_after=hostility,
            impression_score=get_impression_score(hostility),
            mood=hostility_label(hostility),
            hostility_peak=peak,
            new_posts=tuple(new_posts),
            unmatched_players=unmatched,
        )

    # Lineup ----------------------------------------------------------------
    async def recognize_lineup(self, image: bytes, content_type: str) -> LineupDraft:
        validate_image(content_type, len(image), self.settings.uploads)
        recognition = await self.llm.recognize_lineup(to_data_url(image, content_type))
        self._lineup_draft = LineupDraft(recognition=recognition, created_at=self._clock())
        return self._lineup_draft

    async def confirm_lineup(
        self,
        lineup: LineupRecognition | None = None,
        *,
        with_backstories: bool = True,
    ) -> List[Player]:
        """Replace the roster with the players of a recognised lineup."""

        if lineup is None:
            if self._lineup_draft is None:
                raise NoPendingMatchError("No recognised lineup is waiting for confirmation")
            lineup = self._lineup_draft.recognition
        stories = await self.llm.generate_backstories(lineup.players) if with_backstories else []
        rules = self.settings.redemption
        roster: List[Player] = []
        for index, entry in enumerate(lineup.players):
            story = stories[index] if index < len(stories) else None
            score = rules.default_score
            if story is not None and story.redemption_score is not None:
                score = max(rules.score_min, min(rules.score_max, story.redemption_score))
            roster.append(
                Player.create(
                    entry.name,
                    nickname=story.nickname if story else "",
                    backstory=story.backstory if story else "",
                    redemption_score=score,
                )
            )
        self.state.save_players(roster)
        self._players = roster
        self._lineup_draft = None
        logger.info("Roster replaced with %d players", len(roster))
        return list(roster)

    # Player operations -----------------------------------------------------
    def _replace_player(self, updated: Player) -> Player:
        players = [updated if p.id == updated.id else p for p in self._players]
        self.state.save_players(players)
        self._players = players
        return updated

    def grant_trust_bonus(self, player_id: str) -> Player:
        return self._replace_player(self.get_player(player_id).with_trust_bonus())

    def update_profile(
        self,
        player_id: str,
        *,
        name: Optional[str] = None,
        nickname: Optional[str] = None,
        backstory: Optional[str] = None,
    ) -> Player:
        player = self.get_player(player_id)
        return self._replace_player(
            player.with_profile(name=name, nickname=nickname, backstory=backstory)
        )

    # Forum interactions ----------------------------------------------------
    def _replace_post(self, post_id: str, change: Callable[[ForumPost], ForumPost]) -> ForumPost:
        for index, post in enumerate(self._posts):
            if post.id == post_id:
                updated = change(post)
                posts = list(self._posts)
                posts[index] = updated
                self.state.save_posts(posts)
                self._posts = posts
                return updated
        raise UnknownPostError(post_id)

    def _set_sentiment(self, sentiment: CommunitySentiment) -> None:
        self.state.save_hostility(sentiment.hostility)
        self._sentiment = sentiment

    def reply_to_post(self, post_id: str, content: str, author: Optional[str] = None) -> ForumPost:
        """Coach reply; engaging with the forum calms it a little."""

        text = content.strip()
        if not text:
            raise ValueError("Reply content must not be empty")
        writer = author or self.settings.forum.coach_author
        post = self._replace_post(post_id, lambda p: p.with_reply(writer, text, self._clock()))
        self._set_sentiment(self.sentiment_engine.apply_reply(self._sentiment))
        return post

    def support_post(self, post_id: str) -> ForumPost:
        return self._replace_post(post_id, lambda p: p.liked())

    def oppose_post(self, post_id: str) -> ForumPost:
        post = self._replace_post(post_id, lambda p: p.disliked())
        self._set_sentiment(self.sentiment_engine.apply_oppose(self._sentiment))
        return post

    def reset(self) -> None:
        """Wipe the session and re-seed the defaults."""

        self.state.clear_all()
        self._draft = None
        self._lineup_draft = None
        self._load()
        self.bootstrap()


__all__ = [
    "GameService",
    "LineupDraft",
    "MatchDraft",
    "MatchReport",
    "NoPendingMatchError",
    "UnknownPlayerError",
    "UnknownPostError",
]
