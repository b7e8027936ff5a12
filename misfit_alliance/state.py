"""Session state persistence."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .models import (
    ForumPost,
    Intensity,
    MatchEntry,
    MatchHistoryEntry,
    MatchOutcome,
    Player,
    Reply,
    SeasonState,
)

logger = logging.getLogger(__name__)

MATCH_HISTORY_LIMIT = 15

_DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS players (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS sentiment (
    singleton INTEGER PRIMARY KEY CHECK (singleton = 1),
    hostility REAL NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS season (
    singleton INTEGER PRIMARY KEY CHECK (singleton = 1),
    data TEXT NOT NULL,
    last_saved TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS match_history (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_match_history_timestamp
    ON match_history (timestamp DESC);
"""


# Serialisation -------------------------------------------------------------
def _dt(value: datetime) -> str:
    return value.isoformat()


def _parse_dt(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value)


def serialize_player(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "nickname": player.nickname,
        "backstory": player.backstory,
        "redemption_score": player.redemption_score,
        "trust_bonus": player.trust_bonus,
        "history": [
            {
                "rating": entry.rating,
                "goals": entry.goals,
                "assists": entry.assists,
                "position": entry.position,
                "timestamp": _dt(entry.timestamp),
            }
            for entry in player.history
        ],
    }


def deserialize_player(data: Dict[str, Any]) -> Player:
    history = tuple(
        MatchEntry(
            rating=item.get("rating"),
            goals=int(item.get("goals", 0)),
            assists=int(item.get("assists", 0)),
            position=item.get("position"),
            timestamp=_parse_dt(item.get("timestamp")),
        )
        for item in data.get("history", [])
    )
    return Player(
        id=str(data["id"]),
        name=data.get("name", ""),
        nickname=data.get("nickname", ""),
        backstory=data.get("backstory", ""),
        redemption_score=int(data.get("redemption_score", 0)),
        history=history,
        trust_bonus=bool(data.get("trust_bonus", False)),
    )


def serialize_post(post: ForumPost) -> Dict[str, Any]:
    return {
        "id": post.id,
        "author": post.author,
        "content": post.content,
        "intensity": post.intensity.value,
        "timestamp": _dt(post.timestamp),
        "likes": post.likes,
        "dislikes": post.dislikes,
        "player_id": post.player_id,
        "replies": [
            {
                "id": reply.id,
                "author": reply.author,
                "content": reply.content,
                "timestamp": _dt(reply.timestamp),
            }
            for reply in post.replies
        ],
    }


def deserialize_post(data: Dict[str, Any]) -> ForumPost:
    replies = tuple(
        Reply(
            id=item["id"],
            author=item.get("author", ""),
            content=item.get("content", ""),
            timestamp=_parse_dt(item.get("timestamp")),
        )
        for item in data.get("replies", [])
    )
    return ForumPost(
        id=data["id"],
        author=data.get("author", ""),
        content=data.get("content", ""),
        intensity=Intensity(data.get("intensity", Intensity.TOXIC.value)),
        timestamp=_parse_dt(data.get("timestamp")),
        likes=int(data.get("likes", 0)),
        dislikes=int(data.get("dislikes", 0)),
        replies=replies,
        player_id=data.get("player_id"),
    )


def serialize_season(season: SeasonState) -> Dict[str, Any]:
    return {
        "wins": season.wins,
        "losses": season.losses,
        "draws": season.draws,
        "match_count": season.match_count,
        "recent_results": [outcome.value for outcome in season.recent_results],
    }


def deserialize_season(data: Dict[str, Any]) -> SeasonState:
    recent = tuple(
        outcome
        for outcome in (MatchOutcome.parse(item) for item in data.get("recent_results", []))
        if outcome is not None
    )
    return SeasonState(
        wins=int(data.get("wins", 0)),
        losses=int(data.get("losses", 0)),
        draws=int(data.get("draws", 0)),
        match_count=int(data.get("match_count", 0)),
        recent_results=recent,
    )


def serialize_history_entry(entry: MatchHistoryEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "outcome": entry.outcome.value if entry.outcome else None,
        "score": entry.score,
        "possession": entry.possession,
        "ratings": dict(entry.ratings),
        "hostility": entry.hostility,
        "headline": entry.headline,
        "timestamp": _dt(entry.timestamp),
    }


def deserialize_history_entry(data: Dict[str, Any]) -> MatchHistoryEntry:
    return MatchHistoryEntry(
        id=data["id"],
        outcome=MatchOutcome.parse(data.get("outcome")) if data.get("outcome") else None,
        score=data.get("score"),
        possession=data.get("possession"),
        ratings=dict(data.get("ratings", {})),
        hostility=float(data.get("hostility", 0.0)),
        headline=data.get("headline", ""),
        timestamp=_parse_dt(data.get("timestamp")),
    )


class GameState:
    """High level interface for working with persistent session state.

    Every slot loads independently and falls back to its default when
    nothing has been stored yet.
    """

    def __init__(self, db_path: Path, *, history_limit: int = MATCH_HISTORY_LIMIT) -> None:
        self._db_path = db_path
        self._history_limit = history_limit
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _ensure_schema(self) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            conn.executescript(_DB_SCHEMA)
            conn.commit()

    # Writers shared by the single-slot saves and commit_match ------------
    @staticmethod
    def _write_players(conn: sqlite3.Connection, players: Sequence[Player]) -> None:
        conn.execute("DELETE FROM players")
        conn.executemany(
            "INSERT INTO players (id, position, data) VALUES (?, ?, ?)",
            [
                (player.id, index, json.dumps(serialize_player(player)))
                for index, player in enumerate(players)
            ],
        )

    @staticmethod
    def _write_posts(conn: sqlite3.Connection, posts: Sequence[ForumPost]) -> None:
        conn.execute("DELETE FROM posts")
        conn.executemany(
            "INSERT INTO posts (id, position, data) VALUES (?, ?, ?)",
            [(post.id, index, json.dumps(serialize_post(post))) for index, post in enumerate(posts)],
        )

    @staticmethod
    def _write_hostility(conn: sqlite3.Connection, hostility: float) -> None:
        conn.execute(
            "REPLACE INTO sentiment (singleton, hostility, updated_at) VALUES (1, ?, ?)",
            (float(hostility), datetime.now(timezone.utc).isoformat()),
        )

    @staticmethod
    def _write_season(conn: sqlite3.Connection, season: SeasonState) -> None:
        conn.execute(
            "REPLACE INTO season (singleton, data, last_saved) VALUES (1, ?, ?)",
            (json.dumps(serialize_season(season)), datetime.now(timezone.utc).isoformat()),
        )

    def _write_history_entry(self, conn: sqlite3.Connection, entry: MatchHistoryEntry) -> None:
        conn.execute(
            "REPLACE INTO match_history (id, timestamp, data) VALUES (?, ?, ?)",
            (entry.id, _dt(entry.timestamp), json.dumps(serialize_history_entry(entry))),
        )
        conn.execute(
            """
            DELETE FROM match_history WHERE id NOT IN (
                SELECT id FROM match_history ORDER BY timestamp DESC, rowid DESC LIMIT ?
            )
            """,
            (self._history_limit,),
        )

    # Players -------------------------------------------------------------
    def save_players(self, players: Sequence[Player]) -> None:
        """Replace the stored roster."""

        with closing(sqlite3.connect(self._db_path)) as conn:
            self._write_players(conn, players)
            conn.commit()

    def load_players(self) -> List[Player]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute("SELECT data FROM players ORDER BY position ASC").fetchall()
        players: List[Player] = []
        for (data,) in rows:
            try:
                players.append(deserialize_player(json.loads(data)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed player row")
        return players

    # Posts ---------------------------------------------------------------
    def save_posts(self, posts: Sequence[ForumPost]) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            self._write_posts(conn, posts)
            conn.commit()

    def load_posts(self) -> List[ForumPost]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute("SELECT data FROM posts ORDER BY position ASC").fetchall()
        posts: List[ForumPost] = []
        for (data,) in rows:
            try:
                posts.append(deserialize_post(json.loads(data)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed post row")
        return posts

    # Sentiment -----------------------------------------------------------
    def save_hostility(self, hostility: float) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            self._write_hostility(conn, hostility)
            conn.commit()

    def stored_hostility(self) -> Optional[float]:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute("SELECT hostility FROM sentiment WHERE singleton = 1").fetchone()
        return None if row is None else float(row[0])

    def has_hostility(self) -> bool:
        return self.stored_hostility() is not None

    def load_hostility(self, default: float = 0.5) -> float:
        stored = self.stored_hostility()
        return default if stored is None else stored

    # Season --------------------------------------------------------------
    def save_season(self, season: SeasonState) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            self._write_season(conn, season)
            conn.commit()

    def load_season(self) -> SeasonState:
        with closing(sqlite3.connect(self._db_path)) as conn:
            row = conn.execute("SELECT data FROM season WHERE singleton = 1").fetchone()
        if row is None:
            return SeasonState()
        return deserialize_season(json.loads(row[0]))

    # Match history -------------------------------------------------------
    def record_match_history(self, entry: MatchHistoryEntry) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            self._write_history_entry(conn, entry)
            conn.commit()

    def load_match_history(self) -> List[MatchHistoryEntry]:
        """Archived matches, newest first."""

        with closing(sqlite3.connect(self._db_path)) as conn:
            rows = conn.execute(
                "SELECT data FROM match_history ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (self._history_limit,),
            ).fetchall()
        return [deserialize_history_entry(json.loads(data)) for (data,) in rows]

    # Atomic match commit -------------------------------------------------
    def commit_match(
        self,
        *,
        players: Sequence[Player],
        posts: Sequence[ForumPost],
        hostility: float,
        season: SeasonState,
        history_entry: Optional[MatchHistoryEntry] = None,
    ) -> None:
        """Persist everything a confirmed match touched in one transaction."""

        with closing(sqlite3.connect(self._db_path)) as conn:
            try:
                self._write_players(conn, players)
                self._write_posts(conn, posts)
                self._write_hostility(conn, hostility)
                self._write_season(conn, season)
                if history_entry is not None:
                    self._write_history_entry(conn, history_entry)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                logger.exception("Match commit failed; rolled back")
                raise

    def clear_all(self) -> None:
        with closing(sqlite3.connect(self._db_path)) as conn:
            for table in ("players", "posts", "sentiment", "season", "match_history"):
                conn.execute(f"DELETE FROM {table}")  # nosec B608 - fixed table names
            conn.commit()


__all__ = [
    "GameState",
    "MATCH_HISTORY_LIMIT",
    "deserialize_player",
    "deserialize_post",
    "serialize_player",
    "serialize_post",
]
