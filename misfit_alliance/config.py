"""Configuration loading utilities for Misfit Alliance."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"
DEFAULT_STATE_DB = Path(os.getenv("MISFIT_ALLIANCE_DB", "misfit_alliance.sqlite3"))


@dataclass(frozen=True)
class RedemptionRules:
    score_min: int = 0
    score_max: int = 100
    default_score: int = 50
    history_limit: int = 20
    surge_rating: float = 7.5
    surge_delta: int = 15
    slump_rating: float = 5.0
    slump_delta: int = -5
    trend_window: int = 3
    trend_bonus: int = 10
    trust_multiplier: float = 1.5

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "RedemptionRules":
        bounds = data.get("bounds", {})
        surge = data.get("surge", {})
        slump = data.get("slump", {})
        trend = data.get("trend", {})
        return RedemptionRules(
            score_min=int(bounds.get("min", 0)),
            score_max=int(bounds.get("max", 100)),
            default_score=int(data.get("default_score", 50)),
            history_limit=int(data.get("history_limit", 20)),
            surge_rating=float(surge.get("rating", 7.5)),
            surge_delta=int(surge.get("delta", 15)),
            slump_rating=float(slump.get("rating", 5.0)),
            slump_delta=int(slump.get("delta", -5)),
            trend_window=int(trend.get("window", 3)),
            trend_bonus=int(trend.get("bonus", 10)),
            trust_multiplier=float(data.get("trust_multiplier", 1.5)),
        )


@dataclass(frozen=True)
class SentimentRules:
    default_hostility: float = 0.5
    bootstrap_hostility: float = 0.7
    win_base: float = -0.10
    win_per_goal: float = -0.02
    draw_base: float = -0.03
    loss_base: float = 0.15
    loss_per_goal: float = 0.03
    rating_floor: float = 6.5
    rating_ceiling: float = 7.2
    low_rating_weight: float = 0.03
    high_rating_weight: float = 0.02
    streak_length: int = 3
    win_streak: float = -0.20
    loss_streak: float = 0.25
    toxic_threshold: float = 0.5
    peak_threshold: float = 0.8
    reply_relief: float = 0.05
    oppose_penalty: float = 0.03

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SentimentRules":
        outcomes = data.get("outcomes", {})
        win = outcomes.get("win", {})
        draw = outcomes.get("draw", {})
        loss = outcomes.get("loss", {})
        rating = data.get("rating", {})
        streak = data.get("streak", {})
        thresholds = data.get("thresholds", {})
        actions = data.get("actions", {})
        return SentimentRules(
            default_hostility=float(data.get("default_hostility", 0.5)),
            bootstrap_hostility=float(data.get("bootstrap_hostility", 0.7)),
            win_base=float(win.get("base", -0.10)),
            win_per_goal=float(win.get("per_goal", -0.02)),
            draw_base=float(draw.get("base", -0.03)),
            loss_base=float(loss.get("base", 0.15)),
            loss_per_goal=float(loss.get("per_goal", 0.03)),
            rating_floor=float(rating.get("floor", 6.5)),
            rating_ceiling=float(rating.get("ceiling", 7.2)),
            low_rating_weight=float(rating.get("low_weight", 0.03)),
            high_rating_weight=float(rating.get("high_weight", 0.02)),
            streak_length=int(streak.get("length", 3)),
            win_streak=float(streak.get("win", -0.20)),
            loss_streak=float(streak.get("loss", 0.25)),
            toxic_threshold=float(thresholds.get("toxic", 0.5)),
            peak_threshold=float(thresholds.get("peak", 0.8)),
            reply_relief=float(actions.get("reply_relief", 0.05)),
            oppose_penalty=float(actions.get("oppose_penalty", 0.03)),
        )


@dataclass(frozen=True)
class ForumSettings:
    min_posts_per_match: int = 4
    coach_author: str = "Coach (you)"
    recent_results_limit: int = 5
    match_history_limit: int = 15


@dataclass(frozen=True)
class UploadSettings:
    max_bytes: int = 10 * 1024 * 1024
    allowed_types: Tuple[str, ...] = ("image/jpeg", "image/png", "image/jpg", "image/webp")


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    team_name: str
    redemption: RedemptionRules
    sentiment: SentimentRules
    forum: ForumSettings
    uploads: UploadSettings

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        forum_cfg = data.get("forum", {})
        season_cfg = data.get("season", {})
        upload_cfg = data.get("uploads", {})
        allowed = upload_cfg.get("allowed_types") or UploadSettings.allowed_types
        return Settings(
            team_name=str(data.get("team_name", "Misfit Alliance")),
            redemption=RedemptionRules.from_dict(data.get("redemption", {})),
            sentiment=SentimentRules.from_dict(data.get("sentiment", {})),
            forum=ForumSettings(
                min_posts_per_match=int(forum_cfg.get("min_posts_per_match", 4)),
                coach_author=str(forum_cfg.get("coach_author", "Coach (you)")),
                recent_results_limit=int(season_cfg.get("recent_results_limit", 5)),
                match_history_limit=int(season_cfg.get("match_history_limit", 15)),
            ),
            uploads=UploadSettings(
                max_bytes=int(upload_cfg.get("max_megabytes", 10)) * 1024 * 1024,
                allowed_types=tuple(str(item).lower() for item in allowed),
            ),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = [
    "DEFAULT_STATE_DB",
    "ForumSettings",
    "RedemptionRules",
    "SentimentRules",
    "Settings",
    "SettingsLoader",
    "UploadSettings",
    "get_settings",
]
