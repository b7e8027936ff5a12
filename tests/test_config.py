"""Tests for the YAML settings layer."""
from __future__ import annotations

import pytest

from misfit_alliance.config import RedemptionRules, SentimentRules, Settings, SettingsLoader, get_settings


def test_bundled_settings_match_engine_defaults():
    settings = get_settings()

    assert settings.team_name == "Misfit Alliance"
    assert settings.redemption == RedemptionRules()
    assert settings.sentiment == SentimentRules()
    assert settings.forum.min_posts_per_match == 4
    assert settings.forum.recent_results_limit == 5
    assert settings.forum.match_history_limit == 15
    assert settings.uploads.max_bytes == 10 * 1024 * 1024
    assert "image/webp" in settings.uploads.allowed_types


def test_from_dict_uses_defaults_for_missing_sections():
    settings = Settings.from_dict({})
    assert settings.redemption.trust_multiplier == pytest.approx(1.5)
    assert settings.sentiment.bootstrap_hostility == pytest.approx(0.7)
    assert settings.forum.coach_author == "Coach (you)"


def test_loader_reads_overrides_and_caches(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "team_name: Testers\n"
        "redemption:\n  surge: {rating: 8.0, delta: 20}\n"
        "sentiment:\n  thresholds: {toxic: 0.4}\n"
        "uploads:\n  max_megabytes: 2\n  allowed_types: [IMAGE/PNG]\n",
        encoding="utf-8",
    )
    loader = SettingsLoader(path)
    settings = loader.load()

    assert settings.team_name == "Testers"
    assert settings.redemption.surge_rating == pytest.approx(8.0)
    assert settings.redemption.surge_delta == 20
    assert settings.redemption.slump_delta == -5
    assert settings.sentiment.toxic_threshold == pytest.approx(0.4)
    assert settings.uploads.max_bytes == 2 * 1024 * 1024
    assert settings.uploads.allowed_types == ("image/png",)

    path.write_text("team_name: Changed\n", encoding="utf-8")
    assert loader.load() is settings
    assert loader.load(force=True).team_name == "Changed"
