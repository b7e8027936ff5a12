"""Misfit Alliance: a football-manager companion where forum mood follows your results."""
from .models import (
    CommunitySentiment,
    ForumPost,
    Intensity,
    MatchOutcome,
    Player,
    RedemptionState,
    get_redemption_state,
)
from .redemption import RedemptionEngine, batch_update_players, update_redemption
from .sentiment import (
    SentimentEngine,
    calculate_trend,
    get_comment_intensity,
    get_impression_score,
    is_hostility_peak,
    update_hostility,
)

__all__ = [
    "CommunitySentiment",
    "ForumPost",
    "Intensity",
    "MatchOutcome",
    "Player",
    "RedemptionEngine",
    "RedemptionState",
    "SentimentEngine",
    "batch_update_players",
    "calculate_trend",
    "get_comment_intensity",
    "get_impression_score",
    "get_redemption_state",
    "is_hostility_peak",
    "update_hostility",
    "update_redemption",
]
