"""Shapes returned by the recognition and generation collaborators."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import MatchOutcome


class RecognizedPlayer(BaseModel):
    name: str = Field(..., min_length=1)
    position: Optional[str] = None
    rating: Optional[float] = None


class MatchRecognition(BaseModel):
    result: MatchOutcome
    score: Optional[str] = None
    possession: float = 50.0
    players: List[RecognizedPlayer] = Field(default_factory=list)

    @field_validator("result", mode="before")
    @classmethod
    def _lower_result(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class LineupPlayer(BaseModel):
    name: str = Field(..., min_length=1)
    position: Optional[str] = None
    rating: Optional[float] = None


class LineupRecognition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_name: Optional[str] = Field(default=None, alias="teamName")
    players: List[LineupPlayer] = Field(default_factory=list)


class BackstoryEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nickname: str = ""
    backstory: str = ""
    redemption_score: Optional[int] = Field(default=None, alias="redemptionScore")


class NewsPayload(BaseModel):
    title: str
    content: str
    highlights: List[str] = Field(default_factory=list)


__all__ = [
    "BackstoryEntry",
    "LineupPlayer",
    "LineupRecognition",
    "MatchRecognition",
    "NewsPayload",
    "RecognizedPlayer",
]
