"""Recognition and narrative generation through an OpenAI-compatible API."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import openai
import yaml
from pydantic import ValidationError

from .models import Intensity, MatchOutcome, NewsReport, Player
from .rng import DeterministicRNG, RandomSource
from .schemas import (
    BackstoryEntry,
    LineupPlayer,
    LineupRecognition,
    MatchRecognition,
    NewsPayload,
)

logger = logging.getLogger(__name__)

_MOCK_PATH = Path(__file__).parent / "data" / "mock_responses.yaml"
_PLACEHOLDER_KEYS = {"", "your_api_key_here"}
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

_VISION_PROMPT = (
    "Read this eFootball match result screenshot. Reply with JSON only: "
    '{"result": "win|draw|loss", "score": "N-M", "possession": number, '
    '"players": [{"name": str, "position": str, "rating": number}]}'
)
_LINEUP_PROMPT = (
    "Read this eFootball lineup screenshot. Reply with JSON only: "
    '{"teamName": str, "players": [{"name": str, "position": str, "rating": number}]}'
)


class LLMGenerationError(RuntimeError):
    """Raised when the model cannot produce usable content."""


class MalformedResponseError(LLMGenerationError):
    """Raised when model output holds no parsable JSON of the expected shape."""


class SafetyLevel(Enum):
    SAFE = "safe"
    MINOR_CONCERN = "minor_concern"
    BLOCKED = "blocked"


def extract_json(text: Optional[str]) -> Any:
    """Pull a JSON document out of free-form model output.

    A fenced ``json`` block wins; otherwise the ``{...}`` and ``[...]`` spans
    are tried outermost first, so a top-level array is not mistaken for its
    first element.
    """

    if not text or not text.strip():
        raise MalformedResponseError("Empty model response")
    candidates: List[str] = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, text[start : end + 1]))
    candidates.extend(span for _, span in sorted(spans))
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise MalformedResponseError(f"No JSON found in response: {text[:80]!r}")


@dataclass
class LLMConfig:
    """Configuration for the LLM client."""

    api_base: str = "https://ark.cn-beijing.volces.com/api/v3"
    api_key: Optional[str] = None
    model_name: str = "doubao-seed-1-8-251228"
    vision_model_name: Optional[str] = None
    temperature: float = 0.8
    max_tokens: int = 800
    timeout: int = 30
    retry_attempts: int = 2
    safety_enabled: bool = True
    mock_mode: bool = False
    retry_schedule: Optional[List[float]] = None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        api_key = os.getenv("LLM_API_KEY")
        mock_mode = os.getenv("LLM_MODE", "").lower() == "mock" or (api_key or "") in _PLACEHOLDER_KEYS
        schedule_env = os.getenv("LLM_RETRY_SCHEDULE")
        retry_schedule: Optional[List[float]] = None
        if schedule_env:
            try:
                retry_schedule = [float(item.strip()) for item in schedule_env.split(",") if item.strip()]
            except ValueError:
                logger.warning("Invalid LLM_RETRY_SCHEDULE value: %s", schedule_env)
                retry_schedule = None

        return cls(
            api_base=os.getenv("LLM_API_BASE", cls.api_base),
            api_key=api_key,
            model_name=os.getenv("LLM_MODEL_NAME", cls.model_name),
            vision_model_name=os.getenv("LLM_VISION_MODEL") or None,
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.8")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "800")),
            timeout=int(os.getenv("LLM_TIMEOUT", "30")),
            retry_attempts=int(os.getenv("LLM_RETRY_ATTEMPTS", "2")),
            safety_enabled=os.getenv("LLM_SAFETY_ENABLED", "true").lower() == "true",
            mock_mode=mock_mode,
            retry_schedule=retry_schedule,
        )


class ContentModerator:
    """Keyword screen for generated forum comments."""

    def __init__(self) -> None:
        self.blocked_words = [
            "kill",
            "murder",
            "terrorist",
            "suicide",
            "bomb",
            "racist",
        ]
        self.warning_phrases = [
            "idiot",
            "trash",
            "clown",
        ]

    def check_content(self, text: str) -> SafetyLevel:
        text_lower = text.lower()
        for word in self.blocked_words:
            if word in text_lower:
                return SafetyLevel.BLOCKED
        if any(phrase in text_lower for phrase in self.warning_phrases):
            return SafetyLevel.MINOR_CONCERN
        return SafetyLevel.SAFE


class MockResponses:
    """Canned collaborator output for mock mode and failures."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _MOCK_PATH
        with self._path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        self.vision: List[Dict[str, Any]] = list(raw.get("vision") or [])
        self.lineup: Dict[str, Any] = dict(raw.get("lineup") or {"players": []})
        self.backstory: Dict[str, str] = dict(raw.get("backstory") or {})
        self.news: Dict[str, Dict[str, Any]] = dict(raw.get("news") or {})

    def match(self, rng: RandomSource) -> MatchRecognition:
        if not self.vision:
            return MatchRecognition(result=MatchOutcome.DRAW, possession=50.0, players=[])
        return MatchRecognition.model_validate(rng.choice(self.vision))

    def lineup_result(self) -> LineupRecognition:
        return LineupRecognition.model_validate(self.lineup)

    def backstory_for(self, player: LineupPlayer) -> BackstoryEntry:
        values = {"name": player.name, "position": player.position or "Utility"}
        return BackstoryEntry(
            nickname=self.backstory.get("nickname", "{name}").format(**values),
            backstory=self.backstory.get("backstory", "").format(**values),
        )

    def news_for(self, outcome: Optional[MatchOutcome]) -> NewsPayload:
        key = outcome.value if outcome else MatchOutcome.LOSS.value
        template = self.news.get(key) or self.news.get(MatchOutcome.LOSS.value)
        if not template:
            return NewsPayload(title="Match report", content="", highlights=[])
        return NewsPayload.model_validate(template)


class LLMClient:
    """OpenAI-compatible client for the recognition and generation calls.

    Every public coroutine is total: transport errors, empty replies and
    output of the wrong shape are logged and replaced with mock data (or an
    empty comment, which tells the caller to use local templates).
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        *,
        rng: RandomSource | None = None,
        mocks: MockResponses | None = None,
    ) -> None:
        self.config = config or LLMConfig.from_env()
        self.moderator = ContentModerator() if self.config.safety_enabled else None
        self.mocks = mocks or MockResponses()
        self._rng = rng or DeterministicRNG()
        self._executor = ThreadPoolExecutor(max_workers=4)
        self._retry_schedule = self.config.retry_schedule or [1.0, 3.0, 10.0]

        if self.config.mock_mode:
            self.client = None
            logger.info("LLM client initialised in mock mode")
            return

        self.client = openai.OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.api_base,
            timeout=self.config.timeout,
        )
        logger.info("LLM client initialised with base URL: %s", self.config.api_base)

    @property
    def mock_mode(self) -> bool:
        return self.client is None

    async def _call_with_retry(
        self, messages: List[Dict[str, Any]], model: Optional[str] = None
    ) -> Optional[Any]:
        attempts = max(1, self.config.retry_attempts)
        loop = asyncio.get_running_loop()
        for attempt in range(attempts):
            try:
                return await loop.run_in_executor(
                    self._executor,
                    lambda: self.client.chat.completions.create(
                        model=model or self.config.model_name,
                        messages=messages,
                        temperature=self.config.temperature,
                        max_tokens=self.config.max_tokens,
                    ),
                )
            except Exception as exc:
                logger.warning("LLM API call attempt %d failed: %s", attempt + 1, exc)
                if attempt < attempts - 1:
                    delay = self._retry_schedule[min(attempt, len(self._retry_schedule) - 1)]
                    await asyncio.sleep(delay)
        logger.error("All retry attempts exhausted for LLM call")
        return None

    async def _complete(self, messages: List[Dict[str, Any]], model: Optional[str] = None) -> str:
        response = await self._call_with_retry(messages, model)
        if response is None:
            raise LLMGenerationError("LLM call exhausted retries")
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise MalformedResponseError("Unexpected completion structure") from exc
        return (content or "").strip()

    @staticmethod
    def _image_messages(image: str, prompt: str) -> List[Dict[str, Any]]:
        return [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": image}},
                    {"type": "text", "text": prompt},
                ],
            }
        ]

    async def recognize_screenshot(self, image: str) -> MatchRecognition:
        """Extract a match result from a screenshot data URL."""

        if self.mock_mode:
            return self.mocks.match(self._rng)
        try:
            text = await self._complete(
                self._image_messages(image, _VISION_PROMPT), self.config.vision_model_name
            )
            return MatchRecognition.model_validate(extract_json(text))
        except (LLMGenerationError, ValidationError) as exc:
            logger.warning("Screenshot recognition failed, falling back to mock result: %s", exc)
            return self.mocks.match(self._rng)

    async def recognize_lineup(self, image: str) -> LineupRecognition:
        if self.mock_mode:
            return self.mocks.lineup_result()
        try:
            text = await self._complete(
                self._image_messages(image, _LINEUP_PROMPT), self.config.vision_model_name
            )
            return LineupRecognition.model_validate(extract_json(text))
        except (LLMGenerationError, ValidationError) as exc:
            logger.warning("Lineup recognition failed, falling back to mock lineup: %s", exc)
            return self.mocks.lineup_result()

    async def generate_backstories(self, players: Sequence[LineupPlayer]) -> List[BackstoryEntry]:
        """Backstories aligned by index with ``players``."""

        fallback = [self.mocks.backstory_for(player) for player in players]
        if self.mock_mode or not players:
            return fallback
        roster = ", ".join(f"{p.name} ({p.position or 'unknown'})" for p in players)
        messages = [
            {
                "role": "system",
                "content": "You write satirical football-forum lore about underperforming players.",
            },
            {
                "role": "user",
                "content": (
                    f"Players in order: {roster}. Reply with a JSON array aligned by index: "
                    '[{"nickname": str, "backstory": str, "redemptionScore": 0-100}]'
                ),
            },
        ]
        try:
            payload = extract_json(await self._complete(messages))
            if isinstance(payload, dict):
                payload = payload.get("players", [])
            if not isinstance(payload, list):
                raise MalformedResponseError("Backstory payload is not a list")
            entries = [BackstoryEntry.model_validate(item) for item in payload]
        except (LLMGenerationError, ValidationError) as exc:
            logger.warning("Backstory generation failed, falling back to defaults: %s", exc)
            return fallback
        return [entries[i] if i < len(entries) else fallback[i] for i in range(len(players))]

    async def generate_comment(
        self,
        player: Player,
        rating: Optional[float],
        hostility: float,
        tone: Intensity,
    ) -> str:
        """Forum comment text, or ``""`` when none was produced."""

        if self.mock_mode:
            return ""
        style = "mocking and jeering" if tone is Intensity.TOXIC else "triumphant and hyped"
        messages = [
            {
                "role": "system",
                "content": (
                    "You are a football forum user. Write one short comment "
                    "matching the requested mood. No hashtags, no quotes."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Player: {player.name} (nickname: {player.nickname or 'none'}), "
                    f"Rating: {rating if rating is not None else 'unknown'}, "
                    f"Hostility: {hostility:.2f}, Mood: {style}"
                ),
            },
        ]
        try:
            text = await self._complete(messages)
        except LLMGenerationError as exc:
            logger.warning("Comment generation failed for %s: %s", player.name, exc)
            return ""
        if text and self.moderator:
            safety = self.moderator.check_content(text)
            if safety is SafetyLevel.BLOCKED:
                logger.warning("Generated comment blocked for safety: %s...", text[:50])
                return ""
            if safety is SafetyLevel.MINOR_CONCERN:
                logger.info("Comment passed with %s: %s...", safety.value, text[:50])
        return text

    async def generate_news_report(self, recognition: MatchRecognition) -> NewsReport:
        outcome = recognition.result
        payload: NewsPayload
        if self.mock_mode:
            payload = self.mocks.news_for(outcome)
        else:
            messages = [
                {"role": "system", "content": "You are a sports journalist. Generate match reports."},
                {
                    "role": "user",
                    "content": (
                        f"Result: {outcome.value}, score: {recognition.score or 'unknown'}, "
                        f"possession: {recognition.possession}%. Reply with JSON: "
                        '{"title": str, "content": str, "highlights": [str]}'
                    ),
                },
            ]
            try:
                payload = NewsPayload.model_validate(extract_json(await self._complete(messages)))
            except (LLMGenerationError, ValidationError) as exc:
                logger.warning("News generation failed, falling back to template: %s", exc)
                payload = self.mocks.news_for(outcome)
        return NewsReport(
            title=payload.title,
            content=payload.content,
            highlights=tuple(payload.highlights),
            timestamp=datetime.now(timezone.utc),
        )

    def close(self) -> None:
        self._executor.shutdown(wait=True)


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the shared client instance."""

    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


__all__ = [
    "ContentModerator",
    "LLMClient",
    "LLMConfig",
    "LLMGenerationError",
    "MalformedResponseError",
    "MockResponses",
    "SafetyLevel",
    "extract_json",
    "get_llm_client",
]
