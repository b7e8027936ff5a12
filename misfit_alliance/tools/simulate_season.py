"""Season tuning simulator: plays mock matches through the engines."""

from __future__ import annotations

import argparse
import logging
import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import DEFAULT_STATE_DB
from ..llm_client import LLMClient, LLMConfig
from ..rng import DeterministicRNG
from ..service import GameService


@dataclass
class SimulationConfig:
    matches: int = 10
    seed: int = 42
    trust_bonus: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, payload: Dict[str, Any]) -> "SimulationConfig":
        return cls(
            matches=int(payload.get("matches", 10)),
            seed=int(payload.get("seed", 42)),
            trust_bonus=[str(name) for name in payload.get("trust_bonus", [])],
        )


class _SimClock:
    """One simulated match per day."""

    def __init__(self, start: datetime) -> None:
        self.start = start
        self.now = start

    def advance_to(self, day: int) -> None:
        self.now = self.start + timedelta(days=day)

    def __call__(self) -> datetime:
        return self.now


def _grant_trust(service: GameService, names: List[str]) -> None:
    wanted = {name.casefold() for name in names}
    for player in service.players:
        if player.name.casefold() in wanted and not player.trust_bonus:
            service.grant_trust_bonus(player.id)


async def _play(service: GameService, config: SimulationConfig, clock: _SimClock) -> List[Dict[str, Any]]:
    timeline: List[Dict[str, Any]] = []
    mock_rng = DeterministicRNG(config.seed).fork(1)
    for index in range(config.matches):
        _grant_trust(service, config.trust_bonus)
        clock.advance_to(index)
        service.set_draft(service.llm.mocks.match(mock_rng))
        report = await service.confirm_match()
        latest = service.match_history()[0]
        timeline.append(
            {
                "match": index + 1,
                "result": latest.outcome.value if latest.outcome else None,
                "score": latest.score,
                "hostility": round(report.hostility_after, 4),
                "impression": report.impression_score,
                "mood": report.mood,
                "peak": report.hostility_peak,
                "scores": {p.name: p.redemption_score for p in service.players},
                "states": {p.name: p.redemption_state.value for p in service.players},
            }
        )
    return timeline


def run_simulation(
    *,
    base_db: Path,
    config: SimulationConfig,
    output_dir: Optional[Path] = None,
) -> Dict[str, Any]:
    """Run a mock season returning the hostility and score trajectories."""

    sim_db = base_db.with_suffix(".season_sim.db")
    if sim_db.exists():
        sim_db.unlink()
    rng = DeterministicRNG(config.seed)
    llm = LLMClient(LLMConfig(mock_mode=True), rng=rng)
    clock = _SimClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    service = GameService(sim_db, llm=llm, rng=rng, clock=clock)
    service.bootstrap()
    try:
        timeline = asyncio.run(_play(service, config, clock))
    finally:
        llm.close()

    season = service.season
    result: Dict[str, Any] = {
        "config": {
            "matches": config.matches,
            "seed": config.seed,
            "trust_bonus": config.trust_bonus,
        },
        "timeline": timeline,
        "summary": {
            "wins": season.wins,
            "draws": season.draws,
            "losses": season.losses,
            "final_hostility": round(service.hostility, 4),
            "final_scores": {p.name: p.redemption_score for p in service.players},
            "posts": len(service.posts),
        },
    }

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        output_path = output_dir / f"season_simulation_{timestamp}.json"
        output_path.write_text(json.dumps(result, indent=2), encoding="utf-8")
        result["output_path"] = str(output_path)

    return result


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a mock season through the engines.")
    parser.add_argument(
        "--db",
        type=Path,
        default=DEFAULT_STATE_DB,
        help=f"Base database path for simulation state (default: {DEFAULT_STATE_DB}).",
    )
    parser.add_argument("--config", type=Path, help="JSON file describing the scenario.")
    parser.add_argument("--matches", type=int, help="Number of matches (overrides config).")
    parser.add_argument("--seed", type=int, help="RNG seed (overrides config).")
    parser.add_argument("--output-dir", type=Path, default=None)
    return parser.parse_args()


def main() -> None:  # pragma: no cover - CLI entry point
    logging.basicConfig(level=logging.INFO)
    args = _parse_args()
    payload = json.loads(args.config.read_text()) if args.config else {}
    config = SimulationConfig.from_mapping(payload)
    if args.matches:
        config.matches = args.matches
    if args.seed is not None:
        config.seed = args.seed
    result = run_simulation(base_db=args.db, config=config, output_dir=args.output_dir)
    print(json.dumps(result["summary"], indent=2))


if __name__ == "__main__":
    main()
