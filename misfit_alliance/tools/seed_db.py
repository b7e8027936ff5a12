"""Seed the database with the default roster."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from ..config import DEFAULT_STATE_DB
from ..llm_client import LLMClient, LLMConfig
from ..service import GameService


def seed_database(path: Path, *, reset: bool = False) -> GameService:
    service = GameService(path, llm=LLMClient(LLMConfig(mock_mode=True)))
    if reset:
        service.reset()
    else:
        service.bootstrap()
    print(
        f"Seeded {len(service.players)} players into {path} "
        f"(hostility {service.hostility:.2f})"
    )
    return service


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Seed the Misfit Alliance database")
    parser.add_argument(
        "db",
        type=Path,
        nargs="?",
        default=DEFAULT_STATE_DB,
        help=f"Path to SQLite database (default: {DEFAULT_STATE_DB})",
    )
    parser.add_argument("--reset", action="store_true", help="Wipe existing state first")
    args = parser.parse_args()
    seed_database(args.db, reset=args.reset)


if __name__ == "__main__":  # pragma: no cover - CLI tool
    main()
