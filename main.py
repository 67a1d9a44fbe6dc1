from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from config import Settings, configure_logging
from markets_db import load_external_aliases
from models import BetSpec, GoalEvent, MatchFacts, PlayerRosterEntry, Side
from normalizer import normalize_match
from resolver import PlayerResolver
from roster import roster_from_payload
from settlement import report, settle_batch


def _facts_from_dict(data: dict[str, Any]) -> MatchFacts:
    fields = {k: v for k, v in data.items() if k != "goals"}
    goals = None
    if data.get("goals") is not None:
        goals = tuple(
            sorted(
                (
                    GoalEvent(
                        minute=int(g["minute"]),
                        side=Side(str(g["side"]).upper()),
                        scorer_id=g.get("scorer_id"),
                        added_time=int(g.get("added_time") or 0),
                        own_goal=bool(g.get("own_goal", False)),
                        penalty=bool(g.get("penalty", False)),
                    )
                    for g in data["goals"]
                ),
                key=lambda g: g.sort_key,
            )
        )
    return MatchFacts(goals=goals, **fields)


def load_input(path: Path) -> tuple[MatchFacts, tuple[PlayerRosterEntry, ...], list[BetSpec]]:
    payload = json.loads(path.read_text(encoding="utf-8"))

    if "match" in payload:
        facts = normalize_match(payload["match"])
        roster = roster_from_payload(payload["match"])
    elif "facts" in payload:
        facts = _facts_from_dict(payload["facts"])
        roster = tuple(
            PlayerRosterEntry(player_id=int(r["player_id"]), name=str(r["name"]), team=r.get("team"))
            for r in payload.get("roster", [])
        )
    else:
        raise ValueError("Input must contain either 'match' or 'facts'")

    bets = []
    for item in payload.get("bets", []):
        bets.append(
            BetSpec(
                market=str(item["market"]),
                selection=str(item["selection"]),
                stake=float(item.get("stake") or 0.0),
                odds=float(item.get("odds") or 1.0),
                handicap=float(item["handicap"]) if item.get("handicap") is not None else None,
                total=float(item["total"]) if item.get("total") is not None else None,
                player=item.get("player"),
                bet_id=str(item["bet_id"]) if item.get("bet_id") is not None else None,
            )
        )

    return facts, roster, bets


def main() -> None:
    parser = argparse.ArgumentParser(description="Settle bets against final match data")
    parser.add_argument("--input", required=True, help="Path to JSON with {match, bets} or {facts, roster, bets}")
    parser.add_argument("--log-level", required=False, help="Logging level (defaults to LOG_LEVEL or INFO)")
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(args.log_level or settings.log_level)
    if settings.market_aliases_file:
        load_external_aliases(settings.market_aliases_file)

    try:
        facts, roster, bets = load_input(Path(args.input))
    except (KeyError, TypeError, ValueError) as exc:
        sys.exit(f"Invalid input: {exc}")

    resolver = PlayerResolver.from_settings(settings)
    outcomes = asyncio.run(
        settle_batch(facts, bets, roster, resolver, push_on_exact_line=settings.push_on_exact_line)
    )

    print(json.dumps(report(outcomes), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
