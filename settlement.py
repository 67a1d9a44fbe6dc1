from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from evaluator import evaluate, is_player_market
from models import BetSpec, MatchFacts, Outcome, OutcomeStatus, PlayerRosterEntry
from resolver import PlayerResolver, normalize_name

logger = logging.getLogger(__name__)


class SettlementCache:
    """
    Batch-scoped memo of rosters and player resolutions.

    Resolutions are stored as tasks, so identical names settled concurrently
    share one escalation. Keys include the match id; callers skip the cache
    when the match id is unknown.
    """

    def __init__(self) -> None:
        self._rosters: Dict[str, tuple[PlayerRosterEntry, ...]] = {}
        self._resolutions: Dict[tuple[str, str], asyncio.Task] = {}

    def roster(self, match_id: str, roster: Iterable[PlayerRosterEntry]) -> tuple[PlayerRosterEntry, ...]:
        if match_id not in self._rosters:
            self._rosters[match_id] = tuple(roster)
        return self._rosters[match_id]

    def resolution(self, match_id: str, name: str, factory) -> asyncio.Task:
        key = (match_id, normalize_name(name))
        task = self._resolutions.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._resolutions[key] = task
        return task

    def invalidate(self, match_id: str) -> None:
        self._rosters.pop(match_id, None)
        for key in [k for k in self._resolutions if k[0] == match_id]:
            del self._resolutions[key]

    def clear(self) -> None:
        self._rosters.clear()
        self._resolutions.clear()


def _payout(status: OutcomeStatus, stake: float, odds: float) -> float:
    if status == OutcomeStatus.WON:
        return round(stake * odds, 2)
    if status == OutcomeStatus.VOID:
        return round(stake, 2)
    return 0.0


def _outcome(bet: BetSpec, status: OutcomeStatus, reason: str,
             market: Optional[str] = None, player_id: Optional[int] = None) -> Outcome:
    return Outcome(
        status=status,
        payout=_payout(status, bet.stake, bet.odds),
        reason=reason,
        manual_review=status == OutcomeStatus.UNKNOWN,
        bet_id=bet.bet_id,
        market=market or bet.market,
        selection=bet.selection,
        player_id=player_id,
    )


async def _resolve_player(
    facts: MatchFacts,
    bet: BetSpec,
    roster: Sequence[PlayerRosterEntry],
    resolver: PlayerResolver,
    cache: Optional[SettlementCache],
) -> Optional[int]:
    # without a match id a cached name could leak into another match
    if cache is None or facts.match_id is None:
        return await resolver.resolve(roster, bet.player)
    roster = cache.roster(facts.match_id, roster)
    task = cache.resolution(facts.match_id, bet.player, lambda: resolver.resolve(roster, bet.player))
    return await asyncio.shield(task)


async def settle(
    facts: MatchFacts,
    bet: BetSpec,
    roster: Sequence[PlayerRosterEntry] = (),
    resolver: Optional[PlayerResolver] = None,
    cache: Optional[SettlementCache] = None,
    *,
    push_on_exact_line: bool = True,
) -> Outcome:
    """Settle one bet: resolve the player when the market needs one, then apply the market rule."""
    player_id = None
    if is_player_market(bet) and bet.player:
        resolver = resolver or PlayerResolver()
        player_id = await _resolve_player(facts, bet, roster, resolver, cache)
        if player_id is None:
            logger.info("Player %r not resolved for bet %s", bet.player, bet.bet_id)
            return _outcome(bet, OutcomeStatus.UNKNOWN, f"Player '{bet.player}' not resolved")

    result = evaluate(facts, bet, player_id, push_on_exact_line=push_on_exact_line)
    return _outcome(bet, result.status, result.reason, market=result.market, player_id=player_id)


async def settle_batch(
    facts: MatchFacts,
    bets: Sequence[BetSpec],
    roster: Sequence[PlayerRosterEntry] = (),
    resolver: Optional[PlayerResolver] = None,
    cache: Optional[SettlementCache] = None,
    *,
    push_on_exact_line: bool = True,
) -> List[Outcome]:
    """Settle bets concurrently; results keep input order and one failure never sinks the rest."""
    cache = cache if cache is not None else SettlementCache()
    resolver = resolver or PlayerResolver()

    async def _one(bet: BetSpec) -> Outcome:
        try:
            return await settle(facts, bet, roster, resolver, cache, push_on_exact_line=push_on_exact_line)
        except Exception as exc:
            logger.exception("Failed to settle bet %s", bet.bet_id)
            return _outcome(bet, OutcomeStatus.UNKNOWN, f"Settlement error: {exc}")

    return list(await asyncio.gather(*(_one(bet) for bet in bets)))


def summarize(outcomes: Iterable[Outcome]) -> dict:
    counts = {status.value: 0 for status in OutcomeStatus}
    total_payout = 0.0
    manual_review = 0
    for outcome in outcomes:
        counts[outcome.status.value] += 1
        total_payout += outcome.payout
        if outcome.manual_review:
            manual_review += 1
    return {
        "counts": counts,
        "total_payout": round(total_payout, 2),
        "manual_review": manual_review,
    }


def report(outcomes: Sequence[Outcome]) -> dict:
    return {
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "summary": summarize(outcomes),
        "outcomes": [o.to_dict() for o in outcomes],
    }
