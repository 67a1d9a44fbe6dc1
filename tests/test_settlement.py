from __future__ import annotations

import unittest
from unittest.mock import patch

from matching_client import AttemptStatus, MatchAttempt
from models import BetSpec, GoalEvent, MatchFacts, OutcomeStatus, PlayerRosterEntry, Side
from resolver import PlayerResolver
from settlement import SettlementCache, report, settle, settle_batch, summarize

ROSTER = (
    PlayerRosterEntry(1234567, "Karl Etta", "Lecce"),
    PlayerRosterEntry(555, "Duvan Zapata", "Torino"),
)

FACTS = MatchFacts(
    match_id="4506789",
    home_score=2,
    away_score=1,
    ht_home_score=1,
    ht_away_score=1,
    goals=(
        GoalEvent(minute=20, side=Side.HOME, scorer_id=1234567),
        GoalEvent(minute=44, side=Side.AWAY, scorer_id=555),
        GoalEvent(minute=77, side=Side.HOME, scorer_id=1234567),
    ),
)


class CountingStrategy:
    name = "stub"

    def __init__(self, attempt: MatchAttempt) -> None:
        self.attempt = attempt
        self.calls = 0

    def match(self, candidates, name: str) -> MatchAttempt:
        self.calls += 1
        return self.attempt


class SettleTests(unittest.IsolatedAsyncioTestCase):
    async def test_won_pays_stake_times_odds(self) -> None:
        outcome = await settle(FACTS, BetSpec(market="Match Result", selection="1", stake=10, odds=2.35))

        self.assertEqual(outcome.status, OutcomeStatus.WON)
        self.assertEqual(outcome.payout, 23.5)
        self.assertFalse(outcome.manual_review)

    async def test_lost_pays_nothing(self) -> None:
        outcome = await settle(FACTS, BetSpec(market="Match Result", selection="2", stake=10, odds=3.0))
        self.assertEqual((outcome.status, outcome.payout), (OutcomeStatus.LOST, 0.0))

    async def test_void_returns_stake(self) -> None:
        outcome = await settle(FACTS, BetSpec(market="Total Goals", selection="Over 3", stake=12.5, odds=1.9))
        self.assertEqual((outcome.status, outcome.payout), (OutcomeStatus.VOID, 12.5))

    async def test_unknown_flags_manual_review(self) -> None:
        outcome = await settle(FACTS, BetSpec(market="Player Shots", selection="Over 1.5", stake=5, odds=2))

        self.assertEqual(outcome.status, OutcomeStatus.UNKNOWN)
        self.assertEqual(outcome.payout, 0.0)
        self.assertTrue(outcome.manual_review)

    async def test_strict_line_policy(self) -> None:
        bet = BetSpec(market="Total Goals", selection="Over 3", stake=10, odds=2)
        outcome = await settle(FACTS, bet, push_on_exact_line=False)
        self.assertEqual(outcome.status, OutcomeStatus.LOST)

    async def test_player_resolved_directly(self) -> None:
        bet = BetSpec(market="Anytime Goalscorer", selection="Yes", player="Karl Etta", stake=10, odds=3)

        outcome = await settle(FACTS, bet, ROSTER, PlayerResolver())

        self.assertEqual(outcome.status, OutcomeStatus.WON)
        self.assertEqual(outcome.player_id, 1234567)
        self.assertEqual(outcome.payout, 30.0)

    async def test_player_resolved_by_escalation(self) -> None:
        strategy = CountingStrategy(MatchAttempt(AttemptStatus.MATCHED, player_id=1234567))
        bet = BetSpec(market="Player To Score 2+", selection="Yes", player="K. Etta", stake=4, odds=6)

        outcome = await settle(FACTS, bet, ROSTER, PlayerResolver([strategy]))

        self.assertEqual(outcome.status, OutcomeStatus.WON)
        self.assertEqual(strategy.calls, 1)

    async def test_unresolved_player_is_unknown_not_lost(self) -> None:
        strategy = CountingStrategy(MatchAttempt(AttemptStatus.NO_MATCH))
        bet = BetSpec(market="First Goalscorer", selection="Yes", player="Someone Else", stake=4, odds=6)

        with patch("settlement.evaluate") as evaluate:
            outcome = await settle(FACTS, bet, ROSTER, PlayerResolver([strategy]))
            evaluate.assert_not_called()

        self.assertEqual(outcome.status, OutcomeStatus.UNKNOWN)
        self.assertTrue(outcome.manual_review)


class SettleBatchTests(unittest.IsolatedAsyncioTestCase):
    async def test_order_preserved(self) -> None:
        bets = [
            BetSpec(market="Match Result", selection=s, bet_id=s, stake=1, odds=2)
            for s in ("home", "draw", "away")
        ]

        outcomes = await settle_batch(FACTS, bets)

        self.assertEqual([o.bet_id for o in outcomes], ["home", "draw", "away"])
        self.assertEqual(
            [o.status for o in outcomes],
            [OutcomeStatus.WON, OutcomeStatus.LOST, OutcomeStatus.LOST],
        )

    async def test_failing_bet_does_not_sink_batch(self) -> None:
        bets = [
            BetSpec(market="Match Result", selection="1", bet_id="ok", stake=1, odds=2),
            BetSpec(market="Match Result", selection="1", bet_id="boom", stake=1, odds=2),
        ]
        real_settle = settle

        async def flaky(facts, bet, *args, **kwargs):
            if bet.bet_id == "boom":
                raise RuntimeError("provider glitch")
            return await real_settle(facts, bet, *args, **kwargs)

        with patch("settlement.settle", side_effect=flaky):
            outcomes = await settle_batch(FACTS, bets)

        self.assertEqual(outcomes[0].status, OutcomeStatus.WON)
        self.assertEqual(outcomes[1].status, OutcomeStatus.UNKNOWN)
        self.assertIn("provider glitch", outcomes[1].reason)

    async def test_identical_names_escalate_once(self) -> None:
        strategy = CountingStrategy(MatchAttempt(AttemptStatus.MATCHED, player_id=1234567))
        bets = [
            BetSpec(market="Anytime Goalscorer", selection="Yes", player="K. Etta", bet_id="a"),
            BetSpec(market="Last Goalscorer", selection="Yes", player="k etta", bet_id="b"),
        ]

        outcomes = await settle_batch(FACTS, bets, ROSTER, PlayerResolver([strategy]))

        self.assertEqual(strategy.calls, 1)
        self.assertEqual([o.status for o in outcomes], [OutcomeStatus.WON, OutcomeStatus.WON])

    async def test_cache_not_shared_across_matches_without_id(self) -> None:
        strategy = CountingStrategy(MatchAttempt(AttemptStatus.MATCHED, player_id=1234567))
        resolver = PlayerResolver([strategy])
        cache = SettlementCache()
        facts = MatchFacts(
            home_score=1, away_score=0, goals=(GoalEvent(minute=9, side=Side.HOME, scorer_id=1234567),),
        )
        bet = BetSpec(market="Anytime Goalscorer", selection="Yes", player="K. Etta")

        await settle(facts, bet, ROSTER, resolver, cache)
        await settle(facts, bet, ROSTER[1:], resolver, cache)

        self.assertEqual(strategy.calls, 2)


class SettlementCacheTests(unittest.IsolatedAsyncioTestCase):
    async def test_invalidate_drops_match_entries(self) -> None:
        cache = SettlementCache()
        cache.roster("m1", ROSTER)
        cache.roster("m2", ROSTER[:1])

        async def resolved():
            return 1

        await cache.resolution("m1", "Karl Etta", resolved)
        cache.invalidate("m1")

        self.assertEqual(cache.roster("m1", ()), ())
        self.assertEqual(cache.roster("m2", ()), ROSTER[:1])

    async def test_clear(self) -> None:
        cache = SettlementCache()
        cache.roster("m1", ROSTER)
        cache.clear()
        self.assertEqual(cache.roster("m1", ()), ())


class SummaryTests(unittest.IsolatedAsyncioTestCase):
    async def test_summary_and_report(self) -> None:
        bets = [
            BetSpec(market="Match Result", selection="1", stake=10, odds=2),
            BetSpec(market="Draw No Bet", selection="2", stake=10, odds=2),
            BetSpec(market="Total Goals", selection="Over 3", stake=5, odds=2),
            BetSpec(market="Nonsense", selection="?", stake=5, odds=2),
        ]
        outcomes = await settle_batch(FACTS, bets)

        summary = summarize(outcomes)

        self.assertEqual(summary["counts"], {"won": 1, "lost": 1, "void": 1, "unknown": 1})
        self.assertEqual(summary["total_payout"], 25.0)
        self.assertEqual(summary["manual_review"], 1)

        document = report(outcomes)
        self.assertIn("checked_at", document)
        self.assertEqual(len(document["outcomes"]), 4)
        self.assertEqual(document["outcomes"][0]["status"], "won")


if __name__ == "__main__":
    unittest.main()
