from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from main import load_input
from models import Side


class LoadInputTests(unittest.TestCase):
    def _write(self, data: dict) -> Path:
        tmp = tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8")
        with tmp:
            json.dump(data, tmp)
        path = Path(tmp.name)
        self.addCleanup(path.unlink)
        return path

    def test_facts_input(self) -> None:
        path = self._write({
            "facts": {
                "home_score": 2, "away_score": 1,
                "goals": [
                    {"minute": 70, "side": "away", "scorer_id": 5},
                    {"minute": 10, "side": "home", "scorer_id": 7},
                    {"minute": 45, "added_time": 2, "side": "home", "scorer_id": 7},
                ],
            },
            "roster": [{"player_id": 7, "name": "Karl Etta", "team": "Lecce"}],
            "bets": [{"market": "Asian Handicap", "selection": "1", "handicap": -1, "stake": 10, "odds": 1.9}],
        })

        facts, roster, bets = load_input(path)

        self.assertEqual([g.minute for g in facts.goals], [10, 45, 70])
        self.assertEqual(facts.goals[2].side, Side.AWAY)
        self.assertEqual(roster[0].name, "Karl Etta")
        self.assertEqual(bets[0].handicap, -1.0)
        self.assertEqual(bets[0].stake, 10.0)

    def test_provider_input(self) -> None:
        path = self._write({
            "match": {"header": {"teams": [{"score": 0}, {"score": 0}], "status": {"finished": True}}},
            "bets": [{"market": "BTTS", "selection": "no", "bet_id": 17}],
        })

        facts, roster, bets = load_input(path)

        self.assertEqual((facts.home_score, facts.away_score), (0, 0))
        self.assertEqual(roster, ())
        self.assertEqual(bets[0].bet_id, "17")

    def test_missing_match_and_facts(self) -> None:
        with self.assertRaises(ValueError):
            load_input(self._write({"bets": []}))


if __name__ == "__main__":
    unittest.main()
