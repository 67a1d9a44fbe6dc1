from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from config import Settings
from matching_client import AttemptStatus, MatchAttempt
from resolver import PlayerResolver
from service import app, get_resolver, get_settings


class StubStrategy:
    name = "stub"

    def match(self, candidates, name: str) -> MatchAttempt:
        return MatchAttempt(AttemptStatus.MATCHED, player_id=1234567)


MATCH_PAYLOAD = {
    "general": {"matchId": 4506789},
    "header": {
        "teams": [{"name": "Lecce", "score": 1}, {"name": "Torino", "score": 1}],
        "status": {"finished": True, "halftimeScore": "1 - 0"},
        "events": {
            "events": [
                {"type": "Goal", "time": 33, "isHome": True, "playerId": 1234567},
                {"type": "Goal", "time": 81, "isHome": False, "playerId": 555},
            ]
        },
    },
    "lineups": [
        {"player_id": 1234567, "player_name": "Karl Etta", "team": "Lecce"},
        {"player_id": 555, "player_name": "Duvan Zapata", "team": "Torino"},
    ],
}


class ServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        app.dependency_overrides[get_settings] = lambda: Settings()
        app.dependency_overrides[get_resolver] = lambda: PlayerResolver([StubStrategy()])
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_supported_markets(self) -> None:
        body = self.client.get("/markets/supported").json()
        self.assertIn("TOTAL_CORNERS", body["implemented"])
        self.assertNotIn("UNKNOWN", body["implemented"])
        self.assertIn("2-way corners", body["aliases"]["TOTAL_CORNERS"])

    def test_settle_provider_payload(self) -> None:
        response = self.client.post("/settle", json={
            "match": MATCH_PAYLOAD,
            "bets": [
                {"bet_id": "1", "market": "half/full-time", "selection": "1/x", "stake": 10, "odds": 4.5},
                {"bet_id": "2", "market": "Anytime Goalscorer", "selection": "Yes", "player": "K. Etta",
                 "stake": 5, "odds": 3},
                {"bet_id": "3", "market": "Draw No Bet", "selection": "1", "stake": 8, "odds": 1.6},
            ],
        })

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([o["status"] for o in body["outcomes"]], ["won", "won", "void"])
        self.assertEqual(body["outcomes"][0]["payout"], 45.0)
        self.assertEqual(body["outcomes"][1]["player_id"], 1234567)
        self.assertEqual(body["summary"]["total_payout"], 68.0)
        self.assertIn("checked_at", body)

    def test_settle_facts(self) -> None:
        response = self.client.post("/settle/facts", json={
            "facts": {"home_score": 0, "away_score": 3, "corners_home": 6, "corners_away": 5},
            "roster": [{"player_id": 1234567, "name": "Karl Etta"}],
            "bets": [
                {"market": "Both Teams To Score", "selection": "yes"},
                {"market": "Both Teams To Score", "selection": "no"},
                {"market": "2-way corners", "selection": "Over 9.5"},
                {"market": "Total Corners", "selection": "6-8"},
            ],
        })

        self.assertEqual(response.status_code, 200)
        statuses = [o["status"] for o in response.json()["outcomes"]]
        self.assertEqual(statuses, ["lost", "won", "won", "lost"])

    def test_settle_facts_with_goal_timeline(self) -> None:
        response = self.client.post("/settle/facts", json={
            "facts": {
                "home_score": 1, "away_score": 0,
                "goals": [{"minute": 12, "side": "home", "scorer_id": 1234567}],
            },
            "lineup": [{"player_id": 1234567, "player_name": "Karl Etta", "team": "Lecce"}],
            "bets": [{"market": "First Goalscorer", "selection": "Yes", "player": "Karl Etta"}],
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["outcomes"][0]["status"], "won")

    def test_settle_facts_with_red_cards(self) -> None:
        response = self.client.post("/settle/facts", json={
            "facts": {"home_score": 1, "away_score": 1, "red_cards_home": 1, "red_cards_away": 0},
            "bets": [
                {"market": "Red Card Given", "selection": "Yes"},
                {"market": "Team Red Card", "selection": "Away Yes"},
            ],
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual([o["status"] for o in response.json()["outcomes"]], ["won", "lost"])

    def test_validation_error(self) -> None:
        response = self.client.post("/settle/facts", json={
            "facts": {"home_score": -1, "away_score": 0},
            "bets": [{"market": "Match Result", "selection": "1"}],
        })
        self.assertEqual(response.status_code, 422)

    def test_empty_bets_rejected(self) -> None:
        response = self.client.post("/settle", json={"match": MATCH_PAYLOAD, "bets": []})
        self.assertEqual(response.status_code, 422)

    def test_malformed_payload_is_bad_request(self) -> None:
        response = self.client.post("/settle", json={
            "match": {"header": {}},
            "bets": [{"market": "Match Result", "selection": "1"}],
        })
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
