from __future__ import annotations

import unittest

from models import PlayerRosterEntry
from roster import build_roster, roster_from_payload, roster_index


class BuildRosterTests(unittest.TestCase):
    def test_merges_sources_first_wins(self) -> None:
        roster = build_roster(
            player_stats={"1234567": {"name": "Karl Etta", "teamName": "Lecce"}},
            lineup=[
                {"player_id": 1234567, "player_name": "K. Etta", "team": "Lecce"},
                {"player_id": "555", "player_name": "Duvan Zapata", "team": "Torino"},
            ],
            shotmap=[{"playerId": 777, "playerName": "Nikola Krstović"}],
        )

        self.assertEqual(
            roster,
            (
                PlayerRosterEntry(1234567, "Karl Etta", "Lecce"),
                PlayerRosterEntry(555, "Duvan Zapata", "Torino"),
                PlayerRosterEntry(777, "Nikola Krstović", None),
            ),
        )

    def test_missing_sources_give_empty_roster(self) -> None:
        self.assertEqual(build_roster(), ())
        self.assertEqual(build_roster(None, [], None), ())

    def test_rows_without_id_or_name_are_skipped(self) -> None:
        roster = build_roster(lineup=[{"player_name": "Ghost"}, {"player_id": 9, "player_name": "  "}])
        self.assertEqual(roster, ())

    def test_nested_shotmap_player_id(self) -> None:
        roster = build_roster(shotmap=[{"shotmapEvent": {"playerId": 42}, "playerName": "Baschirotto"}])
        self.assertEqual(roster_index(roster)[42].name, "Baschirotto")


class RosterFromPayloadTests(unittest.TestCase):
    def test_reads_provider_locations(self) -> None:
        payload = {
            "content": {"playerStats": {"1": {"name": "Wladimiro Falcone", "team": "Lecce"}}},
            "lineups": [{"player_id": 2, "player_name": "Ché Adams", "team": "Torino"}],
            "header": {"events": {"shotmap": [{"playerId": 3, "playerName": "Lameck Banda"}]}},
        }

        roster = roster_from_payload(payload)

        self.assertEqual([p.player_id for p in roster], [1, 2, 3])

    def test_payload_without_players(self) -> None:
        self.assertEqual(roster_from_payload({"header": {}}), ())


if __name__ == "__main__":
    unittest.main()
