from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from models import PlayerRosterEntry
from normalizer import _dig, _to_int

logger = logging.getLogger(__name__)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_roster(
    player_stats: Optional[Dict[str, Any]] = None,
    lineup: Optional[Iterable[Dict[str, Any]]] = None,
    shotmap: Optional[Iterable[Dict[str, Any]]] = None,
) -> tuple[PlayerRosterEntry, ...]:
    """
    Merge player identities from the three provider structures.

    Sources are read in priority order (per-player stats, lineup, shot events);
    the first source to mention an id wins, later duplicates are dropped.
    Any source may be missing; with none present the roster is empty.
    """
    roster: Dict[int, PlayerRosterEntry] = {}

    def _add(raw_id: Any, name: Any, team: Any) -> None:
        pid = _to_int(raw_id)
        display = _clean(name)
        if pid is None or display is None:
            return
        if pid not in roster:
            roster[pid] = PlayerRosterEntry(player_id=pid, name=display, team=_clean(team))

    # ── per-player stats: {id: {name, team}} ──
    if isinstance(player_stats, dict):
        for raw_id, player in player_stats.items():
            if isinstance(player, dict):
                _add(player.get("id", raw_id), player.get("name"), player.get("team") or player.get("teamName"))

    # ── lineup rows ──
    for row in lineup or []:
        if isinstance(row, dict):
            _add(row.get("player_id"), row.get("player_name"), row.get("team"))

    # ── shot events carry no team ──
    for shot in shotmap or []:
        if isinstance(shot, dict):
            raw_id = shot.get("playerId") or _dig(shot, "shotmapEvent", "playerId")
            _add(raw_id, shot.get("playerName"), None)

    return tuple(roster.values())


def roster_from_payload(payload: Dict[str, Any]) -> tuple[PlayerRosterEntry, ...]:
    """Roster for a raw match-details payload."""
    player_stats = _dig(payload, "content", "playerStats") or payload.get("playerStats")
    lineup = payload.get("lineups")
    shotmap = payload.get("shotmap")
    if not isinstance(shotmap, list):
        shotmap = _dig(payload, "header", "events", "shotmap")

    roster = build_roster(
        player_stats if isinstance(player_stats, dict) else None,
        lineup if isinstance(lineup, list) else None,
        shotmap if isinstance(shotmap, list) else None,
    )
    logger.debug("Built roster of %d players", len(roster))
    return roster


def roster_index(roster: Iterable[PlayerRosterEntry]) -> Dict[int, PlayerRosterEntry]:
    return {entry.player_id: entry for entry in roster}
