from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from models import GoalEvent, MatchFacts, Side

logger = logging.getLogger(__name__)

HALF_TIME_MINUTE = 45

_HT_SCORE_RE = re.compile(r"^\s*(\d+)\s*[-:]\s*(\d+)\s*$")


# ── helpers ──────────────────────────────────────────────────────────────────


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        cleaned = value.strip().replace("%", "")
        if cleaned.isdigit():
            return int(cleaned)
    return None


def _dig(payload: Any, *path: Any) -> Any:
    node = payload
    for key in path:
        if isinstance(node, dict):
            node = node.get(key)
        elif isinstance(node, list) and isinstance(key, int) and -len(node) <= key < len(node):
            node = node[key]
        else:
            return None
    return node


def _flatten_event_map(event_map: Any) -> List[Dict[str, Any]]:
    """Provider groups goals by player name -> [events]."""
    if not isinstance(event_map, dict):
        return []
    events: List[Dict[str, Any]] = []
    for group in event_map.values():
        if isinstance(group, list):
            events.extend(ev for ev in group if isinstance(ev, dict))
    return events


def _event_type(ev: Dict[str, Any]) -> str:
    return str(ev.get("type") or "").strip().lower()


def _is_penalty(ev: Dict[str, Any]) -> bool:
    if ev.get("isPenalty") or ev.get("penalty"):
        return True
    return "penalty" in str(ev.get("goalDescription") or "").lower()


def _player_id(ev: Dict[str, Any]) -> int | None:
    pid = _to_int(ev.get("playerId"))
    if pid is None:
        pid = _to_int(_dig(ev, "player", "id"))
    return pid


def _timeline_events(payload: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    events = _dig(payload, "header", "events", "events")
    if events is None:
        events = _dig(payload, "content", "matchFacts", "events", "events")
    if not isinstance(events, list):
        return None
    return [ev for ev in events if isinstance(ev, dict) and not ev.get("isPenaltyShootoutEvent")]


# ── goals ────────────────────────────────────────────────────────────────────


def _goal_from_event(ev: Dict[str, Any], is_home: bool) -> GoalEvent | None:
    minute = _to_int(ev.get("time"))
    if minute is None:
        return None
    return GoalEvent(
        minute=minute,
        added_time=_to_int(ev.get("overloadTime")) or 0,
        side=Side.HOME if is_home else Side.AWAY,
        scorer_id=_player_id(ev),
        own_goal=bool(ev.get("ownGoal")),
        penalty=_is_penalty(ev),
    )


def parse_goals(payload: Dict[str, Any]) -> Optional[tuple[GoalEvent, ...]]:
    """Goal timeline in match order, or None when the payload carries no goal events."""
    goals: List[GoalEvent] = []
    timeline = _timeline_events(payload)
    if timeline is not None:
        for ev in timeline:
            if _event_type(ev) != "goal":
                continue
            goal = _goal_from_event(ev, bool(ev.get("isHome")))
            if goal is None:
                logger.debug("Skipping goal event without minute: %s", ev)
                return None
            goals.append(goal)
    else:
        home = _dig(payload, "header", "events", "homeTeamGoals")
        away = _dig(payload, "header", "events", "awayTeamGoals")
        if home is None and away is None:
            return None
        for is_home, group in ((True, home), (False, away)):
            for ev in _flatten_event_map(group):
                goal = _goal_from_event(ev, is_home)
                if goal is None:
                    return None
                goals.append(goal)

    goals.sort(key=lambda g: g.sort_key)
    return tuple(goals)


def _halftime_from_goals(goals: Iterable[GoalEvent]) -> tuple[int, int]:
    home = away = 0
    for g in goals:
        # 45+2' is still first half
        if g.minute <= HALF_TIME_MINUTE:
            if g.side == Side.HOME:
                home += 1
            else:
                away += 1
    return home, away


def _reported_halftime(payload: Dict[str, Any]) -> tuple[int, int] | None:
    raw = _dig(payload, "header", "status", "halftimeScore")
    if isinstance(raw, str):
        m = _HT_SCORE_RE.match(raw)
        if m:
            return int(m.group(1)), int(m.group(2))
    timeline = _timeline_events(payload) or []
    for ev in timeline:
        if _event_type(ev) == "half" and str(ev.get("halfStrShort") or "").upper() == "HT":
            home, away = _to_int(ev.get("homeScore")), _to_int(ev.get("awayScore"))
            if home is not None and away is not None:
                return home, away
    return None


# ── statistics ───────────────────────────────────────────────────────────────


def find_stat_pair(payload: Dict[str, Any], wanted_key: str) -> tuple[int, int] | None:
    """Look up a [home, away] stat pair by key in the full-match stats groups."""
    groups = _dig(payload, "content", "stats", "Periods", "All", "stats")
    if not isinstance(groups, list):
        return None
    for group in groups:
        for stat in (group or {}).get("stats") or []:
            if not isinstance(stat, dict):
                continue
            candidates = [stat] + [s for s in stat.get("stats") or [] if isinstance(s, dict)]
            for item in candidates:
                values = item.get("stats")
                if item.get("key") == wanted_key and isinstance(values, list) and len(values) == 2:
                    home, away = _to_int(values[0]), _to_int(values[1])
                    if home is None or away is None:
                        return None
                    return home, away
    return None


def _card_counts(payload: Dict[str, Any]) -> Dict[str, Dict[str, int]] | None:
    """Yellow and red cards per side from the event timeline, topped up from aggregate stats."""
    timeline = _timeline_events(payload)
    counts = {"home": {"yellow": 0, "red": 0}, "away": {"yellow": 0, "red": 0}}
    if timeline is not None:
        for ev in timeline:
            if _event_type(ev) != "card" or not ev.get("card"):
                continue
            bucket = counts["home" if ev.get("isHome") else "away"]
            card = str(ev["card"]).lower()
            if "red" in card:
                bucket["red"] += 1
            else:
                bucket["yellow"] += 1

    yellow = find_stat_pair(payload, "yellow_cards")
    red = find_stat_pair(payload, "red_cards")
    if timeline is None and yellow is None and red is None:
        return None
    # the event feed sometimes misses bookings the aggregate stats carry
    for idx, side in enumerate(("home", "away")):
        if yellow is not None:
            counts[side]["yellow"] = max(counts[side]["yellow"], yellow[idx])
        if red is not None:
            counts[side]["red"] = max(counts[side]["red"], red[idx])
    return counts


def parse_cards(payload: Dict[str, Any]) -> tuple[int, int] | None:
    """Cards of any colour per side."""
    counts = _card_counts(payload)
    if counts is None:
        return None
    return (
        counts["home"]["yellow"] + counts["home"]["red"],
        counts["away"]["yellow"] + counts["away"]["red"],
    )


def parse_red_cards(payload: Dict[str, Any]) -> tuple[int, int] | None:
    counts = _card_counts(payload)
    if counts is None:
        return None
    return counts["home"]["red"], counts["away"]["red"]


def parse_penalties(payload: Dict[str, Any], goals: Optional[tuple[GoalEvent, ...]]) -> int | None:
    """Penalties awarded in normal play: scored plus missed."""
    timeline = _timeline_events(payload)
    if timeline is None:
        return None if goals is None else sum(1 for g in goals if g.penalty)
    awarded = 0
    for ev in timeline:
        kind = _event_type(ev)
        if kind == "goal" and _is_penalty(ev):
            awarded += 1
        elif kind == "missedpenalty":
            awarded += 1
    return awarded


# ── entry point ──────────────────────────────────────────────────────────────


def normalize_match(payload: Any) -> MatchFacts:
    """Convert a provider match-details payload into MatchFacts."""
    if not isinstance(payload, dict):
        raise ValueError("Match payload must be a JSON object")
    teams = _dig(payload, "header", "teams")
    if not isinstance(teams, list) or len(teams) < 2:
        raise ValueError("Unexpected match payload shape: header.teams must list home and away")

    home_score = _to_int(_dig(teams, 0, "score"))
    away_score = _to_int(_dig(teams, 1, "score"))
    goals = parse_goals(payload)

    ht = _reported_halftime(payload)
    if ht is None and goals is not None:
        if home_score is not None and away_score is not None and len(goals) == home_score + away_score:
            ht = _halftime_from_goals(goals)
        else:
            logger.warning(
                "Goal timeline (%d events) disagrees with score %s-%s; half-time left unset",
                len(goals), home_score, away_score,
            )

    corners = find_stat_pair(payload, "corners")
    cards = parse_cards(payload)
    reds = parse_red_cards(payload)
    status = _dig(payload, "header", "status") or {}
    match_id = _dig(payload, "general", "matchId") or payload.get("matchId")

    return MatchFacts(
        match_id=str(match_id) if match_id is not None else None,
        finished=bool(status.get("finished", True)) and not status.get("cancelled"),
        home_score=home_score,
        away_score=away_score,
        ht_home_score=ht[0] if ht else None,
        ht_away_score=ht[1] if ht else None,
        corners_home=corners[0] if corners else None,
        corners_away=corners[1] if corners else None,
        cards_home=cards[0] if cards else None,
        cards_away=cards[1] if cards else None,
        red_cards_home=reds[0] if reds else None,
        red_cards_away=reds[1] if reds else None,
        goals=goals,
        penalties=parse_penalties(payload, goals),
    )
