"""
Local markets database: maps bookmaker market names / aliases to market families.
Built from the bookmaker labels seen on settled slips + common spelling variations.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional

from models import Market, Side

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
#  Embedded market aliases
# ═══════════════════════════════════════════════════════════════════════════════

_H = Side.HOME
_A = Side.AWAY

_EMBEDDED_MARKETS: dict[Market, list[str]] = {
    # ── result ───────────────────────────────────────────
    Market.MATCH_RESULT: ["fulltime result", "full time result", "match result", "1x2",
                          "match winner", "result", "3-way"],
    Market.DOUBLE_CHANCE: ["double chance"],
    Market.DRAW_NO_BET: ["draw no bet", "dnb"],
    Market.HT_RESULT: ["half time result", "ht result", "1st half result", "first half result",
                       "to win 1st half", "half time"],
    Market.SECOND_HALF_RESULT: ["2nd half result", "second half result", "to win 2nd half"],
    Market.HT_FT: ["half time/full time", "ht/ft", "half time full time", "half/full time",
                   "half/full-time", "half-time/full-time"],
    # ── both teams to score ──────────────────────────────
    Market.BTTS: ["both teams to score", "btts", "gg/ng"],
    Market.HT_BTTS: ["both teams to score in 1st half", "1st half both teams to score", "ht btts"],
    Market.SECOND_HALF_BTTS: ["both teams to score in 2nd half", "2nd half both teams to score",
                              "2h btts"],
    # ── goals ────────────────────────────────────────────
    Market.TOTAL_GOALS: ["total goals", "match goals", "goals over/under", "over/under",
                         "alternative total goals", "alternative match goals"],
    Market.HT_TOTAL_GOALS: ["1st half goals", "first half goals", "1st half total goals",
                            "ht over/under"],
    Market.SECOND_HALF_TOTAL_GOALS: ["2nd half goals", "second half goals",
                                     "2nd half total goals"],
    Market.TEAM_TOTAL_GOALS: ["team total goals", "team goals"],
    Market.EXACT_GOALS: ["exact total goals", "exact goals", "total goals exact"],
    Market.TEAM_EXACT_GOALS: ["team exact goals"],
    Market.HT_EXACT_GOALS: ["first half exact goals", "1st half exact goals"],
    Market.SECOND_HALF_EXACT_GOALS: ["second half exact goals", "2nd half exact goals"],
    Market.GOALS_RANGE: ["goals range", "multi goals", "multigoals", "total goals range"],
    # ── odd / even ───────────────────────────────────────
    Market.ODD_EVEN: ["odd/even", "goals odd/even", "total goals odd/even"],
    Market.TEAM_ODD_EVEN: ["team odd/even", "team goals odd/even"],
    Market.HT_ODD_EVEN: ["odd/even 1st half", "1st half odd/even", "first half odd/even"],
    # ── correct score ────────────────────────────────────
    Market.CORRECT_SCORE: ["correct score", "final score", "exact score"],
    Market.HT_CORRECT_SCORE: ["correct score 1st half", "half time correct score",
                              "1st half correct score"],
    # ── handicap ─────────────────────────────────────────
    Market.ASIAN_HANDICAP: ["asian handicap", "handicap", "alternative asian handicap"],
    Market.HT_ASIAN_HANDICAP: ["1st half asian handicap", "asian handicap 1st half",
                               "half time asian handicap"],
    Market.THREE_WAY_HANDICAP: ["3-way handicap", "three way handicap", "european handicap",
                                "handicap result"],
    # ── clean sheet / margin ─────────────────────────────
    Market.CLEAN_SHEET: ["team clean sheet", "clean sheet"],
    Market.WIN_TO_NIL: ["win to nil", "team win to nil"],
    Market.WINNING_MARGIN: ["winning margin", "margin of victory"],
    # ── combos ───────────────────────────────────────────
    Market.RESULT_BTTS: ["result/both teams to score", "match result and both teams to score",
                         "result/btts", "1x2 & btts"],
    Market.RESULT_TOTAL_GOALS: ["result/total goals", "match result and total goals",
                                "1x2 & over/under", "result/over/under"],
    # ── cross-half ───────────────────────────────────────
    Market.GOAL_IN_BOTH_HALVES: ["goal in both halves", "team to score in both halves",
                                 "to score in both halves"],
    Market.TO_WIN_BOTH_HALVES: ["to win both halves", "win both halves"],
    Market.TO_WIN_EITHER_HALF: ["to win either half", "win either half"],
    Market.HIGHEST_SCORING_HALF: ["highest scoring half", "half with most goals"],
    # ── scoring order ────────────────────────────────────
    Market.FIRST_TEAM_TO_SCORE: ["first team to score", "team to score first", "first goal"],
    Market.LAST_TEAM_TO_SCORE: ["last team to score", "team to score last", "last goal"],
    # ── corners ──────────────────────────────────────────
    Market.TOTAL_CORNERS: ["total corners", "corners over/under", "corners", "2-way corners",
                           "alternative corners", "alternative total corners", "asian corners"],
    Market.TEAM_CORNERS: ["team corners", "team total corners"],
    Market.CORNER_MATCH_BET: ["corner match bet", "most corners", "corners 1x2"],
    Market.CORNER_HANDICAP: ["corner handicap", "corners handicap", "3-way corners handicap"],
    # ── cards ────────────────────────────────────────────
    Market.TOTAL_CARDS: ["total cards", "cards over/under", "total bookings", "cards"],
    Market.TEAM_CARDS: ["team cards", "team total cards"],
    Market.CARD_MATCH_BET: ["card match bet", "most cards", "cards 1x2"],
    Market.BOTH_TEAMS_CARDED: ["both teams to receive a card", "both teams to be carded"],
    Market.RED_CARD_IN_MATCH: ["red card given", "red card in match", "red card in the match", "red card",
                               "sending off"],
    Market.TEAM_RED_CARD: ["team given a red card", "team red card", "team to receive a red card"],
    Market.RED_CARD_MATCH_BET: ["most red cards", "red card match bet"],
    # ── time windows ─────────────────────────────────────
    # interval labels carry their window ("Winner 30:00-59:59"), see _WINDOW_MARKETS
    Market.INTERVAL_GOALS: [],
    Market.INTERVAL_WINNER: [],
    Market.NEXT_GOAL: ["next goal", "next team to score", "next goal 2nd half", "2nd half next goal",
                       "next goal second half"],
    # ── penalties ────────────────────────────────────────
    Market.PENALTY_IN_MATCH: ["penalty in the match", "penalty awarded", "penalty in match"],
    # ── player ───────────────────────────────────────────
    Market.ANYTIME_GOALSCORER: ["anytime goalscorer", "player to score", "to score",
                                "anytime scorer", "goalscorer"],
    Market.FIRST_GOALSCORER: ["first goalscorer", "first goal scorer", "1st goalscorer"],
    Market.LAST_GOALSCORER: ["last goalscorer", "last goal scorer"],
    Market.PLAYER_TWO_OR_MORE: ["player to score 2+", "to score 2 or more", "to score at least 2",
                                "player to score at least 2 goals", "brace"],
}


# Team-scoped variants: the side is implied by the market name itself.
_SCOPED_MARKETS: dict[str, tuple[Market, Side]] = {
    "home team exact goals": (Market.TEAM_EXACT_GOALS, _H),
    "away team exact goals": (Market.TEAM_EXACT_GOALS, _A),
    "home team total goals": (Market.TEAM_TOTAL_GOALS, _H),
    "away team total goals": (Market.TEAM_TOTAL_GOALS, _A),
    "home team goals": (Market.TEAM_TOTAL_GOALS, _H),
    "away team goals": (Market.TEAM_TOTAL_GOALS, _A),
    "home odd/even": (Market.TEAM_ODD_EVEN, _H),
    "away odd/even": (Market.TEAM_ODD_EVEN, _A),
    "home team odd/even": (Market.TEAM_ODD_EVEN, _H),
    "away team odd/even": (Market.TEAM_ODD_EVEN, _A),
    "clean sheet - home": (Market.CLEAN_SHEET, _H),
    "clean sheet - away": (Market.CLEAN_SHEET, _A),
    "home team clean sheet": (Market.CLEAN_SHEET, _H),
    "away team clean sheet": (Market.CLEAN_SHEET, _A),
    "win to nil - home": (Market.WIN_TO_NIL, _H),
    "win to nil - away": (Market.WIN_TO_NIL, _A),
    "home team win to nil": (Market.WIN_TO_NIL, _H),
    "away team win to nil": (Market.WIN_TO_NIL, _A),
    "home team win both halves": (Market.TO_WIN_BOTH_HALVES, _H),
    "away team win both halves": (Market.TO_WIN_BOTH_HALVES, _A),
    "home team to score in both halves": (Market.GOAL_IN_BOTH_HALVES, _H),
    "away team to score in both halves": (Market.GOAL_IN_BOTH_HALVES, _A),
    "home team corners": (Market.TEAM_CORNERS, _H),
    "away team corners": (Market.TEAM_CORNERS, _A),
    "home corners": (Market.TEAM_CORNERS, _H),
    "away corners": (Market.TEAM_CORNERS, _A),
    "home team cards": (Market.TEAM_CARDS, _H),
    "away team cards": (Market.TEAM_CARDS, _A),
    "home cards": (Market.TEAM_CARDS, _H),
    "away cards": (Market.TEAM_CARDS, _A),
    "home team given a red card": (Market.TEAM_RED_CARD, _H),
    "away team given a red card": (Market.TEAM_RED_CARD, _A),
    "home team red card": (Market.TEAM_RED_CARD, _H),
    "away team red card": (Market.TEAM_RED_CARD, _A),
    "home red card": (Market.TEAM_RED_CARD, _H),
    "away red card": (Market.TEAM_RED_CARD, _A),
}

# Labels around a time window, with the window itself removed.
_WINDOW_MARKETS: dict[str, Market] = {
    "winner": Market.INTERVAL_WINNER,
    "result": Market.INTERVAL_WINNER,
    "1x2": Market.INTERVAL_WINNER,
    "goals": Market.INTERVAL_GOALS,
    "goals in": Market.INTERVAL_GOALS,
    "goal in": Market.INTERVAL_GOALS,
    "total goals": Market.INTERVAL_GOALS,
    "total goals in": Market.INTERVAL_GOALS,
}


# ═══════════════════════════════════════════════════════════════════════════════
#  Build lookup index
# ═══════════════════════════════════════════════════════════════════════════════

_DASHES = str.maketrans({"–": "-", "—": "-", "−": "-"})
_WINDOW_RE = re.compile(r"\(?(\d{1,2})[:-](\d{2})-(\d{1,2})[:-](\d{2})\)?")


def _normalise(s: str) -> str:
    """Lowercase, unify dashes, collapse whitespace (also around '-' and '/')."""
    s = s.strip().lower().translate(_DASHES).replace("_", " ")
    s = re.sub(r"\s+", " ", s)
    s = re.sub(r"\s*([-/&])\s*", r"\1", s)
    return s


def _build_index() -> dict[str, tuple[Market, Optional[Side]]]:
    index: dict[str, tuple[Market, Optional[Side]]] = {}

    for market, aliases in _EMBEDDED_MARKETS.items():
        # canonical enum names ("MATCH_RESULT", "match result") always resolve
        index[_normalise(market.value)] = (market, None)
        for alias in aliases:
            index[_normalise(alias)] = (market, None)

    for alias, (market, side) in _SCOPED_MARKETS.items():
        index[_normalise(alias)] = (market, side)

    return index


_ALIAS_INDEX = _build_index()


# ═══════════════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════════════

def lookup_market(name: Optional[str]) -> tuple[Market, Optional[Side]]:
    """
    Resolve a bookmaker market label to a market family.
    Tries exact match, then the label with bookmaker decorators removed,
    then labels built around a time window.
    Returns (Market.UNKNOWN, None) when nothing matches.
    """
    if not name:
        return Market.UNKNOWN, None
    norm = _normalise(name)

    # 1. Exact match
    if norm in _ALIAS_INDEX:
        return _ALIAS_INDEX[norm]

    # 2. Strip decorators ("Regular Time", "(90 mins)", ...)
    stripped = _strip_decorators(norm)
    if stripped in _ALIAS_INDEX:
        return _ALIAS_INDEX[stripped]

    # 3. Time-window labels ("Winner 30:00-59:59", "Goals in 00:00-09:59")
    if _WINDOW_RE.search(norm):
        rest = re.sub(r"\s+", " ", _WINDOW_RE.sub(" ", norm)).strip(" -:")
        if rest in _WINDOW_MARKETS:
            return _WINDOW_MARKETS[rest], None

    return Market.UNKNOWN, None


def market_window(name: Optional[str]) -> Optional[tuple[int, int]]:
    """First and last minute (inclusive) of the window in a label such as "Winner 30:00-59:59"."""
    m = _WINDOW_RE.search(_normalise(name or ""))
    if m is None:
        return None
    start, end = int(m.group(1)), int(m.group(3))
    if end < start:
        return None
    return start, end


def aliases_by_market() -> dict[str, list[str]]:
    """Known labels grouped by market family, for display."""
    grouped: dict[str, list[str]] = {}
    for alias, (market, _side) in sorted(_ALIAS_INDEX.items()):
        grouped.setdefault(market.value, []).append(alias)
    return grouped


def _strip_decorators(name: str) -> str:
    """Remove suffixes bookmakers add that don't change the market."""
    suffixes = [" (90 mins)", " (90 minutes)", "-regular time", " regular time",
                " incl. overtime", " full time"]
    prefixes = ["match ", "full time ", "fulltime "]

    s = name
    for sf in suffixes:
        if s.endswith(sf):
            s = s[:-len(sf)]
            break
    if s not in _ALIAS_INDEX:
        for p in prefixes:
            if s.startswith(p):
                s = s[len(p):]
                break
    return s.strip()


def load_external_aliases(path: str) -> int:
    """
    Load extra aliases from a JSON file of the form
    {"label": "MARKET"} or {"label": ["MARKET", "HOME"]}.
    Returns count of aliases added; existing labels are never overridden.
    """
    file = Path(path)
    if not file.is_file():
        logger.warning("Market alias file %s not found", path)
        return 0

    data = json.loads(file.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Market alias file {path} must hold a JSON object")

    count = 0
    for label, target in data.items():
        if isinstance(target, list):
            market_name, side_name = (target + [None])[:2]
        else:
            market_name, side_name = target, None
        try:
            market = Market(str(market_name).upper())
            side = Side(str(side_name).upper()) if side_name else None
        except ValueError:
            logger.warning("Skipping alias %r: unknown target %r", label, target)
            continue
        norm = _normalise(label)
        if norm not in _ALIAS_INDEX:
            _ALIAS_INDEX[norm] = (market, side)
            count += 1
    logger.info("Loaded %d market aliases from %s", count, path)
    return count
