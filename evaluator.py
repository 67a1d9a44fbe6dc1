from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from markets_db import lookup_market, market_window
from models import (
    PLAYER_MARKETS,
    BetSpec,
    GoalEvent,
    Market,
    MatchFacts,
    OutcomeStatus,
    SelectionResult,
    Side,
)

# ═══════════════════════════════════════════════════════════════════════════════
#  Selection parsing
# ═══════════════════════════════════════════════════════════════════════════════

H, D, A = Side.HOME, Side.DRAW, Side.AWAY

_SIDE_TOKENS: dict[str, Side] = {
    "1": H, "home": H, "h": H,
    "x": D, "draw": D, "d": D, "tie": D,
    "2": A, "away": A, "a": A,
}
_YES_NO: dict[str, bool] = {"yes": True, "y": True, "gg": True, "no": False, "n": False, "ng": False}
_DOUBLE_CHANCE: dict[str, frozenset] = {
    "1x": frozenset({H, D}), "x1": frozenset({H, D}),
    "x2": frozenset({D, A}), "2x": frozenset({D, A}),
    "12": frozenset({H, A}), "21": frozenset({H, A}),
}

_TEAM_RE = re.compile(r"\b(home|away)\b")
_LEAD_SIDE_RE = re.compile(r"^(1|2|x|home|draw|away)\b\s*(?=\(?\s*[-+]?\s*\d)")
_DIRECTION_RE = re.compile(r"\b(over|under|exactly|exact)\b|^([ou])\s*\d")
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")
_SIGNED_RE = re.compile(r"[-+]?\s*\d+(?:[.,]\d+)?")
_RANGE_RE = re.compile(r"(\d+)\s*(?:-|to|and)\s*(\d+)")
_AT_LEAST_RE = re.compile(r"(\d+)\s*(?:\+|or more)")
_SCORE_RE = re.compile(r"^(\d+)\s*[-:]\s*(\d+)$")
_NO_GOAL = {"no goal", "no goals", "none", "no goalscorer", "no scorer"}


@dataclass(frozen=True)
class ParsedBet:
    """A bet with its market and selection canonicalized once, before any rule runs."""

    market: Market
    label: str
    selection: str
    text: str
    side: Optional[Side]
    team: Optional[Side]
    answer: Optional[bool]
    direction: Optional[str]     # "OVER" / "UNDER" / "EXACTLY"
    line: Optional[float]
    handicap: Optional[float]
    total: Optional[float] = None
    window: Optional[tuple[int, int]] = None   # first and last minute, inclusive
    player_id: Optional[int] = None
    push_on_exact_line: bool = True


def _norm_text(s: str) -> str:
    s = (s or "").strip().lower().replace("–", "-").replace("—", "-")
    return re.sub(r"\s+", " ", s)


def _to_float(raw: str) -> float:
    return float(raw.replace(",", ".").replace(" ", ""))


def _side_token(token: str) -> Optional[Side]:
    return _SIDE_TOKENS.get(token.strip().lower())


def _parse_direction(text: str) -> Optional[str]:
    m = _DIRECTION_RE.search(text)
    if not m:
        return None
    word = m.group(1) or m.group(2)
    if word in {"over", "o"}:
        return "OVER"
    if word in {"under", "u"}:
        return "UNDER"
    return "EXACTLY"


def _parse_answer(text: str) -> Optional[bool]:
    """Yes/no answer anywhere in the selection: "yes", "home no", "away - yes"."""
    if text in _YES_NO:
        return _YES_NO[text]
    return next((_YES_NO[t] for t in re.split(r"[\s\-:/(),]+", text) if t in _YES_NO), None)


def _parse_handicap(bet: BetSpec, text: str) -> Optional[float]:
    """Handicap expressed as the home line. A line quoted on an away selection is mirrored."""
    if bet.handicap is not None:
        return float(bet.handicap)
    lead = _LEAD_SIDE_RE.match(text)
    if lead is None:
        return None
    m = _SIGNED_RE.search(text, lead.end())
    if not m:
        return None
    value = _to_float(m.group(0))
    return -value if _side_token(lead.group(1)) == A else value


def parse_bet(
    bet: BetSpec, player_id: Optional[int] = None, *, push_on_exact_line: bool = True,
) -> ParsedBet:
    market, scope = lookup_market(bet.market)
    text = _norm_text(bet.selection)
    side = _side_token(text)
    if side is None:
        # "home -0.5", "2 (+1)", "x (-1)"
        lead = _LEAD_SIDE_RE.match(text)
        side = _side_token(lead.group(1)) if lead else None
    team = scope
    if team is None:
        m = _TEAM_RE.search(text)
        team = _side_token(m.group(1)) if m else None
    if bet.total is not None:
        line: Optional[float] = float(bet.total)
    else:
        m = _NUMBER_RE.search(text)
        line = _to_float(m.group(0)) if m else None
    return ParsedBet(
        market=market,
        label=bet.market,
        selection=bet.selection,
        text=text,
        side=side,
        team=team,
        answer=_parse_answer(text),
        direction=_parse_direction(text),
        line=line,
        handicap=_parse_handicap(bet, text),
        total=None if bet.total is None else float(bet.total),
        window=market_window(bet.market),
        player_id=player_id,
        push_on_exact_line=push_on_exact_line,
    )


def is_player_market(bet: BetSpec) -> bool:
    market, _ = lookup_market(bet.market)
    return market in PLAYER_MARKETS


# ═══════════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════════


W = OutcomeStatus.WON
L = OutcomeStatus.LOST
V = OutcomeStatus.VOID
U = OutcomeStatus.UNKNOWN


def _r(pb: ParsedBet, status: OutcomeStatus, reason: str) -> SelectionResult:
    """Shorthand result builder."""
    market = pb.market.value if pb.market != Market.UNKNOWN else pb.label
    return SelectionResult(market=market, selection=pb.selection, status=status, reason=reason)


def _wl(won: bool) -> OutcomeStatus:
    return W if won else L


def _result_category(home: float, away: float) -> Side:
    if home > away:
        return H
    if home < away:
        return A
    return D


def _fulltime_score(f: MatchFacts) -> tuple[int, int] | None:
    if f.home_score is None or f.away_score is None:
        return None
    return f.home_score, f.away_score


def _halftime_score(f: MatchFacts) -> tuple[int, int] | None:
    if f.ht_home_score is None or f.ht_away_score is None:
        return None
    ft = _fulltime_score(f)
    # a half-time score above the final score is provider noise, not data
    if ft is not None and (f.ht_home_score > ft[0] or f.ht_away_score > ft[1]):
        return None
    return f.ht_home_score, f.ht_away_score


def _second_half_score(f: MatchFacts) -> tuple[int, int] | None:
    ft = _fulltime_score(f)
    ht = _halftime_score(f)
    if ft is None or ht is None:
        return None
    return ft[0] - ht[0], ft[1] - ht[1]


def _period_score(f: MatchFacts, period: str) -> tuple[int, int] | None:
    if period == "FT":
        return _fulltime_score(f)
    if period == "HT":
        return _halftime_score(f)
    if period == "2H":
        return _second_half_score(f)
    return None


def _pair(f: MatchFacts, stat: str) -> tuple[int, int] | None:
    home = getattr(f, f"{stat}_home")
    away = getattr(f, f"{stat}_away")
    if home is None or away is None:
        return None
    return home, away


def _timeline(f: MatchFacts) -> Optional[List[GoalEvent]]:
    """Goal events in match order, or None when the timeline is missing or disagrees with the score."""
    ft = _fulltime_score(f)
    if f.goals is None:
        return [] if ft == (0, 0) else None
    if ft is not None and len(f.goals) != ft[0] + ft[1]:
        return None
    return sorted(f.goals, key=lambda g: g.sort_key)


def _is_split_line(line: float) -> bool:
    doubled = line * 2
    return abs(doubled - round(doubled)) > 1e-9


_LABELS = {"FT": "Final", "HT": "Halftime", "2H": "2nd-half"}


# ═══════════════════════════════════════════════════════════════════════════════
#  Generic counting rules (totals / exact / ranges / parity)
# ═══════════════════════════════════════════════════════════════════════════════


def _settle_count(pb: ParsedBet, value: Optional[int], label: str) -> SelectionResult:
    """Over/under, range, N+ and exact settlement on a counted value."""
    if value is None:
        return _r(pb, U, f"Missing data for {label}")
    text = pb.text

    if pb.direction in {"OVER", "UNDER"}:
        line = pb.line
        if line is None:
            return _r(pb, U, "Requires line")
        if _is_split_line(line):
            return _r(pb, U, f"Split line {line} needs manual settlement")
        if value == line:
            if pb.push_on_exact_line:
                return _r(pb, V, f"{label}={value} matched line={line}: stake returned")
            return _r(pb, L, f"{label}={value} equals line={line}")
        won = value > line if pb.direction == "OVER" else value < line
        return _r(pb, _wl(won), f"{label}={value}, line={line}")

    m = _RANGE_RE.search(text)
    if m and pb.direction is None:
        low, high = sorted((int(m.group(1)), int(m.group(2))))
        return _r(pb, _wl(low <= value <= high), f"{label}={value}, range={low}-{high}")

    m = _AT_LEAST_RE.search(text)
    if m:
        threshold = int(m.group(1))
        return _r(pb, _wl(value >= threshold), f"{label}={value}, needed {threshold}+")

    if pb.direction == "EXACTLY" or _NUMBER_RE.fullmatch(text):
        if pb.line is None:
            return _r(pb, U, "Requires a number")
        return _r(pb, _wl(value == pb.line), f"{label}={value}, exact={pb.line:g}")

    return _r(pb, U, f"Cannot parse selection '{pb.selection}'")


def _settle_parity(pb: ParsedBet, value: Optional[int], label: str) -> SelectionResult:
    if value is None:
        return _r(pb, U, f"Missing data for {label}")
    actual = "even" if value % 2 == 0 else "odd"
    pick = next((w for w in ("odd", "even") if w in pb.text.split()), None)
    if pick is None:
        return _r(pb, U, "Selection must be odd or even")
    return _r(pb, _wl(pick == actual), f"{label}={value} ({actual})")


def _settle_match_bet(pb: ParsedBet, pair: tuple[int, int] | None, label: str,
                      handicap: float = 0.0) -> SelectionResult:
    """Which side has more; a tie is its own selectable outcome."""
    if pair is None:
        return _r(pb, U, f"Missing data for {label}")
    if pb.side is None:
        return _r(pb, U, "Selection must be home, tie/draw or away")
    actual = _result_category(pair[0] + handicap, pair[1])
    return _r(pb, _wl(pb.side == actual), f"{label} home={pair[0]}, away={pair[1]}")


def _pick_team(pb: ParsedBet) -> Optional[Side]:
    """Team named by the market or by a side-only selection ("1", "away")."""
    if pb.team is not None:
        return pb.team
    return pb.side if pb.side in (H, A) else None


def _team_value(pb: ParsedBet, pair: tuple[int, int] | None) -> Optional[int]:
    if pair is None or pb.team is None:
        return None
    return pair[0] if pb.team == H else pair[1]


# ═══════════════════════════════════════════════════════════════════════════════
#  Generic period-parametrised rules
# ═══════════════════════════════════════════════════════════════════════════════


def _eval_period_result(pb: ParsedBet, f: MatchFacts, period: str) -> SelectionResult:
    sc = _period_score(f, period)
    if sc is None:
        return _r(pb, U, f"Missing {period} score data")
    if pb.side is None:
        return _r(pb, U, "Selection must be 1/X/2 or home/draw/away")
    actual = _result_category(sc[0], sc[1])
    return _r(pb, _wl(pb.side == actual), f"{_LABELS[period]} score={sc[0]}:{sc[1]}")


def _eval_period_btts(pb: ParsedBet, f: MatchFacts, period: str) -> SelectionResult:
    sc = _period_score(f, period)
    if sc is None:
        return _r(pb, U, f"Missing {period} score data")
    if pb.answer is None:
        return _r(pb, U, "Selection must be yes or no")
    btts = sc[0] > 0 and sc[1] > 0
    return _r(pb, _wl(pb.answer == btts), f"{period} goals={sc[0]}:{sc[1]}")


def _eval_period_total(pb: ParsedBet, f: MatchFacts, period: str) -> SelectionResult:
    sc = _period_score(f, period)
    return _settle_count(pb, None if sc is None else sc[0] + sc[1], f"{period} goals")


def _eval_period_correct_score(pb: ParsedBet, f: MatchFacts, period: str) -> SelectionResult:
    sc = _period_score(f, period)
    if sc is None:
        return _r(pb, U, f"Missing {period} score data")
    m = _SCORE_RE.match(pb.text)
    if not m:
        return _r(pb, U, "Selection must be in H-A format, e.g. 2-1")
    won = int(m.group(1)) == sc[0] and int(m.group(2)) == sc[1]
    return _r(pb, _wl(won), f"{_LABELS[period]} score={sc[0]}:{sc[1]}")


def _eval_period_asian_handicap(pb: ParsedBet, f: MatchFacts, period: str) -> SelectionResult:
    sc = _period_score(f, period)
    if sc is None:
        return _r(pb, U, f"Missing {period} score data")
    if pb.handicap is None:
        return _r(pb, U, "Requires handicap")
    if pb.side not in (H, A):
        return _r(pb, U, "Selection must be home or away")
    if _is_split_line(pb.handicap):
        return _r(pb, U, f"Quarter handicap {pb.handicap} needs manual settlement")
    home = sc[0] + pb.handicap
    if home == sc[1]:
        return _r(pb, V, f"Adjusted score tied ({home:g}-{sc[1]})")
    return _r(pb, _wl(_result_category(home, sc[1]) == pb.side),
              f"Adjusted score home={home:g}, away={sc[1]}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Result markets
# ═══════════════════════════════════════════════════════════════════════════════


def _result_match_result(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_result(pb, f, "FT")


def _result_ht_result(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_result(pb, f, "HT")


def _result_2h_result(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_result(pb, f, "2H")


def _result_double_chance(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    compact = re.sub(r"[\s/]", "", pb.text)
    covered = _DOUBLE_CHANCE.get(compact)
    if covered is None:
        parts = [p for p in re.split(r"\s*(?:/|\bor\b|&|,)\s*", pb.text) if p]
        sides = {_side_token(p) for p in parts}
        if len(parts) == 2 and None not in sides and len(sides) == 2:
            covered = frozenset(sides)
    if covered is None:
        return _r(pb, U, f"Invalid double chance selection '{pb.selection}'. Use 1X, X2, 12.")
    actual = _result_category(sc[0], sc[1])
    return _r(pb, _wl(actual in covered), f"FT result: {actual.value}")


def _result_draw_no_bet(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    if sc[0] == sc[1]:
        return _r(pb, V, f"Draw {sc[0]}:{sc[1]}: stake returned")
    if pb.side not in (H, A):
        return _r(pb, U, "Selection must be home or away")
    return _r(pb, _wl(_result_category(sc[0], sc[1]) == pb.side), f"Final score={sc[0]}:{sc[1]}")


def _result_ht_ft(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    ht = _halftime_score(f)
    ft = _fulltime_score(f)
    if ht is None or ft is None:
        return _r(pb, U, "Missing halftime/fulltime score data")
    parts = pb.text.replace("-", "/").split("/")
    if len(parts) != 2:
        return _r(pb, U, "HT/FT selection must be in HT/FT form, e.g. 1/X")
    ht_pick, ft_pick = _side_token(parts[0]), _side_token(parts[1])
    if ht_pick is None or ft_pick is None:
        return _r(pb, U, "HT/FT tokens must be 1/X/2 (or home/draw/away)")
    ht_actual = _result_category(ht[0], ht[1])
    ft_actual = _result_category(ft[0], ft[1])
    won = ht_pick == ht_actual and ft_pick == ft_actual
    return _r(pb, _wl(won), f"Actual HT/FT={ht_actual.value}/{ft_actual.value}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Goals markets
# ═══════════════════════════════════════════════════════════════════════════════


def _result_btts(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_btts(pb, f, "FT")


def _result_ht_btts(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_btts(pb, f, "HT")


def _result_2h_btts(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_btts(pb, f, "2H")


def _result_total_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "FT")


def _result_ht_total_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "HT")


def _result_2h_total_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "2H")


def _result_exact_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "FT")


def _result_ht_exact_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "HT")


def _result_2h_exact_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "2H")


def _result_goals_range(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_total(pb, f, "FT")


def _result_team_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if pb.team is None:
        return _r(pb, U, "Requires team=home or team=away")
    goals = _team_value(pb, _fulltime_score(f))
    return _settle_count(pb, goals, f"{pb.team.value} goals")


def _result_odd_even(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    sc = _fulltime_score(f)
    return _settle_parity(pb, None if sc is None else sc[0] + sc[1], "Total goals")


def _result_team_odd_even(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if pb.team is None:
        return _r(pb, U, "Requires team=home or team=away")
    return _settle_parity(pb, _team_value(pb, _fulltime_score(f)), f"{pb.team.value} goals")


def _result_ht_odd_even(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    sc = _halftime_score(f)
    return _settle_parity(pb, None if sc is None else sc[0] + sc[1], "HT goals")


# ═══════════════════════════════════════════════════════════════════════════════
#  Score markets
# ═══════════════════════════════════════════════════════════════════════════════


def _result_correct_score(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_correct_score(pb, f, "FT")


def _result_ht_correct_score(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_correct_score(pb, f, "HT")


def _result_clean_sheet(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    team = _pick_team(pb)
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    if team is None:
        return _r(pb, U, "Requires team=home or team=away")
    # "Team Clean Sheet: Home" reads as a yes
    answer = True if pb.answer is None else pb.answer
    clean = sc[1] == 0 if team == H else sc[0] == 0
    return _r(pb, _wl(answer == clean), f"Score={sc[0]}:{sc[1]}")


def _result_win_to_nil(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    team = _pick_team(pb)
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    if team is None:
        return _r(pb, U, "Requires team=home or team=away")
    if team == H:
        won = sc[0] > sc[1] and sc[1] == 0
    else:
        won = sc[1] > sc[0] and sc[0] == 0
    if pb.answer is False:
        won = not won
    return _r(pb, _wl(won), f"Score={sc[0]}:{sc[1]}")


def _result_winning_margin(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    """Winning margin. Selection: draw, or side + margin (e.g. home 2, away 3+)."""
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    diff = sc[0] - sc[1]
    if pb.side == D or "draw" in pb.text.split():
        return _r(pb, _wl(diff == 0), f"Score={sc[0]}:{sc[1]}")

    tokens = re.split(r"[\s:]+", pb.text.replace("by", " "))
    side = _side_token(tokens[0]) if tokens else None
    m = re.search(r"(\d+)\s*(\+?)\s*(?:goals?)?$", pb.text)
    if side not in (H, A) or m is None or len(tokens) < 2:
        return _r(pb, U, "Selection must be draw or side + margin (e.g. home 2, away 3+)")
    margin = diff if side == H else -diff
    target = int(m.group(1))
    won = margin >= target if m.group(2) else margin == target
    return _r(pb, _wl(won), f"Score={sc[0]}:{sc[1]}, margin={abs(diff)}")


def _split_combo(text: str) -> Optional[tuple[str, str]]:
    parts = [p.strip() for p in re.split(r"\s*(?:/|&|\band\b)\s*", text, maxsplit=1)]
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def _result_result_btts(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    """Combined Result + BTTS. Selection: home/yes, draw & no, 2/gg, ..."""
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    combo = _split_combo(pb.text)
    if combo is None:
        return _r(pb, U, "Selection must be RESULT/BTTS, e.g. home/yes")
    side = _side_token(combo[0])
    answer = _YES_NO.get(combo[1])
    if side is None or answer is None:
        return _r(pb, U, f"Cannot parse selection '{pb.selection}'")
    actual = _result_category(sc[0], sc[1])
    btts = sc[0] > 0 and sc[1] > 0
    won = side == actual and answer == btts
    return _r(pb, _wl(won), f"Result={actual.value}, BTTS={'Yes' if btts else 'No'}")


def _result_result_total_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    """Combined Result + Over/Under. Selection: home/over 2.5, x & under, ..."""
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    combo = _split_combo(pb.text)
    if combo is None:
        return _r(pb, U, "Selection must be RESULT/OU, e.g. home/over 2.5")
    side = _side_token(combo[0])
    direction = _parse_direction(combo[1])
    if side is None or direction not in {"OVER", "UNDER"}:
        return _r(pb, U, f"Cannot parse selection '{pb.selection}'")
    line = pb.total
    if line is None:
        m = _NUMBER_RE.search(combo[1])
        line = _to_float(m.group(0)) if m else None
    total = sc[0] + sc[1]
    actual = _result_category(sc[0], sc[1])
    if side != actual:
        return _r(pb, L, f"Result={actual.value}, Total={total}")
    # result leg won: the totals leg decides, including a push on the line
    goals = _settle_count(replace(pb, text=combo[1], direction=direction, line=line), total, "Total goals")
    return _r(pb, goals.status, f"Result={actual.value}, {goals.reason}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Handicaps
# ═══════════════════════════════════════════════════════════════════════════════


def _result_asian_handicap(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_asian_handicap(pb, f, "FT")


def _result_ht_asian_handicap(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_period_asian_handicap(pb, f, "HT")


def _result_three_way_handicap(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    """European (3-way) handicap: line applied to home only, settle 1/X/2."""
    sc = _fulltime_score(f)
    if sc is None:
        return _r(pb, U, "Missing FT score data")
    if pb.handicap is None:
        return _r(pb, U, "Requires handicap")
    if pb.side is None:
        return _r(pb, U, "Selection must be 1/X/2")
    home = sc[0] + pb.handicap
    actual = _result_category(home, sc[1])
    return _r(pb, _wl(pb.side == actual), f"Adjusted home={home:g}, away={sc[1]}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Cross-half markets
# ═══════════════════════════════════════════════════════════════════════════════


def _halves(f: MatchFacts) -> tuple[tuple[int, int], tuple[int, int]] | None:
    ht = _halftime_score(f)
    sh = _second_half_score(f)
    if ht is None or sh is None:
        return None
    return ht, sh


def _result_goal_in_both_halves(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    team = _pick_team(pb)
    halves = _halves(f)
    if halves is None:
        return _r(pb, U, "Missing period score data")
    if team is None:
        return _r(pb, U, "Requires team=home or team=away")
    ht, sh = halves
    idx = 0 if team == H else 1
    scored_both = ht[idx] > 0 and sh[idx] > 0
    answer = True if pb.answer is None else pb.answer
    return _r(pb, _wl(answer == scored_both), f"HT={ht[0]}:{ht[1]}, 2H={sh[0]}:{sh[1]}")


def _result_to_win_both_halves(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    team = _pick_team(pb)
    halves = _halves(f)
    if halves is None:
        return _r(pb, U, "Missing period score data")
    if team is None:
        return _r(pb, U, "Requires team=home or team=away")
    ht, sh = halves
    won = _result_category(*ht) == team and _result_category(*sh) == team
    if pb.answer is False:
        won = not won
    return _r(pb, _wl(won), f"HT={ht[0]}:{ht[1]}, 2H={sh[0]}:{sh[1]}")


def _result_to_win_either_half(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    team = _pick_team(pb)
    halves = _halves(f)
    if halves is None:
        return _r(pb, U, "Missing period score data")
    if team is None:
        return _r(pb, U, "Requires team=home or team=away")
    ht, sh = halves
    won = _result_category(*ht) == team or _result_category(*sh) == team
    if pb.answer is False:
        won = not won
    return _r(pb, _wl(won), f"HT={ht[0]}:{ht[1]}, 2H={sh[0]}:{sh[1]}")


def _result_highest_scoring_half(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    halves = _halves(f)
    if halves is None:
        return _r(pb, U, "Missing period score data")
    ht, sh = halves
    ht_total, sh_total = sum(ht), sum(sh)
    if ht_total > sh_total:
        actual = "FIRST"
    elif sh_total > ht_total:
        actual = "SECOND"
    else:
        actual = "EQUAL"
    words = set(re.split(r"[\s-]+", pb.text))
    if words & {"1st", "first"}:
        pick = "FIRST"
    elif words & {"2nd", "second"}:
        pick = "SECOND"
    elif words & {"equal", "tie", "draw", "x", "same"}:
        pick = "EQUAL"
    else:
        return _r(pb, U, "Selection must be 1st half, 2nd half or equal")
    return _r(pb, _wl(pick == actual), f"HT total={ht_total}, 2H total={sh_total}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Scoring order (team and player)
# ═══════════════════════════════════════════════════════════════════════════════


def _wants_no_goal(pb: ParsedBet) -> bool:
    return pb.text in _NO_GOAL


def _eval_team_to_score(pb: ParsedBet, f: MatchFacts, last: bool) -> SelectionResult:
    team = _pick_team(pb)
    goals = _timeline(f)
    if goals is None:
        return _r(pb, U, "Missing goal-event data")
    actual = (goals[-1] if last else goals[0]).side if goals else None
    which = "Last" if last else "First"
    if _wants_no_goal(pb):
        return _r(pb, _wl(actual is None), f"{which} scorer: {actual.value if actual else 'NONE'}")
    if team is None:
        return _r(pb, U, "Selection must be home, away or no goal")
    return _r(pb, _wl(actual == team), f"{which} scorer: {actual.value if actual else 'NONE'}")


def _result_first_team_to_score(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_team_to_score(pb, f, last=False)


def _result_last_team_to_score(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_team_to_score(pb, f, last=True)


def _scorer_goals(f: MatchFacts) -> Optional[List[GoalEvent]]:
    goals = _timeline(f)
    if goals is None:
        return None
    # own goals are never credited to a goalscorer
    return [g for g in goals if not g.own_goal]


def _eval_player_goals(pb: ParsedBet, f: MatchFacts, needed: int) -> SelectionResult:
    goals = _scorer_goals(f)
    if goals is None:
        return _r(pb, U, "Missing goal-event data")
    if _wants_no_goal(pb):
        return _r(pb, _wl(not goals), f"Goalscorers: {len(goals)} goal(s) credited")
    if pb.player_id is None:
        return _r(pb, U, "Player not resolved")
    scored = sum(1 for g in goals if g.scorer_id == pb.player_id)
    won = scored >= needed
    if pb.answer is False:
        won = not won
    return _r(pb, _wl(won), f"Player {pb.player_id} scored {scored}")


def _eval_player_order(pb: ParsedBet, f: MatchFacts, last: bool) -> SelectionResult:
    goals = _scorer_goals(f)
    if goals is None:
        return _r(pb, U, "Missing goal-event data")
    which = "Last" if last else "First"
    scorer = (goals[-1] if last else goals[0]).scorer_id if goals else None
    if _wants_no_goal(pb):
        return _r(pb, _wl(not goals), f"{which} goalscorer: {scorer}")
    if pb.player_id is None:
        return _r(pb, U, "Player not resolved")
    if goals and scorer is None:
        return _r(pb, U, f"{which} goal has no scorer id")
    return _r(pb, _wl(scorer == pb.player_id), f"{which} goalscorer: {scorer}")


def _result_anytime_goalscorer(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_player_goals(pb, f, 1)


def _result_player_two_or_more(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_player_goals(pb, f, 2)


def _result_first_goalscorer(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_player_order(pb, f, last=False)


def _result_last_goalscorer(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _eval_player_order(pb, f, last=True)


# ═══════════════════════════════════════════════════════════════════════════════
#  Statistics-based markets (corners / cards / penalties)
# ═══════════════════════════════════════════════════════════════════════════════


def _total(pair: tuple[int, int] | None) -> Optional[int]:
    return None if pair is None else pair[0] + pair[1]


def _result_total_corners(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _settle_count(pb, _total(_pair(f, "corners")), "Total corners")


def _result_team_corners(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if pb.team is None:
        return _r(pb, U, "Requires team=home or team=away")
    return _settle_count(pb, _team_value(pb, _pair(f, "corners")), f"{pb.team.value} corners")


def _result_corner_match_bet(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _settle_match_bet(pb, _pair(f, "corners"), "Corners")


def _result_corner_handicap(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if pb.handicap is None:
        return _r(pb, U, "Requires handicap")
    return _settle_match_bet(pb, _pair(f, "corners"), "Corners", handicap=pb.handicap)


def _result_total_cards(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _settle_count(pb, _total(_pair(f, "cards")), "Total cards")


def _result_team_cards(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if pb.team is None:
        return _r(pb, U, "Requires team=home or team=away")
    return _settle_count(pb, _team_value(pb, _pair(f, "cards")), f"{pb.team.value} cards")


def _result_card_match_bet(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _settle_match_bet(pb, _pair(f, "cards"), "Cards")


def _result_both_teams_carded(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    cards = _pair(f, "cards")
    if cards is None:
        return _r(pb, U, "Missing data for cards")
    if pb.answer is None:
        return _r(pb, U, "Selection must be yes or no")
    both = cards[0] > 0 and cards[1] > 0
    return _r(pb, _wl(pb.answer == both), f"Cards home={cards[0]}, away={cards[1]}")


def _result_red_card_in_match(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    reds = _pair(f, "red_cards")
    if reds is None:
        return _r(pb, U, "Missing data for red cards")
    if pb.answer is None:
        return _r(pb, U, "Selection must be yes or no")
    return _r(pb, _wl(pb.answer == (sum(reds) > 0)), f"Red cards home={reds[0]}, away={reds[1]}")


def _result_team_red_card(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    team = _pick_team(pb)
    reds = _pair(f, "red_cards")
    if reds is None:
        return _r(pb, U, "Missing data for red cards")
    if team is None:
        return _r(pb, U, "Requires team=home or team=away")
    # "Team Red Card: Away" reads as a yes
    answer = True if pb.answer is None else pb.answer
    shown = (reds[0] if team == H else reds[1]) > 0
    return _r(pb, _wl(answer == shown), f"Red cards home={reds[0]}, away={reds[1]}")


def _result_red_card_match_bet(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    return _settle_match_bet(pb, _pair(f, "red_cards"), "Red cards")


def _result_penalty_in_match(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if f.penalties is None:
        return _r(pb, U, "Missing penalty data")
    if pb.answer is None:
        return _r(pb, U, "Selection must be yes or no")
    return _r(pb, _wl(pb.answer == (f.penalties > 0)), f"Penalties awarded={f.penalties}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Time windows
# ═══════════════════════════════════════════════════════════════════════════════


def _window_goals(pb: ParsedBet, goals: List[GoalEvent]) -> List[GoalEvent]:
    start, end = pb.window
    return [g for g in goals if start <= g.minute <= end]


def _result_interval_goals(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    """Goals inside a minute window: over/under, exact, or yes/no for any goal."""
    if pb.window is None:
        return _r(pb, U, f"No time window in market '{pb.label}'")
    goals = _timeline(f)
    if goals is None:
        return _r(pb, U, "Missing goal-event data")
    count = len(_window_goals(pb, goals))
    label = f"Goals {pb.window[0]}-{pb.window[1]}'"
    if pb.direction is None and pb.answer is not None:
        return _r(pb, _wl(pb.answer == (count > 0)), f"{label}={count}")
    return _settle_count(pb, count, label)


def _result_interval_winner(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    if pb.window is None:
        return _r(pb, U, f"No time window in market '{pb.label}'")
    goals = _timeline(f)
    if goals is None:
        return _r(pb, U, "Missing goal-event data")
    hits = _window_goals(pb, goals)
    home = sum(1 for g in hits if g.side == H)
    return _settle_match_bet(pb, (home, len(hits) - home), f"Goals {pb.window[0]}-{pb.window[1]}'")


def _result_next_goal(pb: ParsedBet, f: MatchFacts) -> SelectionResult:
    """Next team to score, counted from kick-off or from the start of the second half."""
    goals = _timeline(f)
    if goals is None:
        return _r(pb, U, "Missing goal-event data")
    if re.search(r"\b(2nd|second) half\b", pb.label.lower()):
        # first-half stoppage goals keep minute 45
        goals = [g for g in goals if g.minute > 45]
    actual = goals[0].side if goals else None
    reason = f"Next goal: {actual.value if actual else 'NONE'}"
    if pb.side == D or pb.answer is False or _wants_no_goal(pb):
        return _r(pb, _wl(actual is None), reason)
    team = _pick_team(pb)
    if team is None:
        return _r(pb, U, "Selection must be home, away or no goal")
    return _r(pb, _wl(actual == team), reason)


# ═══════════════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════════════

MARKET_EVALUATORS: dict[Market, Callable[[ParsedBet, MatchFacts], SelectionResult]] = {
    # result
    Market.MATCH_RESULT: _result_match_result,
    Market.DOUBLE_CHANCE: _result_double_chance,
    Market.DRAW_NO_BET: _result_draw_no_bet,
    Market.HT_RESULT: _result_ht_result,
    Market.SECOND_HALF_RESULT: _result_2h_result,
    Market.HT_FT: _result_ht_ft,
    # btts
    Market.BTTS: _result_btts,
    Market.HT_BTTS: _result_ht_btts,
    Market.SECOND_HALF_BTTS: _result_2h_btts,
    # goals
    Market.TOTAL_GOALS: _result_total_goals,
    Market.HT_TOTAL_GOALS: _result_ht_total_goals,
    Market.SECOND_HALF_TOTAL_GOALS: _result_2h_total_goals,
    Market.TEAM_TOTAL_GOALS: _result_team_goals,
    Market.EXACT_GOALS: _result_exact_goals,
    Market.TEAM_EXACT_GOALS: _result_team_goals,
    Market.HT_EXACT_GOALS: _result_ht_exact_goals,
    Market.SECOND_HALF_EXACT_GOALS: _result_2h_exact_goals,
    Market.GOALS_RANGE: _result_goals_range,
    Market.ODD_EVEN: _result_odd_even,
    Market.TEAM_ODD_EVEN: _result_team_odd_even,
    Market.HT_ODD_EVEN: _result_ht_odd_even,
    # scores
    Market.CORRECT_SCORE: _result_correct_score,
    Market.HT_CORRECT_SCORE: _result_ht_correct_score,
    Market.CLEAN_SHEET: _result_clean_sheet,
    Market.WIN_TO_NIL: _result_win_to_nil,
    Market.WINNING_MARGIN: _result_winning_margin,
    Market.RESULT_BTTS: _result_result_btts,
    Market.RESULT_TOTAL_GOALS: _result_result_total_goals,
    # handicaps
    Market.ASIAN_HANDICAP: _result_asian_handicap,
    Market.HT_ASIAN_HANDICAP: _result_ht_asian_handicap,
    Market.THREE_WAY_HANDICAP: _result_three_way_handicap,
    # cross-half
    Market.GOAL_IN_BOTH_HALVES: _result_goal_in_both_halves,
    Market.TO_WIN_BOTH_HALVES: _result_to_win_both_halves,
    Market.TO_WIN_EITHER_HALF: _result_to_win_either_half,
    Market.HIGHEST_SCORING_HALF: _result_highest_scoring_half,
    # scoring order
    Market.FIRST_TEAM_TO_SCORE: _result_first_team_to_score,
    Market.LAST_TEAM_TO_SCORE: _result_last_team_to_score,
    # corners / cards / penalties
    Market.TOTAL_CORNERS: _result_total_corners,
    Market.TEAM_CORNERS: _result_team_corners,
    Market.CORNER_MATCH_BET: _result_corner_match_bet,
    Market.CORNER_HANDICAP: _result_corner_handicap,
    Market.TOTAL_CARDS: _result_total_cards,
    Market.TEAM_CARDS: _result_team_cards,
    Market.CARD_MATCH_BET: _result_card_match_bet,
    Market.BOTH_TEAMS_CARDED: _result_both_teams_carded,
    Market.RED_CARD_IN_MATCH: _result_red_card_in_match,
    Market.TEAM_RED_CARD: _result_team_red_card,
    Market.RED_CARD_MATCH_BET: _result_red_card_match_bet,
    Market.PENALTY_IN_MATCH: _result_penalty_in_match,
    # time windows
    Market.INTERVAL_GOALS: _result_interval_goals,
    Market.INTERVAL_WINNER: _result_interval_winner,
    Market.NEXT_GOAL: _result_next_goal,
    # player
    Market.ANYTIME_GOALSCORER: _result_anytime_goalscorer,
    Market.FIRST_GOALSCORER: _result_first_goalscorer,
    Market.LAST_GOALSCORER: _result_last_goalscorer,
    Market.PLAYER_TWO_OR_MORE: _result_player_two_or_more,
}


# ═══════════════════════════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════════════════════════


def evaluate(
    facts: MatchFacts,
    bet: BetSpec,
    player_id: Optional[int] = None,
    *,
    push_on_exact_line: bool = True,
) -> SelectionResult:
    """
    Settle one bet against final match facts.

    Never raises for bad input: unrecognized markets, unparseable selections and
    missing facts all come back as UNKNOWN so they reach manual review instead of
    being booked as losses.
    """
    pb = parse_bet(bet, player_id, push_on_exact_line=push_on_exact_line)
    if pb.market == Market.UNKNOWN:
        return _r(pb, U, f"Unknown market '{bet.market}'")
    if not facts.finished:
        return _r(pb, U, "Match not finished")
    evaluator = MARKET_EVALUATORS.get(pb.market)
    if evaluator is None:
        return _r(pb, U, f"Unsupported market {pb.market.value}")
    return evaluator(pb, facts)
