from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class OutcomeStatus(str, Enum):
    WON = "won"
    LOST = "lost"
    VOID = "void"
    UNKNOWN = "unknown"


class Side(str, Enum):
    HOME = "HOME"
    DRAW = "DRAW"
    AWAY = "AWAY"


class Market(str, Enum):
    UNKNOWN = "UNKNOWN"
    # ── result ──
    MATCH_RESULT = "MATCH_RESULT"
    DOUBLE_CHANCE = "DOUBLE_CHANCE"
    DRAW_NO_BET = "DRAW_NO_BET"
    HT_RESULT = "HT_RESULT"
    SECOND_HALF_RESULT = "SECOND_HALF_RESULT"
    HT_FT = "HT_FT"
    # ── both teams to score ──
    BTTS = "BTTS"
    HT_BTTS = "HT_BTTS"
    SECOND_HALF_BTTS = "SECOND_HALF_BTTS"
    # ── goals totals ──
    TOTAL_GOALS = "TOTAL_GOALS"
    HT_TOTAL_GOALS = "HT_TOTAL_GOALS"
    SECOND_HALF_TOTAL_GOALS = "SECOND_HALF_TOTAL_GOALS"
    TEAM_TOTAL_GOALS = "TEAM_TOTAL_GOALS"
    EXACT_GOALS = "EXACT_GOALS"
    TEAM_EXACT_GOALS = "TEAM_EXACT_GOALS"
    HT_EXACT_GOALS = "HT_EXACT_GOALS"
    SECOND_HALF_EXACT_GOALS = "SECOND_HALF_EXACT_GOALS"
    GOALS_RANGE = "GOALS_RANGE"
    # ── odd / even ──
    ODD_EVEN = "ODD_EVEN"
    TEAM_ODD_EVEN = "TEAM_ODD_EVEN"
    HT_ODD_EVEN = "HT_ODD_EVEN"
    # ── correct score ──
    CORRECT_SCORE = "CORRECT_SCORE"
    HT_CORRECT_SCORE = "HT_CORRECT_SCORE"
    # ── handicap ──
    ASIAN_HANDICAP = "ASIAN_HANDICAP"
    HT_ASIAN_HANDICAP = "HT_ASIAN_HANDICAP"
    THREE_WAY_HANDICAP = "THREE_WAY_HANDICAP"
    # ── clean sheet / margin ──
    CLEAN_SHEET = "CLEAN_SHEET"
    WIN_TO_NIL = "WIN_TO_NIL"
    WINNING_MARGIN = "WINNING_MARGIN"
    # ── combo markets ──
    RESULT_BTTS = "RESULT_BTTS"
    RESULT_TOTAL_GOALS = "RESULT_TOTAL_GOALS"
    # ── cross-half ──
    GOAL_IN_BOTH_HALVES = "GOAL_IN_BOTH_HALVES"
    TO_WIN_BOTH_HALVES = "TO_WIN_BOTH_HALVES"
    TO_WIN_EITHER_HALF = "TO_WIN_EITHER_HALF"
    HIGHEST_SCORING_HALF = "HIGHEST_SCORING_HALF"
    # ── scoring order ──
    FIRST_TEAM_TO_SCORE = "FIRST_TEAM_TO_SCORE"
    LAST_TEAM_TO_SCORE = "LAST_TEAM_TO_SCORE"
    # ── corners ──
    TOTAL_CORNERS = "TOTAL_CORNERS"
    TEAM_CORNERS = "TEAM_CORNERS"
    CORNER_MATCH_BET = "CORNER_MATCH_BET"
    CORNER_HANDICAP = "CORNER_HANDICAP"
    # ── cards ──
    TOTAL_CARDS = "TOTAL_CARDS"
    TEAM_CARDS = "TEAM_CARDS"
    CARD_MATCH_BET = "CARD_MATCH_BET"
    BOTH_TEAMS_CARDED = "BOTH_TEAMS_CARDED"
    RED_CARD_IN_MATCH = "RED_CARD_IN_MATCH"
    TEAM_RED_CARD = "TEAM_RED_CARD"
    RED_CARD_MATCH_BET = "RED_CARD_MATCH_BET"
    # ── time windows ──
    INTERVAL_GOALS = "INTERVAL_GOALS"
    INTERVAL_WINNER = "INTERVAL_WINNER"
    NEXT_GOAL = "NEXT_GOAL"
    # ── penalties ──
    PENALTY_IN_MATCH = "PENALTY_IN_MATCH"
    # ── player ──
    ANYTIME_GOALSCORER = "ANYTIME_GOALSCORER"
    FIRST_GOALSCORER = "FIRST_GOALSCORER"
    LAST_GOALSCORER = "LAST_GOALSCORER"
    PLAYER_TWO_OR_MORE = "PLAYER_TWO_OR_MORE"


PLAYER_MARKETS = frozenset({
    Market.ANYTIME_GOALSCORER,
    Market.FIRST_GOALSCORER,
    Market.LAST_GOALSCORER,
    Market.PLAYER_TWO_OR_MORE,
})


@dataclass(frozen=True)
class GoalEvent:
    minute: int
    side: Side
    scorer_id: Optional[int] = None
    added_time: int = 0
    own_goal: bool = False
    penalty: bool = False

    @property
    def sort_key(self) -> Tuple[int, int]:
        return self.minute, self.added_time


@dataclass(frozen=True)
class MatchFacts:
    match_id: Optional[str] = None
    finished: bool = True
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    ht_home_score: Optional[int] = None
    ht_away_score: Optional[int] = None
    corners_home: Optional[int] = None
    corners_away: Optional[int] = None
    cards_home: Optional[int] = None
    cards_away: Optional[int] = None
    red_cards_home: Optional[int] = None
    red_cards_away: Optional[int] = None
    goals: Optional[Tuple[GoalEvent, ...]] = None   # None = timeline not reported
    penalties: Optional[int] = None


@dataclass(frozen=True)
class BetSpec:
    market: str
    selection: str
    stake: float = 0.0
    odds: float = 1.0
    handicap: Optional[float] = None
    total: Optional[float] = None
    player: Optional[str] = None
    bet_id: Optional[str] = None


@dataclass(frozen=True)
class PlayerRosterEntry:
    player_id: int
    name: str
    team: Optional[str] = None


@dataclass
class SelectionResult:
    market: str
    selection: str
    status: OutcomeStatus
    reason: str


@dataclass
class Outcome:
    status: OutcomeStatus
    payout: float
    reason: str
    manual_review: bool = False
    bet_id: Optional[str] = None
    market: Optional[str] = None
    selection: Optional[str] = None
    player_id: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "bet_id": self.bet_id,
            "market": self.market,
            "selection": self.selection,
            "status": self.status.value,
            "payout": self.payout,
            "reason": self.reason,
            "manual_review": self.manual_review,
        }
        if self.player_id is not None:
            data["player_id"] = self.player_id
        return data
