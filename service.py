from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field, field_validator, model_validator

from config import Settings, configure_logging
from markets_db import aliases_by_market, load_external_aliases
from models import BetSpec, GoalEvent, Market, MatchFacts, PlayerRosterEntry, Side
from normalizer import normalize_match
from resolver import PlayerResolver
from roster import build_roster, roster_from_payload
from settlement import report, settle_batch


IMPLEMENTED_MARKETS = {m for m in Market if m != Market.UNKNOWN}

# ═══════════════════════════════════════════════════════════════════════════════
#  Pydantic models
# ═══════════════════════════════════════════════════════════════════════════════


class BetIn(BaseModel):
    market: str = Field(min_length=1)
    selection: str = Field(min_length=1)
    stake: float = Field(default=0.0, ge=0)
    odds: float = Field(default=1.0, ge=1)
    handicap: Optional[float] = None
    total: Optional[float] = None
    player: Optional[str] = None
    bet_id: Optional[str] = None

    @field_validator("market", "selection")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("player")
    @classmethod
    def blank_player_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    def to_bet(self) -> BetSpec:
        return BetSpec(**self.model_dump())


class GoalEventIn(BaseModel):
    minute: int = Field(ge=0)
    side: Side
    scorer_id: Optional[int] = None
    added_time: int = Field(default=0, ge=0)
    own_goal: bool = False
    penalty: bool = False

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_side(self) -> "GoalEventIn":
        if self.side == Side.DRAW:
            raise ValueError("goal side must be HOME or AWAY")
        return self


class MatchFactsIn(BaseModel):
    match_id: Optional[str] = None
    finished: bool = True
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)
    ht_home_score: Optional[int] = Field(default=None, ge=0)
    ht_away_score: Optional[int] = Field(default=None, ge=0)
    corners_home: Optional[int] = Field(default=None, ge=0)
    corners_away: Optional[int] = Field(default=None, ge=0)
    cards_home: Optional[int] = Field(default=None, ge=0)
    cards_away: Optional[int] = Field(default=None, ge=0)
    red_cards_home: Optional[int] = Field(default=None, ge=0)
    red_cards_away: Optional[int] = Field(default=None, ge=0)
    goals: Optional[List[GoalEventIn]] = None
    penalties: Optional[int] = Field(default=None, ge=0)

    def to_facts(self) -> MatchFacts:
        data = self.model_dump(exclude={"goals"})
        goals = None
        if self.goals is not None:
            goals = tuple(sorted((GoalEvent(**g.model_dump()) for g in self.goals), key=lambda g: g.sort_key))
        return MatchFacts(goals=goals, **data)


class RosterEntryIn(BaseModel):
    player_id: int
    name: str = Field(min_length=1)
    team: Optional[str] = None


class SettleRequest(BaseModel):
    match: Dict[str, Any]
    bets: List[BetIn] = Field(min_length=1)


class SettleFactsRequest(BaseModel):
    facts: MatchFactsIn
    roster: List[RosterEntryIn] = Field(default_factory=list)
    player_stats: Optional[Dict[str, Any]] = None
    lineup: Optional[List[Dict[str, Any]]] = None
    shotmap: Optional[List[Dict[str, Any]]] = None
    bets: List[BetIn] = Field(min_length=1)


# ═══════════════════════════════════════════════════════════════════════════════
#  Dependencies
# ═══════════════════════════════════════════════════════════════════════════════


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    if settings.market_aliases_file:
        load_external_aliases(settings.market_aliases_file)
    return settings


def get_resolver(settings: Settings = Depends(get_settings)) -> PlayerResolver:
    return PlayerResolver.from_settings(settings)


async def _run_settlement(
    facts: MatchFacts,
    roster: tuple[PlayerRosterEntry, ...],
    bets: List[BetIn],
    resolver: PlayerResolver,
    settings: Settings,
) -> dict:
    try:
        outcomes = await settle_batch(
            facts, [b.to_bet() for b in bets], roster, resolver,
            push_on_exact_line=settings.push_on_exact_line,
        )
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Unexpected settlement error: {exc}") from exc
    return report(outcomes)


# ═══════════════════════════════════════════════════════════════════════════════
#  FastAPI app
# ═══════════════════════════════════════════════════════════════════════════════


app = FastAPI(title="Bet Settlement API", version="1.0.0")


@app.get("/")
def root():
    return RedirectResponse(url="/docs")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/markets/supported")
def supported_markets() -> dict:
    return {
        "implemented": sorted(m.value for m in IMPLEMENTED_MARKETS),
        "count": len(IMPLEMENTED_MARKETS),
        "aliases": aliases_by_market(),
    }


@app.post("/settle")
async def settle_match(
    payload: SettleRequest,
    resolver: PlayerResolver = Depends(get_resolver),
    settings: Settings = Depends(get_settings),
) -> dict:
    try:
        facts = normalize_match(payload.match)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    roster = roster_from_payload(payload.match)
    return await _run_settlement(facts, roster, payload.bets, resolver, settings)


@app.post("/settle/facts")
async def settle_facts(
    payload: SettleFactsRequest,
    resolver: PlayerResolver = Depends(get_resolver),
    settings: Settings = Depends(get_settings),
) -> dict:
    explicit = [PlayerRosterEntry(r.player_id, r.name.strip(), r.team) for r in payload.roster]
    extra = build_roster(payload.player_stats, payload.lineup, payload.shotmap)
    seen = {e.player_id for e in explicit}
    roster = tuple(explicit + [e for e in extra if e.player_id not in seen])
    return await _run_settlement(payload.facts.to_facts(), roster, payload.bets, resolver, settings)
