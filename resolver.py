from __future__ import annotations

import asyncio
import logging
import re
import unicodedata
from typing import Optional, Protocol, Sequence

from thefuzz import fuzz

from matching_client import AttemptStatus, GeminiPlayerMatcher, MatchAttempt
from models import PlayerRosterEntry
from roster import roster_index

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 90
DEFAULT_TIMEOUT = 20.0

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")


class MatchStrategy(Protocol):
    name: str

    def match(self, candidates: Sequence[PlayerRosterEntry], name: str) -> MatchAttempt:
        ...


def normalize_name(name: str) -> str:
    """Accent-fold, lower-case and strip punctuation: "Mbappé-Lottin" -> "mbappe lottin"."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    folded = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = _NON_WORD_RE.sub(" ", folded.lower()).replace("_", " ")
    return _SPACES_RE.sub(" ", cleaned).strip()


def similarity(a: str, b: str) -> int:
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return 0
    if na == nb:
        return 100
    return fuzz.token_sort_ratio(na, nb)


class PlayerResolver:
    """
    Map a free-text player name onto a roster id.

    Direct similarity first; below the threshold the ordered strategies are
    tried one after another, moving on only when a credential is out of quota.
    """

    def __init__(
        self,
        strategies: Sequence[MatchStrategy] = (),
        threshold: int = DEFAULT_THRESHOLD,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not 0 <= threshold <= 100:
            raise ValueError("threshold must be between 0 and 100")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.strategies = list(strategies)
        self.threshold = threshold
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "PlayerResolver":
        strategies = [
            GeminiPlayerMatcher(
                api_key=key,
                model=settings.gemini_model,
                base_url=settings.gemini_base_url,
                timeout=settings.match_timeout,
                name=f"gemini-{idx}",
            )
            for idx, key in enumerate(settings.gemini_api_keys, start=1)
        ]
        if not strategies:
            logger.warning("No Gemini API keys configured; player names resolve by similarity only")
        return cls(strategies, threshold=settings.match_threshold, timeout=settings.match_timeout)

    # ── direct match ──

    def direct_match(self, roster: Sequence[PlayerRosterEntry], name: str) -> Optional[int]:
        best_score = -1
        best_ids: set[int] = set()
        for entry in roster:
            score = similarity(name, entry.name)
            if score > best_score:
                best_score, best_ids = score, {entry.player_id}
            elif score == best_score:
                best_ids.add(entry.player_id)

        if best_score < self.threshold:
            return None
        if len(best_ids) > 1:
            logger.info("Name %r ties %d roster players at %d; not resolving directly", name, len(best_ids), best_score)
            return None
        return next(iter(best_ids))

    # ── escalation ──

    async def _attempt(self, strategy: MatchStrategy, roster: Sequence[PlayerRosterEntry], name: str) -> MatchAttempt:
        try:
            return await asyncio.wait_for(asyncio.to_thread(strategy.match, roster, name), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs matching %r", getattr(strategy, "name", strategy), self.timeout, name)
            return MatchAttempt(AttemptStatus.FAILED, detail="timeout")

    async def escalate(self, roster: Sequence[PlayerRosterEntry], name: str) -> Optional[int]:
        known = roster_index(roster)
        for strategy in self.strategies:
            attempt = await self._attempt(strategy, roster, name)
            label = getattr(strategy, "name", repr(strategy))
            if attempt.status == AttemptStatus.QUOTA_EXHAUSTED:
                logger.warning("%s quota exhausted; trying next credential", label)
                continue
            if attempt.status == AttemptStatus.MATCHED and attempt.player_id in known:
                logger.info("%s matched %r to player %s", label, name, attempt.player_id)
                return attempt.player_id
            if attempt.status == AttemptStatus.MATCHED:
                logger.warning("%s returned id %s outside the roster", label, attempt.player_id)
            elif attempt.status == AttemptStatus.FAILED:
                logger.error("%s failed matching %r: %s", label, name, attempt.detail)
            return None
        if self.strategies:
            logger.error("All matching credentials exhausted for %r", name)
        return None

    async def resolve(self, roster: Sequence[PlayerRosterEntry], name: Optional[str]) -> Optional[int]:
        if not roster or not name or not normalize_name(name):
            return None
        player_id = self.direct_match(roster, name)
        if player_id is not None:
            return player_id
        return await self.escalate(roster, name)
