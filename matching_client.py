from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

import requests

from models import PlayerRosterEntry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
NO_MATCH_TOKEN = "NO_MATCH"

_ID_RE = re.compile(r"\d+")
_QUOTA_MARKERS = ("quota", "rate limit", "resource_exhausted")


class AttemptStatus(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    QUOTA_EXHAUSTED = "quota_exhausted"
    FAILED = "failed"


@dataclass(frozen=True)
class MatchAttempt:
    status: AttemptStatus
    player_id: Optional[int] = None
    detail: str = ""


def build_prompt(candidates: Sequence[PlayerRosterEntry], name: str) -> str:
    lines = []
    for idx, p in enumerate(candidates, start=1):
        line = f'{idx}. ID: {p.player_id}, Name: "{p.name}"'
        if p.team:
            line += f", Team: {p.team}"
        lines.append(line)
    players = "\n".join(lines)
    return (
        f'Player name from bet: "{name}"\n\n'
        "This player name might be written differently in the match data, but it is the same player. "
        "Find the matching player from this list:\n\n"
        f"{players}\n\n"
        f'Return ONLY the player ID number if you find a match, or "{NO_MATCH_TOKEN}" if not found.\n\n'
        'Example: If player name is "K. Etta" and list has "Karl Etta" with ID 1234567, return: 1234567'
    )


def parse_reply(text: str, candidates: Sequence[PlayerRosterEntry]) -> MatchAttempt:
    """Read a bare player id out of the model reply; ids outside the list are rejected."""
    reply = (text or "").strip()
    if not reply or NO_MATCH_TOKEN in reply.upper() or "no match" in reply.lower():
        return MatchAttempt(AttemptStatus.NO_MATCH, detail=reply or "empty reply")
    m = _ID_RE.search(reply)
    if m is None:
        return MatchAttempt(AttemptStatus.NO_MATCH, detail=f"No id in reply '{reply}'")
    player_id = int(m.group(0))
    if player_id not in {p.player_id for p in candidates}:
        logger.warning("Matcher returned id %s which is not in the submitted roster", player_id)
        return MatchAttempt(AttemptStatus.NO_MATCH, detail=f"Unknown id {player_id}")
    return MatchAttempt(AttemptStatus.MATCHED, player_id=player_id, detail=reply)


def is_quota_error(status_code: Optional[int], body: Any) -> bool:
    if status_code == 429:
        return True
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        if str(error.get("status") or "").upper() == "RESOURCE_EXHAUSTED" or error.get("code") == 429:
            return True
        message = str(error.get("message") or "").lower()
    else:
        message = str(body or "").lower()
    return any(marker in message for marker in _QUOTA_MARKERS)


class GeminiPlayerMatcher:
    """
    One credential's worth of access to the Gemini generateContent endpoint.

    match() never raises for service trouble: every outcome is folded into a
    MatchAttempt so the resolver can decide whether to move to the next key.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 20,
        name: str = "gemini",
    ) -> None:
        if not api_key:
            raise ValueError("Missing Gemini API key.")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.name = name

    def __repr__(self) -> str:
        return f"GeminiPlayerMatcher(name={self.name!r}, model={self.model!r})"

    def _post(self, prompt: str) -> requests.Response:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        return requests.post(
            url,
            json={"contents": [{"parts": [{"text": prompt}]}]},
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
        )

    @staticmethod
    def _reply_text(payload: Dict[str, Any]) -> str:
        candidates = payload.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise ValueError("Unexpected Gemini response shape: no candidates")
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            raise ValueError("Unexpected Gemini response shape: no content parts")
        return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

    def match(self, candidates: Sequence[PlayerRosterEntry], name: str) -> MatchAttempt:
        if not candidates:
            return MatchAttempt(AttemptStatus.NO_MATCH, detail="empty roster")

        logger.info("Asking %s to match player %r against %d candidates", self.name, name, len(candidates))
        try:
            response = self._post(build_prompt(candidates, name))
        except requests.Timeout:
            return MatchAttempt(AttemptStatus.FAILED, detail=f"{self.name} timed out")
        except requests.RequestException as exc:
            return MatchAttempt(AttemptStatus.FAILED, detail=f"{self.name} request error: {exc}")

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        if response.status_code >= 400 or (isinstance(body, dict) and "error" in body):
            if is_quota_error(response.status_code, body):
                logger.warning("%s quota exhausted (HTTP %s)", self.name, response.status_code)
                return MatchAttempt(AttemptStatus.QUOTA_EXHAUSTED, detail=f"HTTP {response.status_code}")
            return MatchAttempt(AttemptStatus.FAILED, detail=f"{self.name} HTTP {response.status_code}")

        try:
            text = self._reply_text(body if isinstance(body, dict) else {})
        except ValueError as exc:
            return MatchAttempt(AttemptStatus.FAILED, detail=str(exc))

        attempt = parse_reply(text, candidates)
        logger.info("%s replied %r -> %s", self.name, text.strip(), attempt.status.value)
        return attempt
