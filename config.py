from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from matching_client import DEFAULT_BASE_URL, DEFAULT_MODEL

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_number(name: str, default: float, cast=float):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    gemini_api_keys: tuple[str, ...] = ()
    gemini_model: str = DEFAULT_MODEL
    gemini_base_url: str = DEFAULT_BASE_URL
    match_timeout: float = 20.0
    match_threshold: int = 90
    push_on_exact_line: bool = True
    market_aliases_file: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        keys = tuple(
            key for key in (
                os.getenv("GEMINI_API_KEY_1", "").strip(),
                os.getenv("GEMINI_API_KEY_2", "").strip(),
            ) if key
        )
        return cls(
            gemini_api_keys=keys,
            gemini_model=os.getenv("GEMINI_MODEL", "").strip() or DEFAULT_MODEL,
            gemini_base_url=os.getenv("GEMINI_BASE_URL", "").strip() or DEFAULT_BASE_URL,
            match_timeout=_env_number("PLAYER_MATCH_TIMEOUT", 20.0),
            match_threshold=_env_number("PLAYER_MATCH_THRESHOLD", 90, int),
            push_on_exact_line=_env_bool("PUSH_ON_EXACT_LINE", True),
            market_aliases_file=os.getenv("MARKET_ALIASES_FILE", "").strip() or None,
            log_level=os.getenv("LOG_LEVEL", "").strip().upper() or "INFO",
        )


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
