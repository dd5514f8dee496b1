from __future__ import annotations
import os
import re
import base64, json
from dataclasses import dataclass

import pytz

from calendar_summary.errors import ConfigurationError

AUTH_MODES = ("interactive", "token", "device")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

_DURATION_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

def parse_duration(s: str) -> float:
    """Parse a Go-style duration ("15s", "1m30s", "500ms") into seconds."""
    text = s.strip()
    if text == "0":
        return 0.0
    if not text:
        raise ConfigurationError("empty duration")
    pos, total = 0, 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ConfigurationError(f"invalid duration {s!r}")
    return total

def _decode_b64_json(name: str) -> dict | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return json.loads(base64.b64decode(raw))
    except ValueError as e:
        raise ConfigurationError(f"{name} is not base64-encoded JSON: {e}") from e

@dataclass(frozen=True)
class Config:
    oauth_client_file: str
    token_file: str
    oauth_client_json: dict | None
    token_json: dict | None
    auth_mode: str
    tz: str
    host: str
    port: int
    graceful_timeout: float
    idle_timeout: float
    max_calendars: int
    log_level: str

def load_config() -> Config:
    auth_mode = os.getenv("AUTH_MODE", "interactive").lower()
    if auth_mode not in AUTH_MODES:
        raise ConfigurationError(f"AUTH_MODE must be one of {', '.join(AUTH_MODES)}, got {auth_mode!r}")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")
    tz = os.getenv("TIMEZONE", "UTC")
    try:
        pytz.timezone(tz)
    except pytz.UnknownTimeZoneError as e:
        raise ConfigurationError(f"Unknown TIMEZONE {tz!r}") from e
    try:
        port = int(os.getenv("API_PORT", "8080"))
        max_calendars = int(os.getenv("MAX_CALENDARS", "20"))
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    return Config(
        oauth_client_file=os.getenv("GOOGLE_OAUTH_CLIENT_FILE", os.path.join("resources", "credentials.json")),
        token_file=os.getenv("GOOGLE_TOKEN_FILE", "token.json"),
        oauth_client_json=_decode_b64_json("GOOGLE_OAUTH_CLIENT_B64"),
        token_json=_decode_b64_json("GOOGLE_TOKEN_B64"),
        auth_mode=auth_mode,
        tz=tz,
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=port,
        graceful_timeout=parse_duration(os.getenv("GRACEFUL_TIMEOUT", "15s")),
        idle_timeout=60.0,
        max_calendars=max_calendars,
        log_level=log_level,
    )
