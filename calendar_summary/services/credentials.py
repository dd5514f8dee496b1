from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple
import json

from calendar_summary.errors import ConfigurationError

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

_REQUIRED_KEYS = ("client_id", "client_secret", "auth_uri", "token_uri")

@dataclass(frozen=True)
class ClientConfig:
    client_type: str
    client_id: str
    client_secret: str
    auth_uri: str
    token_uri: str
    redirect_uris: Tuple[str, ...] = ()
    scopes: Tuple[str, ...] = field(default_factory=lambda: tuple(SCOPES))

    @property
    def redirect_uri(self) -> str | None:
        return self.redirect_uris[0] if self.redirect_uris else None

    def as_client_config(self) -> Dict[str, Any]:
        """Mapping in the shape google_auth_oauthlib's flows expect."""
        return {
            self.client_type: {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
                "redirect_uris": list(self.redirect_uris),
            }
        }

def parse_client_config(data: Any, scopes: List[str] = SCOPES) -> ClientConfig:
    if not isinstance(data, dict):
        raise ConfigurationError("client secret must be a JSON object")
    for client_type in ("installed", "web"):
        if client_type in data:
            section = data[client_type]
            break
    else:
        raise ConfigurationError("client secret has neither an 'installed' nor a 'web' section")
    if not isinstance(section, dict):
        raise ConfigurationError(f"client secret '{client_type}' section must be an object")
    missing = [k for k in _REQUIRED_KEYS if not section.get(k)]
    if missing:
        raise ConfigurationError(f"client secret is missing {', '.join(missing)}")
    return ClientConfig(
        client_type=client_type,
        client_id=section["client_id"],
        client_secret=section["client_secret"],
        auth_uri=section["auth_uri"],
        token_uri=section["token_uri"],
        redirect_uris=tuple(section.get("redirect_uris") or ()),
        scopes=tuple(scopes),
    )

def load_client_config(path: str, client_json: dict | None = None, scopes: List[str] = SCOPES) -> ClientConfig:
    """Load the OAuth client descriptor, preferring inline JSON over the file."""
    if client_json is not None:
        return parse_client_config(client_json, scopes)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Unable to read client secret file {path}: {e}") from e
    except ValueError as e:
        raise ConfigurationError(f"Unable to parse client secret file {path}: {e}") from e
    return parse_client_config(data, scopes)
