from __future__ import annotations
from typing import Any, Dict, Optional
import copy
import json
import logging
import os
import threading

import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from calendar_summary.errors import AuthorizationError
from calendar_summary.services.auth import Authorizer
from calendar_summary.services.credentials import ClientConfig

log = logging.getLogger(__name__)

class TokenStore:
    """
    Owns the OAuth token for the process.

    The token is loaded (or obtained from the authorizer) once at startup by
    ensure(); request handlers only call credentials(), which refreshes an
    expired token but never prompts and hands out a copy per request. All reads
    and writes of the token happen under self._lock, and the file is replaced
    atomically.
    """

    def __init__(self, path: str, client: ClientConfig, authorizer: Authorizer,
                 token_json: Optional[Dict[str, Any]] = None):
        self.path = path
        self.client = client
        self.authorizer = authorizer
        self.token_json = token_json
        self._creds: Optional[Credentials] = None
        self._saved_token: Optional[str] = None
        self._lock = threading.Lock()

    def load(self) -> Optional[Credentials]:
        info = self.token_json
        if info is None:
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    info = json.load(f)
            except FileNotFoundError:
                return None
            except (OSError, ValueError) as e:
                log.warning("Ignoring unreadable token file %s: %s", self.path, e)
                return None
        if not isinstance(info, dict):
            log.warning("Ignoring token file %s: not a JSON object", self.path)
            return None
        # token files written elsewhere may omit the client identity
        info = {
            "client_id": self.client.client_id,
            "client_secret": self.client.client_secret,
            "token_uri": self.client.token_uri,
            **info,
        }
        try:
            return Credentials.from_authorized_user_info(info, list(self.client.scopes))
        except (ValueError, TypeError) as e:
            log.warning("Ignoring token file %s: %s", self.path, e)
            return None

    def ensure(self) -> Credentials:
        """Load, refresh or obtain a token. Called once before serving."""
        with self._lock:
            creds = self._creds or self.load()
            if creds is not None and creds.valid:
                log.info("Reusing stored token from %s", self.path)
                self._saved_token = creds.token
            elif creds is not None and creds.refresh_token:
                try:
                    self._refresh(creds)
                except AuthorizationError as e:
                    log.warning("%s; starting %s authorization", e, self.authorizer.name)
                    creds = self.authorizer.authorize(self.client)
                self._save(creds)
            else:
                creds = self.authorizer.authorize(self.client)
                self._save(creds)
            self._creds = creds
            return creds

    def credentials(self) -> Credentials:
        """Current credentials for a request; refreshed and persisted if stale."""
        with self._lock:
            creds = self._creds
            if creds is None:
                raise AuthorizationError("Not authorized; the token store was never initialised")
            if not creds.valid:
                if not creds.refresh_token:
                    raise AuthorizationError("Token expired and no refresh token is available")
                self._refresh(creds)
            if creds.token != self._saved_token:
                self._save(creds)
            # the transport refreshes its credentials in place on a 401
            return copy.copy(creds)

    def _refresh(self, creds: Credentials) -> None:
        try:
            creds.refresh(Request())
        except google.auth.exceptions.GoogleAuthError as e:
            raise AuthorizationError(f"Unable to refresh token: {e}") from e
        log.info("Refreshed access token")

    def _save(self, creds: Credentials) -> None:
        log.info("Saving credential file to: %s", self.path)
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = self.path + ".tmp"
        try:
            os.makedirs(directory, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(creds.to_json())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise AuthorizationError(f"Unable to cache oauth token: {e}") from e
        self._saved_token = creds.token
