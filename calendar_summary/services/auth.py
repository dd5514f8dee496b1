from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict
import logging
import time

import requests
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from calendar_summary.errors import AuthorizationError, ConfigurationError
from calendar_summary.services.credentials import ClientConfig

log = logging.getLogger(__name__)

DEVICE_CODE_URL = "https://oauth2.googleapis.com/device/code"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"

class Authorizer:
    """Obtains a fresh token for a client when no stored one can be used."""

    name = "base"

    def authorize(self, client: ClientConfig) -> Credentials:
        raise NotImplementedError

class InteractiveAuthorizer(Authorizer):
    """Prints the consent URL and reads the pasted authorization code from stdin."""

    name = "interactive"

    def __init__(self, read_code: Callable[[str], str] = input, out: Callable[[str], None] = print):
        self.read_code = read_code
        self.out = out

    def authorize(self, client: ClientConfig) -> Credentials:
        flow = InstalledAppFlow.from_client_config(
            client.as_client_config(), list(client.scopes), redirect_uri=client.redirect_uri
        )
        auth_url, _ = flow.authorization_url(access_type="offline", state="state-token", prompt="consent")
        self.out("Go to the following link in your browser then type the authorization code:\n" + auth_url)

        try:
            code = self.read_code("Authorization code: ").strip()
        except (EOFError, OSError) as e:
            raise AuthorizationError(f"Unable to read authorization code: {e}") from e
        if not code:
            raise AuthorizationError("Unable to read authorization code: empty input")

        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise AuthorizationError(f"Unable to retrieve token from web: {e}") from e
        log.info("Authorization code exchanged for a token")
        return flow.credentials

class PreProvisionedAuthorizer(Authorizer):
    name = "token"

    def authorize(self, client: ClientConfig) -> Credentials:
        raise AuthorizationError(
            "No usable token found; provision one with auth_gcal.py or GOOGLE_TOKEN_B64"
        )

class DeviceCodeAuthorizer(Authorizer):
    """
    OAuth 2.0 device authorization grant.
    The user enters a short code on another device while we poll the token endpoint.
    """

    name = "device"

    def __init__(self,
                 session: requests.Session | None = None,
                 out: Callable[[str], None] = print,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.session = session or requests.Session()
        self.out = out
        self.sleep = sleep
        self.clock = clock

    def _post(self, url: str, data: Dict[str, str]) -> requests.Response:
        try:
            return self.session.post(url, data=data, timeout=30)
        except requests.RequestException as e:
            raise AuthorizationError(f"Device authorization request to {url} failed: {e}") from e

    def authorize(self, client: ClientConfig) -> Credentials:
        resp = self._post(DEVICE_CODE_URL, {"client_id": client.client_id, "scope": " ".join(client.scopes)})
        try:
            resp.raise_for_status()
            grant = resp.json()
            device_code = grant["device_code"]
            user_code = grant["user_code"]
        except (requests.HTTPError, ValueError, KeyError) as e:
            raise AuthorizationError(f"Unable to start device authorization: {e}") from e

        verification_url = grant.get("verification_url") or grant.get("verification_uri")
        self.out(f"Go to {verification_url} and enter the code: {user_code}")

        interval = int(grant.get("interval", 5))
        deadline = self.clock() + int(grant.get("expires_in", 1800))
        while self.clock() < deadline:
            self.sleep(interval)
            resp = self._post(client.token_uri, {
                "client_id": client.client_id,
                "client_secret": client.client_secret,
                "device_code": device_code,
                "grant_type": DEVICE_GRANT_TYPE,
            })
            try:
                payload = resp.json()
            except ValueError as e:
                raise AuthorizationError(f"Token endpoint returned invalid JSON: {e}") from e
            if resp.ok:
                log.info("Device authorization granted")
                return _credentials_from_token_response(client, payload)
            error = payload.get("error")
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                interval += 5
                continue
            raise AuthorizationError(f"Device authorization failed: {error or resp.status_code}")
        raise AuthorizationError("Device code expired before authorization completed")

def _credentials_from_token_response(client: ClientConfig, payload: Dict[str, Any]) -> Credentials:
    if "access_token" not in payload:
        raise AuthorizationError("Token response has no access_token")
    expiry = None
    if payload.get("expires_in"):
        # google-auth compares expiry against naive UTC
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        expiry = now + timedelta(seconds=int(payload["expires_in"]))
    scopes = payload.get("scope", "").split() or list(client.scopes)
    return Credentials(
        token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        token_uri=client.token_uri,
        client_id=client.client_id,
        client_secret=client.client_secret,
        scopes=scopes,
        expiry=expiry,
    )

_AUTHORIZERS = {
    InteractiveAuthorizer.name: InteractiveAuthorizer,
    PreProvisionedAuthorizer.name: PreProvisionedAuthorizer,
    DeviceCodeAuthorizer.name: DeviceCodeAuthorizer,
}

def make_authorizer(mode: str) -> Authorizer:
    try:
        return _AUTHORIZERS[mode]()
    except KeyError:
        raise ConfigurationError(f"Unknown auth mode {mode!r}; expected one of {', '.join(_AUTHORIZERS)}") from None
