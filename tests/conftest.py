"""
Pytest configuration and shared fixtures.
"""

import json
import sys
from pathlib import Path

import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from calendar_summary.main import app
from calendar_summary.services.credentials import ClientConfig

CONFIG_ENV_VARS = (
    "GOOGLE_OAUTH_CLIENT_FILE",
    "GOOGLE_OAUTH_CLIENT_B64",
    "GOOGLE_TOKEN_FILE",
    "GOOGLE_TOKEN_B64",
    "AUTH_MODE",
    "TIMEZONE",
    "API_HOST",
    "API_PORT",
    "GRACEFUL_TIMEOUT",
    "MAX_CALENDARS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of config tests."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_app_state():
    yield
    app.dependency_overrides.clear()
    for attr in ("token_store", "config"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)


@pytest.fixture
def client_secret():
    """Client secret document as downloaded for a desktop OAuth client."""
    return {
        "installed": {
            "client_id": "1234.apps.googleusercontent.com",
            "client_secret": "s3cr3t",
            "project_id": "calendar-summary",
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }


@pytest.fixture
def client_secret_file(tmp_path, client_secret):
    path = tmp_path / "resources" / "credentials.json"
    path.parent.mkdir()
    path.write_text(json.dumps(client_secret))
    return path


@pytest.fixture
def client_config():
    return ClientConfig(
        client_type="installed",
        client_id="1234.apps.googleusercontent.com",
        client_secret="s3cr3t",
        auth_uri="https://accounts.google.com/o/oauth2/auth",
        token_uri="https://oauth2.googleapis.com/token",
        redirect_uris=("http://localhost",),
    )


@pytest.fixture
def stored_token():
    """Authorized-user token that is valid until 2099."""
    return {
        "token": "stored-token",
        "refresh_token": "stored-refresh",
        "token_uri": "https://oauth2.googleapis.com/token",
        "client_id": "1234.apps.googleusercontent.com",
        "client_secret": "s3cr3t",
        "scopes": ["https://www.googleapis.com/auth/calendar.readonly"],
        "expiry": "2099-01-01T00:00:00Z",
    }


@pytest.fixture
def token_file(tmp_path, stored_token):
    path = tmp_path / "token.json"
    path.write_text(json.dumps(stored_token))
    return path


# =============================================================================
# Fake Calendar API service
# =============================================================================


class _Request:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class _Resource:
    def __init__(self, handler):
        self._handler = handler

    def list(self, **kwargs):
        return _Request(lambda: self._handler(**kwargs))


class FakeCalendarService:
    """
    In-memory stand-in for googleapiclient's calendar v3 service.

    `events` maps calendar id to its events; `pages` maps calendar id to a
    list of result pages when pagination matters.
    """

    def __init__(self, calendars=(), events=None, pages=None, error=None):
        self._calendars = list(calendars)
        self._pages = {cid: [list(items)] for cid, items in (events or {}).items()}
        self._pages.update(pages or {})
        self.error = error
        self.calendar_list_calls = []
        self.event_list_calls = []

    def calendarList(self):
        return _Resource(self._list_calendars)

    def events(self):
        return _Resource(self._list_events)

    def _list_calendars(self, **kwargs):
        self.calendar_list_calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"items": self._calendars}

    def _list_events(self, calendarId, pageToken=None, **kwargs):
        self.event_list_calls.append({"calendarId": calendarId, "pageToken": pageToken, **kwargs})
        pages = self._pages.get(calendarId, [[]])
        index = int(pageToken) if pageToken else 0
        resp = {"items": pages[index]}
        if index + 1 < len(pages):
            resp["nextPageToken"] = str(index + 1)
        return resp


def make_event(summary, start, end, created="2026-10-01T08:00:00.000Z", **extra):
    return {
        "summary": summary,
        "created": created,
        "start": {"dateTime": start},
        "end": {"dateTime": end},
        **extra,
    }


@pytest.fixture
def fake_service():
    return FakeCalendarService


@pytest.fixture
def event():
    return make_event


@pytest.fixture
def two_calendar_service():
    """Work has a 30 minute event, Personal a 15 minute one."""
    return FakeCalendarService(
        calendars=[
            {"id": "work@example.com", "summary": "Work", "accessRole": "owner"},
            {"id": "personal@example.com", "summary": "Personal", "accessRole": "owner"},
        ],
        events={
            "work@example.com": [
                make_event("Standup", "2026-10-05T10:00:00Z", "2026-10-05T10:30:00Z"),
            ],
            "personal@example.com": [
                make_event("Call mom", "2026-10-06T14:00:00+02:00", "2026-10-06T14:15:00+02:00",
                           created="2026-09-30T12:00:00.000Z"),
            ],
        },
    )
