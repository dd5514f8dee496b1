from __future__ import annotations
from typing import Any, Dict, List

import google.auth.exceptions
import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import Error as GoogleApiError

from calendar_summary.errors import AuthorizationError, ProviderError

_PROVIDER_ERRORS = (GoogleApiError, httplib2.HttpLib2Error, OSError)

def build_service(creds: Credentials):
    # a new service per request: the httplib2 transport underneath is not thread-safe
    try:
        return build("calendar", "v3", credentials=creds, cache_discovery=False)
    except _PROVIDER_ERRORS as e:
        raise ProviderError(f"Unable to retrieve Calendar client: {e}") from e

def list_owned_calendars(service, max_results: int = 20) -> List[Dict[str, Any]]:
    try:
        resp = service.calendarList().list(minAccessRole="owner", maxResults=max_results).execute()
    except google.auth.exceptions.GoogleAuthError as e:
        raise AuthorizationError(f"Unable to refresh token: {e}") from e
    except _PROVIDER_ERRORS as e:
        raise ProviderError(f"Unable to retrieve users Calendars: {e}") from e
    return resp.get("items", [])

def list_events(service, calendar_id: str, time_min: str, time_max: str) -> List[Dict[str, Any]]:
    """Single occurrences of non-deleted events in [time_min, time_max], by last update."""
    items: List[Dict[str, Any]] = []
    page_token = None
    while True:
        try:
            resp = service.events().list(
                calendarId=calendar_id,
                singleEvents=True,
                showDeleted=False,
                timeMin=time_min,
                timeMax=time_max,
                orderBy="updated",
                pageToken=page_token,
            ).execute()
        except google.auth.exceptions.GoogleAuthError as e:
            raise AuthorizationError(f"Unable to refresh token: {e}") from e
        except _PROVIDER_ERRORS as e:
            raise ProviderError(f"Unable to retrieve events from the Calendar {calendar_id}: {e}") from e
        items.extend(resp.get("items", []))
        page_token = resp.get("nextPageToken")
        if not page_token:
            return items
