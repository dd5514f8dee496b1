from __future__ import annotations


class CalendarSummaryError(Exception):
    """Base class for errors raised while building a calendar summary."""


class ConfigurationError(CalendarSummaryError):
    """Missing or malformed settings, client secrets or flags."""


class AuthorizationError(CalendarSummaryError):
    """No usable OAuth token could be obtained, refreshed or saved."""


class ProviderError(CalendarSummaryError):
    """The Calendar API call failed."""


class EventDataError(CalendarSummaryError):
    """An event returned by the provider could not be summarized."""
