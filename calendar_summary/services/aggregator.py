from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import logging

import pytz
from dateutil import parser as dtparser
from dateutil.relativedelta import relativedelta

from calendar_summary.errors import EventDataError
from calendar_summary.services.gcal import list_events, list_owned_calendars

log = logging.getLogger(__name__)

@dataclass
class SummaryEvent:
    calendar: str
    summary: str
    created: str
    recurring_event: bool
    event_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calendar": self.calendar,
            "summary": self.summary,
            "created": self.created,
            "recurringEvent": self.recurring_event,
            "eventTime": self.event_time,
        }

def trailing_window(now: datetime) -> Tuple[str, str]:
    """One calendar month ending at `now`, as RFC3339 strings."""
    if now.tzinfo is None:
        raise ValueError("trailing_window requires a tz-aware datetime")
    start = now - relativedelta(months=1)
    if hasattr(now.tzinfo, "normalize"):
        # pytz zones keep the old offset after arithmetic
        start = now.tzinfo.normalize(start)
    return start.isoformat(), now.isoformat()

def parse_rfc3339(value: Optional[str]) -> datetime:
    if not value:
        raise EventDataError("Error parsing time from event: missing dateTime")
    try:
        dt = dtparser.isoparse(value)
    except (ValueError, OverflowError) as e:
        raise EventDataError(f"Error parsing time from event, {value!r}: {e}") from e
    if dt.tzinfo is None:
        raise EventDataError(f"Error parsing time from event, {value!r}: no UTC offset")
    return dt

def event_minutes(event: Dict[str, Any]) -> float:
    # all-day events only carry start.date and are rejected here
    start = parse_rfc3339((event.get("start") or {}).get("dateTime"))
    end = parse_rfc3339((event.get("end") or {}).get("dateTime"))
    return (end - start).total_seconds() / 60

def summarize_calendars(service, now: Optional[datetime] = None, tz: str = "UTC",
                        max_calendars: int = 20) -> List[SummaryEvent]:
    """
    Flatten the trailing month of every owned calendar into SummaryEvents.

    Calendars keep the provider's order and events keep their "updated"
    order inside each calendar. Any bad event fails the whole summary.
    """
    if now is None:
        now = datetime.now(pytz.timezone(tz))
    time_min, time_max = trailing_window(now)

    calendars = list_owned_calendars(service, max_results=max_calendars)
    if not calendars:
        log.info("No calendars found")
        return []

    out: List[SummaryEvent] = []
    for cal in calendars:
        events = list_events(service, cal["id"], time_min, time_max)
        log.debug("Calendar %s: %d events", cal.get("summary"), len(events))
        for ev in events:
            out.append(SummaryEvent(
                calendar=cal.get("summary", ""),
                summary=ev.get("summary", ""),
                created=ev.get("created", ""),
                # expanded instances of a series point back at it
                recurring_event="recurringEventId" in ev,
                event_time=event_minutes(ev),
            ))
    log.info("Summarized %d events across %d calendars", len(out), len(calendars))
    return out
