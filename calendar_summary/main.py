from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from calendar_summary.errors import (
    AuthorizationError,
    CalendarSummaryError,
    ProviderError,
)
from calendar_summary.services.aggregator import summarize_calendars
from calendar_summary.services.gcal import build_service

log = logging.getLogger(__name__)


class UTF8JSONResponse(JSONResponse):
    media_type = "application/json; charset=UTF-8"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # server.main authorizes and attaches the token store before listening
    if getattr(app.state, "token_store", None) is None:
        log.warning("No token store attached; /calendar will answer 503")
    yield
    log.info("Application shutdown complete")


app = FastAPI(
    title="Calendar Summary",
    lifespan=lifespan,
)


def _http_error(exc: CalendarSummaryError) -> HTTPException:
    if isinstance(exc, AuthorizationError):
        status = 503
    elif isinstance(exc, ProviderError):
        status = 502
    else:
        status = 500
    log.error("GET /calendar failed: %s", exc, exc_info=exc)
    return HTTPException(status_code=status, detail=str(exc))


def get_calendar_service(request: Request):
    """Authenticated Calendar API service for this request."""
    store = getattr(request.app.state, "token_store", None)
    try:
        if store is None:
            raise AuthorizationError("Server started without a token store")
        return build_service(store.credentials())
    except CalendarSummaryError as e:
        raise _http_error(e)


@app.get("/")
async def say_hello():
    return Response(content="Hello!")


@app.get("/calendar")
def calendar_summary(request: Request, service=Depends(get_calendar_service)):
    cfg = getattr(request.app.state, "config", None)
    try:
        events = summarize_calendars(
            service,
            tz=cfg.tz if cfg else "UTC",
            max_calendars=cfg.max_calendars if cfg else 20,
        )
    except CalendarSummaryError as e:
        raise _http_error(e)
    return UTF8JSONResponse([e.to_dict() for e in events])
