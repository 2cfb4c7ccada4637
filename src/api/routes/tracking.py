"""
Tracking Routes - Newsletter open pixel, click redirect and reader events.

Key behaviors:
- /open always serves the transparent GIF with no-store headers
- /click redirects (302) to any safe http(s) destination, 400 otherwise
- /event accepts page_view / session_end, rejects PII with 400
- Tracking failures never break the reader's page or navigation
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from src.api.deps import (
    get_clock,
    get_dedupe_service,
    get_event_store,
    get_token_service,
    get_tracking_config,
)
from src.components.tokens import TokenService
from src.components.tracking import (
    BEACON_HEADERS,
    GIF_MEDIA_TYPE,
    REDIRECT_HEADERS,
    TRANSPARENT_GIF,
    ClickInput,
    EventStorePort,
    IngestEventInput,
    OpenInput,
    TrackingConfig,
    run_click,
    run_ingest,
    run_open,
)
from src.core.services.analytics_dedupe import DedupeService

router = APIRouter()


# --- Request/Response Models ---


class EventRequest(BaseModel):
    """Reader-side analytics event."""

    event_type: str = Field(..., description="page_view or session_end")
    t: str | None = Field(None, description="Tracking token from the newsletter link")
    session_id: str | None = Field(None, max_length=128)
    newsletter_id: str | None = Field(None, max_length=128)
    article_id: str | None = Field(None, max_length=128)
    time_spent_seconds: float | None = Field(None, description="Session duration (session_end)")

    # Extra fields are validated (and PII rejected) by the component
    model_config = ConfigDict(extra="allow")


class EventResponse(BaseModel):
    """Success response."""

    ok: bool = True
    recorded: bool


# --- Routes ---


@router.get("/open")
def track_open(
    request: Request,
    t: str | None = Query(None, description="Tracking token"),
    tokens: TokenService = Depends(get_token_service),
    store: EventStorePort = Depends(get_event_store),
    dedupe: DedupeService = Depends(get_dedupe_service),
    clock: Any = Depends(get_clock),
) -> Response:
    """Open beacon. Always returns the 1x1 GIF."""
    run_open(
        OpenInput(token=t, user_agent=request.headers.get("user-agent")),
        tokens,
        store,
        dedupe,
        clock,
    )
    return Response(content=TRANSPARENT_GIF, media_type=GIF_MEDIA_TYPE, headers=BEACON_HEADERS)


@router.get("/click")
def track_click(
    request: Request,
    t: str | None = Query(None, description="Tracking token"),
    url: str | None = Query(None, description="Destination URL"),
    tokens: TokenService = Depends(get_token_service),
    store: EventStorePort = Depends(get_event_store),
    dedupe: DedupeService = Depends(get_dedupe_service),
    clock: Any = Depends(get_clock),
) -> RedirectResponse:
    """Click redirect. Logs the click when the token is valid."""
    result = run_click(
        ClickInput(token=t, url=url, user_agent=request.headers.get("user-agent")),
        tokens,
        store,
        dedupe,
        clock,
    )

    if result.redirect_url is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing or unsafe destination URL",
        )

    return RedirectResponse(
        url=result.redirect_url,
        status_code=status.HTTP_302_FOUND,
        headers=REDIRECT_HEADERS,
    )


@router.post(
    "/event",
    response_model=EventResponse,
    responses={400: {"description": "Invalid event or forbidden (PII) fields"}},
)
def track_event(
    request: Request,
    body: EventRequest,
    tokens: TokenService = Depends(get_token_service),
    store: EventStorePort = Depends(get_event_store),
    config: TrackingConfig = Depends(get_tracking_config),
    clock: Any = Depends(get_clock),
) -> EventResponse:
    """Ingest a reader-side page_view or session_end event."""
    inp = IngestEventInput(
        event_type=body.event_type,
        token=body.t,
        session_id=body.session_id,
        newsletter_id=body.newsletter_id,
        article_id=body.article_id,
        time_spent_seconds=body.time_spent_seconds,
        user_agent=request.headers.get("user-agent"),
        extra=dict(body.model_extra or {}),
    )
    result = run_ingest(inp, tokens, store, config, clock)

    if result.errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "ok": False,
                "errors": [
                    {"code": e.code, "message": e.message, "field": e.field_name}
                    for e in result.errors
                ],
            },
        )

    return EventResponse(ok=True, recorded=result.recorded)
