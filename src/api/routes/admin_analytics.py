"""
Admin Analytics API.

Dashboard reads, snapshot backfills and tracking token administration.
All routes require an admin bearer token.
"""

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.deps import get_aggregation_engine, get_token_service, require_admin
from src.components.analytics import AggregationEngine, AggregationError
from src.components.tokens import TokenService

router = APIRouter(dependencies=[Depends(require_admin)])


# --- Request/Response Models ---


class SnapshotResponse(BaseModel):
    """Snapshot run response."""

    snapshot_date: str
    events_read: int
    rows_written: int
    articles: int


class ArticleStatsItem(BaseModel):
    """Per-article dashboard row."""

    article_id: str
    title: str
    published_at: datetime | None
    display_order: int
    views: int
    clicks: int
    avg_time_spent: int
    avg_time_spent_formatted: str


class ArticleStatsResponse(BaseModel):
    """Article stats for one newsletter."""

    newsletter_id: str
    items: list[ArticleStatsItem]


class NewsletterMetricsResponse(BaseModel):
    """Newsletter-level engagement summary."""

    newsletter_id: str
    recipient_count: int
    unique_opens: int
    unique_clicks: int
    total_views: int
    open_rate: float
    click_to_open_rate: float
    avg_time_spent: int
    avg_time_spent_formatted: str


class ArticleHotnessItem(BaseModel):
    """How quickly readers reached one article."""

    article_id: str
    title: str
    published_at: datetime
    avg_read_latency_minutes: int
    hotness_score: int
    total_readers: int


class TopicHotnessResponse(BaseModel):
    """Articles of one newsletter ranked by hotness."""

    newsletter_id: str
    items: list[ArticleHotnessItem]


class TrendPointItem(BaseModel):
    """One newsletter in a trend series."""

    newsletter_id: str
    open_rate: float
    click_rate: float


class TrendResponse(BaseModel):
    """Open and click rate series."""

    items: list[TrendPointItem]


class IssueTokenRequest(BaseModel):
    """Token issue request."""

    subject_id: str = Field(..., min_length=1)
    newsletter_id: str = Field(..., min_length=1)
    article_id: str | None = None
    store: bool = True


class IssueTokenResponse(BaseModel):
    """Issued token."""

    token: str
    token_hash: str
    expires_at: int


class RevokeTokenRequest(BaseModel):
    """Token revoke request."""

    token: str = Field(..., min_length=1)


class RevokeTokenResponse(BaseModel):
    """Token revoke result."""

    revoked: bool


class RevokeSubjectResponse(BaseModel):
    """Subject-wide revoke result."""

    subject_id: str
    revoked_count: int


# --- Helper Functions ---


def parse_snapshot_date(value: str) -> date:
    """Parse a YYYY-MM-DD path parameter."""
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid date format: {value}. Expected YYYY-MM-DD",
        ) from e


# --- Routes ---


@router.post("/snapshots/{snapshot_date}", response_model=SnapshotResponse)
def generate_snapshot(
    snapshot_date: str,
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> SnapshotResponse:
    """Run (or re-run) the daily snapshot job for one UTC date."""
    day = parse_snapshot_date(snapshot_date)
    try:
        result = engine.generate_daily_snapshot(day)
    except AggregationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e

    return SnapshotResponse(
        snapshot_date=result.snapshot_date.isoformat(),
        events_read=result.events_read,
        rows_written=result.rows_written,
        articles=result.articles,
    )


@router.get("/newsletters/{newsletter_id}/articles", response_model=ArticleStatsResponse)
def get_article_stats(
    newsletter_id: str,
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> ArticleStatsResponse:
    """Per-article stats; snapshots first, raw events as fallback."""
    stats = engine.get_article_stats_with_fallback(newsletter_id)
    return ArticleStatsResponse(
        newsletter_id=newsletter_id,
        items=[
            ArticleStatsItem(
                article_id=s.article_id,
                title=s.title,
                published_at=s.published_at,
                display_order=s.display_order,
                views=s.views,
                clicks=s.clicks,
                avg_time_spent=s.avg_time_spent,
                avg_time_spent_formatted=s.avg_time_spent_formatted,
            )
            for s in stats
        ],
    )


@router.get("/newsletters/{newsletter_id}/metrics", response_model=NewsletterMetricsResponse)
def get_newsletter_metrics(
    newsletter_id: str,
    recipients: int = Query(0, ge=0, description="Number of recipients the issue was sent to"),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> NewsletterMetricsResponse:
    """Unique opens/clicks, open rate and click-to-open rate."""
    m = engine.get_newsletter_metrics(newsletter_id, recipient_count=recipients)
    return NewsletterMetricsResponse(
        newsletter_id=m.newsletter_id,
        recipient_count=m.recipient_count,
        unique_opens=m.unique_opens,
        unique_clicks=m.unique_clicks,
        total_views=m.total_views,
        open_rate=m.open_rate,
        click_to_open_rate=m.click_to_open_rate,
        avg_time_spent=m.avg_time_spent,
        avg_time_spent_formatted=m.avg_time_spent_formatted,
    )


@router.get("/newsletters/{newsletter_id}/hotness", response_model=TopicHotnessResponse)
def get_topic_hotness(
    newsletter_id: str,
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> TopicHotnessResponse:
    """Articles ranked by average delay between publication and first read."""
    hotness = engine.get_topic_hotness(newsletter_id)
    return TopicHotnessResponse(
        newsletter_id=newsletter_id,
        items=[
            ArticleHotnessItem(
                article_id=h.article_id,
                title=h.title,
                published_at=h.published_at,
                avg_read_latency_minutes=h.avg_read_latency_minutes,
                hotness_score=h.hotness_score,
                total_readers=h.total_readers,
            )
            for h in hotness
        ],
    )


@router.get("/trend", response_model=TrendResponse)
def get_trend(
    newsletter: list[str] = Query(..., description="Newsletter ids, oldest first"),
    recipients: int = Query(0, ge=0, description="Recipients per issue"),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> TrendResponse:
    """Open rate and click-to-open rate per newsletter, in the order requested."""
    points = engine.get_trend_stats(newsletter, recipient_count=recipients)
    return TrendResponse(
        items=[
            TrendPointItem(
                newsletter_id=p.newsletter_id, open_rate=p.open_rate, click_rate=p.click_rate
            )
            for p in points
        ]
    )


@router.post("/tokens", response_model=IssueTokenResponse, status_code=status.HTTP_201_CREATED)
def issue_token(
    body: IssueTokenRequest,
    tokens: TokenService = Depends(get_token_service),
) -> IssueTokenResponse:
    """Mint a tracking token for one recipient and newsletter."""
    payload: dict[str, Any] = {"nwl": body.newsletter_id}
    if body.article_id:
        payload["art"] = body.article_id

    token = tokens.generate(body.subject_id, payload)
    if body.store:
        record = tokens.store(token, body.subject_id)
        expires_at = int(record.expires_at.timestamp())
    else:
        verified = tokens.verify(token)
        expires_at = int((verified.payload or {}).get("exp", 0))

    return IssueTokenResponse(token=token, token_hash=tokens.hash(token), expires_at=expires_at)


@router.post("/tokens/revoke", response_model=RevokeTokenResponse)
def revoke_token(
    body: RevokeTokenRequest,
    tokens: TokenService = Depends(get_token_service),
) -> RevokeTokenResponse:
    """Revoke a single tracking token. Idempotent."""
    return RevokeTokenResponse(revoked=tokens.revoke(body.token))


@router.post("/subjects/{subject_id}/revoke", response_model=RevokeSubjectResponse)
def revoke_subject(
    subject_id: str,
    tokens: TokenService = Depends(get_token_service),
) -> RevokeSubjectResponse:
    """Revoke every stored token of a subject."""
    count = tokens.revoke_all_for_subject(subject_id)
    return RevokeSubjectResponse(subject_id=subject_id, revoked_count=count)
