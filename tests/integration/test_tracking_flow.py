"""
End-to-end journey through the service context:
issue token -> open/click/read -> daily snapshot -> dashboard.
"""

from __future__ import annotations

from src.adapters.clock import FrozenClock
from src.app_shell.context import ServiceContext
from src.components.tracking import (
    ClickInput,
    IngestEventInput,
    OpenInput,
    TrackingConfig,
    run_click,
    run_ingest,
    run_open,
)
from src.core.entities import ArticleSummary

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36"


def test_newsletter_journey(test_ctx: ServiceContext, clock: FrozenClock) -> None:
    ctx = test_ctx
    ctx.article_catalog.save(
        ArticleSummary(id="art-1", newsletter_id="nl-1", title="Lead", display_order=1)
    )
    config = TrackingConfig(max_time_spent_seconds=ctx.rules.tracking.max_time_spent_seconds)

    token = ctx.token_service.generate("sub-1", {"nwl": "nl-1", "art": "art-1"})
    ctx.token_service.store(token, "sub-1")

    opened = run_open(
        OpenInput(token=token, user_agent=BROWSER_UA),
        ctx.token_service,
        ctx.event_store,
        ctx.dedupe_service,
        clock,
    )
    assert opened.recorded is True

    clicked = run_click(
        ClickInput(token=token, url="https://example.com/a", user_agent=BROWSER_UA),
        ctx.token_service,
        ctx.event_store,
        ctx.dedupe_service,
        clock,
    )
    assert clicked.redirect_url == "https://example.com/a"
    assert clicked.recorded is True

    clock.advance(seconds=5)
    for event_type, spent in (("page_view", None), ("session_end", 42.0)):
        result = run_ingest(
            IngestEventInput(
                event_type=event_type,
                token=token,
                article_id="art-1",
                time_spent_seconds=spent,
                user_agent=BROWSER_UA,
            ),
            ctx.token_service,
            ctx.event_store,
            config,
            clock,
        )
        assert result.recorded is True

    day = clock.now_utc().date()
    clock.advance(days=1)
    output = ctx.aggregation_engine.generate_daily_snapshot(day)
    assert output.events_read == 4
    assert output.articles == 1

    [stats] = ctx.aggregation_engine.get_article_stats_with_fallback("nl-1")
    assert (stats.views, stats.clicks, stats.avg_time_spent) == (1, 1, 42)
    assert stats.avg_time_spent_formatted == "42s"

    metrics = ctx.aggregation_engine.get_newsletter_metrics("nl-1", recipient_count=4)
    assert metrics.unique_opens == 1
    assert metrics.open_rate == 25.0
    assert metrics.click_to_open_rate == 100.0


def test_revoked_subject_stops_tracking(test_ctx: ServiceContext, clock: FrozenClock) -> None:
    ctx = test_ctx
    token = ctx.token_service.generate("sub-1", {"nwl": "nl-1"})
    ctx.token_service.store(token, "sub-1")

    assert ctx.token_service.revoke_all_for_subject("sub-1") == 1

    result = run_open(
        OpenInput(token=token), ctx.token_service, ctx.event_store, ctx.dedupe_service, clock
    )
    assert result.recorded is False
    assert ctx.event_store.list_for_newsletter("nl-1") == []


def test_token_expires_after_lifetime(test_ctx: ServiceContext, clock: FrozenClock) -> None:
    token = test_ctx.token_service.generate("sub-1", {"nwl": "nl-1"})

    clock.advance(days=test_ctx.rules.tracking.token_lifetime_days)
    clock.advance(seconds=-1)
    assert test_ctx.token_service.verify(token).valid is True

    clock.advance(seconds=1)
    assert test_ctx.token_service.verify(token).error == "expired"
