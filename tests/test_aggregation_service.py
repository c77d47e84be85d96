"""
Tests for rolling window aggregation
"""
from datetime import timedelta

from marketplace_trust.db.models import TrustWindow
from marketplace_trust.services.aggregation_service import (
    compute_aggregates,
    is_qualifying_negative,
    negative_rate,
)
from marketplace_trust.services.event_store_service import EventStoreService
from tests.conftest import day

store = EventStoreService(negative_expiry_days=180, neutral_expiry_days=90, dedup_window_hours=24)


def event(event_type, occurred_at, role="requester", counterpart_id=None, now=None):
    return store.build_event(
        actor_id="actor_1",
        role=role,
        event_type=event_type,
        counterpart_id=counterpart_id,
        occurred_at=occurred_at,
        now=now or occurred_at,
    )


def test_windows_count_by_occurrence_time():
    events = [
        event("no-show", day(0), counterpart_id="f1"),
        event("no-show", day(70), counterpart_id="f2"),
        event("late-cancellation", day(95), counterpart_id="f2"),
        event("job-completed", day(96)),
    ]
    agg = compute_aggregates(events, day(100))

    assert agg.window(TrustWindow.DAYS_30).negative_count == 1
    assert agg.window(TrustWindow.DAYS_90).negative_count == 2
    assert agg.window(TrustWindow.DAYS_180).negative_count == 3
    assert agg.window(TrustWindow.LIFETIME).negative_count == 3
    assert agg.window(TrustWindow.DAYS_30).completed_count == 1
    assert agg.window(TrustWindow.DAYS_180).unique_counterparts == 2
    assert agg.last_negative_at == day(95)
    assert agg.last_completed_at == day(96)


def test_window_lower_bound_is_exclusive():
    events = [event("no-show", day(0))]

    assert agg_count(events, TrustWindow.DAYS_90, day(90)) == 0
    assert agg_count(events, TrustWindow.DAYS_90, day(90) - timedelta(seconds=1)) == 1


def agg_count(events, window, now):
    return compute_aggregates(events, now).window(window).negative_count


def test_expired_negative_leaves_windows_but_stays_in_lifetime():
    events = [event("no-show", day(0), counterpart_id="f1")]

    at_179 = compute_aggregates(events, day(179))
    assert at_179.window(TrustWindow.DAYS_180).negative_count == 1

    at_181 = compute_aggregates(events, day(181))
    assert at_181.window(TrustWindow.DAYS_180).negative_count == 0
    assert at_181.window(TrustWindow.DAYS_180).unique_counterparts == 0
    assert at_181.window(TrustWindow.LIFETIME).negative_count == 1


def test_expired_event_is_not_qualifying():
    e = event("no-show", day(0))

    assert is_qualifying_negative(e, day(10))
    assert not is_qualifying_negative(e, day(180))
    assert not is_qualifying_negative(event("job-completed", day(0)), day(1))


def test_neutral_events_count_separately_and_expire_after_90_days():
    events = [event("reschedule-requested", day(0)), event("no-show", day(1))]

    agg = compute_aggregates(events, day(10))
    assert agg.window(TrustWindow.DAYS_30).neutral_count == 1
    assert agg.window(TrustWindow.DAYS_30).negative_rate == 1.0

    later = compute_aggregates(events, day(91))
    assert later.window(TrustWindow.DAYS_180).neutral_count == 0
    assert later.window(TrustWindow.LIFETIME).neutral_count == 1


def test_support_credit_is_positive_but_not_a_completion():
    events = [event("support-credit", day(0)), event("no-show", day(1))]
    agg = compute_aggregates(events, day(2)).window(TrustWindow.DAYS_30)

    assert agg.positive_count == 1
    assert agg.completed_count == 0
    assert agg.negative_rate == 1.0


def test_negative_rate():
    assert negative_rate(0, 0) == 0.0
    assert negative_rate(1, 3) == 0.25
    assert negative_rate(2, 0) == 1.0


def test_empty_ledger():
    agg = compute_aggregates([], day(0))

    for window in TrustWindow:
        assert agg.window(window).negative_count == 0
        assert agg.window(window).negative_rate == 0.0
    assert agg.last_negative_at is None


def test_aggregation_is_deterministic():
    events = [
        event("no-show", day(3), counterpart_id="a"),
        event("job-completed", day(4)),
        event("dispute-dismissed", day(5)),
    ]

    assert compute_aggregates(events, day(20)) == compute_aggregates(list(reversed(events)), day(20))


def test_record_fields_cover_score_columns():
    fields = compute_aggregates([event("no-show", day(0))], day(1)).to_record_fields()

    assert fields["negative_count_30d"] == 1
    assert fields["negative_rate_lifetime"] == 1.0
    assert "unique_counterparts_180d" in fields
    assert "unique_counterparts_lifetime" not in fields
