"""
Tests for the append-only event ledger
"""
from datetime import timedelta, timezone

import pytest

from marketplace_trust.db.models import ActorRole, EventCategory
from marketplace_trust.errors import (
    InvalidActor,
    InvalidEventCategory,
    InvalidEventType,
    InvalidOccurrenceTime,
    InvalidRole,
)
from marketplace_trust.services.event_store_service import EventStoreService, parse_role
from tests.conftest import day

store = EventStoreService(negative_expiry_days=180, neutral_expiry_days=90, dedup_window_hours=24)


def build(event_type="no-show", **kwargs):
    kwargs.setdefault("now", day(0))
    return store.build_event(actor_id="actor_1", role="requester", event_type=event_type, **kwargs)


class TestExpiry:

    def test_negative_expires_after_180_days(self):
        assert build("no-show").expires_at == day(180)

    def test_neutral_expires_after_90_days(self):
        assert build("reschedule-requested").expires_at == day(90)

    def test_positive_never_expires(self):
        assert build("job-completed").expires_at is None

    def test_aware_occurrence_is_stored_as_naive_utc(self):
        aware = (day(-1) + timedelta(hours=2)).replace(tzinfo=timezone(timedelta(hours=2)))
        e = build("no-show", occurred_at=aware)

        assert e.occurred_at == day(-1)
        assert e.occurred_at.tzinfo is None

    def test_expiry_follows_backfilled_occurrence(self):
        e = build("no-show", occurred_at=day(-30))

        assert e.occurred_at == day(-30)
        assert e.expires_at == day(150)
        assert e.created_at == day(0)


class TestValidation:

    def test_category_is_derived_from_taxonomy(self):
        e = build("late-cancellation")

        assert e.category == EventCategory.NEGATIVE.value
        assert e.role == ActorRole.REQUESTER.value

    def test_unknown_event_type(self):
        with pytest.raises(InvalidEventType):
            build("rude-message")

    def test_category_must_match_taxonomy(self):
        with pytest.raises(InvalidEventCategory):
            build("no-show", category="positive")

    def test_unknown_category(self):
        with pytest.raises(InvalidEventCategory):
            build("no-show", category="terrible")

    def test_matching_category_is_accepted(self):
        assert build("dispute-dismissed", category="neutral").category == "neutral"

    @pytest.mark.parametrize("actor_id", [None, "", "   "])
    def test_missing_actor_is_rejected(self, actor_id):
        with pytest.raises(InvalidActor):
            store.build_event(actor_id=actor_id, role="requester", event_type="no-show", now=day(0))

    def test_unknown_role(self):
        with pytest.raises(InvalidRole):
            store.build_event(actor_id="actor_1", role="admin", event_type="no-show", now=day(0))

    def test_future_occurrence_is_rejected(self):
        with pytest.raises(InvalidOccurrenceTime):
            build("no-show", occurred_at=day(0) + timedelta(minutes=5))

    def test_parse_role(self):
        assert parse_role("fulfiller") == ActorRole.FULFILLER
        assert parse_role(ActorRole.REQUESTER) == ActorRole.REQUESTER


class TestLedger:

    def test_dedup_inside_window(self, db):
        store.append(db, build("no-show", dedup_key="incident:1"))
        db.commit()

        found = store.find_duplicate(db, "actor_1", ActorRole.REQUESTER, "incident:1", day(0) + timedelta(hours=23))
        assert found is not None
        assert found.dedup_key == "incident:1"

    def test_dedup_window_elapsed(self, db):
        store.append(db, build("no-show", dedup_key="incident:1"))
        db.commit()

        assert store.find_duplicate(db, "actor_1", ActorRole.REQUESTER, "incident:1", day(2)) is None

    def test_dedup_is_partitioned_by_role(self, db):
        store.append(db, build("no-show", dedup_key="incident:1"))
        db.commit()

        assert store.find_duplicate(db, "actor_1", ActorRole.FULFILLER, "incident:1", day(0)) is None

    def test_no_dedup_key_never_matches(self, db):
        store.append(db, build("no-show"))
        db.commit()

        assert store.find_duplicate(db, "actor_1", ActorRole.REQUESTER, None, day(0)) is None

    def test_list_events_oldest_first(self, db):
        store.append(db, build("job-completed", occurred_at=day(-1)))
        store.append(db, build("no-show", occurred_at=day(-5)))
        db.commit()

        events = store.list_events(db, "actor_1", "requester")
        assert [e.event_type for e in events] == ["no-show", "job-completed"]

    def test_recent_events_newest_first_with_expired_flag(self, db):
        store.append(db, build("no-show", occurred_at=day(-400), refs={"job_id": "j1"}))
        store.append(db, build("job-completed", occurred_at=day(-1)))
        db.commit()

        history = store.recent_events(db, "actor_1", "requester", limit=10)
        assert [h["event_type"] for h in history] == ["job-completed", "no-show"]
        assert history[1]["expired"] is True
        assert history[1]["related_refs"] == {"job_id": "j1"}
        assert history[0]["expired"] is False

    def test_recent_events_limit(self, db):
        for n in range(5):
            store.append(db, build("job-completed", occurred_at=day(-n)))
        db.commit()

        assert len(store.recent_events(db, "actor_1", "requester", limit=3)) == 3
