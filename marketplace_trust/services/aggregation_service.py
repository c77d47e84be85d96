"""
Rolling Aggregation Service

Windowed counts, rates and counterpart diversity for one actor/role,
recomputed from the event ledger on every recalculation.

compute_aggregates() is a pure function of (events, now): the same inputs
always produce equal output, so it can be re-run for reconciliation.

Window membership:
- 30d / 90d / 180d: occurred_at in (now - window, now] AND not expired
- lifetime: every event up to now, expired ones included (audit history)
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, Any, Iterable, Optional, Tuple

from marketplace_trust.db.models import EventCategory, TrustWindow
from marketplace_trust.services.event_store_service import event_store_service
from marketplace_trust.services.taxonomy_service import taxonomy_service

logger = logging.getLogger(__name__)

WINDOWS = (TrustWindow.DAYS_30, TrustWindow.DAYS_90, TrustWindow.DAYS_180, TrustWindow.LIFETIME)


@dataclass(frozen=True)
class WindowAggregate:
    window: TrustWindow
    negative_count: int
    completed_count: int
    positive_count: int
    neutral_count: int
    negative_rate: float
    unique_counterparts: int


@dataclass(frozen=True)
class TrustAggregates:
    computed_at: datetime
    windows: Tuple[WindowAggregate, ...]
    last_negative_at: Optional[datetime]
    last_completed_at: Optional[datetime]

    def window(self, window: TrustWindow) -> WindowAggregate:
        for aggregate in self.windows:
            if aggregate.window == window:
                return aggregate
        raise KeyError(window)

    def to_record_fields(self) -> Dict[str, Any]:
        """Column values for TrustScoreRecord"""
        fields: Dict[str, Any] = {}
        for aggregate in self.windows:
            suffix = aggregate.window.value
            fields[f"negative_count_{suffix}"] = aggregate.negative_count
            fields[f"completed_count_{suffix}"] = aggregate.completed_count
            fields[f"neutral_count_{suffix}"] = aggregate.neutral_count
            fields[f"negative_rate_{suffix}"] = aggregate.negative_rate
            if aggregate.window != TrustWindow.LIFETIME:
                fields[f"unique_counterparts_{suffix}"] = aggregate.unique_counterparts
        fields["last_negative_at"] = self.last_negative_at
        fields["last_completed_at"] = self.last_completed_at
        return fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "computed_at": self.computed_at.isoformat(),
            "windows": {
                a.window.value: {k: v for k, v in asdict(a).items() if k != "window"}
                for a in self.windows
            },
            "last_negative_at": self.last_negative_at.isoformat() if self.last_negative_at else None,
            "last_completed_at": self.last_completed_at.isoformat() if self.last_completed_at else None,
        }


def is_expired(event, now: datetime) -> bool:
    return event.expires_at is not None and event.expires_at <= now


def is_qualifying_negative(event, now: datetime) -> bool:
    """Negative, already occurred, and not past its expiry"""
    return (
        event.category == EventCategory.NEGATIVE.value
        and event.occurred_at <= now
        and not is_expired(event, now)
    )


def negative_rate(negative_count: int, completed_count: int) -> float:
    return negative_count / max(1, negative_count + completed_count)


def _in_window(event, window: TrustWindow, now: datetime) -> bool:
    if event.occurred_at > now:
        return False
    if window == TrustWindow.LIFETIME:
        return True
    if is_expired(event, now):
        return False
    return event.occurred_at > now - timedelta(days=window.days)


def _aggregate_window(events, window: TrustWindow, now: datetime) -> WindowAggregate:
    negative = completed = positive = neutral = 0
    counterparts = set()

    for event in events:
        if not _in_window(event, window, now):
            continue
        if event.category == EventCategory.NEGATIVE.value:
            negative += 1
            if event.counterpart_id and not is_expired(event, now):
                counterparts.add(event.counterpart_id)
        elif event.category == EventCategory.POSITIVE.value:
            positive += 1
            if taxonomy_service.is_completion(event.event_type):
                completed += 1
        else:
            neutral += 1

    return WindowAggregate(
        window=window,
        negative_count=negative,
        completed_count=completed,
        positive_count=positive,
        neutral_count=neutral,
        negative_rate=negative_rate(negative, completed),
        unique_counterparts=len(counterparts),
    )


def compute_aggregates(events: Iterable, now: datetime) -> TrustAggregates:
    """
    Compute every window for one actor/role's events.

    `events` must already be partitioned to a single actor and role; any
    object exposing category, event_type, occurred_at, expires_at and
    counterpart_id works (ORM rows or plain records).
    """
    events = list(events)

    last_negative_at = None
    last_completed_at = None
    for event in events:
        if event.occurred_at > now:
            continue
        if event.category == EventCategory.NEGATIVE.value:
            if last_negative_at is None or event.occurred_at > last_negative_at:
                last_negative_at = event.occurred_at
        elif taxonomy_service.is_completion(event.event_type):
            if last_completed_at is None or event.occurred_at > last_completed_at:
                last_completed_at = event.occurred_at

    return TrustAggregates(
        computed_at=now,
        windows=tuple(_aggregate_window(events, window, now) for window in WINDOWS),
        last_negative_at=last_negative_at,
        last_completed_at=last_completed_at,
    )


class AggregationService:
    """Loads an actor/role ledger and aggregates it"""

    def aggregate(self, db, actor_id: str, role, now: datetime) -> TrustAggregates:
        events = event_store_service.list_events(db, actor_id, role)
        return compute_aggregates(events, now)


# Singleton instance
aggregation_service = AggregationService()
