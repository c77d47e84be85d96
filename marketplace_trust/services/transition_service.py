"""
Level Transition Service - 4-state trust level machine per actor/role

Levels: 0 Good/Normal, 1 Advisory, 2 Risk, 3 High Risk. No terminal state.

Each recalculation does exactly one of:
- promote: triggered by a qualifying negative event whose aggregates reach
  a higher band; moves up ONE level even if a higher band qualifies
- recover: the completion streak reaches the role's recovery threshold
  while above level 0; moves down ONE level and restarts the streak
- hold

evaluate() is pure: same (aggregates, prior level, prior streak, event, now)
always gives the same decision.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from marketplace_trust.db.models import ActorRole, EventCategory
from marketplace_trust.policy import (
    LevelRule, RolePolicy, TrustPolicy, MAX_TRUST_LEVEL, MIN_PATTERN_EVENTS, get_policy
)
from marketplace_trust.services.aggregation_service import (
    TrustAggregates, WindowAggregate, is_qualifying_negative
)
from marketplace_trust.services.taxonomy_service import EVENT_TYPES

logger = logging.getLogger(__name__)


class TransitionKind(str, enum.Enum):
    PROMOTED = "promoted"
    RECOVERED = "recovered"
    HELD = "held"


@dataclass(frozen=True)
class TransitionDecision:
    previous_level: int
    new_level: int
    kind: TransitionKind
    band: int
    consecutive_completed: int
    reason: str

    @property
    def changed(self) -> bool:
        return self.new_level != self.previous_level


def rule_matches(rule: LevelRule, aggregate: WindowAggregate) -> bool:
    if aggregate.negative_count < max(rule.min_negative_events, MIN_PATTERN_EVENTS):
        return False
    if rule.min_negative_rate is not None and aggregate.negative_rate < rule.min_negative_rate:
        return False
    return aggregate.unique_counterparts >= rule.min_unique_counterparts


def qualifying_band(aggregates: TrustAggregates, role_policy: RolePolicy) -> int:
    """Highest level whose rules the aggregates satisfy (0 if none)"""
    band = 0
    for level in range(1, MAX_TRUST_LEVEL + 1):
        rules = role_policy.rules_for(level)
        if any(rule_matches(rule, aggregates.window(rule.window)) for rule in rules):
            band = level
    return band


class LevelTransitionService:

    def __init__(self, policy: Optional[TrustPolicy] = None):
        self._policy = policy

    @property
    def policy(self) -> TrustPolicy:
        return self._policy or get_policy()

    def evaluate(
        self,
        role,
        aggregates: TrustAggregates,
        prior_level: int,
        prior_streak: int,
        event,
        now: datetime
    ) -> TransitionDecision:
        """
        Decide the next level after `event` was recorded.

        `aggregates` must already include `event`.
        """
        role_policy = self.policy.for_role(ActorRole(role))
        level = min(max(prior_level or 0, 0), MAX_TRUST_LEVEL)
        streak = prior_streak or 0
        band = qualifying_band(aggregates, role_policy)

        definition = EVENT_TYPES.get(event.event_type)
        advances_recovery = bool(definition and definition.advances_recovery)

        if is_qualifying_negative(event, now):
            if band > level:
                return TransitionDecision(
                    previous_level=level,
                    new_level=level + 1,
                    kind=TransitionKind.PROMOTED,
                    band=band,
                    consecutive_completed=0,
                    reason=f"{event.event_type} pattern reached level {band} thresholds",
                )
            return TransitionDecision(
                previous_level=level,
                new_level=level,
                kind=TransitionKind.HELD,
                band=band,
                consecutive_completed=0,
                reason=f"{event.event_type} recorded; completion streak restarted",
            )

        if advances_recovery and event.category == EventCategory.POSITIVE.value:
            streak += 1
            if level > 0 and streak >= role_policy.recovery_streak:
                return TransitionDecision(
                    previous_level=level,
                    new_level=level - 1,
                    kind=TransitionKind.RECOVERED,
                    band=band,
                    consecutive_completed=0,
                    reason=f"{streak} consecutive completions without a negative event",
                )

        return TransitionDecision(
            previous_level=level,
            new_level=level,
            kind=TransitionKind.HELD,
            band=band,
            consecutive_completed=streak,
            reason="no transition",
        )


# Singleton instance
transition_service = LevelTransitionService()
