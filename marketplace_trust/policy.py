"""
Role thresholds for the level transition engine.

Thresholds are product policy, not engine constants: the engine only ever
reads a TrustPolicy. The built-in defaults can be replaced by pointing
TRUST_POLICY_FILE at a JSON document with the same shape, e.g.

    {
      "requester": {
        "recovery_streak": 5,
        "levels": {
          "1": [{"window": "90d", "min_negative_events": 2}],
          "2": [{"window": "180d", "min_negative_events": 3}],
          "3": [{"window": "180d", "min_negative_events": 5,
                 "min_unique_counterparts": 2}]
        }
      },
      "fulfiller": {...}
    }

A level is reached when ANY of its rules is satisfied. Every rule needs at
least two qualifying negative events, so a single incident can never move
an actor off level 0.
Bands must nest: a policy where some lower-level rule already satisfies a
higher-level rule is rejected on load.
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from marketplace_trust.config import settings
from marketplace_trust.db.models import ActorRole, TrustWindow

logger = logging.getLogger(__name__)

MAX_TRUST_LEVEL = 3
MIN_PATTERN_EVENTS = 2


class LevelRule(BaseModel):
    """One way of reaching a level: count, rate and diversity over a window"""
    window: TrustWindow = TrustWindow.DAYS_90
    min_negative_events: int = Field(MIN_PATTERN_EVENTS, ge=MIN_PATTERN_EVENTS)
    min_negative_rate: Optional[float] = Field(None, ge=0.0, le=1.0)
    min_unique_counterparts: int = Field(0, ge=0)

    @field_validator("window")
    @classmethod
    def window_must_be_bounded(cls, value: TrustWindow) -> TrustWindow:
        # lifetime counts keep expired events for audit; they must not drive levels
        if value == TrustWindow.LIFETIME:
            raise ValueError("level rules must use a 30d, 90d or 180d window")
        return value

    def implies(self, other: "LevelRule") -> bool:
        """True when every aggregate matching this rule also matches other"""
        if self.window.days > other.window.days:
            return False
        if self.min_negative_events < other.min_negative_events:
            return False
        if self.min_unique_counterparts < other.min_unique_counterparts:
            return False
        if other.min_negative_rate is None:
            return True
        # rates over different windows are not comparable
        return (
            self.window == other.window
            and self.min_negative_rate is not None
            and self.min_negative_rate >= other.min_negative_rate
        )


class RolePolicy(BaseModel):
    levels: Dict[int, List[LevelRule]]
    recovery_streak: int = Field(..., ge=1)

    @field_validator("levels")
    @classmethod
    def levels_in_range(cls, value: Dict[int, List[LevelRule]]) -> Dict[int, List[LevelRule]]:
        for level in value:
            if not 1 <= level <= MAX_TRUST_LEVEL:
                raise ValueError(f"level {level} outside 1..{MAX_TRUST_LEVEL}")
        return value

    @model_validator(mode="after")
    def bands_are_nested(self) -> "RolePolicy":
        # a lower rule that already satisfies a higher level leaves its own band unreachable
        for level, rules in self.levels.items():
            for higher in range(level + 1, MAX_TRUST_LEVEL + 1):
                for lower_rule in rules:
                    for higher_rule in self.rules_for(higher):
                        if lower_rule.implies(higher_rule):
                            raise ValueError(
                                f"level {higher} rule {higher_rule.model_dump(mode='json')} is no "
                                f"stricter than level {level} rule {lower_rule.model_dump(mode='json')}"
                            )
        return self

    def rules_for(self, level: int) -> List[LevelRule]:
        return self.levels.get(level, [])


class TrustPolicy(BaseModel):
    requester: RolePolicy
    fulfiller: RolePolicy

    def for_role(self, role: ActorRole) -> RolePolicy:
        if ActorRole(role) == ActorRole.REQUESTER:
            return self.requester
        return self.fulfiller


DEFAULT_POLICY = TrustPolicy(
    requester=RolePolicy(
        recovery_streak=5,
        levels={
            1: [
                LevelRule(window=TrustWindow.DAYS_90, min_negative_events=2),
                LevelRule(window=TrustWindow.DAYS_180, min_negative_events=2, min_negative_rate=0.15),
            ],
            2: [
                LevelRule(window=TrustWindow.DAYS_180, min_negative_events=3),
            ],
            3: [
                LevelRule(window=TrustWindow.DAYS_180, min_negative_events=5, min_unique_counterparts=2),
            ],
        },
    ),
    fulfiller=RolePolicy(
        recovery_streak=10,
        levels={
            1: [
                LevelRule(window=TrustWindow.DAYS_90, min_negative_events=2),
                LevelRule(window=TrustWindow.DAYS_180, min_negative_events=2, min_negative_rate=0.10),
            ],
            2: [
                LevelRule(window=TrustWindow.DAYS_90, min_negative_events=2, min_negative_rate=0.20),
                LevelRule(window=TrustWindow.DAYS_180, min_negative_events=4),
            ],
            3: [
                LevelRule(
                    window=TrustWindow.DAYS_180,
                    min_negative_events=4,
                    min_negative_rate=0.20,
                    min_unique_counterparts=2,
                ),
            ],
        },
    ),
)


def load_policy(path: Optional[str] = None) -> TrustPolicy:
    """Load a policy document, falling back to the built-in defaults"""
    if not path:
        return DEFAULT_POLICY

    policy = TrustPolicy.model_validate_json(Path(path).read_text())
    logger.info(f"Loaded trust policy from {path}")
    return policy


@lru_cache()
def get_policy() -> TrustPolicy:
    """Get cached policy instance"""
    return load_policy(settings.TRUST_POLICY_FILE)
