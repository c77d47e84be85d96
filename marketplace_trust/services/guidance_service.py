"""
Guidance & Eligibility Service

Read-only view over the last committed TrustScoreRecord, used by the
job-posting (requester) and job-acceptance (fulfiller) flows. One indexed
read per call, no aggregation, no recalculation.

Trust state is only ever returned for the actor it belongs to; callers
must not surface it to the counterpart.
"""
import logging
from typing import Dict, Any, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_

from marketplace_trust.db.models import ActorRole, TrustScoreRecord
from marketplace_trust.policy import TrustPolicy, get_policy
from marketplace_trust.services.event_store_service import parse_role

logger = logging.getLogger(__name__)

LEVEL_LABELS = {
    ActorRole.REQUESTER: {0: "Normal", 1: "Soft Warning", 2: "Reliability Risk", 3: "High Risk"},
    ActorRole.FULFILLER: {0: "Good Standing", 1: "Advisory", 2: "Reliability Risk", 3: "High Risk"},
}

LEVEL_STATUS = {0: "good", 1: "advisory", 2: "warning", 3: "risk"}

LEVEL_DESCRIPTIONS = {
    ActorRole.REQUESTER: {
        0: "You have excellent reliability. Keep up the great work!",
        1: "Recent no-shows detected. Please ensure you can attend before booking.",
        2: "Multiple no-shows affect your ability to post jobs. A no-show fee is required for new postings.",
        3: "Reliability score requires attention. Please contact support for assistance.",
    },
    ActorRole.FULFILLER: {
        0: "You have excellent reliability. Keep up the great work!",
        1: "A pattern is emerging. Please review job commitments carefully.",
        2: "Repeated reliability issues detected. Only accept jobs you can definitely complete.",
        3: "Reliability score requires immediate attention. Please contact support for guidance.",
    },
}

# {remaining} is filled with the completions still needed for recovery
IMPROVEMENT_TIPS = {
    ActorRole.REQUESTER: {
        0: [
            "You have excellent reliability! Keep it up.",
            "Complete jobs as scheduled to maintain your standing.",
        ],
        1: [
            "Recent no-shows detected. Ensure you can attend before booking.",
            "If plans change, cancel at least 24 hours in advance.",
            "Complete {remaining} more jobs to improve your standing.",
        ],
        2: [
            "Multiple no-shows detected. This affects your ability to post jobs.",
            "You must add a no-show fee to new job postings.",
            "Complete {remaining} consecutive jobs to reduce restrictions.",
            "Contact support if you have questions.",
        ],
        3: [
            "Your reliability score requires attention.",
            "Time-sensitive job posting is currently limited.",
            "Complete {remaining} consecutive jobs to improve.",
            "Your account may be reviewed by our trust & safety team.",
            "Contact support for assistance.",
        ],
    },
    ActorRole.FULFILLER: {
        0: [
            "You have excellent reliability! Keep up the great work.",
            "Continue arriving on time and completing jobs successfully.",
        ],
        1: [
            "A pattern is emerging. Please review job commitments carefully.",
            "Arrive on time and communicate any delays immediately.",
            "Complete {remaining} more jobs successfully to improve your standing.",
        ],
        2: [
            "Repeated reliability issues detected.",
            "Only accept jobs you can definitely complete.",
            "Communicate proactively with customers about any issues.",
            "Complete {remaining} consecutive jobs to reduce restrictions.",
            "Contact support if you need assistance.",
        ],
        3: [
            "Your reliability score requires immediate attention.",
            "Access to high-urgency jobs is currently limited.",
            "Complete {remaining} consecutive jobs to improve.",
            "Your account may be reviewed by our trust & safety team.",
            "Contact support for guidance.",
        ],
    },
}

ELIGIBILITY_WARNINGS = {
    ActorRole.REQUESTER: {
        1: ["Recent no-shows detected. Please ensure availability before booking."],
        2: ["Multiple no-shows detected. A no-show fee is required for new job postings."],
        3: [
            "Reliability concerns detected. Additional confirmation required.",
            "Time-sensitive job posting may be limited.",
        ],
    },
    ActorRole.FULFILLER: {
        1: ["Please review job requirements carefully before accepting."],
        2: ["Reliability concerns detected. Please confirm you can complete this job."],
        3: ["Your account has reliability restrictions."],
    },
}

URGENCY_LEVELS = ("low", "medium", "high")


def get_restrictions(trust_level: int, role) -> Dict[str, bool]:
    """What a level restricts for a role; never blocks posting or accepting outright"""
    actor_role = parse_role(role)
    if actor_role == ActorRole.REQUESTER:
        return {
            "requires_no_show_fee": trust_level >= 2,
            "requires_confirmation": trust_level >= 3,
            "limits_urgent_actions": trust_level >= 3,
            "shows_warning": trust_level >= 1,
        }
    return {
        "requires_no_show_fee": False,
        "requires_confirmation": trust_level >= 2,
        "limits_urgent_actions": trust_level >= 3,
        "shows_warning": trust_level >= 1,
    }


class GuidanceService:

    def __init__(self, policy: Optional[TrustPolicy] = None):
        self._policy = policy

    @property
    def policy(self) -> TrustPolicy:
        return self._policy or get_policy()

    def get_record(
        self,
        db: Session,
        actor_id: str,
        role: ActorRole
    ) -> Optional[TrustScoreRecord]:
        return db.query(TrustScoreRecord).filter(
            and_(
                TrustScoreRecord.actor_id == actor_id,
                TrustScoreRecord.role == role.value
            )
        ).first()

    def get_guidance(
        self,
        db: Session,
        actor_id: str,
        role
    ) -> Dict[str, Any]:
        """
        Human-readable trust status for the actor's own dashboard.

        Returns:
            {
                "actor_id", "role",
                "level": 0-3,
                "status_label": "Soft Warning",
                "status": "advisory",
                "description": "...",
                "key_metrics": {...},
                "improvement_tips": [...],
                "recovery_progress": {...}
            }
        """
        actor_role = parse_role(role)
        record = self.get_record(db, actor_id, actor_role)

        level = record.trust_level if record else 0
        streak = record.consecutive_completed_since_last_negative if record else 0
        required = self.policy.for_role(actor_role).recovery_streak
        remaining = max(required - streak, 0)

        return {
            "actor_id": actor_id,
            "role": actor_role.value,
            "level": level,
            "status_label": LEVEL_LABELS[actor_role][level],
            "status": LEVEL_STATUS[level],
            "description": LEVEL_DESCRIPTIONS[actor_role][level],
            "key_metrics": self._key_metrics(record),
            "improvement_tips": [
                tip.format(remaining=remaining) for tip in IMPROVEMENT_TIPS[actor_role][level]
            ],
            "recovery_progress": self._recovery_progress(level, streak, required),
        }

    def check_eligibility(
        self,
        db: Session,
        actor_id: str,
        role,
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Decide whether a job post (requester) or job acceptance (fulfiller)
        may proceed.

        Only the restricted action fails closed: a level-3 fulfiller is
        ineligible for high-urgency jobs and nothing else.

        Args:
            context:
                - urgency: 'low', 'medium', 'high'
                - action: free-form name of the calling flow (logged only)
        """
        actor_role = parse_role(role)
        context = context or {}
        urgency = context.get("urgency")

        record = self.get_record(db, actor_id, actor_role)
        level = record.trust_level if record else 0
        restrictions = get_restrictions(level, actor_role)

        eligible = True
        warnings: List[str] = list(ELIGIBILITY_WARNINGS[actor_role].get(level, []))

        if actor_role == ActorRole.FULFILLER and level >= 3:
            if urgency == "high":
                eligible = False
                warnings.append("High-urgency jobs are currently limited for your account.")
            else:
                warnings.append("Please contact support for assistance.")

        if not eligible:
            logger.info(
                f"Eligibility denied for {actor_id}/{actor_role.value} "
                f"(level {level}, action={context.get('action')}, urgency={urgency})"
            )

        return {
            "actor_id": actor_id,
            "role": actor_role.value,
            "trust_level": level,
            "eligible": eligible,
            "requires_fee": restrictions["requires_no_show_fee"],
            "requires_confirmation": restrictions["requires_confirmation"],
            "limits_urgent_actions": restrictions["limits_urgent_actions"],
            "warnings": warnings,
        }

    def _key_metrics(self, record: Optional[TrustScoreRecord]) -> Dict[str, Any]:
        if record is None:
            return {
                "negative_count_90d": 0,
                "negative_count_180d": 0,
                "completed_count_90d": 0,
                "negative_rate_90d": 0.0,
                "unique_counterparts_180d": 0,
                "consecutive_completed": 0,
                "last_negative_at": None,
            }
        return {
            "negative_count_90d": record.negative_count_90d,
            "negative_count_180d": record.negative_count_180d,
            "completed_count_90d": record.completed_count_90d,
            "negative_rate_90d": round(record.negative_rate_90d, 4),
            "unique_counterparts_180d": record.unique_counterparts_180d,
            "consecutive_completed": record.consecutive_completed_since_last_negative,
            "last_negative_at": record.last_negative_at,
        }

    def _recovery_progress(self, level: int, streak: int, required: int) -> Dict[str, Any]:
        if level == 0:
            return {
                "eligible_for_improvement": False,
                "completed": min(streak, required),
                "required": required,
                "message": "You are in good standing. No recovery needed.",
            }
        remaining = max(required - streak, 0)
        return {
            "eligible_for_improvement": remaining == 0,
            "completed": min(streak, required),
            "required": required,
            "message": (
                f"Complete {remaining} more consecutive jobs to improve your trust level."
                if remaining else "You qualify for trust level improvement!"
            ),
        }


# Singleton instance
guidance_service = GuidanceService()
