"""
Engine errors

Validation errors are raised before anything is written. RecalculationConflict
is transient: the caller should retry RecordEvent.
"""


class TrustEngineError(Exception):
    """Base class for all trust engine errors"""


class InvalidEventType(TrustEngineError):
    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown trust event type: {event_type!r}")


class InvalidEventCategory(TrustEngineError):
    def __init__(self, event_type: str, category: str, expected: str = None):
        self.event_type = event_type
        self.category = category
        self.expected = expected
        if expected:
            message = f"Event type {event_type!r} is {expected}, not {category!r}"
        else:
            message = f"Unknown event category: {category!r}"
        super().__init__(message)


class InvalidActor(TrustEngineError):
    def __init__(self, actor_id):
        self.actor_id = actor_id
        super().__init__(f"Missing or invalid actor id: {actor_id!r}")


class InvalidRole(TrustEngineError):
    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Unknown actor role: {role!r}")


class InvalidOccurrenceTime(TrustEngineError):
    """occurred_at is unparseable or lies in the future"""


class RecalculationConflict(TrustEngineError):
    """Optimistic concurrency retries were exhausted for an actor/role record"""

    def __init__(self, actor_id: str, role: str, attempts: int):
        self.actor_id = actor_id
        self.role = role
        self.attempts = attempts
        super().__init__(
            f"Trust score for {actor_id}/{role} changed concurrently "
            f"{attempts} times; retry the event"
        )
