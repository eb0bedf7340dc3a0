"""
Activity event value object and the known event-type catalog.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from gamification.errors import ValidationError

# Legacy producers put the idempotency key into the metadata bag
LEGACY_IDEMPOTENCY_FIELD = "uniqueKey"

# Key prefixes of the engine's own bonus awards (achievement bonuses, milestone rewards)
ACHIEVEMENT_KEY_PREFIX = "achievement:"
AUTO_REWARD_KEY_PREFIX = "auto_reward_"
RESERVED_KEY_PREFIXES = (ACHIEVEMENT_KEY_PREFIX, AUTO_REWARD_KEY_PREFIX)


class EventType:
    LESSON_COMPLETED = "LESSON_COMPLETED"
    EVENT_PARTICIPATED = "EVENT_PARTICIPATED"
    DAILY_LOGIN = "DAILY_LOGIN"
    PROFILE_COMPLETED = "PROFILE_COMPLETED"
    SOCIAL_SHARE = "SOCIAL_SHARE"

    ALL = frozenset({
        LESSON_COMPLETED,
        EVENT_PARTICIPATED,
        DAILY_LOGIN,
        PROFILE_COMPLETED,
        SOCIAL_SHARE,
    })


def validate_points(points: Any) -> int:
    # bool is an int subclass, but True points is a caller bug
    if isinstance(points, bool) or not isinstance(points, int):
        raise ValidationError(f"points must be an integer, got {points!r}")
    if points < 0:
        raise ValidationError(f"points must be >= 0, got {points}")
    return points


def validate_identifier(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value


@dataclass(frozen=True)
class ActivityEvent:
    """
    One user activity submitted for processing.

    Unknown event types are accepted; they only drive points, streak and
    leaderboard updates.
    """
    user_id: str
    event_type: str
    points: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    idempotency_key: Optional[str] = None

    @classmethod
    def create(
        cls,
        user_id: str,
        event_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        points: int = 0,
        idempotency_key: Optional[str] = None,
    ) -> "ActivityEvent":
        """
        Validate input and build the event.

        Raises:
            ValidationError: empty user_id / event_type, negative points,
                an idempotency key with a reserved prefix
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(event_type, "event_type")
        validate_points(points)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be a mapping")

        metadata = dict(metadata or {})
        if idempotency_key is None and metadata.get(LEGACY_IDEMPOTENCY_FIELD):
            idempotency_key = str(metadata.pop(LEGACY_IDEMPOTENCY_FIELD))
        if idempotency_key is not None:
            validate_identifier(idempotency_key, "idempotency_key")
            if idempotency_key.startswith(RESERVED_KEY_PREFIXES):
                raise ValidationError(f"idempotency_key {idempotency_key!r} uses a reserved prefix")

        return cls(
            user_id=user_id,
            event_type=event_type,
            points=points,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    @property
    def is_known_type(self) -> bool:
        return self.event_type in EventType.ALL
