"""
Tests for ActivityEvent validation.
"""
import pytest

from gamification.domain.events import ActivityEvent, EventType, validate_points
from gamification.errors import ValidationError


def test_create_valid_event():
    event = ActivityEvent.create("user-1", EventType.LESSON_COMPLETED, {"lessonId": "l-1"}, 10)
    assert event.user_id == "user-1"
    assert event.points == 10
    assert event.metadata == {"lessonId": "l-1"}
    assert event.idempotency_key is None
    assert event.is_known_type


def test_unknown_event_type_is_accepted():
    event = ActivityEvent.create("user-1", "QUIZ_PASSED")
    assert event.points == 0
    assert not event.is_known_type


@pytest.mark.parametrize("user_id", ["", "   ", None])
def test_empty_user_id_rejected(user_id):
    with pytest.raises(ValidationError):
        ActivityEvent.create(user_id, EventType.DAILY_LOGIN)


def test_empty_event_type_rejected():
    with pytest.raises(ValidationError):
        ActivityEvent.create("user-1", "")


@pytest.mark.parametrize("points", [-1, 1.5, "10", True])
def test_bad_points_rejected(points):
    with pytest.raises(ValidationError):
        validate_points(points)


def test_validation_error_is_value_error():
    with pytest.raises(ValueError):
        ActivityEvent.create("user-1", EventType.DAILY_LOGIN, points=-5)


def test_unique_key_in_metadata_becomes_idempotency_key():
    event = ActivityEvent.create("user-1", EventType.SOCIAL_SHARE, {"uniqueKey": "share-9", "network": "x"})
    assert event.idempotency_key == "share-9"
    assert event.metadata == {"network": "x"}


def test_explicit_key_wins_over_metadata():
    event = ActivityEvent.create(
        "user-1", EventType.SOCIAL_SHARE, {"uniqueKey": "share-9"}, idempotency_key="k-1"
    )
    assert event.idempotency_key == "k-1"
    assert event.metadata == {"uniqueKey": "share-9"}


@pytest.mark.parametrize("key", ["auto_reward_1000", "achievement:points_100"])
def test_reserved_idempotency_key_rejected(key):
    with pytest.raises(ValidationError):
        ActivityEvent.create("user-1", EventType.DAILY_LOGIN, points=5, idempotency_key=key)


def test_reserved_key_in_metadata_rejected():
    with pytest.raises(ValidationError):
        ActivityEvent.create("user-1", EventType.DAILY_LOGIN, {"uniqueKey": "auto_reward_5000"})


def test_empty_idempotency_key_rejected():
    with pytest.raises(ValidationError):
        ActivityEvent.create("user-1", EventType.DAILY_LOGIN, idempotency_key="")
