import pytest

from classes.profile_service import ProfileService, normalize_phone, parse_multi_value


class StubBackend:
    def __init__(self):
        self.calls = []

    def generate_goal_plan(self, user_id, profile, goal):
        self.calls.append((user_id, profile, goal))
        plan = {"title": "Plan", "goal": goal["primary_goal"], "generatedAt": "2026-01-01T00:00:00+00:00"}
        return {"success": True, "plan": plan}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(555) 123-4567", "+15551234567"),
        ("+44 20 7946 0958", "+442079460958"),
        ("555.123.4567", "+15551234567"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "", "+1234567890123456", None])
def test_normalize_phone_rejects_bad_lengths(raw):
    with pytest.raises(ValueError, match="10-15 digits"):
        normalize_phone(raw)


def test_parse_multi_value():
    assert parse_multi_value("a, b,,c") == ["a", "b", "c"]
    assert parse_multi_value(["x ", " ", "y"]) == ["x", "y"]
    assert parse_multi_value(None) == []


def test_save_phone_creates_profile(session_factory):
    service = ProfileService(session_factory)
    saved = service.save_phone("user-1", "555 123 4567", "Ada")
    assert saved["phone"] == "+15551234567"
    assert saved["name"] == "Ada"
    assert service.get_profile("user-1")["phone"] == "+15551234567"


def test_upsert_profile_rejects_unknown_fields(session_factory):
    service = ProfileService(session_factory)
    with pytest.raises(ValueError, match="Unknown profile field"):
        service.upsert_profile("user-1", favourite_colour="blue")


def test_onboarding_status_tracks_missing_fields(session_factory):
    service = ProfileService(session_factory)
    assert service.onboarding_status("nobody") == {
        "complete": False,
        "missing": ["phone", "primary_goal", "plan_generated_at"],
    }
    service.save_phone("user-1", "5551234567")
    assert service.onboarding_status("user-1")["missing"] == ["primary_goal", "plan_generated_at"]


@pytest.mark.parametrize(
    "profile, goal, message",
    [
        ({}, {"primary_goal": "Run", "goal_duration": 4, "duration_type": "weeks"}, "Phone number is required"),
        ({"phone": "5551234567", "age": 12}, {"primary_goal": "Run", "goal_duration": 4, "duration_type": "weeks"}, "valid age"),
        ({"phone": "5551234567", "age": 30}, {"primary_goal": " ", "goal_duration": 4, "duration_type": "weeks"}, "primary goal"),
        ({"phone": "5551234567", "age": 30}, {"primary_goal": "Run", "goal_duration": 0, "duration_type": "weeks"}, "valid duration"),
        ({"phone": "5551234567", "age": 30}, {"primary_goal": "Run", "goal_duration": 4, "duration_type": "years"}, "duration_type"),
    ],
)
def test_validate_onboarding(session_factory, profile, goal, message):
    with pytest.raises(ValueError, match=message):
        ProfileService(session_factory).validate_onboarding(profile, goal)


def test_complete_onboarding_saves_profile_and_generates_plan(session_factory):
    service = ProfileService(session_factory)
    backend = StubBackend()

    result = service.complete_onboarding(
        "user-1",
        "Ada",
        {
            "phone": "555-123-4567",
            "age": "29",
            "goals": "sleep better, read more",
            "challenges": ["time"],
            "current_habits": "coffee",
            "schedule": "9-5",
        },
        {"primary_goal": "Read 12 books", "goal_duration": "6", "duration_type": "months"},
        backend,
    )

    profile = result["profile"]
    assert profile["phone"] == "+15551234567"
    assert profile["age"] == 29
    assert profile["goals"] == ["sleep better", "read more"]
    assert profile["currenthabits"] == ["coffee"]
    assert profile["primary_goal"] == "Read 12 books"
    assert result["plan"]["goal"] == "Read 12 books"

    user_id, sent_profile, sent_goal = backend.calls[0]
    assert user_id == "user-1"
    assert sent_profile["current_habits"] == ["coffee"]
    assert sent_goal["goal_duration"] == 6
