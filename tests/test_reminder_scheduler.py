from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
import requests
from apscheduler.schedulers.background import BackgroundScheduler

from classes.reminder_scheduler import ReminderScheduler, parse_datetime, to_cron_expression
from conftest import FakeResponse, RecordingPost

UTC = ZoneInfo("UTC")


@pytest.fixture
def post():
    return RecordingPost()


@pytest.fixture
def reminders(post):
    # never started: jobs stay pending so nothing fires on its own
    return ReminderScheduler(scheduler=BackgroundScheduler(timezone=UTC), http_post=post, timezone="UTC")


def _tomorrow():
    return datetime.now(UTC).replace(second=0, microsecond=0) + timedelta(days=1)


def test_to_cron_expression():
    assert to_cron_expression(datetime(2030, 3, 7, 9, 5)) == "5 9 7 3 *"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2030-03-07 09:05", datetime(2030, 3, 7, 9, 5, tzinfo=UTC)),
        ("2030-03-07T09:05", datetime(2030, 3, 7, 9, 5, tzinfo=UTC)),
        ("2030-03-07T09:05:00Z", datetime(2030, 3, 7, 9, 5, tzinfo=UTC)),
        ("2030-03-07T11:05:00+02:00", datetime(2030, 3, 7, 9, 5, tzinfo=UTC)),
    ],
)
def test_parse_datetime(raw, expected):
    assert parse_datetime(raw, UTC) == expected


@pytest.mark.parametrize("raw", ["tomorrow at nine", "", None, "2030-13-40 25:00"])
def test_parse_datetime_rejects_garbage(raw):
    with pytest.raises(ValueError, match="Invalid datetime format"):
        parse_datetime(raw, UTC)


def test_schedule_registers_job(reminders):
    when = _tomorrow()
    entry = reminders.schedule("https://hooks.example/a", when, {"hello": "world"})

    assert entry["key"] == "https://hooks.example/a"
    assert entry["cron"] == to_cron_expression(when)
    assert entry["run_at"] == when.isoformat()
    assert reminders._scheduler.get_job(entry["job_id"]) is not None
    assert reminders.get("https://hooks.example/a")["payload"] == {"hello": "world"}


def test_schedule_same_url_replaces_previous_job(reminders):
    first = reminders.schedule("https://hooks.example/a", _tomorrow(), {"n": 1})
    second = reminders.schedule("https://hooks.example/a", _tomorrow() + timedelta(hours=1), {"n": 2})

    assert reminders._scheduler.get_job(first["job_id"]) is None
    assert reminders._scheduler.get_job(second["job_id"]) is not None
    snapshot = reminders.snapshot()
    assert len(snapshot) == 1
    assert snapshot[0]["payload"] == {"n": 2}


def test_schedule_distinct_keys_coexist(reminders):
    reminders.schedule("https://hooks.example/call", _tomorrow(), {}, key="https://hooks.example/call#u1")
    reminders.schedule("https://hooks.example/call", _tomorrow(), {}, key="https://hooks.example/call#u2")
    assert len(reminders.snapshot()) == 2


def test_schedule_rejects_past_times(reminders):
    with pytest.raises(ValueError, match="must be in the future"):
        reminders.schedule("https://hooks.example/a", datetime.now(UTC) - timedelta(minutes=5), {})
    assert reminders.snapshot() == []


def test_cancel(reminders):
    entry = reminders.schedule("https://hooks.example/a", _tomorrow(), {})
    assert reminders.cancel("https://hooks.example/a") is True
    assert reminders._scheduler.get_job(entry["job_id"]) is None
    assert reminders.cancel("https://hooks.example/a") is False


def test_fire_posts_payload_and_drops_entry(reminders, post):
    entry = reminders.schedule("https://hooks.example/a", _tomorrow(), {"first_message": "hi"})

    assert reminders._fire(entry["key"], entry["job_id"], "https://hooks.example/a", {"first_message": "hi"}) is True

    assert post.calls[0]["url"] == "https://hooks.example/a"
    assert post.calls[0]["json"] == {"first_message": "hi"}
    assert reminders.snapshot() == []


def test_fire_from_replaced_job_keeps_newer_entry(reminders, post):
    old = reminders.schedule("https://hooks.example/a", _tomorrow(), {"n": 1})
    new = reminders.schedule("https://hooks.example/a", _tomorrow(), {"n": 2})

    reminders._fire(old["key"], old["job_id"], "https://hooks.example/a", {"n": 1})

    assert reminders.get("https://hooks.example/a")["job_id"] == new["job_id"]


def test_fire_swallows_webhook_failures():
    failing = ReminderScheduler(
        scheduler=BackgroundScheduler(timezone=UTC),
        http_post=RecordingPost(exc=requests.ConnectionError("down")),
        timezone="UTC",
    )
    assert failing._fire("k", "job", "https://hooks.example/a", {}) is False

    rejected = ReminderScheduler(
        scheduler=BackgroundScheduler(timezone=UTC),
        http_post=RecordingPost(response=FakeResponse(status_code=500)),
        timezone="UTC",
    )
    assert rejected._fire("k", "job", "https://hooks.example/a", {}) is False
