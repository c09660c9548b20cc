# classes/reminder_scheduler.py

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from classes.google_helpers import SCHEDULER_TZ

logger = logging.getLogger("habit_backend")

WEBHOOK_TIMEOUT = 10


def parse_datetime(raw: str, tz: ZoneInfo) -> datetime:
    """
    Accepts 'YYYY-MM-DD HH:mm', the browser's 'YYYY-MM-DDTHH:mm' and full ISO-8601.
    Naive values are read as wall-clock time in `tz`.
    """
    if not raw or not isinstance(raw, str):
        raise ValueError("Invalid datetime format. Use YYYY-MM-DD HH:mm")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError("Invalid datetime format. Use YYYY-MM-DD HH:mm") from None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def to_cron_expression(dt: datetime) -> str:
    # minute hour day month day-of-week
    return f"{dt.minute} {dt.hour} {dt.day} {dt.month} *"


class ReminderScheduler:
    """
    Process-local reminder registry on top of an APScheduler BackgroundScheduler.

    - One job per key (the webhook URL by default); scheduling again replaces it.
    - Each job fires once, POSTs its payload and removes itself.
    - Nothing is persisted: a restart forgets every pending reminder.
    """

    def __init__(
        self,
        scheduler: Optional[BackgroundScheduler] = None,
        http_post: Optional[Callable[..., Any]] = None,
        timezone: str = SCHEDULER_TZ,
    ) -> None:
        self.tz = ZoneInfo(timezone)
        self._scheduler = scheduler or BackgroundScheduler(timezone=self.tz)
        self._post = http_post or requests.post
        self._lock = threading.Lock()
        # key -> {"job_id", "webhook_url", "cron", "run_at", "payload"}
        self._jobs: Dict[str, Dict[str, Any]] = {}

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("ReminderScheduler started (tz=%s)", self.tz.key)

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def parse(self, raw: str) -> datetime:
        return parse_datetime(raw, self.tz)

    def schedule(self, webhook_url: str, when: datetime, payload: Dict[str, Any], key: Optional[str] = None) -> Dict[str, Any]:
        if not webhook_url:
            raise ValueError("Webhook URL and datetime are required")
        if when.tzinfo is None:
            when = when.replace(tzinfo=self.tz)
        when = when.astimezone(self.tz).replace(second=0, microsecond=0)
        if when <= datetime.now(self.tz).replace(second=0, microsecond=0):
            raise ValueError("Reminder time must be in the future")

        key = key or webhook_url
        job_id = f"reminder_{uuid4().hex}"
        cron = to_cron_expression(when)
        trigger = CronTrigger(
            year=when.year,
            month=when.month,
            day=when.day,
            hour=when.hour,
            minute=when.minute,
            second=0,
            timezone=self.tz,
        )

        with self._lock:
            previous = self._jobs.pop(key, None)
            if previous is not None:
                self._remove_job(previous["job_id"])
                logger.info("Replaced reminder for %s (was %s)", key, previous["run_at"])

            self._scheduler.add_job(
                self._fire,
                trigger,
                id=job_id,
                args=[key, job_id, webhook_url, payload],
                misfire_grace_time=60,
                coalesce=True,
            )
            entry = {
                "key": key,
                "job_id": job_id,
                "webhook_url": webhook_url,
                "cron": cron,
                "run_at": when.isoformat(),
                "payload": payload,
            }
            self._jobs[key] = entry

        logger.info("Reminder scheduled for %s at %s (cron '%s')", key, entry["run_at"], cron)
        return dict(entry)

    def cancel(self, key: str) -> bool:
        with self._lock:
            entry = self._jobs.pop(key, None)
            if entry is None:
                return False
            self._remove_job(entry["job_id"])
        logger.info("Reminder cancelled for %s", key)
        return True

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(v) for v in self._jobs.values()]

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._jobs.get(key)
            return dict(entry) if entry else None

    def _remove_job(self, job_id: str) -> None:
        if self._scheduler.get_job(job_id) is not None:
            self._scheduler.remove_job(job_id)

    def _fire(self, key: str, job_id: str, webhook_url: str, payload: Dict[str, Any]) -> bool:
        with self._lock:
            current = self._jobs.get(key)
            if current is not None and current["job_id"] == job_id:
                del self._jobs[key]

        try:
            resp = self._post(webhook_url, json=payload, timeout=WEBHOOK_TIMEOUT)
            resp.raise_for_status()
            logger.info("Webhook triggered for %s: %s", key, webhook_url)
            return True
        except requests.RequestException as e:
            logger.error("Webhook failed for %s: %s", key, e)
            return False


# Global, process-local singleton
REMINDER_SCHEDULER = ReminderScheduler()
