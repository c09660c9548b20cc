# classes/agui_relay.py

import json
import logging
import re
from contextlib import closing
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

import requests

from classes.google_helpers import AGENT_TIMEOUT, AGENT_URL
from classes.history_cache import GLOBAL_CHAT_HISTORY_CACHE, HistoryCache

logger = logging.getLogger("habit_backend")

TEXT_FRAME_TYPES = ("content", "agui_content")

# Ordered: first matching widget wins.
WIDGET_PATTERNS = [
    ("habit_plan_form", re.compile(r"\bhabit plan\b|\bplan (a|an|my)\b|\b(create|start|build) a (new )?\w* ?habit\b", re.I)),
    ("timer", re.compile(r"\btimer\b|\bcountdown\b", re.I)),
    ("progress", re.compile(r"\bprogress\b|\bstreak\b", re.I)),
    ("schedule", re.compile(r"\bschedule\b|\broutine\b|\btoday\b", re.I)),
    ("stats", re.compile(r"\banalytics\b|\bstat(s|istics)\b|\binsights?\b", re.I)),
    ("achievement", re.compile(r"\bcongrat\w*|\bachievement\b|\bmilestone\b", re.I)),
    ("actions", re.compile(r"\bwhat can i do\b|\bquick actions?\b|\bright now\b", re.I)),
]


class AgentStreamError(Exception):
    pass


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def format_frame(frame_type: str, content: str = "", **extra) -> str:
    return format_sse({"type": frame_type, "content": content, **extra})


def iter_events(lines: Iterable) -> Iterator[Dict[str, Any]]:
    """
    Yields the JSON payload of every `data: ` line; other lines and
    unparseable payloads are skipped.
    """
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        if not line or not line.startswith("data: "):
            continue
        try:
            event = json.loads(line[6:])
        except ValueError:
            logger.warning(f"Error parsing AGUI frame: {line!r}")
            continue
        if isinstance(event, dict) and "type" in event:
            yield event


def collect_stream(lines: Iterable) -> str:
    accumulated = []
    for event in iter_events(lines):
        frame_type = event.get("type")
        if frame_type in TEXT_FRAME_TYPES:
            accumulated.append(str(event.get("content") or ""))
        elif frame_type == "done":
            break
        elif frame_type == "error":
            raise AgentStreamError(event.get("content") or "Unknown error")
    return "".join(accumulated)


def _canned_widget_data(widget_type: str, message: str) -> Dict[str, Any]:
    today = datetime.now(timezone.utc).date().isoformat()
    if widget_type == "habit_plan_form":
        return {
            "habitName": "",
            "category": "health",
            "frequency": "daily",
            "duration": "15",
            "timeOfDay": "morning",
            "startDate": today,
        }
    if widget_type == "progress":
        return {
            "title": "Habit Progress",
            "currentStreak": 5,
            "goal": 21,
            "progress": 24,
            "lastActivity": "Today",
        }
    if widget_type == "schedule":
        return {
            "title": "Today's Habits",
            "schedule": today,
            "nextReminder": "6:00 PM",
            "tasks": [
                {"name": "Morning stretch", "duration": "10 min"},
                {"name": "Read 10 pages", "duration": "20 min"},
                {"name": "Evening reflection", "duration": "5 min"},
            ],
        }
    if widget_type == "timer":
        kind = "meditation" if re.search(r"meditat", message, re.I) else "focus"
        return {"title": f"{kind.title()} Timer", "duration": 10 if kind == "meditation" else 25, "type": kind}
    if widget_type == "stats":
        return {
            "title": "Habit Analytics",
            "stats": [
                {"label": "Completion Rate", "value": "78%"},
                {"label": "Active Habits", "value": "4"},
                {"label": "Best Streak", "value": "12 days"},
            ],
            "insights": [
                "You are most consistent in the morning.",
                "Pairing a new habit with an existing one raises completion.",
            ],
        }
    if widget_type == "actions":
        return {
            "title": "Quick Actions",
            "actions": [
                {"label": "Log a habit", "action": "log_habit"},
                {"label": "Add a new habit", "action": "add_habit"},
                {"label": "Set a reminder", "action": "set_reminder"},
                {"label": "View my plan", "action": "view_plan"},
            ],
        }
    if widget_type == "achievement":
        return {
            "title": "First Week Complete",
            "description": "You showed up seven days in a row.",
            "icon": "award",
            "rarity": "rare",
            "unlockedAt": today,
        }
    raise ValueError(f"Unknown widget type: {widget_type}")


def select_widget(message: str) -> Optional[Dict[str, Any]]:
    for widget_type, pattern in WIDGET_PATTERNS:
        if pattern.search(message or ""):
            return {"type": widget_type, "data": _canned_widget_data(widget_type, message)}
    return None


class AguiRelay:
    """
    Relays a chat message to the external agent server and re-emits its
    server-sent events, adding at most one canned UI widget per turn.
    """

    def __init__(
        self,
        agent_url: str = AGENT_URL,
        http_post: Optional[Callable[..., Any]] = None,
        history: HistoryCache = GLOBAL_CHAT_HISTORY_CACHE,
        timeout: float = AGENT_TIMEOUT,
    ) -> None:
        self.agent_url = agent_url
        self._post = http_post or requests.post
        self.history = history
        self.timeout = timeout

    def _open_stream(self, message: str, user_id: str) -> Iterator:
        resp = self._post(
            self.agent_url,
            json={"message": message, "user_id": user_id},
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            stream=True,
            timeout=self.timeout,
        )
        try:
            resp.raise_for_status()
            content_type = resp.headers.get("content-type", "")
            if "text/event-stream" in content_type:
                yield from resp.iter_lines(decode_unicode=True)
            else:
                data = resp.json()
                text = data.get("response") or data.get("content") or "No response received"
                yield format_frame("content", text).strip()
                yield format_frame("done").strip()
        finally:
            resp.close()

    def stream(self, message: str, user_id: str = "default_user") -> Iterator[str]:
        accumulated = []
        try:
            with closing(self._open_stream(message, user_id)) as lines:
                for event in iter_events(lines):
                    frame_type = event.get("type")
                    if frame_type in TEXT_FRAME_TYPES:
                        text = str(event.get("content") or "")
                        accumulated.append(text)
                        yield format_frame(frame_type, text)
                    elif frame_type == "agui_ui":
                        yield format_sse(event)
                    elif frame_type == "error":
                        raise AgentStreamError(event.get("content") or "Unknown error")
                    elif frame_type == "done":
                        break
        except (requests.RequestException, AgentStreamError, ValueError) as e:
            logger.error(f"AGUI Error for {user_id}: {e}")
            yield format_frame("error", str(e))
            return

        widget = select_widget(message)
        if widget:
            yield format_frame("agui_ui", "", ui=widget)

        self.history.sweep_expired()
        self.history.append_turn(user_id, message, "".join(accumulated))
        logger.debug(f"AGUI stream completed for {user_id}")
        yield format_frame("done")

    def complete(self, message: str, user_id: str = "default_user") -> Dict[str, Any]:
        with closing(self._open_stream(message, user_id)) as lines:
            text = collect_stream(lines)
        self.history.sweep_expired()
        self.history.append_turn(user_id, message, text)
        return {"response": text, "ui": select_widget(message)}
