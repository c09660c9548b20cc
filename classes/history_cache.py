import time
import threading

from langchain_community.chat_message_histories.in_memory import ChatMessageHistory
from langchain_core.messages import HumanMessage, AIMessage


class HistoryCache:
    """
    In-memory, per-user chat history with:
    - sliding TTL (expires ttl_seconds after last touch)
    - approximate token cap (chars/4 heuristic)
    - thread-safe operations
    """

    def __init__(self, ttl_seconds: int, max_tokens: int):
        self.ttl_seconds = ttl_seconds
        self.max_tokens = max_tokens
        self._lock = threading.Lock()
        # user_id -> {"history": ChatMessageHistory, "expires_at": float}
        self._items: dict[str, dict[str, object]] = {}

    def _approx_tokens(self, text: str) -> int:
        return max(1, len(text) // 4)

    def _get_or_create_unlocked(self, user_id: str) -> ChatMessageHistory:
        now = time.time()
        item = self._items.get(user_id)

        if item is not None:
            expires_at = float(item["expires_at"])
            if expires_at > now:
                item["expires_at"] = now + self.ttl_seconds
                return item["history"]  # type: ignore[return-value]
            # expired -> replace
            del self._items[user_id]

        history = ChatMessageHistory()
        self._items[user_id] = {"history": history, "expires_at": now + self.ttl_seconds}
        return history

    def snapshot(self, user_id: str) -> list:
        """
        Returns a COPY of the user's messages as [{"role", "content"}, ...].
        """
        with self._lock:
            history = self._get_or_create_unlocked(str(user_id))
            messages = list(history.messages)
        return [
            {"role": "user" if isinstance(m, HumanMessage) else "assistant", "content": str(m.content)}
            for m in messages
        ]

    def append_turn(self, user_id: str, user_text: str, assistant_text: str) -> None:
        """
        Append user+assistant messages as a single turn and prune to cap.
        """
        with self._lock:
            history = self._get_or_create_unlocked(str(user_id))
            history.add_message(HumanMessage(content=user_text))
            history.add_message(AIMessage(content=assistant_text))
            self._prune_to_token_cap_unlocked(history)

    def clear(self, user_id: str) -> bool:
        with self._lock:
            return self._items.pop(str(user_id), None) is not None

    def _prune_to_token_cap_unlocked(self, history: ChatMessageHistory) -> None:
        msgs = list(history.messages)

        tokens = []
        total = 0
        for m in msgs:
            t = self._approx_tokens(str(getattr(m, "content", "") or ""))
            tokens.append(t)
            total += t

        if total <= self.max_tokens:
            return

        # drop from front until under cap
        i = 0
        while i < len(msgs) and total > self.max_tokens:
            total -= tokens[i]
            i += 1

        history.messages = msgs[i:]

    def sweep_expired(self) -> int:
        """
        Delete expired histories. Returns how many entries were removed.
        """
        now = time.time()
        removed = 0
        with self._lock:
            expired = [k for k, v in self._items.items() if float(v["expires_at"]) <= now]
            for k in expired:
                del self._items[k]
                removed += 1
        return removed


GLOBAL_CHAT_HISTORY_CACHE = HistoryCache(ttl_seconds=24 * 3600, max_tokens=8000)
