import asyncio
import logging
import random
import threading
import time
import traceback
from typing import Callable, TypeVar, Any, Dict, Optional

from openai import OpenAI
from langchain_google_vertexai import VertexAI

from classes.model_props import parse_model_name, is_openai_model, estimate_cost_usd

T = TypeVar("T")

logger = logging.getLogger("habit_backend")


class MaxRetryErrorsException(Exception):
    pass


# Global backoff state (shared across all clients)
_global_backoff_lock = threading.Lock()
_global_wait_until = 0.0
_global_backoff_seconds = 30.0
_GLOBAL_BACKOFF_MAX = 600.0


def _is_timeout_error(e: Exception) -> bool:
    if isinstance(e, asyncio.TimeoutError):
        return True
    msg = repr(e)
    return "TimeoutError" in msg or "timed out" in msg.lower()


def _is_resource_exhausted_error(e: Exception) -> bool:
    msg = str(e)
    return (
        "429" in msg
        and (
            "RESOURCE_EXHAUSTED" in msg
            or "Resource has been exhausted" in msg
            or "Too Many Requests" in msg
            or "rate_limit" in msg.lower()
        )
    )


def call_with_retries_sync(
    fn: Callable[[], T],
    *,
    retries: int = 3,
    log: Callable[[str], None] | None = None,
) -> T:
    """
    Run a sync LLM call with global 429/timeout backoff + retries.
    """
    last_exception: Exception | None = None

    def _respect_global_backoff() -> None:
        while True:
            with _global_backoff_lock:
                now = time.monotonic()
                wait = _global_wait_until - now
            if wait <= 0:
                return
            time.sleep(min(wait, 1.0))

    def _register_429_and_get_delay() -> float:
        global _global_wait_until, _global_backoff_seconds

        with _global_backoff_lock:
            now = time.monotonic()
            base = _global_backoff_seconds
            delay = random.uniform(base * 0.95, base * 1.35)
            _global_backoff_seconds = min(_global_backoff_seconds * 2, _GLOBAL_BACKOFF_MAX)
            _global_wait_until = max(_global_wait_until, now + delay)
            return delay

    def _reset_backoff_on_success() -> None:
        global _global_backoff_seconds
        _global_backoff_seconds = max(1.0, _global_backoff_seconds * 0.5)

    for attempt in range(retries):
        _respect_global_backoff()
        start_time = time.time()
        try:
            result = fn()
            _reset_backoff_on_success()
            return result
        except Exception as e:
            elapsed = time.time() - start_time
            last_exception = e

            if _is_resource_exhausted_error(e) or _is_timeout_error(e):
                delay = _register_429_and_get_delay()
                msg = f"Attempt {attempt+1} got 429/timeout, backing off ~{delay:.1f}s."
            else:
                msg = f"Attempt {attempt+1} failed."

            if log:
                log(f"{msg} (elapsed={elapsed:.2f}s): {e}\n{traceback.format_exc()}")

    raise MaxRetryErrorsException(f"All {retries} retry attempts failed.") from last_exception


class LlmClient:
    """
    Minimal wrapper for "completion-style" use:

        text = llm.invoke("some prompt", system="...", json_mode=True)

    Under the hood:
    - Vertex (Gemini): VertexAI.invoke(prompt)
    - OpenAI: Responses API (client.responses.create)
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self._timeout = timeout
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.last_usage: Optional[Dict[str, float]] = None
        self._openai_params: Dict[str, Any] = {}

        if self.provider == "vertex":
            vertex_kwargs: Dict[str, Any] = {}
            if temperature is not None:
                vertex_kwargs["temperature"] = temperature
            if max_output_tokens is not None:
                vertex_kwargs["max_output_tokens"] = max_output_tokens
            self._vertex = VertexAI(
                project=vertex_project,
                location=vertex_region,
                model_name=model_name,
                timeout=timeout,
                **vertex_kwargs,
            )
            self._client = None
        else:
            self._vertex = None
            self.model_name, self._openai_params = parse_model_name(self.model_name)
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout

            self._client = OpenAI(**client_kwargs)

    # -----------------------
    # Usage accounting
    # -----------------------

    def _accumulate(self, prompt_tokens: int, completion_tokens: int, total_tokens: int) -> None:
        inc = {
            "prompt_token_count": prompt_tokens,
            "candidates_token_count": completion_tokens,
            "total_token_count": total_tokens,
            "accrued_cost": estimate_cost_usd(self.model_name, prompt_tokens, completion_tokens),
        }
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _merge_openai_usage(self, resp: Any) -> None:
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        self._accumulate(
            int(getattr(usage, "input_tokens", 0) or 0),
            int(getattr(usage, "output_tokens", 0) or 0),
            int(getattr(usage, "total_tokens", 0) or 0),
        )

    def _merge_vertex_usage(self, usage_metadata: Any) -> None:
        if not usage_metadata:
            return

        def get(k: str) -> int:
            if isinstance(usage_metadata, dict):
                return int(usage_metadata.get(k, 0) or 0)
            return int(getattr(usage_metadata, k, 0) or 0)

        self._accumulate(
            get("prompt_token_count"),
            get("candidates_token_count"),
            get("total_token_count"),
        )

    def get_accrued_cost(self) -> float:
        if not self.last_usage:
            return 0.0
        return float(self.last_usage.get("accrued_cost", 0.0))

    # -----------------------
    # Calls
    # -----------------------

    def _invoke_once(self, prompt: str, system: str | None, json_mode: bool) -> str:
        """
        Single HTTP call without retries/backoff.
        """
        if self.provider == "vertex":
            full_prompt = f"{system}\n\n{prompt}" if system else prompt
            resp = self._vertex.invoke(full_prompt)

            # Try to pull usage_metadata from the response if available
            usage_md = getattr(resp, "usage_metadata", None)
            if usage_md is None:
                rm = getattr(resp, "response_metadata", None)
                if isinstance(rm, dict):
                    usage_md = rm.get("usage_metadata")
            self._merge_vertex_usage(usage_md)

            if isinstance(resp, str):
                return resp.strip()
            return str(getattr(resp, "content", resp)).strip()

        params: Dict[str, Any] = dict(self._openai_params)
        if system:
            params["instructions"] = system
        if json_mode:
            params.setdefault("text", {})["format"] = {"type": "json_object"}
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            params["max_output_tokens"] = self.max_output_tokens

        resp = self._client.responses.create(
            model=self.model_name,
            input=prompt,
            **params,
        )
        self._merge_openai_usage(resp)

        text = getattr(resp, "output_text", "") or ""
        return text.strip()

    def invoke(self, prompt: str, *, system: str | None = None, json_mode: bool = False, retries: int = 3) -> str:
        """
        Synchronous call with global 429/timeout backoff + retries.
        """
        return call_with_retries_sync(
            lambda: self._invoke_once(prompt, system, json_mode),
            retries=retries,
            log=lambda msg: logger.warning(f"[LLM-RETRY] {msg}"),
        )
