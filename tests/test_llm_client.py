from types import SimpleNamespace

import pytest

from classes.llm_client import LlmClient, MaxRetryErrorsException, call_with_retries_sync


class FakeResponses:
    def __init__(self, output_text):
        self.output_text = output_text
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            output_text=self.output_text,
            usage=SimpleNamespace(input_tokens=1000, output_tokens=500, total_tokens=1500),
        )


def test_call_with_retries_sync_recovers_after_failures():
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ValueError("boom")
        return "ok"

    logged = []
    assert call_with_retries_sync(flaky, retries=3, log=logged.append) == "ok"
    assert len(attempts) == 3
    assert len(logged) == 2


def test_call_with_retries_sync_gives_up():
    def always_fails():
        raise ValueError("nope")

    with pytest.raises(MaxRetryErrorsException) as exc_info:
        call_with_retries_sync(always_fails, retries=2)
    assert isinstance(exc_info.value.__cause__, ValueError)


def test_openai_client_uses_responses_api(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    client = LlmClient(
        "gpt-4o-mini",
        vertex_project="p",
        vertex_region="r",
        temperature=0.7,
        max_output_tokens=3000,
    )
    assert client.provider == "openai"

    fake = FakeResponses('  {"phase": 1}  ')
    client._client = SimpleNamespace(responses=fake)

    out = client.invoke("make a plan", system="Always respond with valid JSON.", json_mode=True)

    assert out == '{"phase": 1}'
    call = fake.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["input"] == "make a plan"
    assert call["instructions"] == "Always respond with valid JSON."
    assert call["text"] == {"format": {"type": "json_object"}}
    assert call["temperature"] == 0.7
    assert call["max_output_tokens"] == 3000
    assert client.last_usage["total_token_count"] == 1500
    assert client.get_accrued_cost() > 0


def test_vertex_client_prepends_system_prompt(monkeypatch):
    client = LlmClient.__new__(LlmClient)
    client.provider = "vertex"
    client.model_name = "gemini-2.5-flash-lite"
    client.last_usage = None
    seen = []
    client._vertex = SimpleNamespace(invoke=lambda prompt: seen.append(prompt) or " plan ")

    assert client.invoke("habit?", system="be brief") == "plan"
    assert seen == ["be brief\n\nhabit?"]
    assert client.get_accrued_cost() == 0.0
