import os

# In-memory database for everything imported during the test session.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from classes.entities import Base
from classes.google_helpers import create_session_factory


class FakeLlm:
    """Stands in for LlmClient: returns canned responses and records prompts."""

    model_name = "fake-model"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def invoke(self, prompt, *, system=None, json_mode=False, retries=3):
        self.calls.append({"prompt": prompt, "system": system, "json_mode": json_mode})
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    def get_accrued_cost(self):
        return 0.0


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, lines=None, content_type="application/json", text=""):
        self.status_code = status_code
        self._json = json_data
        self._lines = lines or []
        self.headers = {"content-type": content_type}
        self.text = text
        self.closed = False

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        return self._json

    def iter_lines(self, decode_unicode=False):
        yield from self._lines

    def close(self):
        self.closed = True


class RecordingPost:
    """requests.post replacement: records calls and replays one response or raises."""

    def __init__(self, response=None, exc=None):
        self.response = response or FakeResponse()
        self.exc = exc
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)
