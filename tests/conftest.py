import pytest

from adaptiquiz import config
from adaptiquiz.middleware.rate_limit import limiter, rate_limit_store


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """No real AI calls and a fresh rate limit window for every test"""
    monkeypatch.setattr(config, "OPENAI_API_KEY", None)
    rate_limit_store.clear()
    limiter.reset()
    yield
    rate_limit_store.clear()


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock(1_000_000.0)
