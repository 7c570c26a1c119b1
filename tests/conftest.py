import asyncio
import json

import pytest
import structlog

from codearena.session.store import SessionStore
from codearena.transport.fetcher import ResilientFetcher
from codearena.transport.types import FetchResult, LazyBody


def json_result(status: int, payload, url: str = "") -> FetchResult:
    return FetchResult(status=status, body=LazyBody(json.dumps(payload).encode("utf-8")), url=url)


def raw_result(status: int, content: bytes, url: str = "") -> FetchResult:
    return FetchResult(status=status, body=LazyBody(content), url=url)


@pytest.fixture(autouse=True)
def reset_structlog():
    # CLI tests bind the logger to a captured stream that is closed afterwards
    yield
    structlog.reset_defaults()


HANG = object()


class ScriptedTransport:
    """Replays a script of results. Exceptions are raised, HANG never returns."""

    def __init__(self, steps=None, default=None):
        self.steps = list(steps or [])
        self.default = default
        self.calls = []

    @property
    def urls(self):
        return [c.url for c in self.calls]

    async def send(self, request):
        self.calls.append(request)
        step = self.steps.pop(0) if self.steps else self.default
        if step is HANG:
            await asyncio.Event().wait()
        if isinstance(step, BaseException):
            raise step
        if step is None:
            raise ConnectionError("no scripted response")
        return step


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_fetcher(sleeper):
    def build(primary=None, secondary=None, base_url="https://arena.test/backend",
              token=None, username=None, timeout_ms=1000):
        return ResilientFetcher(
            base_url,
            SessionStore(token, username),
            primary=primary or ScriptedTransport(),
            secondary=secondary or ScriptedTransport(),
            timeout_ms=timeout_ms,
            sleep=sleeper,
        )

    return build


def battle_payload(**overrides) -> dict:
    battle = {
        "id": "b1",
        "title": "Two Sum Duel",
        "challenge_title": "Two Sum",
        "creator": {"id": 1, "username": "alice", "rating": 1500},
        "opponent": None,
        "invited": None,
        "status": "waiting",
        "duration_minutes": 30,
        "difficulty": "easy",
        "language": "python",
        "created_at": "2024-05-01T10:00:00Z",
        "prize_points": 25,
    }
    battle.update(overrides)
    return battle


def entry_payload(id, points, **overrides) -> dict:
    entry = {
        "id": id,
        "rank": None,
        "username": f"user{id}",
        "fullName": f"User {id}",
        "totalPoints": points,
        "stats": {"challengesSolved": 1, "battlesWon": 0, "avgRating": 0},
    }
    entry.update(overrides)
    return entry
