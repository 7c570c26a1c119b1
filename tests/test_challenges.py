import asyncio
from datetime import date

from codearena.challenges.models import Challenge
from codearena.challenges.service import ChallengeService
from codearena.transport.envelope import FailureKind

from conftest import ScriptedTransport, json_result


def challenge_payload(**overrides) -> dict:
    challenge = {
        "id": 7,
        "title": "Two Sum",
        "description": "Find two numbers that add up to a target.",
        "difficulty": "easy",
        "tags": ["arrays", "hashing"],
        "points": 10,
        "publish_date": "2024-05-01",
        "is_daily": 1,
        "solved_count": "12",
    }
    challenge.update(overrides)
    return challenge


def test_challenge_normalizes_loose_fields():
    c = Challenge.model_validate(challenge_payload())
    assert c.id == "7"
    assert c.is_daily
    assert c.solved_count == 12
    assert c.publish_date == date(2024, 5, 1)

    c = Challenge.model_validate(challenge_payload(difficulty="Insane", tags="arrays", points=-3,
                                                   publish_date="soon", is_daily=0, solved_count=None))
    assert c.difficulty == "easy"
    assert c.tags == []
    assert c.points == 0
    assert c.publish_date is None
    assert not c.is_daily
    assert c.solved_count == 0


def test_daily_challenge(make_fetcher):
    primary = ScriptedTransport([json_result(200, {
        "success": True, "data": {"challenge": challenge_payload(publish_date="2024-05-01 00:00:00")},
    })])
    svc = ChallengeService(make_fetcher(primary))

    out = asyncio.run(svc.daily())

    assert out.ok
    assert out.value.title == "Two Sum"
    assert out.value.publish_date == date(2024, 5, 1)
    assert primary.calls[0].method == "GET"
    assert primary.calls[0].url.endswith("/api/challenges/daily")


def test_no_daily_challenge_is_an_http_failure(make_fetcher):
    primary = ScriptedTransport([json_result(404, {"success": False,
                                                   "message": "No daily challenge available for today"})])
    svc = ChallengeService(make_fetcher(primary))

    out = asyncio.run(svc.daily())

    assert not out.ok
    assert out.kind == FailureKind.HTTP
    assert out.status == 404
    assert out.message == "No daily challenge available for today"


def test_list_challenges_reads_items_and_pagination(make_fetcher):
    primary = ScriptedTransport([json_result(200, {"success": True, "data": {
        "items": [challenge_payload(id=1), challenge_payload(id=2, difficulty="hard"), "junk"],
        "pagination": {"current_page": 2, "per_page": 12, "total": 14, "total_pages": 2, "has_more": False},
    }})])
    svc = ChallengeService(make_fetcher(primary))

    out = asyncio.run(svc.list_challenges(page=2, difficulty="HARD", search="  graph "))

    assert out.ok
    assert [c.id for c in out.value.items] == ["1", "2"]
    assert out.value.page == 2
    assert out.value.total == 14
    assert out.value.total_pages == 2
    assert primary.calls[0].url.endswith(
        "/api/challenges/list?page=2&per_page=12&difficulty=hard&search=graph")


def test_list_challenges_clamps_page_size_and_skips_unknown_filters(make_fetcher):
    primary = ScriptedTransport([json_result(200, {"success": True, "data": {"items": []}})])
    svc = ChallengeService(make_fetcher(primary))

    out = asyncio.run(svc.list_challenges(page=0, per_page=500, difficulty="all", search=" "))

    assert out.ok
    assert out.value.items == []
    assert out.value.total_pages == 1
    assert primary.calls[0].url.endswith("/api/challenges/list?page=1&per_page=50")


def test_list_without_items_is_a_parse_failure(make_fetcher):
    primary = ScriptedTransport([json_result(200, {"success": True, "data": {"challenge": {}}})])
    svc = ChallengeService(make_fetcher(primary))

    out = asyncio.run(svc.list_challenges())

    assert out.kind == FailureKind.PARSE
