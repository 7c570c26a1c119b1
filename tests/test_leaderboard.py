import asyncio

import pytest
from pydantic import ValidationError

from codearena.leaderboard.fetchers import LeaderboardSource
from codearena.leaderboard.models import LeaderboardEntry
from codearena.leaderboard.ranker import (
    LeaderboardQuery,
    aggregate,
    battle_leaders,
    battle_points,
    current_user_entry,
    filter_by_institution,
    institution_representation,
    rank_change,
    sort_entries,
)
from codearena.transport.envelope import FailureKind

from conftest import ScriptedTransport, entry_payload, json_result


def entries(*payloads):
    return [LeaderboardEntry.model_validate(p) for p in payloads]


def test_total_points_falls_back_to_raw_points():
    rows = entries(
        {"id": 1, "rawPoints": 40},
        {"id": 2, "rawPoints": 40, "totalPoints": 55},
        {"id": 3, "totalPoints": -10},
        {"id": 4},
    )
    assert [e.total_points for e in rows] == [40, 55, 0, 0]
    assert rows[0].institution is None
    assert rows[0].stats.challenges_solved == 0


def test_institution_without_name_is_dropped():
    e = LeaderboardEntry.model_validate({"id": 1, "institution": {"logo": "x.png"}})
    assert e.institution is None


def test_stable_sort_keeps_input_order_for_ties():
    rows = entries(entry_payload("a", 100), entry_payload("b", 100), entry_payload("c", 100))

    ranked = aggregate(rows, LeaderboardQuery(sort_by="points", direction="desc"))
    assert [r.entry.id for r in ranked] == ["a", "b", "c"]
    assert [r.display_rank for r in ranked] == [1, 2, 3]

    ranked = aggregate(rows, LeaderboardQuery(sort_by="points", direction="asc"))
    assert [r.entry.id for r in ranked] == ["a", "b", "c"]


def test_sort_directions_and_fields():
    rows = entries(
        entry_payload(1, 10, stats={"battlesWon": 5}),
        entry_payload(2, 30, stats={"battlesWon": 1}),
        entry_payload(3, 20, stats={"battlesWon": 3}),
    )
    assert [e.id for e in sort_entries(rows)] == [2, 3, 1]
    assert [e.id for e in sort_entries(rows, "points", "asc")] == [1, 3, 2]
    assert [e.id for e in sort_entries(rows, "battles", "desc")] == [1, 3, 2]


def test_dbuu_filter_matches_short_name_only():
    rows = entries(
        entry_payload(1, 10, institution={"name": "Dev Bhoomi Uttarakhand University", "shortName": "DBUU"}),
        entry_payload(2, 20, institution={"name": "Somewhere", "shortName": "dbuu"}),
        entry_payload(3, 30, institution={"name": "DBUU Alumni Club"}),
        entry_payload(4, 40),
    )
    assert [e.id for e in filter_by_institution(rows, "dbuu")] == [1, 2]


def test_iit_and_other_filters():
    rows = entries(
        entry_payload(1, 10, institution={"name": "IIT Delhi", "shortName": "IITD"}),
        entry_payload(2, 20, institution={"name": "Graphic Era", "shortName": "GEU"}),
        entry_payload(3, 30),
    )
    assert [e.id for e in filter_by_institution(rows, "iit")] == [1]
    assert [e.id for e in filter_by_institution(rows, "other")] == [3]
    assert [e.id for e in filter_by_institution(rows, "GEU")] == [2]
    assert len(filter_by_institution(rows, "all")) == 3


def test_search_is_case_insensitive_across_name_username_institution():
    rows = entries(
        entry_payload(1, 10, fullName="Asha Rawat"),
        entry_payload(2, 20, username="coder_bob"),
        entry_payload(3, 30, institution={"name": "IIT Delhi"}),
    )
    assert [r.entry.id for r in aggregate(rows, LeaderboardQuery(search="  RAWAT "))] == [1]
    assert [r.entry.id for r in aggregate(rows, LeaderboardQuery(search="Bob"))] == [2]
    assert [r.entry.id for r in aggregate(rows, LeaderboardQuery(search="delhi"))] == [3]


def test_ranks_follow_filtered_order_and_truncate():
    rows = entries(*(entry_payload(i, i * 10) for i in range(1, 8)))
    ranked = aggregate(rows, LeaderboardQuery(page_size=3))
    assert [r.entry.id for r in ranked] == [7, 6, 5]
    assert [r.display_rank for r in ranked] == [1, 2, 3]


def test_query_rejects_unknown_sort():
    with pytest.raises(ValidationError):
        LeaderboardQuery(sort_by="karma")
    with pytest.raises(ValidationError):
        LeaderboardQuery(direction="sideways")
    assert LeaderboardQuery(sort_by="rating", direction="ASC").sort_by == "avgRating"


def test_derived_views():
    rows = entries(
        entry_payload(1, 50, rank=1, previousRank=4, battlePoints=12,
                      institution={"name": "IIT Delhi", "shortName": "IITD"}),
        entry_payload(2, 40, rank=2, previousRank=1, stats={"battlesWon": 2},
                      institution={"name": "IIT Delhi", "shortName": "IITD"}),
        entry_payload(3, 30, rank=3, isCurrentUser=True),
    )
    assert rank_change(rows[0]) == 3
    assert rank_change(rows[1]) == -1
    assert rank_change(rows[2]) is None
    assert battle_points(rows[0]) == 12
    assert battle_points(rows[1]) == 2
    assert [e.id for e in battle_leaders(rows)] == [1, 2]
    assert current_user_entry(rows).id == 3

    rep = institution_representation(rows)
    assert rep["counts"] == {"IITD": 2, "Independent": 1}
    assert rep["top"] == {"key": "IITD", "name": "IIT Delhi", "count": 2}


def test_source_accepts_bare_list_and_passes_params(make_fetcher):
    primary = ScriptedTransport([json_result(200, [entry_payload(1, 10), entry_payload(2, 20)])])
    source = LeaderboardSource(make_fetcher(primary), board_type="weekly", per_page=100)

    out = asyncio.run(source.fetch())

    assert out.ok
    assert [e.id for e in out.value.entries] == [1, 2]
    assert out.value.board_type == "weekly"
    assert primary.calls[0].url.endswith("/api/leaderboard?type=weekly&per_page=100")


def test_source_accepts_items_envelope(make_fetcher):
    primary = ScriptedTransport([json_result(200, {"success": True, "data": {"items": [entry_payload(1, 10)]}})])
    source = LeaderboardSource(make_fetcher(primary))

    rows = asyncio.run(source.entries())

    assert [e.id for e in rows] == [1]
    assert primary.calls[0].url.endswith("/api/leaderboard")


def test_loose_stats_are_coerced_instead_of_failing_the_board(make_fetcher):
    primary = ScriptedTransport([json_result(200, [
        {"id": 1, "totalPoints": 10, "rank": "1", "stats": {"challengesSolved": 2.5, "avgRating": "4.5"}},
        {"id": 2, "totalPoints": 5, "stats": {"battlesWon": "n/a", "currentStreak": "3",
                                              "specializations": ["dp", 7]}},
    ])])
    source = LeaderboardSource(make_fetcher(primary))

    out = asyncio.run(source.fetch())

    assert out.ok
    first, second = out.value.entries
    assert first.rank == 1
    assert first.stats.challenges_solved == 2
    assert first.stats.avg_rating == 4.5
    assert second.stats.battles_won == 0
    assert second.stats.current_streak == 3
    assert second.stats.specializations == ["dp"]


def test_source_failure_yields_none(make_fetcher):
    primary = ScriptedTransport([json_result(503, {"success": False, "message": "maintenance"})])
    source = LeaderboardSource(make_fetcher(primary))

    async def scenario():
        return await source.fetch()

    out = asyncio.run(scenario())
    assert out.kind == FailureKind.HTTP
    assert out.message == "maintenance"

    primary.steps.append(json_result(200, {"success": True, "data": {"unexpected": 1}}))
    assert asyncio.run(source.entries()) is None
