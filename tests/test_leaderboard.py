import pytest

from bakeoff.models.models import UserScore
from bakeoff.services.leaderboard import build_leaderboard, calculate_accuracy, rank_entries
from bakeoff.services.picks import submit_picks
from bakeoff.services.scoring_engine import record_episode_result


@pytest.mark.parametrize("sb, elim, episodes, expected", [
    (1, 1, 1, 100),
    (1, 0, 2, 25),
    (2, 1, 2, 75),
    (1, 0, 4, 13),  # 12.5 rounds up
    (0, 0, 3, 0),
    (0, 0, 0, 0),
])
def test_calculate_accuracy(sb, elim, episodes, expected):
    assert calculate_accuracy(sb, elim, episodes) == expected


def test_rank_entries_breaks_ties_by_name_then_id():
    entries = [
        {"player_id": 4, "player_name": "dana", "total_score": 5},
        {"player_id": 2, "player_name": "Bea", "total_score": 5},
        {"player_id": 3, "player_name": "carl", "total_score": 9},
        {"player_id": 1, "player_name": "bea", "total_score": 5},
    ]

    ranked = rank_entries(entries)

    assert [e["player_id"] for e in ranked] == [3, 1, 2, 4]
    assert [e["rank"] for e in ranked] == [1, 2, 3, 4]


async def test_build_leaderboard(db, league):
    a, b, c = league.bakers[:3]
    ep = league.episode
    await submit_picks(db, league.alice.id, league.season.id, "STAR_BAKER", [b.id], ep.id)
    await submit_picks(db, league.bob.id, league.season.id, "STAR_BAKER", [a.id], ep.id)
    await submit_picks(db, league.bob.id, league.season.id, "ELIMINATION", [c.id], ep.id)
    await record_episode_result(db, ep.id, a.id, c.id)

    # Stray admin row from before the admin flag was set
    db.add(UserScore(season_id=league.season.id, player_id=league.admin.id, total_score=100))
    await db.flush()

    entries = await build_leaderboard(db, league.season.id)

    assert [(e["player_name"], e["rank"], e["total_score"]) for e in entries] == [
        ("bob", 1, 5),
        ("Alice", 2, 0),
    ]
    assert entries[0]["accuracy"] == 100
    assert entries[0]["total_episodes_with_picks"] == 1
    assert entries[1]["accuracy"] == 0
    assert entries[1]["total_episodes"] == 1


async def test_empty_leaderboard(db, league):
    assert await build_leaderboard(db, league.season.id) == []
