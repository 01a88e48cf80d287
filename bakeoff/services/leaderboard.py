"""
Leaderboard Projector: ranks a season's players by their UserScore rows.

Ties on total score are broken by display name (case-insensitive), then by
player id, so the order never depends on how the database returns rows.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.models.models import Player, UserScore

SCORE_FIELDS = (
    "total_score",
    "weekly_score",
    "finalist_score",
    "correct_star_baker",
    "correct_elimination",
    "wrong_star_baker",
    "wrong_elimination",
    "technical_challenge_wins",
    "handshakes",
    "soggy_bottoms",
    "total_episodes",
    "total_episodes_with_picks",
)


def calculate_accuracy(correct_star_baker: int, correct_elimination: int, episodes_with_picks: int) -> int:
    """Percent of weekly picks right, over episodes with both picks in. Rounds half up."""
    if episodes_with_picks <= 0:
        return 0
    ratio = (correct_star_baker + correct_elimination) / (2 * episodes_with_picks)
    return int(ratio * 100 + 0.5)


def rank_entries(entries: list[dict]) -> list[dict]:
    """Sort leaderboard entries and number them from 1. Entries are updated in place."""
    entries.sort(key=lambda e: (-e["total_score"], e["player_name"].lower(), e["player_id"]))
    for i, entry in enumerate(entries, 1):
        entry["rank"] = i
    return entries


async def build_leaderboard(db: AsyncSession, season_id: int) -> list[dict]:
    """Ranked standings for a season, admins left out."""
    result = await db.execute(
        select(UserScore, Player)
        .join(Player, UserScore.player_id == Player.id)
        .where(UserScore.season_id == season_id, Player.is_admin == False)
    )

    entries = []
    for score, player in result.all():
        entry = {
            "rank": 0,  # Set after sorting
            "player_id": player.id,
            "player_name": player.display_name,
        }
        for name in SCORE_FIELDS:
            entry[name] = getattr(score, name) or 0
        entry["accuracy"] = calculate_accuracy(
            entry["correct_star_baker"],
            entry["correct_elimination"],
            entry["total_episodes_with_picks"],
        )
        entries.append(entry)

    return rank_entries(entries)
