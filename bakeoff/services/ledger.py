"""
Contestant Ledger: elimination status derived from completed episodes.

``Contestant.is_eliminated`` is a materialized view: a baker is out exactly
when some completed episode of their season names them as eliminated.
Nothing else writes the flag.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.models.models import Contestant, Episode

logger = logging.getLogger(__name__)


async def get_eliminated_ids(db: AsyncSession, season_id: int) -> set[int]:
    """Ids named as eliminated by the season's completed episodes."""
    result = await db.execute(
        select(Episode.eliminated_id).where(
            Episode.season_id == season_id,
            Episode.is_completed == True,
            Episode.eliminated_id.is_not(None),
        )
    )
    return {row[0] for row in result.all()}


async def recalculate_elimination_status(db: AsyncSession, season_id: int) -> dict:
    """
    Rewrite every contestant's elimination flag for a season.

    Idempotent. An unknown season has no contestants, so nothing changes.
    All flags go out in a single flush; the caller's transaction decides
    whether they stick.
    """
    eliminated_ids = await get_eliminated_ids(db, season_id)

    result = await db.execute(
        select(Contestant).where(Contestant.season_id == season_id)
    )
    contestants = result.scalars().all()

    changed = 0
    for contestant in contestants:
        is_eliminated = contestant.id in eliminated_ids
        if contestant.is_eliminated != is_eliminated:
            contestant.is_eliminated = is_eliminated
            changed += 1

    await db.flush()
    logger.info(
        "Season %s elimination status: %d of %d eliminated, %d changed",
        season_id, len(eliminated_ids), len(contestants), changed,
    )
    return {
        "total_contestants": len(contestants),
        "eliminated_count": sum(1 for c in contestants if c.is_eliminated),
        "changed": changed,
    }
