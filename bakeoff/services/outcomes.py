"""
Episode Outcome Record: bonus entries an admin attaches to an episode.

The technical challenge winner is a single value on the episode; handshakes
and soggy bottoms are multisets stored one row per entry. Changing bonuses
on an episode that is already scored rescores the season, so stored points
never describe an outcome that no longer exists.
"""

import logging
from collections import Counter

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from bakeoff.models.models import BonusKind, Contestant, Episode, EpisodeBonus
from bakeoff.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MULTISET_KINDS = (BonusKind.HANDSHAKE, BonusKind.SOGGY_BOTTOM)


def parse_bonus_kind(kind) -> BonusKind:
    if isinstance(kind, BonusKind):
        return kind
    try:
        return BonusKind(kind)
    except ValueError:
        raise ValidationError(
            f"Invalid bonus type. Must be one of: {[k.value for k in BonusKind]}"
        )


async def _get_episode(db: AsyncSession, episode_id: int) -> Episode:
    result = await db.execute(select(Episode).where(Episode.id == episode_id))
    episode = result.scalar_one_or_none()
    if not episode:
        raise NotFoundError("Episode not found")
    return episode


async def _check_contestant(db: AsyncSession, episode: Episode, contestant_id: int) -> None:
    result = await db.execute(select(Contestant).where(Contestant.id == contestant_id))
    contestant = result.scalar_one_or_none()
    if not contestant:
        raise NotFoundError("Contestant not found")
    if contestant.season_id != episode.season_id:
        raise ValidationError("Contestant is not part of this episode's season")


async def _rescore_if_completed(db: AsyncSession, episode: Episode) -> None:
    if episode.is_completed:
        from bakeoff.services.scoring_engine import score_episode
        await score_episode(db, episode.id)


async def record_technical_bonus(
    db: AsyncSession, episode_id: int, kind, contestant_id: int
) -> Episode:
    """Technical challenge overwrites the winner; handshake / soggy bottom add one entry."""
    kind = parse_bonus_kind(kind)
    episode = await _get_episode(db, episode_id)
    await _check_contestant(db, episode, contestant_id)

    if kind == BonusKind.TECHNICAL_CHALLENGE:
        episode.technical_winner_id = contestant_id
    else:
        db.add(EpisodeBonus(episode_id=episode_id, contestant_id=contestant_id, kind=kind))

    await db.flush()
    await _rescore_if_completed(db, episode)
    return episode


async def remove_bonus(
    db: AsyncSession, episode_id: int, kind, contestant_id: int
) -> int:
    """
    Remove ALL of a contestant's entries of one kind from an episode.

    Returns the number of entries removed. For the technical challenge the
    winner is cleared only if it is this contestant.
    """
    kind = parse_bonus_kind(kind)
    episode = await _get_episode(db, episode_id)

    if kind == BonusKind.TECHNICAL_CHALLENGE:
        removed = 0
        if episode.technical_winner_id == contestant_id:
            episode.technical_winner_id = None
            removed = 1
    else:
        result = await db.execute(
            delete(EpisodeBonus).where(
                EpisodeBonus.episode_id == episode_id,
                EpisodeBonus.contestant_id == contestant_id,
                EpisodeBonus.kind == kind,
            )
        )
        removed = result.rowcount or 0

    await db.flush()
    await _rescore_if_completed(db, episode)
    return removed


async def set_bonus_count(
    db: AsyncSession, episode_id: int, kind, contestant_id: int, count: int
) -> int:
    """
    Set a contestant's exact handshake / soggy bottom count for an episode.

    Remove-all then add ``count`` entries inside the caller's transaction,
    so readers never see the intermediate empty state.
    """
    kind = parse_bonus_kind(kind)
    if kind not in MULTISET_KINDS:
        raise ValidationError("Only handshake and soggy_bottom have counts")
    if count < 0:
        raise ValidationError("Count cannot be negative")

    episode = await _get_episode(db, episode_id)
    await _check_contestant(db, episode, contestant_id)

    await db.execute(
        delete(EpisodeBonus).where(
            EpisodeBonus.episode_id == episode_id,
            EpisodeBonus.contestant_id == contestant_id,
            EpisodeBonus.kind == kind,
        )
    )
    for _ in range(count):
        db.add(EpisodeBonus(episode_id=episode_id, contestant_id=contestant_id, kind=kind))

    await db.flush()
    await _rescore_if_completed(db, episode)
    logger.info(
        "Episode %s: contestant %s now has %d %s", episode_id, contestant_id, count, kind.value
    )
    return count


async def get_bonus_counts(db: AsyncSession, episode_id: int) -> dict[BonusKind, Counter]:
    """{kind: Counter({contestant_id: n})} for the multiset kinds of one episode."""
    counts = {kind: Counter() for kind in MULTISET_KINDS}
    result = await db.execute(
        select(EpisodeBonus.kind, EpisodeBonus.contestant_id).where(
            EpisodeBonus.episode_id == episode_id
        )
    )
    for kind, contestant_id in result.all():
        counts[BonusKind(kind)][contestant_id] += 1
    return counts
