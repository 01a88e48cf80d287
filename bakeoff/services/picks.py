"""
Pick Store: validating and saving player predictions.

Every check runs before anything is written. Saving a pick replaces the
player's previous pick of the same kind (delete-then-insert in the caller's
transaction). The player's row is locked first, so two submissions racing
in from different requests run one after the other and end in the last
one, never in two rows or a broken Star Baker cap.
"""

import logging
from collections import Counter, defaultdict

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func

from bakeoff.core.config import get_settings
from bakeoff.models.models import (
    Contestant, Episode, Pick, PickType, Player, Season, SeasonStatus,
    WEEKLY_PICK_TYPES,
)
from bakeoff.services.errors import (
    EliminatedContestantError, EpisodeNotActiveError, FinalistCountError,
    NotFoundError, StarBakerCapExceededError, ValidationError,
)

logger = logging.getLogger(__name__)


def parse_pick_type(pick_type) -> PickType:
    if isinstance(pick_type, PickType):
        return pick_type
    try:
        return PickType(pick_type)
    except ValueError:
        raise ValidationError(
            f"Invalid pick type. Must be one of: {[t.value for t in PickType]}"
        )


async def count_star_baker_picks(
    db: AsyncSession,
    player_id: int,
    season_id: int,
    contestant_id: int,
    exclude_episode_id: int | None = None,
) -> int:
    """Distinct episodes in which the player picked this baker as Star Baker."""
    query = select(func.count(func.distinct(Pick.episode_id))).where(
        Pick.player_id == player_id,
        Pick.season_id == season_id,
        Pick.pick_type == PickType.STAR_BAKER,
        Pick.contestant_id == contestant_id,
    )
    if exclude_episode_id is not None:
        query = query.where(Pick.episode_id != exclude_episode_id)
    return (await db.execute(query)).scalar() or 0


def player_lock_statement(player_id: int):
    return select(Player.id).where(Player.id == player_id).with_for_update()


async def lock_player(db: AsyncSession, player_id: int) -> None:
    """
    Hold the player's row until the transaction ends.

    On PostgreSQL this is SELECT ... FOR UPDATE, which queues a second
    submission from the same player behind the first one's commit. SQLite
    drops the clause; its single writer already serializes transactions.
    """
    await db.execute(player_lock_statement(player_id))


async def validate_pick(
    db: AsyncSession,
    player_id: int,
    season_id: int,
    pick_type,
    contestant_ids: list[int],
    episode_id: int | None = None,
) -> tuple[Season, Episode | None, list[Contestant]]:
    """
    Check a submission without writing anything.

    Returns the season, the episode (None for finalists) and the contestants
    in submission order. Raises one of the typed errors otherwise.
    """
    pick_type = parse_pick_type(pick_type)
    contestant_ids = list(contestant_ids or [])
    if not contestant_ids:
        raise ValidationError("At least one contestant is required")

    season_result = await db.execute(select(Season).where(Season.id == season_id))
    season = season_result.scalar_one_or_none()
    if not season:
        raise NotFoundError("Season not found")

    episode = None
    if pick_type == PickType.FINALIST:
        if episode_id is not None:
            raise ValidationError("Finalist picks are not tied to an episode")
        finalist_count = get_settings().finalist_count
        if len(contestant_ids) != finalist_count or len(set(contestant_ids)) != finalist_count:
            raise FinalistCountError(f"Exactly {finalist_count} different finalists are required")
        if season.status == SeasonStatus.COMPLETE:
            raise ValidationError("Season is complete; finalist picks are closed")
    else:
        if episode_id is None:
            raise ValidationError("Episode ID is required for weekly picks")
        if len(contestant_ids) != 1:
            raise ValidationError("Weekly picks take exactly one contestant")

        episode_result = await db.execute(select(Episode).where(Episode.id == episode_id))
        episode = episode_result.scalar_one_or_none()
        if not episode:
            raise NotFoundError("Episode not found")
        if episode.season_id != season_id:
            raise ValidationError("Episode is not part of this season")
        if not episode.is_active or episode.is_completed:
            raise EpisodeNotActiveError("Episode is not open for picks")

    contestant_result = await db.execute(
        select(Contestant).where(Contestant.id.in_(set(contestant_ids)))
    )
    found = {c.id: c for c in contestant_result.scalars().all()}
    contestants = []
    for contestant_id in contestant_ids:
        contestant = found.get(contestant_id)
        if contestant is None:
            raise NotFoundError(f"Contestant {contestant_id} not found")
        if contestant.season_id != season_id:
            raise ValidationError(f"Contestant {contestant_id} is not part of this season")
        if contestant.is_eliminated:
            raise EliminatedContestantError(f"{contestant.name} has already been eliminated")
        contestants.append(contestant)

    if pick_type == PickType.STAR_BAKER:
        contestant = contestants[0]
        # Replacing this episode's own pick doesn't count against the cap
        used = await count_star_baker_picks(
            db, player_id, season_id, contestant.id, exclude_episode_id=episode.id
        )
        if used >= season.star_baker_pick_limit:
            raise StarBakerCapExceededError(
                f"{contestant.name} has already been your Star Baker pick "
                f"{used} time(s) (max {season.star_baker_pick_limit})"
            )

    return season, episode, contestants


async def submit_picks(
    db: AsyncSession,
    player_id: int,
    season_id: int,
    pick_type,
    contestant_ids: list[int],
    episode_id: int | None = None,
) -> list[Pick]:
    """
    Validate and save picks, replacing the player's earlier ones.

    A weekly submission replaces the (player, episode, pick type) pick; a
    finalist submission replaces the whole set of three. Nothing is
    committed here: the caller's transaction makes it all-or-nothing.
    """
    pick_type = parse_pick_type(pick_type)
    await lock_player(db, player_id)
    _, episode, contestants = await validate_pick(
        db, player_id, season_id, pick_type, contestant_ids, episode_id
    )

    if pick_type == PickType.FINALIST:
        stmt = delete(Pick).where(
            Pick.player_id == player_id,
            Pick.season_id == season_id,
            Pick.pick_type == PickType.FINALIST,
        )
    else:
        stmt = delete(Pick).where(
            Pick.player_id == player_id,
            Pick.episode_id == episode.id,
            Pick.pick_type == pick_type,
        )
    replaced = (await db.execute(stmt)).rowcount or 0

    created = []
    for contestant in contestants:
        pick = Pick(
            season_id=season_id,
            player_id=player_id,
            episode_id=episode.id if episode else None,
            pick_type=pick_type,
            contestant_id=contestant.id,
            points=0,
        )
        db.add(pick)
        created.append(pick)
    await db.flush()
    for pick in created:
        await db.refresh(pick)

    logger.info(
        "Player %s saved %s pick(s) for season %s%s (%d replaced)",
        player_id, pick_type.value, season_id,
        f" episode {episode.episode_number}" if episode else "", replaced,
    )
    return created


async def get_star_baker_counts(
    db: AsyncSession, player_id: int, season_id: int, limit: int | None = None
) -> list[dict]:
    """How often the player has used each baker as Star Baker, and what's left."""
    if limit is None:
        season_result = await db.execute(select(Season).where(Season.id == season_id))
        season = season_result.scalar_one_or_none()
        if not season:
            raise NotFoundError("Season not found")
        limit = season.star_baker_pick_limit

    contestants_result = await db.execute(
        select(Contestant).where(Contestant.season_id == season_id).order_by(Contestant.name)
    )
    picks_result = await db.execute(
        select(Pick.contestant_id, Pick.episode_id).where(
            Pick.player_id == player_id,
            Pick.season_id == season_id,
            Pick.pick_type == PickType.STAR_BAKER,
        )
    )
    counts = Counter(contestant_id for contestant_id, _ in set(picks_result.all()))

    return [
        {
            "contestant_id": c.id,
            "contestant_name": c.name,
            "count": counts.get(c.id, 0),
            "remaining": max(0, limit - counts.get(c.id, 0)),
        }
        for c in contestants_result.scalars().all()
    ]


async def get_pick_history(db: AsyncSession, player_id: int, season_id: int) -> list[dict]:
    """A player's weekly picks grouped by episode, in episode order."""
    result = await db.execute(
        select(Pick, Episode, Contestant)
        .join(Episode, Pick.episode_id == Episode.id)
        .join(Contestant, Pick.contestant_id == Contestant.id)
        .where(Pick.player_id == player_id, Pick.season_id == season_id)
        .order_by(Episode.episode_number, Pick.pick_type)
    )

    history: dict[int, dict] = {}
    for pick, episode, contestant in result.all():
        entry = history.setdefault(episode.id, {
            "episode_id": episode.id,
            "episode_number": episode.episode_number,
            "episode_title": episode.title,
            "is_completed": episode.is_completed,
            "picks": [],
        })
        entry["picks"].append({
            "id": pick.id,
            "pick_type": pick.pick_type.value,
            "contestant_id": contestant.id,
            "contestant_name": contestant.name,
            "is_correct": pick.is_correct,
            "points": pick.points,
        })
    return list(history.values())


async def get_episode_pick_status(db: AsyncSession, episode_id: int) -> dict:
    """Which non-admin players with season picks have sent both weekly picks."""
    episode_result = await db.execute(select(Episode).where(Episode.id == episode_id))
    episode = episode_result.scalar_one_or_none()
    if not episode:
        raise NotFoundError("Episode not found")

    players_result = await db.execute(
        select(Player)
        .join(Pick, Pick.player_id == Player.id)
        .where(Pick.season_id == episode.season_id, Player.is_admin == False)
        .distinct()
        .order_by(Player.display_name)
    )
    players = players_result.scalars().all()

    picks_result = await db.execute(
        select(Pick.player_id, Pick.pick_type).where(
            Pick.episode_id == episode_id,
            Pick.pick_type.in_(WEEKLY_PICK_TYPES),
        )
    )
    types_by_player = defaultdict(set)
    for player_id, pick_type in picks_result.all():
        types_by_player[player_id].add(PickType(pick_type))

    submitted = {
        player_id for player_id, types in types_by_player.items()
        if all(t in types for t in WEEKLY_PICK_TYPES)
    }
    return {
        "episode_id": episode_id,
        "all_submitted": all(p.id in submitted for p in players),
        "submitted_count": sum(1 for p in players if p.id in submitted),
        "total_count": len(players),
        "players": [
            {"player_id": p.id, "display_name": p.display_name, "has_submitted": p.id in submitted}
            for p in players
        ],
    }


async def get_season_picks(
    db: AsyncSession, season_id: int, episode_id: int | None = None
) -> list[dict]:
    """
    Every non-admin player's picks for a season, split into finalist and
    weekly picks. Read-only view for the public picks page and exports.
    """
    query = (
        select(Pick, Player, Contestant)
        .join(Player, Pick.player_id == Player.id)
        .join(Contestant, Pick.contestant_id == Contestant.id)
        .where(Pick.season_id == season_id, Player.is_admin == False)
        .order_by(Player.display_name, Pick.id)
    )
    if episode_id is not None:
        # Finalist picks have no episode but still belong on the page
        query = query.where((Pick.episode_id == episode_id) | (Pick.episode_id.is_(None)))
    result = await db.execute(query)

    by_player: dict[int, dict] = {}
    for pick, player, contestant in result.all():
        entry = by_player.setdefault(player.id, {
            "player_id": player.id,
            "display_name": player.display_name,
            "finalist_picks": [],
            "weekly_picks": [],
        })
        item = {
            "id": pick.id,
            "episode_id": pick.episode_id,
            "pick_type": pick.pick_type.value,
            "contestant_id": contestant.id,
            "contestant_name": contestant.name,
            "is_correct": pick.is_correct,
            "points": pick.points,
        }
        if pick.pick_type == PickType.FINALIST:
            entry["finalist_picks"].append(item)
        else:
            entry["weekly_picks"].append(item)
    return list(by_player.values())
