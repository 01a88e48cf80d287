import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.database import get_db
from bakeoff.core.events import EventBroker, get_broker, safe_publish
from bakeoff.models.models import BonusKind, Episode, Player, Season
from bakeoff.schemas.episodes import (
    EpisodeCreate, EpisodeUpdate, EpisodeActiveUpdate, EpisodeResultSubmit,
    EpisodeResponse, EpisodeDetailResponse, BonusInput, BonusCountInput,
    BonusCountItem, EpisodePickStatusResponse,
)
from bakeoff.api.deps import get_current_user, require_admin
from bakeoff.services.outcomes import (
    get_bonus_counts, record_technical_bonus, remove_bonus, set_bonus_count,
)
from bakeoff.services.picks import get_episode_pick_status
from bakeoff.services.scoring_engine import record_episode_result

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/seasons/{season_id}/episodes", tags=["Episodes"])


async def _get_season_or_404(db: AsyncSession, season_id: int) -> Season:
    result = await db.execute(select(Season).where(Season.id == season_id))
    season = result.scalar_one_or_none()
    if not season:
        raise HTTPException(status_code=404, detail="Season not found")
    return season


async def _get_episode_or_404(
    db: AsyncSession, season_id: int, episode_id: int
) -> Episode:
    result = await db.execute(
        select(Episode).where(
            Episode.id == episode_id, Episode.season_id == season_id
        )
    )
    episode = result.scalar_one_or_none()
    if not episode:
        raise HTTPException(status_code=404, detail="Episode not found")
    return episode


async def _check_number_free(db: AsyncSession, season_id: int, episode_number: int) -> None:
    existing = await db.execute(
        select(Episode).where(
            Episode.season_id == season_id,
            Episode.episode_number == episode_number,
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Episode number already exists for this season")


async def _episode_detail(db: AsyncSession, episode: Episode) -> EpisodeDetailResponse:
    counts = await get_bonus_counts(db, episode.id)
    base = EpisodeResponse.model_validate(episode).model_dump()
    return EpisodeDetailResponse(
        **base,
        handshakes=[
            BonusCountItem(contestant_id=cid, count=n)
            for cid, n in sorted(counts[BonusKind.HANDSHAKE].items())
        ],
        soggy_bottoms=[
            BonusCountItem(contestant_id=cid, count=n)
            for cid, n in sorted(counts[BonusKind.SOGGY_BOTTOM].items())
        ],
    )


async def _commit_and_publish(
    db: AsyncSession, broker: EventBroker, episode: Episode, reason: str
) -> EpisodeDetailResponse:
    detail = await _episode_detail(db, episode)
    await db.commit()
    if episode.is_completed:
        safe_publish(
            broker,
            "scores_updated",
            {"reason": reason, "episode_id": episode.id, "episode_number": episode.episode_number},
            episode.season_id,
        )
    return detail


@router.post("", response_model=EpisodeResponse, status_code=201)
async def create_episode(
    season_id: int,
    body: EpisodeCreate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    await _get_season_or_404(db, season_id)
    await _check_number_free(db, season_id, body.episode_number)

    episode = Episode(
        season_id=season_id,
        episode_number=body.episode_number,
        title=body.title,
        air_date=body.air_date,
        notes=body.notes,
        is_active=body.is_active,
    )
    db.add(episode)
    await db.flush()
    await db.refresh(episode)
    return episode


@router.get("", response_model=list[EpisodeDetailResponse])
async def list_episodes(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    await _get_season_or_404(db, season_id)
    result = await db.execute(
        select(Episode)
        .where(Episode.season_id == season_id)
        .order_by(Episode.episode_number)
    )
    return [await _episode_detail(db, ep) for ep in result.scalars().all()]


@router.get("/{episode_id}", response_model=EpisodeDetailResponse)
async def get_episode(
    season_id: int,
    episode_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    episode = await _get_episode_or_404(db, season_id, episode_id)
    return await _episode_detail(db, episode)


@router.patch("/{episode_id}", response_model=EpisodeResponse)
async def update_episode(
    season_id: int,
    episode_id: int,
    body: EpisodeUpdate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    episode = await _get_episode_or_404(db, season_id, episode_id)
    update_data = body.model_dump(exclude_unset=True)
    number = update_data.get("episode_number")
    if number is not None and number != episode.episode_number:
        await _check_number_free(db, season_id, number)

    for field, value in update_data.items():
        if value is not None or field in ("title", "air_date", "notes"):
            setattr(episode, field, value)
    await db.flush()
    await db.refresh(episode)
    return episode


@router.patch("/{episode_id}/active", response_model=EpisodeResponse)
async def set_episode_active(
    season_id: int,
    episode_id: int,
    body: EpisodeActiveUpdate,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Open or close weekly picks for an episode."""
    episode = await _get_episode_or_404(db, season_id, episode_id)
    if body.is_active and episode.is_completed:
        raise HTTPException(status_code=409, detail="Episode already has a recorded result")

    episode.is_active = body.is_active
    await db.flush()
    await db.refresh(episode)
    await db.commit()
    safe_publish(
        broker, "episode_updated", {"episode_id": episode.id, "is_active": episode.is_active}, season_id
    )
    return episode


@router.post("/{episode_id}/result", response_model=EpisodeDetailResponse)
async def record_result(
    season_id: int,
    episode_id: int,
    body: EpisodeResultSubmit,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Record Star Baker and the eliminated baker, then rescore."""
    await _get_episode_or_404(db, season_id, episode_id)
    episode = await record_episode_result(db, episode_id, body.star_baker_id, body.eliminated_id)
    return await _commit_and_publish(db, broker, episode, "result_recorded")


@router.post("/{episode_id}/bonuses", response_model=EpisodeDetailResponse)
async def add_bonus(
    season_id: int,
    episode_id: int,
    body: BonusInput,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Technical challenge winner (replaces), or one more handshake / soggy bottom."""
    await _get_episode_or_404(db, season_id, episode_id)
    episode = await record_technical_bonus(db, episode_id, body.type, body.contestant_id)
    return await _commit_and_publish(db, broker, episode, "bonus_added")


@router.put("/{episode_id}/bonuses", response_model=EpisodeDetailResponse)
async def set_bonus(
    season_id: int,
    episode_id: int,
    body: BonusCountInput,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Set the exact handshake / soggy bottom count for one baker."""
    episode = await _get_episode_or_404(db, season_id, episode_id)
    await set_bonus_count(db, episode_id, body.type, body.contestant_id, body.count)
    return await _commit_and_publish(db, broker, episode, "bonus_set")


@router.delete("/{episode_id}/bonuses", response_model=EpisodeDetailResponse)
async def delete_bonus(
    season_id: int,
    episode_id: int,
    type: str = Query(...),
    contestant_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Remove every entry of one bonus type for one baker."""
    episode = await _get_episode_or_404(db, season_id, episode_id)
    await remove_bonus(db, episode_id, type, contestant_id)
    return await _commit_and_publish(db, broker, episode, "bonus_removed")


@router.get("/{episode_id}/pick-status", response_model=EpisodePickStatusResponse)
async def pick_status(
    season_id: int,
    episode_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    await _get_episode_or_404(db, season_id, episode_id)
    return await get_episode_pick_status(db, episode_id)


@router.delete("/{episode_id}", status_code=204)
async def delete_episode(
    season_id: int,
    episode_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    episode = await _get_episode_or_404(db, season_id, episode_id)
    if episode.is_completed:
        raise HTTPException(
            status_code=400, detail="Cannot delete an episode with a recorded result"
        )
    await db.delete(episode)
    logger.info("Deleted episode %s of season %s", episode.episode_number, season_id)
