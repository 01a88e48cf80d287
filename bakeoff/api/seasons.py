from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from bakeoff.core.database import get_db
from bakeoff.core.events import EventBroker, get_broker, safe_publish
from bakeoff.models.models import Season, SeasonStatus, Contestant, Episode, Pick, Player
from bakeoff.schemas.seasons import (
    SeasonCreate, SeasonUpdate, SeasonStatusUpdate, SeasonFinalize,
    SeasonFinalizeResponse, SeasonResponse, SeasonDetailResponse,
)
from bakeoff.api.deps import get_current_user, require_admin
from bakeoff.services.scoring_engine import finalize_season, reopen_season

router = APIRouter(prefix="/api/seasons", tags=["Seasons"])

# COMPLETE is reached through /finalize, which scores the finalist picks
VALID_TRANSITIONS = {
    SeasonStatus.SETUP: [SeasonStatus.ACTIVE],
    SeasonStatus.ACTIVE: [SeasonStatus.SETUP],
    SeasonStatus.COMPLETE: [SeasonStatus.ACTIVE],
}


async def _get_season_or_404(db: AsyncSession, season_id: int) -> Season:
    result = await db.execute(select(Season).where(Season.id == season_id))
    season = result.scalar_one_or_none()
    if not season:
        raise HTTPException(status_code=404, detail="Season not found")
    return season


@router.post("", response_model=SeasonResponse, status_code=201)
async def create_season(
    body: SeasonCreate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    existing = await db.execute(select(Season).where(Season.season_number == body.season_number))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Season number already exists")

    season = Season(season_number=body.season_number, name=body.name)
    if body.star_baker_pick_limit is not None:
        season.star_baker_pick_limit = body.star_baker_pick_limit
    db.add(season)
    await db.flush()
    await db.refresh(season)
    return season


@router.get("", response_model=list[SeasonResponse])
async def list_seasons(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    result = await db.execute(select(Season).order_by(Season.season_number.desc()))
    return result.scalars().all()


@router.get("/{season_id}", response_model=SeasonDetailResponse)
async def get_season(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    season = await _get_season_or_404(db, season_id)

    contestant_count = (await db.execute(
        select(func.count()).select_from(Contestant).where(Contestant.season_id == season_id)
    )).scalar()

    episode_count = (await db.execute(
        select(func.count()).select_from(Episode).where(Episode.season_id == season_id)
    )).scalar()

    completed_count = (await db.execute(
        select(func.count()).select_from(Episode).where(
            Episode.season_id == season_id, Episode.is_completed == True
        )
    )).scalar()

    player_count = (await db.execute(
        select(func.count(func.distinct(Pick.player_id)))
        .join(Player, Pick.player_id == Player.id)
        .where(Pick.season_id == season_id, Player.is_admin == False)
    )).scalar()

    return SeasonDetailResponse(
        id=season.id,
        season_number=season.season_number,
        name=season.name,
        status=season.status.value if isinstance(season.status, SeasonStatus) else season.status,
        star_baker_pick_limit=season.star_baker_pick_limit,
        finalist_ids=season.finalist_ids,
        created_at=season.created_at,
        contestant_count=contestant_count or 0,
        episode_count=episode_count or 0,
        completed_episode_count=completed_count or 0,
        player_count=player_count or 0,
    )


@router.patch("/{season_id}", response_model=SeasonResponse)
async def update_season(
    season_id: int,
    body: SeasonUpdate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    season = await _get_season_or_404(db, season_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(season, field, value)

    await db.flush()
    await db.refresh(season)
    return season


@router.patch("/{season_id}/status", response_model=SeasonResponse)
async def update_season_status(
    season_id: int,
    body: SeasonStatusUpdate,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Move a season along its lifecycle. Reopening a complete season unscores its finalist picks."""
    season = await _get_season_or_404(db, season_id)

    try:
        new_status = SeasonStatus(body.status)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {[s.value for s in SeasonStatus]}",
        )

    current = season.status if isinstance(season.status, SeasonStatus) else SeasonStatus(season.status)
    if new_status not in VALID_TRANSITIONS.get(current, []):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot transition from {current.value} to {new_status.value}",
        )

    if current == SeasonStatus.COMPLETE:
        result = await reopen_season(db, season_id)
        await db.refresh(season)
        await db.commit()
        safe_publish(broker, "scores_updated", {"reason": "season_reopened", **result}, season_id)
        return season

    season.status = new_status
    await db.flush()
    await db.refresh(season)
    return season


@router.post("/{season_id}/finalize", response_model=SeasonFinalizeResponse)
async def finalize(
    season_id: int,
    body: SeasonFinalize,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Record the real finalists and score everyone's finalist picks."""
    result = await finalize_season(db, season_id, body.finalist_ids)
    await db.commit()
    safe_publish(broker, "scores_updated", {"reason": "season_finalized", **result}, season_id)
    return SeasonFinalizeResponse(**result)


@router.delete("/{season_id}", status_code=204)
async def delete_season(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    """Cascade-deletes the season's contestants, episodes, picks and scores."""
    season = await _get_season_or_404(db, season_id)
    await db.delete(season)
