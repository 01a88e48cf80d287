from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.database import get_db
from bakeoff.core.events import EventBroker, get_broker, safe_publish
from bakeoff.models.models import Contestant, Episode, Pick, Player, Season
from bakeoff.schemas.picks import (
    PickSubmit, PickResponse, StarBakerCountsResponse, PickHistoryResponse,
    SeasonPicksResponse,
)
from bakeoff.api.deps import get_current_user, require_player
from bakeoff.services.picks import (
    get_pick_history, get_season_picks, get_star_baker_counts, submit_picks,
)

router = APIRouter(prefix="/api/seasons/{season_id}/picks", tags=["Picks"])


async def _get_season_or_404(db: AsyncSession, season_id: int) -> Season:
    result = await db.execute(select(Season).where(Season.id == season_id))
    season = result.scalar_one_or_none()
    if not season:
        raise HTTPException(status_code=404, detail="Season not found")
    return season


async def _build_pick_responses(db: AsyncSession, picks: list[Pick]) -> list[PickResponse]:
    contestant_ids = {p.contestant_id for p in picks}
    names = {}
    if contestant_ids:
        result = await db.execute(
            select(Contestant.id, Contestant.name).where(Contestant.id.in_(contestant_ids))
        )
        names = dict(result.all())

    return [
        PickResponse(
            id=p.id,
            season_id=p.season_id,
            player_id=p.player_id,
            episode_id=p.episode_id,
            pick_type=p.pick_type.value,
            contestant_id=p.contestant_id,
            contestant_name=names.get(p.contestant_id, ""),
            is_correct=p.is_correct,
            points=p.points or 0,
            created_at=p.created_at,
        )
        for p in picks
    ]


@router.post("", response_model=list[PickResponse], status_code=201)
async def create_picks(
    season_id: int,
    body: PickSubmit,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    current_user: Player = Depends(require_player),
):
    """Submit a Star Baker, Elimination or full Finalist pick, replacing any earlier one."""
    picks = await submit_picks(
        db, current_user.id, season_id, body.pick_type, body.contestant_ids, body.episode_id
    )
    responses = await _build_pick_responses(db, picks)
    await db.commit()

    safe_publish(
        broker,
        "picks_updated",
        {
            "player_id": current_user.id,
            "player_name": current_user.display_name,
            "episode_id": body.episode_id,
            "picks": [r.model_dump(mode="json") for r in responses],
        },
        season_id,
    )
    return responses


@router.get("", response_model=SeasonPicksResponse)
async def list_season_picks(
    season_id: int,
    episode_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    """Everyone's picks, grouped by player. Admin picks are left out."""
    await _get_season_or_404(db, season_id)
    players = await get_season_picks(db, season_id, episode_id)
    return SeasonPicksResponse(season_id=season_id, episode_id=episode_id, players=players)


@router.get("/mine", response_model=list[PickResponse])
async def my_picks(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Player = Depends(get_current_user),
):
    result = await db.execute(
        select(Pick)
        .outerjoin(Episode, Pick.episode_id == Episode.id)
        .where(Pick.season_id == season_id, Pick.player_id == current_user.id)
        .order_by(Episode.episode_number.nulls_first(), Pick.pick_type, Pick.id)
    )
    return await _build_pick_responses(db, result.scalars().all())


@router.get("/star-baker-counts", response_model=StarBakerCountsResponse)
async def star_baker_counts(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Player = Depends(get_current_user),
):
    """How many more times you can pick each baker as Star Baker."""
    season = await _get_season_or_404(db, season_id)
    counts = await get_star_baker_counts(
        db, current_user.id, season_id, limit=season.star_baker_pick_limit
    )
    return StarBakerCountsResponse(
        season_id=season_id, limit=season.star_baker_pick_limit, counts=counts
    )


@router.get("/history/{player_id}", response_model=PickHistoryResponse)
async def pick_history(
    season_id: int,
    player_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    player_result = await db.execute(select(Player).where(Player.id == player_id))
    if not player_result.scalar_one_or_none():
        raise HTTPException(status_code=404, detail="Player not found")

    history = await get_pick_history(db, player_id, season_id)
    return PickHistoryResponse(season_id=season_id, player_id=player_id, history=history)
