from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.database import get_db
from bakeoff.core.events import EventBroker, get_broker, safe_publish
from bakeoff.models.models import Contestant, Season, Player
from bakeoff.schemas.contestants import (
    ContestantCreate, ContestantBulkCreate, ContestantUpdate,
    ContestantResponse, EliminationRecalculateResponse,
)
from bakeoff.api.deps import get_current_user, require_admin
from bakeoff.services.ledger import recalculate_elimination_status

router = APIRouter(prefix="/api/seasons/{season_id}/contestants", tags=["Contestants"])


async def _get_season_or_404(db: AsyncSession, season_id: int) -> Season:
    result = await db.execute(select(Season).where(Season.id == season_id))
    season = result.scalar_one_or_none()
    if not season:
        raise HTTPException(status_code=404, detail="Season not found")
    return season


async def _check_name_free(db: AsyncSession, season_id: int, names: list[str]) -> None:
    if len(set(names)) != len(names):
        raise HTTPException(status_code=400, detail="Duplicate contestant names in request")
    result = await db.execute(
        select(Contestant.name).where(Contestant.season_id == season_id, Contestant.name.in_(names))
    )
    taken = [row[0] for row in result.all()]
    if taken:
        raise HTTPException(status_code=409, detail=f"Contestant '{taken[0]}' already exists in this season")


@router.post("/bulk", response_model=list[ContestantResponse], status_code=201)
async def bulk_add_contestants(
    season_id: int,
    body: ContestantBulkCreate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    """Import a whole line-up at once."""
    await _get_season_or_404(db, season_id)
    await _check_name_free(db, season_id, [c.name for c in body.contestants])

    created = []
    for c in body.contestants:
        contestant = Contestant(season_id=season_id, **c.model_dump())
        db.add(contestant)
        created.append(contestant)
    await db.flush()
    for c in created:
        await db.refresh(c)
    return created


@router.post("", response_model=ContestantResponse, status_code=201)
async def add_contestant(
    season_id: int,
    body: ContestantCreate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    await _get_season_or_404(db, season_id)
    await _check_name_free(db, season_id, [body.name])

    contestant = Contestant(season_id=season_id, **body.model_dump())
    db.add(contestant)
    await db.flush()
    await db.refresh(contestant)
    return contestant


@router.get("", response_model=list[ContestantResponse])
async def list_contestants(
    season_id: int,
    eliminated: bool | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    await _get_season_or_404(db, season_id)
    query = select(Contestant).where(Contestant.season_id == season_id)
    if eliminated is not None:
        query = query.where(Contestant.is_eliminated == eliminated)
    result = await db.execute(query.order_by(Contestant.name))
    return result.scalars().all()


# Must be defined BEFORE /{contestant_id} to prevent path conflict
@router.post("/recalculate-elimination", response_model=EliminationRecalculateResponse)
async def recalculate_elimination(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """Repair: rederive every contestant's elimination flag from recorded results."""
    await _get_season_or_404(db, season_id)
    result = await recalculate_elimination_status(db, season_id)
    await db.commit()
    safe_publish(broker, "elimination_updated", result, season_id)
    return EliminationRecalculateResponse(**result)


@router.get("/{contestant_id}", response_model=ContestantResponse)
async def get_contestant(
    season_id: int,
    contestant_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    result = await db.execute(
        select(Contestant).where(
            Contestant.id == contestant_id, Contestant.season_id == season_id
        )
    )
    contestant = result.scalar_one_or_none()
    if not contestant:
        raise HTTPException(status_code=404, detail="Contestant not found")
    return contestant


@router.patch("/{contestant_id}", response_model=ContestantResponse)
async def update_contestant(
    season_id: int,
    contestant_id: int,
    body: ContestantUpdate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    result = await db.execute(
        select(Contestant).where(
            Contestant.id == contestant_id, Contestant.season_id == season_id
        )
    )
    contestant = result.scalar_one_or_none()
    if not contestant:
        raise HTTPException(status_code=404, detail="Contestant not found")

    update_data = body.model_dump(exclude_unset=True)
    if update_data.get("name") and update_data["name"] != contestant.name:
        await _check_name_free(db, season_id, [update_data["name"]])

    for field, value in update_data.items():
        setattr(contestant, field, value)

    await db.flush()
    await db.refresh(contestant)
    return contestant
