from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.database import get_db
from bakeoff.core.events import EventBroker, get_broker, safe_publish
from bakeoff.models.models import Player, Season
from bakeoff.schemas.leaderboard import (
    LeaderboardEntry, LeaderboardResponse, RecalculateResponse, ScoringRulesResponse,
)
from bakeoff.api.deps import get_current_user, require_admin
from bakeoff.services.leaderboard import build_leaderboard
from bakeoff.services.scoring_engine import SCORING_RULES, recalculate_season_scores

router = APIRouter(prefix="/api/seasons/{season_id}", tags=["Scoring"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    result = await db.execute(select(Season).where(Season.id == season_id))
    if not result.scalar_one_or_none():
        raise HTTPException(status_code=404, detail="Season not found")

    entries = await build_leaderboard(db, season_id)
    return LeaderboardResponse(
        season_id=season_id,
        entries=[LeaderboardEntry(**e) for e in entries],
    )


@router.get("/scoring-rules", response_model=ScoringRulesResponse)
async def scoring_rules(
    season_id: int,
    _: Player = Depends(get_current_user),
):
    return ScoringRulesResponse(rules=SCORING_RULES)


@router.post("/scores/recalculate", response_model=RecalculateResponse)
async def recalculate_scores(
    season_id: int,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
    _: Player = Depends(require_admin),
):
    """The "fix" button: rescore every completed episode from scratch."""
    result = await recalculate_season_scores(db, season_id)
    await db.commit()
    safe_publish(broker, "scores_updated", {"reason": "recalculated", **result}, season_id)
    return RecalculateResponse(**result)
