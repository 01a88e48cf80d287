from pydantic import BaseModel, Field
from datetime import datetime


class SeasonCreate(BaseModel):
    season_number: int = Field(..., gt=0)
    name: str = Field(..., max_length=100)
    star_baker_pick_limit: int | None = Field(default=None, gt=0)  # settings default when omitted


class SeasonUpdate(BaseModel):
    name: str | None = None
    star_baker_pick_limit: int | None = Field(default=None, gt=0)


class SeasonStatusUpdate(BaseModel):
    status: str


class SeasonFinalize(BaseModel):
    finalist_ids: list[int]


class SeasonFinalizeResponse(BaseModel):
    season_id: int
    finalist_ids: list[int]
    finalist_picks_scored: int
    correct_finalist_picks: int
    players_scored: int


class SeasonResponse(BaseModel):
    id: int
    season_number: int
    name: str
    status: str
    star_baker_pick_limit: int
    finalist_ids: list[int] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SeasonDetailResponse(SeasonResponse):
    contestant_count: int = 0
    episode_count: int = 0
    completed_episode_count: int = 0
    player_count: int = 0
