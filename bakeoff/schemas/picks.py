from pydantic import BaseModel
from datetime import datetime


class PickSubmit(BaseModel):
    pick_type: str
    contestant_ids: list[int]
    episode_id: int | None = None


class PickResponse(BaseModel):
    id: int
    season_id: int
    player_id: int
    episode_id: int | None
    pick_type: str
    contestant_id: int
    contestant_name: str = ""
    is_correct: bool | None
    points: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class StarBakerCount(BaseModel):
    contestant_id: int
    contestant_name: str
    count: int
    remaining: int


class StarBakerCountsResponse(BaseModel):
    season_id: int
    limit: int
    counts: list[StarBakerCount]


class HistoryPick(BaseModel):
    id: int
    pick_type: str
    contestant_id: int
    contestant_name: str
    is_correct: bool | None
    points: int


class HistoryEpisode(BaseModel):
    episode_id: int
    episode_number: int
    episode_title: str | None
    is_completed: bool
    picks: list[HistoryPick]


class PickHistoryResponse(BaseModel):
    season_id: int
    player_id: int
    history: list[HistoryEpisode]


class PublicPick(BaseModel):
    id: int
    episode_id: int | None
    pick_type: str
    contestant_id: int
    contestant_name: str
    is_correct: bool | None
    points: int


class PlayerPicks(BaseModel):
    player_id: int
    display_name: str
    finalist_picks: list[PublicPick]
    weekly_picks: list[PublicPick]


class SeasonPicksResponse(BaseModel):
    season_id: int
    episode_id: int | None = None
    players: list[PlayerPicks]
