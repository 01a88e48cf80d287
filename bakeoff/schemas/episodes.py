from pydantic import BaseModel, Field
from datetime import datetime


class EpisodeCreate(BaseModel):
    episode_number: int = Field(..., gt=0)
    title: str | None = None
    air_date: datetime | None = None
    notes: str | None = None
    is_active: bool = False


class EpisodeUpdate(BaseModel):
    episode_number: int | None = Field(default=None, gt=0)
    title: str | None = None
    air_date: datetime | None = None
    notes: str | None = None


class EpisodeActiveUpdate(BaseModel):
    is_active: bool


class EpisodeResultSubmit(BaseModel):
    star_baker_id: int
    eliminated_id: int


class BonusInput(BaseModel):
    type: str  # technical_challenge | handshake | soggy_bottom
    contestant_id: int


class BonusCountInput(BaseModel):
    type: str  # handshake | soggy_bottom
    contestant_id: int
    count: int = Field(..., ge=0)


class BonusCountItem(BaseModel):
    contestant_id: int
    count: int


class EpisodeResponse(BaseModel):
    id: int
    season_id: int
    episode_number: int
    title: str | None
    air_date: datetime | None
    notes: str | None
    is_active: bool
    is_completed: bool
    star_baker_id: int | None
    eliminated_id: int | None
    technical_winner_id: int | None

    model_config = {"from_attributes": True}


class EpisodeDetailResponse(EpisodeResponse):
    handshakes: list[BonusCountItem] = []
    soggy_bottoms: list[BonusCountItem] = []


class PlayerPickStatus(BaseModel):
    player_id: int
    display_name: str
    has_submitted: bool


class EpisodePickStatusResponse(BaseModel):
    episode_id: int
    all_submitted: bool
    submitted_count: int
    total_count: int
    players: list[PlayerPickStatus]
