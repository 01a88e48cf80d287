from pydantic import BaseModel, Field


class ContestantCreate(BaseModel):
    name: str = Field(..., max_length=100)
    age: int | None = None
    occupation: str | None = None
    hometown: str | None = None
    bio: str | None = None
    photo_url: str | None = None


class ContestantBulkCreate(BaseModel):
    contestants: list[ContestantCreate]


class ContestantUpdate(BaseModel):
    # No is_eliminated: only recorded results move that flag
    name: str | None = None
    age: int | None = None
    occupation: str | None = None
    hometown: str | None = None
    bio: str | None = None
    photo_url: str | None = None


class ContestantResponse(BaseModel):
    id: int
    season_id: int
    name: str
    age: int | None
    occupation: str | None
    hometown: str | None
    bio: str | None
    photo_url: str | None
    is_eliminated: bool

    model_config = {"from_attributes": True}


class EliminationRecalculateResponse(BaseModel):
    total_contestants: int
    eliminated_count: int
    changed: int
