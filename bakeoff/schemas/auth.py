from pydantic import BaseModel, Field


class PlayerRegister(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    admin_key: str | None = None


class PlayerLogin(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    player_id: int
    display_name: str
    is_admin: bool
    must_change_password: bool = False


class PlayerResponse(BaseModel):
    id: int
    username: str
    display_name: str
    is_admin: bool
    must_change_password: bool = False

    model_config = {"from_attributes": True}


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class PasswordResetResponse(BaseModel):
    player_id: int
    temp_password: str
