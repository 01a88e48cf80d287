import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.database import get_db
from bakeoff.core.security import hash_password, verify_password, create_access_token
from bakeoff.core.config import get_settings
from bakeoff.models.models import Player
from bakeoff.schemas.auth import (
    PlayerRegister, PlayerLogin, TokenResponse, PlayerResponse, PasswordChange,
    PasswordResetResponse,
)
from bakeoff.api.deps import get_current_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])
settings = get_settings()

# No 0/O, 1/l/I so a temporary password reads back unambiguously
TEMP_PASSWORD_CHARS = "ABCDEFGHJKMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"


def _token_response(player: Player) -> TokenResponse:
    token = create_access_token({"sub": str(player.id), "is_admin": player.is_admin})
    return TokenResponse(
        access_token=token,
        player_id=player.id,
        display_name=player.display_name,
        is_admin=player.is_admin,
        must_change_password=player.must_change_password,
    )


async def _authenticate(db: AsyncSession, username: str, password: str) -> Player:
    result = await db.execute(select(Player).where(Player.username == username))
    player = result.scalar_one_or_none()
    if not player or not verify_password(password, player.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )
    return player


@router.post("/register", response_model=TokenResponse)
async def register(body: PlayerRegister, db: AsyncSession = Depends(get_db)):
    existing = await db.execute(select(Player).where(Player.username == body.username))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Username already taken")

    # The admin key turns a registration into an admin account; admins
    # run the game and never appear on the leaderboard.
    is_admin = body.admin_key is not None and body.admin_key == settings.admin_key

    player = Player(
        username=body.username,
        display_name=body.display_name,
        password_hash=hash_password(body.password),
        is_admin=is_admin,
    )
    db.add(player)
    await db.flush()
    await db.refresh(player)
    return _token_response(player)


@router.post("/login", response_model=TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return _token_response(await _authenticate(db, form_data.username, form_data.password))


@router.post("/login/json", response_model=TokenResponse)
async def login_json(body: PlayerLogin, db: AsyncSession = Depends(get_db)):
    return _token_response(await _authenticate(db, body.username, body.password))


@router.get("/me", response_model=PlayerResponse)
async def me(current_user: Player = Depends(get_current_user)):
    return current_user


@router.get("/players", response_model=list[PlayerResponse])
async def list_players(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_user),
):
    result = await db.execute(select(Player).order_by(Player.display_name))
    return result.scalars().all()


@router.post("/change-password", status_code=204)
async def change_password(
    body: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: Player = Depends(get_current_user),
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    current_user.password_hash = hash_password(body.new_password)
    current_user.must_change_password = False
    await db.flush()


@router.post("/players/{player_id}/reset-password", response_model=PasswordResetResponse)
async def reset_password(
    player_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    """Issue a temporary password; the player is asked to change it on next login."""
    result = await db.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")

    temp_password = "".join(secrets.choice(TEMP_PASSWORD_CHARS) for _ in range(12))
    player.password_hash = hash_password(temp_password)
    player.must_change_password = True
    await db.flush()
    logger.info("Password reset for player %s", player.username)
    return PasswordResetResponse(player_id=player.id, temp_password=temp_password)
