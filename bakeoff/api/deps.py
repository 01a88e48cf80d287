"""
Auth dependencies shared by the routers.

Tokens carry the player id and the admin flag they were issued with. The
player is loaded fresh on every request and a token whose admin flag no
longer matches the stored player is refused, so promoting or demoting an
account takes effect at its next login.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError

from bakeoff.core.database import get_db
from bakeoff.core.security import decode_access_token
from bakeoff.models.models import Player

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _unauthorized(detail: str = "Invalid or expired token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _read_claims(token: str) -> tuple[int, bool | None]:
    try:
        payload = decode_access_token(token)
        return int(payload.get("sub")), payload.get("is_admin")
    except (JWTError, ValueError, TypeError):
        raise _unauthorized()


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Player:
    player_id, token_is_admin = _read_claims(token)

    player = await db.get(Player, player_id)
    if player is None:
        raise _unauthorized()
    if token_is_admin is not None and token_is_admin != player.is_admin:
        raise _unauthorized("Account role changed; please log in again")
    return player


async def require_admin(current_user: Player = Depends(get_current_user)) -> Player:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


async def require_player(current_user: Player = Depends(get_current_user)) -> Player:
    """Admins run the league but don't play in it."""
    if current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins cannot submit picks")
    return current_user
