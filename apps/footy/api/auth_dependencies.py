"""
Authentication dependencies for FastAPI routes.

Authentication happens in the fronting gateway, which forwards the acting
player's id in ``X-Player-Id`` and, for moderators, ``X-Player-Role: admin``.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from footy.database.db import get_db_session
from footy.services import player_service
from footy.services.errors import PlayerNotFound

ADMIN_ROLE = "admin"


async def get_current_player_id(
    x_player_id: Optional[int] = Header(default=None),
    session: AsyncSession = Depends(get_db_session),
) -> int:
    """
    Dependency returning the id of the acting player.

    Raises:
        HTTPException: 401 if the header is missing or names an unknown player
    """
    if x_player_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Player-Id header",
        )
    try:
        await player_service.get_player(session, x_player_id)
    except PlayerNotFound:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Player not found",
        )
    return x_player_id


async def require_admin(
    player_id: int = Depends(get_current_player_id),
    x_player_role: Optional[str] = Header(default=None),
) -> int:
    """
    Dependency that requires a moderator.

    Returns:
        The moderator's player id

    Raises:
        HTTPException: 403 if the acting player is not an admin
    """
    if (x_player_role or "").lower() != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return player_id
