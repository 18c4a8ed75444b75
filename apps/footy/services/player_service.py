"""
Player directory helpers shared by the roster, reputation and request services.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from footy.database.models import Player
from footy.services.errors import PlayerNotFound
from footy.utils.constants import ANY_SKILL_LEVEL, SKILL_LEVELS
from footy.utils.datetime_utils import ensure_utc


async def get_player(session: AsyncSession, player_id: int) -> Player:
    """
    Load a player by id.

    Raises:
        PlayerNotFound: If no player has that id
    """
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    if player is None:
        raise PlayerNotFound(f"Player {player_id} not found")
    return player


def skill_rank(skill_level: Optional[str]) -> int:
    """Position of a skill level on the ordered scale; unknown levels rank below Beginner."""
    try:
        return SKILL_LEVELS.index(skill_level)
    except ValueError:
        return -1


def meets_skill_level(player_skill: Optional[str], required: Optional[str]) -> bool:
    """True if player_skill is at or above required (``Any`` always passes)."""
    if not required or required == ANY_SKILL_LEVEL:
        return True
    return skill_rank(player_skill) >= skill_rank(required)


def is_currently_suspended(player: Player, now: datetime) -> bool:
    """
    A suspension is binding until its expiry passes. Open-ended suspensions
    (no expiry recorded) stay binding until lifted.
    """
    if not player.is_suspended:
        return False
    expires_at = ensure_utc(player.suspension_expires_at)
    return expires_at is None or expires_at > now


def is_available(player: Player, now: datetime) -> bool:
    """Active, not banned and not under a binding suspension."""
    return bool(player.is_active) and not player.is_banned and not is_currently_suspended(player, now)
