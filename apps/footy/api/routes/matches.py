"""Match roster route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from footy.api.auth_dependencies import get_current_player_id
from footy.api.dependencies import get_roster_service
from footy.database.db import get_db_session
from footy.models.schemas import (
    CanJoinResponse,
    JoinMatchRequest,
    JoinMatchResponse,
    LeaveMatchResponse,
    MatchResponse,
)
from footy.services.errors import FootyError
from footy.services.roster_service import MatchRosterService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/matches/{match_id}/can-join", response_model=CanJoinResponse)
async def can_join_match(
    match_id: int,
    player_id: int = Depends(get_current_player_id),
    roster: MatchRosterService = Depends(get_roster_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Check whether the current player may join a match."""
    try:
        return await roster.can_join(session, match_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error checking join eligibility for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error checking join eligibility")


@router.post("/api/matches/{match_id}/join", response_model=JoinMatchResponse)
async def join_match(
    match_id: int,
    payload: JoinMatchRequest,
    player_id: int = Depends(get_current_player_id),
    roster: MatchRosterService = Depends(get_roster_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Join the smaller team of a match."""
    try:
        return await roster.join(
            session,
            match_id,
            player_id,
            preferred_position=payload.preferred_position,
            request_id=payload.request_id,
        )
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error joining match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error joining match")


@router.post("/api/matches/{match_id}/leave", response_model=LeaveMatchResponse)
async def leave_match(
    match_id: int,
    player_id: int = Depends(get_current_player_id),
    roster: MatchRosterService = Depends(get_roster_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave a match that has not started."""
    try:
        return await roster.leave(session, match_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error leaving match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error leaving match")


@router.post("/api/matches/{match_id}/start", response_model=MatchResponse)
async def start_match(
    match_id: int,
    player_id: int = Depends(get_current_player_id),
    roster: MatchRosterService = Depends(get_roster_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Start a match (organizer or referee)."""
    try:
        return await roster.start(session, match_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error starting match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error starting match")


@router.post("/api/matches/{match_id}/end", response_model=MatchResponse)
async def end_match(
    match_id: int,
    player_id: int = Depends(get_current_player_id),
    roster: MatchRosterService = Depends(get_roster_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Complete a match (organizer or referee). Opens rating for participants."""
    try:
        return await roster.end(session, match_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error ending match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error ending match")


@router.post("/api/matches/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    player_id: int = Depends(get_current_player_id),
    roster: MatchRosterService = Depends(get_roster_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a match (organizer only)."""
    try:
        return await roster.cancel(session, match_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error cancelling match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error cancelling match")
