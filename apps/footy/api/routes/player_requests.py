"""Player request ("need players") route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from footy.api.auth_dependencies import get_current_player_id, require_admin
from footy.api.dependencies import get_request_broker
from footy.api.routes import limiter
from footy.database.db import get_db_session
from footy.models.schemas import (
    BroadcastResponse,
    CleanupResponse,
    PlayerRequestAnalyticsResponse,
    PlayerRequestCreate,
    PlayerRequestDetailResponse,
    PlayerRequestListItem,
    PlayerRequestRespond,
    PlayerRequestResponse,
    PlayerRequestUpdate,
)
from footy.services.errors import FootyError
from footy.services.player_request_service import PlayerRequestBroker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/player-requests", response_model=PlayerRequestResponse)
async def create_player_request(
    payload: PlayerRequestCreate,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Post a request for more players on an open match."""
    try:
        return await broker.create(
            session,
            match_id=payload.match_id,
            requester_id=player_id,
            position_needed=payload.position_needed,
            slots_available=payload.slots_available,
            target_skill_level=payload.target_skill_level,
            max_distance=payload.max_distance,
            message=payload.message,
            urgency=payload.urgency,
            auto_fulfill=payload.auto_fulfill,
            expires_at=payload.expires_at,
        )
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error creating player request: {e}")
        raise HTTPException(status_code=500, detail="Error creating player request")


@router.get("/api/player-requests", response_model=List[PlayerRequestListItem])
async def list_player_requests(
    kind: str = Query(default="received", pattern="^(received|sent)$"),
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Requests the current player received or sent."""
    try:
        return await broker.list_for_player(session, player_id, kind=kind)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error listing player requests: {e}")
        raise HTTPException(status_code=500, detail="Error listing player requests")


@router.post("/api/player-requests/cleanup", response_model=CleanupResponse)
async def cleanup_player_requests(
    admin_id: int = Depends(require_admin),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Expire every overdue request now (admin only)."""
    try:
        outcome = await broker.cleanup_expired(session)
        return {"expired_count": outcome.expired, "failed_request_ids": outcome.failed_request_ids}
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error cleaning up player requests: {e}")
        raise HTTPException(status_code=500, detail="Error cleaning up player requests")


@router.get("/api/player-requests/{request_id}", response_model=PlayerRequestDetailResponse)
async def get_player_request(
    request_id: int,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Request details for its creator or a contacted player."""
    try:
        return await broker.details(session, request_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading player request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading player request")


@router.put("/api/player-requests/{request_id}", response_model=PlayerRequestResponse)
async def update_player_request(
    request_id: int,
    payload: PlayerRequestUpdate,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit an active request (creator only)."""
    try:
        changes = payload.model_dump(exclude_unset=True)
        return await broker.update(session, request_id, player_id, changes)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error updating player request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating player request")


@router.delete("/api/player-requests/{request_id}", response_model=PlayerRequestResponse)
async def cancel_player_request(
    request_id: int,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel an active request (creator only)."""
    try:
        return await broker.cancel(session, request_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error cancelling player request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error cancelling player request")


@router.post("/api/player-requests/{request_id}/broadcast", response_model=BroadcastResponse)
@limiter.limit("10/minute")
async def broadcast_player_request(
    request: Request,
    request_id: int,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Contact every eligible nearby player (creator only)."""
    try:
        return await broker.broadcast(session, request_id, requester_id=player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error broadcasting player request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error broadcasting player request")


@router.post("/api/player-requests/{request_id}/respond", response_model=PlayerRequestResponse)
async def respond_to_player_request(
    request_id: int,
    payload: PlayerRequestRespond,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Answer a request you were contacted for."""
    try:
        return await broker.respond(session, request_id, player_id, payload.response)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error responding to player request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error responding to player request")


@router.get("/api/player-requests/{request_id}/analytics", response_model=PlayerRequestAnalyticsResponse)
async def get_player_request_analytics(
    request_id: int,
    player_id: int = Depends(get_current_player_id),
    broker: PlayerRequestBroker = Depends(get_request_broker),
    session: AsyncSession = Depends(get_db_session),
):
    """Response and success rates for a request (creator only)."""
    try:
        return await broker.analytics(session, request_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading analytics for player request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading request analytics")
