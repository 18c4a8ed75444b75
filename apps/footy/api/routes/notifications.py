"""Notification inbox route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from footy.api.auth_dependencies import get_current_player_id
from footy.database.db import get_db_session
from footy.models.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from footy.services import notification_service
from footy.services.errors import FootyError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/notifications", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
    player_id: int = Depends(get_current_player_id),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the acting player's notifications, newest first."""
    try:
        return await notification_service.get_player_notifications(
            session, player_id, limit=limit, offset=offset, unread_only=unread_only
        )
    except Exception as e:
        logger.error(f"Error fetching notifications: {e}")
        raise HTTPException(status_code=500, detail="Error fetching notifications")


@router.get("/api/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    player_id: int = Depends(get_current_player_id),
    session: AsyncSession = Depends(get_db_session),
):
    """Get unread notification count for the acting player."""
    try:
        count = await notification_service.get_unread_count(session, player_id)
        return {"count": count}
    except Exception as e:
        logger.error(f"Error fetching unread count: {e}")
        raise HTTPException(status_code=500, detail="Error fetching unread count")


@router.put("/api/notifications/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_notifications_as_read(
    player_id: int = Depends(get_current_player_id),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark all of the acting player's notifications as read."""
    try:
        count = await notification_service.mark_all_as_read(session, player_id)
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Error marking all notifications as read: {e}")
        raise HTTPException(status_code=500, detail="Error marking all notifications as read")


@router.put("/api/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
    notification_id: int,
    player_id: int = Depends(get_current_player_id),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a single notification as read."""
    try:
        return await notification_service.mark_as_read(session, notification_id, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error marking notification as read: {e}")
        raise HTTPException(status_code=500, detail="Error marking notification as read")
