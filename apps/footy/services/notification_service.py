"""
Notification service for player notifications.

Handles creation and retrieval of in-app notifications, and provides the
default notification dispatcher used by the sanction engine and the player
request broker.
"""

from typing import List, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, update
from footy.database.models import Notification
from footy.services.errors import NotificationNotFound
from footy.utils.datetime_utils import utcnow
import json
import logging

logger = logging.getLogger(__name__)


def _notification_to_dict(notification: Notification) -> Dict:
    return {
        "id": notification.id,
        "player_id": notification.player_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": json.loads(notification.data) if notification.data else None,
        "is_read": notification.is_read,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
        "link_url": notification.link_url,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


async def create_notification(
    session: AsyncSession,
    player_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None
) -> Dict:
    """
    Create a single notification for a player.

    Args:
        session: Database session
        player_id: ID of the player to notify
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        data: Optional JSON metadata (dict will be serialized to JSON string)
        link_url: Optional URL for navigation when notification is clicked

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing or invalid
    """
    if not player_id:
        raise ValueError("player_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    # Serialize data dict to JSON string if provided
    data_json = None
    if data is not None:
        data_json = json.dumps(data)

    notification = Notification(
        player_id=player_id,
        type=type,
        title=title,
        message=message,
        data=data_json,
        link_url=link_url,
        is_read=False,
        created_at=utcnow(),
    )

    session.add(notification)
    await session.flush()

    return _notification_to_dict(notification)


async def get_player_notifications(
    session: AsyncSession,
    player_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Fetch player notifications with pagination.

    Returns:
        Dict containing:
            - notifications: List of notification dicts (ordered by created_at DESC)
            - total_count: Total number of notifications matching the criteria
            - has_more: Boolean indicating if there are more notifications
    """
    query = select(Notification).where(Notification.player_id == player_id)

    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await session.execute(count_query)
    total_count = total_result.scalar_one() or 0

    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    result = await session.execute(query)
    notification_dicts = [_notification_to_dict(n) for n in result.scalars().all()]

    has_more = (offset + len(notification_dicts)) < total_count

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": has_more,
    }


async def get_unread_count(session: AsyncSession, player_id: int) -> int:
    """Count of unread notifications for a player."""
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            and_(
                Notification.player_id == player_id,
                Notification.is_read == False  # noqa: E712
            )
        )
    )
    return result.scalar_one() or 0


async def mark_as_read(session: AsyncSession, notification_id: int, player_id: int) -> Dict:
    """
    Mark a single notification as read.

    Args:
        session: Database session
        notification_id: ID of the notification
        player_id: ID of the player (the notification must belong to them)

    Returns:
        Updated notification dict

    Raises:
        NotificationNotFound: If notification not found or doesn't belong to the player
    """
    result = await session.execute(
        select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.player_id == player_id
            )
        )
    )
    notification = result.scalar_one_or_none()

    if not notification:
        raise NotificationNotFound(f"Notification {notification_id} not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await session.flush()

    return _notification_to_dict(notification)


async def mark_all_as_read(session: AsyncSession, player_id: int) -> int:
    """
    Mark all of a player's notifications as read.

    Returns:
        Count of notifications marked as read
    """
    result = await session.execute(
        update(Notification)
        .where(
            and_(
                Notification.player_id == player_id,
                Notification.is_read == False  # noqa: E712
            )
        )
        .values(is_read=True, read_at=utcnow())
        .returning(Notification.id)
    )
    count = len(result.scalars().all())
    await session.flush()
    return count


class InAppNotificationDispatcher:
    """
    Default notification dispatcher: writes a row to the notifications inbox.

    Delivery is fire-and-forget from the caller's point of view. A failure is
    logged and reported as False, never raised.
    """

    async def notify(self, session: AsyncSession, player_id: int, payload: Dict) -> bool:
        """
        Args:
            session: Database session
            player_id: Recipient
            payload: Dict with ``type``, ``title``, ``message`` and optional
                ``data`` and ``link_url``

        Returns:
            True if the notification was stored
        """
        try:
            await create_notification(
                session=session,
                player_id=player_id,
                type=payload.get("type"),
                title=payload.get("title"),
                message=payload.get("message"),
                data=payload.get("data"),
                link_url=payload.get("link_url"),
            )
            return True
        except Exception as e:
            logger.warning(f"Failed to notify player {player_id}: {e}")
            return False

    async def notify_many(self, session: AsyncSession, player_ids: List[int], payload: Dict) -> int:
        """Notify each player in turn. Returns how many deliveries succeeded."""
        delivered = 0
        for player_id in player_ids:
            if await self.notify(session, player_id, payload):
                delivered += 1
        return delivered
