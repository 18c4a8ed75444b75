"""
Unit tests for notification service.
Tests notification creation, retrieval and the in-app dispatcher.
"""

import pytest
import pytest_asyncio
from footy.services import notification_service
from footy.services.notification_service import InAppNotificationDispatcher
from footy.database.models import NotificationType
from footy.services.errors import NotificationNotFound


@pytest_asyncio.fixture
async def test_player(make_player):
    """Create a test player for notification tests."""
    return await make_player("Notified Player")


@pytest.mark.asyncio
async def test_create_notification(db_session, test_player):
    """Test creating a single notification."""
    notification = await notification_service.create_notification(
        session=db_session,
        player_id=test_player.id,
        type=NotificationType.PLAYER_REQUEST.value,
        title="Player needed: GK",
        message="A nearby match needs 1 more player(s)",
        data={"request_id": 1},
        link_url="/player-requests/1",
    )

    assert notification["player_id"] == test_player.id
    assert notification["type"] == NotificationType.PLAYER_REQUEST.value
    assert notification["title"] == "Player needed: GK"
    assert notification["data"] == {"request_id": 1}
    assert notification["link_url"] == "/player-requests/1"
    assert notification["is_read"] is False
    assert notification["id"] > 0
    assert notification["created_at"] is not None


@pytest.mark.asyncio
async def test_create_notification_validation(db_session, test_player):
    """Test notification creation validation."""
    # Missing player_id
    with pytest.raises(ValueError, match="player_id is required"):
        await notification_service.create_notification(
            session=db_session,
            player_id=None,
            type=NotificationType.SANCTION_WARNING.value,
            title="Test",
            message="Test",
        )

    # Missing title
    with pytest.raises(ValueError, match="title is required"):
        await notification_service.create_notification(
            session=db_session,
            player_id=test_player.id,
            type=NotificationType.SANCTION_WARNING.value,
            title="",
            message="Test",
        )


@pytest.mark.asyncio
async def test_get_player_notifications_pagination(db_session, test_player):
    """Test fetching notifications newest first with pagination."""
    for i in range(3):
        await notification_service.create_notification(
            session=db_session,
            player_id=test_player.id,
            type=NotificationType.SANCTION_WARNING.value,
            title=f"Warning {i}",
            message="Be nice",
        )

    page = await notification_service.get_player_notifications(db_session, test_player.id, limit=2)

    assert page["total_count"] == 3
    assert len(page["notifications"]) == 2
    assert page["has_more"] is True
    assert await notification_service.get_unread_count(db_session, test_player.id) == 3


@pytest.mark.asyncio
async def test_mark_as_read(db_session, test_player, make_player):
    """Test marking one notification read, and refusing someone else's."""
    notification = await notification_service.create_notification(
        session=db_session,
        player_id=test_player.id,
        type=NotificationType.PLAYER_REQUEST.value,
        title="Player needed: CB",
        message="A nearby match needs 1 more player(s)",
    )

    read = await notification_service.mark_as_read(db_session, notification["id"], test_player.id)
    assert read["is_read"] is True
    assert read["read_at"] is not None
    assert await notification_service.get_unread_count(db_session, test_player.id) == 0

    stranger = await make_player()
    with pytest.raises(NotificationNotFound):
        await notification_service.mark_as_read(db_session, notification["id"], stranger.id)


@pytest.mark.asyncio
async def test_mark_all_as_read_only_touches_own_unread(db_session, test_player, make_player):
    """Test mark-all counts only the player's unread notifications."""
    other = await make_player()
    for player_id in (test_player.id, test_player.id, other.id):
        await notification_service.create_notification(
            session=db_session,
            player_id=player_id,
            type=NotificationType.SANCTION_WARNING.value,
            title="Warning",
            message="Be nice",
        )

    assert await notification_service.mark_all_as_read(db_session, test_player.id) == 2
    assert await notification_service.mark_all_as_read(db_session, test_player.id) == 0
    assert await notification_service.get_unread_count(db_session, test_player.id) == 0
    assert await notification_service.get_unread_count(db_session, other.id) == 1


@pytest.mark.asyncio
async def test_dispatcher_stores_inbox_rows(db_session, make_players):
    """Test the dispatcher writes one notification per recipient."""
    players = await make_players(2)
    dispatcher = InAppNotificationDispatcher()
    payload = {
        "type": NotificationType.SANCTION_SUSPENSION.value,
        "title": "Your account has been suspended",
        "message": "Suspension ends soon.",
        "data": {"days": 7},
    }

    delivered = await dispatcher.notify_many(db_session, [p.id for p in players], payload)

    assert delivered == 2
    for player in players:
        inbox = await notification_service.get_player_notifications(db_session, player.id)
        assert inbox["notifications"][0]["data"] == {"days": 7}


@pytest.mark.asyncio
async def test_dispatcher_reports_failure_without_raising(db_session, test_player):
    """Test an invalid payload is reported as not delivered."""
    dispatcher = InAppNotificationDispatcher()

    delivered = await dispatcher.notify(db_session, test_player.id, {"type": "sanction_ban", "title": ""})

    assert delivered is False
    assert await notification_service.get_unread_count(db_session, test_player.id) == 0
