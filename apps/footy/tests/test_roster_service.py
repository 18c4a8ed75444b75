"""
Unit tests for the match roster service.

Covers join eligibility, team balancing, the open/full status invariant,
leave rules and the start/end/cancel lifecycle.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from footy.database.models import Match, MatchRosterEntry, Player, Team
from footy.services import roster_service
from footy.services.errors import (
    AlreadyRostered,
    ConflictError,
    DeadlinePassed,
    InsufficientPlayers,
    InvalidState,
    IsOrganizer,
    MatchLocked,
    MatchNotFound,
    MatchNotOpen,
    NotAuthorized,
    NotRostered,
    PlayerSuspended,
    SkillLevelTooLow,
)
from footy.services.roster_service import MatchRosterService

from conftest import NOW


@pytest_asyncio.fixture
async def organizer(make_player):
    return await make_player("Olivia Organizer")


@pytest.fixture
def roster(clock):
    return MatchRosterService(clock=clock)


def _team_ids(match, team):
    return [e.player_id for e in roster_service.team_entries(match, team)]


# ──────────────────────────────────────────────────────────────
# Pure invariants
# ──────────────────────────────────────────────────────────────


def test_available_slots_counts_both_rosters():
    match = Match(
        max_players_per_team=5,
        roster_entries=[
            MatchRosterEntry(player_id=1, team=Team.A.value),
            MatchRosterEntry(player_id=2, team=Team.B.value),
            MatchRosterEntry(player_id=3, team=Team.B.value),
        ],
    )
    assert roster_service.available_slots(match) == 7


def test_sync_match_status_flips_open_and_full():
    entries = [MatchRosterEntry(player_id=i, team=Team.A.value) for i in range(5)]
    entries += [MatchRosterEntry(player_id=10 + i, team=Team.B.value) for i in range(5)]
    match = Match(max_players_per_team=5, status="open", roster_entries=entries)

    roster_service.sync_match_status(match, NOW)
    assert match.status == "full"
    assert match.last_activity_at == NOW

    match.roster_entries.pop()
    roster_service.sync_match_status(match, NOW)
    assert match.status == "open"


@pytest.mark.parametrize("status", ["ongoing", "completed", "cancelled"])
def test_sync_match_status_never_leaves_terminal_or_running_states(status):
    match = Match(max_players_per_team=5, status=status, roster_entries=[])
    roster_service.sync_match_status(match, NOW)
    assert match.status == status


def test_roster_consistency_detects_double_membership():
    match = Match(
        id=99,
        max_players_per_team=5,
        roster_entries=[
            MatchRosterEntry(player_id=7, team=Team.A.value),
            MatchRosterEntry(player_id=7, team=Team.B.value),
        ],
    )
    with pytest.raises(ConflictError):
        roster_service.check_roster_consistency(match)


# ──────────────────────────────────────────────────────────────
# can_join
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_can_join_open_match(db_session, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id)

    result = await roster.can_join(db_session, match.id, player.id)
    assert result == {"allowed": True, "reason": None, "kind": None}


@pytest.mark.asyncio
async def test_can_join_refuses_organizer(db_session, roster, organizer, make_match):
    match = await make_match(organizer.id)

    result = await roster.can_join(db_session, match.id, organizer.id)
    assert result["allowed"] is False
    assert result["kind"] == "IsOrganizer"


@pytest.mark.asyncio
async def test_can_join_refuses_rostered_player(db_session, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id, team_b=[player.id])

    result = await roster.can_join(db_session, match.id, player.id)
    assert result["kind"] == "AlreadyRostered"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["full", "ongoing", "completed", "cancelled"])
async def test_can_join_refuses_match_not_open(db_session, roster, organizer, make_player, make_match, status):
    player = await make_player()
    match = await make_match(organizer.id, status=status)

    result = await roster.can_join(db_session, match.id, player.id)
    assert result["kind"] == "MatchNotOpen"


@pytest.mark.asyncio
async def test_can_join_after_deadline(db_session, clock, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id, date_time=NOW + timedelta(minutes=30))

    clock.advance(minutes=14)
    assert (await roster.can_join(db_session, match.id, player.id))["allowed"] is True

    clock.advance(minutes=2)
    result = await roster.can_join(db_session, match.id, player.id)
    assert result["kind"] == "DeadlinePassed"


@pytest.mark.asyncio
async def test_can_join_unknown_match(db_session, roster, make_player):
    player = await make_player()
    with pytest.raises(MatchNotFound):
        await roster.can_join(db_session, 12345, player.id)


# ──────────────────────────────────────────────────────────────
# join
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_join_balances_teams_with_ties_to_team_a(
    db_session, roster, organizer, make_players, make_match
):
    """4 on teamA and 3 on teamB: next joins teamB, the one after breaks the tie to teamA."""
    rostered = await make_players(7)
    player9, player10 = await make_players(2)
    match = await make_match(
        organizer.id,
        team_a=[p.id for p in rostered[:4]],
        team_b=[p.id for p in rostered[4:]],
    )

    first = await roster.join(db_session, match.id, player9.id)
    assert first["team"] == "teamB"
    assert first["available_slots"] == 2
    assert first["status"] == "open"

    second = await roster.join(db_session, match.id, player10.id)
    assert second["team"] == "teamA"
    assert second["available_slots"] == 1
    assert len(_team_ids(match, Team.A)) == 5
    assert len(_team_ids(match, Team.B)) == 4


@pytest.mark.asyncio
async def test_join_records_position_and_time(db_session, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id)

    await roster.join(db_session, match.id, player.id, preferred_position="GK")

    entry = match.roster_entries[0]
    assert entry.player_id == player.id
    assert entry.position == "GK"
    assert entry.joined_at == NOW


@pytest.mark.asyncio
async def test_join_last_slot_marks_match_full(db_session, roster, organizer, make_players, make_match):
    rostered = await make_players(9)
    last = (await make_players(1))[0]
    match = await make_match(
        organizer.id,
        team_a=[p.id for p in rostered[:5]],
        team_b=[p.id for p in rostered[5:]],
    )

    result = await roster.join(db_session, match.id, last.id)
    assert result["available_slots"] == 0
    assert result["status"] == "full"

    latecomer = (await make_players(1))[0]
    with pytest.raises(MatchNotOpen):
        await roster.join(db_session, match.id, latecomer.id)


@pytest.mark.asyncio
async def test_join_then_leave_restores_slots(db_session, roster, organizer, make_players, make_match):
    rostered = await make_players(3)
    player = (await make_players(1))[0]
    match = await make_match(organizer.id, team_a=[rostered[0].id], team_b=[p.id for p in rostered[1:]])
    before = roster_service.available_slots(match)

    joined = await roster.join(db_session, match.id, player.id)
    left = await roster.leave(db_session, match.id, player.id)

    assert left["from_team"] == joined["team"]
    assert left["available_slots"] == before
    assert player.id not in roster_service.roster_player_ids(match)


@pytest.mark.asyncio
async def test_join_rejects_already_rostered(db_session, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id, team_a=[player.id])

    with pytest.raises(AlreadyRostered):
        await roster.join(db_session, match.id, player.id)


@pytest.mark.asyncio
async def test_join_rejects_organizer(db_session, roster, organizer, make_match):
    match = await make_match(organizer.id)
    with pytest.raises(IsOrganizer):
        await roster.join(db_session, match.id, organizer.id)


@pytest.mark.asyncio
async def test_join_rejects_after_deadline(db_session, clock, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id, date_time=NOW + timedelta(minutes=10))

    with pytest.raises(DeadlinePassed):
        await roster.join(db_session, match.id, player.id)


@pytest.mark.asyncio
async def test_join_rejects_low_skill(db_session, roster, organizer, make_player, make_match):
    beginner = await make_player(skill_level="Beginner")
    pro = await make_player(skill_level="Professional")
    match = await make_match(organizer.id, skill_level_required="Advanced")

    with pytest.raises(SkillLevelTooLow):
        await roster.join(db_session, match.id, beginner.id)

    result = await roster.join(db_session, match.id, pro.id)
    assert result["team"] == "teamA"


@pytest.mark.asyncio
async def test_join_rejects_suspended_player(db_session, roster, organizer, make_player, make_match):
    player = await make_player(
        is_suspended=True,
        suspension_reason="Too many reports",
        suspension_expires_at=NOW + timedelta(days=3),
    )
    match = await make_match(organizer.id)

    with pytest.raises(PlayerSuspended):
        await roster.join(db_session, match.id, player.id)


@pytest.mark.asyncio
async def test_join_allows_player_whose_suspension_has_ended(db_session, roster, organizer, make_player, make_match):
    player = await make_player(is_suspended=True, suspension_expires_at=NOW - timedelta(minutes=1))
    match = await make_match(organizer.id)

    result = await roster.join(db_session, match.id, player.id)
    assert result["team"] == "teamA"


@pytest.mark.asyncio
async def test_join_rejects_banned_player(db_session, roster, organizer, make_player, make_match):
    player = await make_player(is_banned=True, is_active=False)
    match = await make_match(organizer.id)

    with pytest.raises(PlayerSuspended):
        await roster.join(db_session, match.id, player.id)


@pytest.mark.asyncio
async def test_join_never_exceeds_capacity(db_session, roster, organizer, make_players, make_match):
    players = await make_players(12)
    match = await make_match(organizer.id)

    for player in players:
        try:
            await roster.join(db_session, match.id, player.id)
        except MatchNotOpen:
            pass

    assert len(match.roster_entries) == 10
    assert match.status == "full"
    assert len(roster_service.roster_player_ids(match)) == 10


# ──────────────────────────────────────────────────────────────
# leave
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_leave_full_match_reopens_it(db_session, roster, organizer, make_players, make_match):
    players = await make_players(10)
    match = await make_match(
        organizer.id,
        team_a=[p.id for p in players[:5]],
        team_b=[p.id for p in players[5:]],
        status="full",
    )

    result = await roster.leave(db_session, match.id, players[7].id)
    assert result["from_team"] == "teamB"
    assert result["available_slots"] == 1
    assert result["status"] == "open"


@pytest.mark.asyncio
async def test_leave_not_rostered(db_session, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id)

    with pytest.raises(NotRostered):
        await roster.leave(db_session, match.id, player.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["ongoing", "completed"])
async def test_leave_locked_once_started(db_session, roster, organizer, make_player, make_match, status):
    player = await make_player()
    match = await make_match(organizer.id, team_a=[player.id], status=status)

    with pytest.raises(MatchLocked):
        await roster.leave(db_session, match.id, player.id)


# ──────────────────────────────────────────────────────────────
# start / end / cancel
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_requires_organizer_or_referee(db_session, roster, organizer, make_players, make_match):
    players = await make_players(4)
    referee = (await make_players(1))[0]
    match = await make_match(
        organizer.id,
        team_a=[p.id for p in players[:2]],
        team_b=[p.id for p in players[2:]],
        referee_id=referee.id,
    )

    with pytest.raises(NotAuthorized):
        await roster.start(db_session, match.id, players[0].id)

    started = await roster.start(db_session, match.id, referee.id)
    assert started.status == "ongoing"
    assert started.started_at == NOW


@pytest.mark.asyncio
async def test_start_requires_minimum_players_per_team(db_session, roster, organizer, make_players, make_match):
    players = await make_players(5)
    match = await make_match(
        organizer.id,
        format="7v7",
        team_a=[p.id for p in players[:3]],
        team_b=[p.id for p in players[3:]],
    )

    with pytest.raises(InsufficientPlayers):
        await roster.start(db_session, match.id, organizer.id)


@pytest.mark.asyncio
async def test_start_rejects_cancelled_match(db_session, roster, organizer, make_match):
    match = await make_match(organizer.id, status="cancelled")
    with pytest.raises(InvalidState):
        await roster.start(db_session, match.id, organizer.id)


@pytest.mark.asyncio
async def test_end_completes_and_credits_players(db_session, clock, roster, organizer, make_players, make_match):
    players = await make_players(4)
    match = await make_match(
        organizer.id,
        team_a=[p.id for p in players[:2]],
        team_b=[p.id for p in players[2:]],
    )

    with pytest.raises(InvalidState):
        await roster.end(db_session, match.id, organizer.id)

    await roster.start(db_session, match.id, organizer.id)
    clock.advance(minutes=90)
    ended = await roster.end(db_session, match.id, organizer.id)

    assert ended.status == "completed"
    assert ended.ended_at == NOW + timedelta(minutes=90)
    result = await db_session.execute(select(Player).where(Player.id.in_([p.id for p in players])))
    assert all(p.matches_played == 1 for p in result.scalars().all())


@pytest.mark.asyncio
async def test_cancel_by_organizer_only(db_session, roster, organizer, make_player, make_match):
    player = await make_player()
    match = await make_match(organizer.id, team_a=[player.id])

    with pytest.raises(NotAuthorized):
        await roster.cancel(db_session, match.id, player.id)

    cancelled = await roster.cancel(db_session, match.id, organizer.id)
    assert cancelled.status == "cancelled"

    with pytest.raises(InvalidState):
        await roster.cancel(db_session, match.id, organizer.id)


@pytest.mark.asyncio
async def test_cancel_completed_match_rejected(db_session, roster, organizer, make_match):
    match = await make_match(organizer.id, status="completed")
    with pytest.raises(InvalidState):
        await roster.cancel(db_session, match.id, organizer.id)
