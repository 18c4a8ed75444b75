"""
Match roster service.

Owns join/leave eligibility, team balancing and the open/full status
invariant for a match's two rosters, plus the start/end/cancel lifecycle.
Roster invariants are enforced by the plain functions below, which the
service calls explicitly after every mutation.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from footy.database.models import Match, MatchRosterEntry, MatchStatus, Player, Team
from footy.services import player_service
from footy.services.errors import (
    AlreadyRostered,
    ConflictError,
    DeadlinePassed,
    FootyError,
    InsufficientPlayers,
    InvalidInput,
    InvalidState,
    IsOrganizer,
    MatchLocked,
    MatchNotFound,
    MatchNotOpen,
    NotAuthorized,
    NotRostered,
    PlayerSuspended,
    RequestNotActive,
    SkillLevelTooLow,
)
from footy.utils.constants import (
    DEFAULT_LATE_JOIN_DEADLINE_MINUTES,
    FORMAT_MIN_PLAYERS,
)
from footy.utils.datetime_utils import SystemClock, ensure_utc

logger = logging.getLogger(__name__)


# --- Roster invariants (pure functions over a loaded match) ---


def team_entries(match: Match, team: Team) -> List[MatchRosterEntry]:
    """Roster entries for one side, in join order."""
    return [entry for entry in match.roster_entries if entry.team == team.value]


def roster_player_ids(match: Match) -> Set[int]:
    """Snapshot of every rostered player id across both teams."""
    return {entry.player_id for entry in match.roster_entries}


def team_of(match: Match, player_id: int) -> Optional[Team]:
    """Which side a player is on, searching teamA first."""
    for team in (Team.A, Team.B):
        if any(entry.player_id == player_id for entry in team_entries(match, team)):
            return team
    return None


def available_slots(match: Match) -> int:
    return match.max_players_per_team * 2 - len(match.roster_entries)


def sync_match_status(match: Match, now: datetime) -> None:
    """
    Flip open <-> full as available slots cross zero. Never moves a match
    out of ongoing/completed/cancelled.
    """
    slots = available_slots(match)
    if match.status == MatchStatus.OPEN.value and slots <= 0:
        match.status = MatchStatus.FULL.value
    elif match.status == MatchStatus.FULL.value and slots > 0:
        match.status = MatchStatus.OPEN.value
    # Touching the row bumps the version column so concurrent roster edits conflict
    match.last_activity_at = now


def check_roster_consistency(match: Match) -> None:
    """
    Raise ConflictError if a player shows up on a roster more than once
    (or on both rosters). The unique index should make this unreachable.
    """
    seen: Set[int] = set()
    for entry in match.roster_entries:
        if entry.player_id in seen:
            logger.error(
                f"Roster integrity violation: player {entry.player_id} appears twice in match {match.id}"
            )
            raise ConflictError(f"Player {entry.player_id} is rostered twice in match {match.id}")
        seen.add(entry.player_id)


def join_blocker(match: Match, player_id: int, now: datetime) -> Optional[FootyError]:
    """Return the error that prevents player_id from joining, or None."""
    if match.status != MatchStatus.OPEN.value or available_slots(match) <= 0:
        return MatchNotOpen()
    if team_of(match, player_id) is not None:
        return AlreadyRostered()
    if match.organizer_id == player_id:
        return IsOrganizer()
    deadline_minutes = match.late_join_deadline_minutes
    if deadline_minutes is None:
        deadline_minutes = DEFAULT_LATE_JOIN_DEADLINE_MINUTES
    join_deadline = ensure_utc(match.date_time) - timedelta(minutes=deadline_minutes)
    if now > join_deadline:
        return DeadlinePassed()
    return None


def can_join(match: Match, player_id: int, now: datetime) -> Dict:
    """
    Check whether a player may join a match. No side effects.

    Returns:
        Dict with ``allowed`` and, when refused, ``reason`` and ``kind``
    """
    blocker = join_blocker(match, player_id, now)
    if blocker is None:
        return {"allowed": True, "reason": None, "kind": None}
    return {"allowed": False, "reason": blocker.message, "kind": blocker.kind}


def min_players_to_start(match: Match) -> int:
    return FORMAT_MIN_PLAYERS.get(match.format, max(FORMAT_MIN_PLAYERS.values()))


async def get_match(session: AsyncSession, match_id: int) -> Match:
    """
    Load a match with its rosters.

    Raises:
        MatchNotFound: If no match has that id
    """
    result = await session.execute(select(Match).where(Match.id == match_id))
    match = result.scalar_one_or_none()
    if match is None:
        raise MatchNotFound(f"Match {match_id} not found")
    return match


class MatchRosterService:
    """Join/leave and lifecycle operations for a match's two rosters."""

    def __init__(self, clock=None, request_broker=None):
        """
        Args:
            clock: Time source with a ``now()`` method (defaults to system time)
            request_broker: Optional PlayerRequestBroker; joins made through a
                player request are recorded on it
        """
        self.clock = clock or SystemClock()
        self.request_broker = request_broker

    async def can_join(self, session: AsyncSession, match_id: int, player_id: int) -> Dict:
        """Eligibility check by match id (see ``can_join``)."""
        match = await get_match(session, match_id)
        return can_join(match, player_id, self.clock.now())

    async def join(
        self,
        session: AsyncSession,
        match_id: int,
        player_id: int,
        preferred_position: Optional[str] = None,
        request_id: Optional[int] = None,
    ) -> Dict:
        """
        Add a player to the smaller roster (ties go to teamA).

        Args:
            session: Database session
            match_id: Match to join
            player_id: Joining player
            preferred_position: Optional position to record on the roster entry
            request_id: Optional player request the join came through

        Returns:
            Dict with match_id, team, available_slots and status

        Raises:
            MatchNotOpen, AlreadyRostered, IsOrganizer, DeadlinePassed,
            PlayerSuspended, SkillLevelTooLow, ConflictError
        """
        match = await get_match(session, match_id)
        check_roster_consistency(match)
        now = self.clock.now()

        blocker = join_blocker(match, player_id, now)
        if blocker is not None:
            raise blocker

        player = await player_service.get_player(session, player_id)
        if player.is_banned or not player.is_active:
            raise PlayerSuspended("Player account is banned or inactive")
        if player_service.is_currently_suspended(player, now):
            raise PlayerSuspended(
                f"Player is suspended until {ensure_utc(player.suspension_expires_at).isoformat()}"
                if player.suspension_expires_at
                else "Player is suspended"
            )
        if not player_service.meets_skill_level(player.skill_level, match.skill_level_required):
            raise SkillLevelTooLow(
                f"This match requires {match.skill_level_required} skill level or higher"
            )

        team_a_count = len(team_entries(match, Team.A))
        team_b_count = len(team_entries(match, Team.B))
        team = Team.A if team_a_count <= team_b_count else Team.B

        match.roster_entries.append(
            MatchRosterEntry(
                player_id=player_id,
                team=team.value,
                position=preferred_position,
                joined_at=now,
            )
        )
        sync_match_status(match, now)
        await self._flush(session, match)

        logger.info(f"Player {player_id} joined {team.value} of match {match.id}")

        if request_id is not None and self.request_broker is not None:
            try:
                await self.request_broker.record_join(session, request_id, player_id, match_id=match.id)
            except RequestNotActive:
                logger.info(
                    f"Request {request_id} no longer active; join of player {player_id} not recorded on it"
                )
            except InvalidInput as e:
                logger.warning(f"Join of player {player_id} not recorded on request {request_id}: {e}")

        return {
            "match_id": match.id,
            "team": team.value,
            "available_slots": available_slots(match),
            "status": match.status,
        }

    async def leave(self, session: AsyncSession, match_id: int, player_id: int) -> Dict:
        """
        Remove a player from whichever roster holds them.

        Returns:
            Dict with match_id, from_team, available_slots and status

        Raises:
            MatchLocked: If the match is ongoing or completed
            NotRostered: If the player is on neither roster
        """
        match = await get_match(session, match_id)
        check_roster_consistency(match)

        if match.status in (MatchStatus.ONGOING.value, MatchStatus.COMPLETED.value):
            raise MatchLocked()

        from_team = None
        for team in (Team.A, Team.B):
            entry = next(
                (e for e in team_entries(match, team) if e.player_id == player_id), None
            )
            if entry is not None:
                match.roster_entries.remove(entry)
                from_team = team
                break

        if from_team is None:
            raise NotRostered()

        sync_match_status(match, self.clock.now())
        await self._flush(session, match)

        logger.info(f"Player {player_id} left {from_team.value} of match {match.id}")
        return {
            "match_id": match.id,
            "from_team": from_team.value,
            "available_slots": available_slots(match),
            "status": match.status,
        }

    async def start(self, session: AsyncSession, match_id: int, requester_id: int) -> Match:
        """
        Move an open or full match to ongoing.

        Raises:
            NotAuthorized: Requester is neither organizer nor referee
            InvalidState: Match is not open or full
            InsufficientPlayers: A roster is below the format minimum
        """
        match = await get_match(session, match_id)
        self._require_organizer_or_referee(match, requester_id)

        if match.status not in (MatchStatus.OPEN.value, MatchStatus.FULL.value):
            raise InvalidState("Match cannot be started in current status")

        min_players = min_players_to_start(match)
        if (
            len(team_entries(match, Team.A)) < min_players
            or len(team_entries(match, Team.B)) < min_players
        ):
            raise InsufficientPlayers(
                f"Each team needs at least {min_players} players to start the match"
            )

        now = self.clock.now()
        match.status = MatchStatus.ONGOING.value
        match.started_at = now
        match.last_activity_at = now
        await self._flush(session, match)

        logger.info(f"Match {match.id} started by player {requester_id}")
        return match

    async def end(self, session: AsyncSession, match_id: int, requester_id: int) -> Match:
        """
        Complete an ongoing match and credit every rostered player with a match played.

        Completion is what unlocks rating submission for the participants.

        Raises:
            NotAuthorized: Requester is neither organizer nor referee
            InvalidState: Match is not ongoing
        """
        match = await get_match(session, match_id)
        self._require_organizer_or_referee(match, requester_id)

        if match.status != MatchStatus.ONGOING.value:
            raise InvalidState("Only ongoing matches can be ended")

        now = self.clock.now()
        match.status = MatchStatus.COMPLETED.value
        match.ended_at = now
        match.last_activity_at = now

        player_ids = roster_player_ids(match)
        if player_ids:
            result = await session.execute(select(Player).where(Player.id.in_(player_ids)))
            for player in result.scalars().all():
                player.matches_played = (player.matches_played or 0) + 1

        await self._flush(session, match)

        logger.info(f"Match {match.id} completed with {len(player_ids)} rostered players")
        return match

    async def cancel(self, session: AsyncSession, match_id: int, requester_id: int) -> Match:
        """
        Cancel a match that has not completed.

        Raises:
            NotAuthorized: Requester is not the organizer
            InvalidState: Match is already completed or cancelled
        """
        match = await get_match(session, match_id)
        if match.organizer_id != requester_id:
            raise NotAuthorized("Only the match organizer can cancel this match")
        if match.status in (MatchStatus.COMPLETED.value, MatchStatus.CANCELLED.value):
            raise InvalidState(f"Cannot cancel a {match.status} match")

        match.status = MatchStatus.CANCELLED.value
        match.last_activity_at = self.clock.now()
        await self._flush(session, match)

        logger.info(f"Match {match.id} cancelled by organizer {requester_id}")
        return match

    @staticmethod
    def _require_organizer_or_referee(match: Match, requester_id: int) -> None:
        if requester_id != match.organizer_id and requester_id != match.referee_id:
            raise NotAuthorized("Only the match organizer or referee can do this")

    @staticmethod
    async def _flush(session: AsyncSession, match: Match) -> None:
        """Flush roster changes, turning lost races into ConflictError."""
        try:
            await session.flush()
        except (IntegrityError, StaleDataError) as e:
            logger.error(f"Concurrent roster update on match {match.id}: {e}")
            await session.rollback()
            raise ConflictError(f"Match {match.id} was modified concurrently; retry") from e
