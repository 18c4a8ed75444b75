"""
Player request broker.

A match organizer (or a rostered player) posts a "need players" request;
the broker finds nearby eligible players, records who was contacted,
tracks their responses and joins, and fulfills or expires the request.
Expiry is applied lazily whenever a request is loaded, and in bulk by
``cleanup_expired``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from footy.database.models import (
    ContactResponse,
    MatchRequest,
    MatchRequestContact,
    MatchRequestJoin,
    MatchStatus,
    NotificationType,
    Player,
    Position,
    RequestStatus,
    Urgency,
)
from footy.services import player_service
from footy.services.player_locator import HaversinePlayerLocator
from footy.services.errors import (
    ConflictError,
    InvalidInput,
    InvalidState,
    MatchNotOpen,
    NotAuthorized,
    NotContacted,
    RequestNotActive,
    RequestNotFound,
)
from footy.services.roster_service import get_match, roster_player_ids
from footy.utils.constants import (
    ANY_SKILL_LEVEL,
    DEFAULT_MAX_DISTANCE_METERS,
    DEFAULT_REQUEST_TTL_MINUTES,
    MAX_ELIGIBLE_CANDIDATES,
    MAX_MAX_DISTANCE_METERS,
    MAX_REQUEST_SLOTS,
    MIN_MAX_DISTANCE_METERS,
    REQUEST_LIST_LIMIT,
    SKILL_LEVELS,
)
from footy.utils.datetime_utils import SystemClock, ensure_utc

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("message", "urgency", "target_skill_level", "max_distance", "expires_at")
RESPONSE_CHOICES = (ContactResponse.INTERESTED.value, ContactResponse.DECLINED.value)
INTERESTED_RESPONSES = (ContactResponse.INTERESTED.value, ContactResponse.JOINED.value)


@dataclass
class ExpiryResult:
    """Outcome of one bulk expiry run."""

    expired: int = 0
    failed_request_ids: List[int] = field(default_factory=list)


# --- Request invariants (pure functions over a loaded request) ---


def expire_if_due(request: MatchRequest, now: datetime) -> bool:
    """Move an active request past its expiry to expired. Returns True if it changed."""
    if request.status == RequestStatus.ACTIVE.value and now > ensure_utc(request.expires_at):
        request.status = RequestStatus.EXPIRED.value
        return True
    return False


def find_contact(request: MatchRequest, player_id: int) -> Optional[MatchRequestContact]:
    return next((c for c in request.contacts if c.player_id == player_id), None)


def recount(request: MatchRequest) -> None:
    """Recompute the denormalized counters from the contact and join rows."""
    request.total_contacted = len(request.contacts)
    request.total_interested = sum(1 for c in request.contacts if c.response in INTERESTED_RESPONSES)
    request.total_joined = len(request.joins)


def _validate_fields(
    position_needed=None,
    slots_available=None,
    target_skill_level=None,
    max_distance=None,
    message=None,
    urgency=None,
) -> None:
    if position_needed is not None:
        try:
            Position(position_needed)
        except ValueError:
            raise InvalidInput(f"Unknown position: {position_needed}")
    if slots_available is not None and not 1 <= slots_available <= MAX_REQUEST_SLOTS:
        raise InvalidInput(f"slots_available must be between 1 and {MAX_REQUEST_SLOTS}")
    if target_skill_level is not None and target_skill_level != ANY_SKILL_LEVEL and target_skill_level not in SKILL_LEVELS:
        raise InvalidInput(f"Unknown skill level: {target_skill_level}")
    if max_distance is not None and not MIN_MAX_DISTANCE_METERS <= max_distance <= MAX_MAX_DISTANCE_METERS:
        raise InvalidInput(
            f"max_distance must be between {MIN_MAX_DISTANCE_METERS} and {MAX_MAX_DISTANCE_METERS} meters"
        )
    if message is not None and len(message) > 300:
        raise InvalidInput("message must be at most 300 characters")
    if urgency is not None:
        try:
            Urgency(urgency)
        except ValueError:
            raise InvalidInput(f"Unknown urgency: {urgency}")


class PlayerRequestBroker:
    """Creates player requests and tracks contact, response, join and fulfillment."""

    def __init__(
        self,
        clock=None,
        locator=None,
        dispatcher=None,
        max_candidates: int = MAX_ELIGIBLE_CANDIDATES,
        default_ttl_minutes: int = DEFAULT_REQUEST_TTL_MINUTES,
    ):
        """
        Args:
            clock: Time source with a ``now()`` method
            locator: Geo lookup with ``find_within_radius``
            dispatcher: Notification dispatcher with ``notify``
            max_candidates: Cap on eligible players returned per lookup
            default_ttl_minutes: Lifetime of a request created without an expiry
        """
        self.clock = clock or SystemClock()
        self.locator = locator or HaversinePlayerLocator()
        self.dispatcher = dispatcher
        self.max_candidates = max_candidates
        self.default_ttl_minutes = default_ttl_minutes

    async def create(
        self,
        session: AsyncSession,
        match_id: int,
        requester_id: int,
        position_needed: str,
        slots_available: int,
        target_skill_level: str = ANY_SKILL_LEVEL,
        max_distance: int = DEFAULT_MAX_DISTANCE_METERS,
        message: Optional[str] = None,
        urgency: str = Urgency.MEDIUM.value,
        auto_fulfill: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> MatchRequest:
        """
        Post a player request for a match.

        Raises:
            MatchNotFound: Unknown match
            NotAuthorized: Requester is neither organizer nor rostered
            MatchNotOpen: Match is not open
            InvalidInput: A field is out of range
        """
        _validate_fields(
            position_needed=position_needed,
            slots_available=slots_available,
            target_skill_level=target_skill_level,
            max_distance=max_distance,
            message=message,
            urgency=urgency,
        )
        now = self.clock.now()
        if expires_at is None:
            expires_at = now + timedelta(minutes=self.default_ttl_minutes)
        elif ensure_utc(expires_at) <= now:
            raise InvalidInput("expires_at must be in the future")

        match = await get_match(session, match_id)
        if requester_id != match.organizer_id and requester_id not in roster_player_ids(match):
            raise NotAuthorized("Only the organizer or a rostered player can request players")
        if match.status != MatchStatus.OPEN.value:
            raise MatchNotOpen()

        request = MatchRequest(
            match_id=match.id,
            requested_by_id=requester_id,
            position_needed=position_needed,
            slots_available=slots_available,
            target_skill_level=target_skill_level,
            max_distance=max_distance,
            message=message,
            urgency=urgency,
            status=RequestStatus.ACTIVE.value,
            auto_fulfill=auto_fulfill,
            expires_at=ensure_utc(expires_at),
            total_contacted=0,
            total_interested=0,
            total_joined=0,
            created_at=now,
            contacts=[],
            joins=[],
        )
        session.add(request)
        await session.flush()
        logger.info(
            f"Player request {request.id} created for match {match.id} by player {requester_id} "
            f"({slots_available} x {position_needed})"
        )
        return request

    async def get_request(self, session: AsyncSession, request_id: int) -> MatchRequest:
        """
        Load a request, expiring it first if its time has passed.

        The expired status is flushed with the caller's transaction. When the
        caller then fails and rolls back, the row stays active until the next
        read recomputes it or the cleanup sweep commits it; callers never see
        an overdue request as active either way.

        Raises:
            RequestNotFound: If no request has that id
        """
        result = await session.execute(select(MatchRequest).where(MatchRequest.id == request_id))
        request = result.scalar_one_or_none()
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found")
        if expire_if_due(request, self.clock.now()):
            logger.info(f"Request {request.id} expired on access")
            await self._flush(session, request)
        return request

    async def find_eligible(self, session: AsyncSession, request: MatchRequest) -> List[Player]:
        """
        Players a request could be sent to, best reputation first.

        Within ``max_distance`` of the match; available; skilled enough; not the
        requester, the organizer, anyone rostered, or anyone already contacted.
        """
        match = await get_match(session, request.match_id)
        if match.latitude is None or match.longitude is None:
            logger.warning(f"Match {match.id} has no location; no eligible players for request {request.id}")
            return []

        excluded = {request.requested_by_id, match.organizer_id}
        excluded |= roster_player_ids(match)
        excluded |= {c.player_id for c in request.contacts}

        now = self.clock.now()
        candidates = await self.locator.find_within_radius(
            session, match.latitude, match.longitude, request.max_distance, exclude_ids=excluded
        )
        eligible = [
            p
            for p in candidates
            if p.id not in excluded
            and player_service.is_available(p, now)
            and player_service.meets_skill_level(p.skill_level, request.target_skill_level)
        ]
        eligible.sort(key=lambda p: (-(p.reputation_score or 0), p.id))
        return eligible[: self.max_candidates]

    def record_contact(self, request: MatchRequest, player_id: int) -> bool:
        """Add a pending contact entry unless the player is already listed. Returns True if added."""
        if find_contact(request, player_id) is not None:
            return False
        request.contacts.append(
            MatchRequestContact(
                player_id=player_id,
                response=ContactResponse.PENDING.value,
                contacted_at=self.clock.now(),
            )
        )
        recount(request)
        return True

    async def broadcast(
        self, session: AsyncSession, request_id: int, requester_id: Optional[int] = None
    ) -> Dict:
        """
        Contact every eligible player and hand them to the notification dispatcher.

        Notification failures are logged and do not fail the broadcast.

        Raises:
            RequestNotActive: Request is fulfilled, expired or cancelled
            NotAuthorized: requester_id given and not the creator
        """
        request = await self.get_request(session, request_id)
        if requester_id is not None and requester_id != request.requested_by_id:
            raise NotAuthorized("Only the request creator can broadcast it")
        if request.status != RequestStatus.ACTIVE.value:
            raise RequestNotActive()

        eligible = await self.find_eligible(session, request)
        contacted = [p.id for p in eligible if self.record_contact(request, p.id)]
        request.broadcast_at = self.clock.now()
        await self._flush(session, request)

        logger.info(f"Request {request.id} broadcast to {len(contacted)} player(s)")

        if self.dispatcher is not None and contacted:
            payload = {
                "type": NotificationType.PLAYER_REQUEST.value,
                "title": f"Player needed: {request.position_needed}",
                "message": request.message or f"A nearby match needs {request.remaining_slots} more player(s)",
                "data": {
                    "request_id": request.id,
                    "match_id": request.match_id,
                    "urgency": request.urgency,
                },
                "link_url": f"/player-requests/{request.id}",
            }
            for player_id in contacted:
                try:
                    await self.dispatcher.notify(session, player_id, payload)
                except Exception as e:
                    logger.warning(f"Failed to notify player {player_id} about request {request.id}: {e}")

        return {"request_id": request.id, "contacted_count": len(contacted)}

    async def respond(
        self, session: AsyncSession, request_id: int, player_id: int, response: str
    ) -> MatchRequest:
        """
        Record a contacted player's answer.

        Raises:
            InvalidInput: response is not interested/declined
            RequestNotActive: Request is no longer active
            NotContacted: Player was never contacted for this request
        """
        if response not in RESPONSE_CHOICES:
            raise InvalidInput(f"response must be one of {', '.join(RESPONSE_CHOICES)}")

        request = await self.get_request(session, request_id)
        if request.status != RequestStatus.ACTIVE.value:
            raise RequestNotActive()

        contact = find_contact(request, player_id)
        if contact is None:
            raise NotContacted()

        contact.response = response
        contact.response_at = self.clock.now()
        recount(request)
        await self._flush(session, request)

        logger.info(f"Player {player_id} responded {response} to request {request.id}")
        return request

    async def record_join(
        self, session: AsyncSession, request_id: int, player_id: int, match_id: Optional[int] = None
    ) -> MatchRequest:
        """
        Note that a player joined the match through this request. Idempotent per player.

        Fulfills the request when auto-fulfill is on and no slots remain.

        Args:
            match_id: Match the player actually joined; must be the request's match

        Raises:
            InvalidInput: match_id is not the request's match
            RequestNotActive: Request is no longer active
        """
        request = await self.get_request(session, request_id)
        if match_id is not None and request.match_id != match_id:
            raise InvalidInput(f"Request {request.id} is for match {request.match_id}, not match {match_id}")
        if request.status != RequestStatus.ACTIVE.value:
            raise RequestNotActive()

        now = self.clock.now()
        if not any(j.player_id == player_id for j in request.joins):
            request.joins.append(MatchRequestJoin(player_id=player_id, joined_at=now))
        contact = find_contact(request, player_id)
        if contact is not None and contact.response != ContactResponse.JOINED.value:
            contact.response = ContactResponse.JOINED.value
            contact.response_at = now
        recount(request)

        if request.auto_fulfill and request.remaining_slots == 0:
            request.status = RequestStatus.FULFILLED.value
            logger.info(f"Request {request.id} fulfilled")

        await self._flush(session, request)
        return request

    async def update(
        self, session: AsyncSession, request_id: int, requester_id: int, changes: Dict
    ) -> MatchRequest:
        """
        Edit an active request. Only message, urgency, target_skill_level,
        max_distance and expires_at can change.

        Raises:
            NotAuthorized, RequestNotActive, InvalidInput
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInput(f"Cannot update fields: {', '.join(sorted(unknown))}")

        request = await self.get_request(session, request_id)
        if request.requested_by_id != requester_id:
            raise NotAuthorized("Only the request creator can update it")
        if request.status != RequestStatus.ACTIVE.value:
            raise RequestNotActive()

        _validate_fields(
            target_skill_level=changes.get("target_skill_level"),
            max_distance=changes.get("max_distance"),
            message=changes.get("message"),
            urgency=changes.get("urgency"),
        )
        if "expires_at" in changes:
            expires_at = ensure_utc(changes["expires_at"])
            if expires_at is None or expires_at <= self.clock.now():
                raise InvalidInput("expires_at must be in the future")
            changes = dict(changes, expires_at=expires_at)

        for name, value in changes.items():
            if value is None and name != "message":
                continue
            setattr(request, name, value)
        await self._flush(session, request)
        return request

    async def cancel(self, session: AsyncSession, request_id: int, requester_id: int) -> MatchRequest:
        """
        Raises:
            NotAuthorized: Requester is not the creator
            InvalidState: Request is not active
        """
        request = await self.get_request(session, request_id)
        if request.requested_by_id != requester_id:
            raise NotAuthorized("Only the request creator can cancel it")
        if request.status != RequestStatus.ACTIVE.value:
            raise InvalidState(f"Cannot cancel a {request.status} request")

        request.status = RequestStatus.CANCELLED.value
        await self._flush(session, request)
        logger.info(f"Request {request.id} cancelled by player {requester_id}")
        return request

    async def list_for_player(self, session: AsyncSession, player_id: int, kind: str = "received") -> List[Dict]:
        """
        Requests a player received (active ones they were contacted for) or
        sent (ones they created), newest first.
        """
        now = self.clock.now()
        if kind == "received":
            q = (
                select(MatchRequest)
                .join(MatchRequestContact, MatchRequestContact.request_id == MatchRequest.id)
                .where(
                    and_(
                        MatchRequestContact.player_id == player_id,
                        MatchRequest.status == RequestStatus.ACTIVE.value,
                    )
                )
            )
        elif kind == "sent":
            q = select(MatchRequest).where(MatchRequest.requested_by_id == player_id)
        else:
            raise InvalidInput("kind must be 'received' or 'sent'")

        result = await session.execute(
            q.order_by(MatchRequest.created_at.desc(), MatchRequest.id.desc()).limit(REQUEST_LIST_LIMIT)
        )
        requests = list(result.scalars().all())

        expired = [r for r in requests if expire_if_due(r, now)]
        if expired:
            await session.flush()

        items = []
        for request in requests:
            if kind == "received" and request.status != RequestStatus.ACTIVE.value:
                continue
            contact = find_contact(request, player_id)
            items.append({"request": request, "my_response": contact.response if contact else None})
        return items

    async def details(self, session: AsyncSession, request_id: int, viewer_id: int) -> MatchRequest:
        """Full request for its creator or a contacted player."""
        request = await self.get_request(session, request_id)
        if viewer_id != request.requested_by_id and find_contact(request, viewer_id) is None:
            raise NotAuthorized("Not authorized to view this request")
        return request

    async def analytics(self, session: AsyncSession, request_id: int, requester_id: int) -> Dict:
        """Counters, rates and response breakdown for the request creator."""
        request = await self.get_request(session, request_id)
        if request.requested_by_id != requester_id:
            raise NotAuthorized("Only the request creator can view analytics")

        breakdown = {r.value: 0 for r in ContactResponse}
        for contact in request.contacts:
            breakdown[contact.response] = breakdown.get(contact.response, 0) + 1

        minutes_remaining = 0
        if request.status == RequestStatus.ACTIVE.value:
            remaining = ensure_utc(request.expires_at) - self.clock.now()
            minutes_remaining = max(0, int(remaining.total_seconds() // 60))

        return {
            "request_id": request.id,
            "status": request.status,
            "total_contacted": request.total_contacted,
            "total_interested": request.total_interested,
            "total_joined": request.total_joined,
            "remaining_slots": request.remaining_slots,
            "response_rate": request.response_rate,
            "success_rate": request.success_rate,
            "response_breakdown": breakdown,
            "minutes_remaining": minutes_remaining,
        }

    async def due_request_ids(self, session: AsyncSession) -> List[int]:
        """Ids of active requests whose expiry has passed."""
        result = await session.execute(
            select(MatchRequest.id).where(
                and_(
                    MatchRequest.status == RequestStatus.ACTIVE.value,
                    MatchRequest.expires_at < self.clock.now(),
                )
            )
        )
        return list(result.scalars().all())

    async def expire_request(self, session: AsyncSession, request_id: int) -> bool:
        """Expire one request if it is still active and past due. Returns True if it changed."""
        result = await session.execute(select(MatchRequest).where(MatchRequest.id == request_id))
        request = result.scalar_one_or_none()
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found")
        changed = expire_if_due(request, self.clock.now())
        if changed:
            await self._flush(session, request)
        return changed

    async def cleanup_expired(self, session: AsyncSession) -> ExpiryResult:
        """
        Expire every active request past its expiry.

        Each request is expired inside its own savepoint. A request that was
        changed concurrently is skipped and listed in ``failed_request_ids``;
        the rest of the run carries on.
        """
        now = self.clock.now()
        result = await session.execute(
            select(MatchRequest).where(
                and_(
                    MatchRequest.status == RequestStatus.ACTIVE.value,
                    MatchRequest.expires_at < now,
                )
            )
        )
        outcome = ExpiryResult()
        for request in result.scalars().all():
            request_id = request.id
            try:
                async with session.begin_nested():
                    if expire_if_due(request, now):
                        await session.flush()
                        outcome.expired += 1
            except (IntegrityError, StaleDataError) as e:
                logger.warning(f"Could not expire request {request_id}: {e}")
                outcome.failed_request_ids.append(request_id)

        if outcome.expired:
            logger.info(f"Expired {outcome.expired} player request(s)")
        if outcome.failed_request_ids:
            logger.warning(f"Skipped {len(outcome.failed_request_ids)} request(s) changed during cleanup")
        return outcome

    @staticmethod
    async def _flush(session: AsyncSession, request: MatchRequest) -> None:
        """Flush request changes, turning lost races into ConflictError."""
        try:
            await session.flush()
        except (IntegrityError, StaleDataError) as e:
            logger.error(f"Concurrent update on player request {request.id}: {e}")
            await session.rollback()
            raise ConflictError(f"Request {request.id} was modified concurrently; retry") from e
