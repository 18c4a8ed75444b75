"""
Service wiring for route handlers.

Each request gets freshly constructed services sharing one clock and one
notification dispatcher. Tests swap collaborators through
``app.dependency_overrides`` (usually just ``get_clock``).
"""

from fastapi import Depends

from footy.services.notification_service import InAppNotificationDispatcher
from footy.services.player_locator import HaversinePlayerLocator
from footy.services.player_request_service import PlayerRequestBroker
from footy.services.reputation_service import ReputationLedger
from footy.services.roster_service import MatchRosterService
from footy.services.sanction_service import SanctionEngine
from footy.utils.constants import DEFAULT_REQUEST_TTL_MINUTES, MAX_ELIGIBLE_CANDIDATES
from footy.utils.datetime_utils import SystemClock


def get_clock():
    return SystemClock()


def get_notification_dispatcher():
    return InAppNotificationDispatcher()


def get_player_locator():
    return HaversinePlayerLocator()


def get_sanction_engine(
    clock=Depends(get_clock),
    dispatcher=Depends(get_notification_dispatcher),
) -> SanctionEngine:
    return SanctionEngine(clock=clock, dispatcher=dispatcher)


def get_reputation_ledger(
    clock=Depends(get_clock),
    sanction_engine: SanctionEngine = Depends(get_sanction_engine),
) -> ReputationLedger:
    return ReputationLedger(clock=clock, sanction_engine=sanction_engine)


def get_request_broker(
    clock=Depends(get_clock),
    locator=Depends(get_player_locator),
    dispatcher=Depends(get_notification_dispatcher),
) -> PlayerRequestBroker:
    return PlayerRequestBroker(
        clock=clock,
        locator=locator,
        dispatcher=dispatcher,
        max_candidates=MAX_ELIGIBLE_CANDIDATES,
        default_ttl_minutes=DEFAULT_REQUEST_TTL_MINUTES,
    )


def get_roster_service(
    clock=Depends(get_clock),
    broker: PlayerRequestBroker = Depends(get_request_broker),
) -> MatchRosterService:
    return MatchRosterService(clock=clock, request_broker=broker)
