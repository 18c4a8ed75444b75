"""
Sanction engine: warnings, temporary suspensions and permanent bans driven by reports.

The three effects are independent and can compound. Re-evaluation is
monotonic: a ban is never replaced and an active suspension is never
shortened by the automatic path.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from footy.database.models import (
    NotificationType,
    Player,
    PlayerWarning,
    Report,
    ReportSeverity,
    ReportStatus,
    ResolutionAction,
)
from footy.services import player_service
from footy.services.errors import InvalidInput, InvalidState, ReportNotFound
from footy.utils.constants import (
    CRITICAL_CATEGORIES,
    CRITICAL_SUSPENSION_DAYS,
    DAYS_PER_REPORT,
    MAX_VOLUME_SUSPENSION_DAYS,
    MIN_REPUTATION,
    PERMANENT_BAN_CRITICAL_THRESHOLD,
    RECENT_WINDOW_DAYS,
    REPUTATION_PENALTY,
    SUSPENSION_REPORT_THRESHOLD,
    WARNING_REPORT_THRESHOLD,
)
from footy.utils.datetime_utils import SystemClock, ensure_utc

logger = logging.getLogger(__name__)

# Binding order when several automatic actions fire for one report
_ACTION_PRECEDENCE = {
    ResolutionAction.PERMANENT_BAN.value: 3,
    ResolutionAction.TEMPORARY_SUSPENSION.value: 2,
    ResolutionAction.WARNING.value: 1,
}


@dataclass
class SanctionAction:
    """One sanction applied to a player."""

    action: str
    reason: str
    duration_days: Optional[int] = None

    def to_dict(self) -> Dict:
        return asdict(self)


async def get_report(session: AsyncSession, report_id: int) -> Report:
    """
    Load a report by id.

    Raises:
        ReportNotFound: If no report has that id
    """
    result = await session.execute(select(Report).where(Report.id == report_id))
    report = result.scalar_one_or_none()
    if report is None:
        raise ReportNotFound(f"Report {report_id} not found")
    return report


def suspension_days_for_volume(report_count: int) -> int:
    """Length of a volume-triggered suspension: two days per report, capped at two weeks."""
    return min(MAX_VOLUME_SUSPENSION_DAYS, report_count * DAYS_PER_REPORT)


def is_critical_category_report(report: Report) -> bool:
    return (
        report.severity == ReportSeverity.CRITICAL.value
        and report.category in CRITICAL_CATEGORIES
    )


def lift_if_expired(player: Player, now: datetime) -> bool:
    """Clear a suspension whose window has passed. Returns True if one was lifted."""
    if not player.is_suspended:
        return False
    expires_at = ensure_utc(player.suspension_expires_at)
    if expires_at is None or expires_at > now:
        return False
    player.is_suspended = False
    player.suspension_reason = None
    player.suspension_expires_at = None
    return True


class SanctionEngine:
    """Applies sanctions to players, automatically from reports or manually from resolutions."""

    def __init__(self, clock=None, dispatcher=None):
        self.clock = clock or SystemClock()
        self.dispatcher = dispatcher

    async def evaluate(self, session: AsyncSession, player_id: int, report: Report) -> List[SanctionAction]:
        """
        Run the automatic checks for a newly filed report.

        Checks (more than one may fire):
            1. critical report in a critical category -> 7 day suspension
            2. 3 or 4 reports in the last 30 days -> warning
            3. 5+ reports in the last 30 days -> suspension of min(14, count*2) days
            4. 3+ non-dismissed critical reports ever -> permanent ban

        The new report must already be flushed so it is counted.

        Returns:
            Actions that took effect (a suspension that would not outlast the
            current one is not listed). When any fired, the report is marked
            resolved with the binding one (ban > suspension > warning).
        """
        now = self.clock.now()
        player = await player_service.get_player(session, player_id)
        if lift_if_expired(player, now):
            logger.info(f"Lifted expired suspension of player {player_id}")

        if player.is_banned:
            logger.info(f"Player {player_id} is already banned; report {report.id} not auto-actioned")
            return []

        window_start = now - timedelta(days=RECENT_WINDOW_DAYS)
        recent_result = await session.execute(
            select(func.count(Report.id)).where(
                and_(
                    Report.reported_player_id == player_id,
                    Report.created_at >= window_start,
                )
            )
        )
        recent_count = recent_result.scalar_one() or 0

        critical_result = await session.execute(
            select(func.count(Report.id)).where(
                and_(
                    Report.reported_player_id == player_id,
                    Report.severity == ReportSeverity.CRITICAL.value,
                    Report.status != ReportStatus.DISMISSED.value,
                )
            )
        )
        critical_count = critical_result.scalar_one() or 0

        actions: List[SanctionAction] = []

        if is_critical_category_report(report):
            reason = f"Automatic suspension for critical {report.category} report #{report.id}"
            if await self.apply_suspension(
                session, player_id, CRITICAL_SUSPENSION_DAYS, reason, report_id=report.id, extend_only=True
            ):
                actions.append(
                    SanctionAction(ResolutionAction.TEMPORARY_SUSPENSION.value, reason, CRITICAL_SUSPENSION_DAYS)
                )

        if WARNING_REPORT_THRESHOLD <= recent_count < SUSPENSION_REPORT_THRESHOLD:
            reason = f"Multiple reports received ({recent_count} in the last {RECENT_WINDOW_DAYS} days)"
            await self.apply_warning(session, player_id, reason, report_id=report.id)
            actions.append(SanctionAction(ResolutionAction.WARNING.value, reason))

        if recent_count >= SUSPENSION_REPORT_THRESHOLD:
            days = suspension_days_for_volume(recent_count)
            reason = f"Excessive reports ({recent_count} in the last {RECENT_WINDOW_DAYS} days)"
            if await self.apply_suspension(
                session, player_id, days, reason, report_id=report.id, extend_only=True
            ):
                actions.append(SanctionAction(ResolutionAction.TEMPORARY_SUSPENSION.value, reason, days))

        if critical_count >= PERMANENT_BAN_CRITICAL_THRESHOLD:
            reason = f"Repeated critical violations ({critical_count} critical reports)"
            if await self.apply_permanent_ban(session, player_id, reason, report_id=report.id):
                actions.append(SanctionAction(ResolutionAction.PERMANENT_BAN.value, reason))

        if actions:
            binding = max(
                actions,
                key=lambda a: (_ACTION_PRECEDENCE[a.action], a.duration_days or 0),
            )
            self._write_resolution(
                report,
                action=binding.action,
                reason=binding.reason,
                duration_days=binding.duration_days,
                resolver_id=None,
                now=now,
            )
            logger.info(
                f"Report {report.id} against player {player_id} triggered "
                f"{[a.action for a in actions]}"
            )

        await session.flush()
        return actions

    async def apply_warning(
        self,
        session: AsyncSession,
        player_id: int,
        reason: str,
        report_id: Optional[int] = None,
    ) -> PlayerWarning:
        """Append a warning to the player's log. Warnings gate nothing."""
        now = self.clock.now()
        player = await player_service.get_player(session, player_id)
        warning = PlayerWarning(reason=reason, report_id=report_id, issued_at=now)
        player.warnings.append(warning)
        player.last_warned_at = now
        await session.flush()

        logger.info(f"Warning issued to player {player_id}: {reason}")
        await self._notify(
            session,
            player_id,
            NotificationType.SANCTION_WARNING.value,
            "You have received a warning",
            reason,
            {"report_id": report_id},
        )
        return warning

    async def apply_suspension(
        self,
        session: AsyncSession,
        player_id: int,
        days: int,
        reason: str,
        report_id: Optional[int] = None,
        extend_only: bool = False,
    ) -> bool:
        """
        Suspend a player for ``days`` days from now.

        Last write wins on the expiry, so repeating a call with the same
        arguments leaves a single window. With ``extend_only`` an active
        suspension that already runs longer is left alone. Banned players
        are never touched.

        Returns:
            True if the player's suspension changed
        """
        if days is None or days <= 0:
            raise InvalidInput("Suspension duration must be a positive number of days")

        now = self.clock.now()
        player = await player_service.get_player(session, player_id)
        if player.is_banned:
            logger.info(f"Player {player_id} is banned; suspension not applied")
            return False

        new_expiry = now + timedelta(days=days)
        if extend_only and player_service.is_currently_suspended(player, now):
            current_expiry = ensure_utc(player.suspension_expires_at)
            if current_expiry is None or current_expiry >= new_expiry:
                logger.info(
                    f"Player {player_id} already suspended until {current_expiry}; keeping longer suspension"
                )
                return False

        player.is_suspended = True
        player.suspension_reason = reason
        player.suspension_expires_at = new_expiry
        player.last_suspended_at = now
        await session.flush()

        logger.info(f"Player {player_id} suspended for {days} days: {reason}")
        await self._notify(
            session,
            player_id,
            NotificationType.SANCTION_SUSPENSION.value,
            "Your account has been suspended",
            f"{reason}. Suspension ends {new_expiry.isoformat()}.",
            {"report_id": report_id, "expires_at": new_expiry.isoformat(), "days": days},
        )
        return True

    async def apply_permanent_ban(
        self,
        session: AsyncSession,
        player_id: int,
        reason: str,
        report_id: Optional[int] = None,
    ) -> bool:
        """
        Permanently ban a player. Supersedes any suspension. Irreversible here.

        Returns:
            True if the player was not already banned
        """
        now = self.clock.now()
        player = await player_service.get_player(session, player_id)
        if player.is_banned:
            return False

        player.is_banned = True
        player.is_active = False
        player.ban_reason = reason
        player.banned_at = now
        player.is_suspended = False
        player.suspension_reason = None
        player.suspension_expires_at = None
        await session.flush()

        logger.warning(f"Player {player_id} permanently banned: {reason}")
        await self._notify(
            session,
            player_id,
            NotificationType.SANCTION_BAN.value,
            "Your account has been banned",
            reason,
            {"report_id": report_id},
        )
        return True

    async def resolve_report(
        self,
        session: AsyncSession,
        report_id: int,
        action: str,
        reason: Optional[str] = None,
        duration_days: Optional[int] = None,
        resolver_id: Optional[int] = None,
    ) -> Report:
        """
        Manually resolve a report, applying the chosen action to the reported player.

        Raises:
            ReportNotFound: Unknown report
            InvalidState: Report already resolved or dismissed
            InvalidInput: Unknown action, or a temporary suspension without a duration
        """
        report = await get_report(session, report_id)
        if report.status in (ReportStatus.RESOLVED.value, ReportStatus.DISMISSED.value):
            raise InvalidState(f"Report {report_id} is already {report.status}")

        try:
            action = ResolutionAction(action).value
        except ValueError:
            raise InvalidInput(f"Unknown resolution action: {action}")

        player_id = report.reported_player_id
        reason = reason or f"Resolution of report #{report.id}"

        if action == ResolutionAction.WARNING.value:
            await self.apply_warning(session, player_id, reason, report_id=report.id)
        elif action == ResolutionAction.TEMPORARY_SUSPENSION.value:
            if not duration_days or duration_days <= 0:
                raise InvalidInput("temporary_suspension requires a positive duration_days")
            await self.apply_suspension(session, player_id, duration_days, reason, report_id=report.id)
        elif action == ResolutionAction.PERMANENT_BAN.value:
            await self.apply_permanent_ban(session, player_id, reason, report_id=report.id)
        elif action == ResolutionAction.REPUTATION_PENALTY.value:
            player = await player_service.get_player(session, player_id)
            player.reputation_score = max(MIN_REPUTATION, (player.reputation_score or 0) - REPUTATION_PENALTY)
            logger.info(f"Reputation penalty applied to player {player_id}: now {player.reputation_score}")
        # no_action, match_ban and community_service are recorded on the report only

        self._write_resolution(
            report,
            action=action,
            reason=reason,
            duration_days=duration_days if action == ResolutionAction.TEMPORARY_SUSPENSION.value else None,
            resolver_id=resolver_id,
            now=self.clock.now(),
        )
        await session.flush()
        logger.info(f"Report {report.id} resolved with {action} by {resolver_id}")
        return report

    async def dismiss_report(
        self,
        session: AsyncSession,
        report_id: int,
        resolver_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Report:
        """Dismiss a report without action. Dismissed critical reports stop counting toward a ban."""
        report = await get_report(session, report_id)
        if report.status in (ReportStatus.RESOLVED.value, ReportStatus.DISMISSED.value):
            raise InvalidState(f"Report {report_id} is already {report.status}")

        report.status = ReportStatus.DISMISSED.value
        report.resolution_reason = reason
        report.resolved_by_id = resolver_id
        report.resolved_at = self.clock.now()
        await session.flush()
        logger.info(f"Report {report.id} dismissed by {resolver_id}")
        return report

    async def lift_expired_suspensions(self, session: AsyncSession) -> int:
        """Clear every suspension whose window has passed. Returns how many were lifted."""
        now = self.clock.now()
        result = await session.execute(
            select(Player).where(
                and_(
                    Player.is_suspended == True,  # noqa: E712
                    Player.suspension_expires_at.is_not(None),
                    Player.suspension_expires_at <= now,
                )
            )
        )
        lifted = 0
        for player in result.scalars().all():
            if lift_if_expired(player, now):
                lifted += 1
        if lifted:
            await session.flush()
            logger.info(f"Lifted {lifted} expired suspension(s)")
        return lifted

    @staticmethod
    def _write_resolution(
        report: Report,
        action: str,
        reason: Optional[str],
        duration_days: Optional[int],
        resolver_id: Optional[int],
        now: datetime,
    ) -> None:
        report.status = ReportStatus.RESOLVED.value
        report.resolution_action = action
        report.resolution_reason = reason
        report.resolution_duration_days = duration_days
        report.resolved_by_id = resolver_id
        report.resolved_at = now

    async def _notify(
        self,
        session: AsyncSession,
        player_id: int,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict] = None,
    ) -> None:
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.notify(
                session,
                player_id,
                {"type": type, "title": title, "message": message, "data": data},
            )
        except Exception as e:
            logger.warning(f"Failed to send sanction notification to player {player_id}: {e}")
