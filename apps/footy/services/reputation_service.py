"""
Reputation ledger: player-to-player ratings, misconduct reports and the
reputation score derived from them.

The scoring rules (rating weight, suspicious-rating detection, the weighted
reputation formula, report priority) are plain functions over fetched rows
so they can be checked without a database.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from footy.database.models import (
    MatchStatus,
    Player,
    Rating,
    Report,
    ReportAdminNote,
    ReportCategory,
    ReportSeverity,
    ReportStatus,
)
from footy.services import player_service
from footy.services.errors import (
    DuplicateRating,
    InvalidInput,
    InvalidState,
    MatchNotCompleted,
    NotParticipant,
    SelfRating,
    SelfReport,
)
from footy.services.roster_service import get_match, roster_player_ids
from footy.services.sanction_service import SanctionAction, get_report
from footy.utils.constants import (
    ADMIN_NOTE_MAX_LENGTH,
    CRITICAL_CATEGORIES,
    LOW_REPUTATION_RATER_THRESHOLD,
    MAX_RATING_WEIGHT,
    MAX_REPORT_PRIORITY,
    MAX_URGENCY_AGE_BONUS,
    MIN_RATING_WEIGHT,
    NEUTRAL_REPUTATION,
    RECENT_WINDOW_DAYS,
    REPUTATION_WEIGHT_FACTOR,
    SEVERITY_PRIORITY,
    SEVERITY_URGENCY_WEIGHT,
    SUSPICIOUS_CATEGORY_GAP,
    TOP_RATED_WINDOW_DAYS,
    URGENT_PENDING_AGE_HOURS,
    URGENT_PRIORITY_THRESHOLD,
)
from footy.utils.datetime_utils import SystemClock, ensure_utc

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ("skill", "teamwork", "attitude", "punctuality", "communication")
REVIEW_STATUSES = (
    ReportStatus.PENDING.value,
    ReportStatus.UNDER_REVIEW.value,
    ReportStatus.ESCALATED.value,
)


@dataclass
class RatingScores:
    """The six 1-5 scores a rater gives."""

    overall_rating: float
    skill_rating: float
    teamwork_rating: float
    attitude_rating: float
    punctuality_rating: float
    communication_rating: float

    def validate(self) -> None:
        for name in ("overall",) + CATEGORY_FIELDS:
            value = getattr(self, f"{name}_rating")
            if value is None or not 1 <= value <= 5:
                raise InvalidInput(f"{name}_rating must be between 1 and 5")


@dataclass
class ReportOutcome:
    """A filed report and the sanctions it triggered."""

    report: Report
    actions: List[SanctionAction] = field(default_factory=list)


# --- Scoring rules ---


def category_mean(scores) -> float:
    """Unweighted mean of the five category ratings of a rating or RatingScores."""
    return sum(getattr(scores, f"{name}_rating") for name in CATEGORY_FIELDS) / len(CATEGORY_FIELDS)


def compute_rating_weight(rater_reputation: Optional[float]) -> float:
    """
    Weight of a rating from the rater's reputation at submission time.

    Neutral (3.0) maps to 1.0; each point above or below moves it by 0.2,
    clamped to [0.1, 2.0].
    """
    if rater_reputation is None:
        rater_reputation = NEUTRAL_REPUTATION
    weight = 1.0 + (rater_reputation - NEUTRAL_REPUTATION) * REPUTATION_WEIGHT_FACTOR
    return max(MIN_RATING_WEIGHT, min(MAX_RATING_WEIGHT, weight))


def is_suspicious(scores) -> bool:
    """
    An extreme overall score (1 or 5) that disagrees with the category
    scores by more than 1.5 points.
    """
    overall = scores.overall_rating
    if overall not in (1, 5):
        return False
    return abs(overall - category_mean(scores)) > SUSPICIOUS_CATEGORY_GAP


def flag_reason(scores, rater_reputation: Optional[float]) -> Optional[str]:
    """Why a rating should be flagged, or None."""
    if is_suspicious(scores):
        return "Extreme overall rating inconsistent with category ratings"
    if rater_reputation is not None and rater_reputation < LOW_REPUTATION_RATER_THRESHOLD:
        return "Rater has low reputation"
    return None


def compute_reputation(ratings: Iterable) -> float:
    """
    Weighted mean of overall ratings: sum(overall * weight) / sum(weight).

    Returns the neutral 3.0 when there is nothing to average.
    """
    total = 0.0
    total_weight = 0.0
    for rating in ratings:
        weight = rating.rating_weight if rating.rating_weight is not None else 1.0
        total += rating.overall_rating * weight
        total_weight += weight
    if total_weight == 0:
        return NEUTRAL_REPUTATION
    return total / total_weight


def category_averages(ratings: Sequence) -> Dict[str, float]:
    """Unweighted per-category means; neutral 3.0 for every category when there are no ratings."""
    if not ratings:
        return {name: NEUTRAL_REPUTATION for name in CATEGORY_FIELDS}
    return {
        name: sum(getattr(r, f"{name}_rating") for r in ratings) / len(ratings)
        for name in CATEGORY_FIELDS
    }


def recent_ratings(ratings: Iterable, now: datetime, days: int = RECENT_WINDOW_DAYS) -> List:
    cutoff = now - timedelta(days=days)
    return [r for r in ratings if ensure_utc(r.created_at) >= cutoff]


def recent_trend(ratings: Sequence, now: datetime) -> float:
    """
    Mean overall rating over the last 30 days minus the all-time weighted
    score. Zero when there are no recent ratings.
    """
    recent = recent_ratings(ratings, now)
    if not recent:
        return 0.0
    recent_mean = sum(r.overall_rating for r in recent) / len(recent)
    return recent_mean - compute_reputation(ratings)


def compute_report_priority(severity: str, category: str) -> int:
    """Priority 1-5 from severity, bumped by one for the critical categories."""
    priority = SEVERITY_PRIORITY[severity]
    if category in CRITICAL_CATEGORIES:
        priority += 1
    return min(MAX_REPORT_PRIORITY, priority)


def urgency_score(report, now: datetime) -> float:
    """
    How urgently a report needs a moderator: priority, plus a severity
    weight, plus up to two points for time spent waiting (one per day).
    """
    age_hours = int((now - ensure_utc(report.created_at)).total_seconds() // 3600)
    age_bonus = min(age_hours / 24, MAX_URGENCY_AGE_BONUS)
    return round(report.priority + SEVERITY_URGENCY_WEIGHT[report.severity] + age_bonus, 2)


def _page_bounds(page: int, limit: int):
    if page < 1 or limit < 1:
        raise InvalidInput("page and limit must be positive")
    return (page - 1) * limit, limit


class ReputationLedger:
    """Records ratings and reports and keeps player reputation scores current."""

    def __init__(self, clock=None, sanction_engine=None):
        """
        Args:
            clock: Time source with a ``now()`` method
            sanction_engine: SanctionEngine evaluated synchronously for every new report
        """
        self.clock = clock or SystemClock()
        self.sanction_engine = sanction_engine

    # --- Ratings ---

    async def submit_rating(
        self,
        session: AsyncSession,
        rater_id: int,
        ratee_id: int,
        match_id: int,
        scores: RatingScores,
        feedback: Optional[str] = None,
        positives: Optional[List[str]] = None,
        improvements: Optional[List[str]] = None,
    ) -> Rating:
        """
        Rate a fellow participant of a completed match and refresh their reputation.

        Raises:
            SelfRating, MatchNotFound, MatchNotCompleted, NotParticipant,
            DuplicateRating, InvalidInput
        """
        if rater_id == ratee_id:
            raise SelfRating()
        scores.validate()

        match = await get_match(session, match_id)
        if match.status != MatchStatus.COMPLETED.value:
            raise MatchNotCompleted()

        participants = roster_player_ids(match)
        if rater_id not in participants or ratee_id not in participants:
            raise NotParticipant()

        existing = await self._find_rating(session, ratee_id, rater_id, match_id)
        if existing is not None:
            raise DuplicateRating()

        now = self.clock.now()
        rater = await player_service.get_player(session, rater_id)
        rater_reputation = rater.reputation_score
        reason = flag_reason(scores, rater_reputation)

        rating = Rating(
            rated_player_id=ratee_id,
            rated_by_id=rater_id,
            match_id=match_id,
            overall_rating=scores.overall_rating,
            skill_rating=scores.skill_rating,
            teamwork_rating=scores.teamwork_rating,
            attitude_rating=scores.attitude_rating,
            punctuality_rating=scores.punctuality_rating,
            communication_rating=scores.communication_rating,
            feedback=feedback,
            positives=positives or [],
            improvements=improvements or [],
            rating_weight=compute_rating_weight(rater_reputation),
            flagged=reason is not None,
            flag_reason=reason,
            is_mutual=False,
            is_active=True,
            created_at=now,
        )
        session.add(rating)
        try:
            await session.flush()
        except IntegrityError as e:
            logger.error(
                f"Duplicate rating race for player {ratee_id} by {rater_id} in match {match_id}: {e}"
            )
            await session.rollback()
            raise DuplicateRating() from e

        if reason:
            logger.warning(f"Rating {rating.id} by player {rater_id} flagged: {reason}")

        reverse = await self._find_rating(session, rater_id, ratee_id, match_id)
        if reverse is not None:
            reverse.is_mutual = True
            rating.is_mutual = True

        await self.refresh_reputation(session, ratee_id, rated_at=now)
        logger.info(f"Player {rater_id} rated player {ratee_id} in match {match_id}")
        return rating

    async def refresh_reputation(
        self, session: AsyncSession, player_id: int, rated_at: Optional[datetime] = None
    ) -> float:
        """Recompute a player's reputation from all their active ratings and store it."""
        player = await player_service.get_player(session, player_id)
        ratings = await self._ratings_for(session, player_id)
        player.reputation_score = compute_reputation(ratings)
        if rated_at is not None:
            player.last_rated_at = rated_at
        await session.flush()
        return player.reputation_score

    async def ratings_given(
        self, session: AsyncSession, player_id: int, page: int = 1, limit: int = 20
    ) -> Dict:
        """Paginated ratings a player has submitted, newest first."""
        offset, limit = _page_bounds(page, limit)
        base = select(Rating).where(Rating.rated_by_id == player_id)
        total = (await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
        result = await session.execute(
            base.order_by(Rating.created_at.desc(), Rating.id.desc()).offset(offset).limit(limit)
        )
        ratings = list(result.scalars().all())
        return {
            "ratings": ratings,
            "total_count": total,
            "page": page,
            "has_more": offset + len(ratings) < total,
        }

    async def match_ratings_summary(self, session: AsyncSession, match_id: int) -> List[Dict]:
        """Per rated player of a match: unweighted averages and rating count, best overall first."""
        await get_match(session, match_id)
        result = await session.execute(
            select(Rating).where(and_(Rating.match_id == match_id, Rating.is_active == True))  # noqa: E712
        )
        by_player = defaultdict(list)
        for rating in result.scalars().all():
            by_player[rating.rated_player_id].append(rating)

        summary = []
        for player_id, ratings in by_player.items():
            count = len(ratings)
            summary.append(
                {
                    "player_id": player_id,
                    "average_overall": sum(r.overall_rating for r in ratings) / count,
                    "average_skill": sum(r.skill_rating for r in ratings) / count,
                    "average_teamwork": sum(r.teamwork_rating for r in ratings) / count,
                    "average_attitude": sum(r.attitude_rating for r in ratings) / count,
                    "rating_count": count,
                }
            )
        summary.sort(key=lambda s: (-s["average_overall"], s["player_id"]))
        return summary

    async def top_rated_players(
        self, session: AsyncSession, limit: int = 10, min_ratings: int = 5
    ) -> List[Dict]:
        """Players with at least ``min_ratings`` ratings in the last 90 days, by weighted average."""
        cutoff = self.clock.now() - timedelta(days=TOP_RATED_WINDOW_DAYS)
        result = await session.execute(
            select(Rating).where(
                and_(Rating.created_at >= cutoff, Rating.is_active == True)  # noqa: E712
            )
        )
        by_player = defaultdict(list)
        for rating in result.scalars().all():
            by_player[rating.rated_player_id].append(rating)

        ranked = [
            {
                "player_id": player_id,
                "weighted_average": compute_reputation(ratings),
                "rating_count": len(ratings),
            }
            for player_id, ratings in by_player.items()
            if len(ratings) >= min_ratings
        ]
        ranked.sort(key=lambda r: (-r["weighted_average"], r["player_id"]))
        ranked = ranked[:limit]

        if ranked:
            players = await session.execute(
                select(Player.id, Player.full_name, Player.position).where(
                    Player.id.in_([r["player_id"] for r in ranked])
                )
            )
            names = {row.id: row for row in players}
            for entry in ranked:
                row = names.get(entry["player_id"])
                entry["full_name"] = row.full_name if row else None
                entry["position"] = row.position if row else None
        return ranked

    # --- Reports ---

    async def submit_report(
        self,
        session: AsyncSession,
        reporter_id: int,
        reported_id: int,
        match_id: int,
        category: str,
        severity: str,
        description: str,
        evidence: Optional[List[str]] = None,
        is_anonymous: bool = False,
    ) -> ReportOutcome:
        """
        File a misconduct report and run the sanction checks on it.

        Raises:
            SelfReport, MatchNotFound, NotParticipant, InvalidInput
        """
        if reporter_id == reported_id:
            raise SelfReport()
        try:
            category = ReportCategory(category).value
            severity = ReportSeverity(severity).value
        except ValueError as e:
            raise InvalidInput(str(e))
        if not description or not description.strip():
            raise InvalidInput("description is required")
        if len(description) > 1000:
            raise InvalidInput("description must be at most 1000 characters")

        match = await get_match(session, match_id)
        participants = roster_player_ids(match)
        if reporter_id not in participants or reported_id not in participants:
            raise NotParticipant()

        report = Report(
            reported_player_id=reported_id,
            reported_by_id=reporter_id,
            match_id=match_id,
            category=category,
            severity=severity,
            description=description,
            evidence=evidence or [],
            is_anonymous=is_anonymous,
            status=ReportStatus.PENDING.value,
            priority=compute_report_priority(severity, category),
            created_at=self.clock.now(),
            admin_notes=[],
        )
        session.add(report)
        await session.flush()
        logger.info(
            f"Report {report.id} filed against player {reported_id} "
            f"({category}, {severity}, priority {report.priority})"
        )

        actions = []
        if self.sanction_engine is not None:
            actions = await self.sanction_engine.evaluate(session, reported_id, report)
        return ReportOutcome(report=report, actions=actions)

    async def report_stats(self, session: AsyncSession, player_id: int) -> Dict:
        """Counts of reports against a player by status, critical count and categories seen."""
        result = await session.execute(select(Report).where(Report.reported_player_id == player_id))
        reports = result.scalars().all()
        statuses = Counter(r.status for r in reports)
        return {
            "total_reports": len(reports),
            "pending_reports": statuses[ReportStatus.PENDING.value],
            "resolved_reports": statuses[ReportStatus.RESOLVED.value],
            "dismissed_reports": statuses[ReportStatus.DISMISSED.value],
            "critical_reports": sum(1 for r in reports if r.severity == ReportSeverity.CRITICAL.value),
            "categories": sorted({r.category for r in reports}),
        }

    async def reports_for_review(
        self,
        session: AsyncSession,
        statuses: Optional[List[str]] = None,
        severity: Optional[str] = None,
        category: Optional[str] = None,
        min_priority: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict:
        """Moderation queue: highest priority first, oldest first within a priority."""
        offset, limit = _page_bounds(page, limit)
        conditions = [Report.status.in_(statuses or REVIEW_STATUSES)]
        if severity:
            conditions.append(Report.severity == severity)
        if category:
            conditions.append(Report.category == category)
        if min_priority is not None:
            conditions.append(Report.priority >= min_priority)

        base = select(Report).where(and_(*conditions))
        total = (await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
        result = await session.execute(
            base.order_by(Report.priority.desc(), Report.created_at.asc(), Report.id.asc())
            .offset(offset)
            .limit(limit)
        )
        reports = list(result.scalars().all())
        return {
            "reports": reports,
            "total_count": total,
            "page": page,
            "has_more": offset + len(reports) < total,
        }

    async def escalate_report(self, session: AsyncSession, report_id: int) -> Report:
        """Raise an open report's priority by one (capped at 5) and mark it escalated."""
        report = await get_report(session, report_id)
        if report.status in (ReportStatus.RESOLVED.value, ReportStatus.DISMISSED.value):
            raise InvalidState(f"Report {report_id} is already {report.status}")
        report.status = ReportStatus.ESCALATED.value
        report.priority = min(MAX_REPORT_PRIORITY, report.priority + 1)
        await session.flush()
        logger.info(f"Report {report.id} escalated to priority {report.priority}")
        return report

    async def urgent_reports(self, session: AsyncSession, limit: int = 10) -> List[Dict]:
        """
        Open reports that need immediate attention: critical severity, priority 4
        or more, or pending for over a day. Highest priority first, oldest first
        within a priority, each with its urgency score.
        """
        if limit < 1:
            raise InvalidInput("limit must be positive")
        now = self.clock.now()
        stale_before = now - timedelta(hours=URGENT_PENDING_AGE_HOURS)
        result = await session.execute(
            select(Report)
            .where(
                and_(
                    Report.status.in_(REVIEW_STATUSES),
                    or_(
                        Report.severity == ReportSeverity.CRITICAL.value,
                        Report.priority >= URGENT_PRIORITY_THRESHOLD,
                        and_(
                            Report.status == ReportStatus.PENDING.value,
                            Report.created_at < stale_before,
                        ),
                    ),
                )
            )
            .order_by(Report.priority.desc(), Report.created_at.asc(), Report.id.asc())
            .limit(limit)
        )
        return [
            {"report": report, "urgency_score": urgency_score(report, now)}
            for report in result.scalars().all()
        ]

    async def add_admin_note(
        self, session: AsyncSession, report_id: int, admin_id: int, note: str
    ) -> Report:
        """
        Append a moderator note to a report, whatever its status.

        Raises:
            ReportNotFound: Unknown report
            InvalidInput: Empty or overlong note
        """
        note = (note or "").strip()
        if not note:
            raise InvalidInput("note is required")
        if len(note) > ADMIN_NOTE_MAX_LENGTH:
            raise InvalidInput(f"note must be at most {ADMIN_NOTE_MAX_LENGTH} characters")

        report = await get_report(session, report_id)
        report.admin_notes.append(
            ReportAdminNote(note=note, added_by_id=admin_id, added_at=self.clock.now())
        )
        await session.flush()
        logger.info(f"Admin {admin_id} added a note to report {report.id}")
        return report

    async def reports_filed(
        self, session: AsyncSession, player_id: int, page: int = 1, limit: int = 20
    ) -> Dict:
        """Paginated reports a player has filed, newest first."""
        offset, limit = _page_bounds(page, limit)
        base = select(Report).where(Report.reported_by_id == player_id)
        total = (await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
        result = await session.execute(
            base.order_by(Report.created_at.desc(), Report.id.desc()).offset(offset).limit(limit)
        )
        reports = list(result.scalars().all())
        return {
            "reports": reports,
            "total_count": total,
            "page": page,
            "has_more": offset + len(reports) < total,
        }

    # --- Aggregates ---

    async def reputation_profile(self, session: AsyncSession, player_id: int) -> Dict:
        """Everything a player's reputation page shows, computed fresh from the ratings."""
        player = await player_service.get_player(session, player_id)
        ratings = await self._ratings_for(session, player_id)
        now = self.clock.now()

        return {
            "player_id": player.id,
            "full_name": player.full_name,
            "reputation_score": compute_reputation(ratings),
            "recent_trend": round(recent_trend(ratings, now), 2),
            "total_ratings": len(ratings),
            "recent_ratings": len(recent_ratings(ratings, now)),
            "category_breakdown": category_averages(ratings),
            "report_stats": await self.report_stats(session, player_id),
            "matches_played": player.matches_played,
            "is_suspended": player_service.is_currently_suspended(player, now),
            "suspension_expires_at": player.suspension_expires_at,
            "is_banned": bool(player.is_banned),
            "warning_count": len(player.warnings),
        }

    async def platform_stats(self, session: AsyncSession) -> Dict:
        """Platform-wide moderation dashboard numbers."""
        active_players = (
            await session.execute(
                select(func.count(Player.id)).where(Player.is_active == True)  # noqa: E712
            )
        ).scalar_one()
        total_ratings = (await session.execute(select(func.count(Rating.id)))).scalar_one()
        total_reports = (await session.execute(select(func.count(Report.id)))).scalar_one()
        pending_reports = (
            await session.execute(
                select(func.count(Report.id)).where(Report.status == ReportStatus.PENDING.value)
            )
        ).scalar_one()
        average_reputation = (
            await session.execute(
                select(func.avg(Player.reputation_score)).where(Player.is_active == True)  # noqa: E712
            )
        ).scalar_one()

        cutoff = self.clock.now() - timedelta(days=RECENT_WINDOW_DAYS)
        trending = await session.execute(
            select(Report.category, func.count(Report.id).label("count"))
            .where(Report.created_at >= cutoff)
            .group_by(Report.category)
            .order_by(func.count(Report.id).desc(), Report.category)
            .limit(10)
        )

        return {
            "active_players": active_players,
            "total_ratings": total_ratings,
            "total_reports": total_reports,
            "pending_reports": pending_reports,
            "average_reputation": float(average_reputation) if average_reputation is not None else NEUTRAL_REPUTATION,
            "trending_categories": [{"category": row.category, "count": row.count} for row in trending],
        }

    # --- Queries ---

    @staticmethod
    async def _find_rating(
        session: AsyncSession, rated_player_id: int, rated_by_id: int, match_id: int
    ) -> Optional[Rating]:
        result = await session.execute(
            select(Rating).where(
                and_(
                    Rating.rated_player_id == rated_player_id,
                    Rating.rated_by_id == rated_by_id,
                    Rating.match_id == match_id,
                )
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _ratings_for(session: AsyncSession, player_id: int) -> List[Rating]:
        result = await session.execute(
            select(Rating).where(
                and_(Rating.rated_player_id == player_id, Rating.is_active == True)  # noqa: E712
            )
        )
        return list(result.scalars().all())
