"""Reputation, rating and report route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from footy.api.auth_dependencies import get_current_player_id, require_admin
from footy.api.dependencies import get_reputation_ledger, get_sanction_engine
from footy.api.routes import limiter
from footy.database.db import get_db_session
from footy.models.schemas import (
    AdminNoteCreate,
    MatchRatingSummary,
    PlatformStatsResponse,
    RatingCreate,
    RatingResponse,
    ReportCreate,
    ReportListResponse,
    ReportResolveRequest,
    ReportResponse,
    ReportSubmitResponse,
    ReputationProfileResponse,
    UrgentReportResponse,
)
from footy.services.errors import FootyError
from footy.services.reputation_service import RatingScores, ReputationLedger
from footy.services.sanction_service import SanctionEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/reputation/ratings", response_model=RatingResponse)
@limiter.limit("30/minute")
async def submit_rating(
    request: Request,
    payload: RatingCreate,
    player_id: int = Depends(get_current_player_id),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Rate another participant of a completed match."""
    try:
        scores = RatingScores(
            overall_rating=payload.overall_rating,
            skill_rating=payload.skill_rating,
            teamwork_rating=payload.teamwork_rating,
            attitude_rating=payload.attitude_rating,
            punctuality_rating=payload.punctuality_rating,
            communication_rating=payload.communication_rating,
        )
        return await ledger.submit_rating(
            session,
            rater_id=player_id,
            ratee_id=payload.rated_player_id,
            match_id=payload.match_id,
            scores=scores,
            feedback=payload.feedback,
            positives=payload.positives,
            improvements=payload.improvements,
        )
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error submitting rating: {e}")
        raise HTTPException(status_code=500, detail="Error submitting rating")


@router.post("/api/reputation/reports", response_model=ReportSubmitResponse)
@limiter.limit("10/minute")
async def submit_report(
    request: Request,
    payload: ReportCreate,
    player_id: int = Depends(get_current_player_id),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Report another participant of a match for misconduct."""
    try:
        outcome = await ledger.submit_report(
            session,
            reporter_id=player_id,
            reported_id=payload.reported_player_id,
            match_id=payload.match_id,
            category=payload.category,
            severity=payload.severity,
            description=payload.description,
            evidence=payload.evidence,
            is_anonymous=payload.is_anonymous,
        )
        return {
            "report": outcome.report,
            "actions": [action.to_dict() for action in outcome.actions],
        }
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error submitting report: {e}")
        raise HTTPException(status_code=500, detail="Error submitting report")


@router.get("/api/reputation/players/{player_id}/profile", response_model=ReputationProfileResponse)
async def get_reputation_profile(
    player_id: int,
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Reputation score, trend, category breakdown and report history for a player."""
    try:
        return await ledger.reputation_profile(session, player_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading reputation profile for player {player_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading reputation profile")


@router.get("/api/reputation/reports/review", response_model=ReportListResponse)
async def list_reports_for_review(
    status: Optional[List[str]] = Query(default=None),
    severity: Optional[str] = None,
    category: Optional[str] = None,
    min_priority: Optional[int] = Query(default=None, ge=1, le=5),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin_id: int = Depends(require_admin),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Moderation queue (admin only)."""
    try:
        return await ledger.reports_for_review(
            session,
            statuses=status,
            severity=severity,
            category=category,
            min_priority=min_priority,
            page=page,
            limit=limit,
        )
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading reports for review: {e}")
        raise HTTPException(status_code=500, detail="Error loading reports")


@router.get("/api/reputation/reports/urgent", response_model=List[UrgentReportResponse])
async def list_urgent_reports(
    limit: int = Query(default=10, ge=1, le=50),
    admin_id: int = Depends(require_admin),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Reports needing immediate attention, with urgency scores (admin only)."""
    try:
        return await ledger.urgent_reports(session, limit=limit)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading urgent reports: {e}")
        raise HTTPException(status_code=500, detail="Error loading urgent reports")


@router.post("/api/reputation/reports/{report_id}/notes", response_model=ReportResponse)
async def add_report_note(
    report_id: int,
    payload: AdminNoteCreate,
    admin_id: int = Depends(require_admin),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a moderator note to a report (admin only)."""
    try:
        return await ledger.add_admin_note(session, report_id, admin_id, payload.note)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error adding note to report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Error adding report note")


@router.put("/api/reputation/reports/{report_id}/resolve", response_model=ReportResponse)
async def resolve_report(
    report_id: int,
    payload: ReportResolveRequest,
    admin_id: int = Depends(require_admin),
    engine: SanctionEngine = Depends(get_sanction_engine),
    session: AsyncSession = Depends(get_db_session),
):
    """Resolve a report with a moderation action (admin only)."""
    try:
        return await engine.resolve_report(
            session,
            report_id,
            action=payload.action,
            reason=payload.reason,
            duration_days=payload.duration_days,
            resolver_id=admin_id,
        )
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error resolving report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Error resolving report")


@router.post("/api/reputation/reports/{report_id}/escalate", response_model=ReportResponse)
async def escalate_report(
    report_id: int,
    admin_id: int = Depends(require_admin),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Escalate a report for senior review (admin only)."""
    try:
        return await ledger.escalate_report(session, report_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error escalating report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Error escalating report")


@router.get("/api/reputation/stats", response_model=PlatformStatsResponse)
async def get_platform_stats(
    admin_id: int = Depends(require_admin),
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Platform-wide reputation and moderation numbers (admin only)."""
    try:
        return await ledger.platform_stats(session)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading platform stats: {e}")
        raise HTTPException(status_code=500, detail="Error loading platform stats")


@router.get("/api/reputation/matches/{match_id}/summary", response_model=List[MatchRatingSummary])
async def get_match_ratings_summary(
    match_id: int,
    ledger: ReputationLedger = Depends(get_reputation_ledger),
    session: AsyncSession = Depends(get_db_session),
):
    """Average ratings per player for a match."""
    try:
        return await ledger.match_ratings_summary(session, match_id)
    except FootyError:
        raise
    except Exception as e:
        logger.error(f"Error loading ratings summary for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading ratings summary")
