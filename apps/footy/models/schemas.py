"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict, model_validator


# ============================================================================
# Match roster schemas
# ============================================================================


class JoinMatchRequest(BaseModel):
    """Request to join a match."""

    preferred_position: Optional[str] = None
    request_id: Optional[int] = None  # Player request the join came through


class JoinMatchResponse(BaseModel):
    match_id: int
    team: str
    available_slots: int
    status: str


class LeaveMatchResponse(BaseModel):
    match_id: int
    from_team: str
    available_slots: int
    status: str


class CanJoinResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    kind: Optional[str] = None


class RosterEntryResponse(BaseModel):
    """One player on one side of a match."""

    model_config = ConfigDict(from_attributes=True)
    player_id: int
    team: str
    position: Optional[str] = None
    joined_at: datetime


class MatchResponse(BaseModel):
    """Match with both rosters."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    title: str
    organizer_id: int
    referee_id: Optional[int] = None
    format: str
    max_players_per_team: int
    skill_level_required: str
    status: str
    date_time: datetime
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    roster_entries: List[RosterEntryResponse] = []


# ============================================================================
# Reputation schemas
# ============================================================================


class RatingCreate(BaseModel):
    """Rate another participant of a completed match."""

    rated_player_id: int
    match_id: int
    overall_rating: float = Field(ge=1, le=5)
    skill_rating: float = Field(ge=1, le=5)
    teamwork_rating: float = Field(ge=1, le=5)
    attitude_rating: float = Field(ge=1, le=5)
    punctuality_rating: float = Field(ge=1, le=5)
    communication_rating: float = Field(ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=500)
    positives: List[str] = []
    improvements: List[str] = []


class RatingResponse(BaseModel):
    """Rating response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    rated_player_id: int
    rated_by_id: int
    match_id: int
    overall_rating: float
    skill_rating: float
    teamwork_rating: float
    attitude_rating: float
    punctuality_rating: float
    communication_rating: float
    feedback: Optional[str] = None
    rating_weight: float
    flagged: bool
    flag_reason: Optional[str] = None
    is_mutual: bool
    created_at: datetime


class ReportCreate(BaseModel):
    """File a misconduct report."""

    reported_player_id: int
    match_id: int
    category: str
    severity: str
    description: str = Field(min_length=1, max_length=1000)
    evidence: List[str] = []
    is_anonymous: bool = False


class AdminNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    note: str
    added_by_id: int
    added_at: datetime


class ReportResponse(BaseModel):
    """Report response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    reported_player_id: int
    reported_by_id: int
    match_id: int
    category: str
    severity: str
    description: str
    status: str
    priority: int
    is_anonymous: bool
    resolution: Optional[dict] = None
    created_at: datetime
    admin_notes: List[AdminNoteResponse] = []


class SanctionActionResponse(BaseModel):
    action: str
    reason: str
    duration_days: Optional[int] = None


class ReportSubmitResponse(BaseModel):
    """A filed report and any sanctions it triggered."""

    report: ReportResponse
    actions: List[SanctionActionResponse]


class ReportResolveRequest(BaseModel):
    """Manual resolution of a report."""

    action: str
    reason: Optional[str] = None
    duration_days: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_duration(self):
        """A temporary suspension needs a duration."""
        if self.action == "temporary_suspension" and not self.duration_days:
            raise ValueError("duration_days is required for temporary_suspension")
        return self


class AdminNoteCreate(BaseModel):
    """Moderator note on a report."""

    note: str = Field(min_length=1, max_length=1000)


class UrgentReportResponse(BaseModel):
    report: ReportResponse
    urgency_score: float


class ReportListResponse(BaseModel):
    """Paginated moderation queue."""

    reports: List[ReportResponse]
    total_count: int
    page: int
    has_more: bool


class ReportStatsResponse(BaseModel):
    total_reports: int
    pending_reports: int
    resolved_reports: int
    dismissed_reports: int
    critical_reports: int
    categories: List[str]


class ReputationProfileResponse(BaseModel):
    """A player's reputation page."""

    player_id: int
    full_name: str
    reputation_score: float
    recent_trend: float
    total_ratings: int
    recent_ratings: int
    category_breakdown: Dict[str, float]
    report_stats: ReportStatsResponse
    matches_played: int
    is_suspended: bool
    suspension_expires_at: Optional[datetime] = None
    is_banned: bool
    warning_count: int


class MatchRatingSummary(BaseModel):
    player_id: int
    average_overall: float
    average_skill: float
    average_teamwork: float
    average_attitude: float
    rating_count: int


class TrendingCategory(BaseModel):
    category: str
    count: int


class PlatformStatsResponse(BaseModel):
    active_players: int
    total_ratings: int
    total_reports: int
    pending_reports: int
    average_reputation: float
    trending_categories: List[TrendingCategory]


# ============================================================================
# Player request schemas
# ============================================================================


class PlayerRequestCreate(BaseModel):
    """Post a "need players" request for a match."""

    match_id: int
    position_needed: str
    slots_available: int = Field(ge=1, le=11)
    target_skill_level: str = "Any"
    max_distance: int = Field(default=25000, ge=100, le=100000)  # meters
    message: Optional[str] = Field(default=None, max_length=300)
    urgency: str = "medium"
    auto_fulfill: bool = True
    expires_at: Optional[datetime] = None


class PlayerRequestUpdate(BaseModel):
    """Editable fields of an active request. Omitted fields are left alone."""

    message: Optional[str] = Field(default=None, max_length=300)
    urgency: Optional[str] = None
    target_skill_level: Optional[str] = None
    max_distance: Optional[int] = Field(default=None, ge=100, le=100000)
    expires_at: Optional[datetime] = None


class PlayerRequestRespond(BaseModel):
    response: str  # "interested" or "declined"


class ContactResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    player_id: int
    response: str
    contacted_at: datetime
    response_at: Optional[datetime] = None


class PlayerRequestResponse(BaseModel):
    """Player request response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    match_id: int
    requested_by_id: int
    position_needed: str
    slots_available: int
    remaining_slots: int
    target_skill_level: str
    max_distance: int
    message: Optional[str] = None
    urgency: str
    status: str
    auto_fulfill: bool
    broadcast_at: Optional[datetime] = None
    expires_at: datetime
    total_contacted: int
    total_interested: int
    total_joined: int
    created_at: datetime


class PlayerRequestDetailResponse(PlayerRequestResponse):
    """Request with its contact list."""

    contacts: List[ContactResponseItem] = []


class PlayerRequestListItem(BaseModel):
    request: PlayerRequestResponse
    my_response: Optional[str] = None


class BroadcastResponse(BaseModel):
    request_id: int
    contacted_count: int


class PlayerRequestAnalyticsResponse(BaseModel):
    request_id: int
    status: str
    total_contacted: int
    total_interested: int
    total_joined: int
    remaining_slots: int
    response_rate: float
    success_rate: float
    response_breakdown: Dict[str, int]
    minutes_remaining: int


class CleanupResponse(BaseModel):
    expired_count: int
    failed_request_ids: List[int] = []


# ============================================================================
# Notification schemas
# ============================================================================


class NotificationResponse(BaseModel):
    """Notification response."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    player_id: int
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    is_read: bool
    read_at: Optional[str] = None
    link_url: Optional[str] = None
    created_at: str


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    """Unread notification count response."""

    count: int


class MarkAllReadResponse(BaseModel):
    success: bool
    count: int
