"""
SQLAlchemy ORM models for the Footy reputation and matchmaking core.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    JSON,
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import relationship
from footy.database.db import Base
from footy.utils.datetime_utils import utcnow, ensure_utc


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as aware UTC (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


class MatchStatus(str, enum.Enum):
    """Match status enum."""

    OPEN = "open"
    FULL = "full"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Team(str, enum.Enum):
    """Roster side."""

    A = "teamA"
    B = "teamB"


class Position(str, enum.Enum):
    """Pitch positions."""

    GK = "GK"
    CB = "CB"
    LB = "LB"
    RB = "RB"
    CDM = "CDM"
    CM = "CM"
    CAM = "CAM"
    LM = "LM"
    RM = "RM"
    LW = "LW"
    RW = "RW"
    ST = "ST"


class ReportCategory(str, enum.Enum):
    """Kinds of misconduct a player can be reported for."""

    UNSPORTSMANLIKE_CONDUCT = "unsportsmanlike_conduct"
    ABUSIVE_LANGUAGE = "abusive_language"
    PHYSICAL_AGGRESSION = "physical_aggression"
    NO_SHOW = "no_show"
    LATE_ARRIVAL = "late_arrival"
    CHEATING = "cheating"
    HARASSMENT = "harassment"
    DISCRIMINATION = "discrimination"
    OTHER = "other"


class ReportSeverity(str, enum.Enum):
    """Report severity enum."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReportStatus(str, enum.Enum):
    """Report status enum."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    ESCALATED = "escalated"


class ResolutionAction(str, enum.Enum):
    """Action recorded when a report is resolved."""

    NO_ACTION = "no_action"
    WARNING = "warning"
    TEMPORARY_SUSPENSION = "temporary_suspension"
    PERMANENT_BAN = "permanent_ban"
    REPUTATION_PENALTY = "reputation_penalty"
    MATCH_BAN = "match_ban"
    COMMUNITY_SERVICE = "community_service"


class RequestStatus(str, enum.Enum):
    """Player request status enum."""

    ACTIVE = "active"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ContactResponse(str, enum.Enum):
    """A contacted player's answer to a player request."""

    PENDING = "pending"
    INTERESTED = "interested"
    DECLINED = "declined"
    JOINED = "joined"


class Urgency(str, enum.Enum):
    """Player request urgency."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    PLAYER_REQUEST = "player_request"
    SANCTION_WARNING = "sanction_warning"
    SANCTION_SUSPENSION = "sanction_suspension"
    SANCTION_BAN = "sanction_ban"


class Player(Base):
    """Player profiles (the player directory)."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, nullable=False)
    position = Column(String(5), nullable=True)  # Position enum value
    skill_level = Column(String(20), nullable=False, default="Beginner")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Reputation & stats
    reputation_score = Column(Float, nullable=False, default=3.0)
    last_rated_at = Column(UTCDateTime, nullable=True)
    matches_played = Column(Integer, nullable=False, default=0)
    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    yellow_cards = Column(Integer, nullable=False, default=0)
    red_cards = Column(Integer, nullable=False, default=0)
    mvp_awards = Column(Integer, nullable=False, default=0)

    # Account status
    is_active = Column(Boolean, nullable=False, default=True)
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspension_reason = Column(Text, nullable=True)
    suspension_expires_at = Column(UTCDateTime, nullable=True)
    last_suspended_at = Column(UTCDateTime, nullable=True)
    is_banned = Column(Boolean, nullable=False, default=False)
    ban_reason = Column(Text, nullable=True)
    banned_at = Column(UTCDateTime, nullable=True)
    last_warned_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    warnings = relationship(
        "PlayerWarning",
        back_populates="player",
        order_by="PlayerWarning.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_players_reputation", "reputation_score"),
        Index("idx_players_coords", "latitude", "longitude"),
        Index("idx_players_suspension", "is_suspended", "suspension_expires_at"),
    )


class PlayerWarning(Base):
    """Append-only log of warnings issued to a player."""

    __tablename__ = "player_warnings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    reason = Column(Text, nullable=False)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=True)
    issued_at = Column(UTCDateTime, nullable=False, default=utcnow)

    player = relationship("Player", back_populates="warnings")

    __table_args__ = (Index("idx_player_warnings_player", "player_id"),)


class Match(Base):
    """Organized matches with two rosters."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    organizer_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    referee_id = Column(Integer, ForeignKey("players.id"), nullable=True)
    format = Column(String(10), nullable=False)  # "5v5", "7v7" or "11v11"
    max_players_per_team = Column(Integer, nullable=False)
    skill_level_required = Column(String(20), nullable=False, default="Any")
    status = Column(String(20), nullable=False, default=MatchStatus.OPEN.value)
    date_time = Column(UTCDateTime, nullable=False)
    late_join_deadline_minutes = Column(Integer, nullable=False, default=15)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String, nullable=True)
    started_at = Column(UTCDateTime, nullable=True)
    ended_at = Column(UTCDateTime, nullable=True)
    last_activity_at = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False)  # Optimistic lock for roster changes
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    roster_entries = relationship(
        "MatchRosterEntry",
        back_populates="match",
        order_by="MatchRosterEntry.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "max_players_per_team IN (5, 7, 11)", name="ck_matches_team_size"
        ),
        Index("idx_matches_status", "status"),
        Index("idx_matches_organizer", "organizer_id"),
        Index("idx_matches_date_time", "date_time"),
    )


class MatchRosterEntry(Base):
    """One rostered player on one side of a match."""

    __tablename__ = "match_roster_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team = Column(String(10), nullable=False)  # Team enum value
    position = Column(String(5), nullable=True)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)

    match = relationship("Match", back_populates="roster_entries")

    __table_args__ = (
        # A player can be on at most one roster of a match, at most once
        UniqueConstraint("match_id", "player_id", name="uq_roster_match_player"),
        Index("idx_roster_player", "player_id"),
    )


class Rating(Base):
    """Player-to-player rating left after a completed match."""

    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rated_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    rated_by_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    overall_rating = Column(Float, nullable=False)
    skill_rating = Column(Float, nullable=False)
    teamwork_rating = Column(Float, nullable=False)
    attitude_rating = Column(Float, nullable=False)
    punctuality_rating = Column(Float, nullable=False)
    communication_rating = Column(Float, nullable=False)
    feedback = Column(String(500), nullable=True)
    positives = Column(JSON, nullable=True)
    improvements = Column(JSON, nullable=True)
    rating_weight = Column(Float, nullable=False, default=1.0)
    flagged = Column(Boolean, nullable=False, default=False)
    flag_reason = Column(String, nullable=True)
    is_mutual = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "rated_player_id", "rated_by_id", "match_id", name="uq_ratings_player_rater_match"
        ),
        CheckConstraint("overall_rating BETWEEN 1 AND 5", name="ck_ratings_overall_range"),
        CheckConstraint("rating_weight BETWEEN 0.1 AND 2.0", name="ck_ratings_weight_range"),
        Index("idx_ratings_match_player", "match_id", "rated_player_id"),
        Index("idx_ratings_player_created", "rated_player_id", "created_at"),
        Index("idx_ratings_rater_created", "rated_by_id", "created_at"),
    )


class Report(Base):
    """Misconduct report against a player. Never deleted, only status-transitioned."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reported_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    reported_by_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    category = Column(String(30), nullable=False)  # ReportCategory enum value
    severity = Column(String(10), nullable=False)  # ReportSeverity enum value
    description = Column(String(1000), nullable=False)
    evidence = Column(JSON, nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=ReportStatus.PENDING.value)
    priority = Column(Integer, nullable=False, default=3)

    # Resolution (set once, on transition to resolved)
    resolution_action = Column(String(30), nullable=True)
    resolution_duration_days = Column(Integer, nullable=True)
    resolution_reason = Column(Text, nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("players.id"), nullable=True)
    resolved_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    admin_notes = relationship(
        "ReportAdminNote",
        back_populates="report",
        order_by="ReportAdminNote.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="ck_reports_priority_range"),
        Index("idx_reports_player_status", "reported_player_id", "status"),
        Index("idx_reports_player_created", "reported_player_id", "created_at"),
        Index("idx_reports_priority_status", "priority", "status"),
        Index("idx_reports_match_category", "match_id", "category"),
    )

    @property
    def resolution(self):
        """Resolution details as a dict, or None while unresolved."""
        if self.resolution_action is None:
            return None
        return {
            "action": self.resolution_action,
            "duration_days": self.resolution_duration_days,
            "reason": self.resolution_reason,
            "resolved_by": self.resolved_by_id,
            "resolved_at": self.resolved_at,
        }


class ReportAdminNote(Base):
    """Moderator note on a report. Append-only."""

    __tablename__ = "report_admin_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False)
    note = Column(Text, nullable=False)
    added_by_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    added_at = Column(UTCDateTime, nullable=False, default=utcnow)

    report = relationship("Report", back_populates="admin_notes")

    __table_args__ = (Index("idx_report_admin_notes_report", "report_id"),)


class MatchRequest(Base):
    """A "need players" broadcast against an open match."""

    __tablename__ = "match_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    requested_by_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    position_needed = Column(String(5), nullable=False)
    slots_available = Column(Integer, nullable=False)
    target_skill_level = Column(String(20), nullable=False, default="Any")
    max_distance = Column(Integer, nullable=False, default=25000)  # meters
    message = Column(String(300), nullable=True)
    urgency = Column(String(10), nullable=False, default=Urgency.MEDIUM.value)
    status = Column(String(20), nullable=False, default=RequestStatus.ACTIVE.value)
    auto_fulfill = Column(Boolean, nullable=False, default=True)
    broadcast_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=False)
    total_contacted = Column(Integer, nullable=False, default=0)
    total_interested = Column(Integer, nullable=False, default=0)
    total_joined = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)  # Optimistic lock for counter updates
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    contacts = relationship(
        "MatchRequestContact",
        back_populates="request",
        order_by="MatchRequestContact.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    joins = relationship(
        "MatchRequestJoin",
        back_populates="request",
        order_by="MatchRequestJoin.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("slots_available BETWEEN 1 AND 11", name="ck_requests_slots_range"),
        CheckConstraint(
            "max_distance BETWEEN 100 AND 100000", name="ck_requests_distance_range"
        ),
        Index("idx_match_requests_match", "match_id"),
        Index("idx_match_requests_requester", "requested_by_id"),
        Index("idx_match_requests_status_expiry", "status", "expires_at"),
    )

    @property
    def remaining_slots(self) -> int:
        return max(0, self.slots_available - (self.total_joined or 0))

    @property
    def response_rate(self) -> float:
        """Percentage of contacted players who showed interest (1 decimal)."""
        if not self.total_contacted:
            return 0.0
        return round(self.total_interested / self.total_contacted * 100, 1)

    @property
    def success_rate(self) -> float:
        """Percentage of contacted players who joined (1 decimal)."""
        if not self.total_contacted:
            return 0.0
        return round(self.total_joined / self.total_contacted * 100, 1)


class MatchRequestContact(Base):
    """A player contacted for a request, with their response."""

    __tablename__ = "match_request_contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("match_requests.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    response = Column(String(20), nullable=False, default=ContactResponse.PENDING.value)
    contacted_at = Column(UTCDateTime, nullable=False, default=utcnow)
    response_at = Column(UTCDateTime, nullable=True)

    request = relationship("MatchRequest", back_populates="contacts")

    __table_args__ = (
        UniqueConstraint("request_id", "player_id", name="uq_request_contact_player"),
        Index("idx_request_contacts_player", "player_id"),
    )


class MatchRequestJoin(Base):
    """A player who joined the match through a request."""

    __tablename__ = "match_request_joins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("match_requests.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)

    request = relationship("MatchRequest", back_populates="joins")

    __table_args__ = (
        UniqueConstraint("request_id", "player_id", name="uq_request_join_player"),
    )


class Notification(Base):
    """Player notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(
        Text, nullable=True
    )  # JSON string for flexible metadata (request_id, match_id, etc.)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(UTCDateTime, nullable=True)
    link_url = Column(String(500), nullable=True)  # Navigation target
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("idx_notifications_player_unread", "player_id", "is_read", "created_at"),
        Index("idx_notifications_player_created", "player_id", "created_at"),
    )
