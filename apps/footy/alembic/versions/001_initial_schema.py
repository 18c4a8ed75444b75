"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-09-28 10:00:00.000000

Initial schema for match rosters, ratings, reports, sanctions and player requests.

Creates:
- players, player_warnings
- matches, match_roster_entries
- ratings, reports, report_admin_notes
- match_requests, match_request_contacts, match_request_joins
- notifications
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(conn, table_name: str) -> bool:
    """Check if a table exists."""
    return sa.inspect(conn).has_table(table_name)


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    """Create all tables and indexes."""
    conn = op.get_bind()

    if not _table_exists(conn, "players"):
        op.create_table(
            "players",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("full_name", sa.String(), nullable=False),
            sa.Column("position", sa.String(length=5), nullable=True),
            sa.Column("skill_level", sa.String(length=20), nullable=False, server_default="Beginner"),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("reputation_score", sa.Float(), nullable=False, server_default="3.0"),
            _timestamp("last_rated_at"),
            sa.Column("matches_played", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("goals", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("assists", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("yellow_cards", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("red_cards", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("mvp_awards", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("suspension_reason", sa.Text(), nullable=True),
            _timestamp("suspension_expires_at"),
            _timestamp("last_suspended_at"),
            sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("ban_reason", sa.Text(), nullable=True),
            _timestamp("banned_at"),
            _timestamp("last_warned_at"),
            _timestamp("created_at"),
            _timestamp("updated_at"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_players_reputation", "players", ["reputation_score"])
        op.create_index("idx_players_coords", "players", ["latitude", "longitude"])
        op.create_index("idx_players_suspension", "players", ["is_suspended", "suspension_expires_at"])

    if not _table_exists(conn, "matches"):
        op.create_table(
            "matches",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("title", sa.String(length=100), nullable=False),
            sa.Column("organizer_id", sa.Integer(), nullable=False),
            sa.Column("referee_id", sa.Integer(), nullable=True),
            sa.Column("format", sa.String(length=10), nullable=False),
            sa.Column("max_players_per_team", sa.Integer(), nullable=False),
            sa.Column("skill_level_required", sa.String(length=20), nullable=False, server_default="Any"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
            _timestamp("date_time", nullable=False),
            sa.Column("late_join_deadline_minutes", sa.Integer(), nullable=False, server_default="15"),
            sa.Column("latitude", sa.Float(), nullable=True),
            sa.Column("longitude", sa.Float(), nullable=True),
            sa.Column("address", sa.String(), nullable=True),
            _timestamp("started_at"),
            _timestamp("ended_at"),
            _timestamp("last_activity_at"),
            sa.Column("version", sa.Integer(), nullable=False),
            _timestamp("created_at"),
            _timestamp("updated_at"),
            sa.CheckConstraint("max_players_per_team IN (5, 7, 11)", name="ck_matches_team_size"),
            sa.ForeignKeyConstraint(["organizer_id"], ["players.id"]),
            sa.ForeignKeyConstraint(["referee_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_matches_status", "matches", ["status"])
        op.create_index("idx_matches_organizer", "matches", ["organizer_id"])
        op.create_index("idx_matches_date_time", "matches", ["date_time"])

    if not _table_exists(conn, "match_roster_entries"):
        op.create_table(
            "match_roster_entries",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("match_id", sa.Integer(), nullable=False),
            sa.Column("player_id", sa.Integer(), nullable=False),
            sa.Column("team", sa.String(length=10), nullable=False),
            sa.Column("position", sa.String(length=5), nullable=True),
            _timestamp("joined_at", nullable=False),
            sa.ForeignKeyConstraint(["match_id"], ["matches.id"]),
            sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("match_id", "player_id", name="uq_roster_match_player"),
        )
        op.create_index("idx_roster_player", "match_roster_entries", ["player_id"])

    if not _table_exists(conn, "ratings"):
        op.create_table(
            "ratings",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("rated_player_id", sa.Integer(), nullable=False),
            sa.Column("rated_by_id", sa.Integer(), nullable=False),
            sa.Column("match_id", sa.Integer(), nullable=False),
            sa.Column("overall_rating", sa.Float(), nullable=False),
            sa.Column("skill_rating", sa.Float(), nullable=False),
            sa.Column("teamwork_rating", sa.Float(), nullable=False),
            sa.Column("attitude_rating", sa.Float(), nullable=False),
            sa.Column("punctuality_rating", sa.Float(), nullable=False),
            sa.Column("communication_rating", sa.Float(), nullable=False),
            sa.Column("feedback", sa.String(length=500), nullable=True),
            sa.Column("positives", sa.JSON(), nullable=True),
            sa.Column("improvements", sa.JSON(), nullable=True),
            sa.Column("rating_weight", sa.Float(), nullable=False, server_default="1.0"),
            sa.Column("flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("flag_reason", sa.String(), nullable=True),
            sa.Column("is_mutual", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _timestamp("created_at", nullable=False),
            _timestamp("updated_at"),
            sa.CheckConstraint("overall_rating BETWEEN 1 AND 5", name="ck_ratings_overall_range"),
            sa.CheckConstraint("rating_weight BETWEEN 0.1 AND 2.0", name="ck_ratings_weight_range"),
            sa.ForeignKeyConstraint(["rated_player_id"], ["players.id"]),
            sa.ForeignKeyConstraint(["rated_by_id"], ["players.id"]),
            sa.ForeignKeyConstraint(["match_id"], ["matches.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "rated_player_id", "rated_by_id", "match_id", name="uq_ratings_player_rater_match"
            ),
        )
        op.create_index("idx_ratings_match_player", "ratings", ["match_id", "rated_player_id"])
        op.create_index("idx_ratings_player_created", "ratings", ["rated_player_id", "created_at"])
        op.create_index("idx_ratings_rater_created", "ratings", ["rated_by_id", "created_at"])

    if not _table_exists(conn, "reports"):
        op.create_table(
            "reports",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("reported_player_id", sa.Integer(), nullable=False),
            sa.Column("reported_by_id", sa.Integer(), nullable=False),
            sa.Column("match_id", sa.Integer(), nullable=False),
            sa.Column("category", sa.String(length=30), nullable=False),
            sa.Column("severity", sa.String(length=10), nullable=False),
            sa.Column("description", sa.String(length=1000), nullable=False),
            sa.Column("evidence", sa.JSON(), nullable=True),
            sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("resolution_action", sa.String(length=30), nullable=True),
            sa.Column("resolution_duration_days", sa.Integer(), nullable=True),
            sa.Column("resolution_reason", sa.Text(), nullable=True),
            sa.Column("resolved_by_id", sa.Integer(), nullable=True),
            _timestamp("resolved_at"),
            _timestamp("created_at", nullable=False),
            _timestamp("updated_at"),
            sa.CheckConstraint("priority BETWEEN 1 AND 5", name="ck_reports_priority_range"),
            sa.ForeignKeyConstraint(["reported_player_id"], ["players.id"]),
            sa.ForeignKeyConstraint(["reported_by_id"], ["players.id"]),
            sa.ForeignKeyConstraint(["match_id"], ["matches.id"]),
            sa.ForeignKeyConstraint(["resolved_by_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_reports_player_status", "reports", ["reported_player_id", "status"])
        op.create_index("idx_reports_player_created", "reports", ["reported_player_id", "created_at"])
        op.create_index("idx_reports_priority_status", "reports", ["priority", "status"])
        op.create_index("idx_reports_match_category", "reports", ["match_id", "category"])

    if not _table_exists(conn, "report_admin_notes"):
        op.create_table(
            "report_admin_notes",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("report_id", sa.Integer(), nullable=False),
            sa.Column("note", sa.Text(), nullable=False),
            sa.Column("added_by_id", sa.Integer(), nullable=False),
            _timestamp("added_at", nullable=False),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
            sa.ForeignKeyConstraint(["added_by_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_report_admin_notes_report", "report_admin_notes", ["report_id"])

    if not _table_exists(conn, "player_warnings"):
        op.create_table(
            "player_warnings",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("player_id", sa.Integer(), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("report_id", sa.Integer(), nullable=True),
            _timestamp("issued_at", nullable=False),
            sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_player_warnings_player", "player_warnings", ["player_id"])

    if not _table_exists(conn, "match_requests"):
        op.create_table(
            "match_requests",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("match_id", sa.Integer(), nullable=False),
            sa.Column("requested_by_id", sa.Integer(), nullable=False),
            sa.Column("position_needed", sa.String(length=5), nullable=False),
            sa.Column("slots_available", sa.Integer(), nullable=False),
            sa.Column("target_skill_level", sa.String(length=20), nullable=False, server_default="Any"),
            sa.Column("max_distance", sa.Integer(), nullable=False, server_default="25000"),
            sa.Column("message", sa.String(length=300), nullable=True),
            sa.Column("urgency", sa.String(length=10), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("auto_fulfill", sa.Boolean(), nullable=False, server_default=sa.true()),
            _timestamp("broadcast_at"),
            _timestamp("expires_at", nullable=False),
            sa.Column("total_contacted", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_interested", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_joined", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("version", sa.Integer(), nullable=False),
            _timestamp("created_at", nullable=False),
            _timestamp("updated_at"),
            sa.CheckConstraint("slots_available BETWEEN 1 AND 11", name="ck_requests_slots_range"),
            sa.CheckConstraint("max_distance BETWEEN 100 AND 100000", name="ck_requests_distance_range"),
            sa.ForeignKeyConstraint(["match_id"], ["matches.id"]),
            sa.ForeignKeyConstraint(["requested_by_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_match_requests_match", "match_requests", ["match_id"])
        op.create_index("idx_match_requests_requester", "match_requests", ["requested_by_id"])
        op.create_index("idx_match_requests_status_expiry", "match_requests", ["status", "expires_at"])

    if not _table_exists(conn, "match_request_contacts"):
        op.create_table(
            "match_request_contacts",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("request_id", sa.Integer(), nullable=False),
            sa.Column("player_id", sa.Integer(), nullable=False),
            sa.Column("response", sa.String(length=20), nullable=False, server_default="pending"),
            _timestamp("contacted_at", nullable=False),
            _timestamp("response_at"),
            sa.ForeignKeyConstraint(["request_id"], ["match_requests.id"]),
            sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id", "player_id", name="uq_request_contact_player"),
        )
        op.create_index("idx_request_contacts_player", "match_request_contacts", ["player_id"])

    if not _table_exists(conn, "match_request_joins"):
        op.create_table(
            "match_request_joins",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("request_id", sa.Integer(), nullable=False),
            sa.Column("player_id", sa.Integer(), nullable=False),
            _timestamp("joined_at", nullable=False),
            sa.ForeignKeyConstraint(["request_id"], ["match_requests.id"]),
            sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("request_id", "player_id", name="uq_request_join_player"),
        )

    if not _table_exists(conn, "notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("player_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("data", sa.Text(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            _timestamp("read_at"),
            sa.Column("link_url", sa.String(length=500), nullable=True),
            _timestamp("created_at"),
            sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "idx_notifications_player_unread", "notifications", ["player_id", "is_read", "created_at"]
        )
        op.create_index("idx_notifications_player_created", "notifications", ["player_id", "created_at"])


def downgrade() -> None:
    """Drop all tables, children first."""
    conn = op.get_bind()
    for table_name in (
        "notifications",
        "match_request_joins",
        "match_request_contacts",
        "match_requests",
        "player_warnings",
        "report_admin_notes",
        "reports",
        "ratings",
        "match_roster_entries",
        "matches",
        "players",
    ):
        if _table_exists(conn, table_name):
            op.drop_table(table_name)
