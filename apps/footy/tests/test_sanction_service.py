"""
Tests for the sanction engine: automatic warnings, suspensions and bans
triggered by reports, manual resolutions and suspension expiry.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from footy.services.errors import InvalidInput, InvalidState, PlayerNotFound, ReportNotFound
from footy.services.reputation_service import ReputationLedger
from footy.services.sanction_service import (
    SanctionEngine,
    lift_if_expired,
    suspension_days_for_volume,
)

from conftest import NOW, RecordingDispatcher


@pytest.fixture
def engine(clock, dispatcher):
    return SanctionEngine(clock=clock, dispatcher=dispatcher)


@pytest.fixture
def ledger(clock, engine):
    return ReputationLedger(clock=clock, sanction_engine=engine)


@pytest_asyncio.fixture
async def pitch(make_players, make_match):
    """A completed match with the accused on teamA and eight possible reporters."""
    organizer, accused, *reporters = await make_players(10)
    match = await make_match(
        organizer.id,
        team_a=[accused.id] + [p.id for p in reporters[:4]],
        team_b=[p.id for p in reporters[4:]],
        status="completed",
    )
    return match, accused, reporters


async def file_report(ledger, session, match, reporter, accused, category="unsportsmanlike_conduct", severity="medium"):
    return await ledger.submit_report(
        session,
        reporter_id=reporter.id,
        reported_id=accused.id,
        match_id=match.id,
        category=category,
        severity=severity,
        description="Kept arguing with every call",
    )


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize("count, days", [(5, 10), (6, 12), (7, 14), (12, 14)])
def test_suspension_days_for_volume(count, days):
    assert suspension_days_for_volume(count) == days


@pytest.mark.asyncio
async def test_lift_if_expired_only_after_window(make_player):
    player = await make_player(is_suspended=True, suspension_expires_at=NOW + timedelta(hours=1), suspension_reason="x")

    assert lift_if_expired(player, NOW) is False
    assert player.is_suspended is True

    assert lift_if_expired(player, NOW + timedelta(hours=1)) is True
    assert player.is_suspended is False
    assert player.suspension_reason is None
    assert player.suspension_expires_at is None


# ──────────────────────────────────────────────────────────────
# Automatic evaluation
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_first_two_reports_trigger_nothing(db_session, ledger, pitch):
    match, accused, reporters = pitch

    for reporter in reporters[:2]:
        outcome = await file_report(ledger, db_session, match, reporter, accused)
        assert outcome.actions == []
        assert outcome.report.status == "pending"

    assert accused.warnings == []


@pytest.mark.asyncio
async def test_third_report_issues_warning(db_session, ledger, dispatcher, pitch):
    match, accused, reporters = pitch

    for reporter in reporters[:2]:
        await file_report(ledger, db_session, match, reporter, accused)
    outcome = await file_report(ledger, db_session, match, reporters[2], accused)

    assert [a.action for a in outcome.actions] == ["warning"]
    assert len(accused.warnings) == 1
    assert accused.warnings[0].report_id == outcome.report.id
    assert accused.last_warned_at == NOW
    assert accused.is_suspended is False
    assert outcome.report.status == "resolved"
    assert outcome.report.resolution_action == "warning"
    assert dispatcher.types() == ["sanction_warning"]


@pytest.mark.asyncio
async def test_fifth_report_suspends_for_ten_days(db_session, ledger, pitch):
    match, accused, reporters = pitch

    for reporter in reporters[:4]:
        await file_report(ledger, db_session, match, reporter, accused)
    outcome = await file_report(ledger, db_session, match, reporters[4], accused)

    assert [(a.action, a.duration_days) for a in outcome.actions] == [("temporary_suspension", 10)]
    assert accused.is_suspended is True
    assert accused.suspension_expires_at == NOW + timedelta(days=10)
    assert outcome.report.resolution_duration_days == 10
    # 3rd and 4th reports warned
    assert len(accused.warnings) == 2


@pytest.mark.asyncio
async def test_reports_older_than_thirty_days_do_not_count(db_session, clock, ledger, pitch):
    match, accused, reporters = pitch

    for reporter in reporters[:2]:
        await file_report(ledger, db_session, match, reporter, accused)
    clock.advance(days=31)
    outcome = await file_report(ledger, db_session, match, reporters[2], accused)

    assert outcome.actions == []


@pytest.mark.asyncio
async def test_critical_harassment_suspends_for_seven_days(db_session, ledger, pitch):
    match, accused, reporters = pitch

    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "harassment", "critical")

    assert [(a.action, a.duration_days) for a in outcome.actions] == [("temporary_suspension", 7)]
    assert accused.suspension_expires_at == NOW + timedelta(days=7)
    assert outcome.report.priority == 5


@pytest.mark.asyncio
async def test_critical_report_outside_critical_categories_does_not_suspend(db_session, ledger, pitch):
    match, accused, reporters = pitch

    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "cheating", "critical")

    assert outcome.actions == []
    assert accused.is_suspended is False


@pytest.mark.asyncio
async def test_three_critical_reports_ban_permanently(db_session, clock, ledger, dispatcher, pitch):
    match, accused, reporters = pitch

    await file_report(ledger, db_session, match, reporters[0], accused, "harassment", "critical")
    clock.advance(days=1)
    await file_report(ledger, db_session, match, reporters[1], accused, "cheating", "critical")
    clock.advance(days=1)
    outcome = await file_report(ledger, db_session, match, reporters[2], accused, "cheating", "critical")

    assert "permanent_ban" in [a.action for a in outcome.actions]
    assert outcome.report.resolution_action == "permanent_ban"
    assert accused.is_banned is True
    assert accused.is_active is False
    assert accused.banned_at == NOW + timedelta(days=2)
    # The ban supersedes the suspension
    assert accused.is_suspended is False
    assert "sanction_ban" in dispatcher.types()


@pytest.mark.asyncio
async def test_dismissed_critical_reports_do_not_count_toward_ban(db_session, ledger, engine, pitch):
    match, accused, reporters = pitch

    first = await file_report(ledger, db_session, match, reporters[0], accused, "cheating", "critical")
    await engine.dismiss_report(db_session, first.report.id)
    await file_report(ledger, db_session, match, reporters[1], accused, "cheating", "critical")
    await file_report(ledger, db_session, match, reporters[2], accused, "cheating", "critical")

    assert accused.is_banned is False


@pytest.mark.asyncio
async def test_banned_player_reports_trigger_nothing(db_session, ledger, pitch):
    match, accused, reporters = pitch
    accused.is_banned = True

    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "harassment", "critical")

    assert outcome.actions == []
    assert accused.is_suspended is False
    assert outcome.report.status == "pending"


@pytest.mark.asyncio
async def test_evaluation_never_shortens_a_longer_suspension(db_session, ledger, engine, pitch):
    match, accused, reporters = pitch
    await engine.apply_suspension(db_session, accused.id, 14, "Manual review")

    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "harassment", "critical")

    assert outcome.actions == []
    assert accused.suspension_expires_at == NOW + timedelta(days=14)
    assert accused.suspension_reason == "Manual review"


@pytest.mark.asyncio
async def test_evaluation_extends_a_shorter_suspension(db_session, ledger, engine, pitch):
    match, accused, reporters = pitch
    await engine.apply_suspension(db_session, accused.id, 2, "Cooling off")

    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "physical_aggression", "critical")

    assert [a.duration_days for a in outcome.actions] == [7]
    assert accused.suspension_expires_at == NOW + timedelta(days=7)


@pytest.mark.asyncio
async def test_expired_suspension_lifted_before_evaluation(db_session, clock, ledger, engine, pitch):
    match, accused, reporters = pitch
    await engine.apply_suspension(db_session, accused.id, 1, "Short ban")
    clock.advance(days=2)

    outcome = await file_report(ledger, db_session, match, reporters[0], accused)

    assert outcome.actions == []
    assert accused.is_suspended is False
    assert accused.suspension_expires_at is None


@pytest.mark.asyncio
async def test_notification_failure_does_not_block_sanction(db_session, clock, pitch):
    match, accused, reporters = pitch
    failing = SanctionEngine(clock=clock, dispatcher=RecordingDispatcher(fail_for=[accused.id]))
    ledger = ReputationLedger(clock=clock, sanction_engine=failing)

    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "harassment", "critical")

    assert len(outcome.actions) == 1
    assert accused.is_suspended is True


# ──────────────────────────────────────────────────────────────
# Direct sanctions
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_apply_suspension_is_last_write_wins(db_session, clock, engine, make_player):
    player = await make_player()

    assert await engine.apply_suspension(db_session, player.id, 10, "First") is True
    clock.advance(days=1)
    assert await engine.apply_suspension(db_session, player.id, 3, "Second") is True

    assert player.suspension_expires_at == NOW + timedelta(days=4)
    assert player.suspension_reason == "Second"
    assert player.last_suspended_at == NOW + timedelta(days=1)


@pytest.mark.asyncio
async def test_repeated_suspension_leaves_single_window(db_session, engine, make_player):
    player = await make_player()
    await engine.apply_suspension(db_session, player.id, 5, "Same")
    await engine.apply_suspension(db_session, player.id, 5, "Same")

    assert player.is_suspended is True
    assert player.suspension_expires_at == NOW + timedelta(days=5)


@pytest.mark.asyncio
async def test_apply_suspension_rejects_non_positive_days(db_session, engine, make_player):
    player = await make_player()
    with pytest.raises(InvalidInput):
        await engine.apply_suspension(db_session, player.id, 0, "Nope")


@pytest.mark.asyncio
async def test_suspension_never_touches_banned_player(db_session, engine, make_player):
    player = await make_player()
    assert await engine.apply_permanent_ban(db_session, player.id, "Violence") is True

    assert await engine.apply_suspension(db_session, player.id, 7, "Late") is False
    assert player.is_suspended is False
    assert player.is_banned is True
    # A second ban changes nothing
    assert await engine.apply_permanent_ban(db_session, player.id, "Again") is False
    assert player.ban_reason == "Violence"


@pytest.mark.asyncio
async def test_sanctions_for_unknown_player(db_session, engine):
    with pytest.raises(PlayerNotFound):
        await engine.apply_warning(db_session, 4242, "Ghost")


# ──────────────────────────────────────────────────────────────
# Manual resolution
# ──────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def pending_report(db_session, ledger, pitch):
    match, accused, reporters = pitch
    outcome = await file_report(ledger, db_session, match, reporters[0], accused, "no_show", "low")
    return outcome.report


@pytest.mark.asyncio
async def test_resolve_with_temporary_suspension(db_session, engine, pitch, pending_report):
    _, accused, reporters = pitch

    report = await engine.resolve_report(
        db_session, pending_report.id, "temporary_suspension", reason="Repeated no-shows", duration_days=3, resolver_id=reporters[-1].id
    )

    assert report.status == "resolved"
    assert report.resolution == {
        "action": "temporary_suspension",
        "duration_days": 3,
        "reason": "Repeated no-shows",
        "resolved_by": reporters[-1].id,
        "resolved_at": NOW,
    }
    assert accused.suspension_expires_at == NOW + timedelta(days=3)


@pytest.mark.asyncio
async def test_resolve_suspension_requires_duration(db_session, engine, pending_report):
    with pytest.raises(InvalidInput):
        await engine.resolve_report(db_session, pending_report.id, "temporary_suspension")


@pytest.mark.asyncio
async def test_resolve_unknown_action(db_session, engine, pending_report):
    with pytest.raises(InvalidInput):
        await engine.resolve_report(db_session, pending_report.id, "public_shaming")


@pytest.mark.asyncio
async def test_resolve_with_reputation_penalty_clamps(db_session, engine, pitch, pending_report):
    _, accused, _ = pitch
    accused.reputation_score = 1.2

    await engine.resolve_report(db_session, pending_report.id, "reputation_penalty")

    assert accused.reputation_score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_resolve_with_permanent_ban(db_session, engine, dispatcher, pitch, pending_report):
    _, accused, reporters = pitch
    await engine.apply_suspension(db_session, accused.id, 3, "Earlier no-show")

    report = await engine.resolve_report(
        db_session, pending_report.id, "permanent_ban", reason="Assaulted a referee", resolver_id=reporters[-1].id
    )

    assert report.status == "resolved"
    assert report.resolution_action == "permanent_ban"
    assert report.resolution_duration_days is None
    assert accused.is_banned is True
    assert accused.is_active is False
    assert accused.ban_reason == "Assaulted a referee"
    assert accused.banned_at == NOW
    assert accused.is_suspended is False
    assert accused.suspension_expires_at is None
    assert "sanction_ban" in dispatcher.types()


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["match_ban", "community_service"])
async def test_resolve_with_recorded_only_actions(db_session, engine, pitch, pending_report, action):
    _, accused, _ = pitch
    score_before = accused.reputation_score

    report = await engine.resolve_report(db_session, pending_report.id, action, reason="Agreed with the player")

    assert report.status == "resolved"
    assert report.resolution_action == action
    assert report.resolution_reason == "Agreed with the player"
    assert report.resolved_at == NOW
    assert accused.is_banned is False
    assert accused.is_suspended is False
    assert accused.reputation_score == score_before
    assert accused.warnings == []


@pytest.mark.asyncio
async def test_resolve_with_warning_and_no_action(db_session, ledger, engine, pitch):
    match, accused, reporters = pitch
    first = (await file_report(ledger, db_session, match, reporters[0], accused, "no_show", "low")).report
    second = (await file_report(ledger, db_session, match, reporters[1], accused, "no_show", "low")).report

    await engine.resolve_report(db_session, first.id, "warning", reason="Show up next time")
    await engine.resolve_report(db_session, second.id, "no_action")

    assert [w.reason for w in accused.warnings] == ["Show up next time"]
    assert second.resolution_action == "no_action"
    assert second.resolution_reason == f"Resolution of report #{second.id}"


@pytest.mark.asyncio
async def test_resolved_report_cannot_be_resolved_again(db_session, engine, pending_report):
    await engine.resolve_report(db_session, pending_report.id, "no_action")

    with pytest.raises(InvalidState):
        await engine.resolve_report(db_session, pending_report.id, "warning")
    with pytest.raises(InvalidState):
        await engine.dismiss_report(db_session, pending_report.id)


@pytest.mark.asyncio
async def test_resolve_unknown_report(db_session, engine):
    with pytest.raises(ReportNotFound):
        await engine.resolve_report(db_session, 31337, "warning")


# ──────────────────────────────────────────────────────────────
# Expiry sweep
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_lift_expired_suspensions(db_session, clock, engine, make_player):
    short = await make_player()
    long = await make_player()
    await engine.apply_suspension(db_session, short.id, 1, "Short")
    await engine.apply_suspension(db_session, long.id, 10, "Long")

    assert await engine.lift_expired_suspensions(db_session) == 0

    clock.advance(days=2)
    assert await engine.lift_expired_suspensions(db_session) == 1
    assert short.is_suspended is False
    assert long.is_suspended is True

    assert await engine.lift_expired_suspensions(db_session) == 0


@pytest.mark.asyncio
async def test_sixth_report_extends_volume_suspension(db_session, ledger, pitch):
    match, accused, reporters = pitch
    for reporter in reporters[:6]:
        await file_report(ledger, db_session, match, reporter, accused)

    stats = await ledger.report_stats(db_session, accused.id)
    assert stats["total_reports"] == 6
    assert accused.suspension_expires_at == NOW + timedelta(days=12)
