"""
tests/test_war_service.py — War Import Integration Tests
=========================================================
Exercises commit_war() end to end against SQLite: name reconciliation,
auto-created members, all-or-nothing rollback, removal, exclusion and
per-member stats.
"""

from __future__ import annotations

import warnings
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SAWarning
from sqlalchemy.orm import Session

from conftest import GUILD_ID, add_member, add_war
from warledger.database.models import (
    ImportSource,
    JobStatus,
    Member,
    MemberState,
    War,
    WarJob,
    WarLine,
    WarOutcome,
)
from warledger.engine.war_parser import WarLineInput, parse_war_csv
from warledger.errors import NotFoundError, StorageError, ValidationError
from warledger.services import war_service
from warledger.services.war_service import (
    ImportContext,
    commit_war,
    delete_war_by_date,
    get_member_war_dates,
    get_war_stats,
    reconcile_names,
    set_war_excluded,
)

WAR_DAY = date(2026, 1, 29)
CTX = ImportContext(requested_by=42, channel_id=7, message_id=9)


@pytest.fixture
def engine(db_engine):
    """Re-use the shared conftest db_engine (SQLite, StaticPool)."""
    return db_engine


def _count(engine, model) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(model))


def _members_named(engine, name: str) -> list[Member]:
    with Session(engine) as session:
        return list(
            session.scalars(
                select(Member).where(func.lower(Member.family_name) == name.lower())
            ).all()
        )


# ===========================================================================
# Reconciliation
# ===========================================================================
class TestCommitWarReconciliation:
    def test_known_name_linked_unknown_auto_created(self, engine):
        alice = add_member(engine, "Alice")

        result = commit_war(
            engine, GUILD_ID, CTX, WAR_DAY,
            [WarLineInput("Alice", 10, 5), WarLineInput("Zara", 2, 2)],
        )

        assert result.line_count == 2
        assert result.matched_count == 1
        assert [c.family_name for c in result.auto_created] == ["Zara"]

        zara = _members_named(engine, "Zara")
        assert len(zara) == 1
        assert zara[0].state == MemberState.ACTIVE
        assert zara[0].guild_id == GUILD_ID

        with Session(engine) as session:
            links = dict(session.execute(select(WarLine.reported_name, WarLine.member_id)).all())
        assert links == {"Alice": alice, "Zara": zara[0].id}

    def test_case_insensitive_match_keeps_reported_name(self, engine):
        alice = add_member(engine, "Alice")
        result = commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("aLiCe", 1, 0)])

        assert result.auto_created == []
        with Session(engine) as session:
            line = session.scalars(select(WarLine)).one()
        assert line.member_id == alice
        assert line.reported_name == "aLiCe"

    def test_auto_created_member_reused_by_next_import(self, engine):
        commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Zara", 1, 1)])
        second = commit_war(engine, GUILD_ID, CTX, date(2026, 1, 30), [WarLineInput("ZARA", 3, 0)])

        assert second.auto_created == []
        assert len(_members_named(engine, "zara")) == 1

    def test_duplicate_new_name_created_once(self, engine):
        result = commit_war(
            engine, GUILD_ID, CTX, WAR_DAY,
            [WarLineInput("Zara", 1, 1), WarLineInput("zara", 2, 2)],
        )
        assert len(result.auto_created) == 1
        assert _count(engine, WarLine) == 2
        assert len(_members_named(engine, "zara")) == 1

    def test_surrounding_whitespace_ignored_when_matching(self, engine):
        alice = add_member(engine, "Alice")
        result = commit_war(
            engine, GUILD_ID, CTX, WAR_DAY,
            [WarLineInput(" Alice ", 1, 0), WarLineInput("  Zara", 2, 1), WarLineInput("zara  ", 0, 0)],
        )

        assert [c.family_name for c in result.auto_created] == ["Zara"]
        with Session(engine) as session:
            lines = session.execute(
                select(WarLine.reported_name, WarLine.member_id).order_by(WarLine.id)
            ).all()
        assert lines[0] == (" Alice ", alice)
        assert lines[1].reported_name == "  Zara"
        assert lines[1].member_id == lines[2].member_id == result.auto_created[0].member_id

    def test_inactive_member_still_matched(self, engine):
        ghost = add_member(engine, "Ghost", state=MemberState.INACTIVE)
        result = commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Ghost", 0, 1)])
        assert result.auto_created == []
        with Session(engine) as session:
            assert session.scalars(select(WarLine.member_id)).one() == ghost

    def test_other_guild_members_not_matched(self, engine):
        add_member(engine, "Alice", guild_id=999)
        result = commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Alice", 1, 1)])
        assert len(result.auto_created) == 1

    def test_reconcile_names_directly(self, engine):
        alice = add_member(engine, "Alice")
        with Session(engine) as session:
            rec = reconcile_names(session, GUILD_ID, ["alice", "Newbie"])
            assert rec.member_for("ALICE") == alice
            assert rec.member_for("newbie") == rec.auto_created[0].member_id
            session.rollback()
        assert _members_named(engine, "Newbie") == []


# ===========================================================================
# Job, label, outcome
# ===========================================================================
class TestCommitWarRecords:
    def test_job_audit_and_label(self, engine):
        result = commit_war(
            engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Alice", 1, 1)], WarOutcome.WIN
        )
        with Session(engine) as session:
            job = session.get(WarJob, result.job_id)
            war = session.get(War, result.war_id)
        assert job.status == JobStatus.DONE
        assert job.requested_by == 42
        assert job.request_channel_id == 7
        assert job.request_message_id == 9
        assert job.started_at is not None and job.finished_at is not None
        assert job.finished_at >= job.started_at
        assert war.job_id == job.id
        assert war.label == "CSV Import - 2026-01-29"
        assert war.outcome == WarOutcome.WIN
        assert war.is_excluded is False

    def test_screenshot_label(self, engine):
        ctx = ImportContext(source=ImportSource.SCREENSHOT)
        result = commit_war(engine, GUILD_ID, ctx, WAR_DAY, [WarLineInput("Alice", 1, 1)])
        with Session(engine) as session:
            war = session.get(War, result.war_id)
            job = session.get(WarJob, result.job_id)
        assert war.label == "Screenshot Import - 2026-01-29"
        assert job.source == ImportSource.SCREENSHOT

    def test_parsed_input_round_trip(self, engine):
        parsed = parse_war_csv("2026-01-29\nAlice,10,5\nBob,3,1")
        result = commit_war(engine, GUILD_ID, CTX, parsed.war_date, parsed.lines)
        assert result.war_date == WAR_DAY
        assert _count(engine, WarLine) == 2


# ===========================================================================
# Validation & atomicity
# ===========================================================================
class TestCommitWarFailures:
    def test_empty_lines_rejected_without_writes(self, engine):
        with pytest.raises(ValidationError):
            commit_war(engine, GUILD_ID, CTX, WAR_DAY, [])
        assert _count(engine, WarJob) == 0

    def test_negative_value_rejected(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("A", 1, 1), WarLineInput("B", -1, 0)])
        assert exc_info.value.row == 2
        assert _count(engine, War) == 0

    def test_failure_mid_insert_rolls_back_everything(self, engine, monkeypatch):
        """Third line insert fails → no war, no lines, no new members, no job."""
        add_member(engine, "Alice")
        real_insert = war_service._insert_war_line
        calls = {"n": 0}

        def flaky_insert(session, war, line, member_id):
            calls["n"] += 1
            if calls["n"] == 3:
                raise OperationalError("INSERT INTO war_lines", {}, Exception("connection lost"))
            return real_insert(session, war, line, member_id)

        monkeypatch.setattr(war_service, "_insert_war_line", flaky_insert)

        with pytest.raises(StorageError) as exc_info:
            commit_war(
                engine, GUILD_ID, CTX, WAR_DAY,
                [WarLineInput("Alice", 1, 1), WarLineInput("Newbie", 2, 2), WarLineInput("Zara", 3, 3)],
            )

        assert exc_info.value.retryable is True
        assert calls["n"] == 3
        assert _count(engine, War) == 0
        assert _count(engine, WarLine) == 0
        assert _count(engine, WarJob) == 0
        assert _count(engine, Member) == 1


# ===========================================================================
# Removal & exclusion
# ===========================================================================
class TestDeleteWarByDate:
    def test_missing_date_is_not_found(self, engine):
        with pytest.raises(NotFoundError):
            delete_war_by_date(engine, GUILD_ID, WAR_DAY)

    def test_deletes_war_and_lines_keeps_job(self, engine):
        result = commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Alice", 1, 1), WarLineInput("Bob", 1, 1)])
        commit_war(engine, GUILD_ID, CTX, date(2026, 1, 30), [WarLineInput("Alice", 1, 1)])

        assert delete_war_by_date(engine, GUILD_ID, WAR_DAY) == 1

        with Session(engine) as session:
            assert session.get(War, result.war_id) is None
            assert session.scalar(
                select(func.count()).select_from(WarLine).where(WarLine.war_id == result.war_id)
            ) == 0
            assert session.get(WarJob, result.job_id) is not None
        assert _count(engine, War) == 1

    def test_other_guild_untouched(self, engine):
        add_war(engine, WAR_DAY, [], guild_id=999)
        with pytest.raises(NotFoundError):
            delete_war_by_date(engine, GUILD_ID, WAR_DAY)
        assert _count(engine, War) == 1


class TestExclusion:
    def test_excluded_war_hidden_from_participation(self, engine):
        alice = add_member(engine, "Alice")
        add_war(engine, date(2026, 1, 14), [alice])
        add_war(engine, date(2026, 1, 21), [alice])

        assert set_war_excluded(engine, GUILD_ID, date(2026, 1, 14), True) == 1
        with Session(engine) as session:
            assert get_member_war_dates(session, GUILD_ID, alice) == [date(2026, 1, 21)]

        set_war_excluded(engine, GUILD_ID, date(2026, 1, 14), False)
        with Session(engine) as session:
            assert get_member_war_dates(session, GUILD_ID, alice) == [date(2026, 1, 14), date(2026, 1, 21)]

    def test_unknown_date_not_found(self, engine):
        with pytest.raises(NotFoundError):
            set_war_excluded(engine, GUILD_ID, WAR_DAY, True)

    def test_war_dates_are_distinct(self, engine):
        alice = add_member(engine, "Alice")
        add_war(engine, WAR_DAY, [alice])
        add_war(engine, WAR_DAY, [alice])
        with Session(engine) as session:
            assert get_member_war_dates(session, GUILD_ID, alice) == [WAR_DAY]

    def test_war_dates_query_emits_no_warning(self, engine):
        alice = add_member(engine, "Alice")
        add_war(engine, WAR_DAY, [alice])
        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            with Session(engine) as session:
                assert get_member_war_dates(session, GUILD_ID, alice) == [WAR_DAY]


# ===========================================================================
# Stats
# ===========================================================================
class TestWarStats:
    def test_totals_per_active_member(self, engine):
        commit_war(engine, GUILD_ID, CTX, date(2026, 1, 20), [WarLineInput("Bob", 4, 2), WarLineInput("Alice", 10, 5)])
        commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Alice", 3, 1)])
        add_member(engine, "Carol")
        add_member(engine, "Dormant", state=MemberState.INACTIVE)

        stats = {s.family_name: s for s in get_war_stats(engine, GUILD_ID)}

        assert list(stats) == ["Alice", "Bob", "Carol"]
        assert (stats["Alice"].total_wars, stats["Alice"].total_kills, stats["Alice"].total_deaths) == (2, 13, 6)
        assert stats["Alice"].most_recent_war == WAR_DAY
        assert stats["Bob"].total_wars == 1
        assert stats["Carol"].total_wars == 0
        assert stats["Carol"].most_recent_war is None
        assert stats["Carol"].total_kills == 0

    def test_excluded_wars_not_counted(self, engine):
        commit_war(engine, GUILD_ID, CTX, date(2026, 1, 20), [WarLineInput("Alice", 10, 5)])
        commit_war(engine, GUILD_ID, CTX, WAR_DAY, [WarLineInput("Alice", 3, 1)])
        set_war_excluded(engine, GUILD_ID, WAR_DAY, True)

        (alice,) = get_war_stats(engine, GUILD_ID)
        assert alice.total_wars == 1
        assert alice.total_kills == 10
        assert alice.most_recent_war == date(2026, 1, 20)
