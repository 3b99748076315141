"""Initial roster, vacation and war tables

Revision ID: 5c1e9a7d3b20
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1e9a7d3b20"
down_revision = None
branch_labels = None
depends_on = None

member_state_enum = sa.Enum("active", "inactive", name="member_state_enum")
import_source_enum = sa.Enum("csv", "screenshot", name="import_source_enum")
job_status_enum = sa.Enum("running", "done", name="job_status_enum")
war_outcome_enum = sa.Enum("win", "lose", name="war_outcome_enum")


def upgrade() -> None:
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("external_id", sa.BigInteger(), nullable=True),
        sa.Column("family_name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("class_name", sa.String(50), nullable=True),
        sa.Column("spec", sa.String(50), nullable=True),
        sa.Column("ap", sa.Integer(), nullable=True),
        sa.Column("aap", sa.Integer(), nullable=True),
        sa.Column("dp", sa.Integer(), nullable=True),
        sa.Column("state", member_state_enum, nullable=False, server_default="active"),
        sa.Column("is_mercenary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_exception", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "uq_members_guild_family_lower",
        "members",
        ["guild_id", sa.text("lower(family_name)")],
        unique=True,
    )
    op.create_index("ix_members_guild_external", "members", ["guild_id", "external_id"])
    op.create_index("ix_members_guild_state", "members", ["guild_id", "state"])

    op.create_table(
        "vacations",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "member_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_by", sa.BigInteger(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("end_date >= start_date", name="ck_vacations_range"),
    )
    op.create_index("ix_vacations_member_start", "vacations", ["member_id", "start_date"])

    op.create_table(
        "war_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("request_channel_id", sa.BigInteger(), nullable=True),
        sa.Column("request_message_id", sa.BigInteger(), nullable=True),
        sa.Column("requested_by", sa.BigInteger(), nullable=True),
        sa.Column("source", import_source_enum, nullable=False, server_default="csv"),
        sa.Column("status", job_status_enum, nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "wars",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "job_id",
            sa.Integer(),
            sa.ForeignKey("war_jobs.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("war_date", sa.Date(), nullable=False),
        sa.Column("outcome", war_outcome_enum, nullable=True),
        sa.Column("label", sa.String(200), nullable=True),
        sa.Column("is_excluded", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_wars_guild_date", "wars", ["guild_id", "war_date"])

    op.create_table(
        "war_lines",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "war_id",
            sa.Integer(),
            sa.ForeignKey("wars.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reported_name", sa.String(100), nullable=False),
        sa.Column(
            "member_id",
            sa.Integer(),
            sa.ForeignKey("members.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("kills", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deaths", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("kills >= 0", name="ck_war_lines_kills"),
        sa.CheckConstraint("deaths >= 0", name="ck_war_lines_deaths"),
    )
    op.create_index("ix_war_lines_member", "war_lines", ["member_id"])
    op.create_index("ix_war_lines_war", "war_lines", ["war_id"])


def downgrade() -> None:
    op.drop_table("war_lines")
    op.drop_table("wars")
    op.drop_table("war_jobs")
    op.drop_table("vacations")
    op.drop_table("members")
    # Drop the PostgreSQL enum types created above
    for enum_type in (war_outcome_enum, job_status_enum, import_source_enum, member_state_enum):
        enum_type.drop(op.get_bind(), checkfirst=True)
