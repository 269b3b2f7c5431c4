"""Initial XTrend schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-01-05 09:00:00.000000

Creates place, term, ingest_run, ingest_run_place and trend_snapshot.
(captured_at, woeid, position) is the snapshot natural key; ingestion
upserts on it. term_norm is unique; concurrent term inserts race on it.

Seeds the initial places (Japan, Tokyo, Osaka).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    place = op.create_table(
        "place",
        sa.Column("woeid", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("slug", sa.String(64), nullable=False, unique=True),
        sa.Column("country_code", sa.String(2), nullable=False),
        sa.Column("name_ja", sa.String(100), nullable=False),
        sa.Column("name_en", sa.String(100), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="Asia/Tokyo"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="100"),
    )

    op.create_table(
        "term",
        sa.Column("term_id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("term_text", sa.Text(), nullable=False),
        sa.Column("term_norm", sa.Text(), nullable=False, unique=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "ingest_run",
        sa.Column(
            "run_id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('running', 'succeeded', 'partial', 'failed')",
            name="ck_ingest_run_status",
        ),
    )
    op.create_index("ix_ingest_run_captured_at", "ingest_run", ["captured_at"])

    op.create_table(
        "ingest_run_place",
        sa.Column(
            "run_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingest_run.run_id"),
            primary_key=True,
        ),
        sa.Column("woeid", sa.Integer(), sa.ForeignKey("place.woeid"), primary_key=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("trend_count", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('succeeded', 'failed')",
            name="ck_ingest_run_place_status",
        ),
    )

    op.create_table(
        "trend_snapshot",
        sa.Column("snapshot_id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column(
            "run_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ingest_run.run_id"),
            nullable=False,
        ),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("woeid", sa.Integer(), sa.ForeignKey("place.woeid"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("term_id", sa.BigInteger(), sa.ForeignKey("term.term_id"), nullable=False),
        sa.Column("tweet_count", sa.BigInteger(), nullable=True),
        sa.Column("raw_name", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "captured_at",
            "woeid",
            "position",
            name="uq_trend_snapshot_captured_at_woeid_position",
        ),
        sa.CheckConstraint("position BETWEEN 1 AND 50", name="ck_trend_snapshot_position"),
    )
    op.create_index(
        "ix_trend_snapshot_woeid_captured_at",
        "trend_snapshot",
        ["woeid", "captured_at"],
    )
    op.create_index(
        "ix_trend_snapshot_term_id_captured_at",
        "trend_snapshot",
        ["term_id", "captured_at"],
    )

    op.bulk_insert(
        place,
        [
            {"woeid": 23424856, "slug": "jp", "country_code": "JP", "name_ja": "日本", "name_en": "Japan", "sort_order": 1},
            {"woeid": 1118370, "slug": "tokyo", "country_code": "JP", "name_ja": "東京", "name_en": "Tokyo", "sort_order": 2},
            {"woeid": 15015370, "slug": "osaka", "country_code": "JP", "name_ja": "大阪", "name_en": "Osaka", "sort_order": 3},
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_trend_snapshot_term_id_captured_at", table_name="trend_snapshot")
    op.drop_index("ix_trend_snapshot_woeid_captured_at", table_name="trend_snapshot")
    op.drop_table("trend_snapshot")
    op.drop_table("ingest_run_place")
    op.drop_index("ix_ingest_run_captured_at", table_name="ingest_run")
    op.drop_table("ingest_run")
    op.drop_table("term")
    op.drop_table("place")
