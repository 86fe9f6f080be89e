"""Create manager core tables: credentials, links, clicks, campaigns, creatives, scores, decisions, killswitch.

Tables that already exist in the Supabase project are left untouched.

Revision ID: 001
Revises:
Create Date: 2026-01-05

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()"))


def upgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if "meta_credentials" not in existing:
        op.create_table(
            "meta_credentials",
            _uuid("id"),
            _uuid("owner_user_id"),
            sa.Column("access_token", sa.Text(), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("ad_account_id", sa.String(255), nullable=True),
            sa.Column("page_id", sa.String(255), nullable=True),
            sa.Column("pixel_id", sa.String(255), nullable=True),
            sa.Column("instagram_actor_id", sa.String(255), nullable=True),
            sa.Column("business_id", sa.String(255), nullable=True),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("owner_user_id"),
        )

    if "smart_links" not in existing:
        op.create_table(
            "smart_links",
            _uuid("id"),
            _uuid("owner_user_id"),
            sa.Column("title", sa.String(512), nullable=True),
            sa.Column("slug", sa.String(255), nullable=False),
            sa.Column("destination_url", sa.Text(), nullable=True),
            sa.Column("link_type", sa.String(20), nullable=True, server_default="smart"),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_smart_links_owner_user_id", "smart_links", ["owner_user_id"])
        op.create_index("ix_smart_links_slug", "smart_links", ["slug"])

    if "link_click_events" not in existing:
        op.create_table(
            "link_click_events",
            _uuid("id"),
            _uuid("owner_user_id"),
            _uuid("link_id", nullable=True),
            sa.Column("platform", sa.String(50), nullable=True),
            sa.Column("event_name", sa.String(100), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["link_id"], ["smart_links.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_link_click_events_owner_created", "link_click_events", ["owner_user_id", "created_at"])
        op.create_index("ix_link_click_events_link_id", "link_click_events", ["link_id"])

    if "ghoste_campaigns" not in existing:
        op.create_table(
            "ghoste_campaigns",
            _uuid("id"),
            _uuid("owner_user_id"),
            sa.Column("campaign_name", sa.String(512), nullable=False),
            sa.Column("campaign_type", sa.String(50), nullable=True),
            sa.Column("status", sa.String(50), nullable=True, server_default="draft"),
            sa.Column("meta_campaign_id", sa.String(255), nullable=True),
            sa.Column("meta_adset_id", sa.String(255), nullable=True),
            _uuid("smart_link_id", nullable=True),
            sa.Column("creative_ids", sa.JSON(), nullable=True),
            sa.Column("daily_budget_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("max_daily_budget_cents", sa.Integer(), nullable=True),
            sa.Column("total_spend_cents", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("automation_mode", sa.String(20), nullable=True, server_default="manual"),
            sa.Column("latest_score", sa.Integer(), nullable=True),
            sa.Column("latest_grade", sa.String(20), nullable=True),
            sa.Column("latest_confidence", sa.String(20), nullable=True),
            sa.Column("latest_score_at", sa.DateTime(), nullable=True),
            _created_at(),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_ghoste_campaigns_owner_user_id", "ghoste_campaigns", ["owner_user_id"])
        op.create_index("ix_ghoste_campaigns_meta_adset_id", "ghoste_campaigns", ["meta_adset_id"])
        op.create_index("ix_ghoste_campaigns_status", "ghoste_campaigns", ["status"])

    if "creative_assets" not in existing:
        op.create_table(
            "creative_assets",
            _uuid("id"),
            _uuid("owner_user_id"),
            sa.Column("file_url", sa.Text(), nullable=True),
            sa.Column("public_url", sa.Text(), nullable=True),
            sa.Column("media_type", sa.String(20), nullable=True),
            sa.Column("platform_ready", sa.Boolean(), nullable=True, server_default=sa.text("false")),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_creative_assets_owner_user_id", "creative_assets", ["owner_user_id"])

    if "performance_scores" not in existing:
        op.create_table(
            "performance_scores",
            _uuid("id"),
            _uuid("owner_user_id"),
            sa.Column("entity_type", sa.String(20), nullable=False),
            sa.Column("entity_id", sa.String(255), nullable=False),
            sa.Column("platform", sa.String(50), nullable=True),
            sa.Column("score", sa.Integer(), nullable=False),
            sa.Column("grade", sa.String(20), nullable=False),
            sa.Column("confidence", sa.String(20), nullable=False),
            sa.Column("reasons", sa.JSON(), nullable=True),
            sa.Column("window_start", sa.DateTime(), nullable=False),
            sa.Column("window_end", sa.DateTime(), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("score BETWEEN 1 AND 100", name="ck_performance_scores_score_range"),
        )
        op.create_index(
            "ix_performance_scores_entity", "performance_scores",
            ["owner_user_id", "entity_type", "entity_id", "created_at"],
        )

    if "manager_decisions" not in existing:
        op.create_table(
            "manager_decisions",
            _uuid("id"),
            _uuid("owner_user_id"),
            _uuid("campaign_id"),
            sa.Column("action", sa.String(30), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("score_used", sa.Integer(), nullable=True),
            sa.Column("confidence_used", sa.String(20), nullable=True),
            sa.Column("recommended_budget", sa.Float(), nullable=True),
            sa.Column("guardrails", sa.JSON(), nullable=True),
            sa.Column("automation_mode", sa.String(20), nullable=True),
            sa.Column("requires_approval", sa.Boolean(), nullable=True, server_default=sa.text("true")),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_manager_decisions_campaign", "manager_decisions",
            ["owner_user_id", "campaign_id", "created_at"],
        )

    if "manager_killswitch" not in existing:
        op.create_table(
            "manager_killswitch",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("disable_ai_actions", sa.Boolean(), nullable=True, server_default=sa.text("false")),
            sa.Column("pause_all_ads", sa.Boolean(), nullable=True, server_default=sa.text("false")),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.PrimaryKeyConstraint("id"),
        )
        op.execute("INSERT INTO manager_killswitch (id, disable_ai_actions, pause_all_ads) VALUES (1, false, false)")


def downgrade() -> None:
    # Only the manager-owned tables; shared Supabase tables are not dropped.
    op.drop_table("manager_killswitch")
    op.drop_index("ix_manager_decisions_campaign", table_name="manager_decisions")
    op.drop_table("manager_decisions")
    op.drop_index("ix_performance_scores_entity", table_name="performance_scores")
    op.drop_table("performance_scores")
