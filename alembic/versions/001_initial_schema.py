"""Initial schema - 12 tables + indexes.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    user_role = sa.Enum("admin", "editor", "author", "subscriber", name="user_role")
    content_status = sa.Enum(
        "publish", "future", "draft", "pending", "private", "trash", "auto-draft", name="content_status"
    )
    sync_kind = sa.Enum("create", "update", "delete", "expired", name="sync_kind")
    subsite_queue_status = sa.Enum(
        "pending", "synced", "approved_applied", "rejected", "failed", "expired", "deleted",
        name="subsite_queue_status",
    )
    media_job_status = sa.Enum("pending", "running", "done", "failed", name="media_job_status")

    # --- 1. users ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("login", sa.String(60), unique=True, nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(250), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 2. sites ---
    op.create_table(
        "sites",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column("upload_url", sa.String(500), nullable=False),
        sa.Column("upload_dir", sa.String(1000), nullable=False),
        sa.Column("is_main", sa.Boolean, server_default=sa.text("false")),
        sa.Column("is_central", sa.Boolean, server_default=sa.text("false")),
        sa.Column("sync_enabled", sa.Boolean, server_default=sa.text("true")),
        sa.Column("admin_email", sa.String(255), nullable=True),
        sa.Column("notify_emails", JSONB, nullable=True),
        sa.Column("post_types", JSONB, nullable=True),
        sa.Column("taxonomies", JSONB, nullable=True),
        sa.Column("sync_post_meta", sa.Boolean, server_default=sa.text("true")),
        sa.Column("sync_media", sa.Boolean, server_default=sa.text("true")),
        sa.Column("sync_users", sa.Boolean, server_default=sa.text("true")),
        sa.Column("approval_required", sa.Boolean, server_default=sa.text("false")),
        sa.Column("delete_on_subsite", sa.Boolean, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 3. site_api_keys ---
    op.create_table(
        "site_api_keys",
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("secret", sa.String(500), nullable=False),
        sa.Column("is_encrypted", sa.Boolean, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 4. contents ---
    op.create_table(
        "contents",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("content_type", sa.String(50), nullable=False, server_default="post"),
        sa.Column("title", sa.String(500), nullable=False, server_default=""),
        sa.Column("slug", sa.String(200), nullable=False, server_default=""),
        sa.Column("body", sa.Text, nullable=False, server_default=""),
        sa.Column("body_filtered", sa.Text, nullable=False, server_default=""),
        sa.Column("status", content_status, nullable=False, server_default="draft"),
        sa.Column("pre_trash_status", sa.String(20), nullable=True),
        sa.Column("author_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("featured_image_id", sa.Integer, nullable=True),
        sa.Column("central_content_id", sa.Integer, nullable=True),
        sa.Column("disable_sync", sa.Boolean, server_default=sa.text("false")),
        sa.Column("selected_sites", JSONB, nullable=True),
        sa.Column("synced_subsite_data", JSONB, nullable=True),
        sa.Column("bulk_sync_rows", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 5. content_meta ---
    op.create_table(
        "content_meta",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("content_id", sa.Integer, sa.ForeignKey("contents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("meta_key", sa.String(255), nullable=False),
        sa.Column("meta_value", JSONB, nullable=True),
        sa.Column("field_type", sa.String(30), nullable=True),
        sa.Column("field_taxonomy", sa.String(50), nullable=True),
        sa.Column("label", sa.String(255), nullable=True),
        sa.UniqueConstraint("content_id", "meta_key", name="uq_content_meta_key"),
    )

    # --- 6. terms ---
    op.create_table(
        "terms",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("taxonomy", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.UniqueConstraint("site_id", "taxonomy", "slug", name="uq_terms_site_taxonomy_slug"),
    )

    # --- 7. content_terms ---
    op.create_table(
        "content_terms",
        sa.Column("content_id", sa.Integer, sa.ForeignKey("contents.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("term_id", sa.Integer, sa.ForeignKey("terms.id", ondelete="CASCADE"), primary_key=True),
    )

    # --- 8. attachments ---
    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False, server_default=""),
        sa.Column("file_path", sa.String(1000), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False, server_default="application/octet-stream"),
        sa.Column("author_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("contents.id", ondelete="SET NULL"), nullable=True),
        sa.Column("sizes", JSONB, nullable=True),
        sa.Column("central_attachment_id", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("site_id", "central_attachment_id", name="uq_attachments_site_central"),
    )

    # --- 9. central_queue_entries ---
    op.create_table(
        "central_queue_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("content_id", sa.Integer, nullable=False),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("target_sites", JSONB, nullable=False),
        sa.Column("site_statuses", JSONB, nullable=False),
        sa.Column("sync_kind", sync_kind, nullable=False),
        sa.Column("snapshot", JSONB, nullable=False),
        sa.Column("compare_snapshot", JSONB, nullable=False),
        sa.Column("author_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 10. subsite_queue_entries ---
    op.create_table(
        "subsite_queue_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("central_entry_id", sa.Integer, sa.ForeignKey("central_queue_entries.id"), nullable=False),
        sa.Column("central_content_id", sa.Integer, nullable=False),
        sa.Column("content_type", sa.String(50), nullable=False),
        sa.Column("local_content_id", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", subsite_queue_status, nullable=False, server_default="pending"),
        sa.Column("sync_kind", sync_kind, nullable=False),
        sa.Column("approved_by", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reject_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 11. sync_logs ---
    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("content_id", sa.Integer, nullable=False),
        sa.Column("content_name", sa.String(500), nullable=False, server_default=""),
        sa.Column("site_outcomes", JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- 12. media_reconcile_jobs ---
    op.create_table(
        "media_reconcile_jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("site_id", sa.Integer, sa.ForeignKey("sites.id"), nullable=False),
        sa.Column(
            "subsite_content_id", sa.Integer, sa.ForeignKey("contents.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("central_site_id", sa.Integer, sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("media_set_hash", sa.String(64), nullable=False),
        sa.Column("media_set", JSONB, nullable=False),
        sa.Column("status", media_job_status, nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, server_default="0"),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("celery_task_id", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- Indexes ---
    op.create_index("ix_contents_site_central", "contents", ["site_id", "central_content_id"])
    op.create_index("ix_central_queue_content_kind", "central_queue_entries", ["content_id", "sync_kind"])
    op.create_index(
        "uq_central_queue_live_content", "central_queue_entries", ["content_id"],
        unique=True, postgresql_where=sa.text("sync_kind <> 'expired'"),
    )
    op.create_index(
        "ix_subsite_queue_site_content_status", "subsite_queue_entries",
        ["site_id", "central_content_id", "status"],
    )
    op.create_index(
        "uq_subsite_queue_pending_content", "subsite_queue_entries", ["site_id", "central_content_id"],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index("ix_sync_logs_content_id", "sync_logs", ["content_id"])
    op.create_index(
        "uq_media_jobs_pending", "media_reconcile_jobs", ["site_id", "subsite_content_id", "media_set_hash"],
        unique=True, postgresql_where=sa.text("status = 'pending'"),
    )

    # --- updated_at trigger ---
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ language 'plpgsql';
    """)
    for table in [
        "users", "sites", "contents", "attachments", "central_queue_entries",
        "subsite_queue_entries", "media_reconcile_jobs",
    ]:
        op.execute(f"""
            CREATE TRIGGER trigger_update_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    trigger_tables = [
        "users", "sites", "contents", "attachments", "central_queue_entries",
        "subsite_queue_entries", "media_reconcile_jobs",
    ]
    for table in trigger_tables:
        op.execute(f"DROP TRIGGER IF EXISTS trigger_update_{table}_updated_at ON {table}")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column()")

    tables = [
        "media_reconcile_jobs", "sync_logs", "subsite_queue_entries", "central_queue_entries",
        "attachments", "content_terms", "terms", "content_meta", "contents", "site_api_keys",
        "sites", "users",
    ]
    for table in tables:
        op.drop_table(table)

    enums = ["user_role", "content_status", "sync_kind", "subsite_queue_status", "media_job_status"]
    for enum in enums:
        op.execute(f"DROP TYPE IF EXISTS {enum}")
