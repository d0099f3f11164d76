"""Link intelligence schema"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_link_intelligence"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')
    op.execute("CREATE EXTENSION IF NOT EXISTS vector;")

    op.execute(
        "CREATE TYPE sitemap_import_status AS ENUM "
        "('pending','parsing','crawling_nav','fetching_titles','generating_embeddings','complete','failed','cancelled');"
    )
    op.execute("CREATE TYPE brand_link_type AS ENUM ('product','collection','page');")
    op.execute("CREATE TYPE brand_link_source AS ENUM ('sitemap','navigation','user_added');")

    uuid = postgresql.UUID(as_uuid=True)
    import_status_enum = postgresql.ENUM(name="sitemap_import_status", create_type=False)
    link_type_enum = postgresql.ENUM(name="brand_link_type", create_type=False)
    link_source_enum = postgresql.ENUM(name="brand_link_source", create_type=False)

    op.create_table(
        "brands",
        sa.Column("id", uuid, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=True),
        sa.Column(
            "link_preferences",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )

    op.create_table(
        "sitemap_import_jobs",
        sa.Column("id", uuid, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("brand_id", uuid, sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sitemap_url", sa.Text(), nullable=False),
        sa.Column("status", import_status_enum, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("urls_found", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("urls_processed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("urls_failed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("product_urls_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("collection_urls_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("page_urls_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("temporal_workflow_id", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("idx_sitemap_import_jobs_brand_created", "sitemap_import_jobs", ["brand_id", "created_at"])
    op.create_index("idx_sitemap_import_jobs_status", "sitemap_import_jobs", ["status"])
    op.create_index(
        "uq_sitemap_import_jobs_running_brand",
        "sitemap_import_jobs",
        ["brand_id"],
        unique=True,
        postgresql_where=sa.text(
            "status IN ('pending','parsing','crawling_nav','fetching_titles','generating_embeddings')"
        ),
    )

    op.create_table(
        "brand_link_index",
        sa.Column("id", uuid, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("brand_id", uuid, sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("link_type", link_type_enum, nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("embedding", Vector(1536), nullable=True),
        sa.Column("source", link_source_enum, nullable=False),
        sa.Column("is_healthy", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("user_confirmed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("brand_id", "url", name="uq_brand_link_index_brand_url"),
    )
    op.create_index("idx_brand_link_index_brand_type", "brand_link_index", ["brand_id", "link_type"])
    op.execute(
        "CREATE INDEX idx_brand_link_index_embedding ON brand_link_index "
        "USING hnsw (embedding vector_cosine_ops);"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_brand_link_index_embedding;")
    op.drop_index("idx_brand_link_index_brand_type", table_name="brand_link_index")
    op.drop_table("brand_link_index")
    op.drop_index("uq_sitemap_import_jobs_running_brand", table_name="sitemap_import_jobs")
    op.drop_index("idx_sitemap_import_jobs_status", table_name="sitemap_import_jobs")
    op.drop_index("idx_sitemap_import_jobs_brand_created", table_name="sitemap_import_jobs")
    op.drop_table("sitemap_import_jobs")
    op.drop_table("brands")
    op.execute("DROP TYPE IF EXISTS brand_link_source;")
    op.execute("DROP TYPE IF EXISTS brand_link_type;")
    op.execute("DROP TYPE IF EXISTS sitemap_import_status;")
