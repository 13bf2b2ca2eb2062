"""Fact inventory cache and generated documents

Revision ID: 0002_fact_cache_and_documents
Revises: 0001_initial_schema
Create Date: 2026-10-17

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_fact_cache_and_documents"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def _has_table(insp: sa.Inspector, table: str) -> bool:
    return table in insp.get_table_names()


def _ensure_index(table: str, name: str, columns: list[str]) -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing = {idx["name"] for idx in insp.get_indexes(table)}
    if name not in existing:
        op.create_index(name, table, columns, unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not _has_table(insp, "cached_extractions"):
        op.create_table(
            "cached_extractions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "profile_id",
                sa.Integer(),
                sa.ForeignKey("profiles.id", ondelete="CASCADE"),
                nullable=False,
                unique=True,
            ),
            sa.Column("payload_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
            sa.Column("fingerprint", sa.String(length=64), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="generating"),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("generation_id", sa.String(length=32), nullable=False, server_default=""),
            sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )

    if not _has_table(insp, "generated_documents"):
        op.create_table(
            "generated_documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("profile_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_type", sa.String(length=20), nullable=False),
            sa.Column("job_title", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("company_name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("job_description", sa.Text(), nullable=False, server_default=""),
            sa.Column("company_url", sa.String(length=500), nullable=True),
            sa.Column("template", sa.String(length=40), nullable=False, server_default=""),
            sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
            sa.Column("custom_notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("content_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="generating"),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
    _ensure_index("generated_documents", "ix_generated_documents_profile_id", ["profile_id"])


def downgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if _has_table(insp, "generated_documents"):
        existing = {idx["name"] for idx in insp.get_indexes("generated_documents")}
        if "ix_generated_documents_profile_id" in existing:
            op.drop_index("ix_generated_documents_profile_id", table_name="generated_documents")
        op.drop_table("generated_documents")
    if _has_table(insp, "cached_extractions"):
        op.drop_table("cached_extractions")
