# This project was developed with assistance from AI tools.
"""processing stage schema

Lenders, lender products and their document requirements; applications with
processing progress columns; documents; OCR, banking-analysis and
credit-summary job tables; the required-document tracker; audit events.

Revision ID: c4d5e6f7a8b9
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "c4d5e6f7a8b9"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if with_updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    return cols


def _job_columns(max_retries: int) -> list[sa.Column]:
    return [
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default=str(max_retries)),
        sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "lenders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
    )

    op.create_table(
        "lender_products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "lender_id", sa.Integer(), sa.ForeignKey("lenders.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("country", sa.String(10), nullable=False, server_default="BOTH"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("min_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("max_amount", sa.Numeric(14, 2), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_lender_products_lender_id", "lender_products", ["lender_id"])
    op.create_index("ix_lender_products_category", "lender_products", ["category"])

    op.create_table(
        "lender_product_requirements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "lender_product_id",
            sa.Integer(),
            sa.ForeignKey("lender_products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("document_type", sa.String(100), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("min_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("max_amount", sa.Numeric(14, 2), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index(
        "ix_lender_product_requirements_lender_product_id",
        "lender_product_requirements",
        ["lender_product_id"],
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_type", sa.String(50), nullable=True),
        sa.Column(
            "lender_product_id",
            sa.Integer(),
            sa.ForeignKey("lender_products.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("requested_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("processing_stage", sa.String(50), nullable=True),
        sa.Column("ocr_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("banking_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("credit_summary_completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("document_type", sa.String(100), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="uploaded"),
        sa.Column("storage_key", sa.String(500), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_documents_application_id", "documents", ["application_id"])

    op.create_table(
        "document_processing_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "document_id",
            sa.Integer(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("job_type", sa.String(50), nullable=False, server_default="ocr"),
        *_job_columns(max_retries=3),
        *_timestamps(),
        sa.UniqueConstraint("document_id", "job_type", name="uq_doc_processing_job_document_type"),
    )
    op.create_index(
        "ix_document_processing_jobs_application_id", "document_processing_jobs", ["application_id"],
    )
    op.create_index(
        "ix_document_processing_jobs_document_id", "document_processing_jobs", ["document_id"],
    )

    op.create_table(
        "banking_analysis_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("statement_months_detected", sa.Integer(), nullable=True),
        *_job_columns(max_retries=2),
        *_timestamps(),
    )

    op.create_table(
        "credit_summary_jobs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        *_job_columns(max_retries=1),
        *_timestamps(),
    )

    op.create_table(
        "application_required_documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "application_id",
            sa.Integer(),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("document_category", sa.String(100), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("status", sa.String(20), nullable=False, server_default="missing"),
        *_timestamps(),
        sa.UniqueConstraint(
            "application_id", "document_category", name="uq_app_required_doc_category",
        ),
    )
    op.create_index(
        "ix_application_required_documents_application_id",
        "application_required_documents",
        ["application_id"],
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("application_id", sa.Integer(), nullable=True),
        sa.Column("event_data", sa.JSON(), nullable=True),
    )
    op.create_index("ix_audit_events_timestamp", "audit_events", ["timestamp"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_application_id", "audit_events", ["application_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("application_required_documents")
    op.drop_table("credit_summary_jobs")
    op.drop_table("banking_analysis_jobs")
    op.drop_table("document_processing_jobs")
    op.drop_table("documents")
    op.drop_table("applications")
    op.drop_table("lender_product_requirements")
    op.drop_table("lender_products")
    op.drop_table("lenders")
