# This project was developed with assistance from AI tools.
"""
Loan back office -- domain models

Applications, uploaded documents, the processing job tables driven by the
stage engine, lender product requirement configuration, the per-application
required-document tracker and the audit trail.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from .enums import JobStatus


class Lender(Base):
    """A lender offering one or more products."""

    __tablename__ = "lenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    products = relationship(
        "LenderProduct", back_populates="lender", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Lender(id={self.id}, name='{self.name}', active={self.is_active})>"


class LenderProduct(Base):
    """A financing product with its eligibility window (category, country, amount)."""

    __tablename__ = "lender_products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lender_id = Column(Integer, ForeignKey("lenders.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False, index=True)
    # ISO country code, or BOTH for products offered everywhere
    country = Column(String(10), nullable=False, default="BOTH")
    status = Column(String(20), nullable=False, default="active")
    min_amount = Column(Numeric(14, 2), nullable=True)
    max_amount = Column(Numeric(14, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    lender = relationship("Lender", back_populates="products")
    requirements = relationship(
        "LenderProductRequirement", back_populates="product", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<LenderProduct(id={self.id}, category='{self.category}', country='{self.country}')>"


class LenderProductRequirement(Base):
    """A document type a lender product asks for, optionally scoped to an amount range."""

    __tablename__ = "lender_product_requirements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lender_product_id = Column(
        Integer, ForeignKey("lender_products.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_type = Column(String(100), nullable=False)
    required = Column(Boolean, nullable=False, default=True, server_default="true")
    min_amount = Column(Numeric(14, 2), nullable=True)
    max_amount = Column(Numeric(14, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    product = relationship("LenderProduct", back_populates="requirements")

    def __repr__(self):
        return (
            f"<LenderProductRequirement(product={self.lender_product_id}, "
            f"type='{self.document_type}', required={self.required})>"
        )


class Application(Base):
    """Loan application and its processing progress."""

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_type = Column(String(50), nullable=True)
    lender_product_id = Column(
        Integer, ForeignKey("lender_products.id", ondelete="SET NULL"), nullable=True,
    )
    requested_amount = Column(Numeric(14, 2), nullable=True)
    app_metadata = Column("metadata", JSON, nullable=True)
    # Stored as text so values written by older releases never fail to load
    processing_stage = Column(String(50), nullable=True)
    ocr_completed_at = Column(DateTime(timezone=True), nullable=True)
    banking_completed_at = Column(DateTime(timezone=True), nullable=True)
    credit_summary_completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    documents = relationship(
        "Document", back_populates="application", cascade="all, delete-orphan",
    )
    required_documents = relationship(
        "ApplicationRequiredDocument", back_populates="application", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Application(id={self.id}, processing_stage='{self.processing_stage}')>"


class Document(Base):
    """Uploaded document; the file itself lives in the blob store under storage_key."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_type = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False, default="uploaded")
    storage_key = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    application = relationship("Application", back_populates="documents")
    processing_jobs = relationship(
        "DocumentProcessingJob", back_populates="document", cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Document(id={self.id}, type='{self.document_type}', status='{self.status}')>"


class DocumentProcessingJob(Base):
    """Per-document extraction job (OCR). At most one row per (document, job type)."""

    __tablename__ = "document_processing_jobs"
    __table_args__ = (
        UniqueConstraint("document_id", "job_type", name="uq_doc_processing_job_document_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    job_type = Column(String(50), nullable=False, default="ocr")
    status = Column(
        Enum(JobStatus, name="job_status", native_enum=False),
        nullable=False,
        default=JobStatus.PENDING,
    )
    retry_count = Column(Integer, nullable=False, default=0, server_default="0")
    max_retries = Column(Integer, nullable=False, default=3, server_default="3")
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    document = relationship("Document", back_populates="processing_jobs")

    def __repr__(self):
        return (
            f"<DocumentProcessingJob(id={self.id}, document={self.document_id}, "
            f"type='{self.job_type}', status='{self.status}')>"
        )


class BankingAnalysisJob(Base):
    """Bank-statement analysis job. At most one per application; the first created wins."""

    __tablename__ = "banking_analysis_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    status = Column(
        Enum(JobStatus, name="job_status", native_enum=False),
        nullable=False,
        default=JobStatus.PENDING,
    )
    statement_months_detected = Column(Integer, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0, server_default="0")
    max_retries = Column(Integer, nullable=False, default=2, server_default="2")
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<BankingAnalysisJob(id={self.id}, application={self.application_id}, status='{self.status}')>"


class CreditSummaryJob(Base):
    """Credit-summary generation job. At most one per application."""

    __tablename__ = "credit_summary_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    status = Column(
        Enum(JobStatus, name="job_status", native_enum=False),
        nullable=False,
        default=JobStatus.PENDING,
    )
    retry_count = Column(Integer, nullable=False, default=0, server_default="0")
    max_retries = Column(Integer, nullable=False, default=1, server_default="1")
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<CreditSummaryJob(id={self.id}, application={self.application_id}, status='{self.status}')>"


class ApplicationRequiredDocument(Base):
    """Review status of one required document category for an application."""

    __tablename__ = "application_required_documents"
    __table_args__ = (
        UniqueConstraint("application_id", "document_category", name="uq_app_required_doc_category"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    application_id = Column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    document_category = Column(String(100), nullable=False)
    is_required = Column(Boolean, nullable=False, default=True, server_default="true")
    status = Column(String(20), nullable=False, default="missing")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    application = relationship("Application", back_populates="required_documents")

    def __repr__(self):
        return (
            f"<ApplicationRequiredDocument(application={self.application_id}, "
            f"category='{self.document_category}', status='{self.status}')>"
        )


class AuditEvent(Base):
    """Append-only processing audit trail."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    user_id = Column(String(255), nullable=True)
    application_id = Column(Integer, nullable=True, index=True)
    event_data = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<AuditEvent(id={self.id}, type='{self.event_type}', application={self.application_id})>"
