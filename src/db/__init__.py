# This project was developed with assistance from AI tools.
__version__ = "0.1.0"

from .database import Base, DatabaseService, SessionLocal, get_db, get_db_service
from .enums import (
    DocumentStatus,
    JobKind,
    JobStatus,
    ProcessingStage,
    ProductStatus,
    RequiredDocumentStatus,
    StageFlags,
)
from .models import (
    Application,
    ApplicationRequiredDocument,
    AuditEvent,
    BankingAnalysisJob,
    CreditSummaryJob,
    Document,
    DocumentProcessingJob,
    Lender,
    LenderProduct,
    LenderProductRequirement,
)

__all__ = [
    "Base",
    "DatabaseService",
    "SessionLocal",
    "get_db",
    "get_db_service",
    "__version__",
    # Enums
    "ProcessingStage",
    "StageFlags",
    "JobStatus",
    "JobKind",
    "DocumentStatus",
    "RequiredDocumentStatus",
    "ProductStatus",
    # Models
    "Application",
    "ApplicationRequiredDocument",
    "AuditEvent",
    "BankingAnalysisJob",
    "CreditSummaryJob",
    "Document",
    "DocumentProcessingJob",
    "Lender",
    "LenderProduct",
    "LenderProductRequirement",
]
