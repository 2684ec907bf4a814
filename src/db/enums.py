# This project was developed with assistance from AI tools.
"""
Domain enums for the loan application back office.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas / services (backoffice package).
"""

import enum
from typing import NamedTuple


class StageFlags(NamedTuple):
    """Which processing steps a stage implies are finished."""

    ocr_completed: bool
    banking_completed: bool
    documents_completed: bool
    credit_summary_completed: bool


class ProcessingStage(str, enum.Enum):
    PENDING = "pending"
    OCR_PROCESSING = "ocr_processing"
    OCR_COMPLETE = "ocr_complete"
    BANKING_PROCESSING = "banking_processing"
    BANKING_COMPLETE = "banking_complete"
    DOCUMENTS_INCOMPLETE = "documents_incomplete"
    DOCUMENTS_COMPLETE = "documents_complete"
    CREDIT_SUMMARY_PROCESSING = "credit_summary_processing"
    CREDIT_SUMMARY_COMPLETE = "credit_summary_complete"
    READY_FOR_LENDER = "ready_for_lender"

    @classmethod
    def ordered(cls) -> tuple["ProcessingStage", ...]:
        """Stages in pipeline order."""
        return tuple(cls)

    @classmethod
    def parse(cls, value: str | None) -> "ProcessingStage":
        """Interpret a stored value; null or unknown values read as PENDING."""
        if value is None:
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            return cls.PENDING

    @property
    def position(self) -> int:
        return self.ordered().index(self)

    @property
    def flags(self) -> StageFlags:
        return _STAGE_FLAGS[self]


_STAGE_FLAGS: dict[ProcessingStage, StageFlags] = {
    ProcessingStage.PENDING: StageFlags(False, False, False, False),
    ProcessingStage.OCR_PROCESSING: StageFlags(False, False, False, False),
    ProcessingStage.OCR_COMPLETE: StageFlags(True, False, False, False),
    ProcessingStage.BANKING_PROCESSING: StageFlags(True, False, False, False),
    ProcessingStage.BANKING_COMPLETE: StageFlags(True, True, False, False),
    ProcessingStage.DOCUMENTS_INCOMPLETE: StageFlags(True, True, False, False),
    ProcessingStage.DOCUMENTS_COMPLETE: StageFlags(True, True, True, False),
    ProcessingStage.CREDIT_SUMMARY_PROCESSING: StageFlags(True, True, True, False),
    ProcessingStage.CREDIT_SUMMARY_COMPLETE: StageFlags(True, True, True, True),
    ProcessingStage.READY_FOR_LENDER: StageFlags(True, True, True, True),
}


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, enum.Enum):
    """Job families with their own table, breaker and retry limit."""

    OCR = "ocr"
    BANKING = "banking"
    CREDIT_SUMMARY = "credit_summary"


class DocumentStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RequiredDocumentStatus(str, enum.Enum):
    MISSING = "missing"
    UPLOADED = "uploaded"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ProductStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
