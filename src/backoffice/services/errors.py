# This project was developed with assistance from AI tools.
"""Processing error types.

Each error carries a stable ``code`` and the HTTP status the API layer
renders it with. Job failures are never raised; they are recorded as
``failed`` job rows.
"""


class ProcessingError(Exception):
    """Base class for processing engine and orchestrator errors."""

    code = "processing_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFoundError(ProcessingError):
    """Referenced application, document or job does not exist."""

    code = "not_found"
    status_code = 404


class InvalidStateError(ProcessingError):
    """Operation is not valid for the current processing state.

    Raised for a forced retry of a job a worker may still hold. The engine
    reads an unknown stored stage as ``pending`` instead of raising this.
    """

    code = "invalid_state"
    status_code = 400


class InvalidProductError(ProcessingError):
    """Product type is unknown or no active lender product matches it."""

    code = "invalid_product"
    status_code = 400


class CircuitOpenError(ProcessingError):
    """Circuit breaker for the requested operation is open."""

    code = "circuit_open"
    status_code = 503

    def __init__(self, breaker_name: str):
        super().__init__(f"Circuit breaker '{breaker_name}' is open")
        self.breaker_name = breaker_name


class DocumentMismatchError(ProcessingError):
    """Document exists but belongs to a different application."""

    code = "document_mismatch"
    status_code = 400


class RetryNotAllowedError(ProcessingError):
    """Job is not eligible for a retry right now."""

    code = "retry_not_allowed"
    status_code = 409


class RetryDisabledError(ProcessingError):
    """Staff retries are switched off and the retry was not forced."""

    code = "retry_disabled"
    status_code = 403
