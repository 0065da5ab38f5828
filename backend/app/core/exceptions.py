"""
Unified base exception classes for all services.

Each service extends ServiceError with its own base (e.g. ReportServiceError)
so routers can translate any of them with one `except ServiceError` handler.
"""
from typing import Any, List, Optional


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ReportServiceError(ServiceError):
    """Base exception for end-of-day report errors."""


class ReportValidationError(ReportServiceError):
    """Request rejected before any I/O; `errors` holds the field-level details."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        self.errors = errors or []
        super().__init__(message, 400)


class UpstreamFetchError(ReportServiceError):
    def __init__(self, source: str, reason: str):
        self.source = source
        super().__init__(f"Failed to fetch {source}: {reason}", 502)


class InternalConsistencyError(ReportServiceError):
    """The assembled report broke its own schema. Always a bug."""

    def __init__(self, reason: str):
        super().__init__(f"Report failed consistency check: {reason}", 500)


class PersistenceError(ReportServiceError):
    def __init__(self, message: str):
        super().__init__(message, 500)


class SequenceExhaustedError(PersistenceError):
    def __init__(self, sequence: str, failures: List[str]):
        self.failures = failures
        super().__init__(f"Could not issue a {sequence} number: " + "; ".join(failures))


class ReportNotFoundError(ReportServiceError):
    def __init__(self, report_id: str):
        super().__init__(f"EOD report with ID {report_id} not found", 404)


class SideEffectError(ReportServiceError):
    """Raised by best-effort side effects; callers log it and move on."""

    def __init__(self, effect: str, reason: str):
        self.effect = effect
        super().__init__(f"{effect} failed: {reason}", 500)
