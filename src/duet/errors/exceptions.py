"""Custom exception classes for the Duet job tracker."""


class DuetError(Exception):
    """Base exception for Duet."""

    def __init__(self, code: str, message: str, details=None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidInputError(DuetError):
    """Malformed or empty submission input. Raised before any network call."""

    def __init__(self, message: str, details=None):
        super().__init__("INVALID_INPUT", message, details)


class BackendError(DuetError):
    """Processing backend or transport failure."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__("BACKEND_ERROR", message, {"status_code": status_code} if status_code else None)


class _WrappedBackendError(DuetError):
    code: str = "BACKEND_ERROR"
    action: str = "request"

    def __init__(self, cause: BackendError):
        self.cause = cause
        super().__init__(self.code, f"Failed to {self.action}: {cause.message}", cause.details)


class SubmissionFailedError(_WrappedBackendError):
    """Backend refused or failed to start a job."""

    code = "SUBMISSION_FAILED"
    action = "start video processing"


class RetryFailedError(_WrappedBackendError):
    """Backend refused or failed to retry a job."""

    code = "RETRY_FAILED"
    action = "retry processing job"


class RemovalFailedError(_WrappedBackendError):
    """Backend failed to delete a job record."""

    code = "REMOVAL_FAILED"
    action = "remove processing job"


class NotRetryableError(DuetError):
    """Retry invoked on a job that is not failed or not retryable."""

    def __init__(self, job_id: str, status: str, retryable: bool):
        super().__init__(
            "NOT_RETRYABLE",
            f"Job '{job_id}' cannot be retried (status={status}, retryable={retryable})",
            {"job_id": job_id, "status": status, "retryable": retryable},
        )


class JobNotFoundError(DuetError):
    """Job id unknown to the backend."""

    def __init__(self, job_id: str):
        super().__init__("NOT_FOUND", f"Job '{job_id}' not found")
