"""ARGUS — Error Taxonomy.

Every outcome the recovery core can short-circuit with is a distinct
exception type. Routes map them to structured JSON responses using
`status_code` and `details`; only ExecutorError is retryable.
"""

from typing import Any, Dict, Optional


class ArgusError(Exception):
    """Base class for all recovery-core errors."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, **self.details}


class NotFound(ArgusError):
    """Record or job is absent, or not owned by the requesting user."""

    status_code = 404


class Forbidden(ArgusError):
    """Job exists but belongs to another user."""

    status_code = 403


class Conflict(ArgusError):
    """Invalid state transition (already retrying / resolved / recovered)."""

    status_code = 409

    def __init__(self, reason: str, current_status: Optional[str] = None):
        self.reason = reason
        details = {"current_status": current_status} if current_status else {}
        super().__init__(reason, details)


class MaxRetriesExceeded(ArgusError):
    """Attempt cap reached; the record is now a permanent failure."""

    status_code = 400

    def __init__(self, message: str, retry_count: int):
        self.retry_count = retry_count
        super().__init__(
            message,
            {
                "retry_count": retry_count,
                "can_retry_again": False,
                "permanent_failure": True,
            },
        )


class AuthRequired(ArgusError):
    """No usable credential for the remote gateway."""

    status_code = 401

    def __init__(self, message: str = "Meta authentication required"):
        super().__init__(message, {"requires_reauth": True})


class ExecutorError(ArgusError):
    """The remote call made by a retry executor failed."""

    status_code = 502
    retryable = True

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause) or cause.__class__.__name__)


class ReconciliationFetchError(ArgusError):
    """The remote representation of one entity could not be fetched."""

    status_code = 502

    def __init__(self, entity_type: str, entity_id: str, cause: BaseException):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.cause = cause
        super().__init__(
            f"Could not fetch {entity_type} {entity_id}: {cause}",
            {"entity_type": entity_type, "entity_id": entity_id},
        )
