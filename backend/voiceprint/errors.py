"""Typed failures raised by the voiceprint core.

Every error carries the fingerprint it concerns and the last version known to
be good, so callers can tell "failed, still using version N" apart from
"nothing computed yet".
"""

from typing import Any, Dict, Optional


class VoiceprintError(Exception):
    """Base class for all voiceprint failures."""

    status_code: int = 500
    default_error_code: str = "INTERNAL_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        fingerprint_id: Optional[str] = None,
        last_version: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.fingerprint_id = fingerprint_id
        self.last_version = last_version
        self.error_code = self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON error responses."""
        details = dict(self.details)
        if self.fingerprint_id is not None:
            details["fingerprint_id"] = self.fingerprint_id
        if self.last_version is not None:
            details["last_version"] = self.last_version
        if self.retryable:
            details["retryable"] = True
        result: Dict[str, Any] = {"code": self.error_code, "message": self.message}
        if details:
            result["details"] = details
        return result


class InputValidationError(VoiceprintError):
    """Rejected before any state transition (too few samples, bad text)."""

    status_code = 400
    default_error_code = "VALIDATION_ERROR"


class FingerprintNotFoundError(VoiceprintError):
    status_code = 404
    default_error_code = "NOT_FOUND"


class AccessDeniedError(VoiceprintError):
    status_code = 403
    default_error_code = "FORBIDDEN"


class ComputationInProgressError(VoiceprintError):
    """Another computation cycle holds the fingerprint in ``computing``."""

    status_code = 409
    default_error_code = "COMPUTATION_IN_PROGRESS"


class ExtractionError(VoiceprintError):
    """A pipeline stage raised; the fingerprint was moved to ``failed``."""

    status_code = 500
    default_error_code = "EXTRACTION_FAILED"
    retryable = True


class PersistenceError(VoiceprintError):
    """The storage service was unreachable or rejected a write."""

    status_code = 503
    default_error_code = "PERSISTENCE_FAILED"
    retryable = True


class SemanticServiceError(Exception):
    """Raised by semantic clients; absorbed by the signature extractor."""
