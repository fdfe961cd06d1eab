"""
Custom Exception Classes for the Matching Service
"""
from typing import Dict, Any, List, Optional
from fastapi import HTTPException


class MatchingServiceError(Exception):
    """Base exception for the matching service"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(MatchingServiceError):
    """Raised when data validation fails"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class NotFoundError(MatchingServiceError):
    """Raised when a referenced record does not exist"""

    def __init__(self, message: str, resource: str = None, resource_id: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if resource:
            details['resource'] = resource
        if resource_id:
            details['resource_id'] = resource_id
        super().__init__(message, error_code="NOT_FOUND", details=details, **kwargs)


class DatabaseError(MatchingServiceError):
    """Raised when database operations fail"""

    def __init__(self, message: str, operation: str = None, collection: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        if collection:
            details['collection'] = collection
        super().__init__(message, error_code="DATABASE_ERROR", details=details, **kwargs)


class ConfigurationLoadError(MatchingServiceError):
    """Raised when matching settings cannot be read. Recovered with defaults."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_LOAD_ERROR", **kwargs)


class ConfigurationSaveError(MatchingServiceError):
    """Raised when a settings write fails part-way.

    The stored configuration may be partially updated; callers reload
    before retrying.
    """

    def __init__(
        self,
        message: str,
        written_keys: Optional[List[str]] = None,
        failed_key: str = None,
        **kwargs
    ):
        details = kwargs.pop('details', {})
        self.written_keys = list(written_keys or [])
        self.failed_key = failed_key
        details['written_keys'] = self.written_keys
        if failed_key:
            details['failed_key'] = failed_key
        details['possibly_partial'] = bool(self.written_keys)
        super().__init__(message, error_code="CONFIGURATION_SAVE_ERROR", details=details, **kwargs)


class ConfigurationConflictError(MatchingServiceError):
    """Raised when the stored configuration version differs from the expected one"""

    def __init__(self, message: str, expected_version: int = None, current_version: int = None, **kwargs):
        details = kwargs.pop('details', {})
        details['expected_version'] = expected_version
        details['current_version'] = current_version
        super().__init__(message, error_code="CONFIGURATION_CONFLICT", details=details, **kwargs)


class ScoringError(MatchingServiceError):
    """Raised when a scoring run fails. No snapshot is assumed to exist."""

    def __init__(self, message: str, request_id: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if request_id:
            details['request_id'] = request_id
        super().__init__(message, error_code="SCORING_ERROR", details=details, **kwargs)


class SnapshotLookupError(MatchingServiceError):
    """Raised when the snapshot lookup itself fails (not when none exists)"""

    def __init__(self, message: str, request_id: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if request_id:
            details['request_id'] = request_id
        super().__init__(message, error_code="SNAPSHOT_LOOKUP_ERROR", details=details, **kwargs)


class DispatchError(MatchingServiceError):
    """Raised when invitation dispatch fails"""

    def __init__(self, message: str, request_id: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if request_id:
            details['request_id'] = request_id
        super().__init__(message, error_code="DISPATCH_ERROR", details=details, **kwargs)


class InvitationStateError(MatchingServiceError):
    """Raised when an invitation cannot move to the requested status"""

    def __init__(self, message: str, invite_id: str = None, status: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if invite_id:
            details['invite_id'] = invite_id
        if status:
            details['status'] = status
        super().__init__(message, error_code="INVITATION_STATE_ERROR", details=details, **kwargs)


# HTTP Exception Mapping
def map_to_http_exception(exc: MatchingServiceError) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""

    status_code_mapping = {
        ValidationError: 400,
        NotFoundError: 404,
        ConfigurationConflictError: 409,
        InvitationStateError: 409,
        ConfigurationLoadError: 500,
        ConfigurationSaveError: 500,
        DatabaseError: 500,
        SnapshotLookupError: 500,
        ScoringError: 502,
        DispatchError: 502,
    }

    status_code = status_code_mapping.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    return HTTPException(status_code=status_code, detail=detail)
