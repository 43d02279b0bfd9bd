"""
Error taxonomy for the generation backend.

Every failure that can reach a caller is a ClearBoundError carrying an
ErrorKind, a machine-readable code and the pipeline stage it came from.
The API layer renders these into the JSON envelope; prompt text and user
facts never appear in a rendered error.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Error categories surfaced to callers"""
    VALIDATION = "validation"  # Bad or missing input, no generator call made
    UPSTREAM_FETCH = "upstream_fetch"  # Template store unreachable
    GENERATION_FAILED = "generation_failed"  # Generator errored after the single retry
    SCHEMA_VIOLATION = "schema_violation"  # Recovered locally, never surfaced
    INTERNAL = "internal"  # Unexpected exception


class GenerationFailureKind(str, Enum):
    """How a generator call failed"""
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"


class ClearBoundError(Exception):
    """Base class for all errors carrying a kind, a code and a stage label"""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.value.upper()
        self.stage = stage
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        """Render error as the failure envelope"""
        payload: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "kind": self.kind.value,
            "stage": self.stage,
            "message": self.message,
        }
        if self.details and self.kind == ErrorKind.VALIDATION:
            payload["details"] = self.details
        return payload


# ============================================================================
# VALIDATION
# ============================================================================

class ValidationError(ClearBoundError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class InvalidPayloadError(ValidationError):
    def __init__(self, message: str = "Request body must be a JSON object", stage: str = "validate_body"):
        super().__init__(message, code="INVALID_PAYLOAD", stage=stage)


class MissingFieldError(ValidationError):
    def __init__(self, field_name: str, stage: str = "normalize"):
        super().__init__(
            f"Missing required field: {field_name}",
            code="MISSING_FIELD",
            stage=stage,
            details={"field": field_name},
        )
        self.field_name = field_name


class InvalidEnumError(ValidationError):
    def __init__(self, field_name: str, value: Any, stage: str = "normalize"):
        super().__init__(
            f"Unrecognized value for {field_name}",
            code="INVALID_ENUM",
            stage=stage,
            details={"field": field_name, "value": str(value)[:64]},
        )
        self.field_name = field_name
        self.value = value


class TooManyValuesError(ValidationError):
    def __init__(self, field_name: str, limit: int, stage: str = "normalize"):
        super().__init__(
            f"Too many values for {field_name} (max {limit})",
            code="TOO_MANY_VALUES",
            stage=stage,
            details={"field": field_name, "limit": limit},
        )


class FactsTooShortError(ValidationError):
    def __init__(self, minimum: int, stage: str = "normalize"):
        super().__init__(
            f"facts must be at least {minimum} characters",
            code="FACTS_TOO_SHORT",
            stage=stage,
            details={"field": "facts", "minimum": minimum},
        )


class UnknownPackageError(ValidationError):
    def __init__(self, package_id: Any, stage: str = "resolve_package"):
        super().__init__(
            "Unknown package",
            code="UNKNOWN_PACKAGE",
            stage=stage,
            details={"field": "package", "value": str(package_id)[:64]},
        )


# ============================================================================
# UPSTREAM / GENERATION
# ============================================================================

class TemplateFetchError(ClearBoundError):
    kind = ErrorKind.UPSTREAM_FETCH
    status_code = 502

    def __init__(
        self,
        template_id: str,
        status: Optional[int] = None,
        code: str = "FETCH_FAILED",
        stage: str = "template_fetch"
    ):
        label = f"status {status}" if status is not None else "no response"
        super().__init__(f"Template fetch failed ({label})", code=code, stage=stage)
        self.template_id = template_id
        self.status = status


class TemplateSourceNotConfiguredError(ClearBoundError):
    """Template source settings are missing or unusable"""
    kind = ErrorKind.UPSTREAM_FETCH
    status_code = 503

    def __init__(self, message: str = "Template source is not configured", stage: str = "template_store"):
        super().__init__(message, code="TEMPLATE_SOURCE_UNCONFIGURED", stage=stage)


class GenerationFailedError(ClearBoundError):
    kind = ErrorKind.GENERATION_FAILED
    status_code = 502

    def __init__(
        self,
        stage: str,
        failure_kind: GenerationFailureKind,
        status: Optional[int] = None
    ):
        if failure_kind == GenerationFailureKind.TIMEOUT:
            message = "Text generation timed out"
            code = "GENERATION_TIMEOUT"
        else:
            message = f"Text generation failed (status {status})" if status else "Text generation failed"
            code = "GENERATION_FAILED"
        super().__init__(message, code=code, stage=stage)
        self.failure_kind = failure_kind
        self.status = status
        if failure_kind == GenerationFailureKind.TIMEOUT:
            self.status_code = 504


class SchemaViolationError(ClearBoundError):
    """Raised inside the stage runner only; resolved by repair or fallback"""
    kind = ErrorKind.SCHEMA_VIOLATION

    def __init__(self, reason: str, stage: Optional[str] = None):
        super().__init__(reason, code="SCHEMA_VIOLATION", stage=stage)
        self.reason = reason


class InternalError(ClearBoundError):
    kind = ErrorKind.INTERNAL
    status_code = 500

    def __init__(self, stage: str = "server_error"):
        super().__init__("Internal server error", code="INTERNAL", stage=stage)


# ============================================================================
# PROVIDER (raised by the generator client, mapped by the stage runner)
# ============================================================================

class ProviderError(Exception):
    """Generator returned a non-success status"""

    def __init__(self, status: Optional[int], message: str = ""):
        super().__init__(f"provider error {status}: {message}")
        self.status = status
        self.message = message


class ProviderTimeoutError(Exception):
    """Generator call exceeded its deadline"""


class EmptyResponseError(Exception):
    """Generator returned no text"""
