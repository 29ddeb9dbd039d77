# MERGED: 3 sections with separation comments
#│   │   ├── SECTION 1: Base exception
#│   │   ├── SECTION 2: Lifecycle exceptions (lookup, load, validation, IO)
#│   │   └── SECTION 3: Execution & API exceptions
"""
================================================================================
FILE: pipelines_host/core/exceptions.py
================================================================================

PURPOSE:
    Exception hierarchy for the pipelines host. Every failure the lifecycle
    manager or the dispatcher can report is one of these types, so the HTTP
    layer can map it to a status code and a uniform JSON error body.

WORKFLOW:
    1. Define base exception class (PipelineHostException)
    2. Define lifecycle failures:
       - PipelineNotFoundError / PipelineNotLoadedError
       - PipelineLoadError (ReadFailure, CompileFailure, MultipleUnitsFailure)
       - PipelineValidationError (MissingRequiredEntryPoint, ProbeFailure,
         InvalidValveValues)
       - UnsupportedOperationError, PipelineIOError
    3. Define execution failures (PipelineExecutionError with a phase)
    4. Define API-side failures (download, bad request, auth, configuration)

IMPORTS:
    - None (only Python builtins)

KEY FACTS:
    - NO imports from pipelines_host modules (prevents circular dependencies)
    - All exceptions inherit from PipelineHostException
    - Each exception has error_code (machine readable) and http_status
    - Exceptions raised by pipeline-owned code never leave the core as-is;
      they are wrapped into one of these types at the call boundary
    - to_dict() never includes tracebacks (clients only see message/code)
"""

# ================================================================================
# IMPORTS
# ================================================================================

from enum import Enum
from typing import Optional, Dict, Any

# ================================================================================
# SECTION 1: BASE EXCEPTION
# ================================================================================

class PipelineHostException(Exception):
    """
    Root exception for all pipelines host errors.

    Attributes:
        message (str): Human-readable error message
        error_code (str): Machine-readable error code for categorization
        error_type (str): OpenAI-style error "type" field
        http_status (int): Status the HTTP layer answers with
        context (dict): Additional context (optional)
    """

    error_type: str = "pipeline_error"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        context: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the uniform error envelope."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.error_code.lower(),
            }
        }


# ================================================================================
# SECTION 2: LIFECYCLE EXCEPTIONS
# ================================================================================

class LoadErrorKind(str, Enum):
    """Why a pipeline source could not be turned into an executable unit."""
    READ_FAILURE = "ReadFailure"
    COMPILE_FAILURE = "CompileFailure"
    MULTIPLE_UNITS_FAILURE = "MultipleUnitsFailure"


class ValidationErrorKind(str, Enum):
    """Why a loaded unit (or a valve update) was rejected."""
    MISSING_REQUIRED_ENTRY_POINT = "MissingRequiredEntryPoint"
    PROBE_FAILURE = "ProbeFailure"
    INVALID_VALVE_VALUES = "InvalidValveValues"


class PipelineNotFoundError(PipelineHostException):
    """No pipeline is registered (or present on disk) under this identifier"""

    error_type = "invalid_request_error"
    http_status = 404

    def __init__(self, identifier: str, context: Optional[Dict] = None):
        self.identifier = identifier
        super().__init__(
            f"Pipeline '{identifier}' not found",
            error_code="PIPELINE_NOT_FOUND",
            context=context,
        )


class PipelineNotLoadedError(PipelineHostException):
    """Pipeline is known from a scan but has no validated unit yet"""

    error_type = "invalid_request_error"
    http_status = 409

    def __init__(self, identifier: str, context: Optional[Dict] = None):
        self.identifier = identifier
        super().__init__(
            f"Pipeline '{identifier}' is not loaded",
            error_code="PIPELINE_NOT_LOADED",
            context=context,
        )


class PipelineLoadError(PipelineHostException):
    """Source could not be read, compiled, or resolved to a single unit"""

    http_status = 422

    def __init__(
        self,
        kind: LoadErrorKind,
        message: str,
        context: Optional[Dict] = None
    ):
        self.kind = kind
        super().__init__(
            f"{kind.value}: {message}",
            error_code="PIPELINE_LOAD_ERROR",
            context=context,
        )


class PipelineValidationError(PipelineHostException):
    """Loaded unit does not honour the calling contract"""

    http_status = 422

    def __init__(
        self,
        kind: ValidationErrorKind,
        message: str,
        context: Optional[Dict] = None
    ):
        self.kind = kind
        super().__init__(
            f"{kind.value}: {message}",
            error_code="PIPELINE_VALIDATION_ERROR",
            context=context,
        )


class UnsupportedOperationError(PipelineHostException):
    """Pipeline does not expose the entry point this operation needs"""

    error_type = "invalid_request_error"
    http_status = 400

    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, error_code="UNSUPPORTED_OPERATION", context=context)


class PipelineIOError(PipelineHostException):
    """Filesystem operation on a pipeline source failed"""

    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, error_code="IO_ERROR", context=context)


# ================================================================================
# SECTION 3: EXECUTION & API EXCEPTIONS
# ================================================================================

class ExecutionPhase(str, Enum):
    """Which piece of pipeline-owned code failed."""
    INLET = "inlet"
    PIPE = "pipe"
    OUTLET = "outlet"
    VALVES = "valves"


class PipelineExecutionError(PipelineHostException):
    """Pipeline-owned code raised while being invoked"""

    def __init__(
        self,
        identifier: str,
        phase: ExecutionPhase,
        message: str,
        context: Optional[Dict] = None
    ):
        self.identifier = identifier
        self.phase = phase
        super().__init__(
            f"Pipeline '{identifier}' failed during {phase.value}: {message}",
            error_code="PIPELINE_EXECUTION_FAILED",
            context=context,
        )


class PipelineDownloadError(PipelineHostException):
    """Remote pipeline source could not be fetched"""

    error_type = "upstream_error"
    http_status = 502

    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, error_code="DOWNLOAD_FAILED", context=context)


class InvalidRequestError(PipelineHostException):
    """Request body is missing a field or has the wrong shape"""

    error_type = "invalid_request_error"
    http_status = 400

    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, error_code="INVALID_REQUEST", context=context)


class ConfigurationError(PipelineHostException):
    """Invalid configuration (fatal at startup)"""

    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, error_code="CONFIG_ERROR", context=context)


class AuthenticationError(PipelineHostException):
    """Missing or wrong admin bearer token"""

    error_type = "authentication_error"
    http_status = 401

    def __init__(self, message: str = "Invalid or missing API key", context: Optional[Dict] = None):
        super().__init__(message, error_code="INVALID_API_KEY", context=context)
