"""
================================================================================
FILE: pipelines_host/core/__init__.py
================================================================================

PURPOSE:
    Package initialization for the core layer. Re-exports the exception
    taxonomy so callers can write: from pipelines_host.core import ...
"""

# ================================================================================
# IMPORTS & EXPORTS
# ================================================================================

from pipelines_host.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExecutionPhase,
    InvalidRequestError,
    LoadErrorKind,
    PipelineDownloadError,
    PipelineExecutionError,
    PipelineHostException,
    PipelineIOError,
    PipelineLoadError,
    PipelineNotFoundError,
    PipelineNotLoadedError,
    PipelineValidationError,
    UnsupportedOperationError,
    ValidationErrorKind,
)

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ExecutionPhase",
    "InvalidRequestError",
    "LoadErrorKind",
    "PipelineDownloadError",
    "PipelineExecutionError",
    "PipelineHostException",
    "PipelineIOError",
    "PipelineLoadError",
    "PipelineNotFoundError",
    "PipelineNotLoadedError",
    "PipelineValidationError",
    "UnsupportedOperationError",
    "ValidationErrorKind",
]
