"""
================================================================================
FILE: pipelines_host/config/settings.py
================================================================================

PURPOSE:
    Application settings and configuration loaded from environment variables.
    Uses Pydantic BaseSettings for automatic validation and type hints.
    Single source of truth for all host configuration.

WORKFLOW:
    1. At startup, load from environment variables (.env file or system env)
    2. Validate all settings (type checking, range validation)
    3. Fail fast if settings are invalid
    4. Access throughout app via: settings.pipelines_dir, settings.api_key, etc.

INPUTS:
    - Environment variables (from .env file or system env)
    - Examples:
        PIPELINES_DIR=./pipelines
        API_KEY=0p3n-w3bu!
        GLOBAL_LOG_LEVEL=INFO
        PIPELINES_PRELOAD=false

CONFIGURATION CATEGORIES:
    1. Pipelines (directory, preload, module namespace)
    2. Security (admin API key)
    3. Server (host, port, CORS)
    4. Limits (upload size, download timeout)
    5. Logging (level, format)

KEY FACTS:
    - Environment variables override defaults
    - Supports .env file (python-dotenv)
    - Settings(...) keyword overrides work in tests (populate_by_name)
"""

from __future__ import annotations

import os

from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from dotenv import load_dotenv

_ENV_PATH = Path(os.getcwd()) / ".env"

load_dotenv(dotenv_path=_ENV_PATH, override=False)


class Settings(BaseSettings):
    """
    Host settings loaded from environment variables + .env.

    All fields have aliases to match .env variable names.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # ========================================================================
    # PIPELINES
    # ========================================================================

    pipelines_dir: Path = Field(
        default=Path("./pipelines"),
        alias="PIPELINES_DIR",
        description="Directory scanned for pipeline source files",
    )

    preload_pipelines: bool = Field(
        default=False,
        alias="PIPELINES_PRELOAD",
        description="Load every discovered pipeline at startup instead of on first use",
    )

    module_namespace: str = Field(
        default="pipelines_host.loaded",
        alias="PIPELINE_MODULE_NAMESPACE",
        description="sys.modules prefix under which loaded pipelines are bound",
    )

    # ========================================================================
    # SECURITY
    # ========================================================================

    api_key: str = Field(
        default="0p3n-w3bu!",
        alias="API_KEY",
        description="Bearer token required by the admin endpoints",
    )

    # ========================================================================
    # SERVER
    # ========================================================================

    server_host: str = Field(
        default="0.0.0.0",
        alias="HOST",
        description="Server host",
    )

    server_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        alias="PORT",
        description="Server port",
    )

    cors_allow_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        alias="CORS_ALLOW_ORIGINS",
        description="Origins allowed by the CORS middleware",
    )

    model_owner: str = Field(
        default="pipelines",
        alias="MODEL_OWNER",
        description="owned_by value reported by /models",
    )

    # ========================================================================
    # LIMITS
    # ========================================================================

    max_upload_size_mb: int = Field(
        default=5,
        ge=1,
        le=100,
        alias="MAX_UPLOAD_SIZE_MB",
        description="Max size of an uploaded or downloaded pipeline source (MB)",
    )

    download_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        alias="DOWNLOAD_TIMEOUT",
        description="Timeout for fetching a pipeline from a URL (seconds)",
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="GLOBAL_LOG_LEVEL",
        description="Logging level",
    )

    log_format: Literal["json", "text"] = Field(
        default="text",
        alias="LOG_FORMAT",
        description="Logging format: json or text",
    )

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: Any) -> Any:
        """Accept lower-case levels and the WARN alias."""
        if isinstance(v, str):
            v = v.strip().upper()
            if v == "WARN":
                return "WARNING"
        return v

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, v: Any) -> Any:
        """CORS_ALLOW_ORIGINS=http://a.example,http://b.example"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("api_key")
    @classmethod
    def _validate_api_key(cls, v: str) -> str:
        """Admin routes are unusable with an empty key."""
        if not v or not v.strip():
            raise ValueError("API_KEY must be a non-empty string")
        return v

    @field_validator("module_namespace")
    @classmethod
    def _validate_namespace(cls, v: str) -> str:
        """Namespace must be a dotted Python identifier."""
        if not v or not all(part.isidentifier() for part in v.split(".")):
            raise ValueError(f"Invalid module namespace: {v!r}")
        return v

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def resolved_pipelines_dir(self) -> Path:
        """Absolute pipelines directory (not required to exist)."""
        return self.pipelines_dir.expanduser().resolve()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert settings to dictionary with secrets redacted.

        Returns:
            Settings dictionary with the API key masked
        """
        d = self.model_dump()
        if d.get("api_key"):
            d["api_key"] = "***REDACTED***"
        d["pipelines_dir"] = str(d["pipelines_dir"])
        return d
