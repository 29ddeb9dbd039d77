"""
================================================================================
FILE: pipelines_host/config/__init__.py
================================================================================

PURPOSE:
    Package initialization for configuration layer. Exports main Settings class
    and constants for easy imports throughout codebase.
"""

from pipelines_host.config.settings import Settings
from pipelines_host.config.constants import CONSTANTS

__all__ = ["Settings", "CONSTANTS"]
