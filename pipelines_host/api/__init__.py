# 6 files: HTTP endpoints
"""
================================================================================
FILE: pipelines_host/api/__init__.py
================================================================================

PURPOSE:
    Package initialization for the API layer. Exports the routers and the
    app factory: from pipelines_host.api import create_app

KEY FACTS:
    - Minimal file (just exports)
    - router: public endpoints; admin_router: bearer-protected endpoints
"""

# ================================================================================
# IMPORTS
# ================================================================================

from pipelines_host.api.routes import admin_router, router
from pipelines_host.api.main import create_app

# ================================================================================
# PUBLIC API EXPORTS
# ================================================================================

__all__ = ["router", "admin_router", "create_app"]
