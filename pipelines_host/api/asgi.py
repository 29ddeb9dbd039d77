# ASGI entry point
"""
================================================================================
FILE: pipelines_host/api/asgi.py
================================================================================

PURPOSE:
    ASGI entry point for production servers (uvicorn, gunicorn with
    uvicorn workers). Builds the app from environment settings.

KEY FACTS:
    - Never modify app behavior in this file; use main.py for app setup
    - uvicorn pipelines_host.api.asgi:app
"""

from pipelines_host.api.main import create_app

# ASGI servers look for 'app' by default
__all__ = ["app"]

app = create_app()
