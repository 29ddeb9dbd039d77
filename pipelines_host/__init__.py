# pipelines_host/__init__.py

"""
Pipelines host package.

This package contains:
- api: FastAPI routes, dependencies and app factory
- config: settings and constants
- core: exception taxonomy
- pipeline: scanning, loading, validation, registry, lifecycle, dispatch
- container: wiring of the pipeline components
"""

__all__ = ["__version__"]

__version__ = "1.0.0"
