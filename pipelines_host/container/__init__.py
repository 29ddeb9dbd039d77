"""
Container package.

Exports:
    ServiceContainer: Wires settings into the pipeline components.
"""

from .service_container import ServiceContainer

__all__ = ["ServiceContainer"]
