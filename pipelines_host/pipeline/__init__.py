"""
Pipeline package.

Exports the components that turn source files into served pipelines.
"""

from .dispatcher import ExecutionDispatcher
from .lifecycle import LifecycleManager, call_entry_point
from .loader import PipelineLoader
from .registry import PipelineRegistry
from .scanner import SourceScanner
from .schemas import (
    ExecutionResult,
    LoadedPipeline,
    PipelineCapabilities,
    PipelineDescriptor,
    PipelineState,
    RegistryEntry,
)
from .validator import InterfaceValidator
from .valve_store import ValveStore

__all__ = [
    "ExecutionDispatcher",
    "LifecycleManager",
    "call_entry_point",
    "PipelineLoader",
    "PipelineRegistry",
    "SourceScanner",
    "ExecutionResult",
    "LoadedPipeline",
    "PipelineCapabilities",
    "PipelineDescriptor",
    "PipelineState",
    "RegistryEntry",
    "InterfaceValidator",
    "ValveStore",
]
