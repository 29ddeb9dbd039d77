# MERGED: 3 sections with separation comments
#│   │   ├── SECTION 1: Enumerations (PipelineState)
#│   │   ├── SECTION 2: Static + dynamic pipeline records
#│   │   └── SECTION 3: Registry entry & execution result
"""
================================================================================
FILE: pipelines_host/pipeline/schemas.py
================================================================================

PURPOSE:
    Data structures shared by the scanner, loader, validator, registry,
    lifecycle manager and dispatcher.

    - PipelineDescriptor: static metadata from a scan (never loads code)
    - PipelineCapabilities: cached result of the interface probe
    - LoadedPipeline: validated executable unit + capabilities
    - RegistryEntry: descriptor + loaded unit (or the last load error)
    - ExecutionResult: response body + warnings from a dispatch

KEY FACTS:
    - All records are frozen dataclasses: a registry entry is replaced
      wholesale, never patched in place
    - LoadedPipeline owns the unit; callers borrow it for one invocation
"""

# ================================================================================
# IMPORTS
# ================================================================================

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# ================================================================================
# SECTION 1: ENUMERATIONS
# ================================================================================

class PipelineState(str, Enum):
    """
    Lifecycle state of one identifier.

    DISCOVERED: descriptor only (scanned, never loaded)
    LOADED: descriptor + validated unit
    FAILED: descriptor + last load/validation error, no unit
    """
    DISCOVERED = "discovered"
    LOADED = "loaded"
    FAILED = "failed"


# ================================================================================
# SECTION 2: PIPELINE RECORDS
# ================================================================================

@dataclass(frozen=True)
class PipelineDescriptor:
    """Static, scanner-produced metadata for one source file."""
    identifier: str
    source_path: Path
    name: str
    description: str = ""
    declared_type: str = "pipe"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.identifier,
            "name": self.name,
            "description": self.description,
            "type": self.declared_type,
            "file_path": str(self.source_path),
        }


@dataclass(frozen=True)
class EntryPoint:
    """A bound callable on the unit and how many positional args it takes."""
    name: str
    func: Callable[..., Any]
    arity: int

    def call(self, *args: Any) -> Any:
        """Invoke with args trimmed to the accepted positional arity."""
        return self.func(*args[:self.arity])


@dataclass(frozen=True)
class PipelineCapabilities:
    """
    Result of probing a unit once at load time.

    pipe is mandatory; every other entry point is None when absent.
    valves_value holds a non-callable valves attribute (dict or pydantic
    model) when the pipeline exposes its valves as data instead of a method.
    """
    pipe: EntryPoint
    inlet: Optional[EntryPoint] = None
    outlet: Optional[EntryPoint] = None
    valves: Optional[EntryPoint] = None
    valves_spec: Optional[EntryPoint] = None
    update_valves: Optional[EntryPoint] = None
    valves_value: Any = None
    valve_spec: Optional[Dict[str, Any]] = None

    @property
    def has_valves(self) -> bool:
        return self.valves is not None or self.valves_value is not None

    def summary(self) -> Dict[str, bool]:
        return {
            "pipe": True,
            "inlet": self.inlet is not None,
            "outlet": self.outlet is not None,
            "valves": self.has_valves,
            "valves_spec": self.valves_spec is not None or self.valve_spec is not None,
            "update_valves": self.update_valves is not None,
        }


@dataclass(frozen=True)
class LoadedUnit:
    """Loader output: the executable unit and the module that produced it."""
    identifier: str
    unit: Any
    module_name: str


@dataclass(frozen=True)
class LoadedPipeline:
    """A unit that passed validation; the only thing the dispatcher calls."""
    identifier: str
    unit: Any
    module_name: str
    capabilities: PipelineCapabilities

    @property
    def valve_spec(self) -> Optional[Dict[str, Any]]:
        return self.capabilities.valve_spec


# ================================================================================
# SECTION 3: REGISTRY ENTRY & EXECUTION RESULT
# ================================================================================

@dataclass(frozen=True)
class RegistryEntry:
    """
    descriptor + (loaded | None) + (error | None).

    Only entries with `loaded` set are executable.
    """
    descriptor: PipelineDescriptor
    loaded: Optional[LoadedPipeline] = None
    error: Optional[str] = None

    @property
    def identifier(self) -> str:
        return self.descriptor.identifier

    @property
    def state(self) -> PipelineState:
        if self.loaded is not None:
            return PipelineState.LOADED
        if self.error is not None:
            return PipelineState.FAILED
        return PipelineState.DISCOVERED

    def to_dict(self) -> Dict[str, Any]:
        d = self.descriptor.to_dict()
        d["loaded"] = self.loaded is not None
        d["status"] = self.state.value
        if self.error is not None:
            d["error"] = self.error
        if self.loaded is not None:
            d["capabilities"] = self.loaded.capabilities.summary()
        return d


@dataclass
class ExecutionResult:
    """Body returned by the pipeline plus any non-fatal warnings."""
    identifier: str
    body: Any
    warnings: List[str] = field(default_factory=list)
