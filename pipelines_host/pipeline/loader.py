"""
================================================================================
FILE: pipelines_host/pipeline/loader.py
================================================================================

PURPOSE:
    Turn a PipelineDescriptor into an executable unit: read the source,
    compile it, execute it into a fresh module and pick the unit.

WORKFLOW:
    1. Read source text               → ReadFailure on OSError/decoding
    2. compile() + exec into a module  → CompileFailure on SyntaxError or
       created with importlib.util       any exception from the module body
    3. Bind sys.modules[<namespace>.<identifier>]
    4. Select the unit:
       - class named "Pipeline" defining pipe → instantiate it
       - exactly one module-defined class with pipe → instantiate it
       - none → the module itself is the unit
       - several → MultipleUnitsFailure

KEY FACTS:
    - Pure function of the file contents; holds no locks
    - Blocking (disk + exec); callers run it through asyncio.to_thread
    - sys.modules binding survives later validation failures; the next
      load of the same identifier rebinds it
"""

import importlib.util
import inspect
import logging
import sys
from types import ModuleType
from typing import Any, List

from pipelines_host.config.constants import REQUIRED_ENTRY_POINT
from pipelines_host.core.exceptions import LoadErrorKind, PipelineLoadError
from pipelines_host.pipeline.schemas import LoadedUnit, PipelineDescriptor

logger = logging.getLogger(__name__)

PREFERRED_UNIT_CLASS = "Pipeline"


class PipelineLoader:
    """Compiles pipeline sources into modules under a private namespace."""

    def __init__(self, namespace: str = "pipelines_host.loaded"):
        self.namespace = namespace

    def module_name(self, identifier: str) -> str:
        # identity mapping keeps "foo-bar" and "foo_bar" apart; sys.modules
        # keys are never imported by name so "-" is fine here
        return f"{self.namespace}.{identifier}"

    def load(self, descriptor: PipelineDescriptor) -> LoadedUnit:
        """
        Load one pipeline.

        Args:
            descriptor: Scanner output for the source file

        Returns:
            LoadedUnit (not yet validated)

        Raises:
            PipelineLoadError: ReadFailure | CompileFailure | MultipleUnitsFailure
        """
        path = descriptor.source_path
        identifier = descriptor.identifier

        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PipelineLoadError(LoadErrorKind.READ_FAILURE, f"{path}: {e}")

        try:
            code = compile(source, str(path), "exec")
        except (SyntaxError, ValueError) as e:
            raise PipelineLoadError(LoadErrorKind.COMPILE_FAILURE, f"{path}: {e}")

        module_name = self.module_name(identifier)
        module = self._exec_module(module_name, path, code)
        unit = self._select_unit(module, identifier)

        logger.debug(f"Loaded pipeline '{identifier}' as {module_name} (unit: {type(unit).__name__})")
        return LoadedUnit(identifier=identifier, unit=unit, module_name=module_name)

    def unload(self, identifier: str) -> None:
        """Drop the sys.modules binding for identifier (no-op if absent)."""
        sys.modules.pop(self.module_name(identifier), None)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _exec_module(self, module_name: str, path, code) -> ModuleType:
        spec = importlib.util.spec_from_loader(module_name, loader=None, origin=str(path))
        module = importlib.util.module_from_spec(spec)
        module.__file__ = str(path)

        # bound before exec so dataclasses / pydantic can resolve the module
        previous = sys.modules.get(module_name)
        sys.modules[module_name] = module
        try:
            exec(code, module.__dict__)
        except (Exception, SystemExit) as e:
            if previous is not None:
                sys.modules[module_name] = previous
            else:
                sys.modules.pop(module_name, None)
            raise PipelineLoadError(
                LoadErrorKind.COMPILE_FAILURE,
                f"{path}: {type(e).__name__}: {e}",
            )
        return module

    def _candidate_classes(self, module: ModuleType) -> List[type]:
        candidates = []
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module.__name__:
                continue
            if callable(getattr(obj, REQUIRED_ENTRY_POINT, None)):
                candidates.append(obj)
        return candidates

    def _select_unit(self, module: ModuleType, identifier: str) -> Any:
        candidates = self._candidate_classes(module)
        preferred = [c for c in candidates if c.__name__ == PREFERRED_UNIT_CLASS]

        if preferred:
            cls = preferred[0]
        elif len(candidates) == 1:
            cls = candidates[0]
        elif not candidates:
            return module
        else:
            names = ", ".join(sorted(c.__name__ for c in candidates))
            raise PipelineLoadError(
                LoadErrorKind.MULTIPLE_UNITS_FAILURE,
                f"'{identifier}' defines several pipeline classes: {names}",
            )

        try:
            return cls()
        except (Exception, SystemExit) as e:
            raise PipelineLoadError(
                LoadErrorKind.COMPILE_FAILURE,
                f"'{identifier}': instantiating {cls.__name__} failed: {type(e).__name__}: {e}",
            )
