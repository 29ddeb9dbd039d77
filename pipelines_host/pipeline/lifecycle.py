# MERGED: 4 sections with separation comments
#│   │   ├── SECTION 1: Entry point invocation helper
#│   │   ├── SECTION 2: Discovery & loading
#│   │   ├── SECTION 3: Reload / delete / add
#│   │   └── SECTION 4: Valves & filters
"""
================================================================================
FILE: pipelines_host/pipeline/lifecycle.py
================================================================================

PURPOSE:
    Owns every state transition of a pipeline:

        discovered → loaded | failed
        loaded     → loaded (reload) | deleted
        failed     → loaded

    Drives SourceScanner → PipelineLoader → InterfaceValidator →
    PipelineRegistry, and persists valves through the ValveStore.

WORKFLOW (load_pipeline):
    1. Registry lookup (PipelineNotFoundError if unknown)
    2. loader.load + validator.validate in a worker thread
    3. Restore persisted valves on the NEW unit (failures logged)
    4. Atomic publish: registry.put(loaded)
       On failure: registry.put(descriptor + error), re-raise

CONCURRENCY:
    - One asyncio.Lock per identifier serializes load/reload/delete/
      update_valves on that identifier; different identifiers proceed
      in parallel
    - Disk work, compiles and pipeline calls run via asyncio.to_thread,
      outside the registry's writer lock
    - In-flight calls keep the unit they borrowed; a swap only affects
      calls that start after it

KEY FACTS:
    - Failures are typed exceptions (core.exceptions); none is fatal
    - No host-side valve merge: update semantics belong to the pipeline
"""

# ================================================================================
# IMPORTS
# ================================================================================

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pipelines_host.config.constants import PIPELINE_SOURCE_EXTENSION
from pipelines_host.core.exceptions import (
    ExecutionPhase,
    InvalidRequestError,
    PipelineExecutionError,
    PipelineIOError,
    PipelineLoadError,
    PipelineNotFoundError,
    PipelineNotLoadedError,
    PipelineValidationError,
    UnsupportedOperationError,
)
from pipelines_host.pipeline.loader import PipelineLoader
from pipelines_host.pipeline.registry import PipelineRegistry
from pipelines_host.pipeline.scanner import SourceScanner
from pipelines_host.pipeline.schemas import (
    EntryPoint,
    LoadedPipeline,
    PipelineDescriptor,
    RegistryEntry,
)
from pipelines_host.pipeline.validator import InterfaceValidator, check_valve_values
from pipelines_host.pipeline.valve_store import ValveStore, valves_to_dict
from pipelines_host.utils import (
    atomic_write_bytes,
    identifier_from_filename,
    is_valid_identifier,
)

logger = logging.getLogger(__name__)


# ================================================================================
# SECTION 1: ENTRY POINT INVOCATION
# ================================================================================

async def call_entry_point(
    identifier: str,
    phase: ExecutionPhase,
    entry: EntryPoint,
    *args: Any,
) -> Any:
    """
    Run one pipeline-owned callable with error containment.

    Sync callables run in a worker thread; coroutine functions are awaited.

    Raises:
        PipelineExecutionError: anything the pipeline raised
    """
    try:
        if inspect.iscoroutinefunction(entry.func):
            return await entry.call(*args)
        result = await asyncio.to_thread(entry.call, *args)
        if inspect.isawaitable(result):
            result = await result
        return result
    except (Exception, SystemExit) as e:
        logger.error(
            f"Pipeline '{identifier}' raised in {phase.value}: {type(e).__name__}: {e}",
            exc_info=True,
        )
        raise PipelineExecutionError(identifier, phase, f"{type(e).__name__}: {e}")


# ================================================================================
# LIFECYCLE MANAGER
# ================================================================================

class LifecycleManager:
    """Loads, reloads, deletes and configures pipelines."""

    def __init__(
        self,
        pipelines_dir: Union[str, Path],
        registry: PipelineRegistry,
        scanner: Optional[SourceScanner] = None,
        loader: Optional[PipelineLoader] = None,
        validator: Optional[InterfaceValidator] = None,
        valve_store: Optional[ValveStore] = None,
    ):
        self.pipelines_dir = Path(pipelines_dir).resolve()
        self.registry = registry
        self.scanner = scanner or SourceScanner()
        self.loader = loader or PipelineLoader()
        self.validator = validator or InterfaceValidator()
        self.valve_store = valve_store or ValveStore(self.pipelines_dir)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, identifier: str) -> asyncio.Lock:
        lock = self._locks.get(identifier)
        if lock is None:
            lock = self._locks[identifier] = asyncio.Lock()
        return lock

    def _drop_lock(self, identifier: str) -> None:
        # waiters still hold a reference; the map only tracks live identifiers
        self._locks.pop(identifier, None)

    async def _scan(self) -> Dict[str, PipelineDescriptor]:
        return await asyncio.to_thread(self.scanner.scan, self.pipelines_dir)

    # ============================================================================
    # SECTION 2: DISCOVERY & LOADING
    # ============================================================================

    async def initialize(self, preload: bool = False) -> int:
        """
        Scan the pipelines directory and publish discovered entries.

        Args:
            preload: Load every discovered pipeline right away

        Returns:
            Number of discovered pipelines
        """
        descriptors = await self._scan()
        self.registry.replace_all(
            {identifier: RegistryEntry(descriptor=d) for identifier, d in descriptors.items()}
        )
        logger.info(f"Discovered {len(descriptors)} pipeline(s) in {self.pipelines_dir}")

        if preload:
            await self.load_all()
        return len(descriptors)

    async def load_all(self) -> Dict[str, Optional[str]]:
        """Load every registered pipeline. Returns identifier → error (None on success)."""
        results: Dict[str, Optional[str]] = {}
        for identifier in sorted(self.registry.snapshot()):
            try:
                await self.load_pipeline(identifier)
                results[identifier] = None
            except (PipelineLoadError, PipelineValidationError, PipelineNotFoundError) as e:
                results[identifier] = e.message
        loaded = sum(1 for error in results.values() if error is None)
        logger.info(f"Loaded {loaded}/{len(results)} pipeline(s)")
        return results

    async def load_pipeline(self, identifier: str) -> RegistryEntry:
        """
        Load (or re-load from the current descriptor) one pipeline.

        Raises:
            PipelineNotFoundError, PipelineLoadError, PipelineValidationError
        """
        if self.registry.get(identifier) is None:
            raise PipelineNotFoundError(identifier)
        async with self._lock_for(identifier):
            return await self._load_locked(identifier)

    async def ensure_loaded(self, identifier: str) -> LoadedPipeline:
        """Return the loaded unit, loading it once if it is only discovered."""
        entry = self.registry.get(identifier)
        if entry is None:
            raise PipelineNotFoundError(identifier)
        if entry.loaded is not None:
            return entry.loaded

        async with self._lock_for(identifier):
            # another task may have finished the load while we waited
            entry = self.registry.get(identifier)
            if entry is not None and entry.loaded is not None:
                return entry.loaded
            entry = await self._load_locked(identifier)
            return entry.loaded

    async def _load_locked(
        self,
        identifier: str,
        descriptor: Optional[PipelineDescriptor] = None,
    ) -> RegistryEntry:
        if descriptor is None:
            entry = self.registry.get(identifier)
            if entry is None:
                raise PipelineNotFoundError(identifier)
            descriptor = entry.descriptor

        try:
            unit = await asyncio.to_thread(self.loader.load, descriptor)
            capabilities = await asyncio.to_thread(self.validator.validate, unit)
        except (PipelineLoadError, PipelineValidationError) as e:
            self.registry.put(identifier, descriptor, loaded=None, error=e.message)
            logger.warning(f"Pipeline '{identifier}' failed to load: {e.message}")
            raise

        loaded = LoadedPipeline(
            identifier=identifier,
            unit=unit.unit,
            module_name=unit.module_name,
            capabilities=capabilities,
        )
        await self._restore_valves(loaded)

        entry = self.registry.put(identifier, descriptor, loaded=loaded)
        logger.info(f"✓ Pipeline '{identifier}' loaded ({descriptor.source_path.name})")
        return entry

    async def _restore_valves(self, loaded: LoadedPipeline) -> None:
        update = loaded.capabilities.update_valves
        if update is None:
            return
        values = await asyncio.to_thread(self.valve_store.load, loaded.identifier)
        if not values:
            return
        try:
            await call_entry_point(loaded.identifier, ExecutionPhase.VALVES, update, values)
            logger.info(f"Restored persisted valves for '{loaded.identifier}'")
        except PipelineExecutionError as e:
            logger.warning(f"Could not restore valves for '{loaded.identifier}': {e.message}")

    # ============================================================================
    # SECTION 3: RELOAD / DELETE / ADD
    # ============================================================================

    async def reload_pipeline(self, identifier: str) -> RegistryEntry:
        """
        Rescan and reload one pipeline.

        The old unit keeps serving until the new one is published. On
        failure the entry goes to the failed state; if the source file is
        gone the entry is removed and PipelineNotFoundError raised.
        """
        async with self._lock_for(identifier):
            descriptors = await self._scan()
            descriptor = descriptors.get(identifier)
            if descriptor is None:
                self.registry.remove(identifier)
                self.loader.unload(identifier)
                self._drop_lock(identifier)
                raise PipelineNotFoundError(identifier)
            return await self._load_locked(identifier, descriptor)

    async def reload_all(self) -> Dict[str, Any]:
        """
        Rescan the directory, drop vanished entries, register new files
        and reload everything that was loaded before.

        Returns:
            {"reloaded": [...], "failed": {id: message}, "removed": [...], "discovered": [...]}
        """
        descriptors = await self._scan()
        before = self.registry.snapshot()

        removed = sorted(i for i in before if i not in descriptors)
        for identifier in removed:
            async with self._lock_for(identifier):
                self.registry.remove(identifier)
                self.loader.unload(identifier)
            self._drop_lock(identifier)

        discovered = []
        for identifier, descriptor in sorted(descriptors.items()):
            entry = before.get(identifier)
            if entry is None or entry.loaded is None:
                async with self._lock_for(identifier):
                    self.registry.put(identifier, descriptor)
                discovered.append(identifier)

        reloaded, failed = [], {}
        for identifier in sorted(i for i, e in before.items() if e.loaded is not None):
            if identifier not in descriptors:
                continue
            async with self._lock_for(identifier):
                try:
                    await self._load_locked(identifier, descriptors[identifier])
                    reloaded.append(identifier)
                except (PipelineLoadError, PipelineValidationError) as e:
                    failed[identifier] = e.message

        logger.info(
            f"Reloaded pipelines: {len(reloaded)} ok, {len(failed)} failed, "
            f"{len(removed)} removed, {len(discovered)} discovered"
        )
        return {
            "reloaded": reloaded,
            "failed": failed,
            "removed": removed,
            "discovered": discovered,
        }

    async def delete_pipeline(self, identifier: str) -> None:
        """
        Delete the source file, then the registry entry, the module
        binding and the valves directory.

        Raises:
            PipelineNotFoundError: unknown identifier
            PipelineIOError: source file could not be removed (registry untouched)
        """
        if self.registry.get(identifier) is None:
            raise PipelineNotFoundError(identifier)

        async with self._lock_for(identifier):
            entry = self.registry.get(identifier)
            if entry is None:
                raise PipelineNotFoundError(identifier)

            path = entry.descriptor.source_path
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                logger.warning(f"Source for '{identifier}' already gone: {path}")
            except OSError as e:
                raise PipelineIOError(f"Failed to delete {path}: {e}")

            self.registry.remove(identifier)
            self.loader.unload(identifier)
            try:
                await asyncio.to_thread(self.valve_store.delete, identifier)
            except PipelineIOError as e:
                logger.warning(e.message)
            self._drop_lock(identifier)

        logger.info(f"✓ Pipeline '{identifier}' deleted")

    async def add_pipeline_from_source(self, source_path: Union[str, Path]) -> RegistryEntry:
        """
        Register and load a pipeline source file.

        Files outside the pipelines directory are copied in first. An
        existing loaded pipeline with the same identifier keeps serving
        until the new one is published.

        Raises:
            InvalidRequestError, PipelineIOError, PipelineLoadError,
            PipelineValidationError
        """
        source_path = Path(source_path)
        identifier = identifier_from_filename(source_path)

        if source_path.suffix != PIPELINE_SOURCE_EXTENSION:
            raise InvalidRequestError(
                f"Pipeline sources must be {PIPELINE_SOURCE_EXTENSION} files, got '{source_path.name}'"
            )
        if not is_valid_identifier(identifier):
            raise InvalidRequestError(f"'{source_path.name}' is not a valid pipeline file name")

        target = source_path
        if source_path.resolve().parent != self.pipelines_dir:
            target = self.pipelines_dir / source_path.name
            try:
                data = await asyncio.to_thread(source_path.read_bytes)
                await asyncio.to_thread(atomic_write_bytes, target, data)
            except OSError as e:
                raise PipelineIOError(f"Failed to copy {source_path} into {self.pipelines_dir}: {e}")

        try:
            descriptor = await asyncio.to_thread(self.scanner.scan_file, target)
        except (OSError, UnicodeDecodeError) as e:
            raise PipelineIOError(f"Failed to read {target}: {e}")
        except ValueError as e:
            raise InvalidRequestError(str(e))

        async with self._lock_for(identifier):
            if self.registry.get(identifier) is None:
                self.registry.put(identifier, descriptor)
            return await self._load_locked(identifier, descriptor)

    # ============================================================================
    # SECTION 4: VALVES & FILTERS
    # ============================================================================

    def _require_loaded(self, identifier: str) -> LoadedPipeline:
        entry = self.registry.get(identifier)
        if entry is None:
            raise PipelineNotFoundError(identifier)
        if entry.loaded is None:
            raise PipelineNotLoadedError(identifier)
        return entry.loaded

    async def _read_valves(self, loaded: LoadedPipeline) -> Dict[str, Any]:
        capabilities = loaded.capabilities
        if capabilities.valves is not None:
            raw = await call_entry_point(
                loaded.identifier, ExecutionPhase.VALVES, capabilities.valves
            )
        elif capabilities.valves_value is not None:
            # attribute may have been rebound by update_valves
            raw = getattr(loaded.unit, "valves", capabilities.valves_value)
        else:
            return {}
        try:
            return valves_to_dict(raw)
        except TypeError as e:
            raise PipelineExecutionError(loaded.identifier, ExecutionPhase.VALVES, str(e))

    async def _read_valve_spec(self, loaded: LoadedPipeline) -> Dict[str, Any]:
        capabilities = loaded.capabilities
        if capabilities.valves_spec is not None:
            spec = await call_entry_point(
                loaded.identifier, ExecutionPhase.VALVES, capabilities.valves_spec
            )
            if spec is None:
                return {}
            if not isinstance(spec, dict):
                raise PipelineExecutionError(
                    loaded.identifier,
                    ExecutionPhase.VALVES,
                    f"valves_spec must return an object, got {type(spec).__name__}",
                )
            return spec
        return dict(capabilities.valve_spec or {})

    async def get_valves(self, identifier: str) -> Dict[str, Any]:
        """Current valve values ({} when the pipeline has none)."""
        return await self._read_valves(self._require_loaded(identifier))

    async def get_valves_spec(self, identifier: str) -> Dict[str, Any]:
        """Valve schema ({} when the pipeline declares none)."""
        return await self._read_valve_spec(self._require_loaded(identifier))

    async def update_valves(self, identifier: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Type-check values against the valve spec, hand them to the
        pipeline's update_valves and persist what the pipeline reports.

        Raises:
            PipelineNotFoundError, PipelineNotLoadedError,
            UnsupportedOperationError, PipelineValidationError,
            PipelineExecutionError, PipelineIOError
        """
        self._require_loaded(identifier)
        async with self._lock_for(identifier):
            loaded = self._require_loaded(identifier)
            update = loaded.capabilities.update_valves
            if update is None:
                raise UnsupportedOperationError(
                    f"Pipeline '{identifier}' does not support valve updates"
                )

            spec = await self._read_valve_spec(loaded)
            check_valve_values(spec, values)

            result = await call_entry_point(identifier, ExecutionPhase.VALVES, update, values)
            if result is None:
                current = await self._read_valves(loaded)
            else:
                try:
                    current = valves_to_dict(result)
                except TypeError as e:
                    raise PipelineExecutionError(identifier, ExecutionPhase.VALVES, str(e))

            await asyncio.to_thread(self.valve_store.save, identifier, current)

        logger.info(f"Updated valves for '{identifier}': {sorted(values)}")
        return current

    async def apply_inlet_filter(self, identifier: str, body: Any, user: Any = None) -> Any:
        """Run only the inlet stage (body returned unchanged when absent)."""
        loaded = self._require_loaded(identifier)
        inlet = loaded.capabilities.inlet
        if inlet is None:
            return body
        return await call_entry_point(identifier, ExecutionPhase.INLET, inlet, body, user, identifier)

    async def apply_outlet_filter(self, identifier: str, body: Any, user: Any = None) -> Any:
        """Run only the outlet stage (body returned unchanged when absent)."""
        loaded = self._require_loaded(identifier)
        outlet = loaded.capabilities.outlet
        if outlet is None:
            return body
        return await call_entry_point(identifier, ExecutionPhase.OUTLET, outlet, body, user, identifier)
