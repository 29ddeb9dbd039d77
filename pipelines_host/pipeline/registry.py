"""
================================================================================
FILE: pipelines_host/pipeline/registry.py
================================================================================

PURPOSE:
    Single owner of identifier → RegistryEntry. Readers get consistent
    snapshots; writers swap whole snapshots under one lock.

KEY FACTS:
    - Copy-on-write: every mutation builds a new dict and rebinds
      self._entries; a reader holding the old dict keeps a coherent view
    - Writers serialize on a threading.Lock (held for dict copies only,
      never while pipeline code runs)
    - Entries are immutable; put() replaces, never patches
"""

import logging
import threading
from typing import Dict, List, Optional

from pipelines_host.pipeline.schemas import (
    LoadedPipeline,
    PipelineDescriptor,
    RegistryEntry,
)

logger = logging.getLogger(__name__)


class PipelineRegistry:
    """Concurrently readable map of pipeline entries."""

    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}
        self._write_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entries

    def snapshot(self) -> Dict[str, RegistryEntry]:
        """Current immutable view (do not mutate the returned dict)."""
        return self._entries

    def list_all(self) -> List[dict]:
        """Listing rows for every entry, ordered by identifier."""
        entries = self._entries
        return [entries[key].to_dict() for key in sorted(entries)]

    def get(self, identifier: str) -> Optional[RegistryEntry]:
        return self._entries.get(identifier)

    def put(
        self,
        identifier: str,
        descriptor: PipelineDescriptor,
        loaded: Optional[LoadedPipeline] = None,
        error: Optional[str] = None,
    ) -> RegistryEntry:
        """Atomically replace the entry for identifier."""
        entry = RegistryEntry(descriptor=descriptor, loaded=loaded, error=error)
        with self._write_lock:
            entries = dict(self._entries)
            entries[identifier] = entry
            self._entries = entries
        logger.debug(f"Registry put '{identifier}' ({entry.state.value})")
        return entry

    def remove(self, identifier: str) -> bool:
        """Drop identifier. Returns False if it was not present."""
        with self._write_lock:
            if identifier not in self._entries:
                return False
            entries = dict(self._entries)
            del entries[identifier]
            self._entries = entries
        logger.debug(f"Registry removed '{identifier}'")
        return True

    def replace_all(self, entries: Dict[str, RegistryEntry]) -> None:
        """Swap in a complete new mapping (used by full rescans)."""
        with self._write_lock:
            self._entries = dict(entries)
        logger.debug(f"Registry replaced: {len(entries)} entries")
