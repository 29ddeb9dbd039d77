"""
Valve persistence: <pipelines_dir>/<identifier>/valves.json
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel

from pipelines_host.config.constants import VALVES_FILENAME
from pipelines_host.core.exceptions import PipelineIOError
from pipelines_host.utils import atomic_write_bytes

logger = logging.getLogger(__name__)


def valves_to_dict(valves: Any) -> Dict[str, Any]:
    """Normalize whatever a pipeline reports as its valves into a plain dict."""
    if valves is None:
        return {}
    if isinstance(valves, BaseModel):
        return valves.model_dump(mode="json")
    if isinstance(valves, dict):
        return dict(valves)
    raise TypeError(f"valves must be a dict or pydantic model, got {type(valves).__name__}")


class ValveStore:
    """Reads and writes persisted valve values next to the pipeline sources."""

    def __init__(self, pipelines_dir: Path):
        self.pipelines_dir = Path(pipelines_dir)

    def path_for(self, identifier: str) -> Path:
        return self.pipelines_dir / identifier / VALVES_FILENAME

    def load(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Persisted values, or None if nothing was saved (or the file is unusable)."""
        path = self.path_for(identifier)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable valves file {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring valves file {path}: expected an object")
            return None
        return data

    def save(self, identifier: str, values: Dict[str, Any]) -> Path:
        path = self.path_for(identifier)
        try:
            payload = json.dumps(values, indent=2, default=str).encode("utf-8")
            atomic_write_bytes(path, payload)
        except OSError as e:
            raise PipelineIOError(f"Failed to persist valves for '{identifier}': {e}")
        logger.debug(f"Persisted valves for '{identifier}' to {path}")
        return path

    def delete(self, identifier: str) -> None:
        directory = self.pipelines_dir / identifier
        if not directory.exists():
            return
        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise PipelineIOError(f"Failed to remove valves directory {directory}: {e}")
