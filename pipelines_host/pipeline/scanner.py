"""
================================================================================
FILE: pipelines_host/pipeline/scanner.py
================================================================================

PURPOSE:
    Enumerate pipeline source files in a directory and extract lightweight
    metadata (name, description, declared type) from the raw text, without
    importing or executing anything.

WORKFLOW:
    1. List the directory, keep regular *.py files (skip dunder/hidden files)
    2. identifier = file name without extension
    3. Regex search for metadata:
       - assignments:  name = "..."  /  self.name = "..."  /  name: str = "..."
       - module docstring front-matter:  title: ...  /  description: ...
    4. Fall back to defaults (identifier / "" / "pipe")
    5. Return a NEW mapping (rescans replace, never merge)

KEY FACTS:
    - One unreadable file is logged and skipped; the scan continues
    - A missing directory yields an empty mapping (logged as a warning)
    - Metadata extraction is pattern-based only; syntax errors in a file
      surface later, at load time
"""

# ================================================================================
# IMPORTS
# ================================================================================

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Union

from pipelines_host.config.constants import (
    DEFAULT_PIPELINE_TYPE,
    PIPELINE_SOURCE_EXTENSION,
)
from pipelines_host.pipeline.schemas import PipelineDescriptor
from pipelines_host.utils import identifier_from_filename, is_valid_identifier

logger = logging.getLogger(__name__)

# ================================================================================
# METADATA PATTERNS
# ================================================================================

_ASSIGNMENT_TEMPLATE = (
    r"^[ \t]*(?:self\.)?{attr}[ \t]*(?::[ \t]*[\w\[\]\., ]+)?=[ \t]*"
    r"(?P<q>[\"'])(?P<value>[^\"'\n]*)(?P=q)"
)

_FRONT_MATTER_TEMPLATE = r"^[ \t]*{key}[ \t]*:[ \t]*(?P<value>[^\n]+?)[ \t]*$"

_DOCSTRING_RE = re.compile(
    r"\A(?:[ \t]*(?:#[^\n]*)?\n)*[ \t]*[rRuU]?(?P<q>\"\"\"|''')(?P<body>.*?)(?P=q)",
    re.DOTALL,
)

# attribute name -> keys accepted in docstring front-matter
_METADATA_FIELDS = {
    "name": ("title", "name"),
    "description": ("description",),
    "type": ("type",),
}


def _find_assignment(source: str, attr: str) -> Optional[str]:
    pattern = re.compile(_ASSIGNMENT_TEMPLATE.format(attr=re.escape(attr)), re.MULTILINE)
    match = pattern.search(source)
    if match:
        value = match.group("value").strip()
        return value or None
    return None


def _find_front_matter(docstring: Optional[str], keys) -> Optional[str]:
    if not docstring:
        return None
    for key in keys:
        pattern = re.compile(_FRONT_MATTER_TEMPLATE.format(key=re.escape(key)), re.MULTILINE)
        match = pattern.search(docstring)
        if match:
            return match.group("value").strip()
    return None


def extract_metadata(source: str) -> Dict[str, Optional[str]]:
    """
    Pull name/description/type out of raw pipeline source.

    Returns:
        Dict with keys name, description, type (None when not declared)
    """
    doc_match = _DOCSTRING_RE.match(source)
    docstring = doc_match.group("body") if doc_match else None

    metadata: Dict[str, Optional[str]] = {}
    for attr, front_matter_keys in _METADATA_FIELDS.items():
        metadata[attr] = (
            _find_assignment(source, attr)
            or _find_front_matter(docstring, front_matter_keys)
        )
    return metadata


# ================================================================================
# SCANNER
# ================================================================================

class SourceScanner:
    """Directory → {identifier: PipelineDescriptor}."""

    def __init__(self, extension: str = PIPELINE_SOURCE_EXTENSION):
        self.extension = extension

    def _is_candidate(self, path: Path) -> bool:
        name = path.name
        if name.startswith((".", "__")):
            return False
        return path.suffix == self.extension and path.is_file()

    def scan_file(self, path: Union[str, Path]) -> PipelineDescriptor:
        """
        Build the descriptor for a single source file.

        Raises:
            OSError / UnicodeDecodeError: file unreadable
            ValueError: file name is not a usable identifier
        """
        path = Path(path).resolve()
        identifier = identifier_from_filename(path)
        if not is_valid_identifier(identifier):
            raise ValueError(f"'{path.name}' does not yield a valid pipeline identifier")

        source = path.read_text(encoding="utf-8")
        metadata = extract_metadata(source)

        return PipelineDescriptor(
            identifier=identifier,
            source_path=path,
            name=metadata["name"] or identifier,
            description=metadata["description"] or "",
            declared_type=metadata["type"] or DEFAULT_PIPELINE_TYPE,
        )

    def scan(self, directory: Union[str, Path]) -> Dict[str, PipelineDescriptor]:
        """
        Scan directory for pipeline sources.

        Args:
            directory: Pipelines directory

        Returns:
            Fresh mapping identifier → descriptor (partial on per-file errors)
        """
        directory = Path(directory)
        descriptors: Dict[str, PipelineDescriptor] = {}

        if not directory.is_dir():
            logger.warning(f"Pipelines directory not found at {directory}")
            return descriptors

        try:
            candidates = sorted(p for p in directory.iterdir() if self._is_candidate(p))
        except OSError as e:
            logger.error(f"Failed to scan pipelines directory {directory}: {e}")
            return descriptors

        for path in candidates:
            try:
                descriptor = self.scan_file(path)
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Skipping pipeline source {path.name}: {e}")
                continue
            descriptors[descriptor.identifier] = descriptor

        logger.info(f"Scanned {directory}: {len(descriptors)} pipeline(s) discovered")
        return descriptors
