"""
================================================================================
FILE: pipelines_host/api/sources.py
================================================================================

PURPOSE:
    Get a pipeline source file into the pipelines directory, either from
    a URL (httpx) or from a multipart upload, before the lifecycle
    manager registers and loads it.

KEY FACTS:
    - File name (and so the identifier) comes from the URL path or the
      upload's filename; it must be a valid identifier ending in .py
    - Size is enforced while streaming, not after
    - Files are written atomically (temp file + rename)
    - GitHub "blob" page URLs are rewritten to their raw equivalent
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx
from fastapi import UploadFile

from pipelines_host.config.constants import PIPELINE_SOURCE_EXTENSION, UPLOAD_CHUNK_READ_SIZE
from pipelines_host.core.exceptions import (
    InvalidRequestError,
    PipelineDownloadError,
    PipelineIOError,
)
from pipelines_host.utils import atomic_write_bytes, identifier_from_filename, is_valid_identifier

logger = logging.getLogger(__name__)

_GITHUB_BLOB_RE = re.compile(r"^https?://github\.com/([^/]+)/([^/]+)/blob/(.+)$")


def to_raw_url(url: str) -> str:
    """github.com/<owner>/<repo>/blob/<ref>/<path> → raw.githubusercontent.com/..."""
    match = _GITHUB_BLOB_RE.match(url)
    if match:
        owner, repo, rest = match.groups()
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{rest}"
    return url


def validate_source_filename(filename: Optional[str]) -> str:
    """
    Check an incoming pipeline file name.

    Raises:
        InvalidRequestError: wrong extension or unusable identifier
    """
    name = Path(filename or "").name
    if not name.endswith(PIPELINE_SOURCE_EXTENSION):
        raise InvalidRequestError(
            f"Pipeline sources must be {PIPELINE_SOURCE_EXTENSION} files, got '{name or filename}'"
        )
    if not is_valid_identifier(identifier_from_filename(name)):
        raise InvalidRequestError(f"'{name}' is not a valid pipeline file name")
    return name


def filename_from_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRequestError(f"Unsupported URL: '{url}'")
    return validate_source_filename(unquote(parsed.path.rsplit("/", 1)[-1]))


async def _write_source(target: Path, data: bytes) -> Path:
    try:
        await asyncio.to_thread(atomic_write_bytes, target, data)
    except OSError as e:
        raise PipelineIOError(f"Failed to write {target}: {e}")
    return target


async def download_pipeline_source(
    url: str,
    pipelines_dir: Path,
    client: httpx.AsyncClient,
    max_bytes: int,
) -> Path:
    """
    Fetch url into pipelines_dir.

    Returns:
        Path of the written source file

    Raises:
        InvalidRequestError: bad URL / file name, or body over max_bytes
        PipelineDownloadError: network failure or non-2xx response
        PipelineIOError: write failed
    """
    filename = filename_from_url(url)
    raw_url = to_raw_url(url)
    logger.info(f"Downloading pipeline source {raw_url}")

    chunks = []
    received = 0
    try:
        async with client.stream("GET", raw_url) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_bytes:
                    raise InvalidRequestError(
                        f"Pipeline source exceeds the {max_bytes} byte limit"
                    )
                chunks.append(chunk)
    except httpx.TimeoutException as e:
        raise PipelineDownloadError(f"Timed out fetching {raw_url}: {e}")
    except httpx.HTTPStatusError as e:
        raise PipelineDownloadError(
            f"Fetching {raw_url} returned HTTP {e.response.status_code}"
        )
    except httpx.HTTPError as e:
        raise PipelineDownloadError(f"Failed to fetch {raw_url}: {type(e).__name__}: {e}")

    target = await _write_source(Path(pipelines_dir) / filename, b"".join(chunks))
    logger.info(f"✓ Downloaded {filename} ({received} bytes)")
    return target


async def save_uploaded_source(upload: UploadFile, pipelines_dir: Path, max_bytes: int) -> Path:
    """
    Stream an uploaded .py file into pipelines_dir.

    Raises:
        InvalidRequestError: bad file name or body over max_bytes
        PipelineIOError: write failed
    """
    filename = validate_source_filename(upload.filename)

    chunks = []
    received = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_READ_SIZE)
        if not chunk:
            break
        received += len(chunk)
        if received > max_bytes:
            raise InvalidRequestError(f"Uploaded file exceeds the {max_bytes} byte limit")
        chunks.append(chunk)

    if received == 0:
        raise InvalidRequestError(f"Uploaded file '{filename}' is empty")

    target = await _write_source(Path(pipelines_dir) / filename, b"".join(chunks))
    logger.info(f"✓ Saved upload {filename} ({received} bytes)")
    return target
