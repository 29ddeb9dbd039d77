import shutil
import sys
import textwrap
import uuid
from pathlib import Path

import pytest

from pipelines_host.pipeline.dispatcher import ExecutionDispatcher
from pipelines_host.pipeline.lifecycle import LifecycleManager
from pipelines_host.pipeline.loader import PipelineLoader
from pipelines_host.pipeline.registry import PipelineRegistry

REPO_PIPELINES = Path(__file__).resolve().parent.parent / "pipelines"


@pytest.fixture
def pipelines_dir(tmp_path):
    d = tmp_path / "pipelines"
    d.mkdir()
    return d


@pytest.fixture
def write_pipeline(pipelines_dir):
    """write_pipeline("echo", source) -> path of pipelines_dir/echo.py"""
    def _write(identifier, source, directory=None):
        path = Path(directory or pipelines_dir) / f"{identifier}.py"
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def namespace():
    ns = f"pipelines_host_test_{uuid.uuid4().hex}"
    yield ns
    for name in [m for m in sys.modules if m.startswith(ns + ".")]:
        del sys.modules[name]


@pytest.fixture
def loader(namespace):
    return PipelineLoader(namespace=namespace)


@pytest.fixture
def registry():
    return PipelineRegistry()


@pytest.fixture
def lifecycle(pipelines_dir, registry, loader):
    return LifecycleManager(pipelines_dir, registry, loader=loader)


@pytest.fixture
def dispatcher(lifecycle):
    return ExecutionDispatcher(lifecycle)


@pytest.fixture
def example_pipelines(pipelines_dir):
    """Copy the bundled echo/math/example pipelines into pipelines_dir."""
    for name in ("echo.py", "math.py", "example.py"):
        shutil.copy(REPO_PIPELINES / name, pipelines_dir / name)
    return pipelines_dir
