import json
import sys

import pytest

from pipelines_host.core.exceptions import (
    ExecutionPhase,
    InvalidRequestError,
    LoadErrorKind,
    PipelineExecutionError,
    PipelineIOError,
    PipelineLoadError,
    PipelineNotFoundError,
    PipelineNotLoadedError,
    PipelineValidationError,
    UnsupportedOperationError,
    ValidationErrorKind,
)
from pipelines_host.pipeline.schemas import PipelineState

VALVED = '''
    from pydantic import BaseModel


    class Pipeline:
        class Valves(BaseModel):
            greeting: str = "hello"
            repeat: int = 1

        def __init__(self):
            self.valves = self.Valves()

        def update_valves(self, values):
            self.valves = self.Valves(**{**self.valves.model_dump(), **values})

        def pipe(self, body, user=None):
            return self.valves.greeting * self.valves.repeat

        def inlet(self, body, user=None):
            return {**body, "seen_by_inlet": True}

        def outlet(self, body, user=None):
            return {"wrapped": body}
'''


@pytest.mark.asyncio
async def test_initialize_discovers_without_loading(lifecycle, write_pipeline):
    write_pipeline("one", "def pipe(b):\n    return b\n")
    assert await lifecycle.initialize() == 1
    entry = lifecycle.registry.get("one")
    assert entry.state == PipelineState.DISCOVERED
    assert entry.loaded is None


@pytest.mark.asyncio
async def test_initialize_with_preload(lifecycle, write_pipeline):
    write_pipeline("good", "def pipe(b):\n    return b\n")
    write_pipeline("bad", "def nothing():\n    pass\n")
    await lifecycle.initialize(preload=True)
    assert lifecycle.registry.get("good").state == PipelineState.LOADED
    assert lifecycle.registry.get("bad").state == PipelineState.FAILED


@pytest.mark.asyncio
async def test_load_unknown_identifier(lifecycle):
    await lifecycle.initialize()
    with pytest.raises(PipelineNotFoundError):
        await lifecycle.load_pipeline("ghost")


@pytest.mark.asyncio
async def test_missing_pipe_is_rejected_every_time(lifecycle, write_pipeline):
    write_pipeline("nopipe", "def inlet(body):\n    return body\n")
    await lifecycle.initialize()
    for _ in range(2):
        with pytest.raises(PipelineValidationError) as exc:
            await lifecycle.load_pipeline("nopipe")
        assert exc.value.kind == ValidationErrorKind.MISSING_REQUIRED_ENTRY_POINT
        entry = lifecycle.registry.get("nopipe")
        assert entry.loaded is None
        assert entry.state == PipelineState.FAILED
        assert "MissingRequiredEntryPoint" in entry.error


@pytest.mark.asyncio
async def test_failed_pipeline_can_be_fixed_and_reloaded(lifecycle, write_pipeline):
    write_pipeline("fixme", "def pipe(body:\n")
    await lifecycle.initialize()
    with pytest.raises(PipelineLoadError) as exc:
        await lifecycle.load_pipeline("fixme")
    assert exc.value.kind == LoadErrorKind.COMPILE_FAILURE

    write_pipeline("fixme", "def pipe(body):\n    return 'fixed'\n")
    entry = await lifecycle.reload_pipeline("fixme")
    assert entry.state == PipelineState.LOADED


@pytest.mark.asyncio
async def test_reload_switches_behavior(lifecycle, dispatcher, write_pipeline):
    write_pipeline("ver", "def pipe(body):\n    return 'v1'\n")
    await lifecycle.initialize()
    assert (await dispatcher.execute("ver", {})).body == "v1"

    write_pipeline("ver", "def pipe(body):\n    return 'v2'\n")
    assert (await dispatcher.execute("ver", {})).body == "v1"
    await lifecycle.reload_pipeline("ver")
    assert (await dispatcher.execute("ver", {})).body == "v2"


@pytest.mark.asyncio
async def test_reload_failure_drops_old_unit(lifecycle, write_pipeline):
    write_pipeline("flaky", "def pipe(body):\n    return 'ok'\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("flaky")

    write_pipeline("flaky", "raise RuntimeError('broken')\n")
    with pytest.raises(PipelineLoadError):
        await lifecycle.reload_pipeline("flaky")
    assert lifecycle.registry.get("flaky").state == PipelineState.FAILED


@pytest.mark.asyncio
async def test_reload_of_removed_file(lifecycle, write_pipeline):
    path = write_pipeline("temp", "def pipe(body):\n    return body\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("temp")
    path.unlink()
    with pytest.raises(PipelineNotFoundError):
        await lifecycle.reload_pipeline("temp")
    assert lifecycle.registry.get("temp") is None
    assert lifecycle.loader.module_name("temp") not in sys.modules


@pytest.mark.asyncio
async def test_reload_all(lifecycle, write_pipeline):
    write_pipeline("kept", "def pipe(body):\n    return 'kept'\n")
    gone = write_pipeline("gone", "def pipe(body):\n    return 'gone'\n")
    write_pipeline("idle", "def pipe(body):\n    return 'idle'\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("kept")
    await lifecycle.load_pipeline("gone")

    gone.unlink()
    write_pipeline("fresh", "def pipe(body):\n    return 'fresh'\n")
    summary = await lifecycle.reload_all()

    assert summary["reloaded"] == ["kept"]
    assert summary["removed"] == ["gone"]
    assert "fresh" in summary["discovered"]
    assert summary["failed"] == {}
    assert lifecycle.registry.get("idle").state == PipelineState.DISCOVERED
    assert lifecycle.registry.get("kept").state == PipelineState.LOADED


@pytest.mark.asyncio
async def test_delete_removes_everything(lifecycle, dispatcher, write_pipeline, pipelines_dir):
    path = write_pipeline("doomed", VALVED)
    await lifecycle.initialize()
    await lifecycle.load_pipeline("doomed")
    await lifecycle.update_valves("doomed", {"repeat": 2})
    assert (pipelines_dir / "doomed" / "valves.json").exists()

    await lifecycle.delete_pipeline("doomed")

    assert not path.exists()
    assert not (pipelines_dir / "doomed").exists()
    assert lifecycle.registry.get("doomed") is None
    assert all(row["id"] != "doomed" for row in lifecycle.registry.list_all())
    with pytest.raises(PipelineNotFoundError):
        await dispatcher.execute("doomed", {})
    with pytest.raises(PipelineNotFoundError):
        await lifecycle.delete_pipeline("doomed")


@pytest.mark.asyncio
async def test_delete_keeps_entry_when_source_cannot_be_removed(
    lifecycle, dispatcher, write_pipeline, monkeypatch
):
    path = write_pipeline("stuck", "def pipe(body):\n    return 'still here'\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("stuck")

    def _deny(self, missing_ok=False):
        raise PermissionError(f"read-only: {self}")

    monkeypatch.setattr(type(path), "unlink", _deny)
    with pytest.raises(PipelineIOError):
        await lifecycle.delete_pipeline("stuck")
    monkeypatch.undo()

    assert path.exists()
    assert lifecycle.registry.get("stuck").loaded is not None
    assert lifecycle.loader.module_name("stuck") in sys.modules
    result = await dispatcher.execute("stuck", {})
    assert result.body == "still here"


@pytest.mark.asyncio
async def test_unknown_identifiers_leave_no_locks(lifecycle, dispatcher):
    await lifecycle.initialize()
    for i in range(50):
        with pytest.raises(PipelineNotFoundError):
            await dispatcher.execute(f"nope-{i}", {})
    for call in (
        lifecycle.load_pipeline,
        lifecycle.delete_pipeline,
        lifecycle.reload_pipeline,
    ):
        with pytest.raises(PipelineNotFoundError):
            await call("ghost")
    with pytest.raises(PipelineNotFoundError):
        await lifecycle.update_valves("ghost", {"x": 1})
    assert lifecycle._locks == {}


@pytest.mark.asyncio
async def test_removed_pipelines_release_their_locks(lifecycle, write_pipeline):
    write_pipeline("deleted", "def pipe(b):\n    return b\n")
    vanished = write_pipeline("vanished", "def pipe(b):\n    return b\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("deleted")
    await lifecycle.load_pipeline("vanished")
    assert {"deleted", "vanished"} <= set(lifecycle._locks)

    await lifecycle.delete_pipeline("deleted")
    vanished.unlink()
    summary = await lifecycle.reload_all()

    assert summary["removed"] == ["vanished"]
    assert "deleted" not in lifecycle._locks
    assert "vanished" not in lifecycle._locks


@pytest.mark.asyncio
async def test_deleting_dashed_name_keeps_underscored_twin(lifecycle, dispatcher, write_pipeline):
    write_pipeline("foo_bar", "def pipe(body):\n    return 'underscore'\n")
    write_pipeline("foo-bar", "def pipe(body):\n    return 'dash'\n")
    await lifecycle.initialize()
    assert (await dispatcher.execute("foo_bar", {})).body == "underscore"
    assert (await dispatcher.execute("foo-bar", {})).body == "dash"

    await lifecycle.delete_pipeline("foo-bar")

    assert lifecycle.loader.module_name("foo_bar") in sys.modules
    assert (await dispatcher.execute("foo_bar", {})).body == "underscore"


@pytest.mark.asyncio
async def test_add_pipeline_copies_external_source(lifecycle, write_pipeline, tmp_path, pipelines_dir):
    outside = tmp_path / "incoming"
    outside.mkdir()
    src = write_pipeline("added", 'name = "Added"\ndef pipe(body):\n    return "added"\n', directory=outside)
    await lifecycle.initialize()

    entry = await lifecycle.add_pipeline_from_source(src)

    assert (pipelines_dir / "added.py").exists()
    assert entry.state == PipelineState.LOADED
    assert entry.descriptor.name == "Added"
    assert entry.descriptor.source_path == (pipelines_dir / "added.py").resolve()


@pytest.mark.asyncio
async def test_add_pipeline_rejects_non_python(lifecycle, tmp_path):
    bad = tmp_path / "notes.txt"
    bad.write_text("hi")
    with pytest.raises(InvalidRequestError):
        await lifecycle.add_pipeline_from_source(bad)


@pytest.mark.asyncio
async def test_valves_require_loaded_pipeline(lifecycle, write_pipeline):
    write_pipeline("v", VALVED)
    await lifecycle.initialize()
    with pytest.raises(PipelineNotLoadedError):
        await lifecycle.get_valves("v")
    with pytest.raises(PipelineNotFoundError):
        await lifecycle.get_valves("ghost")


@pytest.mark.asyncio
async def test_valves_read_spec_and_update(lifecycle, dispatcher, write_pipeline, pipelines_dir):
    write_pipeline("v", VALVED)
    await lifecycle.initialize()
    await lifecycle.load_pipeline("v")

    assert await lifecycle.get_valves("v") == {"greeting": "hello", "repeat": 1}
    spec = await lifecycle.get_valves_spec("v")
    assert spec["properties"]["repeat"]["type"] == "integer"

    updated = await lifecycle.update_valves("v", {"repeat": 3})
    assert updated == {"greeting": "hello", "repeat": 3}
    assert await lifecycle.get_valves("v") == updated
    persisted = json.loads((pipelines_dir / "v" / "valves.json").read_text())
    assert persisted == updated

    with pytest.raises(PipelineValidationError) as exc:
        await lifecycle.update_valves("v", {"repeat": "many"})
    assert exc.value.kind == ValidationErrorKind.INVALID_VALVE_VALUES
    assert await lifecycle.get_valves("v") == updated


@pytest.mark.asyncio
async def test_persisted_valves_survive_reload(lifecycle, dispatcher, write_pipeline):
    write_pipeline("v", VALVED)
    await lifecycle.initialize()
    await lifecycle.load_pipeline("v")
    await lifecycle.update_valves("v", {"greeting": "hi", "repeat": 2})

    await lifecycle.reload_pipeline("v")

    assert await lifecycle.get_valves("v") == {"greeting": "hi", "repeat": 2}
    assert (await dispatcher.execute("v", {})).body == {"wrapped": "hihi"}


@pytest.mark.asyncio
async def test_update_valves_unsupported(lifecycle, write_pipeline):
    write_pipeline("plain", "valves = {'a': 1}\ndef pipe(body):\n    return body\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("plain")
    assert await lifecycle.get_valves("plain") == {"a": 1}
    assert await lifecycle.get_valves_spec("plain") == {}
    with pytest.raises(UnsupportedOperationError):
        await lifecycle.update_valves("plain", {"a": 2})


@pytest.mark.asyncio
async def test_filters(lifecycle, write_pipeline):
    write_pipeline("v", VALVED)
    write_pipeline("bare", "def pipe(body):\n    return body\n")
    await lifecycle.initialize()
    await lifecycle.load_pipeline("v")
    await lifecycle.load_pipeline("bare")

    assert await lifecycle.apply_inlet_filter("v", {"x": 1}) == {"x": 1, "seen_by_inlet": True}
    assert await lifecycle.apply_outlet_filter("v", "out") == {"wrapped": "out"}
    assert await lifecycle.apply_inlet_filter("bare", {"x": 1}) == {"x": 1}
    assert await lifecycle.apply_outlet_filter("bare", "out") == "out"


@pytest.mark.asyncio
async def test_filter_failure_is_wrapped(lifecycle, write_pipeline):
    write_pipeline("boom", '''
        def pipe(body):
            return body

        def inlet(body, user=None):
            raise KeyError("missing")
    ''')
    await lifecycle.initialize()
    await lifecycle.load_pipeline("boom")
    with pytest.raises(PipelineExecutionError) as exc:
        await lifecycle.apply_inlet_filter("boom", {})
    assert exc.value.phase == ExecutionPhase.INLET
