import asyncio
import time

import pytest

from pipelines_host.core.exceptions import (
    ExecutionPhase,
    PipelineExecutionError,
    PipelineNotFoundError,
    PipelineValidationError,
)
from pipelines_host.pipeline.schemas import PipelineState

SLOW = '''
    import time

    def pipe(body, user=None):
        time.sleep(0.5)
        return "{name}"
'''


@pytest.mark.asyncio
async def test_identity_round_trip(lifecycle, dispatcher, write_pipeline):
    write_pipeline("identity", "def pipe(body, user, model):\n    return body\n")
    await lifecycle.initialize()
    body = {"messages": [{"role": "user", "content": "hi"}], "n": [1, 2, 3]}
    result = await dispatcher.execute("identity", body)
    assert result.body == body
    assert result.warnings == []


@pytest.mark.asyncio
async def test_lazy_load_happens_once(lifecycle, dispatcher, write_pipeline):
    write_pipeline("counted", '''
        LOADS = []
        LOADS.append(1)

        def pipe(body):
            return len(LOADS)
    ''')
    await lifecycle.initialize()
    assert lifecycle.registry.get("counted").state == PipelineState.DISCOVERED
    results = await asyncio.gather(*(dispatcher.execute("counted", {}) for _ in range(5)))
    assert [r.body for r in results] == [1] * 5
    assert lifecycle.registry.get("counted").state == PipelineState.LOADED


@pytest.mark.asyncio
async def test_unknown_model(lifecycle, dispatcher):
    await lifecycle.initialize()
    with pytest.raises(PipelineNotFoundError):
        await dispatcher.execute("nope", {})


@pytest.mark.asyncio
async def test_invalid_pipeline_surfaces_validation_error(lifecycle, dispatcher, write_pipeline):
    write_pipeline("invalid", "x = 1\n")
    await lifecycle.initialize()
    with pytest.raises(PipelineValidationError):
        await dispatcher.execute("invalid", {})


@pytest.mark.asyncio
async def test_arguments_follow_arity(lifecycle, dispatcher, write_pipeline):
    write_pipeline("args", "def pipe(body, user, model):\n    return [body, user, model]\n")
    write_pipeline("one", "def pipe(body):\n    return body\n")
    await lifecycle.initialize()
    assert (await dispatcher.execute("args", "b", {"id": "u"})).body == ["b", {"id": "u"}, "args"]
    assert (await dispatcher.execute("one", "b", {"id": "u"})).body == "b"


@pytest.mark.asyncio
async def test_async_pipe(lifecycle, dispatcher, write_pipeline):
    write_pipeline("aio", '''
        import asyncio

        async def pipe(body, user=None):
            await asyncio.sleep(0)
            return "async ok"
    ''')
    await lifecycle.initialize()
    assert (await dispatcher.execute("aio", {})).body == "async ok"


@pytest.mark.asyncio
async def test_inlet_failure_skips_pipe(lifecycle, dispatcher, write_pipeline, tmp_path):
    marker = tmp_path / "pipe-ran"
    write_pipeline("guarded", f'''
        from pathlib import Path

        def inlet(body, user=None):
            raise ValueError("rejected")

        def pipe(body, user=None):
            Path({str(marker)!r}).write_text("ran")
            return body
    ''')
    await lifecycle.initialize()
    with pytest.raises(PipelineExecutionError) as exc:
        await dispatcher.execute("guarded", {})
    assert exc.value.phase == ExecutionPhase.INLET
    assert not marker.exists()


@pytest.mark.asyncio
async def test_pipe_failure(lifecycle, dispatcher, write_pipeline):
    write_pipeline("crash", "def pipe(body):\n    return 1 / 0\n")
    await lifecycle.initialize()
    with pytest.raises(PipelineExecutionError) as exc:
        await dispatcher.execute("crash", {})
    assert exc.value.phase == ExecutionPhase.PIPE
    assert "ZeroDivisionError" in exc.value.message


@pytest.mark.asyncio
async def test_sys_exit_in_pipe_is_an_execution_error(lifecycle, dispatcher, write_pipeline):
    write_pipeline("exits", "import sys\n\ndef pipe(body):\n    sys.exit(1)\n")
    await lifecycle.initialize()
    with pytest.raises(PipelineExecutionError) as exc:
        await dispatcher.execute("exits", {})
    assert exc.value.phase == ExecutionPhase.PIPE
    assert "SystemExit" in exc.value.message


@pytest.mark.asyncio
async def test_outlet_failure_returns_pipe_result_with_warning(lifecycle, dispatcher, write_pipeline):
    write_pipeline("leaky", '''
        def pipe(body):
            return "from pipe"

        def outlet(body, user=None):
            raise RuntimeError("outlet broke")
    ''')
    await lifecycle.initialize()
    result = await dispatcher.execute("leaky", {})
    assert result.body == "from pipe"
    assert len(result.warnings) == 1
    assert "outlet" in result.warnings[0]


@pytest.mark.asyncio
async def test_slow_pipelines_run_concurrently(lifecycle, dispatcher, write_pipeline):
    write_pipeline("slow_a", SLOW.replace("{name}", "a"))
    write_pipeline("slow_b", SLOW.replace("{name}", "b"))
    await lifecycle.initialize()
    await lifecycle.load_pipeline("slow_a")
    await lifecycle.load_pipeline("slow_b")

    start = time.monotonic()
    a, b = await asyncio.gather(
        dispatcher.execute("slow_a", {}),
        dispatcher.execute("slow_b", {}),
    )
    elapsed = time.monotonic() - start

    assert (a.body, b.body) == ("a", "b")
    assert elapsed < 0.9


@pytest.mark.asyncio
async def test_in_flight_call_keeps_old_unit_during_reload(lifecycle, dispatcher, write_pipeline):
    write_pipeline("swap", SLOW.replace("{name}", "old"))
    await lifecycle.initialize()
    await lifecycle.load_pipeline("swap")

    in_flight = asyncio.create_task(dispatcher.execute("swap", {}))
    await asyncio.sleep(0.1)
    write_pipeline("swap", "def pipe(body):\n    return 'new'\n")
    await lifecycle.reload_pipeline("swap")

    assert (await dispatcher.execute("swap", {})).body == "new"
    assert (await in_flight).body == "old"


@pytest.mark.asyncio
async def test_example_pipelines(lifecycle, dispatcher, example_pipelines):
    await lifecycle.initialize()

    echo = await dispatcher.execute("echo", {"messages": [{"role": "user", "content": "hi"}]}, {"id": "u1"})
    assert echo.body["echo"] == {"messages": [{"role": "user", "content": "hi"}]}
    assert echo.body["user"] == {"id": "u1"}

    ok = await dispatcher.execute("math", {"operation": "multiply", "a": 6, "b": 7})
    assert ok.body["status"] == "success"
    assert ok.body["result"] == 42

    div = await dispatcher.execute("math", {"operation": "divide", "a": 1, "b": 0})
    assert div.body["status"] == "error"
    assert "Division by zero" in div.body["error"]

    example = await dispatcher.execute("example", {"messages": [{"role": "user", "content": "shout"}]})
    assert example.body["processed_message"] == "SHOUT"
    assert example.body["completed"] is True
