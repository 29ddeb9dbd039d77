import pytest
from pydantic import BaseModel

from pipelines_host.pipeline.valve_store import ValveStore, valves_to_dict


class _Valves(BaseModel):
    a: int = 1


def test_save_load_delete(pipelines_dir):
    store = ValveStore(pipelines_dir)
    assert store.load("p") is None
    store.save("p", {"a": 2})
    assert store.path_for("p") == pipelines_dir / "p" / "valves.json"
    assert store.load("p") == {"a": 2}
    store.delete("p")
    store.delete("p")
    assert not (pipelines_dir / "p").exists()


def test_corrupt_file_is_ignored(pipelines_dir):
    store = ValveStore(pipelines_dir)
    path = store.path_for("p")
    path.parent.mkdir()
    path.write_text("{not json")
    assert store.load("p") is None
    path.write_text("[1, 2]")
    assert store.load("p") is None


def test_valves_to_dict():
    assert valves_to_dict(None) == {}
    assert valves_to_dict(_Valves()) == {"a": 1}
    assert valves_to_dict({"b": 2}) == {"b": 2}
    with pytest.raises(TypeError):
        valves_to_dict([1])
