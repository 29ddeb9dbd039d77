from pipelines_host.pipeline.scanner import SourceScanner, extract_metadata


def test_empty_directory_yields_empty_mapping(pipelines_dir):
    assert SourceScanner().scan(pipelines_dir) == {}


def test_missing_directory_yields_empty_mapping(tmp_path):
    assert SourceScanner().scan(tmp_path / "nope") == {}


def test_defaults_when_no_metadata(pipelines_dir, write_pipeline):
    write_pipeline("plain", "def pipe(body):\n    return body\n")
    descriptors = SourceScanner().scan(pipelines_dir)
    d = descriptors["plain"]
    assert d.name == "plain"
    assert d.description == ""
    assert d.declared_type == "pipe"
    assert d.source_path == (pipelines_dir / "plain.py").resolve()


def test_assignment_metadata_forms(pipelines_dir, write_pipeline):
    write_pipeline("a", 'name = "Module Level"\ndescription = \'single quoted\'\ndef pipe(b):\n    return b\n')
    write_pipeline("b", '''
        class Pipeline:
            def __init__(self):
                self.name = "From Init"
                self.type = "filter"
            def pipe(self, body):
                return body
    ''')
    write_pipeline("c", 'name: str = "Annotated"\ndef pipe(b):\n    return b\n')
    descriptors = SourceScanner().scan(pipelines_dir)
    assert descriptors["a"].name == "Module Level"
    assert descriptors["a"].description == "single quoted"
    assert descriptors["b"].name == "From Init"
    assert descriptors["b"].declared_type == "filter"
    assert descriptors["c"].name == "Annotated"


def test_docstring_front_matter():
    source = '"""\ntitle: Fancy Pipe\ndescription: Does things\ntype: manifold\n"""\n\ndef pipe(b):\n    return b\n'
    assert extract_metadata(source) == {
        "name": "Fancy Pipe",
        "description": "Does things",
        "type": "manifold",
    }


def test_front_matter_outside_docstring_is_ignored():
    source = 'def pipe(b):\n    """not at module start\n    title: nope\n    """\n    return b\n'
    assert extract_metadata(source)["name"] is None


def test_skips_non_sources_dunders_and_undecodable(pipelines_dir, write_pipeline):
    write_pipeline("good", "def pipe(b):\n    return b\n")
    write_pipeline("__init__", "")
    (pipelines_dir / "notes.txt").write_text("name = 'x'")
    (pipelines_dir / "binary.py").write_bytes(b"\xff\xfe\x00bad")
    (pipelines_dir / "good").mkdir()  # valves directory, not a source
    descriptors = SourceScanner().scan(pipelines_dir)
    assert list(descriptors) == ["good"]


def test_rescan_returns_fresh_mapping(pipelines_dir, write_pipeline):
    scanner = SourceScanner()
    path = write_pipeline("one", "def pipe(b):\n    return b\n")
    first = scanner.scan(pipelines_dir)
    path.unlink()
    write_pipeline("two", "def pipe(b):\n    return b\n")
    second = scanner.scan(pipelines_dir)
    assert list(first) == ["one"]
    assert list(second) == ["two"]
