# tests/test_workspace.py
"""Tests for the in-memory workspace and the file tools handed to agents."""
import pytest

from sitegen.errors import InvalidRequestError, PatchError
from sitegen.workspace import Workspace, WorkspaceFile, file_tools, normalize_path


def test_hydrate_flat_map_normalizes_paths():
    ws = Workspace.hydrate({"./src/App.jsx": "app", "/index.html": "<html>"})

    assert ws.read("src/App.jsx") == "app"
    assert ws.read("index.html") == "<html>"
    assert "src/App.jsx" in ws
    assert len(ws) == 2


def test_hydrate_records_skips_folders_in_file_map():
    ws = Workspace.hydrate([
        {"path": "src", "type": "folder"},
        {"path": "src/main.jsx", "content": "main", "type": "file"},
    ])

    assert ws.to_file_map() == {"src/main.jsx": "main"}
    assert ws.read("src") is None
    assert [f["path"] for f in ws.snapshot()] == ["src", "src/main.jsx"]


def test_hydrate_copies_existing_workspace():
    original = Workspace([WorkspaceFile("a.txt", "one")])
    copy = Workspace.hydrate(original)
    copy.write("a.txt", "two")

    assert original.read("a.txt") == "one"
    assert copy.read("a.txt") == "two"


@pytest.mark.parametrize("bad", [42, "src/App.jsx", [{"content": "x"}], [{"path": "a", "type": "link"}],
                                 {"a.txt": 3}])
def test_hydrate_rejects_unsupported_shapes(bad):
    with pytest.raises(InvalidRequestError):
        Workspace.hydrate(bad)


def test_write_overwrites_and_list_filters_by_prefix():
    ws = Workspace()
    ws.write("src/components/Hero.jsx", "v1")
    ws.write("src/components/Hero.jsx", "v2")
    ws.write("package.json", "{}")

    assert ws.read("src/components/Hero.jsx") == "v2"
    assert ws.list("src/components") == ["src/components/Hero.jsx"]
    assert ws.list() == ["src/components/Hero.jsx", "package.json"]


def test_patch_applies_unified_diff():
    ws = Workspace.hydrate({"a.txt": "one\ntwo\nthree\n"})
    ws.patch("a.txt", "@@ -2,1 +2,1 @@\n-two\n+TWO")

    assert ws.read("a.txt") == "one\nTWO\nthree\n"


def test_patch_missing_file_patches_empty_content():
    ws = Workspace()
    ws.patch("new.txt", "@@ -0,0 +1,2 @@\n+hello\n+world")

    assert ws.read("new.txt") == "hello\nworld\n"


def test_patch_mismatch_raises_and_leaves_file_untouched():
    ws = Workspace.hydrate({"a.txt": "one\ntwo\n"})

    with pytest.raises(PatchError):
        ws.patch("a.txt", "@@ -1,1 +1,1 @@\n-zero\n+ZERO")
    assert ws.read("a.txt") == "one\ntwo\n"


def test_file_tools_report_writes():
    ws = Workspace()
    seen = []
    tools = file_tools(ws, on_write=lambda path, content: seen.append((path, content)))

    tools.write_file("src/index.css", "body {}")
    tools.apply_patch("src/index.css", "@@ -1,1 +1,1 @@\n-body {}\n+html {}")

    assert tools.read_file("src/index.css") == "html {}"
    assert tools.list_files() == ["src/index.css"]
    assert seen == [("src/index.css", "body {}"), ("src/index.css", "html {}")]


def test_normalize_path():
    assert normalize_path("./././src\\App.jsx") == "src/App.jsx"
    assert normalize_path("/src/App.jsx") == "src/App.jsx"
