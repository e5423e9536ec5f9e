"""
In-memory virtual file system shared by every agent of one pipeline run.

A Workspace is single-writer: one generation or edit owns it for its whole
lifetime, and nothing in here locks.
"""
import logging
from dataclasses import dataclass

from .errors import InvalidRequestError
from .patching import apply_patch

log = logging.getLogger("workspace")


@dataclass
class WorkspaceFile:
    path: str
    content: str = ""
    type: str = "file"      # "file" | "folder"

    def to_dict(self) -> dict:
        return {"path": self.path, "content": self.content, "type": self.type}


def normalize_path(path: str) -> str:
    p = str(path).replace("\\", "/").strip()
    while p.startswith("./"):
        p = p[2:]
    return p.lstrip("/")


class Workspace:
    def __init__(self, files=None):
        self.files: list[WorkspaceFile] = []
        self._index: dict[str, WorkspaceFile] = {}
        for f in files or []:
            self._put(f)

    # ── Hydration / serialization ────────────────────────────────────────────

    @classmethod
    def hydrate(cls, data) -> "Workspace":
        """Accept either a flat {path: content} map or a list of {path, content, type} records."""
        if data is None:
            return cls()
        if isinstance(data, Workspace):
            return cls([WorkspaceFile(f.path, f.content, f.type) for f in data.files])
        if isinstance(data, dict):
            ws = cls()
            for path, content in data.items():
                if not isinstance(content, str):
                    raise InvalidRequestError(f"content for '{path}' must be a string")
                ws.write(path, content)
            return ws
        if isinstance(data, list):
            ws = cls()
            for rec in data:
                if not isinstance(rec, dict) or not rec.get("path"):
                    raise InvalidRequestError("file records need at least a 'path'")
                ftype = rec.get("type", "file")
                if ftype not in ("file", "folder"):
                    raise InvalidRequestError(f"unknown file type '{ftype}' for {rec['path']}")
                content = rec.get("content") or ""
                ws._put(WorkspaceFile(normalize_path(rec["path"]),
                                      content if ftype == "file" else "", ftype))
            return ws
        raise InvalidRequestError(f"unsupported file-set shape: {type(data).__name__}")

    def to_file_map(self) -> dict:
        return {f.path: f.content for f in self.files if f.type == "file"}

    def snapshot(self) -> list:
        return [f.to_dict() for f in self.files]

    # ── File tools ────────────────────────────────────────────────────────────

    def list(self, prefix: str = None) -> list:
        prefix = normalize_path(prefix) if prefix else ""
        return [f.path for f in self.files if f.type == "file" and f.path.startswith(prefix)]

    def read(self, path: str):
        f = self._index.get(normalize_path(path))
        if f is None or f.type != "file":
            return None
        return f.content

    def write(self, path: str, content: str):
        path = normalize_path(path)
        f = self._index.get(path)
        if f is None:
            self._put(WorkspaceFile(path, content))
        else:
            f.content = content
            f.type = "file"

    def patch(self, path: str, diff: str):
        """Apply a unified diff to the current content; a missing file patches as ''."""
        current = self.read(path) or ""
        self.write(path, apply_patch(current, diff))

    def exists(self, path: str) -> bool:
        return self.read(path) is not None

    def __contains__(self, path) -> bool:
        return self.exists(path)

    def __len__(self) -> int:
        return len(self.list())

    def _put(self, f: WorkspaceFile):
        f.path = normalize_path(f.path)
        old = self._index.get(f.path)
        if old is not None:
            self.files[self.files.index(old)] = f
        else:
            self.files.append(f)
        self._index[f.path] = f


class FileTools:
    """Narrow capability handed to agents: list/read/write/patch, nothing else."""

    def __init__(self, workspace: Workspace, on_write=None):
        self._ws = workspace
        self._on_write = on_write

    def list_files(self, prefix: str = None) -> list:
        return self._ws.list(prefix)

    def read_file(self, path: str):
        return self._ws.read(path)

    def write_file(self, path: str, content: str):
        self._ws.write(path, content)
        sz = f"{len(content)/1024:.1f}KB" if len(content) >= 1024 else f"{len(content)}B"
        log.info(f"   ✎ {path} ({sz})")
        if self._on_write:
            self._on_write(path, content)

    def apply_patch(self, path: str, diff: str):
        self._ws.patch(path, diff)
        if self._on_write:
            self._on_write(path, self._ws.read(path))


def file_tools(workspace: Workspace, on_write=None) -> FileTools:
    return FileTools(workspace, on_write)
