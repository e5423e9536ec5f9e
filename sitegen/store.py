"""
File-backed project versions and the per-project edit lock.

production-ready/<project>/
    builds/v1.json, v2.json ...   immutable file snapshots
    preview.html                  preview of the latest version
    current/                      latest tree on disk, runnable with `npm run dev`
"""
import json, logging, os, re, shutil, time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from . import config
from .errors import ProjectBusyError

log = logging.getLogger("store")


def sanitize_project_id(name: str) -> str:
    slug = re.sub(r"[^a-z0-9_-]+", "-", (name or "").strip().lower()).strip("-_")
    return slug[:40] or "site"


def _size(content: str) -> str:
    return f"{len(content)/1024:.1f}KB" if len(content) >= 1024 else f"{len(content)}B"


@dataclass
class BuildRecord:
    project: str
    version: int
    files: dict = field(default_factory=dict)
    prompt: str = ""
    summary: str = ""
    language_mode: str = ""
    created: float = 0.0

    def to_dict(self) -> dict:
        return {
            "project":      self.project,
            "version":      self.version,
            "files":        dict(self.files),
            "prompt":       self.prompt,
            "summary":      self.summary,
            "languageMode": self.language_mode,
            "created":      self.created,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BuildRecord":
        return cls(
            project=data["project"],
            version=int(data["version"]),
            files=dict(data.get("files") or {}),
            prompt=data.get("prompt", ""),
            summary=data.get("summary", ""),
            language_mode=data.get("languageMode", ""),
            created=float(data.get("created", 0.0)),
        )


class ProjectStore:
    def __init__(self, root: Path = None):
        self.root = Path(root or config.PROD_DIR)
        self.root.mkdir(parents=True, exist_ok=True)

    def project_dir(self, project: str) -> Path:
        return self.root / sanitize_project_id(project)

    def _builds(self, project: str) -> Path:
        return self.project_dir(project) / "builds"

    def versions(self, project: str) -> list:
        d = self._builds(project)
        if not d.exists():
            return []
        found = []
        for fp in d.glob("v*.json"):
            m = re.fullmatch(r"v(\d+)\.json", fp.name)
            if m:
                found.append(int(m.group(1)))
        return sorted(found)

    def exists(self, project: str) -> bool:
        return bool(self.versions(project))

    def get(self, project: str, version: int):
        fp = self._builds(project) / f"v{int(version)}.json"
        if not fp.exists():
            return None
        return BuildRecord.from_dict(json.loads(fp.read_text(encoding="utf-8")))

    def latest(self, project: str):
        versions = self.versions(project)
        return self.get(project, versions[-1]) if versions else None

    def save(self, project: str, files: dict, prompt: str = "", summary: str = "",
             language_mode: str = "", preview_html: str = None) -> BuildRecord:
        project = sanitize_project_id(project)
        versions = self.versions(project)
        record = BuildRecord(
            project=project,
            version=(versions[-1] if versions else 0) + 1,
            files=dict(files),
            prompt=prompt,
            summary=summary,
            language_mode=str(getattr(language_mode, "value", language_mode) or ""),
            created=time.time(),
        )
        d = self._builds(project)
        d.mkdir(parents=True, exist_ok=True)
        target = d / f"v{record.version}.json"
        tmp = target.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(record.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, target)
        if preview_html is not None:
            (self.project_dir(project) / "preview.html").write_text(preview_html, encoding="utf-8")
        log.info(f"💾 {project} v{record.version} ({len(record.files)} files)")
        return record

    def preview(self, project: str):
        fp = self.project_dir(project) / "preview.html"
        return fp.read_text(encoding="utf-8") if fp.exists() else None

    def export_tree(self, project: str, version: int = None) -> Path:
        record = self.latest(project) if version is None else self.get(project, version)
        if record is None:
            raise KeyError(f"no build for project '{project}'")
        out = self.project_dir(project) / "current"
        if out.exists():
            shutil.rmtree(out)
        for rel, content in record.files.items():
            fp = out / rel
            fp.parent.mkdir(parents=True, exist_ok=True)
            fp.write_text(content, encoding="utf-8")
        log.info(f"📁 exported {project} v{record.version} → {out}")
        return out

    def projects(self) -> list:
        """All projects with metadata, most recently changed first."""
        out = []
        for d in sorted((p for p in self.root.iterdir() if p.is_dir()),
                        key=lambda p: p.stat().st_mtime, reverse=True):
            record = self.latest(d.name)
            if record is None:
                continue
            title = d.name
            pkg = record.files.get("package.json")
            if pkg:
                try:
                    title = json.loads(pkg).get("name", d.name)
                except json.JSONDecodeError:
                    pass
            out.append({
                "name":         d.name,
                "title":        title,
                "version":      record.version,
                "languageMode": record.language_mode,
                "mtime":        int(record.created),
                "file_count":   len(record.files),
            })
        return out

    def file_listing(self, project: str, version: int = None) -> dict:
        record = self.latest(project) if version is None else self.get(project, version)
        if record is None:
            return {}
        return {rel: {"content": c, "size": _size(c)} for rel, c in record.files.items()}


class ProjectLock:
    """Advisory lock, one file per project. Stale locks (crashed holder) are reclaimed."""

    def __init__(self, root: Path = None, stale_after: float = None):
        self.root = Path(root or config.PROD_DIR) / ".locks"
        self.root.mkdir(parents=True, exist_ok=True)
        self.stale_after = config.LOCK_STALE_AFTER if stale_after is None else stale_after

    def _path(self, project: str) -> Path:
        return self.root / f"{sanitize_project_id(project)}.lock"

    def acquire(self, project: str):
        path = self._path(project)
        for attempt in range(2):
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if attempt == 0 and self._is_stale(path):
                    log.warning(f"🔓 reclaiming stale lock for {project}")
                    path.unlink(missing_ok=True)
                    continue
                raise ProjectBusyError(project)
            with os.fdopen(fd, "w") as f:
                f.write(f"{os.getpid()} {time.time()}\n")
            return
        raise ProjectBusyError(project)

    def _is_stale(self, path: Path) -> bool:
        try:
            return time.time() - path.stat().st_mtime > self.stale_after
        except FileNotFoundError:
            return True

    def release(self, project: str):
        self._path(project).unlink(missing_ok=True)

    def is_locked(self, project: str) -> bool:
        path = self._path(project)
        return path.exists() and not self._is_stale(path)

    @contextmanager
    def held(self, project: str):
        self.acquire(project)
        try:
            yield
        finally:
            self.release(project)
