#!/usr/bin/env python3
"""
Folder-driven generation.

ideas/<name>.txt       -> generate project <name> from the file's text
ideas/<name>.edit.txt  -> apply the file's text as an edit to the latest <name>
"""
import sys, time, logging
from pathlib import Path
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from sitegen import config
from sitegen.errors import SiteGenError
from sitegen.orchestrator import run_edit, run_generation
from sitegen.store import ProjectLock, ProjectStore, sanitize_project_id

for d in [config.IDEAS_DIR, config.PROD_DIR, config.LOGS_DIR]:
    d.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(config.LOGS_DIR / "pipeline.log"),
        logging.StreamHandler(sys.stdout)
    ]
)
log = logging.getLogger("pipeline")

EDIT_SUFFIX = ".edit.txt"


def parse_idea_file(path: Path):
    """-> ("generate" | "edit", project) or None for files we do not handle."""
    name = path.name
    if not name.endswith(".txt") or name.startswith("."):
        return None
    if name.endswith(EDIT_SUFFIX):
        return "edit", sanitize_project_id(name[: -len(EDIT_SUFFIX)])
    return "generate", sanitize_project_id(name[: -len(".txt")])


class IdeaFileHandler(FileSystemEventHandler):
    def __init__(self, store: ProjectStore, lock: ProjectLock):
        self.store = store
        self.lock = lock
        self.processing = set()
    def on_created(self, event):  self._handle(event.src_path)
    def on_modified(self, event): self._handle(event.src_path)
    def _handle(self, path):
        p = Path(path)
        if parse_idea_file(p) is None or p in self.processing:
            return
        time.sleep(0.5)
        self.processing.add(p)
        try: run_pipeline(p, self.store, self.lock)
        finally: self.processing.discard(p)


def run_pipeline(idea_file: Path, store: ProjectStore, lock: ProjectLock, llm=None):
    kind, project = parse_idea_file(idea_file)
    log.info("=" * 60)
    log.info(f"🚀 {kind.upper()} STARTED — {project}")
    log.info("=" * 60)
    text = idea_file.read_text(encoding="utf-8").strip()
    if not text:
        log.warning("Idea file is empty. Skipping.")
        return None

    try:
        if kind == "generate":
            log.info(f"💡 Idea: {text[:200]}")
            result, record = run_generation(store, lock, project, text, llm=llm)
        else:
            log.info(f"✏️  Edit: {text[:200]}")
            result, record = run_edit(store, lock, project, text, llm=llm)
    except SiteGenError as e:
        log.error(f"❌ {e.code}: {e}")
        return None

    for problem in result.errors:
        log.warning(f"   • {problem}")
    if record is None:
        log.error(f"{kind.capitalize()} failed: {result.summary}")
        return None

    write_readme(store.project_dir(project), project, text if kind == "generate" else record.prompt)
    log.info("=" * 60)
    log.info(f"🎉 DONE!  {project} v{record.version}")
    log.info(f"   📁 Code    : {store.project_dir(project) / 'current'}")
    log.info(f"   🖼️  Preview : {store.project_dir(project) / 'preview.html'}")
    log.info("=" * 60)
    return record


def write_readme(project_dir: Path, project_name: str, raw_idea: str):
    (project_dir / "README.md").write_text(
        f"# {project_name.replace('_',' ').replace('-', ' ').title()}\n\n"
        f"## Idea\n{raw_idea}\n\n"
        f"## Run\n```bash\ncd current\nnpm install\nnpm run dev\n```\n",
        encoding="utf-8",
    )


if __name__ == "__main__":
    log.info("🤖 SiteGen Pipeline — React Edition")
    log.info(f"   👁️  Watching : {config.IDEAS_DIR}")
    log.info(f"   📦 Output   : {config.PROD_DIR}")
    log.info(f"   🧠 Planner  : {config.PLAN_MODEL}")
    log.info(f"   🏗️  Builder  : {config.BUILD_MODEL}")
    log.info(f"   ✏️  Editor   : {config.EDIT_MODEL}")
    log.info("\nDrop <name>.txt into ideas/ to generate, <name>.edit.txt to edit.")

    handler = IdeaFileHandler(ProjectStore(config.PROD_DIR), ProjectLock(config.PROD_DIR))
    observer = Observer()
    observer.schedule(handler, str(config.IDEAS_DIR), recursive=False)
    observer.start()
    try:
        while True: time.sleep(1)
    except KeyboardInterrupt:
        log.info("\n⛔ Stopping...")
        observer.stop()
    observer.join()
