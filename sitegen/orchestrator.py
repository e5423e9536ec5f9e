"""
Generation and edit flows end to end.

generate:  Planner -> Architect -> Coder -> Preview
edit:      Workspace.hydrate -> Editor -> Preview

run_generation / run_edit add the per-project lock and version bookkeeping
used by both entry points (server.py and pipeline.py).
"""
import logging
from dataclasses import dataclass, field

from . import config
from .architect import ArchitecturePlan, architect
from .coder import CoderAgent
from .editor import EditorAgent, EditResult
from .errors import InvalidRequestError
from .llm import LLMClient, OllamaClient
from .planner import GenerationPlan, LanguageMode, PlannerAgent
from .preview import infer_language_mode, render_preview
from .store import BuildRecord, ProjectLock, ProjectStore, sanitize_project_id
from .workspace import Workspace

log = logging.getLogger("orchestrator")


@dataclass
class SiteResult:
    files: dict = field(default_factory=dict)
    plan: GenerationPlan = None
    architecture: ArchitecturePlan = None
    preview_html: str = ""
    summary: str = ""
    language_mode: LanguageMode = LanguageMode.ENGLISH_ONLY
    errors: list = field(default_factory=list)
    edit: EditResult = None

    @property
    def success(self) -> bool:
        if self.edit is not None:
            return self.edit.success
        return bool(self.files)

    def to_dict(self) -> dict:
        return {
            "files":        dict(self.files),
            "plan":         self.plan.to_dict() if self.plan else None,
            "architecture": self.architecture.to_dict() if self.architecture else None,
            "summary":      self.summary,
            "languageMode": self.language_mode.value,
            "errors":       list(self.errors),
            "edit":         self.edit.to_dict() if self.edit else None,
        }


def validate_request(prompt, history=None):
    if not isinstance(prompt, str) or not prompt.strip():
        raise InvalidRequestError("prompt must be a non-empty string")
    if len(prompt) > config.MAX_PROMPT_CHARS:
        raise InvalidRequestError(f"prompt exceeds {config.MAX_PROMPT_CHARS} characters")
    if history is None:
        return
    if not isinstance(history, list):
        raise InvalidRequestError("history must be a list")
    if len(history) > config.MAX_HISTORY:
        raise InvalidRequestError(f"history exceeds {config.MAX_HISTORY} entries")
    if not all(isinstance(h, dict) for h in history):
        raise InvalidRequestError("history entries must be objects")


def summarize_generation(plan: GenerationPlan, architecture: ArchitecturePlan) -> str:
    return (f"{plan.project_name}: {plan.language_mode.label} {plan.industry} site with "
            f"{len(architecture.components)} sections ({', '.join(architecture.components)})")


def generate_site(prompt: str, history=None, llm: LLMClient = None, force_bilingual: bool = None,
                  on_write=None, stream: bool = False) -> SiteResult:
    validate_request(prompt, history)
    plan_llm  = llm or OllamaClient(model=config.PLAN_MODEL, stream=stream)
    build_llm = llm or OllamaClient(model=config.BUILD_MODEL, stream=stream)

    log.info("🧭 Planning…")
    plan = PlannerAgent(plan_llm, force_bilingual=force_bilingual).plan(prompt, history)

    log.info("📐 Architecture…")
    arch = architect(plan)

    log.info("🏗️  Coding…")
    workspace = Workspace()
    errors = CoderAgent(build_llm, workspace, on_write=on_write).generate(plan, arch, prompt, history)

    files = workspace.to_file_map()
    log.info("🖼️  Preview…")
    html = render_preview(files, plan.language_mode, plan.project_name)
    summary = summarize_generation(plan, arch)
    if errors:
        summary += f" | {len(errors)} file(s) skipped"
    log.info(f"✅ {summary}")
    return SiteResult(files=files, plan=plan, architecture=arch, preview_html=html, summary=summary,
                      language_mode=plan.language_mode, errors=errors)


def edit_site(files, prompt: str, history=None, llm: LLMClient = None,
              language_mode: LanguageMode = None, on_write=None, stream: bool = False) -> SiteResult:
    validate_request(prompt, history)
    workspace = Workspace.hydrate(files)
    mode = LanguageMode.coerce(language_mode) if language_mode else infer_language_mode(workspace)

    log.info(f"✏️  Editing ({len(workspace)} files, {mode.value})")
    result = EditorAgent(llm or OllamaClient(model=config.EDIT_MODEL, stream=stream), workspace,
                         on_write=on_write).edit(prompt, history)

    new_files = workspace.to_file_map()
    html = render_preview(new_files, mode)
    if result.success:
        log.info(f"✅ Edited: {result.files_changed}")
    else:
        log.warning(f"⚠️  Edit incomplete: {result.errors}")
    return SiteResult(files=new_files, preview_html=html, summary=result.summary,
                      language_mode=mode, errors=list(result.errors), edit=result)


# ── Locked, versioned runs ────────────────────────────────────────────────────

def run_generation(store: ProjectStore, lock: ProjectLock, project: str, prompt: str,
                   history=None, llm: LLMClient = None, force_bilingual: bool = None,
                   on_write=None, stream: bool = False):
    """Returns (SiteResult, BuildRecord or None)."""
    validate_request(prompt, history)
    project = sanitize_project_id(project)
    with lock.held(project):
        result = generate_site(prompt, history, llm=llm, force_bilingual=force_bilingual,
                               on_write=on_write, stream=stream)
        if not result.success:
            return result, None
        record = store.save(project, result.files, prompt, result.summary,
                            result.language_mode.value, result.preview_html)
        store.export_tree(project, record.version)
        return result, record


def run_edit(store: ProjectStore, lock: ProjectLock, project: str, prompt: str, version: int = None,
             history=None, llm: LLMClient = None, on_write=None, stream: bool = False):
    validate_request(prompt, history)
    project = sanitize_project_id(project)
    with lock.held(project):
        base: BuildRecord = store.latest(project) if version is None else store.get(project, version)
        if base is None:
            raise InvalidRequestError(f"unknown project or version: {project} v{version or 'latest'}")
        result = edit_site(base.files, prompt, history, llm=llm,
                           language_mode=base.language_mode or None, on_write=on_write, stream=stream)
        if not result.success:
            return result, None
        record = store.save(project, result.files, prompt, result.summary,
                            result.language_mode.value, result.preview_html)
        store.export_tree(project, record.version)
        return result, record
