"""
Natural-language edits against an existing Workspace.

identify -> guardrails -> per-file patch -> validate -> (regenerate) -> write.
One failing file never aborts the request; its error is reported and the next
candidate is processed.
"""
import json, logging, re, textwrap
from dataclasses import dataclass, field

from . import config
from .errors import GenerationError, MalformedResponseError
from .llm import LLMClient, extract_json, strip_fences
from .patching import PatchResult, make_diff, validate_patch
from .planner import section_to_component_name
from .sanitize import extract_code, sanitize
from .workspace import Workspace, file_tools, normalize_path

log = logging.getLogger("editor")

APP_PATH = "src/App.jsx"
REGENERATED_MARKER = "[File regenerated]"

CONFIG_FILE_KEYS   = ("package.json", "vite.config", "tailwind.config", "postcss.config")
CONFIG_KEYWORDS    = ["config", "configuration", "dependency", "dependencies", "package",
                      "packages", "library", "libraries", "إعدادات", "مكتبة"]
STRUCTURE_KEYWORDS = ["section", "sections", "add", "remove", "delete", "reorder", "move",
                      "قسم", "أضف", "اضف", "احذف", "أزل"]

EDIT_TYPE_KEYWORDS = {
    "structure": ["section", "reorder", "move", "remove", "delete", "قسم", "احذف"],
    "feature":   ["add a", "add an", "add new", "new ", "create a", "include a", "form", "أضف"],
    "styling":   ["color", "colour", "font", "size", "bigger", "smaller", "larger", "bold",
                  "padding", "margin", "spacing", "background", "style", "dark", "light",
                  "rounded", "shadow", "border", "center", "align", "لون", "خط", "أكبر", "أصغر"],
    "content":   ["text", "title", "heading", "wording", "rename", "say", "copy", "translate",
                  "phone", "email", "address", "price", "name", "نص", "عنوان"],
}

STOPWORDS = {"the", "and", "for", "with", "make", "change", "update", "please", "this", "that",
             "into", "from", "more", "less", "can", "you", "should", "want", "like", "its"}


def _has_keyword(prompt: str, keywords: list) -> bool:
    pl = (prompt or "").lower()
    for k in keywords:
        if re.search(rf"(?<![\w؀-ۿ]){re.escape(k)}(?![\w؀-ۿ])", pl):
            return True
    return False


def is_config_file(path: str) -> bool:
    return any(k in path for k in CONFIG_FILE_KEYS)


def mentions_config(prompt: str) -> bool:
    return _has_keyword(prompt, CONFIG_KEYWORDS)


def is_structural(prompt: str) -> bool:
    return _has_keyword(prompt, STRUCTURE_KEYWORDS)


def classify_edit_type(prompt: str) -> str:
    pl = (prompt or "").lower()
    if is_structural(prompt) and any(k in pl for k in EDIT_TYPE_KEYWORDS["structure"]):
        return "structure"
    for kind in ("feature", "styling", "content"):
        if any(k in pl for k in EDIT_TYPE_KEYWORDS[kind]):
            return kind
    return "other"


# ── Relevance search ──────────────────────────────────────────────────────────

def _prompt_words(prompt: str) -> list:
    words = re.findall(r"[\w؀-ۿ]+", (prompt or "").lower())
    seen, out = set(), []
    for w in words:
        if len(w) > 2 and w not in STOPWORDS and w not in seen:
            seen.add(w)
            out.append(w)
    return out


def _prompt_phrases(prompt: str) -> list:
    quoted = re.findall(r"[\"“']([^\"”']{3,80})[\"”']", prompt or "")
    words  = _prompt_words(prompt)
    grams  = [" ".join(words[i:i + n]) for n in (3, 2) for i in range(len(words) - n + 1)]
    return [q.lower() for q in quoted] + grams


@dataclass
class Candidate:
    path: str
    score: int
    reasons: list = field(default_factory=list)


def score_relevance(prompt: str, files: dict, limit: int = None) -> list:
    """
    Rank component (and locale) files by how much of the user's wording appears
    in their visible text. Users describe what they see, which often differs
    from the file name.
    """
    limit = config.RELEVANCE_SCAN_LIMIT if limit is None else limit
    components = [p for p in files if p.startswith("src/components/")][:limit]
    locales    = [p for p in files if p.startswith("src/locales/")]
    words      = _prompt_words(prompt)
    phrases    = _prompt_phrases(prompt)

    ranked = []
    for path in components + locales:
        text   = (files.get(path) or "").lower()
        packed = re.sub(r"\s+", "", text)
        stem   = path.rsplit("/", 1)[-1].rsplit(".", 1)[0].lower()
        score, reasons = 0, []

        if stem in words:
            score += 10
            reasons.append(f"name:{stem}")
        for w in words:
            if w in text:
                score += 5
                reasons.append(f"word:{w}")
                if re.search(rf"<h[1-6][^>]*>[^<]*{re.escape(w)}", text):
                    score += 15
                    reasons.append(f"heading:{w}")
                elif re.search(rf">[^<{{]*{re.escape(w)}[^<]*<|[\"'][^\"'\n]*{re.escape(w)}[^\"'\n]*[\"']", text):
                    score += 10
                    reasons.append(f"text:{w}")
        for ph in phrases:
            if len(ph) > 5 and re.sub(r"\s+", "", ph) in packed:
                score += 20
                reasons.append(f"phrase:{ph}")

        if score:
            ranked.append(Candidate(path, score, reasons))

    ranked.sort(key=lambda c: -c.score)
    return ranked


def app_import_graph(app_code: str) -> list:
    return re.findall(r"^\s*import\s+(\w+)\s+from\s+['\"]\./components/([\w/]+?)(?:\.jsx)?['\"]",
                      app_code or "", re.MULTILINE)


# ── Guardrails ────────────────────────────────────────────────────────────────

def apply_guardrails(prompt: str, files: list, existing, max_files: int = None) -> list:
    """Narrow the identified file list to what this request may legitimately touch."""
    max_files  = config.MAX_EDIT_FILES if max_files is None else max_files
    structural = is_structural(prompt)
    config_ok  = mentions_config(prompt)

    kept, seen = [], set()
    for raw in files:
        path = normalize_path(raw)
        if path in seen:
            continue
        seen.add(path)
        if is_config_file(path) and not config_ok:
            log.info(f"   🛡️  dropped {path}: no configuration request")
            continue
        if path == APP_PATH and not structural:
            log.info(f"   🛡️  dropped {path}: not a structural change")
            continue
        if path not in existing:
            new_component = (structural and path.startswith("src/components/")
                             and path.endswith(".jsx"))
            if not new_component:
                log.info(f"   🛡️  dropped {path}: file does not exist")
                continue
        kept.append(path)

    if len(kept) > max_files:
        log.info(f"   🛡️  capped {len(kept)} files to {max_files}")
    return kept[:max_files]


def inject_component(app_code: str, name: str) -> str:
    """Add an import and a <Name /> render line to App.jsx; no-op if already imported."""
    if re.search(rf"^\s*import\s+{re.escape(name)}\s+from", app_code, re.MULTILINE):
        return app_code
    lines = app_code.splitlines()
    last_import = max((i for i, l in enumerate(lines) if l.strip().startswith("import ")), default=-1)
    lines.insert(last_import + 1, f"import {name} from './components/{name}';")

    footer = next((i for i, l in enumerate(lines) if re.match(r"\s*<Footer\s*/>", l)), None)
    if footer is not None:
        indent = re.match(r"\s*", lines[footer]).group(0)
        lines.insert(footer, f"{indent}<{name} />")
    else:
        close = max((i for i, l in enumerate(lines) if "</div>" in l), default=None)
        if close is None:
            return "\n".join(lines) + "\n"
        indent = re.match(r"\s*", lines[close]).group(0) + "  "
        lines.insert(close, f"{indent}<{name} />")
    return "\n".join(lines) + "\n"


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass
class PatchRecord:
    path: str
    diff: str
    summary: str
    method: str = "patch"     # patch | regenerate | create

    def to_dict(self) -> dict:
        return {"path": self.path, "diff": self.diff, "summary": self.summary, "method": self.method}


@dataclass
class EditResult:
    files_changed: list = field(default_factory=list)
    patches: list = field(default_factory=list)
    summary: str = ""
    success: bool = False
    errors: list = field(default_factory=list)
    edit_type: str = "other"

    def to_dict(self) -> dict:
        return {
            "filesChanged": list(self.files_changed),
            "patches":      [p.to_dict() for p in self.patches],
            "summary":      self.summary,
            "success":      self.success,
            "errors":       list(self.errors),
            "editType":     self.edit_type,
        }


# ── Prompts ───────────────────────────────────────────────────────────────────

IDENTIFY_PROMPT = textwrap.dedent("""\
    You decide which files of a React + Tailwind website must change to satisfy an
    edit request. Return ONE JSON object:
    {"files": ["src/components/Hero.jsx"], "editType": "styling|content|structure|feature|other",
     "newSections": [], "reason": "short explanation"}

    Rules:
    - Pick the MINIMUM set of files, usually one.
    - Users describe what they SEE. Trust the RELEVANCE MATCHES (file text that contains
      the user's words) over file names.
    - Only include src/App.jsx when a section is added, removed or reordered.
    - Only include config files (package.json, vite/tailwind/postcss config) when the user
      asks about configuration or dependencies.
    - Text on bilingual sites lives in src/locales/en.json and src/locales/ar.json.
    - To add a new section, list src/components/<Name>.jsx in files and <name> in newSections.
    """)

PATCH_PROMPT = textwrap.dedent("""\
    You edit ONE file with a minimal unified diff. Return ONE JSON object:
    {"diff": "@@ -12,3 +12,3 @@\\n context\\n-old line\\n+new line\\n context", "summary": "what changed"}

    Diff rules:
    - Standard unified diff hunks with correct line numbers from the file below.
    - Include 1-3 unchanged context lines around each change, copied EXACTLY.
    - Change ONLY the lines needed for the request. Keep every other line verbatim.
    - No file headers are required. No markdown.
    """)

REGENERATE_PROMPT = textwrap.dedent("""\
    You apply ONE requested change to a file and return the ENTIRE updated file.
    - Apply only the requested change; keep everything else exactly as it is.
    - Output only the file content. No markdown fences, no explanations.
    - JSX: keep the same default-exported component name and imports.
    - JSON: output valid JSON with the same structure.
    """)

CREATE_PROMPT = textwrap.dedent("""\
    You write ONE new React + Tailwind section component for an existing website.
    - Output ONLY the JSX file: imports from 'react' only, then export default function {Name}().
    - Root element: <section id="{id}" className="py-16 md:py-24">.
    - Match the visual style of the existing components shown.
    - Self-close void elements. Use className="..." with double quotes.
    {language}
    """)


class EditorAgent:
    def __init__(self, llm: LLMClient, workspace: Workspace, on_write=None, timeout: float = None,
                 max_files: int = None, fuzz: int = None, max_change_ratio: float = None):
        self.llm              = llm
        self.workspace        = workspace
        self.tools            = file_tools(workspace, on_write)
        self.timeout          = timeout
        self.max_files        = config.MAX_EDIT_FILES if max_files is None else max_files
        self.fuzz             = config.PATCH_FUZZ if fuzz is None else fuzz
        self.max_change_ratio = config.MAX_PATCH_CHANGE_RATIO if max_change_ratio is None else max_change_ratio

    # ── Public API ────────────────────────────────────────────────────────────

    def edit(self, prompt: str, history=None) -> EditResult:
        files  = self.workspace.to_file_map()
        result = EditResult(edit_type=classify_edit_type(prompt))

        candidates = score_relevance(prompt, files)
        if candidates:
            log.info("   🔎 relevance: " + ", ".join(f"{c.path}={c.score}" for c in candidates[:5]))

        proposed = self.identify(prompt, files, candidates, history, result)
        targets  = apply_guardrails(prompt, proposed, files, self.max_files)
        if not targets:
            result.errors.append("Could not identify any file to edit for this request")
            result.summary = "No changes made"
            return result
        log.info(f"   🎯 editing: {targets}")

        summaries = []
        for path in targets:
            try:
                if path in files:
                    record = self._edit_file(path, prompt, history)
                else:
                    record = self._create_component(path, prompt, history, result)
            except GenerationError as e:
                log.error(f"   ❌ {path}: {e}")
                result.errors.append(f"{path}: {e}")
                continue
            if record is None:
                continue
            result.patches.append(record)
            if record.path not in result.files_changed:
                result.files_changed.append(record.path)
            summaries.append(f"{record.path}: {record.summary}")

        result.summary = "\n".join(summaries) if summaries else "No changes made"
        result.success = bool(result.files_changed) and not result.errors
        return result

    # ── Identify ──────────────────────────────────────────────────────────────

    def identify(self, prompt: str, files: dict, candidates: list, history, result: EditResult) -> list:
        listing = "\n".join(f"- {p} ({len(c.splitlines())} lines)" for p, c in files.items())
        graph   = app_import_graph(files.get(APP_PATH, ""))
        ranked  = "\n".join(
            f"- {c.path} (score {c.score}): {', '.join(c.reasons[:6])}" for c in candidates[:8]
        ) or "- none"
        user = (
            f"FILES:\n{listing}\n\n"
            f"APP IMPORTS (render order): {', '.join(n for n, _ in graph) or 'none'}\n\n"
            f"RELEVANCE MATCHES:\n{ranked}\n\n"
            f"EDIT REQUEST: {prompt}"
        )
        try:
            reply = self.llm.propose_json(IDENTIFY_PROMPT, user, history=history, temperature=0.1,
                                          max_tokens=400, timeout=self.timeout, label="identify")
        except GenerationError as e:
            log.warning(f"   ⚠️  identify failed ({e}) — using relevance ranking")
            return [c.path for c in candidates[:1]]

        if isinstance(reply.get("editType"), str) and reply["editType"] != result.edit_type:
            log.info(f"   model edit type '{reply['editType']}' (keyword: {result.edit_type})")

        picked = []
        for f in reply.get("files") or []:
            if isinstance(f, str):
                picked.append(self._resolve_path(f, files))
        if not picked:
            picked = [c.path for c in candidates[:1]]
        return picked

    def _resolve_path(self, name: str, files: dict) -> str:
        path = normalize_path(name)
        if path in files:
            return path
        base = path.rsplit("/", 1)[-1].lower()
        for p in files:
            if p.rsplit("/", 1)[-1].lower() == base:
                return p
        if "/" not in path and path.endswith(".jsx"):
            return f"src/components/{section_to_component_name(path[:-4])}.jsx"
        return path

    # ── Patch / regenerate ────────────────────────────────────────────────────

    def _edit_file(self, path: str, prompt: str, history) -> PatchRecord:
        current = self.workspace.read(path) or ""
        diff, summary = self._propose_patch(path, current, prompt, history)

        check = validate_patch(current, diff, self.fuzz, self.max_change_ratio) if diff \
            else PatchResult(False, reason="empty", error="no diff returned")
        if check.valid:
            self.tools.write_file(path, check.content)
            log.info(f"   ✅ patched {path} ({check.changed_lines} line(s), {check.change_ratio:.0%})")
            return PatchRecord(path, diff, summary or "Patched", "patch")

        log.warning(f"   ⚠️  patch for {path} rejected ({check.reason}: {check.error}) — regenerating")
        new = self._regenerate(path, current, prompt, history)
        if new == current:
            log.warning(f"   ⚠️  regeneration of {path} produced no change")
            return None
        self.tools.write_file(path, new)
        log.info(f"   ♻️  {REGENERATED_MARKER} {path}")
        return PatchRecord(path, REGENERATED_MARKER, f"{REGENERATED_MARKER} {summary or prompt[:120]}",
                           "regenerate")

    def _propose_patch(self, path: str, current: str, prompt: str, history):
        user = (
            f"FILE: {path} ({len(current.splitlines())} lines)\n"
            f"-----\n{current}\n-----\n\n"
            f"REQUEST: {prompt}"
        )
        try:
            raw = self.llm.complete(PATCH_PROMPT, user, history=history, temperature=0.1,
                                    json_mode=True, max_tokens=1500, timeout=self.timeout,
                                    label=f"patch {path}")
        except GenerationError as e:
            log.warning(f"   ⚠️  patch call for {path} failed: {e}")
            return "", ""
        try:
            reply = extract_json(raw)
            diff = reply.get("diff") or reply.get("patch") or ""
            return (diff if isinstance(diff, str) else ""), str(reply.get("summary") or "")
        except MalformedResponseError:
            text = strip_fences(raw)
            return (text if "@@" in text else ""), ""

    def _regenerate(self, path: str, current: str, prompt: str, history) -> str:
        user = f"FILE: {path}\n-----\n{current}\n-----\n\nREQUEST: {prompt}\n\nReturn the full updated file."
        raw = self.llm.complete(REGENERATE_PROMPT, user, history=history, temperature=0.2,
                                max_tokens=4096, timeout=self.timeout, label=f"regenerate {path}")
        if path.endswith(".json"):
            text = strip_fences(raw)
            try:
                json.loads(text)
            except json.JSONDecodeError:
                text = json.dumps(extract_json(raw), indent=2, ensure_ascii=False) + "\n"
            return text

        code = extract_code(raw)
        if not code:
            raise MalformedResponseError("regeneration returned no code")
        if path.startswith("src/components/") and path.endswith(".jsx"):
            return sanitize(code, path.rsplit("/", 1)[-1][:-4])
        if path == APP_PATH:
            return sanitize(code, "App")
        return code.rstrip() + "\n"

    # ── Structural add ────────────────────────────────────────────────────────

    def _create_component(self, path: str, prompt: str, history, result: EditResult) -> PatchRecord:
        name = section_to_component_name(path.rsplit("/", 1)[-1][:-4])
        path = f"src/components/{name}.jsx"
        files = self.workspace.to_file_map()
        bilingual = "src/i18n.js" in files
        language = ("- Bilingual site: render text with language === 'ar' ? '<arabic>' : '<english>'"
                    " using const { language } = useLanguage() from '../i18n.js'.") if bilingual else ""
        sample = next((c for p, c in files.items()
                       if p.startswith("src/components/") and "Navbar" not in p), "")
        system = (CREATE_PROMPT.replace("{Name}", name).replace("{id}", name.lower())
                  .replace("{language}", language))
        user = f"REQUEST: {prompt}\n\nEXISTING COMPONENT FOR STYLE:\n{sample[:2000]}"
        raw = self.llm.complete(system, user, history=history, temperature=0.4, max_tokens=4096,
                                timeout=self.timeout, label=name)
        code = extract_code(raw)
        if not code:
            raise MalformedResponseError("new component response contained no code")

        self.tools.write_file(path, sanitize(code, name))
        app = self.workspace.read(APP_PATH)
        if app is not None:
            new_app = inject_component(app, name)
            if new_app != app:
                self.tools.write_file(APP_PATH, new_app)
                if APP_PATH not in result.files_changed:
                    result.files_changed.append(APP_PATH)
                result.patches.append(PatchRecord(APP_PATH, make_diff(app, new_app, APP_PATH),
                                                  f"Rendered new {name} section", "patch"))
        log.info(f"   ✨ created {path}")
        return PatchRecord(path, "[File created]", f"Created {name} section", "create")
