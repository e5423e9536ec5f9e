"""
Deterministic post-processing of every generated JSX file before it is written.

Each rule is a named (code, component_name) -> code function. RULES is the
canonical order; new failure modes get a new rule appended, existing rules stay
untouched. No model involved, pure regex.
"""
import logging, re
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger("sanitize")


@dataclass(frozen=True)
class SanitizeRule:
    name: str
    fn: Callable


# ── 1. Markdown fences ────────────────────────────────────────────────────────

_FENCED_RE = re.compile(r"```[\w+-]*[ \t]*\n(.*?)```", re.DOTALL)

def strip_code_fences(code, name=None):
    if "```" not in code:
        return code
    blocks = _FENCED_RE.findall(code)
    if blocks:
        return max(blocks, key=len).strip() + "\n"
    return re.sub(r"```[\w+-]*", "", code).strip() + "\n"


# ── 2. Echoed file-tool calls ─────────────────────────────────────────────────
# write_file('src/components/Hero.jsx', `...`) -> the payload itself

_TOOL_WRAP_RE = re.compile(
    r"""(?:write_file|apply_patch)\s*\(\s*(['"])[^'"]*\1\s*,\s*(`|'''|\"\"\")(.*)\2\s*\)\s*;?""",
    re.DOTALL,
)
_TOOL_LINE_RE = re.compile(
    r"^[ \t]*(?:await\s+)?(?:fileTools\.)?(?:write_file|read_file|list_files|apply_patch)\s*\([^\n]*\)\s*;?[ \t]*\n?",
    re.MULTILINE,
)

def strip_file_tool_calls(code, name=None):
    m = _TOOL_WRAP_RE.search(code)
    if m:
        code = m.group(3).replace("\\`", "`")
    return _TOOL_LINE_RE.sub("", code)


# ── 3. Foreign triple-quoted blocks ───────────────────────────────────────────

def strip_triple_quoted_blocks(code, name=None):
    return re.sub(r'("""|\'\'\')[\s\S]*?\1[ \t]*\n?', "", code)


# ── 4. Stray file paths ───────────────────────────────────────────────────────

_PATH_LINE_RE = re.compile(
    r"^[ \t]*(?://|#)?[ \t]*(?:(?:file|path)\s*:\s*)?['\"`]?(?:\./)?src/[\w./-]+\.(?:jsx?|tsx?|css|json)['\"`]?[ \t]*[,;:]?[ \t]*\n?",
    re.MULTILINE | re.IGNORECASE,
)

def strip_stray_file_paths(code, name=None):
    return _PATH_LINE_RE.sub("", code)


# ── 5. Component name mismatch ────────────────────────────────────────────────

_DECL_RES = [
    re.compile(r"\bexport\s+default\s+function\s+([A-Z]\w*)\s*\("),
    re.compile(r"\bexport\s+default\s+([A-Z]\w*)\s*;?\s*$", re.MULTILINE),
    re.compile(r"^\s*(?:export\s+)?function\s+([A-Z]\w*)\s*\(", re.MULTILINE),
    re.compile(r"^\s*(?:export\s+)?const\s+([A-Z]\w*)\s*=\s*(?:\([^)]*\)|\w+)\s*=>", re.MULTILINE),
    re.compile(r"^\s*(?:export\s+)?const\s+([A-Z]\w*)\s*=\s*function\b", re.MULTILINE),
]

def declared_component(code: str):
    """The component the file exports (or its first PascalCase declaration)."""
    for rx in _DECL_RES:
        m = rx.search(code)
        if m:
            return m.group(1)
    return None


def rename_component(code, name=None):
    if not name:
        return code
    current = declared_component(code)
    if not current or current == name:
        return code
    if re.search(rf"\b(?:function|const|let|class)\s+{re.escape(name)}\b", code):
        return code
    return re.sub(rf"\b{re.escape(current)}\b", name, code)


# ── 6. Single-quoted className ────────────────────────────────────────────────

def normalize_classname_quotes(code, name=None):
    return re.sub(r"\bclassName='([^'\"\n]*)'", r'className="\1"', code)


# ── 7. Void elements ──────────────────────────────────────────────────────────

VOID_TAGS = {"br", "hr", "img", "input", "meta", "link", "area", "base", "col",
             "embed", "param", "source", "track", "wbr"}

def close_void_elements(code, name=None):
    """<br> -> <br />, brace- and quote-aware so arrow functions inside props survive."""
    res, i, n = [], 0, len(code)
    while i < n:
        if code[i] == "<" and i + 1 < n and code[i + 1].isalpha():
            m = re.match(r"<([a-zA-Z0-9]+)\b", code[i:])
            if m and m.group(1) in VOID_TAGS:
                start = i
                i += len(m.group(0))
                q, braces = None, 0
                while i < n:
                    c = code[i]
                    if q:
                        if c == q: q = None
                    elif c in "\"'`":
                        q = c
                    elif c == "{":
                        braces += 1
                    elif c == "}":
                        braces = max(0, braces - 1)
                    elif c == ">" and braces == 0:
                        if code[i - 1] != "/":
                            res.append(code[start:i].rstrip() + " /")
                        else:
                            res.append(code[start:i])
                        res.append(">")
                        i += 1
                        break
                    i += 1
                else:
                    res.append(code[start:])
                continue
        res.append(code[i])
        i += 1
    return "".join(res)


# ── 8. Default export ─────────────────────────────────────────────────────────

def ensure_default_export(code, name=None):
    if not name or re.search(r"\bexport\s+default\b", code):
        return code
    if not re.search(rf"\b(?:function|const|let|var|class)\s+{re.escape(name)}\b", code):
        return code
    return code.rstrip() + f"\n\nexport default {name};\n"


RULES = [
    SanitizeRule("strip_code_fences",          strip_code_fences),
    SanitizeRule("strip_file_tool_calls",      strip_file_tool_calls),
    SanitizeRule("strip_triple_quoted_blocks", strip_triple_quoted_blocks),
    SanitizeRule("strip_stray_file_paths",     strip_stray_file_paths),
    SanitizeRule("rename_component",           rename_component),
    SanitizeRule("normalize_classname_quotes", normalize_classname_quotes),
    SanitizeRule("close_void_elements",        close_void_elements),
    SanitizeRule("ensure_default_export",      ensure_default_export),
]


def sanitize(code: str, component_name: str = None, rules=None) -> str:
    if not code:
        return ""
    changes = []
    for rule in RULES if rules is None else rules:
        new = rule.fn(code, component_name)
        if new != code:
            changes.append(rule.name)
            code = new
    if changes:
        log.info(f"   🔧 sanitize({component_name or '?'}): {', '.join(changes)}")
    return code.strip() + "\n"


_CODE_HINTS = ("import ", "export default", "function ", "const ", "return (")

def extract_code(text: str) -> str:
    """Pull JSX out of a model reply: a fenced block, or the raw text if it looks like code."""
    if not text:
        return ""
    blocks = _FENCED_RE.findall(text)
    if blocks:
        return max(blocks, key=len).strip()
    t = text.strip()
    if any(k in t for k in _CODE_HINTS):
        return t
    return ""
