"""
Self-contained HTML preview of a generated project.

The project is a Vite app; the preview inlines it into one document that runs
from CDNs (React UMD + Babel standalone + Tailwind play CDN), so a browser can
show it without npm. Each component is wrapped in its own scope so module-level
helpers with the same name in two files do not collide.
"""
import json, logging, re, textwrap

from .coder import render_order
from .planner import LanguageMode
from .sanitize import close_void_elements, declared_component
from .workspace import Workspace

log = logging.getLogger("preview")

PLACEHOLDER_IMAGE = "https://placehold.co/600x400?text=Image"

REACT_CDN     = "https://unpkg.com/react@18/umd/react.development.js"
REACT_DOM_CDN = "https://unpkg.com/react-dom@18/umd/react-dom.development.js"
BABEL_CDN     = "https://unpkg.com/@babel/standalone/babel.min.js"
TAILWIND_CDN  = "https://cdn.tailwindcss.com"

FONTS_LATIN  = "https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700;800&family=Poppins:wght@400;500;600;700;800&display=swap"
FONTS_ARABIC = "https://fonts.googleapis.com/css2?family=Cairo:wght@300;400;500;600;700;800&display=swap"

_ARABIC_RE = re.compile(r"[؀-ۿ]")

# Names the inlined runtime defines; never stubbed.
RUNTIME_NAMES = {"LanguageProvider", "LanguageContext", "React", "ReactDOM", "Fragment"}

IMAGE_ATTRS = ("src", "image", "img", "poster", "logo", "avatar", "photo", "backgroundImage", "srcSet")
_IMAGE_SUFFIX = r"(?:Images?|Imgs?|Photos?|Logo|Url|Src|Pictures?|Pics?|Avatar|Banner|Bg)"


def _file_map(files) -> dict:
    if isinstance(files, Workspace):
        return files.to_file_map()
    return dict(files or {})


def infer_language_mode(files) -> LanguageMode:
    files = _file_map(files)
    if "src/i18n.js" in files or ("src/locales/en.json" in files and "src/locales/ar.json" in files):
        return LanguageMode.BILINGUAL
    for path, content in files.items():
        if path.startswith("src/") and path.endswith(".jsx") and _ARABIC_RE.search(content or ""):
            return LanguageMode.ARABIC_ONLY
    return LanguageMode.ENGLISH_ONLY


# ── Module rewriting ──────────────────────────────────────────────────────────

_IMPORT_RE = re.compile(
    r"^[ \t]*import\s+([^'\";]+?)\s+from\s+['\"]([^'\"]+)['\"][ \t]*;?[ \t]*$\n?", re.MULTILINE)
_SIDE_IMPORT_RE = re.compile(r"^[ \t]*import\s+['\"][^'\"]+['\"][ \t]*;?[ \t]*$\n?", re.MULTILINE)
_ASSET_RE = re.compile(r"\.(?:png|jpe?g|gif|svg|webp|avif|ico|bmp|mp4|webm)$", re.IGNORECASE)


def _import_names(clause: str) -> list:
    names = []
    clause = clause.strip()
    named = re.search(r"\{([^}]*)\}", clause)
    if named:
        for part in named.group(1).split(","):
            part = part.strip()
            if part:
                names.append(re.split(r"\s+as\s+", part)[-1].strip())
        clause = clause.replace(named.group(0), "")
    star = re.search(r"\*\s+as\s+(\w+)", clause)
    if star:
        names.append(star.group(1))
        clause = clause.replace(star.group(0), "")
    default = clause.strip().strip(",").strip()
    if re.fullmatch(r"[A-Za-z_$][\w$]*", default or ""):
        names.append(default)
    return names


def strip_imports(code: str):
    """Remove import statements; returns (code, {identifier: module})."""
    imported = {}
    code = _SIDE_IMPORT_RE.sub("", code)
    for m in _IMPORT_RE.finditer(code):
        for name in _import_names(m.group(1)):
            imported[name] = m.group(2)
    code = _IMPORT_RE.sub("", code)
    return code, imported


def strip_exports(code: str, name: str) -> str:
    code = re.sub(r"\bexport\s+default\s+(?=(?:async\s+)?function\b|class\b)", "", code)
    code = re.sub(r"\bexport\s+default\s+(?=\(|async\s*\()", f"const {name} = ", code)
    code = re.sub(r"^[ \t]*export\s+default\s+[A-Za-z_$][\w$]*[ \t]*;?[ \t]*$\n?", "", code, flags=re.MULTILINE)
    code = re.sub(r"^([ \t]*)export\s+(?=(?:async\s+)?function\b|const\b|let\b|var\b|class\b)", r"\1",
                  code, flags=re.MULTILINE)
    code = re.sub(r"^[ \t]*export\s*\{[^}]*\}[ \t]*;?[ \t]*$\n?", "", code, flags=re.MULTILINE)
    return code


def normalize_component(code: str, name: str) -> str:
    """Ensure `code` declares a component called `name`."""
    code = re.sub(r"\bfunction\s+[A-Za-z_$][\w$]*(?:-[\w$]+)+\s*\(", f"function {name}(", code)
    if re.search(rf"\b(?:function|const|let|var|class)\s+{re.escape(name)}\b", code):
        return code
    current = declared_component(code)
    if current:
        return re.sub(rf"\b{re.escape(current)}\b", name, code)
    body = code.strip()
    if body.startswith("<"):
        log.info(f"   🖼️  wrapped bare JSX of {name}")
        return f"function {name}() {{\n  return (\n    <>\n{body}\n    </>\n  );\n}}\n"
    return code.rstrip() + f"\nfunction {name}() {{\n  return null;\n}}\n"


def declared_names(code: str) -> set:
    names = set(re.findall(r"\b(?:const|let|var|function|class)\s+([A-Za-z_$][\w$]*)", code))
    for group in re.findall(r"\b(?:const|let|var)\s*[{\[]([^}\]=]*)[}\]]", code):
        names.update(re.findall(r"([A-Za-z_$][\w$]*)\s*(?:,|$|=)", group.strip() + ","))
    for group in re.findall(r"\(([^()]*)\)\s*=>", code) + re.findall(r"\bfunction\b[^(]*\(([^)]*)\)", code):
        names.update(re.findall(r"[A-Za-z_$][\w$]*", group))
    names.update(re.findall(r"\b([A-Za-z_$][\w$]*)\s*=>", code))
    return names


def replace_unresolved_images(code: str, unresolved) -> str:
    """src={logoUrl} with no declaration (or an asset import) -> placeholder URL."""
    attr_re = re.compile(
        rf"\b({'|'.join(IMAGE_ATTRS)})\s*=\s*\{{\s*([A-Za-z_$][\w$]*)((?:\.[\w$]+)*)\s*\}}")

    def _attr(m):
        if m.group(2) in unresolved:
            return f'{m.group(1)}="{PLACEHOLDER_IMAGE}"'
        return m.group(0)

    code = attr_re.sub(_attr, code)

    expr_re = re.compile(rf"(\$?\{{\s*)([A-Za-z_$][\w$]*{_IMAGE_SUFFIX})(\s*\}})")

    def _expr(m):
        if m.group(2) in unresolved:
            return f'{m.group(1)}"{PLACEHOLDER_IMAGE}"{m.group(3)}'
        return m.group(0)

    return expr_re.sub(_expr, code)


def rendered_tags(code: str) -> set:
    return set(re.findall(r"<([A-Z][\w$]*)(?![\w$.])", code))


def prepare_module(name: str, code: str, known: set):
    """Rewrite one component file for inline use; returns (js, undefined_tags)."""
    code, imported = strip_imports(code)
    code = strip_exports(code, name)
    code = normalize_component(code, name)

    local = declared_names(code)
    assets = {n for n, mod in imported.items() if _ASSET_RE.search(mod)}
    candidates = set(re.findall(r"\b([A-Za-z_$][\w$]*)\b", code))
    unresolved = {n for n in candidates if n not in local and n not in known} | assets
    code = replace_unresolved_images(code, unresolved)
    code = close_void_elements(code)

    undefined = {t for t in rendered_tags(code) if t not in local and t not in known}
    body = textwrap.indent(code.strip(), "  ")
    return f"const {name} = (() => {{\n{body}\n  return {name};\n}})();\n", undefined


def ordered_components(files: dict) -> list:
    """[(name, code)] App imports first in App's order, then the remaining component files."""
    app = files.get("src/App.jsx", "")
    by_name = {p.rsplit("/", 1)[-1].rsplit(".", 1)[0]: c for p, c in files.items()
               if p.startswith("src/components/") and p.endswith((".jsx", ".js"))}
    imported = re.findall(r"^\s*import\s+(\w+)\s+from\s+['\"]\./components/[\w/]+?(?:\.jsx?)?['\"]",
                          app, re.MULTILINE)
    order = [n for n in imported if n in by_name]
    rest = render_order([n for n in by_name if n not in order])
    return [(n, by_name[n]) for n in order + rest]


def mount_chain(main_code: str) -> list:
    """Element names rendered by main.jsx, outermost first."""
    m = re.search(r"\.render\(([\s\S]*)\)", main_code or "")
    chain = re.findall(r"<([A-Z][\w.]*)", m.group(1)) if m else []
    if "App" not in chain:
        chain = ["React.StrictMode", "App"]
    return chain[: chain.index("App") + 1]


def mount_script(chain: list, wrap_provider: bool = False) -> str:
    if wrap_provider and "LanguageProvider" not in chain:
        chain = chain[:-1] + ["LanguageProvider", "App"]
    expr = "React.createElement(App)"
    for tag in reversed(chain[:-1]):
        expr = f"React.createElement({tag}, null, {expr})"
    return f"ReactDOM.createRoot(document.getElementById('root')).render({expr});"


def _json_for_script(obj) -> str:
    return json.dumps(obj, ensure_ascii=False).replace("</", "<\\/")


def _load_locale(files: dict, path: str) -> dict:
    try:
        data = json.loads(files.get(path) or "{}")
    except json.JSONDecodeError as e:
        log.warning(f"   ⚠️  {path} is not valid JSON: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _tailwind_theme(files: dict) -> str:
    cfg = files.get("tailwind.config.js", "")
    m = re.search(r"theme\s*:\s*(\{[\s\S]*\})\s*,\s*plugins", cfg)
    return m.group(1) if m else "{}"


# ── Runtime pieces ────────────────────────────────────────────────────────────

I18N_RUNTIME = textwrap.dedent("""\
    const TRANSLATIONS = { en: __EN__, ar: __AR__ };
    const DEFAULT_LANGUAGE = '__LANG__';
    const LanguageContext = React.createContext(null);

    function translate(language, key) {
      let value = TRANSLATIONS[language] || {};
      for (const k of String(key).split('.')) {
        value = value == null ? undefined : value[k];
      }
      return value === undefined || value === null ? key : value;
    }

    function LanguageProvider({ children }) {
      const [language, setLanguage] = useState(DEFAULT_LANGUAGE);
      const toggleLanguage = () => setLanguage(prev => (prev === 'en' ? 'ar' : 'en'));
      const t = (key) => translate(language, key);
      useEffect(() => {
        document.documentElement.setAttribute('dir', language === 'ar' ? 'rtl' : 'ltr');
        document.documentElement.setAttribute('lang', language);
      }, [language]);
      return React.createElement(LanguageContext.Provider,
        { value: { language, setLanguage, toggleLanguage, t } }, children);
    }

    function useLanguage() {
      const context = useContext(LanguageContext);
      if (context) return context;
      return {
        language: DEFAULT_LANGUAGE,
        setLanguage: () => {},
        toggleLanguage: () => {},
        t: (key) => translate(DEFAULT_LANGUAGE, key),
      };
    }

    function useTranslation() {
      const { language, setLanguage, t } = useLanguage();
      return { t, i18n: { language, changeLanguage: setLanguage } };
    }
    """)

ERROR_OVERLAY = textwrap.dedent("""\
    <div id="error-display" style="display:none;position:fixed;inset:auto 16px 16px 16px;z-index:99999;background:#1f2937;color:#fecaca;border:1px solid #ef4444;border-radius:12px;padding:16px;font:13px/1.5 ui-monospace,monospace;max-height:45vh;overflow:auto">
      <button onclick="document.getElementById('error-display').style.display='none'" style="float:right;background:none;border:0;color:#fff;font-size:18px;cursor:pointer">&times;</button>
      <strong>Preview error</strong>
      <pre id="error-message" style="white-space:pre-wrap;margin:8px 0 0"></pre>
      <pre id="error-stack" style="white-space:pre-wrap;margin:8px 0 0;color:#9ca3af"></pre>
    </div>
    <script>
      function showError(message, stack) {
        document.getElementById('error-message').textContent = String(message || 'Unknown error');
        document.getElementById('error-stack').textContent = stack || '';
        document.getElementById('error-display').style.display = 'block';
      }
      window.onerror = function (message, source, line, column, error) {
        showError(message, error && error.stack);
      };
      window.addEventListener('unhandledrejection', function (event) {
        var reason = event.reason || {};
        showError(reason.message || reason, reason.stack);
      });
    </script>""")


def render_preview(files, language_mode: LanguageMode = None, title: str = None) -> str:
    files = _file_map(files)
    mode  = LanguageMode.coerce(language_mode) if language_mode else infer_language_mode(files)
    bilingual = mode == LanguageMode.BILINGUAL
    rtl       = mode == LanguageMode.ARABIC_ONLY

    components = ordered_components(files)
    known = {n for n, _ in components} | RUNTIME_NAMES | {
        "useState", "useEffect", "useRef", "useMemo", "useCallback", "useContext", "useReducer",
        "useLanguage", "useTranslation", "translate", "App", "window", "document"}

    modules, undefined = [], set()
    for name, code in components:
        js, missing = prepare_module(name, code, known)
        modules.append(js)
        undefined |= missing

    app_js, missing = prepare_module("App", files.get("src/App.jsx") or
                                     "export default function App() { return <div />; }", known)
    undefined |= missing
    stubs = []
    for tag in sorted(undefined):
        log.info(f"   🧩 stub for undefined component <{tag} />")
        stubs.append(f"function {tag}() {{ return <div data-missing-component=\"{tag}\" />; }}")

    i18n = (I18N_RUNTIME
            .replace("__EN__", _json_for_script(_load_locale(files, "src/locales/en.json")))
            .replace("__AR__", _json_for_script(_load_locale(files, "src/locales/ar.json")))
            .replace("__LANG__", "ar" if rtl else "en"))
    app_code = files.get("src/App.jsx") or ""
    mount = mount_script(mount_chain(files.get("src/main.jsx")),
                         bilingual and "LanguageProvider" not in app_code)

    script = "\n".join([
        "const { useState, useEffect, useRef, useMemo, useCallback, useContext, useReducer, Fragment } = React;",
        i18n,
        *stubs,
        *modules,
        app_js,
        mount,
    ])

    css = files.get("src/index.css", "").replace("</", "<\\/")
    fonts = FONTS_ARABIC if rtl else FONTS_LATIN
    font_links = f'  <link href="{fonts}" rel="stylesheet" />'
    if bilingual:
        font_links += f'\n  <link href="{FONTS_ARABIC}" rel="stylesheet" />'
    page_title = title or _title_from(files) or "Preview"

    return "\n".join([
        "<!DOCTYPE html>",
        f'<html lang="{"ar" if rtl else "en"}" dir="{"rtl" if rtl else "ltr"}">',
        "<head>",
        '  <meta charset="UTF-8" />',
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0" />',
        f"  <title>{_escape_html(page_title)}</title>",
        '  <link rel="preconnect" href="https://fonts.googleapis.com" />',
        font_links,
        f'  <script src="{TAILWIND_CDN}"></script>',
        f"  <script>tailwind.config = {{ theme: {_tailwind_theme(files)} }};</script>",
        f'  <style type="text/tailwindcss">\n{css}\n  </style>',
        f'  <script crossorigin src="{REACT_CDN}"></script>',
        f'  <script crossorigin src="{REACT_DOM_CDN}"></script>',
        f'  <script src="{BABEL_CDN}"></script>',
        "</head>",
        "<body>",
        '  <div id="root"></div>',
        ERROR_OVERLAY,
        '  <script type="text/babel" data-presets="react">',
        "try {",
        textwrap.indent(script.replace("</script", "<\\/script"), "  "),
        "} catch (e) {",
        "  showError(e.message, e.stack);",
        "}",
        "  </script>",
        "</body>",
        "</html>",
        "",
    ])


def _title_from(files: dict) -> str:
    m = re.search(r"<title>([^<]*)</title>", files.get("index.html", ""))
    return m.group(1).strip() if m else ""


def _escape_html(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
