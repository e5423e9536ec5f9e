import json, logging, re, textwrap

from .architect import ArchitecturePlan, FileTask, component_path
from .errors import GenerationError
from .llm import LLMClient
from .planner import GenerationPlan, LanguageMode, section_to_component_name
from .sanitize import extract_code, sanitize
from .translations import align_locales, coerce_list_objects, keys_for
from .workspace import Workspace, file_tools

log = logging.getLogger("coder")

# Unknown components land between services (4) and gallery (5).
RENDER_ORDER = ["Navbar", "Hero", "About", "Features", "Services", "Gallery", "Contact", "Footer"]
UNKNOWN_POSITION = 4.5


def render_order(components: list) -> list:
    rank = {name: i for i, name in enumerate(RENDER_ORDER)}
    indexed = list(enumerate(components))
    indexed.sort(key=lambda p: (rank.get(p[1], UNKNOWN_POSITION), p[0]))
    return [name for _, name in indexed]


def resolve_component_name(task_path: str, components: list) -> str:
    """Exact match, then case-insensitive match, then the slug transform."""
    stem = task_path.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    if stem in components:
        return stem
    for c in components:
        if c.lower() == stem.lower():
            return c
    return section_to_component_name(stem)


def section_id(component: str) -> str:
    return component.lower()


# ── Static file generators (no LLM, guaranteed valid) ────────────────────────

ACCENTS = [
    (("red", "crimson"),          ("#dc2626", "#f97316")),
    (("green", "olive", "mint"),  ("#059669", "#10b981")),
    (("orange", "amber", "warm"), ("#d97706", "#ea580c")),
    (("pink", "rose"),            ("#db2777", "#8b5cf6")),
    (("gold", "yellow"),          ("#ca8a04", "#f59e0b")),
    (("purple", "violet"),        ("#7c3aed", "#6366f1")),
    (("brown", "coffee"),         ("#92400e", "#b45309")),
    (("teal", "cyan", "aqua"),    ("#0d9488", "#06b6d4")),
]

def accent_colors(color_scheme: str):
    cl = (color_scheme or "").lower()
    for words, pair in ACCENTS:
        if any(w in cl for w in words):
            return pair
    return "#2563eb", "#0ea5e9"


def package_slug(project_name: str) -> str:
    return re.sub(r"[^a-z0-9-]+", "-", (project_name or "").lower())[:40].strip("-") or "site"


def package_json(plan: GenerationPlan) -> str:
    pkg = {
        "name": package_slug(plan.project_name), "private": True, "version": "0.0.0",
        "type": "module",
        "scripts": {"dev": "vite", "build": "vite build", "preview": "vite preview"},
        "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"},
        "devDependencies": {
            "@vitejs/plugin-react": "^4.2.0",
            "autoprefixer": "^10.4.0",
            "postcss": "^8.4.0",
            "tailwindcss": "^3.4.0",
            "vite": "^5.0.0",
        },
    }
    return json.dumps(pkg, indent=2) + "\n"


def vite_config() -> str:
    return textwrap.dedent("""\
        import { defineConfig } from 'vite'
        import react from '@vitejs/plugin-react'

        export default defineConfig({
          plugins: [react()],
          server: { port: 5173 },
        })
        """)


def tailwind_config(plan: GenerationPlan) -> str:
    acc, acc2 = accent_colors(plan.color_scheme)
    return textwrap.dedent(f"""\
        export default {{
          content: ['./index.html', './src/**/*.{{js,jsx}}'],
          theme: {{
            extend: {{
              colors: {{
                primary:   '{acc}',
                secondary: '{acc2}',
              }},
              fontFamily: {{
                sans:   ['Inter', 'Poppins', 'system-ui', 'sans-serif'],
                arabic: ['Cairo', 'system-ui', 'sans-serif'],
              }},
            }},
          }},
          plugins: [],
        }}
        """)


def postcss_config() -> str:
    return "export default { plugins: { tailwindcss: {}, autoprefixer: {} } }\n"


FONTS_LATIN  = "family=Inter:wght@300;400;500;600;700;800&family=Poppins:wght@400;500;600;700;800"
FONTS_ARABIC = "family=Cairo:wght@300;400;500;600;700;800"

def font_link(mode: LanguageMode) -> str:
    families = {
        LanguageMode.ENGLISH_ONLY: FONTS_LATIN,
        LanguageMode.ARABIC_ONLY:  FONTS_ARABIC,
        LanguageMode.BILINGUAL:    f"{FONTS_LATIN}&{FONTS_ARABIC}",
    }[mode]
    return f"https://fonts.googleapis.com/css2?{families}&display=swap"


def index_html(plan: GenerationPlan) -> str:
    rtl = plan.language_mode == LanguageMode.ARABIC_ONLY
    return textwrap.dedent(f"""\
        <!DOCTYPE html>
        <html lang="{'ar' if rtl else 'en'}" dir="{'rtl' if rtl else 'ltr'}">
        <head>
          <meta charset="UTF-8" />
          <meta name="viewport" content="width=device-width, initial-scale=1.0" />
          <link rel="icon" type="image/svg+xml" href="/logo.svg" />
          <title>{plan.project_name}</title>
          <link rel="preconnect" href="https://fonts.googleapis.com" />
          <link rel="preconnect" href="https://fonts.gstatic.com" crossorigin />
          <link href="{font_link(plan.language_mode)}" rel="stylesheet" />
        </head>
        <body>
          <div id="root"></div>
          <script type="module" src="/src/main.jsx"></script>
        </body>
        </html>
        """)


def main_jsx() -> str:
    return textwrap.dedent("""\
        import React from 'react'
        import ReactDOM from 'react-dom/client'
        import App from './App.jsx'
        import './index.css'

        ReactDOM.createRoot(document.getElementById('root')).render(
          <React.StrictMode>
            <App />
          </React.StrictMode>
        )
        """)


def index_css(plan: GenerationPlan) -> str:
    acc, acc2 = accent_colors(plan.color_scheme)
    family = "'Cairo', sans-serif" if plan.language_mode == LanguageMode.ARABIC_ONLY \
        else "'Inter', 'Poppins', sans-serif"
    return textwrap.dedent(f"""\
        @tailwind base;
        @tailwind components;
        @tailwind utilities;

        @layer base {{
          html {{ scroll-behavior: smooth; }}
          body {{
            font-family: {family};
            background-color: #ffffff;
            color: #111827;
          }}
          [dir="rtl"] body, html[lang="ar"] body {{ font-family: 'Cairo', sans-serif; }}
        }}

        @layer utilities {{
          .gradient-text {{
            background: linear-gradient(135deg, {acc}, {acc2});
            -webkit-background-clip: text;
            -webkit-text-fill-color: transparent;
            background-clip: text;
          }}
        }}
        """)


I18N_JS = textwrap.dedent("""\
    import React, { createContext, useContext, useEffect, useState } from 'react';
    import enTranslations from './locales/en.json';
    import arTranslations from './locales/ar.json';

    const LanguageContext = createContext(null);

    export function useLanguage() {
      const context = useContext(LanguageContext);
      if (!context) {
        throw new Error('useLanguage must be used within LanguageProvider');
      }
      return context;
    }

    export default function LanguageProvider({ children }) {
      const [language, setLanguage] = useState('en');

      const toggleLanguage = () => {
        setLanguage(prev => (prev === 'en' ? 'ar' : 'en'));
      };

      const t = (key) => {
        const translations = language === 'en' ? enTranslations : arTranslations;
        let value = translations;
        for (const k of key.split('.')) {
          value = value?.[k];
        }
        if (value === undefined || value === null) {
          return key;
        }
        return value;
      };

      useEffect(() => {
        document.documentElement.setAttribute('dir', language === 'ar' ? 'rtl' : 'ltr');
        document.documentElement.setAttribute('lang', language);
      }, [language]);

      return (
        <LanguageContext.Provider value={{ language, setLanguage, toggleLanguage, t }}>
          {children}
        </LanguageContext.Provider>
      );
    }
    """)


def logo_svg(project_name: str, color_scheme: str = "") -> str:
    acc, acc2 = accent_colors(color_scheme)
    initials = "".join(w[0] for w in re.findall(r"[A-Za-z0-9]+", project_name or "")[:2]).upper() or "S"
    return textwrap.dedent(f"""\
        <svg xmlns="http://www.w3.org/2000/svg" width="64" height="64" viewBox="0 0 64 64">
          <defs>
            <linearGradient id="g" x1="0" y1="0" x2="1" y2="1">
              <stop offset="0" stop-color="{acc}"/><stop offset="1" stop-color="{acc2}"/>
            </linearGradient>
          </defs>
          <rect width="64" height="64" rx="14" fill="url(#g)"/>
          <text x="32" y="41" font-family="Inter, sans-serif" font-size="24" font-weight="700"
                fill="#fff" text-anchor="middle">{initials}</text>
        </svg>
        """)


def app_entry(components: list, language_mode: LanguageMode) -> str:
    """App.jsx built from the authoritative component list. Never model-generated."""
    ordered   = render_order(components)
    bilingual = language_mode == LanguageMode.BILINGUAL
    rtl       = language_mode == LanguageMode.ARABIC_ONLY

    lines = ["import React from 'react';"]
    if bilingual:
        lines.append("import LanguageProvider from './i18n.js';")
    for name in ordered:
        lines.append(f"import {name} from './components/{name}';")

    wrapper = '<div className="min-h-screen bg-white text-gray-900 antialiased"'
    wrapper += ' dir="rtl">' if rtl else ">"
    indent = "        " if bilingual else "      "
    lines += ["", "export default function App() {", "  return ("]
    if bilingual:
        lines.append("    <LanguageProvider>")
    lines.append(indent[:-2] + wrapper)
    for name in ordered:
        lines.append(f"{indent}<{name} />")
    lines.append(indent[:-2] + "</div>")
    if bilingual:
        lines.append("    </LanguageProvider>")
    lines += ["  );", "}"]
    return "\n".join(lines) + "\n"


# ── Prompts ───────────────────────────────────────────────────────────────────

STYLE_CONTRACT = textwrap.dedent("""\
    You are an expert React + Tailwind CSS developer writing ONE section component
    of a one-page website. Output ONLY the JSX file. No markdown fences, no prose,
    no file-operation calls such as write_file(...).

    STRUCTURE
    - Imports first, then `export default function {Name}() { ... }`.
    - All data arrays, constants and state live INSIDE the function body.
    - Only import from 'react'{i18n_import}. No other packages: use inline SVG or emoji for icons.
    - Self-close void elements: <br />, <img />, <input />, <hr />.
    - Always use className="..." with double quotes.
    - Semantic HTML: <nav>, <header>, <section>, <footer>, <h1>-<h3>, <ul>/<li>, <form>.
    - The root element of every section except Navbar and Footer is
      <section id="{section_id}">. The Navbar links to sections with href="#<id>".
    - Images: use https://images.unsplash.com/... URLs or https://placehold.co/600x400
      as string literals. NEVER reference an image variable you did not declare.

    DESIGN SYSTEM (closed palette)
    - Colors: primary / secondary (Tailwind theme), gray-50..gray-900, white.
    - Section spacing: py-16 md:py-24, container: max-w-6xl mx-auto px-4 md:px-6.
    - Type scale: h1 text-4xl md:text-6xl font-bold, h2 text-3xl md:text-4xl font-bold,
      body text-base md:text-lg text-gray-600.
    - Mobile-first: base styles first, then sm:, md:, lg: overrides in that order.
    - Cards: rounded-2xl shadow-sm hover:shadow-md transition bg-white p-6.
    """)

BILINGUAL_RULES = textwrap.dedent("""\
    TRANSLATIONS (bilingual site, English + Arabic)
    - import { useLanguage } from '../i18n.js' and call
      const { t, language, toggleLanguage } = useLanguage()
    - NO hardcoded user-visible strings. Every text comes from t('<namespace>.<key>').
    - Only use keys listed under AVAILABLE KEYS. Never invent keys.
    - NEVER render a translation object directly. Drill into leaf keys:
        WRONG: {t('hero')}        RIGHT: {t('hero.title')}
    - NEVER call .map() on a translation value without an array guard:
        const items = Array.isArray(t('menu.items')) ? t('menu.items') : [];
        {items.map((item, i) => ...)}
    - Layout must work in both directions: prefer gap-*, ms-*/me-*, ps-*/pe-*, text-start.
    """)

SINGLE_LANGUAGE_RULES = {
    LanguageMode.ENGLISH_ONLY: "LANGUAGE\n- Write all visible text directly in English.\n",
    LanguageMode.ARABIC_ONLY: textwrap.dedent("""\
        LANGUAGE
        - Write all visible text directly in Modern Standard Arabic.
        - The page is right-to-left: use text-right / text-start and ms-*/me-* spacing.
        """),
}

NAVBAR_RULES = textwrap.dedent("""\
    NAVBAR
    - fixed top-0 inset-x-0 z-50 bg-white/90 backdrop-blur border-b border-gray-100.
    - Logo or site name on one side, links to: {links}.
    - Mobile hamburger (useState) that toggles a dropdown; close it on link click.
    {toggle}
    """)

TRANSLATION_CONTRACT = textwrap.dedent("""\
    You write website copy as ONE JSON object. No markdown, no prose.

    STRUCTURE
    - One top-level key per component namespace: {namespaces}.
    - Under each namespace, short camelCase keys with real, specific copy
      (never placeholders like "hero.title" or "...").
    - ANY list-like content (nav links, menu items, services, features, gallery items,
      testimonials, team members) MUST be a JSON array, never an object:
        RIGHT: "features": {{ "items": [{{"title": "...", "text": "..."}}] }}
        WRONG: "features": {{ "items": {{ "item1": {{...}} }} }}
    - navbar.links is an array of link labels in section order; footer has no links array.
    - Include navbar.toggleLanguage (label of the button that switches language).
    """)


class CoderAgent:
    def __init__(self, llm: LLMClient, workspace: Workspace, on_write=None, timeout: float = None):
        self.llm           = llm
        self.workspace     = workspace
        self.tools         = file_tools(workspace, on_write)
        self.timeout       = timeout
        self.files_written = []
        self.skipped       = []

    # ── Public API ────────────────────────────────────────────────────────────

    def generate(self, plan: GenerationPlan, architecture: ArchitecturePlan,
                 prompt: str, history=None) -> list:
        """Write every required file in phase order. Returns per-file problems (never raises for one file)."""
        required = [t for t in architecture.tasks if t.priority == "required"]

        log.info("   ⚙️  Config files")
        for task in [t for t in required if t.type == "config"]:
            self._write(task.path, self._config_content(task, plan))

        translations = [t for t in required if t.type == "translation"]
        if translations:
            log.info("   🌐 Translations")
            self._generate_translations(translations, plan, architecture, prompt, history)

        components = [t for t in required if t.type == "component"]
        log.info(f"   🧩 {len(components)} components")
        for task in components:
            self._generate_component(task, plan, architecture, prompt, history)

        for task in architecture.tasks_of("asset", "optional"):
            if task.path.endswith(".svg"):
                self._write(task.path, logo_svg(plan.project_name, plan.color_scheme))

        entries = [t for t in required if t.type == "entry"]
        for task in [t for t in entries if t.path != "src/App.jsx"]:
            self._write(task.path, self._entry_content(task, plan))
        if any(t.path == "src/App.jsx" for t in entries):
            app = app_entry(architecture.components, plan.language_mode)
            self._write("src/App.jsx", sanitize(app, "App"))

        return list(self.skipped)

    # ── Phases ────────────────────────────────────────────────────────────────

    def _config_content(self, task: FileTask, plan: GenerationPlan) -> str:
        return {
            "package.json":       lambda: package_json(plan),
            "vite.config.js":     vite_config,
            "tailwind.config.js": lambda: tailwind_config(plan),
            "postcss.config.js":  postcss_config,
            "index.html":         lambda: index_html(plan),
        }[task.path]()

    def _entry_content(self, task: FileTask, plan: GenerationPlan) -> str:
        if task.path == "src/main.jsx":
            return main_jsx()
        if task.path == "src/index.css":
            return index_css(plan)
        raise KeyError(task.path)

    def _generate_translations(self, tasks: list, plan: GenerationPlan,
                               architecture: ArchitecturePlan, prompt: str, history):
        paths = {t.path for t in tasks}
        if "src/i18n.js" in paths:
            self._write("src/i18n.js", I18N_JS)

        namespaces = ", ".join(c[:1].lower() + c[1:] for c in render_order(architecture.components))
        system = TRANSLATION_CONTRACT.format(namespaces=namespaces)

        en = {}
        try:
            en = self.llm.propose_json(
                system,
                f"Website: {plan.project_name} ({plan.industry})\n"
                f"User request: {prompt}\n\n"
                f"Write the complete ENGLISH copy as JSON.",
                history=history, temperature=0.5, max_tokens=3000,
                timeout=self.timeout, label="en.json")
        except GenerationError as e:
            log.warning(f"   ⚠️  en.json generation failed: {e}")
            self.skipped.append(f"src/locales/en.json: {e}")
        en = coerce_list_objects(en)

        ar = {}
        try:
            ar = self.llm.propose_json(
                system + "\nThe Arabic file MUST mirror the English structure exactly: same keys, "
                         "same nesting, arrays stay arrays with the same length.\n",
                f"Website: {plan.project_name} ({plan.industry})\n"
                f"User request: {prompt}\n\n"
                f"English structure to mirror:\n{json.dumps(en, ensure_ascii=False)}\n\n"
                f"Write the complete ARABIC copy as JSON (natural Modern Standard Arabic).",
                history=history, temperature=0.5, max_tokens=3000,
                timeout=self.timeout, label="ar.json")
        except GenerationError as e:
            log.warning(f"   ⚠️  ar.json generation failed: {e} — mirroring English")
            self.skipped.append(f"src/locales/ar.json: {e}")

        ar = align_locales(en, ar)
        if "src/locales/en.json" in paths:
            self._write("src/locales/en.json", json.dumps(en, indent=2, ensure_ascii=False) + "\n")
        if "src/locales/ar.json" in paths:
            self._write("src/locales/ar.json", json.dumps(ar, indent=2, ensure_ascii=False) + "\n")

    def _generate_component(self, task: FileTask, plan: GenerationPlan,
                            architecture: ArchitecturePlan, prompt: str, history):
        name = resolve_component_name(task.path, architecture.components)
        path = component_path(name)
        log.info(f"   Generating {name}...")
        try:
            raw = self.llm.complete(
                self.component_system_prompt(name, plan, architecture),
                self.component_user_prompt(name, task, plan, prompt),
                history=history, temperature=0.4, max_tokens=4096,
                timeout=self.timeout, label=name)
        except GenerationError as e:
            log.warning(f"   ⚠️  {name} skipped: {e}")
            self.skipped.append(f"{path}: {e}")
            return

        code = extract_code(raw)
        if not code:
            log.warning(f"   ⚠️  {name} skipped: response contained no code")
            self.skipped.append(f"{path}: empty response")
            return
        self._write(path, sanitize(code, name))

    # ── Prompt assembly ───────────────────────────────────────────────────────

    def component_system_prompt(self, name: str, plan: GenerationPlan,
                                architecture: ArchitecturePlan) -> str:
        bilingual = plan.is_bilingual
        parts = [STYLE_CONTRACT
                 .replace("{Name}", name)
                 .replace("{section_id}", section_id(name))
                 .replace("{i18n_import}", " and '../i18n.js'" if bilingual else "")]
        parts.append(BILINGUAL_RULES if bilingual else SINGLE_LANGUAGE_RULES[plan.language_mode])
        if name == "Navbar":
            links = ", ".join(f"#{section_id(c)}"
                              for c in render_order(architecture.components)
                              if c not in ("Navbar", "Footer"))
            toggle = ("- A language toggle button calling toggleLanguage(), labelled "
                      "t('navbar.toggleLanguage').") if bilingual else ""
            parts.append(NAVBAR_RULES.format(links=links, toggle=toggle))
        return "\n".join(parts)

    def component_user_prompt(self, name: str, task: FileTask, plan: GenerationPlan,
                              prompt: str) -> str:
        lines = [
            f"Write the {name} component ({task.description}).",
            f"Website: {plan.project_name} — {plan.industry}",
            f"Description: {plan.description[:400]}",
        ]
        if plan.color_scheme:
            lines.append(f"Colors: {plan.color_scheme}")
        lines.append(f"User request: {prompt[:600]}")

        if plan.is_bilingual:
            en = self._read_locale("src/locales/en.json")
            ns = name[:1].lower() + name[1:]
            subtree = en.get(ns, en.get(name.lower()))
            keys = keys_for(en, name)
            if keys:
                lines.append("\nAVAILABLE KEYS: " + ", ".join(keys))
                lines.append(f"English values for reference:\n{json.dumps(subtree, ensure_ascii=False)[:1500]}")
            else:
                lines.append(f"\nNo '{ns}' namespace exists yet; only use navbar/footer keys that exist "
                             f"or keep text minimal via t('{ns}.title') and t('{ns}.subtitle').")
        lines.append(f"\nOutput ONLY the JSX for export default function {name}().")
        return "\n".join(lines)

    def _read_locale(self, path: str) -> dict:
        raw = self.tools.read_file(path)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    # ── File I/O ──────────────────────────────────────────────────────────────

    def _write(self, path: str, content: str):
        self.tools.write_file(path, content)
        self.files_written.append(path)
