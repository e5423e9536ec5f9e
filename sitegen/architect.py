"""Plan -> ordered file task list. Pure; no model calls."""
import logging
from dataclasses import dataclass, field

from .planner import GenerationPlan, section_to_component_name

log = logging.getLogger("architect")

COMPONENTS_DIR = "src/components"

CONFIG_TASKS = [
    ("package.json",       "Package manifest: react, react-dom, vite, tailwind toolchain"),
    ("vite.config.js",     "Vite bundler config with the React plugin"),
    ("tailwind.config.js", "Tailwind content globs and theme extension"),
    ("postcss.config.js",  "PostCSS pipeline: tailwindcss + autoprefixer"),
    ("index.html",         "HTML entry with fonts, lang/dir and the #root mount"),
]
ENTRY_TASKS = [
    ("src/main.jsx",  "JS entry mounting <App /> into #root"),
    ("src/index.css", "Global stylesheet with Tailwind layers"),
    ("src/App.jsx",   "Root component rendering every section in fixed order"),
]
TRANSLATION_TASKS = [
    ("src/i18n.js",          "LanguageProvider / useLanguage translation runtime"),
    ("src/locales/en.json",  "English strings for every component"),
    ("src/locales/ar.json",  "Arabic strings mirroring the English structure"),
]
LOGO_ASSET = ("public/logo.svg", "Placeholder logo")


@dataclass(frozen=True)
class FileTask:
    path: str
    type: str           # component | config | asset | translation | entry
    description: str
    priority: str = "required"

    def to_dict(self) -> dict:
        return {"path": self.path, "type": self.type,
                "description": self.description, "priority": self.priority}


@dataclass
class ArchitecturePlan:
    tasks: list = field(default_factory=list)
    components: list = field(default_factory=list)

    def tasks_of(self, type_: str, priority: str = None) -> list:
        return [t for t in self.tasks
                if t.type == type_ and (priority is None or t.priority == priority)]

    @property
    def config_files(self) -> list:
        return [t.path for t in self.tasks_of("config")]

    @property
    def entry_files(self) -> list:
        return [t.path for t in self.tasks_of("entry")]

    @property
    def translation_files(self) -> list:
        return [t.path for t in self.tasks_of("translation")]

    @property
    def assets(self) -> list:
        return [t.path for t in self.tasks_of("asset")]

    def to_dict(self) -> dict:
        return {
            "tasks":            [t.to_dict() for t in self.tasks],
            "components":       list(self.components),
            "configFiles":      self.config_files,
            "entryFiles":       self.entry_files,
            "translationFiles": self.translation_files,
            "assets":           self.assets,
        }


def component_path(name: str) -> str:
    return f"{COMPONENTS_DIR}/{name}.jsx"


def architect(plan: GenerationPlan) -> ArchitecturePlan:
    tasks = [FileTask(p, "config", d) for p, d in CONFIG_TASKS]
    tasks += [FileTask(p, "entry", d) for p, d in ENTRY_TASKS]
    if plan.is_bilingual:
        tasks += [FileTask(p, "translation", d) for p, d in TRANSLATION_TASKS]

    components = []
    for section in plan.required_sections:
        name = section_to_component_name(section)
        if name in components:
            log.info(f"   ↷ '{section}' collapses onto existing component {name}")
            continue
        components.append(name)
        tasks.append(FileTask(component_path(name), "component",
                              f"'{section}' section of the {plan.industry} site"))

    tasks.append(FileTask(LOGO_ASSET[0], "asset", LOGO_ASSET[1], priority="optional"))

    log.info(f"   📐 {len(tasks)} tasks | components: {components}")
    return ArchitecturePlan(tasks=tasks, components=components)
