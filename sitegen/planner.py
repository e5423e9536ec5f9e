import logging, re, textwrap
from dataclasses import dataclass
from enum import Enum

from . import config
from .errors import GenerationError
from .llm import LLMClient

log = logging.getLogger("planner")


class LanguageMode(str, Enum):
    ARABIC_ONLY  = "ARABIC_ONLY"
    ENGLISH_ONLY = "ENGLISH_ONLY"
    BILINGUAL    = "BILINGUAL"

    @property
    def label(self) -> str:
        return {"ARABIC_ONLY": "arabic-only", "ENGLISH_ONLY": "english-only",
                "BILINGUAL": "bilingual"}[self.value]

    @classmethod
    def coerce(cls, value):
        if value is None or isinstance(value, cls):
            return value
        v = str(value).strip().upper().replace("-", "_")
        aliases = {"ARABIC": "ARABIC_ONLY", "ENGLISH": "ENGLISH_ONLY"}
        return cls(aliases.get(v, v))


# ── Language detection ────────────────────────────────────────────────────────
# Explicit instructions win over the script census; checked in this order.
BILINGUAL_KW    = ["bilingual", "both languages", "english and arabic", "arabic and english",
                   "عربي وإنجليزي", "عربي و إنجليزي", "ثنائي اللغة", "en + ar", "ar + en"]
ARABIC_ONLY_KW  = ["arabic only", "arabic-only", "only arabic", "عربي فقط", "بالعربية فقط"]
ENGLISH_ONLY_KW = ["english only", "english-only", "only english", "إنجليزي فقط", "بالإنجليزية فقط"]

_ARABIC_RE  = re.compile(r"[\u0600-\u06FF]")
_ENGLISH_RE = re.compile(r"[a-zA-Z]")


def detect_language_mode(prompt: str) -> LanguageMode:
    """Pure function of the prompt text. Never consults the model."""
    text  = prompt or ""
    lower = text.lower()

    if any(k in lower for k in BILINGUAL_KW):
        return LanguageMode.BILINGUAL
    if any(k in lower for k in ARABIC_ONLY_KW):
        return LanguageMode.ARABIC_ONLY
    if any(k in lower for k in ENGLISH_ONLY_KW):
        return LanguageMode.ENGLISH_ONLY

    arabic  = len(_ARABIC_RE.findall(text))
    english = len(_ENGLISH_RE.findall(text))
    total   = len(text)

    if arabic > 0 and arabic / total > 0.7 and english < arabic:
        return LanguageMode.ARABIC_ONLY
    if arabic > 10 and english > 10:
        return LanguageMode.BILINGUAL
    if arabic > 0 and english == 0:
        return LanguageMode.ARABIC_ONLY
    return LanguageMode.ENGLISH_ONLY


# ── Section naming ────────────────────────────────────────────────────────────

def _camel_to_slug(s: str) -> str:
    # "ContactUs" -> "Contact-Us" so PascalCase names map back to themselves
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "-", s)


def section_to_component_name(section: str) -> str:
    """'contact-us' / 'Contact Us' / 'contact_us' -> 'ContactUs'. Idempotent."""
    cleaned = re.sub(r"[^A-Za-z0-9\s\-_]", " ", _camel_to_slug(str(section or "")))
    words   = [w for w in re.split(r"[\s\-_]+", cleaned) if w]
    name    = "".join(w[0].upper() + w[1:].lower() for w in words)
    if not name:
        return "Section"
    if name[0].isdigit():
        name = "Section" + name
    return name


def normalize_section(section: str) -> str:
    s = _camel_to_slug(str(section or "").strip())
    s = re.sub(r"[\s_]+", "-", s.lower())
    return re.sub(r"[^a-z0-9\-\u0600-\u06FF]", "", s).strip("-")


# ── Industry ──────────────────────────────────────────────────────────────────

MANDATORY_SECTIONS = ["navbar", "hero", "contact", "footer"]

INDUSTRY_DEFAULT_SECTIONS = {
    "restaurant": ["menu", "gallery", "testimonials", "about"],
    "portfolio":  ["gallery", "projects", "skills", "about"],
    "clinic":     ["services", "appointment", "about"],
    "agency":     ["services", "pricing", "portfolio", "about"],
}
GENERIC_SECTIONS = ["about", "features"]

INDUSTRY_ALIASES = {
    "cafe": "restaurant", "café": "restaurant", "coffee": "restaurant",
    "coffee shop": "restaurant", "bistro": "restaurant", "bakery": "restaurant",
    "medical": "clinic", "dental": "clinic", "hospital": "clinic", "doctor": "clinic",
    "creative agency": "agency", "marketing": "agency", "studio": "agency",
    "personal": "portfolio", "resume": "portfolio",
}

INDUSTRY_KEYWORDS = {
    "restaurant": ["restaurant", "cafe", "café", "coffee", "bistro", "bakery", "menu",
                   "مطعم", "مقهى", "كافيه", "قهوة"],
    "portfolio":  ["portfolio", "my work", "my projects", "resume", "showcase",
                   "معرض أعمال", "معرض", "أعمالي"],
    "clinic":     ["clinic", "medical", "dental", "doctor", "hospital", "عيادة", "طبي", "طبيب"],
    "agency":     ["agency", "studio", "marketing firm", "وكالة"],
    "saas":       ["saas", "software", "platform", "startup", "app"],
    "ecommerce":  ["shop", "store", "ecommerce", "e-commerce", "متجر"],
    "blog":       ["blog", "articles", "magazine", "مدونة"],
}


def canonical_industry(industry: str) -> str:
    ind = str(industry or "").strip().lower()
    return INDUSTRY_ALIASES.get(ind, ind)


def classify_industry(prompt: str) -> str:
    """Keyword scoring; first table entry wins ties."""
    pl = (prompt or "").lower()
    scores = {k: sum(1 for w in words if w in pl) for k, words in INDUSTRY_KEYWORDS.items()}
    best = max(scores, key=lambda k: scores[k])
    return best if scores[best] else "other"


def default_sections_for(industry: str) -> list:
    return INDUSTRY_DEFAULT_SECTIONS.get(canonical_industry(industry), GENERIC_SECTIONS)


# ── Plan ──────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GenerationPlan:
    industry: str
    required_sections: tuple
    optional_sections: tuple
    language_mode: LanguageMode
    project_name: str
    folder_structure: tuple = ("src/components", "src/locales", "public")
    required_libraries: tuple = ("react", "react-dom", "vite")
    suggested_components: tuple = ()
    description: str = ""
    color_scheme: str = ""

    @property
    def is_bilingual(self) -> bool:
        return self.language_mode == LanguageMode.BILINGUAL

    def to_dict(self) -> dict:
        return {
            "industry":            self.industry,
            "requiredSections":    list(self.required_sections),
            "optionalSections":    list(self.optional_sections),
            "languageMode":        self.language_mode.value,
            "projectName":         self.project_name,
            "folderStructure":     list(self.folder_structure),
            "requiredLibraries":   list(self.required_libraries),
            "suggestedComponents": list(self.suggested_components),
            "description":         self.description,
            "colorScheme":         self.color_scheme,
        }


def _dedupe(seq) -> list:
    seen, out = set(), []
    for s in seq:
        n = normalize_section(s)
        if n and n not in seen:
            seen.add(n)
            out.append(n)
    return out


def _as_list(value) -> list:
    if isinstance(value, str):
        return [v for v in re.split(r"[,\n]", value) if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if isinstance(v, (str, int)) and str(v).strip()]
    return []


def extract_project_name(prompt: str) -> str:
    text = prompt or ""
    m = re.search(r"[\"“«]([^\"”»]{2,40})[\"”»]", text)
    if m:
        return m.group(1).strip()
    m = re.search(r"\b(?:called|named)\s+([A-Z][\w&'-]*(?:\s+[A-Z][\w&'-]*){0,3})", text)
    if m:
        return m.group(1).strip()
    return "My Project"


def finalize_plan(proposal: dict, prompt: str, language_mode: LanguageMode) -> GenerationPlan:
    """
    Enforce plan invariants on a (possibly partial) model proposal:
    mandatory sections present, slugs deduplicated and lower-case, industry
    defaults appended to required, optional disjoint from required, and the
    language mode taken from the deterministic detector.
    """
    proposal = proposal if isinstance(proposal, dict) else {}

    industry = canonical_industry(proposal.get("industry"))
    if not industry or industry in ("other", "general", "unknown"):
        industry = classify_industry(prompt)
    industry_key = canonical_industry(industry)

    proposed = _dedupe(_as_list(proposal.get("requiredSections")))
    optional = _dedupe(_as_list(proposal.get("optionalSections")))

    head = ["navbar", "hero"]
    tail = ["contact", "footer"]
    middle = [s for s in proposed if s not in head + tail]
    known = set(head + tail + middle)
    for s in default_sections_for(industry_key):
        if s not in known:
            middle.append(s)
            known.add(s)

    required = _dedupe(head + middle + tail)
    optional = [s for s in optional if s not in required]

    if proposal.get("languageMode") and _coerce_safe(proposal["languageMode"]) != language_mode:
        log.info(f"   ↺ overriding model language mode {proposal['languageMode']} → {language_mode.value}")

    name = proposal.get("projectName")
    if not isinstance(name, str) or not name.strip():
        name = extract_project_name(prompt)

    return GenerationPlan(
        industry             = industry_key or "other",
        required_sections    = tuple(required),
        optional_sections    = tuple(optional),
        language_mode        = language_mode,
        project_name         = name.strip()[:60],
        folder_structure     = tuple(_as_list(proposal.get("folderStructure")))
                               or GenerationPlan.folder_structure,
        required_libraries   = tuple(_as_list(proposal.get("requiredLibraries")))
                               or GenerationPlan.required_libraries,
        suggested_components = tuple(section_to_component_name(s) for s in required),
        description          = str(proposal.get("description") or prompt[:400]),
        color_scheme         = str(proposal.get("colorScheme") or ""),
    )


def fallback_plan(prompt: str, language_mode: LanguageMode) -> GenerationPlan:
    sections = ("navbar", "hero", "about", "contact", "footer")
    return GenerationPlan(
        industry             = "other",
        required_sections    = sections,
        optional_sections    = (),
        language_mode        = language_mode,
        project_name         = "My Project",
        suggested_components = tuple(section_to_component_name(s) for s in sections),
        description          = (prompt or "")[:400],
    )


def _coerce_safe(value):
    try:
        return LanguageMode.coerce(value)
    except ValueError:
        return None


SYSTEM_PROMPT = textwrap.dedent("""\
    You are a senior web development planner. Analyze the user's request for a
    one-page marketing website and return a generation plan as ONE JSON object.

    The request may be in Arabic, English or both. Translate Arabic industry words:
      مطعم / مقهى → restaurant, عيادة → clinic, معرض أعمال → portfolio, وكالة → agency, متجر → ecommerce

    JSON shape (no markdown, no prose):
    {
      "industry": "restaurant|portfolio|clinic|saas|agency|ecommerce|blog|other",
      "requiredSections": ["navbar", "hero", "about", "contact", "footer"],
      "optionalSections": ["pricing", "faq"],
      "languageMode": "ARABIC_ONLY|ENGLISH_ONLY|BILINGUAL",
      "projectName": "Short brand name",
      "description": "One paragraph describing the site and its audience",
      "colorScheme": "e.g. warm amber and cream",
      "folderStructure": ["src/components", "src/locales", "public"],
      "requiredLibraries": ["react", "react-dom", "vite"]
    }

    Section rules:
    - ALWAYS include navbar, hero, contact, footer in requiredSections.
    - Section names are lowercase single words or hyphenated slugs.
    - Industry defaults (put them in requiredSections):
        restaurant / cafe / coffee → menu, gallery, testimonials, about
        portfolio                  → gallery, projects, skills, about
        clinic / medical           → services, appointment, about
        agency                     → services, pricing, portfolio, about
        anything else              → about, features
    - Never list a section in both requiredSections and optionalSections.
    """)


class PlannerAgent:
    def __init__(self, llm: LLMClient, force_bilingual: bool = None, timeout: float = None):
        self.llm             = llm
        self.force_bilingual = config.FORCE_BILINGUAL if force_bilingual is None else force_bilingual
        self.timeout         = timeout

    def plan(self, prompt: str, history=None) -> GenerationPlan:
        mode = self.language_mode(prompt)
        log.info(f"   🌐 Language mode: {mode.value}")

        try:
            proposal = self.llm.propose_json(
                SYSTEM_PROMPT,
                f"User request:\n{prompt}\n\nReturn the JSON plan only.",
                history=history, temperature=0.2, max_tokens=800,
                timeout=self.timeout, label="planner")
        except GenerationError as e:
            log.warning(f"   ⚠️  Planner call failed ({e}) — using fallback plan")
            return fallback_plan(prompt, mode)

        plan = finalize_plan(proposal, prompt, mode)
        log.info(f"   🧭 Industry: {plan.industry} | Sections: {list(plan.required_sections)}")
        return plan

    def language_mode(self, prompt: str) -> LanguageMode:
        mode = detect_language_mode(prompt)
        if self.force_bilingual and mode != LanguageMode.BILINGUAL:
            log.info(f"   ↑ bilingual policy on — {mode.value} → BILINGUAL")
            return LanguageMode.BILINGUAL
        return mode
