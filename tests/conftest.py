# tests/conftest.py
"""
Common test fixtures for SiteGen.
"""
import json
import re
import pytest

from sitegen.llm import LLMClient
from sitegen.planner import LanguageMode
from sitegen.coder import app_entry
from sitegen.store import ProjectLock, ProjectStore


def component_code(name: str, bilingual: bool = False) -> str:
    """A well-formed component as a model would return it."""
    if bilingual:
        ns = name[:1].lower() + name[1:]
        return (
            "import React from 'react';\n"
            "import { useLanguage } from '../i18n.js';\n\n"
            f"export default function {name}() {{\n"
            "  const { t } = useLanguage();\n"
            "  return (\n"
            f"    <section id=\"{name.lower()}\" className=\"py-16 md:py-24\">\n"
            f"      <h2 className=\"text-3xl font-bold\">{{t('{ns}.title')}}</h2>\n"
            "    </section>\n"
            "  );\n"
            "}\n"
        )
    return (
        "import React from 'react';\n\n"
        f"export default function {name}() {{\n"
        "  return (\n"
        f"    <section id=\"{name.lower()}\" className=\"py-16 md:py-24\">\n"
        f"      <h2 className=\"text-3xl font-bold\">{name}</h2>\n"
        "    </section>\n"
        "  );\n"
        "}\n"
    )


class ScriptedLLM(LLMClient):
    """
    LLMClient double keyed by call label.

    A response may be a string, a dict (returned as JSON), an exception
    instance (raised) or a callable (system, user) -> any of those. Labels
    without a scripted response that look like component names get a generic
    component back.
    """
    def __init__(self, responses=None, bilingual=False):
        self.responses = dict(responses or {})
        self.bilingual = bilingual
        self.calls = []

    def complete(self, system, user, history=None, temperature=0.2, json_mode=False,
                 max_tokens=None, timeout=None, label=None):
        self.calls.append({"system": system, "user": user, "history": history,
                           "json_mode": json_mode, "label": label})
        resp = self.responses.get(label)
        if resp is None and label and re.fullmatch(r"[A-Z]\w*", label):
            resp = "```jsx\n" + component_code(label, self.bilingual) + "```"
        if callable(resp):
            resp = resp(system, user)
        if isinstance(resp, Exception):
            raise resp
        if isinstance(resp, (dict, list)):
            return json.dumps(resp, ensure_ascii=False)
        return resp if resp is not None else ""

    @property
    def labels(self):
        return [c["label"] for c in self.calls]

    def call(self, label):
        return next(c for c in self.calls if c["label"] == label)


@pytest.fixture
def restaurant_proposal():
    """Planner output that gets the language wrong and omits industry defaults."""
    return {
        "industry": "restaurant",
        "requiredSections": ["navbar", "hero", "menu", "contact", "footer"],
        "optionalSections": ["gallery", "blog"],
        "languageMode": "ENGLISH_ONLY",
        "projectName": "Saffron House",
        "colorScheme": "warm orange and cream",
        "description": "A modern restaurant website",
    }


@pytest.fixture
def en_locale():
    return {
        "navbar": {"home": "Home", "menu": "Menu", "contact": "Contact", "toggleLanguage": "العربية"},
        "hero": {"title": "Taste the Season", "subtitle": "Fresh food, warm people", "cta": "Book a table"},
        "menu": {"title": "Our Menu", "items": [
            {"name": "Lentil Soup", "price": "$6"},
            {"name": "Grilled Halloumi", "price": "$9"},
            {"name": "Knafeh", "price": "$7"},
        ]},
        "footer": {"rights": "All rights reserved"},
    }


@pytest.fixture
def ar_locale():
    """Arabic copy with a short array and an object where an array belongs."""
    return {
        "navbar": {"home": "الرئيسية", "menu": "القائمة", "contact": "اتصل بنا", "toggleLanguage": "English"},
        "hero": {"title": "تذوق الموسم", "subtitle": "طعام طازج", "cta": "احجز طاولة"},
        "menu": {"title": "قائمتنا", "items": {"0": {"name": "شوربة عدس", "price": "٦$"}}},
    }


@pytest.fixture
def restaurant_llm(restaurant_proposal, en_locale, ar_locale):
    return ScriptedLLM({
        "planner": restaurant_proposal,
        "en.json": en_locale,
        "ar.json": ar_locale,
    }, bilingual=True)


HERO = """\
import React from 'react';

export default function Hero() {
  return (
    <section id="hero" className="py-16 md:py-24 bg-white">
      <div className="max-w-6xl mx-auto px-4 text-center">
        <h1 className="text-4xl font-bold text-gray-900">Fresh Bread Every Morning</h1>
        <p className="mt-4 text-lg text-gray-600">Baked with love since 1998.</p>
        <a href="#contact" className="mt-8 inline-block rounded-lg bg-amber-600 px-6 py-3 text-white">
          Visit us
        </a>
      </div>
    </section>
  );
}
"""

ABOUT = """\
import React from 'react';

export default function About() {
  return (
    <section id="about" className="py-16 md:py-24">
      <div className="max-w-6xl mx-auto px-4">
        <h2 className="text-3xl font-bold">Our Story</h2>
        <p className="mt-4 text-gray-600">A family bakery with career highlights in every loaf.</p>
        <img src={storyImage} alt="Our bakery" className="mt-6 rounded-xl" />
      </div>
    </section>
  );
}
"""


@pytest.fixture
def site_files():
    """A small generated English site."""
    components = ["Navbar", "Hero", "About", "Contact", "Footer"]
    files = {
        "package.json": json.dumps({"name": "crumb-bakery", "private": True}),
        "index.html": "<!DOCTYPE html><html><head><title>Crumb Bakery</title></head>"
                      "<body><div id=\"root\"></div></body></html>",
        "src/main.jsx": "import React from 'react'\nimport ReactDOM from 'react-dom/client'\n"
                        "import App from './App.jsx'\nimport './index.css'\n\n"
                        "ReactDOM.createRoot(document.getElementById('root')).render(\n"
                        "  <React.StrictMode>\n    <App />\n  </React.StrictMode>\n)\n",
        "src/index.css": "@tailwind base;\n@tailwind components;\n@tailwind utilities;\n",
        "src/App.jsx": app_entry(components, LanguageMode.ENGLISH_ONLY),
        "src/components/Hero.jsx": HERO,
        "src/components/About.jsx": ABOUT,
    }
    for name in ("Navbar", "Contact", "Footer"):
        files[f"src/components/{name}.jsx"] = component_code(name)
    return files


@pytest.fixture
def store(tmp_path):
    return ProjectStore(tmp_path / "production-ready")


@pytest.fixture
def lock(tmp_path):
    return ProjectLock(tmp_path / "production-ready")
