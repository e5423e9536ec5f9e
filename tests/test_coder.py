# tests/test_coder.py
"""Tests for file generation, including the bilingual restaurant end-to-end run."""
import json
import re
import pytest

from sitegen.architect import architect
from sitegen.coder import (
    CoderAgent, app_entry, package_json, render_order, resolve_component_name, section_id,
)
from sitegen.errors import GenerationError
from sitegen.planner import LanguageMode, PlannerAgent
from sitegen.preview import PLACEHOLDER_IMAGE, render_preview
from sitegen.translations import symmetry_issues
from sitegen.workspace import Workspace

from conftest import ScriptedLLM

RESTAURANT = "A modern restaurant website, bilingual"


def _app_imports(app: str) -> list:
    return re.findall(r"^import (\w+) from '\./components/\w+';$", app, re.MULTILINE)


def _generate(llm, prompt):
    plan = PlannerAgent(llm).plan(prompt)
    arch = architect(plan)
    ws = Workspace()
    coder = CoderAgent(llm, ws)
    skipped = coder.generate(plan, arch, prompt)
    return plan, arch, ws, skipped


def test_render_order_places_unknown_sections_between_services_and_gallery():
    assert render_order(["Footer", "Gallery", "Menu", "Navbar", "Services", "Hero", "Pricing"]) == [
        "Navbar", "Hero", "Services", "Menu", "Pricing", "Gallery", "Footer"]


def test_resolve_component_name():
    components = ["Navbar", "ContactUs"]
    assert resolve_component_name("src/components/Navbar.jsx", components) == "Navbar"
    assert resolve_component_name("src/components/contactus.jsx", components) == "ContactUs"
    assert resolve_component_name("src/components/pricing-table.jsx", components) == "PricingTable"
    assert section_id("ContactUs") == "contactus"


def test_restaurant_bilingual_end_to_end(restaurant_llm):
    plan, arch, ws, skipped = _generate(restaurant_llm, RESTAURANT)

    assert plan.language_mode == LanguageMode.BILINGUAL
    assert plan.industry == "restaurant"
    assert {"navbar", "hero", "menu", "gallery", "testimonials", "about", "contact", "footer"} \
        <= set(plan.required_sections)
    assert skipped == []

    for task in arch.tasks:
        assert task.path in ws, task.path

    app = ws.read("src/App.jsx")
    assert _app_imports(app) == render_order(arch.components)
    assert "<LanguageProvider>" in app

    en = json.loads(ws.read("src/locales/en.json"))
    ar = json.loads(ws.read("src/locales/ar.json"))
    assert symmetry_issues(en, ar) == []

    html = render_preview(ws, plan.language_mode, plan.project_name)
    assert '<div id="root">' in html
    assert not re.search(r"src=\{\w+\}", html) or PLACEHOLDER_IMAGE in html


def test_components_are_prompted_with_available_keys(restaurant_llm):
    _generate(restaurant_llm, RESTAURANT)

    hero_prompt = restaurant_llm.call("Hero")["user"]
    assert "AVAILABLE KEYS: hero.title, hero.subtitle, hero.cta" in hero_prompt
    assert "t('navbar.toggleLanguage')" in restaurant_llm.call("Navbar")["system"]
    assert "#menu" in restaurant_llm.call("Navbar")["system"]


def test_generation_phase_order(restaurant_llm):
    _generate(restaurant_llm, RESTAURANT)

    labels = restaurant_llm.labels
    assert labels[:3] == ["planner", "en.json", "ar.json"]
    assert labels[3:] == ["Navbar", "Hero", "Menu", "Gallery", "Testimonials", "About", "Contact", "Footer"]


def test_app_entry_is_written_last(restaurant_llm):
    plan = PlannerAgent(restaurant_llm).plan(RESTAURANT)
    writes = []
    coder = CoderAgent(restaurant_llm, Workspace(), on_write=lambda p, c: writes.append(p))
    coder.generate(plan, architect(plan), RESTAURANT)

    assert writes[-1] == "src/App.jsx"
    assert writes.index("public/logo.svg") > writes.index("src/components/Footer.jsx")
    assert writes == coder.files_written


def test_failed_component_is_skipped_not_fatal(restaurant_llm):
    restaurant_llm.responses["Gallery"] = GenerationError("model timed out")
    restaurant_llm.responses["About"] = "I'm sorry, I can't help with that."
    _, arch, ws, skipped = _generate(restaurant_llm, RESTAURANT)

    assert "src/components/Gallery.jsx" not in ws
    assert "src/components/About.jsx" not in ws
    assert len(skipped) == 2
    assert "Gallery" in _app_imports(ws.read("src/App.jsx"))
    assert "src/components/Hero.jsx" in ws


def test_component_output_is_sanitized(restaurant_llm):
    restaurant_llm.responses["Hero"] = (
        "Here is the component:\n```jsx\nexport default function HeroBanner() {\n"
        "  return <section id=\"hero\" className='py-16'><br></section>;\n}\n```"
    )
    _, _, ws, _ = _generate(restaurant_llm, RESTAURANT)
    hero = ws.read("src/components/Hero.jsx")

    assert "export default function Hero()" in hero
    assert 'className="py-16"' in hero
    assert "<br />" in hero
    assert "Here is the component" not in hero


def test_english_only_site_has_no_translation_runtime():
    llm = ScriptedLLM({"planner": {"industry": "portfolio", "projectName": "Nora"}})
    plan, arch, ws, _ = _generate(llm, "A photography portfolio")

    assert plan.language_mode == LanguageMode.ENGLISH_ONLY
    assert "src/i18n.js" not in ws
    assert "src/locales/en.json" not in ws
    assert "LanguageProvider" not in ws.read("src/App.jsx")
    assert '<html lang="en" dir="ltr">' in ws.read("index.html")
    assert "en.json" not in llm.labels


def test_arabic_only_site_is_rtl():
    llm = ScriptedLLM({"planner": {"industry": "clinic", "projectName": "عيادة النور"}})
    plan, _, ws, _ = _generate(llm, "موقع لعيادة أسنان في الرياض")

    assert plan.language_mode == LanguageMode.ARABIC_ONLY
    assert 'dir="rtl"' in ws.read("src/App.jsx")
    assert '<html lang="ar" dir="rtl">' in ws.read("index.html")
    assert "Cairo" in ws.read("index.html")


def test_package_json_only_runtime_dependencies_are_react(restaurant_llm):
    plan = PlannerAgent(restaurant_llm).plan(RESTAURANT)
    pkg = json.loads(package_json(plan))

    assert set(pkg["dependencies"]) == {"react", "react-dom"}
    assert pkg["name"] == "saffron-house"


def test_app_entry_is_deterministic():
    app = app_entry(["Footer", "Hero", "Navbar"], LanguageMode.ENGLISH_ONLY)

    assert app == app_entry(["Footer", "Hero", "Navbar"], LanguageMode.ENGLISH_ONLY)
    assert app.index("<Navbar />") < app.index("<Hero />") < app.index("<Footer />")
    assert "export default function App()" in app


@pytest.mark.parametrize("mode, needle", [
    (LanguageMode.BILINGUAL, "import LanguageProvider from './i18n.js';"),
    (LanguageMode.ARABIC_ONLY, 'dir="rtl"'),
])
def test_app_entry_language_wrappers(mode, needle):
    assert needle in app_entry(["Navbar", "Hero"], mode)
