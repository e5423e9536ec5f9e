# tests/test_preview.py
"""Tests for the single-document HTML preview."""
import json

import pytest

from sitegen.coder import I18N_JS, app_entry
from sitegen.planner import LanguageMode
from sitegen.preview import (
    BABEL_CDN, PLACEHOLDER_IMAGE, REACT_CDN, REACT_DOM_CDN, TAILWIND_CDN, infer_language_mode,
    mount_chain, mount_script, normalize_component, ordered_components, prepare_module,
    render_preview, strip_exports, strip_imports,
)
from sitegen.workspace import Workspace

from conftest import component_code


def test_english_preview_document(site_files):
    html = render_preview(site_files)

    assert '<html lang="en" dir="ltr">' in html
    assert "<title>Crumb Bakery</title>" in html
    assert '<div id="root"></div>' in html
    assert '<style type="text/tailwindcss">' in html
    assert 'id="error-display"' in html
    assert "showError(e.message, e.stack);" in html
    for url in (REACT_CDN, REACT_DOM_CDN, BABEL_CDN, TAILWIND_CDN):
        assert url in html
    assert "Inter" in html


def test_components_are_scoped_and_mounted(site_files):
    html = render_preview(site_files)

    for name in ("Navbar", "Hero", "About", "Contact", "Footer", "App"):
        assert f"const {name} = (() => {{" in html
        assert f"  return {name};\n  }})();" in html
    assert "export default" not in html
    assert "import React" not in html
    assert ("ReactDOM.createRoot(document.getElementById('root')).render("
            "React.createElement(React.StrictMode, null, React.createElement(App)));") in html


def test_undeclared_image_becomes_placeholder(site_files):
    html = render_preview(site_files)

    assert f'src="{PLACEHOLDER_IMAGE}"' in html
    assert "storyImage" not in html


def test_missing_component_is_stubbed(site_files):
    del site_files["src/components/Contact.jsx"]
    html = render_preview(site_files)

    assert 'function Contact() { return <div data-missing-component="Contact" />; }' in html
    assert "const Contact = (() =>" not in html


def test_arabic_only_preview(site_files):
    html = render_preview(site_files, LanguageMode.ARABIC_ONLY, title="مخبز")

    assert '<html lang="ar" dir="rtl">' in html
    assert "Cairo" in html
    assert "const DEFAULT_LANGUAGE = 'ar';" in html
    assert "<title>مخبز</title>" in html


def test_bilingual_preview_inlines_translations(site_files):
    components = ["Navbar", "Hero", "Footer"]
    files = {
        "src/App.jsx": app_entry(components, LanguageMode.BILINGUAL),
        "src/i18n.js": I18N_JS,
        "src/locales/en.json": json.dumps({"hero": {"title": "x</script>"}}),
        "src/locales/ar.json": json.dumps({"hero": {"title": "عنوان"}}, ensure_ascii=False),
    }
    for name in components:
        files[f"src/components/{name}.jsx"] = component_code(name, bilingual=True)
    html = render_preview(files)

    assert infer_language_mode(files) == LanguageMode.BILINGUAL
    assert "x<\\/script>" in html
    assert "x</script>" not in html
    assert "عنوان" in html
    assert "function useLanguage()" in html
    assert "data-missing-component" not in html
    assert "React.createElement(LanguageProvider, null" not in html


def test_bilingual_mount_adds_provider_when_app_lacks_one(site_files):
    site_files["src/locales/en.json"] = "{}"
    site_files["src/locales/ar.json"] = "{}"
    html = render_preview(site_files)

    assert ("React.createElement(React.StrictMode, null, "
            "React.createElement(LanguageProvider, null, React.createElement(App)))") in html


def test_workspace_and_dict_inputs_render_the_same(site_files):
    assert render_preview(Workspace.hydrate(site_files)) == render_preview(site_files)


def test_infer_language_mode():
    assert infer_language_mode({"src/components/Hero.jsx": "<h1>مرحبا</h1>"}) == LanguageMode.ARABIC_ONLY
    assert infer_language_mode({"src/components/Hero.jsx": "<h1>Hi</h1>"}) == LanguageMode.ENGLISH_ONLY
    assert infer_language_mode({"src/i18n.js": ""}) == LanguageMode.BILINGUAL


# ── Module rewriting ──────────────────────────────────────────────────────────

def test_strip_imports():
    code, imported = strip_imports(
        "import React, { useState } from 'react';\n"
        "import './index.css';\n"
        "import logo from './logo.svg';\n"
        "const x = 1;\n")

    assert code == "const x = 1;\n"
    assert imported == {"React": "react", "useState": "react", "logo": "./logo.svg"}


def test_strip_exports():
    assert strip_exports("export default function Hero() {}", "Hero") == "function Hero() {}"
    assert strip_exports("const A = () => 1;\nexport default A;\n", "A") == "const A = () => 1;\n"
    assert strip_exports("export default () => <div />;", "Promo") == "const Promo = () => <div />;"
    assert strip_exports("export const items = [];", "X") == "const items = [];"


def test_declared_images_and_map_params_are_kept():
    code = (
        "const heroImage = 'https://images.unsplash.com/photo-1';\n"
        "const items = [{ image: 'a.jpg' }];\n"
        "export default function Banner() {\n"
        "  return (<div><img src={heroImage} alt=\"\" />"
        "{items.map((item) => <img src={item.image} alt=\"\" />)}</div>);\n"
        "}\n")
    js, undefined = prepare_module("Banner", code, set())

    assert "src={heroImage}" in js
    assert "src={item.image}" in js
    assert PLACEHOLDER_IMAGE not in js
    assert undefined == set()


@pytest.mark.parametrize("ident", ["profilePic", "heroImage", "teamPhoto", "galleryPics", "coverPicture"])
def test_standalone_image_expression_becomes_placeholder(ident):
    code = ("const featuredPhoto = 'https://images.unsplash.com/photo-2';\n"
            "export default function Team() {\n"
            f"  return (<div><span>{{{ident}}}</span><img src={{featuredPhoto}} alt=\"\" /></div>);\n"
            "}\n")
    js, _ = prepare_module("Team", code, set())

    assert ident not in js
    assert f'<span>{{"{PLACEHOLDER_IMAGE}"}}</span>' in js
    assert "src={featuredPhoto}" in js


def test_asset_imports_become_placeholders():
    code = ("import logo from './assets/logo.png';\n\n"
            "export default function Brand() {\n  return <img src={logo} alt=\"logo\">;\n}\n")
    js, _ = prepare_module("Brand", code, set())

    assert f'src="{PLACEHOLDER_IMAGE}"' in js
    assert 'alt="logo" />' in js
    assert "./assets/logo.png" not in js


def test_normalize_component():
    wrapped = normalize_component('<section className="p-4">Hi</section>', "Promo")
    assert wrapped.startswith("function Promo() {")
    assert "<>" in wrapped

    assert "function ContactUs(" in normalize_component("function Contact-Us() { return null; }", "ContactUs")
    assert "function About(" in normalize_component("export default function AboutSection() {}", "About")


def test_ordered_components_follow_app_then_render_order(site_files):
    site_files["src/components/Gallery.jsx"] = component_code("Gallery")
    names = [n for n, _ in ordered_components(site_files)]

    assert names == ["Navbar", "Hero", "About", "Contact", "Footer", "Gallery"]


def test_mount_helpers():
    assert mount_chain(None) == ["React.StrictMode", "App"]
    assert mount_chain("root.render(<App />)") == ["App"]
    assert mount_script(["App"]) == "ReactDOM.createRoot(document.getElementById('root')).render(React.createElement(App));"
