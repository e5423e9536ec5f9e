"""
Structural contract between the English and Arabic locale files.

Components index list-like values positionally and call .map() on them, so
every array in en.json must also be an array at the same path in ar.json.
"""
import logging, re

log = logging.getLogger("translations")

_ITEM_KEY_RE = re.compile(r"^(?:item_?)?\d+$", re.IGNORECASE)


def _looks_like_list(obj: dict) -> bool:
    return bool(obj) and all(_ITEM_KEY_RE.match(str(k)) for k in obj)


def coerce_list_objects(obj):
    """{"0": a, "1": b} / {"item1": a, "item2": b} -> [a, b], recursively."""
    if isinstance(obj, list):
        return [coerce_list_objects(v) for v in obj]
    if isinstance(obj, dict):
        if _looks_like_list(obj):
            return [coerce_list_objects(v) for v in obj.values()]
        return {k: coerce_list_objects(v) for k, v in obj.items()}
    return obj


def leaf_paths(obj, prefix: str = "") -> dict:
    """path -> value for every array and scalar leaf (arrays are leaves)."""
    out = {}
    if isinstance(obj, dict):
        for k, v in obj.items():
            out.update(leaf_paths(v, f"{prefix}.{k}" if prefix else str(k)))
    else:
        out[prefix] = obj
    return out


def _get(obj, path: str):
    cur = obj
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def symmetry_issues(en: dict, ar: dict) -> list:
    issues = []
    for path, value in leaf_paths(en).items():
        other = _get(ar, path)
        if other is None:
            issues.append(f"missing in ar: {path}")
        elif isinstance(value, list) and not isinstance(other, list):
            issues.append(f"not an array in ar: {path} ({type(other).__name__})")
        elif isinstance(value, list) and len(value) != len(other):
            issues.append(f"length mismatch at {path}: en={len(value)} ar={len(other)}")
    return issues


def _align(en, ar):
    if isinstance(en, dict):
        if not isinstance(ar, dict):
            return en
        out = dict(ar)
        for k, v in en.items():
            out[k] = _align(v, ar[k]) if k in ar else v
        return out
    if isinstance(en, list):
        if isinstance(ar, dict):
            ar = list(ar.values())
        elif not isinstance(ar, list):
            ar = [ar] if ar not in (None, "") else []
        items = [_align(e, a) for e, a in zip(en, ar)]
        # pad from English so positional access never falls off the end
        items += en[len(items):]
        return items
    if ar is None or isinstance(ar, (dict, list)):
        return en
    return ar


def align_locales(en: dict, ar: dict) -> dict:
    """Repair `ar` so it mirrors the structure of `en`. Extra Arabic keys are kept."""
    en = coerce_list_objects(en if isinstance(en, dict) else {})
    ar = coerce_list_objects(ar if isinstance(ar, dict) else {})
    before = symmetry_issues(en, ar)
    aligned = _align(en, ar)
    if before:
        log.info(f"   🩹 aligned ar.json against en.json ({len(before)} issue(s))")
    return aligned


def keys_for(locale: dict, component: str) -> list:
    """Dotted leaf keys under a component's namespace, e.g. hero.title."""
    ns = component[:1].lower() + component[1:]
    for key in (ns, component.lower()):
        if isinstance(locale.get(key), dict):
            return [f"{key}.{p}" for p in leaf_paths(locale[key])]
    return []
