"""
Unified-diff parsing, application and trust checks.

``apply_patch`` replays a diff against the current content and raises
``PatchError`` on any mismatch. ``validate_patch`` wraps it with the size policy
and never raises, so callers only branch on ``PatchResult.valid``.
"""
import difflib, logging, re
from dataclasses import dataclass, field
from typing import Optional

from . import config
from .errors import PatchError

log = logging.getLogger("patching")

_HUNK_RE = re.compile(r"^@@\s*(?:-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?)?\s*@@")


@dataclass
class Hunk:
    old_start: Optional[int]          # 1-based, None when the header had no numbers
    old_count: Optional[int]
    lines: list = field(default_factory=list)   # (op, text) with op in " ", "-", "+"

    @property
    def old_lines(self):
        return [t for op, t in self.lines if op in (" ", "-")]

    @property
    def new_lines(self):
        return [t for op, t in self.lines if op in (" ", "+")]

    @property
    def deleted(self):
        return sum(1 for op, _ in self.lines if op == "-")

    @property
    def added(self):
        return sum(1 for op, _ in self.lines if op == "+")


@dataclass
class PatchResult:
    valid: bool
    content: Optional[str] = None
    reason: Optional[str] = None
    error: str = ""
    changed_lines: int = 0
    change_ratio: float = 0.0


def parse_unified_diff(diff: str) -> list:
    if not diff or not diff.strip():
        raise PatchError("empty diff", reason="empty")

    raw = diff.replace("\r\n", "\n").rstrip("\n").split("\n")
    hunks, cur, i = [], None, 0
    while i < len(raw):
        line = raw[i]
        if line.startswith("--- ") and i + 1 < len(raw) and raw[i + 1].startswith("+++ "):
            cur = None
            i += 2
            continue
        m = _HUNK_RE.match(line)
        if m:
            old_start = int(m.group(1)) if m.group(1) else None
            old_count = int(m.group(2)) if m.group(2) is not None else (1 if m.group(1) else None)
            cur = Hunk(old_start, old_count)
            hunks.append(cur)
        elif cur is not None:
            if line.startswith("\\"):
                pass
            elif line == "":
                cur.lines.append((" ", ""))
            elif line[0] in " -+":
                cur.lines.append((line[0], line[1:]))
            else:
                raise PatchError(f"unexpected diff line: {line[:60]!r}", reason="malformed")
        i += 1

    hunks = [h for h in hunks if h.lines]
    if not hunks:
        raise PatchError("diff contains no hunks", reason="empty")
    return hunks


def _matches(src: list, pos: int, block: list) -> bool:
    return 0 <= pos and pos + len(block) <= len(src) and src[pos:pos + len(block)] == block


def _locate(src: list, hunk: Hunk, cursor: int, fuzz: int) -> int:
    old = hunk.old_lines
    if hunk.old_start is None:
        hits = [p for p in range(cursor, len(src) - len(old) + 1) if _matches(src, p, old)]
        if len(hits) != 1:
            raise PatchError(
                f"hunk without line numbers matched {len(hits)} places", reason="context-mismatch")
        return hits[0]

    if not old:
        # pure insertion: "-N,0" inserts after line N
        pos = hunk.old_start if hunk.old_count == 0 else hunk.old_start - 1
        if cursor <= pos <= len(src):
            return pos
        raise PatchError(f"insertion point {pos} out of range", reason="context-mismatch")

    expected = hunk.old_start - 1
    for delta in [0] + [d for k in range(1, fuzz + 1) for d in (-k, k)]:
        pos = expected + delta
        if pos >= cursor and _matches(src, pos, old):
            if delta:
                log.info(f"   ~ hunk @{hunk.old_start} matched with offset {delta:+d}")
            return pos

    first_bad = next(
        (t for k, t in enumerate(old) if expected + k >= len(src) or src[expected + k] != t),
        old[0])
    raise PatchError(
        f"context mismatch near line {hunk.old_start}: {first_bad[:60]!r}", reason="context-mismatch")


def apply_patch(content: str, diff: str, fuzz: int = None) -> str:
    """Apply a unified diff to `content`; raise PatchError if any hunk does not line up."""
    fuzz = config.PATCH_FUZZ if fuzz is None else fuzz
    trailing_nl = content.endswith("\n")
    src = content.split("\n")
    if trailing_nl:
        src = src[:-1]
    if content == "":
        src = []

    out, cursor = [], 0
    for hunk in parse_unified_diff(diff):
        pos = _locate(src, hunk, cursor, fuzz)
        out.extend(src[cursor:pos])
        out.extend(hunk.new_lines)
        cursor = pos + len(hunk.old_lines)
    out.extend(src[cursor:])

    result = "\n".join(out)
    if trailing_nl or (content == "" and out):
        result += "\n"
    return result


def count_changes(diff: str) -> int:
    return sum(max(h.deleted, h.added) for h in parse_unified_diff(diff))


def validate_patch(content: str, diff: str, fuzz: int = None,
                   max_change_ratio: float = None) -> PatchResult:
    """Decide whether a patch is trustworthy: it must apply cleanly and stay small."""
    max_change_ratio = config.MAX_PATCH_CHANGE_RATIO if max_change_ratio is None else max_change_ratio
    try:
        new_content = apply_patch(content, diff, fuzz)
        changed = count_changes(diff)
    except PatchError as e:
        return PatchResult(False, reason=e.reason, error=str(e))

    if new_content == content:
        return PatchResult(False, reason="empty", error="patch changes nothing")

    total = max(1, len(content.splitlines()))
    ratio = changed / total
    if ratio > max_change_ratio:
        return PatchResult(
            False, content=new_content, reason="disproportionate",
            error=f"patch changes {changed}/{total} lines ({ratio:.0%})",
            changed_lines=changed, change_ratio=ratio)

    return PatchResult(True, content=new_content, changed_lines=changed, change_ratio=ratio)


def make_diff(old: str, new: str, path: str = "file") -> str:
    """Unified diff between two contents, used to record programmatic rewrites."""
    return "".join(difflib.unified_diff(
        old.splitlines(keepends=True), new.splitlines(keepends=True),
        fromfile=f"a/{path}", tofile=f"b/{path}"))
