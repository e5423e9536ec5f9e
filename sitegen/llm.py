"""
Generative call adapter.

Every agent talks to the model through ``LLMClient``; nothing else in the
package imports ``requests``. Raw model text is untrusted and goes through the
repair helpers below (``strip_fences``, ``extract_json``) before anything
structural depends on it.
"""
import json, logging, re, threading, time
import requests

from . import config
from .errors import (
    AuthError, GenerationError, MalformedResponseError, QuotaError, RateLimitError,
)

log = logging.getLogger("llm")

# Per thread: concurrent jobs each stream to their own callback.
_stream = threading.local()
def set_stream_callback(fn):
    _stream.callback = fn

def _emit(token):
    callback = getattr(_stream, "callback", None)
    if callback:
        callback(token)


# ── Repair layer ──────────────────────────────────────────────────────────────

_FENCE_RE = re.compile(r"```[\w+-]*\s*\n(.*?)```", re.DOTALL)

def strip_fences(text: str) -> str:
    """Return the first fenced block's body, or the text with stray fence markers removed."""
    if not text:
        return ""
    m = _FENCE_RE.search(text)
    if m:
        return m.group(1).strip()
    return re.sub(r"```[\w+-]*", "", text).strip()


def _balanced_objects(text: str):
    """Yield every top-level bracket-matched {...} span (string and escape aware)."""
    i, n = 0, len(text)
    while i < n:
        start = text.find("{", i)
        if start == -1:
            return
        depth, in_str, esc = 0, False, False
        for j in range(start, n):
            c = text[j]
            if in_str:
                if esc:           esc = False
                elif c == "\\":   esc = True
                elif c == '"':    in_str = False
                continue
            if c == '"':
                in_str = True
            elif c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    yield text[start:j + 1]
                    i = j + 1
                    break
        else:
            return


def _close_truncated(prefix: str):
    """Close open strings/arrays/objects of a truncated JSON prefix. None if nothing is open."""
    stack, in_str, esc = [], False, False
    for c in prefix:
        if in_str:
            if esc:           esc = False
            elif c == "\\":   esc = True
            elif c == '"':    in_str = False
            continue
        if c == '"':
            in_str = True
        elif c == "{":
            stack.append("}")
        elif c == "[":
            stack.append("]")
        elif c in "}]" and stack:
            stack.pop()
    if not stack and not in_str:
        return None

    out = prefix
    if in_str:
        if esc:
            out = out[:-1]
        out += '"'
    out = out.rstrip()
    if stack and stack[-1] == "}":
        # dangling `"key":` or a bare `"key"` with no value
        out = re.sub(r'[,{]?\s*"(?:[^"\\]|\\.)*"\s*:\s*$', lambda m: "{" if m.group(0).startswith("{") else "", out)
        out = re.sub(r'([{,])\s*"(?:[^"\\]|\\.)*"$', lambda m: "{" if m.group(1) == "{" else "", out)
    out = re.sub(r"[,:]\s*$", "", out)
    return out + "".join(reversed(stack))


def _complete_truncated(text: str):
    start = text.find("{")
    if start == -1:
        return None
    prefix = text[start:]
    for _ in range(40):
        candidate = _close_truncated(prefix)
        if candidate is None:
            return None
        try:
            value = json.loads(candidate)
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        cut = prefix.rfind(",")
        if cut <= 0:
            return None
        prefix = prefix[:cut]
    return None


def extract_json(text: str) -> dict:
    """
    Best-effort recovery of a JSON object from model output.

    Tries, in order: the raw text, a fenced block, the largest bracket-matched
    object substring, and finally completion of a truncated object.
    Raises MalformedResponseError when nothing parses to a dict.
    """
    if not text or not text.strip():
        raise MalformedResponseError("empty response")

    for candidate in (text.strip(), strip_fences(text)):
        try:
            value = json.loads(candidate)
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass

    for span in sorted(_balanced_objects(text), key=len, reverse=True):
        try:
            value = json.loads(span)
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            continue

    value = _complete_truncated(strip_fences(text))
    if value is not None:
        log.info("   🩹 recovered truncated JSON response")
        return value

    raise MalformedResponseError(f"no JSON object in response: {text[:120]!r}")


def trim_history(history, limit: int = None) -> list:
    """Keep the last `limit` user/assistant turns with string content."""
    limit = config.MAX_HISTORY if limit is None else limit
    turns = [
        {"role": h["role"], "content": h["content"]}
        for h in (history or [])
        if isinstance(h, dict) and h.get("role") in ("user", "assistant")
        and isinstance(h.get("content"), str)
    ]
    return turns[-limit:] if limit else []


# ── Adapter interface ─────────────────────────────────────────────────────────

class LLMClient:
    """Boundary to the generative model: (system, user, history, constraints) -> text."""

    def complete(self, system: str, user: str, history=None, temperature: float = 0.2,
                 json_mode: bool = False, max_tokens: int = None, timeout: float = None,
                 label: str = None) -> str:
        raise NotImplementedError

    def propose_json(self, system: str, user: str, **kw) -> dict:
        text = self.complete(system, user, json_mode=True, **kw)
        return extract_json(text)


def classify_status(status: int, body: str = "") -> GenerationError:
    detail = f"HTTP {status}: {body[:200]}".strip()
    if status == 429:
        return RateLimitError(detail, status=status, retryable=True)
    if status in (401, 403):
        return AuthError(detail, status=status)
    if status == 402:
        return QuotaError(detail, status=status)
    return GenerationError(detail, status=status, retryable=status >= 500)


class OllamaClient(LLMClient):
    def __init__(self, model: str = None, ollama_url: str = None, timeout: float = None,
                 retries: int = None, stream: bool = False, max_tokens: int = 4096,
                 backoff: float = 1.0):
        self.url        = f"{(ollama_url or config.OLLAMA_URL).rstrip('/')}/api/chat"
        self.model      = model or config.BUILD_MODEL
        self.timeout    = config.LLM_TIMEOUT if timeout is None else timeout
        self.retries    = config.LLM_RETRIES if retries is None else retries
        self.stream     = stream
        self.max_tokens = max_tokens
        self.backoff    = backoff

    def complete(self, system, user, history=None, temperature=0.2, json_mode=False,
                 max_tokens=None, timeout=None, label=None) -> str:
        messages = [{"role": "system", "content": system}]
        messages += trim_history(history)
        messages.append({"role": "user", "content": user})
        payload = {
            "model":    self.model,
            "messages": messages,
            "stream":   self.stream,
            "options":  {"temperature": temperature, "num_predict": max_tokens or self.max_tokens},
        }
        if json_mode:
            payload["format"] = "json"

        label = label or "llm"
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._post(payload, timeout or self.timeout, label)
            except GenerationError as e:
                if not e.retryable or attempt > self.retries:
                    log.error(f"   ❌ {label}: {e}")
                    raise
                log.warning(f"   ⚠️  {label} attempt {attempt} failed ({e}) — retrying")
                time.sleep(self.backoff * attempt)

    def _post(self, payload: dict, timeout: float, label: str) -> str:
        try:
            resp = requests.post(self.url, json=payload, stream=self.stream, timeout=timeout)
        except requests.Timeout as e:
            raise GenerationError(f"timed out after {timeout}s", retryable=True) from e
        except requests.RequestException as e:
            raise GenerationError(f"request failed: {e}", retryable=True) from e

        if resp.status_code >= 400:
            raise classify_status(resp.status_code, resp.text)

        if self.stream:
            text = self._read_stream(resp, label)
        else:
            try:
                text = resp.json().get("message", {}).get("content", "")
            except ValueError as e:
                raise MalformedResponseError(f"non-JSON body from model server: {e}") from e

        if not text or not text.strip():
            raise MalformedResponseError("empty response", retryable=True)
        return text

    def _read_stream(self, resp, label: str) -> str:
        _emit(f"\x00START:{label}")
        full = ""
        try:
            for line in resp.iter_lines():
                if not line:
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    continue
                tok = chunk.get("message", {}).get("content", "")
                if tok:
                    full += tok
                    _emit(tok)
                if chunk.get("done"):
                    break
        except requests.RequestException as e:
            raise GenerationError(f"stream interrupted: {e}", retryable=True) from e
        finally:
            _emit("\x00END")
        return full
