#!/usr/bin/env python3
"""
SiteGen Server  —  HTTP :7824  |  WebSocket :7825
- POST /generate, POST /edit run in a background thread (202 Accepted)
- Progress, files and model tokens are broadcast over the WebSocket
- One job per project at a time (409 PROJECT_LOCKED)
"""
import sys, json, asyncio, logging, threading, signal, atexit
from http.server import HTTPServer, SimpleHTTPRequestHandler
from urllib.parse import urlparse, parse_qs

import requests
import websockets

from sitegen import config
from sitegen.errors import InvalidRequestError, ProjectBusyError, SiteGenError
from sitegen.llm import set_stream_callback
from sitegen.orchestrator import run_edit, run_generation, validate_request
from sitegen.planner import extract_project_name
from sitegen.preview import render_preview
from sitegen.store import ProjectLock, ProjectStore, sanitize_project_id

for d in [config.PROD_DIR, config.LOGS_DIR]: d.mkdir(parents=True, exist_ok=True)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
log = logging.getLogger("server")

STORE = ProjectStore(config.PROD_DIR)
LOCK  = ProjectLock(config.PROD_DIR)

clients   = set()
MAIN_LOOP = None


# ── Broadcast helpers ─────────────────────────────────────────────────────────

def emit(msg: dict):
    if MAIN_LOOP is None: return
    data = json.dumps(msg, ensure_ascii=False)
    async def _s():
        dead = set()
        for ws in list(clients):
            try: await ws.send(data)
            except websockets.exceptions.ConnectionClosed: dead.add(ws)
        clients.difference_update(dead)
    asyncio.run_coroutine_threadsafe(_s(), MAIN_LOOP)

def elog(lvl, txt):       emit({"type":"log",          "level":lvl,  "text":txt})
def estep(s, st):         emit({"type":"step",         "step":s,     "status":st})
def efile(n, sz, c=""):   emit({"type":"file",         "name":n,     "size":sz,   "content":c})
def eerr(txt, code=""):   emit({"type":"error",        "text":txt,   "code":code})
def estream_start(fname): emit({"type":"stream_start", "file":fname})
def estream(fname, tok):  emit({"type":"stream",       "file":fname, "token":tok})
def estream_end(f, c):    emit({"type":"stream_end",   "file":f,     "content":c})

def edone(proj, version, summary, changed=None):
    emit({"type":"done", "project":proj, "version":version, "summary":summary,
          "filesChanged":changed or [], "preview":f"/preview/{proj}"})


class BroadcastLogHandler(logging.Handler):
    """Mirror sitegen.* log records to connected clients."""
    def emit(self, record):
        if record.name in ("server", "websockets.server"):
            return
        elog(record.levelname.replace("WARNING", "WARN"), record.getMessage())


def _on_write(path: str, content: str):
    sz = f"{len(content)/1024:.1f}KB" if len(content) >= 1024 else f"{len(content)}B"
    efile(path, sz, content)


# ── Token streaming ───────────────────────────────────────────────────────────

# One buffer per job thread; jobs on different projects stream concurrently.
_streams = threading.local()

def _cur_stream() -> dict:
    if not hasattr(_streams, "state"):
        _streams.state = {"name": None, "buf": ""}
    return _streams.state

def on_token(token: str):
    cur = _cur_stream()
    if token.startswith("\x00START:"):
        fname = token[7:]
        cur["name"] = fname
        cur["buf"]  = ""
        estream_start(fname)
    elif token == "\x00END":
        fname = cur["name"]
        content = cur["buf"]
        estream_end(fname, content)
        cur["name"] = None
        cur["buf"]  = ""
    else:
        cur["buf"] += token
        estream(cur["name"] or "generating…", token)


# ── Ollama model management ───────────────────────────────────────────────────

def ensure_model(model: str) -> bool:
    """Check Ollama tags; pull model if missing. Returns True if ready."""
    try:
        r = requests.get(f"{config.OLLAMA_URL}/api/tags", timeout=5)
        names = [m["name"] for m in r.json().get("models", [])]
        if any(model == n or model.split(":")[0] == n.split(":")[0] for n in names):
            elog("INFO", f"   ✅ Model ready: {model}")
            return True
    except (requests.RequestException, ValueError) as e:
        elog("WARN", f"   Ollama check failed: {e}")

    elog("INFO", f"   📥 Pulling {model} from Ollama (first time only)…")
    try:
        r = requests.post(f"{config.OLLAMA_URL}/api/pull",
                          json={"name": model}, stream=True, timeout=600)
        last_pct = -1
        for line in r.iter_lines():
            if not line: continue
            try:
                chunk = json.loads(line)
            except json.JSONDecodeError:
                continue
            if chunk.get("total"):
                pct = int(chunk.get("completed", 0) / chunk["total"] * 100)
                if pct != last_pct and pct % 10 == 0:
                    elog("INFO", f"   📥 {model}: {pct}%")
                    last_pct = pct
            if "success" in chunk.get("status", ""):
                elog("INFO", f"   ✅ {model} pulled!")
                return True
        return True
    except requests.RequestException as e:
        elog("ERROR", f"   ❌ Pull failed: {e}")
        return False

def stop_model(model: str):
    """Unload model from VRAM immediately after use."""
    try:
        requests.post(f"{config.OLLAMA_URL}/api/generate",
                      json={"model": model, "keep_alive": 0}, timeout=8)
        elog("INFO", f"   🗑️  Unloaded {model}")
    except requests.RequestException as e:
        log.warning(f"unload {model} failed: {e}")


# ── Jobs ──────────────────────────────────────────────────────────────────────

def run_generate_job(project: str, prompt: str, history=None):
    set_stream_callback(on_token)
    try:
        elog("INFO", "━" * 40)
        elog("INFO", f"💡 {prompt[:90]}")
        elog("INFO", f"🧠 Plan: {config.PLAN_MODEL}   🏗️  Build: {config.BUILD_MODEL}")
        elog("INFO", "━" * 40)
        estep("generate", "active")
        for m in {config.PLAN_MODEL, config.BUILD_MODEL}:
            if not ensure_model(m):
                eerr(f"Cannot load model: {m}"); return

        result, record = run_generation(STORE, LOCK, project, prompt, history,
                                        on_write=_on_write, stream=True)
        for problem in result.errors:
            elog("WARN", f"   ⚠ {problem}")
        if record is None:
            estep("generate", "error")
            eerr("Generation produced no files")
            return
        estep("generate", "done")
        elog("INFO", f"🎉 {record.project} v{record.version}")
        edone(record.project, record.version, result.summary, sorted(result.files))
    except SiteGenError as e:
        estep("generate", "error")
        eerr(str(e), e.code)
    except Exception as e:
        eerr(f"Generation error: {e}")
        log.exception("Generation pipeline error")
    finally:
        set_stream_callback(None)
        stop_model(config.BUILD_MODEL)


def run_edit_job(project: str, prompt: str, history=None, version=None):
    set_stream_callback(on_token)
    try:
        elog("INFO", "━" * 40)
        elog("INFO", f"✏️  {project}: {prompt[:90]}")
        elog("INFO", "━" * 40)
        estep("edit", "active")
        if not ensure_model(config.EDIT_MODEL):
            eerr(f"Cannot load model: {config.EDIT_MODEL}"); return

        result, record = run_edit(STORE, LOCK, project, prompt, version, history,
                                  on_write=_on_write, stream=True)
        for problem in result.errors:
            elog("WARN", f"   ⚠ {problem}")
        if record is None:
            estep("edit", "error")
            eerr(result.summary or "No changes made")
            return
        estep("edit", "done")
        elog("INFO", f"🎉 {record.project} v{record.version}")
        edone(record.project, record.version, result.summary, result.edit.files_changed)
    except SiteGenError as e:
        estep("edit", "error")
        eerr(str(e), e.code)
    except Exception as e:
        eerr(f"Update error: {e}")
        log.exception("Edit pipeline error")
    finally:
        set_stream_callback(None)
        stop_model(config.EDIT_MODEL)


def new_project_id(prompt: str) -> str:
    """Id for an unnamed generation: the extracted name, suffixed until unused."""
    base = sanitize_project_id(extract_project_name(prompt))
    project, n = base, 2
    while STORE.exists(project) or LOCK.is_locked(project):
        project = f"{base}-{n}"
        n += 1
    return project


def start_job(kind: str, body: dict) -> str:
    """Validate, check the lock and start a job thread. Returns the project id."""
    prompt  = body.get("prompt")
    history = body.get("history")
    validate_request(prompt, history)

    if kind == "generate":
        project = sanitize_project_id(body["project"]) if body.get("project") else new_project_id(prompt)
        target, args = run_generate_job, (project, prompt, history)
    else:
        project = sanitize_project_id(body.get("project") or "")
        if not body.get("project") or not STORE.exists(project):
            raise KeyError(project)
        version = body.get("version")
        if version is not None and not isinstance(version, int):
            raise InvalidRequestError("version must be an integer")
        target, args = run_edit_job, (project, prompt, history, version)

    if LOCK.is_locked(project):
        raise ProjectBusyError(project)
    threading.Thread(target=target, args=args, daemon=True).start()
    return project


# ── WebSocket handler ─────────────────────────────────────────────────────────

async def ws_handler(websocket, path=None):
    clients.add(websocket)
    log.info(f"WS connected ({len(clients)})")
    try:
        await websocket.send(json.dumps({
            "type": "log", "level": "INFO",
            "text": "✅ SiteGen connected — describe a website to generate it"
        }))
        async for raw in websocket:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                continue
            kind = msg.get("type") if isinstance(msg, dict) else None
            if kind not in ("generate", "edit"):
                continue
            try:
                start_job(kind, msg)
            except KeyError as e:
                await websocket.send(json.dumps({"type": "error", "code": "NOT_FOUND",
                                                 "text": f"Unknown project: {e.args[0]}"}))
            except SiteGenError as e:
                await websocket.send(json.dumps({"type": "error", "code": e.code, "text": str(e)},
                                                ensure_ascii=False))
    except websockets.exceptions.ConnectionClosed: pass
    finally:
        clients.discard(websocket)
        log.info(f"WS disconnected ({len(clients)})")


# ── HTTP handler ──────────────────────────────────────────────────────────────

class UIHandler(SimpleHTTPRequestHandler):
    def __init__(self, *a, **k):
        super().__init__(*a, directory=str(config.BASE_DIR / "ui"), **k)
    def log_message(self, *a): pass

    def _send(self, status: int, body, content_type="application/json"):
        data = body if isinstance(body, bytes) else (
            body.encode() if isinstance(body, str) else json.dumps(body, ensure_ascii=False).encode())
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _error(self, status: int, code: str, message: str):
        self._send(status, {"error": {"code": code, "message": message}})

    def _version(self, query: dict):
        raw = query.get("version", [None])[0]
        return int(raw) if raw and raw.isdigit() else None

    def do_OPTIONS(self):
        self.send_response(200)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    def do_GET(self):
        url = urlparse(self.path)
        query = parse_qs(url.query)
        if url.path == "/projects":
            self._send(200, STORE.projects())
        elif url.path.startswith("/files/"):
            proj = url.path[7:].strip("/")
            files = STORE.file_listing(proj, self._version(query))
            if not files:
                return self._error(404, "NOT_FOUND", f"Unknown project: {proj}")
            self._send(200, files)
        elif url.path.startswith("/preview/"):
            proj = url.path[9:].strip("/")
            version = self._version(query)
            html = STORE.preview(proj) if version is None else None
            if html is None:
                record = STORE.latest(proj) if version is None else STORE.get(proj, version)
                if record is None:
                    return self._error(404, "NOT_FOUND", f"Unknown project: {proj}")
                html = render_preview(record.files, record.language_mode or None)
            self._send(200, html, "text/html; charset=utf-8")
        else:
            super().do_GET()

    def do_POST(self):
        url = urlparse(self.path)
        if url.path not in ("/generate", "/edit"):
            return self._error(404, "NOT_FOUND", url.path)
        length = int(self.headers.get("Content-Length", 0))
        try:
            body = json.loads(self.rfile.read(length) or b"{}")
        except json.JSONDecodeError:
            return self._error(400, "INVALID_REQUEST", "body must be JSON")
        if not isinstance(body, dict):
            return self._error(400, "INVALID_REQUEST", "body must be a JSON object")
        try:
            project = start_job(url.path[1:], body)
        except KeyError as e:
            return self._error(404, "NOT_FOUND", f"Unknown project: {e.args[0]}")
        except InvalidRequestError as e:
            return self._error(400, e.code, str(e))
        except ProjectBusyError as e:
            return self._error(409, e.code, str(e))
        self._send(202, {"ok": True, "project": project})


def start_http():
    try:
        httpd = HTTPServer(("127.0.0.1", config.UI_PORT), UIHandler)
        print(f"HTTP server listening on 127.0.0.1:{config.UI_PORT}")
        httpd.serve_forever()
    except OSError as e:
        print(f"HTTP server failed: {e}")


# ── Main ──────────────────────────────────────────────────────────────────────

async def main():
    global MAIN_LOOP
    MAIN_LOOP = asyncio.get_running_loop()
    logging.getLogger().addHandler(BroadcastLogHandler())
    threading.Thread(target=start_http, daemon=True).start()
    print(f"\n{'━'*46}")
    print(f"  ⚡ SiteGen Starting...")
    print(f"  ⚡ HTTP API    →  http://127.0.0.1:{config.UI_PORT}")
    print(f"  🔌 WebSocket   →  ws://127.0.0.1:{config.WS_PORT}")
    print(f"  🧠 Plan        :  {config.PLAN_MODEL}")
    print(f"  🏗️  Build       :  {config.BUILD_MODEL}")
    print(f"  ✏️  Edit        :  {config.EDIT_MODEL}")
    print(f"{'━'*46}\n")
    async with websockets.serve(ws_handler, "127.0.0.1", config.WS_PORT):
        await asyncio.Future()


def shutdown_all():
    print("\n🛑 Shutting down SiteGen backend...")
    for m in {config.PLAN_MODEL, config.BUILD_MODEL, config.EDIT_MODEL}:
        stop_model(m)


def handle_signal(sig, frame):
    sys.exit(0)


if __name__ == "__main__":
    atexit.register(shutdown_all)
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n⛔ Stopped.")
