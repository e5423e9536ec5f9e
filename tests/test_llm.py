# tests/test_llm.py
"""Tests for the model adapter and the JSON repair layer."""
import threading

import pytest
import requests
from unittest.mock import patch, MagicMock

from sitegen.errors import (
    AuthError, GenerationError, MalformedResponseError, QuotaError, RateLimitError,
)
from sitegen.llm import (
    OllamaClient, classify_status, extract_json, set_stream_callback, strip_fences, trim_history,
)


# ── Repair layer ──────────────────────────────────────────────────────────────

def test_extract_json_plain_and_fenced():
    assert extract_json('{"a": 1}') == {"a": 1}
    assert extract_json('```json\n{"a": 2}\n```') == {"a": 2}


def test_extract_json_ignores_surrounding_prose():
    text = 'Sure! Here is the plan:\n{"industry": "restaurant", "sections": ["hero"]}\nHope it helps.'
    assert extract_json(text) == {"industry": "restaurant", "sections": ["hero"]}


def test_extract_json_completes_truncated_object():
    assert extract_json('{"a": 1, "b": [1, 2') == {"a": 1, "b": [1, 2]}
    assert extract_json('{"title": "Hel') == {"title": "Hel"}


@pytest.mark.parametrize("text", ["", "   ", "no json here", "[1, 2, 3]"])
def test_extract_json_raises_malformed(text):
    with pytest.raises(MalformedResponseError):
        extract_json(text)


def test_strip_fences():
    assert strip_fences("```jsx\nconst a = 1;\n```") == "const a = 1;"
    assert strip_fences("plain") == "plain"


def test_trim_history_keeps_valid_recent_turns():
    history = [
        {"role": "system", "content": "ignored"},
        {"role": "user", "content": "one"},
        {"role": "assistant", "content": 5},
        {"role": "assistant", "content": "two"},
        "garbage",
        {"role": "user", "content": "three"},
    ]
    assert trim_history(history, limit=2) == [
        {"role": "assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]


@pytest.mark.parametrize("status, cls, retryable", [
    (429, RateLimitError, True),
    (401, AuthError, False),
    (403, AuthError, False),
    (402, QuotaError, False),
    (503, GenerationError, True),
    (400, GenerationError, False),
])
def test_classify_status(status, cls, retryable):
    err = classify_status(status, "body")
    assert type(err) is cls
    assert err.retryable is retryable
    assert err.status == status


# ── OllamaClient ──────────────────────────────────────────────────────────────

def _response(content="hi", status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.text = content
    resp.json.return_value = {"message": {"content": content}}
    return resp


@pytest.fixture
def mock_post():
    with patch("sitegen.llm.requests.post") as mock:
        mock.return_value = _response()
        yield mock


def test_complete_builds_chat_payload(mock_post):
    client = OllamaClient(model="test-model", ollama_url="http://ollama:11434/", retries=0)
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "ok"}]

    assert client.complete("sys", "usr", history=history, json_mode=True, max_tokens=100) == "hi"

    url = mock_post.call_args.args[0]
    payload = mock_post.call_args.kwargs["json"]
    assert url == "http://ollama:11434/api/chat"
    assert payload["model"] == "test-model"
    assert payload["format"] == "json"
    assert payload["options"]["num_predict"] == 100
    assert [m["role"] for m in payload["messages"]] == ["system", "user", "assistant", "user"]
    assert payload["messages"][-1]["content"] == "usr"


def test_propose_json_parses_reply(mock_post):
    mock_post.return_value = _response('{"files": ["src/App.jsx"]}')
    client = OllamaClient(retries=0)

    assert client.propose_json("s", "u") == {"files": ["src/App.jsx"]}
    assert mock_post.call_args.kwargs["json"]["format"] == "json"


def test_retries_transient_failures(mock_post):
    mock_post.side_effect = [requests.Timeout("slow"), _response(status=503), _response("done")]
    client = OllamaClient(retries=2, backoff=0)

    assert client.complete("s", "u") == "done"
    assert mock_post.call_count == 3


def test_auth_errors_are_not_retried(mock_post):
    mock_post.return_value = _response("denied", status=401)
    client = OllamaClient(retries=3, backoff=0)

    with pytest.raises(AuthError):
        client.complete("s", "u")
    assert mock_post.call_count == 1


def test_empty_reply_is_malformed_after_retries(mock_post):
    mock_post.return_value = _response("   ")
    client = OllamaClient(retries=1, backoff=0)

    with pytest.raises(MalformedResponseError):
        client.complete("s", "u")
    assert mock_post.call_count == 2


def test_streaming_emits_markers_and_tokens(mock_post):
    resp = _response()
    resp.iter_lines.return_value = [
        b'{"message": {"content": "He"}}',
        b"",
        b"not json",
        b'{"message": {"content": "llo"}, "done": true}',
    ]
    mock_post.return_value = resp
    tokens = []
    set_stream_callback(tokens.append)
    try:
        text = OllamaClient(stream=True, retries=0).complete("s", "u", label="Hero")
    finally:
        set_stream_callback(None)

    assert text == "Hello"
    assert tokens == ["\x00START:Hero", "He", "llo", "\x00END"]


def test_stream_callbacks_are_per_thread(mock_post):
    resp = _response()
    resp.iter_lines.return_value = [b'{"message": {"content": "ok"}, "done": true}']
    mock_post.return_value = resp
    a_tokens, b_tokens = [], []
    b_ready, a_done = threading.Event(), threading.Event()

    def job_a():
        b_ready.wait(5)
        set_stream_callback(a_tokens.append)
        set_stream_callback(None)
        a_done.set()

    def job_b():
        set_stream_callback(b_tokens.append)
        b_ready.set()
        a_done.wait(5)
        try:
            OllamaClient(stream=True, retries=0).complete("s", "u", label="Menu")
        finally:
            set_stream_callback(None)

    threads = [threading.Thread(target=job_a), threading.Thread(target=job_b)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert a_tokens == []
    assert b_tokens == ["\x00START:Menu", "ok", "\x00END"]
