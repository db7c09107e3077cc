import pytest
import requests

from veritas.tools import llm_client, search, transcription
from veritas.tools.llm_client import LLMError, RateLimitError, chat_completion
from veritas.tools.search import SearchError, SearchQuotaError, tavily_search
from veritas.tools.transcription import TranscriptionRateLimited, transcribe_file


class FakeResponse:
    def __init__(self, status_code=200, json_body=None, text="", headers=None):
        self.status_code = status_code
        self._json = json_body
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


def _post_returning(monkeypatch, module, response, sent=None):
    def fake_post(url, **kwargs):
        if sent is not None:
            sent.append((url, kwargs))
        return response
    monkeypatch.setattr(module.requests, "post", fake_post)


def test_chat_completion_returns_content(monkeypatch):
    sent = []
    body = {"choices": [{"message": {"content": '{"ok": true}'}}]}
    _post_returning(monkeypatch, llm_client, FakeResponse(200, body), sent)

    out = chat_completion("https://api.example/v1/", "k", "m", "sys", "user", force_json=True)

    assert out == '{"ok": true}'
    url, kwargs = sent[0]
    assert url == "https://api.example/v1/chat/completions"
    assert kwargs["json"]["response_format"] == {"type": "json_object"}
    assert kwargs["json"]["messages"][0] == {"role": "system", "content": "sys"}


def test_chat_completion_429_is_rate_limit(monkeypatch):
    body = {"error": {"message": "Rate limit reached. Please try again in 6m0s."}}
    _post_returning(monkeypatch, llm_client, FakeResponse(429, body))
    with pytest.raises(RateLimitError, match="6m0s"):
        chat_completion("https://api.example/v1", "k", "m", "", "u")


def test_chat_completion_quota_wording_on_other_status(monkeypatch):
    body = {"error": {"message": "You exceeded tokens per day (TPD) for this model"}}
    _post_returning(monkeypatch, llm_client, FakeResponse(413, body))
    with pytest.raises(RateLimitError):
        chat_completion("https://api.example/v1", "k", "m", "", "u")


def test_chat_completion_client_error(monkeypatch):
    _post_returning(monkeypatch, llm_client, FakeResponse(401, {"error": {"message": "Invalid API Key"}}))
    with pytest.raises(LLMError) as exc:
        chat_completion("https://api.example/v1", "k", "m", "", "u")
    assert not isinstance(exc.value, RateLimitError)


def test_chat_completion_retries_network_errors(monkeypatch):
    calls = []

    def flaky_post(url, **kwargs):
        calls.append(url)
        if len(calls) == 1:
            raise requests.exceptions.ConnectionError("reset")
        return FakeResponse(200, {"choices": [{"message": {"content": "fine"}}]})

    monkeypatch.setattr(llm_client.requests, "post", flaky_post)
    monkeypatch.setattr(llm_client.time, "sleep", lambda s: None)
    assert chat_completion("https://api.example/v1", "k", "m", "", "u") == "fine"
    assert len(calls) == 2


def test_tavily_search_normalizes_results(monkeypatch):
    sent = []
    body = {
        "answer": "Yes.",
        "results": [
            {"url": "https://www.nasa.gov/a", "title": "NASA", "content": "text", "score": 0.8},
            {"url": "ftp://weird/host", "title": "skip me"},
        ],
    }
    _post_returning(monkeypatch, search, FakeResponse(200, body), sent)

    out = tavily_search("https://api.tavily.com", "tvly-k", "is the moon round", depth="advanced", max_results=3)

    assert out == {"results": [{"url": "https://www.nasa.gov/a", "title": "NASA", "content": "text", "score": 0.8}],
                   "answer": "Yes."}
    payload = sent[0][1]["json"]
    assert payload["search_depth"] == "advanced"
    assert payload["max_results"] == 3


@pytest.mark.parametrize("status", [429, 432, 433])
def test_tavily_quota_statuses(monkeypatch, status):
    _post_returning(monkeypatch, search, FakeResponse(status, {"detail": {"error": "usage limit exceeded"}}))
    with pytest.raises(SearchQuotaError):
        tavily_search("https://api.tavily.com", "k", "q")


def test_tavily_other_errors(monkeypatch):
    _post_returning(monkeypatch, search, FakeResponse(500, None, text="upstream"))
    with pytest.raises(SearchError) as exc:
        tavily_search("https://api.tavily.com", "k", "q")
    assert not isinstance(exc.value, SearchQuotaError)


def test_transcribe_rate_limit(monkeypatch, tmp_path):
    audio = tmp_path / "a.m4a"
    audio.write_bytes(b"\x00\x01")
    _post_returning(monkeypatch, transcription, FakeResponse(429, None, text="Please try again in 1m0s"))
    with pytest.raises(TranscriptionRateLimited):
        transcribe_file("https://api.example/v1", "k", str(audio))


def test_transcribe_plain_text_and_json(monkeypatch, tmp_path):
    audio = tmp_path / "a.m4a"
    audio.write_bytes(b"\x00\x01")
    _post_returning(monkeypatch, transcription, FakeResponse(200, None, text=" hello there \n",
                                                             headers={"Content-Type": "text/plain"}))
    assert transcribe_file("https://api.example/v1", "k", str(audio)) == "hello there"

    _post_returning(monkeypatch, transcription, FakeResponse(200, {"text": " from json "}, text="{}",
                                                             headers={"Content-Type": "application/json"}))
    assert transcribe_file("https://api.example/v1", "k", str(audio)) == "from json"
