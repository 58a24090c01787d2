from fastapi.testclient import TestClient

from appbuilder import generator
from appbuilder.errors import AdapterErrorKind, ModelClientError
from appbuilder.main import app

client = TestClient(app)

KEY = "AIzaSyValidLookingKey123456"
API_HEADERS = {"x-api-key": KEY}
DOC = "<!doctype html><html><body>OK</body></html>"


class FakeGemini:
    def __init__(self, outcome):
        self.outcome = outcome

    async def complete(self, prompt, model_name, sampling):
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return {"text": self.outcome}


def _install(monkeypatch, outcome, seen=None):
    def factory(key):
        if seen is not None:
            seen.append(key)
        return FakeGemini(outcome)

    monkeypatch.setattr(generator, "GeminiClient", factory)


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers.get("X-Request-ID")


def test_llm_status_shape():
    r = client.get("/llm/status")
    assert r.status_code == 200
    body = r.json()
    assert body.get("provider") == "gemini"
    assert "model" in body
    assert "has_token" in body


def test_generate_returns_cleaned_code(monkeypatch):
    seen = []
    _install(monkeypatch, "```html\n" + DOC + "\n```", seen)
    r = client.post("/generate", json={"description": "Build a pomodoro timer"}, headers=API_HEADERS)
    assert r.status_code == 200
    body = r.json()
    assert body["code"] == DOC
    assert body["attempts"] == 1
    assert seen == [KEY]


def test_generate_falls_back_to_server_key(monkeypatch):
    from appbuilder import main as main_mod

    seen = []
    _install(monkeypatch, DOC, seen)
    monkeypatch.setattr(main_mod.config, "GEMINI_API_KEY", "server-side-key-0001")
    r = client.post("/generate", json={"description": "Build a calculator"})
    assert r.status_code == 200
    assert seen == ["server-side-key-0001"]


def test_generate_without_any_key_is_422(monkeypatch):
    from appbuilder import main as main_mod

    _install(monkeypatch, DOC)
    monkeypatch.setattr(main_mod.config, "GEMINI_API_KEY", "")
    r = client.post("/generate", json={"description": "Build a calculator"})
    assert r.status_code == 422
    err = r.json()["error"]
    assert err["kind"] == "MissingCredential"
    assert err["title"] == "API Key Required"
    assert any(a["action"] == "open_settings" for a in err["actions"])


def test_generate_short_description_is_422(monkeypatch):
    _install(monkeypatch, DOC)
    r = client.post("/generate", json={"description": "abc"}, headers=API_HEADERS)
    assert r.status_code == 422
    err = r.json()["error"]
    assert err["kind"] == "TooShort"
    assert err["category"] == "validation"


def test_generate_invalid_key_is_401(monkeypatch):
    exc = ModelClientError(
        "Gemini HTTP 400: API key not valid. Please pass a valid API key.",
        AdapterErrorKind.INVALID_ARGUMENT,
        status_code=400,
        vendor_status="INVALID_ARGUMENT",
    )
    _install(monkeypatch, exc)
    r = client.post("/generate", json={"description": "Build a calculator"}, headers=API_HEADERS)
    assert r.status_code == 401
    err = r.json()["error"]
    assert err["kind"] == "InvalidCredential"
    assert "INVALID_ARGUMENT" in err["message"]
    assert err["status_code"] == 400


def test_generate_rate_limited_is_429(monkeypatch):
    exc = ModelClientError("Gemini HTTP 429: Too Many Requests", AdapterErrorKind.RESOURCE_EXHAUSTED, status_code=429)
    _install(monkeypatch, exc)
    r = client.post(
        "/generate",
        json={"description": "Build a calculator", "max_retries": 0},
        headers=API_HEADERS,
    )
    assert r.status_code == 429
    err = r.json()["error"]
    assert err["kind"] == "RateLimited"
    assert err["retryable"] is True
    assert [a["action"] for a in err["actions"]] == ["retry", "dismiss"]


def test_generate_invalid_html_is_502(monkeypatch):
    _install(monkeypatch, "I'm sorry, I can't build that.")
    r = client.post("/generate", json={"description": "Build a calculator"}, headers=API_HEADERS)
    assert r.status_code == 502
    assert r.json()["error"]["kind"] == "InvalidGeneratedCode"


def test_generate_rejects_bad_options():
    r = client.post(
        "/generate",
        json={"description": "Build a calculator", "timeout_ms": 0},
        headers=API_HEADERS,
    )
    assert r.status_code == 422
