import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from docx import Document
from fastapi.testclient import TestClient

from backend.answer_proxy.api.deps import get_llm_service, get_recipe
from backend.answer_proxy.config import Settings, get_settings
from backend.answer_proxy.errors import UpstreamError
from backend.answer_proxy.main import create_app, run
from backend.answer_proxy.services.llm_service import ModelResult

CV = "Jane Doe\nhttps://linkedin.com/in/janedoe\nSenior Engineer at Globex\nAnalyst at Initech"


def _fake_llm(answer="A grounded answer."):
    fake = MagicMock()
    fake.configured = True
    fake.provider_name = "groq"
    fake.model_name = "llama-test"
    fake.generate = AsyncMock(return_value=ModelResult(text=answer, provider="groq", model="llama-test"))
    return fake


def _client(llm=None, **overrides):
    fields = {"token_secret": "integration-secret", "groq_api_key": "gsk-test", **overrides}
    settings = Settings(_env_file=None, **fields)
    app = create_app(settings)
    app.dependency_overrides[get_llm_service] = lambda: llm or _fake_llm()
    return TestClient(app)


def _token(client):
    r = client.post("/api/register")
    assert r.status_code == 200
    return r.json()["token"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_health_reports_primary_provider():
    client = _client()
    r = client.get("/api/health")

    assert r.status_code == 200
    assert r.json() == {"ok": True, "provider": "groq", "model": "llama-test"}


def test_metrics_endpoint():
    client = _client()
    client.get("/api/health")

    r = client.get("/metrics")
    assert r.status_code == 200
    assert "gateway_requests_total" in r.text


def test_register_returns_token_and_expiry_ms():
    client = _client()
    r = client.post("/api/register")

    assert r.status_code == 200
    data = r.json()
    assert set(data) == {"token", "expiresAt"}
    assert data["token"].count(".") == 1
    assert data["expiresAt"] > 10**12
    assert r.headers["RateLimit-Limit"] == "20"


def test_register_rate_limited_after_20():
    client = _client()
    for _ in range(20):
        assert client.post("/api/register").status_code == 200

    r = client.post("/api/register")
    assert r.status_code == 429
    assert r.json() == {"error": "Too many requests"}
    assert int(r.headers["Retry-After"]) > 0


def test_register_without_secret_is_misconfigured():
    app = create_app(Settings(_env_file=None, token_secret=None, groq_api_key="gsk-test"))
    client = TestClient(app)

    r = client.post("/api/register")
    assert r.status_code == 500
    assert r.json() == {"error": "Server misconfigured"}


@pytest.mark.parametrize(
    "headers,reason",
    [
        ({}, "missing"),
        ({"Authorization": "Bearer not-a-token"}, "format"),
        ({"Authorization": "Bearer abc.def"}, "sig"),
    ],
)
def test_generate_rejects_bad_tokens(headers, reason):
    llm = _fake_llm()
    client = _client(llm)

    r = client.post("/api/generate", json={"question": "Why us?", "cvText": CV}, headers=headers)

    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized", "reason": reason}
    llm.generate.assert_not_called()


def test_token_from_other_secret_is_rejected():
    other = _client(token_secret="different-secret")
    token = _token(other)

    r = _client().post("/api/generate", json={"question": "Why us?", "cvText": CV}, headers=_auth(token))
    assert r.status_code == 401
    assert r.json()["reason"] == "sig"


def test_structured_generate_end_to_end():
    llm = _fake_llm("Here's my answer: I led the Globex migration.")
    client = _client(llm)
    token = _token(client)

    r = client.post(
        "/api/generate",
        json={
            "question": "Tell us about a project you led",
            "cvText": CV,
            "jobTitle": "Staff Engineer",
            "company": "Acme",
            "requirements": ["Python", 42, "Leadership"],
            "length": "short",
        },
        headers=_auth(token),
    )

    assert r.status_code == 200
    data = r.json()
    assert data == {
        "answer": "I led the Globex migration.",
        "provider": "groq",
        "model": "llama-test",
        "warnings": [],
    }
    assert r.headers["RateLimit-Limit"] == "60"
    prompt = llm.generate.await_args.args[0]
    assert "50-80 words" in prompt.user_prompt
    assert "**Company:** Acme" in prompt.user_prompt


def test_linkedin_label_is_extraction():
    llm = _fake_llm("https://linkedin.com/in/janedoe")
    client = _client(llm)
    token = _token(client)

    r = client.post("/api/generate", json={"question": "LinkedIn URL*", "cvText": CV}, headers=_auth(token))

    assert r.status_code == 200
    assert r.json()["answer"] == "https://linkedin.com/in/janedoe"
    prompt = llm.generate.await_args.args[0]
    assert prompt.temperature == 0.1
    assert "Extract: LinkedIn URL" in prompt.user_prompt


def test_short_cv_is_rejected_before_recipe():
    recipe = MagicMock()
    llm = _fake_llm()
    client = _client(llm)
    client.app.dependency_overrides[get_recipe] = lambda: recipe
    token = _token(client)

    r = client.post("/api/generate", json={"question": "Why us?", "cvText": "abc"}, headers=_auth(token))

    assert r.status_code == 400
    assert r.json() == {"error": "Missing or empty cvText"}
    recipe.build_prompts.assert_not_called()
    llm.generate.assert_not_called()


@pytest.mark.parametrize("body", [{}, {"systemPrompt": "only half"}, {"foo": "bar"}])
def test_missing_prompt_data(body):
    client = _client()
    token = _token(client)

    r = client.post("/api/generate", json=body, headers=_auth(token))

    assert r.status_code == 400
    assert r.json()["error"].startswith("Missing prompt data")


def test_invalid_json_body():
    client = _client()
    token = _token(client)

    r = client.post(
        "/api/generate",
        content=b"{not json",
        headers={**_auth(token), "Content-Type": "application/json"},
    )
    assert r.status_code == 400


def test_legacy_passthrough():
    llm = _fake_llm("Legacy answer")
    client = _client(llm)
    token = _token(client)

    r = client.post(
        "/api/generate",
        json={"systemPrompt": "You are a helpful assistant.", "userPrompt": "Answer this question please.", "temperature": "warm"},
        headers=_auth(token),
    )

    assert r.status_code == 200
    assert r.json()["answer"] == "Legacy answer"
    prompt = llm.generate.await_args.args[0]
    assert prompt.system_prompt == "You are a helpful assistant."
    assert prompt.user_prompt == "Answer this question please."
    assert prompt.temperature == 0.7


def test_legacy_nan_temperature_uses_default():
    llm = _fake_llm("Legacy answer")
    client = _client(llm)
    token = _token(client)

    r = client.post(
        "/api/generate",
        content=b'{"systemPrompt": "You are a helpful assistant.", "userPrompt": "Answer this question please.", "temperature": NaN}',
        headers={**_auth(token), "Content-Type": "application/json"},
    )

    assert r.status_code == 200
    assert llm.generate.await_args.args[0].temperature == 0.7


def test_legacy_prompt_too_large():
    client = _client()
    token = _token(client)

    r = client.post(
        "/api/generate",
        json={"systemPrompt": "s" * 30_001, "userPrompt": "Answer this question please."},
        headers=_auth(token),
    )
    assert r.status_code == 413


def test_generate_rate_limited_after_60():
    client = _client()
    token = _token(client)
    body = {"question": "Why us?", "cvText": CV}

    for _ in range(60):
        assert client.post("/api/generate", json=body, headers=_auth(token)).status_code == 200

    r = client.post("/api/generate", json=body, headers=_auth(token))
    assert r.status_code == 429
    assert r.headers["RateLimit-Remaining"] == "0"


def test_per_ip_ceiling_across_tokens():
    client = _client(rate_limit_ip_per_hour=3)
    body = {"question": "Why us?", "cvText": CV}
    tokens = [_token(client) for _ in range(4)]

    statuses = [client.post("/api/generate", json=body, headers=_auth(t)).status_code for t in tokens]
    assert statuses == [200, 200, 200, 429]


def test_upstream_failure_is_502():
    llm = _fake_llm()
    llm.generate = AsyncMock(side_effect=UpstreamError(status=503, details="groq: RateLimitError"))
    client = _client(llm)
    token = _token(client)

    r = client.post("/api/generate", json={"question": "Why us?", "cvText": CV}, headers=_auth(token))

    assert r.status_code == 502
    assert r.json() == {"error": "Upstream error", "status": 503, "details": "groq: RateLimitError"}


def test_unexpected_error_is_generic_500():
    llm = _fake_llm()
    llm.generate = AsyncMock(side_effect=RuntimeError("secret internals"))
    client = TestClient(_client(llm).app, raise_server_exceptions=False)
    token = _token(client)

    r = client.post("/api/generate", json={"question": "Why us?", "cvText": CV}, headers=_auth(token))

    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}


def test_no_model_backend_is_misconfigured():
    app = create_app(Settings(_env_file=None, token_secret="integration-secret", llm_provider="groq"))
    client = TestClient(app)
    token = _token(client)

    r = client.post("/api/generate", json={"question": "Why us?", "cvText": CV}, headers=_auth(token))

    assert r.status_code == 500
    assert r.json() == {"error": "Server misconfigured"}


def test_upload_plain_text_cv():
    client = _client()
    token = _token(client)

    r = client.post(
        "/api/cv/upload",
        files={"cv": ("cv.txt", b"Jane Doe\r\n\r\n\r\n\r\nEngineer", "text/plain")},
        headers=_auth(token),
    )

    assert r.status_code == 200
    assert r.json() == {"success": True, "text": "Jane Doe\n\nEngineer", "filename": "cv.txt", "size": 24}


def test_upload_docx_cv():
    doc = Document()
    doc.add_paragraph("Jane Doe")
    doc.add_paragraph("Analyst at Initech")
    buf = io.BytesIO()
    doc.save(buf)
    client = _client()
    token = _token(client)

    r = client.post(
        "/api/cv/upload",
        files={"cv": ("cv.docx", buf.getvalue(), "application/octet-stream")},
        headers=_auth(token),
    )

    assert r.status_code == 200
    assert r.json()["text"] == "Jane Doe\nAnalyst at Initech"


def test_upload_requires_token():
    r = _client().post("/api/cv/upload", files={"cv": ("cv.txt", b"Jane", "text/plain")})
    assert r.status_code == 401


def test_upload_without_file():
    client = _client()
    token = _token(client)

    r = client.post("/api/cv/upload", data={"other": "x"}, headers=_auth(token))
    assert r.status_code == 400
    assert r.json() == {"error": "No file provided"}


def test_upload_unsupported_type():
    client = _client()
    token = _token(client)

    r = client.post(
        "/api/cv/upload",
        files={"cv": ("photo.png", b"\x89PNG\r\n", "image/png")},
        headers=_auth(token),
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Unsupported file type"}


def test_upload_too_large():
    client = _client(max_upload_bytes=16)
    token = _token(client)

    r = client.post(
        "/api/cv/upload",
        files={"cv": ("cv.txt", b"x" * 17, "text/plain")},
        headers=_auth(token),
    )
    assert r.status_code == 413


@patch("uvicorn.run")
def test_run_serves_module_app(mock_run):
    settings = get_settings()
    run()

    mock_run.assert_called_once_with("backend.answer_proxy.main:app", host=settings.host, port=settings.port)
