import pytest
import requests

from certificate_content import CertificateCategory
from certificate_errors import TemplateNotFoundError
from template_loader import (
    LocalTemplateSource,
    RemoteTemplateSource,
    default_template_sources,
    load_template,
    resolve_base_url,
    template_file_name,
)


class FakeResponse:
    def __init__(self, status_code: int, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content
        self.ok = 200 <= status_code < 300


class FakeSession:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple[str, float]] = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_template_file_name_per_category():
    assert template_file_name(CertificateCategory.WORK) == "work_template.pdf"
    assert template_file_name(CertificateCategory.STUDY) == "study_template.pdf"
    assert template_file_name("carer") == "carer_template.pdf"


def test_local_source_reads_template(templates_dir):
    data = load_template(CertificateCategory.WORK, [LocalTemplateSource(templates_dir)])
    assert data.startswith(b"%PDF")


def test_falls_back_to_remote_when_local_missing(tmp_path):
    session = FakeSession(FakeResponse(200, b"%PDF-remote"))
    sources = [
        LocalTemplateSource(tmp_path / "missing"),
        RemoteTemplateSource("https://certs.example.com/", timeout=2.5, session=session),
    ]
    assert load_template(CertificateCategory.STUDY, sources) == b"%PDF-remote"
    assert session.calls == [("https://certs.example.com/templates/study_template.pdf", 2.5)]


def test_remote_not_consulted_when_local_succeeds(templates_dir):
    session = FakeSession(FakeResponse(200, b"%PDF-remote"))
    sources = [LocalTemplateSource(templates_dir), RemoteTemplateSource("https://x.test", session=session)]
    load_template(CertificateCategory.CARER, sources)
    assert session.calls == []


def test_missing_everywhere_reports_file_and_status(tmp_path):
    sources = [
        LocalTemplateSource(tmp_path),
        RemoteTemplateSource("https://x.test", session=FakeSession(FakeResponse(404))),
    ]
    with pytest.raises(TemplateNotFoundError) as excinfo:
        load_template(CertificateCategory.WORK, sources)
    err = excinfo.value
    assert err.file_name == "work_template.pdf"
    assert err.http_status == 404
    assert str(err) == "Template not found: work_template.pdf (HTTP 404)"
    assert len(err.attempts) == 2


def test_network_error_and_timeout_are_template_not_found(tmp_path):
    for error in (requests.ConnectionError("refused"), requests.Timeout("slow")):
        sources = [
            LocalTemplateSource(tmp_path),
            RemoteTemplateSource("https://x.test", session=FakeSession(error=error)),
        ]
        with pytest.raises(TemplateNotFoundError) as excinfo:
            load_template(CertificateCategory.WORK, sources)
        assert excinfo.value.http_status is None
        assert "work_template.pdf" in str(excinfo.value)


def test_templates_are_read_fresh_each_call(templates_dir):
    source = LocalTemplateSource(templates_dir)
    first = load_template(CertificateCategory.WORK, [source])
    (templates_dir / "work_template.pdf").write_bytes(b"%PDF-replaced")
    assert load_template(CertificateCategory.WORK, [source]) == b"%PDF-replaced"
    assert first != b"%PDF-replaced"


def test_base_url_resolution_order(monkeypatch):
    for key in ("CERT_TEMPLATE_BASE_URL", "APP_URL", "VERCEL_URL"):
        monkeypatch.delenv(key, raising=False)
    assert resolve_base_url() == "http://localhost:3000"
    monkeypatch.setenv("VERCEL_URL", "preview.vercel.app")
    assert resolve_base_url() == "https://preview.vercel.app"
    monkeypatch.setenv("APP_URL", "https://app.example.com")
    assert resolve_base_url() == "https://app.example.com"
    monkeypatch.setenv("CERT_TEMPLATE_BASE_URL", "https://cdn.example.com")
    assert resolve_base_url() == "https://cdn.example.com"


def test_default_sources_follow_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("CERT_TEMPLATES_DIR", str(tmp_path))
    monkeypatch.setenv("CERT_TEMPLATE_BASE_URL", "https://cdn.example.com")
    monkeypatch.setenv("CERT_TEMPLATE_TIMEOUT", "3")
    local, remote = default_template_sources()
    assert local.directory == tmp_path
    assert remote.base_url == "https://cdn.example.com"
    assert remote.timeout == 3.0


def test_any_2xx_response_is_a_template():
    session = FakeSession(FakeResponse(203, b"%PDF-cached"))
    source = RemoteTemplateSource("https://x.test", session=session)
    assert source.fetch("work_template.pdf") == b"%PDF-cached"


def test_server_error_is_template_not_found():
    source = RemoteTemplateSource("https://x.test", session=FakeSession(FakeResponse(500)))
    with pytest.raises(TemplateNotFoundError) as excinfo:
        source.fetch("work_template.pdf")
    assert excinfo.value.http_status == 500


def test_remote_without_session_uses_module_level_get(monkeypatch):
    calls = []

    def fake_get(url, timeout=None):
        calls.append((url, timeout))
        return FakeResponse(200, b"%PDF-remote")

    monkeypatch.setattr(requests, "get", fake_get)
    source = RemoteTemplateSource("https://cdn.example.com", timeout=4.0)
    assert source.session is None
    assert source.fetch("carer_template.pdf") == b"%PDF-remote"
    assert calls == [("https://cdn.example.com/templates/carer_template.pdf", 4.0)]
