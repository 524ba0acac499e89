"""Template retrieval: packaged files first, then the public URL.

Serverless deployments do not always ship the templates directory on disk, but
the same files are served over HTTP under /templates/.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Protocol

import requests

from certificate_content import CertificateCategory
from certificate_errors import TemplateNotFoundError

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parent
DEFAULT_TIMEOUT = 10.0


def template_file_name(category: CertificateCategory) -> str:
    return f"{CertificateCategory(category).value}_template.pdf"


class TemplateSource(Protocol):
    name: str

    def fetch(self, file_name: str) -> bytes:
        """Return the template bytes or raise TemplateNotFoundError."""
        ...


class LocalTemplateSource:
    name = "local"

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def fetch(self, file_name: str) -> bytes:
        path = self.directory / Path(file_name).name
        try:
            return path.read_bytes()
        except OSError as exc:
            raise TemplateNotFoundError(file_name, attempts=[f"{path}: {exc.strerror or exc}"]) from exc


class RemoteTemplateSource:
    name = "remote"

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # Without an injected session each fetch is a one-off requests.get.
        self.session = session

    def url_for(self, file_name: str) -> str:
        return f"{self.base_url}/templates/{Path(file_name).name}"

    def fetch(self, file_name: str) -> bytes:
        url = self.url_for(file_name)
        try:
            response = (self.session or requests).get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TemplateNotFoundError(file_name, attempts=[f"{url}: {exc}"]) from exc
        if not response.ok:
            raise TemplateNotFoundError(
                file_name,
                http_status=response.status_code,
                attempts=[f"{url}: HTTP {response.status_code}"],
            )
        return response.content


def resolve_base_url() -> str:
    explicit = os.environ.get("CERT_TEMPLATE_BASE_URL") or os.environ.get("APP_URL")
    if explicit:
        return explicit
    vercel_url = os.environ.get("VERCEL_URL")
    if vercel_url:
        return f"https://{vercel_url}"
    return "http://localhost:3000"


def default_template_sources(
    templates_dir: Path | str | None = None,
    base_url: str | None = None,
    timeout: float | None = None,
) -> list[TemplateSource]:
    """Local directory first, then the HTTP fallback, configured from the environment."""
    if templates_dir is None:
        templates_dir = os.environ.get("CERT_TEMPLATES_DIR") or ROOT_DIR / "templates"
    if timeout is None:
        timeout = float(os.environ.get("CERT_TEMPLATE_TIMEOUT", DEFAULT_TIMEOUT))
    return [
        LocalTemplateSource(templates_dir),
        RemoteTemplateSource(base_url or resolve_base_url(), timeout=timeout),
    ]


def load_template(
    category: CertificateCategory,
    sources: Iterable[TemplateSource],
) -> bytes:
    """Try each source in order and return the first template found.

    Templates are read on every call; nothing is cached here.
    """
    file_name = template_file_name(category)
    attempts: list[str] = []
    http_status: int | None = None
    for index, source in enumerate(sources):
        try:
            data = source.fetch(file_name)
        except TemplateNotFoundError as exc:
            attempts.extend(exc.attempts or [f"{source.name}: {exc}"])
            if exc.http_status is not None:
                http_status = exc.http_status
            logger.warning("Template %s unavailable from %s source", file_name, source.name)
            continue
        if index:
            logger.info("Template %s loaded from fallback %s source", file_name, source.name)
        return data

    logger.error("Template load failed from every source: %s", "; ".join(attempts))
    raise TemplateNotFoundError(file_name, http_status=http_status, attempts=attempts)
