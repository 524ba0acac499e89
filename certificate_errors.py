"""Error taxonomy for certificate rendering.

Components raise these; only the renderer turns them into a RenderResult.
"""

from __future__ import annotations


class CertificateRenderError(Exception):
    code = "render_failed"


class InvalidInputError(CertificateRenderError):
    code = "invalid_input"


class EmptyNameError(InvalidInputError):
    def __init__(self) -> None:
        super().__init__("Patient name is required")


class NameTooLongError(InvalidInputError):
    def __init__(self, length: int, limit: int) -> None:
        super().__init__(f"Patient name exceeds maximum length ({limit} characters)")
        self.length = length
        self.limit = limit


class TemplateNotFoundError(CertificateRenderError):
    code = "template_not_found"

    def __init__(
        self,
        file_name: str,
        http_status: int | None = None,
        attempts: list[str] | None = None,
    ) -> None:
        message = f"Template not found: {file_name}"
        if http_status is not None:
            message += f" (HTTP {http_status})"
        super().__init__(message)
        self.file_name = file_name
        self.http_status = http_status
        self.attempts = list(attempts or [])


class BodyTooLongError(CertificateRenderError):
    code = "body_too_long"

    def __init__(self, cursor_y: float, max_y: float) -> None:
        super().__init__(
            "Certificate body text is too long and would overlap the doctor information block. "
            "Please shorten the patient name or date range."
        )
        self.cursor_y = cursor_y
        self.max_y = max_y


class UnsupportedCharactersError(InvalidInputError):
    """Text the certificate fonts cannot draw; it would print as blank boxes."""

    def __init__(self, field: str, characters: str) -> None:
        super().__init__(f"{field} contains characters that cannot be printed: {characters}")
        self.field = field
        self.characters = characters
