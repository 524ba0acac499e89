import argparse
import hashlib
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Iterable

from dotenv import load_dotenv

from certificate_content import (
    CertificateCategory,
    CertificateRequest,
    body_text,
    ensure_printable,
    format_issue_date,
    return_text,
    sanitize_patient_name,
)
from certificate_errors import BodyTooLongError, CertificateRenderError
from certificate_overlay import LayoutConfig, draw_overlay, layout_for, merge_overlay, plan_layout
from template_loader import TemplateSource, default_template_sources, load_template

logger = logging.getLogger(__name__)


class RenderStage(str, Enum):
    VALIDATING = "validating"
    GENERATING = "generating"
    TEMPLATE_LOADING = "template_loading"
    DRAWING = "drawing"
    GUARD_CHECKING = "guard_checking"
    SERIALIZING = "serializing"
    DONE = "done"


def _enter(stage: RenderStage, ref: str) -> RenderStage:
    logger.debug("Certificate %s: %s", ref, stage.value)
    return stage


@dataclass(frozen=True)
class RenderResult:
    success: bool
    pdf_bytes: bytes | None = None
    error: str | None = None
    error_code: str | None = None
    failed_stage: RenderStage | None = None

    @property
    def sha256(self) -> str | None:
        if self.pdf_bytes is None:
            return None
        return hashlib.sha256(self.pdf_bytes).hexdigest()

    @classmethod
    def failure(cls, exc: Exception, stage: RenderStage) -> "RenderResult":
        code = exc.code if isinstance(exc, CertificateRenderError) else "render_failed"
        message = str(exc) or "Certificate rendering failed"
        return cls(success=False, error=message, error_code=code, failed_stage=stage)


def render_certificate(
    request: CertificateRequest,
    sources: Iterable[TemplateSource] | None = None,
    layout: LayoutConfig | None = None,
) -> RenderResult:
    """Render one certificate onto its category template.

    Runs validate, generate, load, draw (with the overflow guard) and serialize
    as one synchronous pass. Never raises: every failure comes back as a
    RenderResult carrying the stage it stopped in, and no bytes.
    """
    ref = request.certificate_ref
    stage = _enter(RenderStage.VALIDATING, ref)
    try:
        name = sanitize_patient_name(request.patient_name)
        request = request.model_copy(update={"patient_name": name})
        ensure_printable(request)

        stage = _enter(RenderStage.GENERATING, ref)
        opening = body_text(request)
        closing = return_text(request)
        layout = layout or layout_for(request.category)

        stage = _enter(RenderStage.TEMPLATE_LOADING, ref)
        template_bytes = load_template(
            request.category,
            sources if sources is not None else default_template_sources(),
        )

        stage = _enter(RenderStage.DRAWING, ref)
        plan = plan_layout(request, layout, opening=opening, closing=closing)
        overlay_bytes = draw_overlay(plan, layout)

        stage = _enter(RenderStage.SERIALIZING, ref)
        pdf_bytes = merge_overlay(template_bytes, overlay_bytes)
    except BodyTooLongError as exc:
        # Raised from the guard checkpoints inside plan_layout.
        logger.info("Certificate %s rejected: body ends at %.1f, limit %.1f", ref, exc.cursor_y, exc.max_y)
        return RenderResult.failure(exc, RenderStage.GUARD_CHECKING)
    except CertificateRenderError as exc:
        logger.info("Certificate %s rejected at %s: %s", ref, stage.value, exc.code)
        return RenderResult.failure(exc, stage)
    except Exception as exc:
        logger.exception("Certificate %s render failed at %s", ref, stage.value)
        return RenderResult.failure(exc, stage)

    _enter(RenderStage.DONE, ref)
    result = RenderResult(success=True, pdf_bytes=pdf_bytes)
    logger.info(
        "Certificate rendered: category=%s ref=%s bytes=%d sha256=%s",
        request.category.value,
        request.certificate_ref,
        len(pdf_bytes),
        result.sha256,
    )
    return result


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render a medical certificate onto its pre-designed template PDF."
    )
    parser.add_argument(
        "--category",
        required=True,
        choices=[c.value for c in CertificateCategory],
        help="Certificate category; selects template and wording.",
    )
    parser.add_argument("--patient-name", required=True)
    parser.add_argument("--consultation-date", required=True, help='Display date, e.g. "18 February 2026".')
    parser.add_argument("--start-date", required=True, help="Display date of the first day off.")
    parser.add_argument("--end-date", help="Display date of the last day off (defaults to --start-date).")
    parser.add_argument("--certificate-ref", required=True)
    parser.add_argument("--issue-date", help="Header date (defaults to today as DD/MM/YYYY).")
    parser.add_argument("--output", required=True, help="Output PDF path.")
    parser.add_argument("--templates-dir", help="Local template directory.")
    parser.add_argument("--template-base-url", help="Base URL for the template fallback fetch.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Template fallback fetch timeout in seconds.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)

    request = CertificateRequest(
        category=CertificateCategory(args.category),
        patient_name=args.patient_name,
        consultation_date=args.consultation_date,
        start_date=args.start_date,
        end_date=args.end_date or args.start_date,
        certificate_ref=args.certificate_ref,
        issue_date=args.issue_date or format_issue_date(date.today()),
    )

    sources = default_template_sources(
        templates_dir=args.templates_dir,
        base_url=args.template_base_url,
        timeout=args.timeout,
    )
    result = render_certificate(request, sources=sources)
    if not result.success:
        print(f"[FAIL] {result.error_code}: {result.error}")
        return 1

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.pdf_bytes)
    print(f"Wrote: {output_path} (sha256 {result.sha256})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
