import io
from dataclasses import dataclass, field, replace

from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import Color
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from certificate_content import CertificateCategory, CertificateRequest, body_text, return_text
from certificate_errors import BodyTooLongError


SALUTATION = "To whom it may concern,"
CERT_ID_LABEL = "CERTIFICATE ID: {ref}"

TEXT_COLOR = (0.15, 0.15, 0.15)
MUTED_COLOR = (0.55, 0.55, 0.55)


@dataclass(frozen=True)
class FontSizes:
    body: float = 11
    salutation: float = 11
    issue_date: float = 10
    cert_id: float = 8


@dataclass(frozen=True)
class LayoutConfig:
    """Page geometry for one certificate family.

    Every y value is a design coordinate: measured down from the top edge of
    the page, the way the template designer specified it. Only to_page_y()
    converts into PDF space.
    """

    page_width: float = 595.28
    page_height: float = 841.89
    issue_date_y: float = 170
    anchor_y: float = 290
    body_gap: float = 10
    paragraph_gap: float = 14
    line_height: float = 17
    body_x: float = 72
    body_width: float = 450
    cert_id_y: float = 695
    right_margin: float = 50
    # Top of the doctor/signature block.
    max_body_y: float = 540
    font_sizes: FontSizes = field(default_factory=FontSizes)
    regular_font: str = "Helvetica"
    italic_font: str = "Helvetica-Oblique"

    def with_overrides(self, **changes) -> "LayoutConfig":
        return replace(self, **changes)

    def to_page_y(self, top_y: float) -> float:
        return self.page_height - top_y


DEFAULT_LAYOUT = LayoutConfig()

LAYOUTS: dict[CertificateCategory, LayoutConfig] = {
    CertificateCategory.WORK: DEFAULT_LAYOUT,
    CertificateCategory.STUDY: DEFAULT_LAYOUT,
    CertificateCategory.CARER: DEFAULT_LAYOUT,
}


def layout_for(category: CertificateCategory) -> LayoutConfig:
    return LAYOUTS.get(category, DEFAULT_LAYOUT)


@dataclass(frozen=True)
class DrawInstruction:
    text: str
    x: float
    y: float  # design coordinate (baseline)
    font: str
    size: float
    color: tuple[float, float, float] = TEXT_COLOR


@dataclass
class LayoutPlan:
    instructions: list[DrawInstruction] = field(default_factory=list)
    cursor_y: float = 0.0

    def add(self, instruction: DrawInstruction) -> None:
        self.instructions.append(instruction)


def text_width(text: str, font_name: str, size: float) -> float:
    return pdfmetrics.stringWidth(text, font_name, size)


def wrap_text_to_lines(text: str, font_name: str, size: float, max_width: float) -> list[str]:
    """Greedily pack the words of *text* into lines no wider than *max_width*.

    A word that is wider than max_width on its own is kept whole on its own
    line.
    """
    lines: list[str] = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if current and text_width(candidate, font_name, size) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def check_overflow(cursor_y: float, max_y: float) -> None:
    if cursor_y > max_y:
        raise BodyTooLongError(cursor_y, max_y)


def _plan_paragraph(
    plan: LayoutPlan,
    text: str,
    start_y: float,
    layout: LayoutConfig,
) -> float:
    size = layout.font_sizes.body
    y = start_y
    for line in wrap_text_to_lines(text, layout.regular_font, size, layout.body_width):
        plan.add(DrawInstruction(line, layout.body_x, y, layout.regular_font, size))
        y += layout.line_height
    return y


def plan_layout(
    request: CertificateRequest,
    layout: LayoutConfig,
    opening: str | None = None,
    closing: str | None = None,
) -> LayoutPlan:
    """Lay out the issue date, body flow and certificate reference.

    The body flows down from layout.anchor_y. The cursor is checked against
    layout.max_body_y once before the closing paragraph and once after it;
    BodyTooLongError is raised rather than letting text run into the doctor
    block. Paragraph text is generated from the request unless given.
    """
    if opening is None:
        opening = body_text(request)
    if closing is None:
        closing = return_text(request)
    plan = LayoutPlan()
    sizes = layout.font_sizes

    date_width = text_width(request.issue_date, layout.regular_font, sizes.issue_date)
    plan.add(
        DrawInstruction(
            request.issue_date,
            layout.page_width - layout.right_margin - date_width,
            layout.issue_date_y,
            layout.regular_font,
            sizes.issue_date,
        )
    )

    cursor = layout.anchor_y
    plan.add(DrawInstruction(SALUTATION, layout.body_x, cursor, layout.italic_font, sizes.salutation))
    cursor += layout.line_height + layout.body_gap

    cursor = _plan_paragraph(plan, opening, cursor, layout)
    cursor += layout.paragraph_gap
    plan.cursor_y = cursor
    check_overflow(cursor, layout.max_body_y)

    cursor = _plan_paragraph(plan, closing, cursor, layout)
    plan.cursor_y = cursor
    check_overflow(cursor, layout.max_body_y)

    label = CERT_ID_LABEL.format(ref=request.certificate_ref)
    label_width = text_width(label, layout.regular_font, sizes.cert_id)
    plan.add(
        DrawInstruction(
            label,
            (layout.page_width - label_width) / 2,
            layout.cert_id_y,
            layout.regular_font,
            sizes.cert_id,
            MUTED_COLOR,
        )
    )
    return plan


def draw_overlay(plan: LayoutPlan, layout: LayoutConfig) -> bytes:
    packet = io.BytesIO()
    # invariant=1 drops the timestamp and random document id so output is reproducible.
    c = canvas.Canvas(packet, pagesize=(layout.page_width, layout.page_height), invariant=1)
    for item in plan.instructions:
        c.setFont(item.font, item.size)
        c.setFillColor(Color(*item.color))
        c.drawString(item.x, layout.to_page_y(item.y), item.text)
    c.showPage()
    c.save()
    return packet.getvalue()


def merge_overlay(template_bytes: bytes, overlay_bytes: bytes, page_index: int = 0) -> bytes:
    """Stamp the overlay onto one page of the template and return the flattened PDF."""
    reader = PdfReader(io.BytesIO(template_bytes))
    if page_index < 0 or page_index >= len(reader.pages):
        raise IndexError(f"Page {page_index} out of range. Template has {len(reader.pages)} page(s).")

    overlay_page = PdfReader(io.BytesIO(overlay_bytes)).pages[0]
    writer = PdfWriter()
    for i, page in enumerate(reader.pages):
        added = writer.add_page(page)
        if i == page_index:
            added.merge_page(overlay_page)

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()
