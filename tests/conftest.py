import io
import os
import pathlib
import sys

import pytest
from reportlab.pdfgen import canvas

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

from certificate_content import CertificateCategory, CertificateRequest  # noqa: E402
from template_loader import LocalTemplateSource, template_file_name  # noqa: E402


A4 = (595.28, 841.89)


def build_template_pdf(title: str = "Medical Certificate") -> bytes:
    """A stand-in template with the fixed regions of the real design."""
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=A4, invariant=1)
    width, height = A4
    c.setFont("Helvetica-Bold", 16)
    c.drawString(72, height - 60, "Clinic Letterhead")
    c.line(50, height - 100, width - 50, height - 100)
    c.setFont("Helvetica-Bold", 20)
    c.drawCentredString(width / 2, height - 150, title)
    c.setFont("Helvetica", 11)
    c.drawString(72, height - 570, "Dr Example, MBBS")
    c.drawString(72, height - 610, "Signature")
    c.line(50, height - 650, width - 50, height - 650)
    c.setFont("Helvetica", 7)
    c.drawCentredString(width / 2, height - 715, "This certificate was issued following a telehealth consultation.")
    c.showPage()
    c.save()
    return packet.getvalue()


@pytest.fixture
def templates_dir(tmp_path):
    directory = tmp_path / "templates"
    directory.mkdir()
    for category in CertificateCategory:
        title = "Carer Certificate" if category is CertificateCategory.CARER else "Medical Certificate"
        (directory / template_file_name(category)).write_bytes(build_template_pdf(title))
    return directory


@pytest.fixture
def local_sources(templates_dir):
    return [LocalTemplateSource(templates_dir)]


def make_request(**overrides) -> CertificateRequest:
    values = {
        "category": CertificateCategory.WORK,
        "patient_name": "John Smith",
        "consultation_date": "18 February 2026",
        "start_date": "18 February 2026",
        "end_date": "18 February 2026",
        "certificate_ref": "IM-WORK-20260218-00847",
        "issue_date": "18/02/2026",
    }
    values.update(overrides)
    return CertificateRequest(**values)


@pytest.fixture
def request_factory():
    return make_request
