import re
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict

from certificate_errors import EmptyNameError, NameTooLongError, UnsupportedCharactersError


MAX_NAME_LENGTH = 100

# ASCII controls, zero-width space/non-joiner/joiner, BOM and soft hyphen.
_INVISIBLE_CHARS = re.compile("[\x00-\x1f\x7f\u200b-\u200d\ufeff\u00ad]")

# The base-14 Helvetica faces draw WinAnsi text only; anything else prints as a box.
PRINTABLE_ENCODING = "cp1252"
_DRAWN_FIELDS = (
    "patient_name",
    "consultation_date",
    "start_date",
    "end_date",
    "certificate_ref",
    "issue_date",
)

SPECIAL_CONSIDERATION = (
    "I would support an application for special consideration, exam deferral, or alternative "
    "assessment arrangement as deemed appropriate by their institution."
)


class CertificateCategory(str, Enum):
    WORK = "work"
    STUDY = "study"
    CARER = "carer"


class CertificateRequest(BaseModel):
    """Everything needed to render one certificate.

    Dates are display strings that were formatted upstream; the renderer only
    compares start_date and end_date for equality.
    """

    model_config = ConfigDict(frozen=True)

    category: CertificateCategory
    patient_name: str
    consultation_date: str
    start_date: str
    end_date: str
    certificate_ref: str
    issue_date: str


def sanitize_patient_name(name: str | None) -> str:
    cleaned = _INVISIBLE_CHARS.sub("", name or "").strip()
    if not cleaned:
        raise EmptyNameError()
    if len(cleaned) > MAX_NAME_LENGTH:
        raise NameTooLongError(len(cleaned), MAX_NAME_LENGTH)
    return cleaned


def unprintable_characters(text: str, encoding: str = PRINTABLE_ENCODING) -> str:
    """Distinct characters of text that the encoding has no code for, in order of appearance."""
    missing = []
    for char in text:
        if char in missing:
            continue
        try:
            char.encode(encoding)
        except UnicodeEncodeError:
            missing.append(char)
    return "".join(missing)


def ensure_printable(request: CertificateRequest, encoding: str = PRINTABLE_ENCODING) -> None:
    """Raise UnsupportedCharactersError if any drawn field falls outside the font encoding."""
    for field_name in _DRAWN_FIELDS:
        missing = unprintable_characters(getattr(request, field_name), encoding)
        if missing:
            raise UnsupportedCharactersError(field_name, missing)


def is_single_day(request: CertificateRequest) -> bool:
    # Display strings, not calendar dates.
    return request.start_date == request.end_date


def date_phrase(request: CertificateRequest) -> str:
    if is_single_day(request):
        return f"on {request.consultation_date}"
    return f"from {request.start_date} to {request.end_date} inclusive"


def body_text(request: CertificateRequest) -> str:
    """Opening statement for the certificate body."""
    assessed = (
        f"This is to certify that {request.patient_name} has been reviewed and assessed "
        f"on {request.consultation_date}."
    )
    when = date_phrase(request)
    if request.category is CertificateCategory.WORK:
        return (
            f"{assessed} In my clinical opinion, they are medically unfit to attend work or "
            f"fulfil their usual occupational duties {when}."
        )
    if request.category is CertificateCategory.STUDY:
        return (
            f"{assessed} In my clinical opinion, they are medically unfit to attend classes, "
            f"sit examinations, or complete academic assessments {when}."
        )
    return (
        f"{assessed} They are required to provide full-time care for a dependent family member "
        f"who is currently unwell and are therefore unable to attend work or fulfil their usual "
        f"duties {when}."
    )


def return_text(request: CertificateRequest) -> str:
    """Closing return-to-duty statement."""
    single = is_single_day(request)
    if request.category is CertificateCategory.WORK:
        if single:
            return (
                "They are advised to rest and recover and are expected to return to work "
                "the following day."
            )
        return (
            "They are advised to rest and recover during this period and are expected to return "
            f"to work on {request.end_date}, or earlier if symptoms resolve."
        )
    if request.category is CertificateCategory.STUDY:
        if single:
            return (
                "They require rest and recovery and are expected to resume academic activities "
                f"the following day. {SPECIAL_CONSIDERATION}"
            )
        return (
            "They require this period for rest and recovery and are expected to resume academic "
            f"activities on {request.end_date}, or earlier if symptoms resolve. "
            f"{SPECIAL_CONSIDERATION}"
        )
    if single:
        return (
            "They are expected to return to work the following day, subject to the "
            "dependent's recovery."
        )
    return (
        f"They are expected to return to work on {request.end_date}, subject to the "
        "dependent's recovery."
    )


def format_display_date(value: date) -> str:
    return value.strftime("%d %B %Y").lstrip("0")


def format_issue_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")
