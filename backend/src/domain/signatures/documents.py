"""Render a completion certificate PDF for a signed submission.

Used when the provider keeps no copy of the signed document (simulated
provider) so completed submissions can always be downloaded.
"""

import io
from typing import Optional

from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from domain.signatures.models import Submission, Template

PDF_CONTENT_TYPE = "application/pdf"

_LEFT = 72
_TOP = 720
_LINE = 18
_BOTTOM = 72


def document_filename(submission: Submission) -> str:
    return f"submission-{submission.id}.pdf"


def render_submission_pdf(submission: Submission, template: Optional[Template] = None) -> bytes:
    """Render a one-page summary of a completed submission.

    Args:
        submission: Completed submission snapshot
        template: Template the submission was created from, if still cached

    Returns:
        bytes: PDF content
    """
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.setTitle(document_filename(submission))

    c.setFont("Helvetica-Bold", 16)
    c.drawString(_LEFT, _TOP, template.name if template else "Signed Document")

    c.setFont("Helvetica", 11)
    y = _TOP - 2 * _LINE
    header = [
        f"Submission ID: {submission.id}",
        f"Template: {submission.template_id}",
        f"Status: {submission.status.value}",
        f"Completed: {submission.completed_at.isoformat() if submission.completed_at else '-'}",
    ]
    for line in header:
        c.drawString(_LEFT, y, line)
        y -= _LINE

    for submitter in submission.submitters:
        y -= _LINE
        if y < _BOTTOM:
            c.showPage()
            c.setFont("Helvetica", 11)
            y = _TOP
        c.setFont("Helvetica-Bold", 12)
        label = submitter.name or submitter.email
        c.drawString(_LEFT, y, f"Signer: {label} <{submitter.email}>")
        c.setFont("Helvetica", 11)
        y -= _LINE

        for name, value in sorted((submitter.values or {}).items()):
            if y < _BOTTOM:
                c.showPage()
                c.setFont("Helvetica", 11)
                y = _TOP
            c.drawString(_LEFT + 20, y, f"{name}: {value}")
            y -= _LINE

    c.showPage()
    c.save()

    buffer.seek(0)
    return buffer.read()
