from __future__ import annotations

from html import escape
from typing import Optional

from campus_notes.models.enums import ContentKind


def _join_text(*lines: Optional[str]) -> str:
    return "\n".join(line for line in lines if line)


def _greeting(name: Optional[str]) -> str:
    return f"Hi {name}!" if name else "Hi!"


def build_new_content_email(
    *,
    kind: ContentKind,
    title: str,
    subject: str,
    department: str,
    recipient_name: Optional[str],
    base_url: str,
    year: Optional[int] = None,
) -> dict:
    base_url = base_url.rstrip("/")
    if kind == ContentKind.QUESTION_PAPER:
        email_subject = f"New Question Paper: {title}"
        intro = "A new question paper has been uploaded:"
        link = f"{base_url}/question-papers"
        cta = "View Question Papers"
    else:
        email_subject = f"New Notes Available: {title}"
        intro = "New notes have been uploaded that might interest you:"
        link = f"{base_url}/notes"
        cta = "View Notes"

    details = [
        f"<p><strong>Subject:</strong> {escape(subject)}</p>",
        f"<p><strong>Department:</strong> {escape(department)}</p>",
    ]
    if year is not None:
        details.append(f"<p><strong>Year:</strong> {year}</p>")

    html = (
        f"<h2>{escape(_greeting(recipient_name))}</h2>"
        f"<p>{intro}</p>"
        f"<h3>{escape(title)}</h3>"
        + "".join(details)
        + f"<p><a href=\"{link}\">{cta}</a></p>"
    )
    text = _join_text(
        _greeting(recipient_name),
        intro,
        title,
        f"Subject: {subject}",
        f"Department: {department}",
        f"Year: {year}" if year is not None else None,
        f"{cta}: {link}",
    )
    return {"subject": email_subject, "html": html, "text": text}


def build_rejection_email(
    *,
    kind: ContentKind,
    title: str,
    reason: str,
    recipient_name: Optional[str],
    base_url: str,
) -> dict:
    label = "question paper" if kind == ContentKind.QUESTION_PAPER else "notes"
    email_subject = f"Upload Rejected: {title}"
    html = (
        f"<h2>{escape(_greeting(recipient_name))}</h2>"
        f"<p>Unfortunately, your {label} upload has been rejected:</p>"
        f"<h3>{escape(title)}</h3>"
        f"<p><strong>Reason:</strong> {escape(reason)}</p>"
        f"<p>Please review the feedback and feel free to upload again.</p>"
        f"<p><a href=\"{base_url.rstrip('/')}\">Open Campus Notes</a></p>"
    )
    text = _join_text(
        _greeting(recipient_name),
        f"Unfortunately, your {label} upload has been rejected:",
        title,
        f"Reason: {reason}",
        "Please review the feedback and feel free to upload again.",
    )
    return {"subject": email_subject, "html": html, "text": text}
