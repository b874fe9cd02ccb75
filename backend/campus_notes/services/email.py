"""Outbound email through Resend, Postmark or plain SMTP.

Every failure surfaces as ``EmailSendError`` so callers can treat delivery as
one best-effort step without knowing which provider is configured.
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Callable, Optional

import httpx

from campus_notes.core.errors import NotificationError
from campus_notes.core.settings import settings

HTTP_TIMEOUT_SECONDS = 15


@dataclass
class EmailSendResult:
    provider: str
    message_id: Optional[str] = None


class EmailSendError(NotificationError):
    pass


@dataclass(frozen=True)
class _JsonProvider:
    name: str
    url: str
    id_field: str
    build_payload: Callable[[str, str, str, str, Optional[str]], dict]
    auth_headers: Callable[[str], dict]


def _resend_payload(sender, to_address, subject, html, text) -> dict:
    payload = {"from": sender, "to": [to_address], "subject": subject, "html": html}
    if text:
        payload["text"] = text
    return payload


def _postmark_payload(sender, to_address, subject, html, text) -> dict:
    payload = {"From": sender, "To": to_address, "Subject": subject, "HtmlBody": html}
    if text:
        payload["TextBody"] = text
    return payload


JSON_PROVIDERS = {
    "resend": _JsonProvider(
        name="Resend",
        url="https://api.resend.com/emails",
        id_field="id",
        build_payload=_resend_payload,
        auth_headers=lambda key: {"Authorization": f"Bearer {key}"},
    ),
    "postmark": _JsonProvider(
        name="Postmark",
        url="https://api.postmarkapp.com/email",
        id_field="MessageID",
        build_payload=_postmark_payload,
        auth_headers=lambda key: {"X-Postmark-Server-Token": key},
    ),
}


def send_email(
    *,
    to_address: str,
    subject: str,
    html: str,
    text: str | None = None,
    from_address: str | None = None,
    client: httpx.Client | None = None,
) -> EmailSendResult:
    """Send one message. ``client`` lets a fan-out reuse a connection pool."""
    provider = (settings.email_provider or "disabled").lower()
    sender = from_address or settings.email_from
    if provider in {"disabled", "none"}:
        raise EmailSendError("EMAIL_PROVIDER disabled")
    if not sender:
        raise EmailSendError("EMAIL_FROM not configured")

    if provider == "smtp":
        return _send_smtp(sender=sender, to_address=to_address, subject=subject, html=html, text=text)
    json_provider = JSON_PROVIDERS.get(provider)
    if json_provider is None:
        raise EmailSendError(f"Unsupported EMAIL_PROVIDER: {settings.email_provider}")
    payload = json_provider.build_payload(sender, to_address, subject, html, text)
    return _post_json(json_provider, payload, client)


def _post_json(provider: _JsonProvider, payload: dict, client: httpx.Client | None) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailSendError(f"EMAIL_API_KEY not configured for {provider.name}")
    headers = {"Content-Type": "application/json", **provider.auth_headers(settings.email_api_key)}
    try:
        if client is not None:
            resp = client.post(provider.url, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
                resp = own_client.post(provider.url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise EmailSendError(f"{provider.name} request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise EmailSendError(f"{provider.name} error: {resp.status_code} {resp.text}")
    return EmailSendResult(provider=provider.name.lower(), message_id=resp.json().get(provider.id_field))


def _send_smtp(*, sender: str, to_address: str, subject: str, html: str, text: str | None) -> EmailSendResult:
    if not settings.smtp_host:
        raise EmailSendError("SMTP_HOST not configured")
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = to_address
    message.set_content(text or "Open this email in an HTML-capable client to read it.")
    message.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=HTTP_TIMEOUT_SECONDS) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailSendError(f"SMTP delivery failed: {exc}") from exc
    return EmailSendResult(provider="smtp")
