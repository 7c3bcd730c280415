from __future__ import annotations

import logging
import os
from typing import Optional

import requests


log = logging.getLogger(__name__)

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"


class EmailSendError(RuntimeError):
    """
    Raised when a message could not be handed to Brevo.

    `reason` is one of:
      - "not_configured": API key or sender missing
      - "auth": Brevo refused the API key (401/403)
      - "connection": network error or timeout talking to Brevo
      - "rejected": any other non-2xx answer
    """

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class BrevoTransport:
    """
    Sends email using the Brevo Transactional Email API.

    Constructed explicitly and handed to whatever needs to send mail, so tests
    can swap in a fake with the same `configured` / `send` surface.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        sender_email: Optional[str],
        sender_name: str = "FIGA Care",
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = (api_key or "").strip() or None
        self.sender_email = (sender_email or "").strip() or None
        self.sender_name = sender_name
        self.timeout = timeout
        self._http = session or requests.Session()

    @classmethod
    def from_env(cls) -> "BrevoTransport":
        """
        Requires:
          - BREVO_API_KEY
          - BREVO_FROM (email) OR EMAIL_FROM/SMTP_FROM
        """
        return cls(
            api_key=os.getenv("BREVO_API_KEY"),
            sender_email=(
                os.getenv("BREVO_FROM")
                or os.getenv("EMAIL_FROM")
                or os.getenv("SMTP_FROM")
            ),
            sender_name=os.getenv("BREVO_SENDER_NAME", "FIGA Care"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender_email)

    def send(self, *, to_email: str, subject: str, html: str, text: Optional[str] = None) -> str:
        """Send one message and return Brevo's messageId."""
        if not self.configured:
            raise EmailSendError("not_configured", "BREVO_API_KEY / BREVO_FROM are not set")

        payload = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": to_email}],
            "subject": subject,
            "htmlContent": html,
        }
        if text:
            payload["textContent"] = text

        try:
            resp = self._http.post(
                BREVO_SEND_URL,
                headers={
                    "accept": "application/json",
                    "api-key": self.api_key,
                    "content-type": "application/json",
                },
                json=payload,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise EmailSendError("connection", str(exc)) from exc
        except requests.RequestException as exc:
            raise EmailSendError("rejected", str(exc)) from exc

        if resp.status_code in (401, 403):
            raise EmailSendError("auth", f"Brevo refused credentials ({resp.status_code})")
        if resp.status_code >= 300:
            raise EmailSendError("rejected", f"Brevo send failed ({resp.status_code}): {resp.text}")

        try:
            message_id = resp.json().get("messageId") or ""
        except ValueError:
            message_id = ""
        log.debug("Brevo accepted message %s for %s", message_id, to_email)
        return message_id
