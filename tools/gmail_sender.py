from __future__ import annotations

import base64
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.policy import SMTP
from email.utils import formataddr
from typing import Optional

from tools.errors import AuthorizationError, ConfigurationError, InvalidRequestError
from tools.gmail_auth import GmailConnector
from tools.send_quota import SendQuotaGuard
from tools.settings_store import SettingsStore
from utils.logger import get_logger, log_event


_logger = get_logger("gmail_sender")


@dataclass(frozen=True)
class SendRequest:
    to: str
    subject: str
    text: str = ""
    bcc: Optional[str] = None
    html: Optional[str] = None  # wins over text when present


@dataclass(frozen=True)
class SendReceipt:
    id: str
    thread_id: str
    remaining: int
    cap: int


def encode_raw(data: bytes) -> str:
    """base64url without padding, the form Gmail's `raw` field takes."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def build_message(
    from_addr: str,
    to: str,
    subject: str,
    text: str = "",
    bcc: Optional[str] = None,
    html: Optional[str] = None,
    from_name: str = "",
) -> MIMEText:
    if html is not None:
        msg = MIMEText(html, "html", _charset="utf-8", policy=SMTP)
    else:
        msg = MIMEText(text or "", "plain", _charset="utf-8", policy=SMTP)
    msg["From"] = formataddr((from_name, from_addr)) if from_name else from_addr
    msg["To"] = to
    if bcc:
        msg["Bcc"] = bcc
    msg["Subject"] = subject
    return msg


def _validate(req: SendRequest) -> None:
    if not (req.to or "").strip():
        raise InvalidRequestError("Recipient (to) is required.")
    if not (req.subject or "").strip():
        raise InvalidRequestError("Subject is required.")
    for name, value in (("to", req.to), ("subject", req.subject), ("bcc", req.bcc or "")):
        if "\r" in value or "\n" in value:
            raise InvalidRequestError(f"'{name}' may not contain line breaks.")


class GmailSender:
    """
    Sends one message through the connected Gmail account, inside the daily cap.

    Checks run in a fixed order: sender configured, request valid, quota,
    stored token. A send is only counted after Gmail accepts it.
    """

    def __init__(self, settings: SettingsStore, quota: SendQuotaGuard, connector: GmailConnector) -> None:
        self.settings = settings
        self.quota = quota
        self.connector = connector

    def send(self, req: SendRequest) -> SendReceipt:
        settings = self.settings.get()
        if not settings.sender_email:
            raise ConfigurationError("Sender email not set. Open Setup and save it first.")
        _validate(req)
        self.quota.check()

        creds = self.connector.load_credentials()
        if creds is None:
            raise AuthorizationError("Not connected to Gmail yet. Use Connect first.")

        msg = build_message(
            from_addr=settings.sender_email,
            to=req.to.strip(),
            subject=req.subject,
            text=req.text,
            bcc=req.bcc or settings.bcc_list or None,
            html=req.html,
            from_name=settings.sender_name,
        )
        token_before = creds.token
        sent = self.connector.api.send_raw(creds, encode_raw(msg.as_bytes()))
        message_id = self.quota.record(sent.get("id"))

        try:
            self.connector.save_if_refreshed(creds, token_before)
        except Exception as e:
            # message is already sent and counted
            log_event(_logger, "gmail_token_save_failed", error=str(e))

        state = self.quota.quota()
        log_event(_logger, "sent", message_id=message_id, remaining=state.remaining, cap=state.cap)
        return SendReceipt(id=message_id, thread_id=sent.get("threadId", ""), remaining=state.remaining, cap=state.cap)
