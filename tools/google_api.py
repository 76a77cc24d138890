from __future__ import annotations

import os
from typing import Any

import requests
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from config.gmail_config import GmailConfig
from tools.errors import AuthorizationError, ProviderError


# Google adds "openid" to the granted scopes; don't let oauthlib reject that
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


def _http_error_message(e: HttpError) -> str:
    reason = getattr(e, "reason", None) or str(e)
    return f"Gmail API error {e.resp.status}: {reason}"


def _translate(e: Exception) -> Exception:
    if isinstance(e, HttpError):
        status = int(getattr(e.resp, "status", 0) or 0)
        if status == 401:
            return AuthorizationError(_http_error_message(e))
        return ProviderError(_http_error_message(e))
    if isinstance(e, RefreshError):
        return AuthorizationError(f"Stored Gmail token is no longer valid: {e}")
    if isinstance(e, OAuth2Error):
        return AuthorizationError(f"Token exchange rejected: {e.description or e.error}")
    if isinstance(e, (TransportError, requests.RequestException)):
        return ProviderError(f"Network error talking to Google: {e}")
    return e


class GoogleApi:
    """
    The only place that talks to Google: consent URL, code exchange,
    identity lookup and messages.send.

    Library errors come out as AuthorizationError / ProviderError.
    """

    def __init__(self, cfg: GmailConfig) -> None:
        self.cfg = cfg

    def new_flow(self, client_id: str, client_secret: str, redirect_uri: str) -> Flow:
        client_config = {
            "installed": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": self.cfg.auth_uri,
                "token_uri": self.cfg.token_uri,
                "redirect_uris": [redirect_uri],
            }
        }
        return Flow.from_client_config(client_config, scopes=list(self.cfg.scopes), redirect_uri=redirect_uri)

    def authorization_url(self, flow: Flow, state: str) -> str:
        url, _ = flow.authorization_url(access_type="offline", prompt="consent", state=state)
        return url

    def exchange_code(self, flow: Flow, code: str) -> Credentials:
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise _translate(e) from e
        return flow.credentials

    def account_email(self, creds: Credentials) -> str:
        try:
            service = build("oauth2", "v2", credentials=creds, cache_discovery=False)
            info = service.userinfo().get().execute()
        except Exception as e:
            raise _translate(e) from e
        email = (info or {}).get("email")
        if not email:
            raise ProviderError("Google did not return an email address for this account.")
        return email

    def send_raw(self, creds: Credentials, raw: str) -> dict[str, Any]:
        try:
            service = build("gmail", "v1", credentials=creds, cache_discovery=False)
            return service.users().messages().send(userId="me", body={"raw": raw}).execute() or {}
        except Exception as e:
            raise _translate(e) from e
