from __future__ import annotations

import hmac
import os
import subprocess
import sys
import threading
import webbrowser
from dataclasses import dataclass
from enum import Enum
from secrets import token_urlsafe
from typing import Callable, Optional

from google.oauth2.credentials import Credentials

from config.gmail_config import GmailConfig
from tools.errors import AuthorizationError, ConfigurationError, ConnectInProgressError
from tools.google_api import GoogleApi
from tools.loopback import LoopbackListener
from tools.secret_store import SecretStore
from tools.token_store import TokenStore
from utils.logger import get_logger, log_event


_logger = get_logger("gmail_auth")

_SUCCESS_PAGE = (
    "<html><body style=\"font-family: ui-sans-serif; padding: 24px\">"
    "<h2>Gmail connected</h2>"
    "<p>You can close this window and return to CompanyTinder.</p>"
    "</body></html>"
)


class ConnectState(Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingAuthorization:
    state: str
    redirect_uri: str
    scopes: tuple[str, ...]


def _open_external(url: str) -> bool:
    try:
        if sys.platform.startswith("win"):
            os.startfile(url)  # type: ignore[attr-defined]
        else:
            opener = "open" if sys.platform == "darwin" else "xdg-open"
            subprocess.Popen([opener, url], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        log_event(_logger, "browser_open_failed", opener="system", error=str(e))
        return False
    return True


def open_in_browser(url: str) -> bool:
    """Default browser first, then the platform's generic URL opener."""
    try:
        if webbrowser.open(url, new=1, autoraise=True):
            return True
    except webbrowser.Error as e:
        log_event(_logger, "browser_open_failed", opener="webbrowser", error=str(e))
    return _open_external(url)


class GmailConnector:
    """
    Installed-app OAuth for Gmail with a loopback redirect.

    Tokens live in the secret store (see TokenStore). Only one connect()
    may run at a time; a second call while a browser round-trip is pending
    raises ConnectInProgressError.
    """

    def __init__(
        self,
        cfg: GmailConfig,
        secrets: SecretStore,
        api: Optional[GoogleApi] = None,
        open_browser: Callable[[str], bool] = open_in_browser,
        listener_factory: Callable[[str, str], LoopbackListener] = LoopbackListener,
    ) -> None:
        self.cfg = cfg
        self.secrets = secrets
        self.tokens = TokenStore(cfg, secrets)
        self.api = api or GoogleApi(cfg)
        self.open_browser = open_browser
        self.listener_factory = listener_factory
        self._state = ConnectState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectState:
        return self._state

    def client_credentials(self) -> tuple[str, str]:
        client_id = self.secrets.get(self.cfg.client_id_key)
        client_secret = self.secrets.get(self.cfg.client_secret_key)
        if not client_id or not client_secret:
            raise ConfigurationError(
                f"Missing {self.cfg.client_id_key} / {self.cfg.client_secret_key}. "
                "Open Setup and save the Gmail OAuth client id and secret first."
            )
        return client_id, client_secret

    def load_credentials(self) -> Optional[Credentials]:
        # Client id/secret are optional here: without them a still-valid
        # access token works, it just can't be refreshed.
        return self.tokens.load(
            self.secrets.get(self.cfg.client_id_key),
            self.secrets.get(self.cfg.client_secret_key),
        )

    def account_email(self) -> Optional[str]:
        """Email of the stored account, or None when nothing is stored. Never writes tokens."""
        creds = self.load_credentials()
        if creds is None:
            return None
        return self.api.account_email(creds)

    def save_if_refreshed(self, creds: Credentials, token_before: Optional[str]) -> None:
        if creds.token and creds.token != token_before:
            self.tokens.save(creds)
            log_event(_logger, "gmail_token_refreshed")

    def disconnect(self) -> bool:
        removed = self.tokens.clear()
        log_event(_logger, "gmail_disconnected", removed=removed)
        return removed

    def connect(self) -> str:
        """Run the browser consent round-trip; returns the connected email."""
        client_id, client_secret = self.client_credentials()

        if not self._lock.acquire(blocking=False):
            raise ConnectInProgressError("A Gmail connect is already in progress. Finish it in the browser first.")
        listener = self.listener_factory(self.cfg.redirect_host, self.cfg.callback_path)
        try:
            listener.start()
            pending = PendingAuthorization(
                state=token_urlsafe(32),
                redirect_uri=listener.redirect_uri,
                scopes=tuple(self.cfg.scopes),
            )
            flow = self.api.new_flow(client_id, client_secret, pending.redirect_uri)
            auth_url = self.api.authorization_url(flow, pending.state)

            self._state = ConnectState.AWAITING_CALLBACK
            log_event(_logger, "gmail_connect_started", redirect_uri=pending.redirect_uri, scopes=list(pending.scopes))
            if not self.open_browser(auth_url):
                log_event(_logger, "gmail_connect_open_manually", url=auth_url)

            connected: dict[str, str] = {}

            def on_callback(params: dict[str, str]) -> str:
                code = self._check_callback(pending, params)
                self._state = ConnectState.EXCHANGING
                creds = self.api.exchange_code(flow, code)
                self.tokens.save(creds)
                connected["email"] = self.api.account_email(creds)
                return _SUCCESS_PAGE

            listener.wait(on_callback, self.cfg.connect_timeout_s)
        except Exception as e:
            self._state = ConnectState.FAILED
            log_event(_logger, "gmail_connect_failed", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            listener.close()
            self._lock.release()

        self._state = ConnectState.DONE
        log_event(_logger, "gmail_connected", email=connected["email"])
        return connected["email"]

    @staticmethod
    def _check_callback(pending: PendingAuthorization, params: dict[str, str]) -> str:
        error = params.get("error")
        if error:
            raise AuthorizationError(f"Google authorization was not granted ({error}).")
        returned_state = params.get("state") or ""
        code = params.get("code")
        if not code or not hmac.compare_digest(returned_state.encode("utf-8"), pending.state.encode("utf-8")):
            raise AuthorizationError("Invalid OAuth response (state mismatch or missing code).")
        return code
