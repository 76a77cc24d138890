"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse
from zoneinfo import ZoneInfo

import pytest
import requests
from google.oauth2.credentials import Credentials

# Project root holds the top-level packages (config, tools, agent, utils)
root_path = os.path.join(os.path.dirname(__file__), "..")
if root_path not in sys.path:
    sys.path.insert(0, root_path)

from agent.services import AppServices  # noqa: E402
from config.app_config import AppConfig  # noqa: E402
from config.gmail_config import GmailConfig  # noqa: E402
from tools.database import AppDatabase  # noqa: E402


LOCAL_TZ = ZoneInfo("America/New_York")


class MemorySecretStore:
    def __init__(self, initial: Optional[dict] = None) -> None:
        self.data = dict(initial or {})
        self.writes = 0

    def get(self, key):
        return self.data.get(key) or None

    def set(self, key, value):
        self.writes += 1
        self.data[key] = value

    def delete(self, key):
        return self.data.pop(key, None) is not None


class FakeFlow:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri


class FakeGoogleApi:
    """Stands in for tools.google_api.GoogleApi; records every call."""

    def __init__(self) -> None:
        self.flows = []
        self.exchanged = []
        self.sent = []
        self.email = "me@example.com"
        self.refresh_token: Optional[str] = "1//refresh-original"
        self.send_response: Optional[dict] = None
        self.exchange_error: Optional[Exception] = None
        self.email_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.on_send: Optional[Callable[[Credentials], None]] = None

    def new_flow(self, client_id, client_secret, redirect_uri):
        flow = FakeFlow(client_id, client_secret, redirect_uri)
        self.flows.append(flow)
        return flow

    def authorization_url(self, flow, state):
        query = urlencode({"redirect_uri": flow.redirect_uri, "state": state, "prompt": "consent"})
        return f"https://accounts.example.test/o/oauth2/auth?{query}"

    def exchange_code(self, flow, code):
        if self.exchange_error is not None:
            raise self.exchange_error
        self.exchanged.append(code)
        return Credentials(
            token="ya29.fresh-access",
            refresh_token=self.refresh_token,
            token_uri="https://oauth2.googleapis.com/token",
            client_id=flow.client_id,
            client_secret=flow.client_secret,
            scopes=list(GmailConfig().scopes),
        )

    def account_email(self, creds):
        if self.email_error is not None:
            raise self.email_error
        return self.email

    def send_raw(self, creds, raw):
        self.sent.append(raw)
        if self.send_error is not None:
            raise self.send_error
        if self.on_send is not None:
            self.on_send(creds)
        if self.send_response is not None:
            return dict(self.send_response)
        return {"id": f"msg-{len(self.sent)}", "threadId": f"thread-{len(self.sent)}"}


class FakeBrowser:
    """
    Plays the user's browser: when opened, hits the redirect URI from a thread.

    `params` builds the callback query from the real state; return None to
    never call back (timeout tests).
    """

    def __init__(self, params=None, stray_paths=(), before_callback=None) -> None:
        self.params = params or (lambda state: {"code": "auth-code-123", "state": state})
        self.stray_paths = stray_paths
        self.before_callback = before_callback
        self.urls = []
        self.responses = []
        self.threads = []

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        query = parse_qs(urlparse(url).query)
        redirect_uri = query["redirect_uri"][0]
        state = query["state"][0]
        if self.before_callback is not None:
            self.before_callback()
        params = self.params(state)
        if params is None:
            return True

        def hit() -> None:
            base = redirect_uri.rsplit("/", 1)[0]
            for path in self.stray_paths:
                self.responses.append(requests.get(base + path, timeout=10))
            self.responses.append(requests.get(redirect_uri, params=params, timeout=10))

        t = threading.Thread(target=hit, daemon=True)
        t.start()
        self.threads.append(t)
        return True

    def join(self) -> None:
        for t in self.threads:
            t.join(timeout=10)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def gmail_cfg() -> GmailConfig:
    return GmailConfig(connect_timeout_s=10)


@pytest.fixture
def secrets_store() -> MemorySecretStore:
    cfg = GmailConfig()
    return MemorySecretStore({cfg.client_id_key: "client-id.apps.googleusercontent.com", cfg.client_secret_key: "shh"})


@pytest.fixture
def fake_api() -> FakeGoogleApi:
    return FakeGoogleApi()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 10, 14, 0, tzinfo=LOCAL_TZ))


@pytest.fixture
def db():
    database = AppDatabase(":memory:").open()
    yield database
    database.close()


@pytest.fixture
def services(tmp_path, gmail_cfg, secrets_store, fake_api, clock, db):
    browser = FakeBrowser()
    svc = AppServices(
        AppConfig(data_dir=tmp_path),
        gmail_cfg,
        secrets=secrets_store,
        api=fake_api,
        open_browser=browser,
        clock=clock,
        db=db,
    ).open()
    svc.browser = browser
    yield svc
    svc.close()


def store_tokens(secrets: MemorySecretStore, refresh_token: str = "1//stored-refresh") -> None:
    cfg = GmailConfig()
    secrets.data[cfg.tokens_key] = (
        '{"token": "ya29.stored", "refresh_token": "%s", '
        '"token_uri": "https://oauth2.googleapis.com/token", '
        '"scopes": ["https://www.googleapis.com/auth/gmail.send"]}' % refresh_token
    )
