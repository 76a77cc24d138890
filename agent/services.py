from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from agent.tool_router import GmailRouter
from config.app_config import AppConfig
from config.gmail_config import GmailConfig
from tools.database import AppDatabase
from tools.gmail_auth import GmailConnector, open_in_browser
from tools.gmail_sender import GmailSender
from tools.google_api import GoogleApi
from tools.secret_store import SecretStore, create_secret_store
from tools.send_quota import SendLog, SendQuotaGuard, local_now
from tools.settings_store import SettingsStore


class AppServices:
    """
    Builds the object graph once and owns the database handle.

        with AppServices(AppConfig(), GmailConfig()) as services:
            services.router.handle("gmail:quota")
    """

    def __init__(
        self,
        app_cfg: AppConfig,
        gmail_cfg: GmailConfig,
        secrets: Optional[SecretStore] = None,
        api: Optional[GoogleApi] = None,
        open_browser: Callable[[str], bool] = open_in_browser,
        clock: Callable[[], datetime] = local_now,
        db: Optional[AppDatabase] = None,
    ) -> None:
        self.app_cfg = app_cfg
        self.gmail_cfg = gmail_cfg
        self.db = db or AppDatabase(app_cfg.db_path)
        self.secrets = secrets or create_secret_store(
            app_cfg.secret_backend, gmail_cfg.secret_service, app_cfg.secrets_path
        )
        self.settings = SettingsStore(self.db, default_daily_cap=app_cfg.default_daily_cap)
        self.quota_guard = SendQuotaGuard(self.settings, SendLog(self.db), clock=clock)
        self.connector = GmailConnector(gmail_cfg, self.secrets, api=api, open_browser=open_browser)
        self.sender = GmailSender(self.settings, self.quota_guard, self.connector)
        self.router = GmailRouter(self.connector, self.sender, self.quota_guard, self.settings, self.secrets)

    def open(self) -> "AppServices":
        self.db.open()
        return self

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "AppServices":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
