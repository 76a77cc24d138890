from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppConfig:
    # Local state lives outside source control (see README)
    data_dir: Path = Path("data")
    db_name: str = "app.db"

    # "keyring" uses the OS keychain; "file" keeps secrets in a JSON file
    # under data_dir (headless boxes without a keychain backend)
    secret_backend: str = "keyring"
    secrets_name: str = "secrets.json"

    default_daily_cap: int = 25

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    @property
    def secrets_path(self) -> Path:
        return self.data_dir / self.secrets_name
