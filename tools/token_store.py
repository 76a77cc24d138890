from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from google.oauth2.credentials import Credentials

from config.gmail_config import GmailConfig
from tools.secret_store import SecretStore


def _parse_expiry(value: Optional[str]) -> Optional[datetime]:
    # google-auth writes naive UTC as "2025-01-01T00:00:00.123456Z"
    if not value:
        return None
    return datetime.strptime(value.rstrip("Z").split(".")[0], "%Y-%m-%dT%H:%M:%S")


class TokenStore:
    """
    The OAuth token set, kept as one JSON blob under cfg.tokens_key.

    Client id/secret are stored under their own keys and are stripped from
    the blob. A refresh token, once granted, survives later saves that lack one.
    """

    def __init__(self, cfg: GmailConfig, secrets: SecretStore) -> None:
        self.cfg = cfg
        self.secrets = secrets

    def load_info(self) -> Optional[dict[str, Any]]:
        raw = self.secrets.get(self.cfg.tokens_key)
        if not raw:
            return None
        return json.loads(raw)

    def load(self, client_id: Optional[str] = None, client_secret: Optional[str] = None) -> Optional[Credentials]:
        info = self.load_info()
        if not info:
            return None
        return Credentials(
            token=info.get("token"),
            refresh_token=info.get("refresh_token"),
            token_uri=info.get("token_uri") or self.cfg.token_uri,
            client_id=client_id or info.get("client_id"),
            client_secret=client_secret,
            scopes=info.get("scopes"),
            expiry=_parse_expiry(info.get("expiry")),
        )

    def save(self, creds: Credentials) -> dict[str, Any]:
        info = json.loads(creds.to_json(strip=["client_secret"]))
        if not info.get("refresh_token"):
            previous = self.load_info() or {}
            if previous.get("refresh_token"):
                info["refresh_token"] = previous["refresh_token"]
        self.secrets.set(self.cfg.tokens_key, json.dumps(info))
        return info

    def clear(self) -> bool:
        return self.secrets.delete(self.cfg.tokens_key)
