from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Protocol

import keyring
from keyring.errors import PasswordDeleteError


class SecretStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...


class KeyringSecretStore:
    """Small string secrets in the OS keychain, grouped under one service name."""

    def __init__(self, service: str) -> None:
        self.service = service

    def get(self, key: str) -> Optional[str]:
        return keyring.get_password(self.service, key) or None

    def set(self, key: str, value: str) -> None:
        keyring.set_password(self.service, key, value)

    def delete(self, key: str) -> bool:
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            return False
        return True


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


class FileSecretStore:
    """
    JSON file fallback for machines without a keychain backend.

    The file is plain text; keep it out of source control.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8") or "{}")

    def _save(self, data: dict[str, str]) -> None:
        _ensure_parent_dir(self.path)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key) or None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save(data)
        return True


def create_secret_store(backend: str, service: str, path: Path) -> SecretStore:
    if backend == "keyring":
        return KeyringSecretStore(service)
    if backend == "file":
        return FileSecretStore(path)
    raise ValueError(f"Unknown secret backend: {backend!r} (expected 'keyring' or 'file')")
