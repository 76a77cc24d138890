from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from tools.errors import GmailToolError, InvalidRequestError
from tools.gmail_auth import GmailConnector
from tools.gmail_sender import GmailSender, SendRequest
from tools.secret_store import SecretStore
from tools.send_quota import QuotaState, SendQuotaGuard
from tools.settings_store import SettingsStore
from utils.logger import get_logger, log_event


_logger = get_logger("router")


def _compact(result: Any) -> dict[str, Any]:
    return {k: v for k, v in asdict(result).items() if v is not None}


@dataclass(frozen=True)
class StatusResult:
    connected: bool
    email: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class ConnectResult:
    ok: bool
    email: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class SendResult:
    ok: bool
    id: Optional[str] = None
    remaining: Optional[int] = None
    cap: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    removed: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(self)


def _error_message(e: Exception) -> str:
    return str(e) or type(e).__name__


class GmailRouter:
    """
    Request handlers the UI calls ("gmail:status", "gmail:send", ...).

    Everything except quota() turns failures into a result with ok/connected
    False and a display-ready error string; nothing is raised to the UI.
    """

    def __init__(
        self,
        connector: GmailConnector,
        sender: GmailSender,
        quota_guard: SendQuotaGuard,
        settings: SettingsStore,
        secrets: SecretStore,
    ) -> None:
        self.connector = connector
        self.sender = sender
        self.quota_guard = quota_guard
        self.settings = settings
        self.secrets = secrets
        self._routes: dict[str, Callable[..., Any]] = {
            "gmail:status": self.status,
            "gmail:connect": self.connect,
            "gmail:disconnect": self.disconnect,
            "gmail:send": self.send,
            "gmail:quota": self.quota,
            "settings:get": self.settings_get,
            "settings:update": self.settings_update,
            "secrets:get": self.secrets_get,
            "secrets:set": self.secrets_set,
        }

    @property
    def channels(self) -> list[str]:
        return sorted(self._routes)

    def handle(self, channel: str, payload: Any = None) -> Any:
        """Dispatch by channel name and return a JSON-ready value."""
        handler = self._routes.get(channel)
        if handler is None:
            raise KeyError(f"Unknown channel: {channel}")
        result = handler() if payload is None else handler(payload)
        return result.to_dict() if hasattr(result, "to_dict") else result

    def status(self) -> StatusResult:
        try:
            email = self.connector.account_email()
        except Exception as e:
            log_event(_logger, "gmail_status_failed", error=_error_message(e))
            return StatusResult(connected=False, error=_error_message(e))
        if email is None:
            return StatusResult(connected=False)
        return StatusResult(connected=True, email=email)

    def connect(self) -> ConnectResult:
        try:
            email = self.connector.connect()
        except GmailToolError as e:
            return ConnectResult(ok=False, error=_error_message(e))
        except Exception as e:
            _logger.exception("gmail:connect failed")
            return ConnectResult(ok=False, error=_error_message(e))
        return ConnectResult(ok=True, email=email)

    def disconnect(self) -> ActionResult:
        try:
            removed = self.connector.disconnect()
        except Exception as e:
            _logger.exception("gmail:disconnect failed")
            return ActionResult(ok=False, error=_error_message(e))
        return ActionResult(ok=True, removed=removed)

    def send(self, payload: Optional[dict[str, Any]] = None) -> SendResult:
        payload = payload or {}
        try:
            req = SendRequest(
                to=str(payload.get("to") or ""),
                subject=str(payload.get("subject") or ""),
                text=str(payload.get("text") or ""),
                bcc=payload.get("bcc") or None,
                html=payload.get("html"),
            )
            receipt = self.sender.send(req)
        except GmailToolError as e:
            log_event(_logger, "gmail_send_rejected", error=_error_message(e), error_type=type(e).__name__)
            return SendResult(ok=False, error=_error_message(e))
        except Exception as e:
            _logger.exception("gmail:send failed")
            return SendResult(ok=False, error=_error_message(e))
        return SendResult(ok=True, id=receipt.id, remaining=receipt.remaining, cap=receipt.cap)

    def quota(self) -> QuotaState:
        # storage errors propagate
        return self.quota_guard.quota()

    def settings_get(self) -> dict[str, Any]:
        return self.settings.get().to_dict()

    def settings_update(self, payload: Optional[dict[str, Any]] = None) -> ActionResult:
        try:
            self.settings.update(dict(payload or {}))
        except InvalidRequestError as e:
            return ActionResult(ok=False, error=_error_message(e))
        return ActionResult(ok=True)

    def secrets_get(self, key: Optional[str] = None) -> Optional[str]:
        if not key:
            return None
        return self.secrets.get(key)

    def secrets_set(self, payload: Optional[dict[str, str]] = None) -> ActionResult:
        key = (payload or {}).get("key")
        value = (payload or {}).get("value")
        if not key or value is None:
            return ActionResult(ok=False, error="Both 'key' and 'value' are required.")
        self.secrets.set(key, value)
        return ActionResult(ok=True)
