from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Intent:
    name: str  # status | connect | disconnect | quota | send | setup | settings | help | quit | unknown
    to: Optional[str] = None  # for send: recipient typed inline ("send to a@x.com")


_SEND_TO_RE = re.compile(r"\b(?:send|email|mail)\b(?:\s+(?:an?\s+)?(?:email|mail))?\s+(?:to\s+)?(\S+@\S+)", re.IGNORECASE)


def detect_intent(text: str) -> Intent:
    t = (text or "").strip()
    if not t:
        return Intent(name="unknown")

    low = t.lower()
    if low in {"q", "quit", "exit"}:
        return Intent(name="quit")
    if "sign out" in low or "logout" in low or "disconnect" in low:
        return Intent(name="disconnect")
    if "help" in low or "what can you do" in low:
        return Intent(name="help")

    m = _SEND_TO_RE.search(t)
    if m:
        return Intent(name="send", to=m.group(1).rstrip(".,;"))
    if re.match(r"^(send|compose|new email)\b", low):
        return Intent(name="send")

    # "connected" before "connect"
    if "status" in low or "connected" in low:
        return Intent(name="status")
    if "connect" in low or "login" in low or "sign in" in low:
        return Intent(name="connect")
    if "quota" in low or "remaining" in low or "how many" in low or "cap" in low.split():
        return Intent(name="quota")
    if low.startswith("setup") or "client id" in low or "client secret" in low:
        return Intent(name="setup")
    if "settings" in low or "profile" in low:
        return Intent(name="settings")

    return Intent(name="unknown")
