from __future__ import annotations

import getpass

from agent.intent_detector import detect_intent
from agent.services import AppServices
from agent.tool_router import GmailRouter
from config.app_config import AppConfig
from config.gmail_config import GmailConfig
from utils.logger import Logger, log_event


def _print_help() -> None:
    print(
        "\nCommands:\n"
        "- 'setup'            save Gmail OAuth client id/secret\n"
        "- 'settings'         sender email, name, BCC list, daily cap\n"
        "- 'status'           is Gmail connected?\n"
        "- 'connect'          open the browser to connect Gmail\n"
        "- 'send to a@x.com'  compose and send one email\n"
        "- 'quota'            sends left today\n"
        "- 'sign out'         forget the stored Gmail token\n"
        "- 'help'\n"
        "- 'quit'\n"
    )


def _ask(prompt: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    value = input(f"{prompt}{suffix}: ").strip()
    return value or default


def _setup(router: GmailRouter, gmail_cfg: GmailConfig) -> None:
    client_id = _ask("Gmail OAuth client id", router.secrets_get(gmail_cfg.client_id_key) or "")
    client_secret = getpass.getpass("Gmail OAuth client secret (hidden, Enter to keep): ").strip()
    router.secrets_set({"key": gmail_cfg.client_id_key, "value": client_id})
    if client_secret:
        router.secrets_set({"key": gmail_cfg.client_secret_key, "value": client_secret})
    print("Saved.")


def _settings(router: GmailRouter) -> None:
    current = router.settings_get()
    payload = {
        "sender_name": _ask("Sender name", current["sender_name"]),
        "sender_email": _ask("Sender email", current["sender_email"]),
        "bcc_list": _ask("Default BCC (comma separated)", current["bcc_list"]),
        "daily_cap": _ask("Daily send cap", str(current["daily_cap"])),
    }
    res = router.settings_update(payload)
    print("Saved." if res.ok else f"Not saved: {res.error}")


def _send(router: GmailRouter, to: str = "") -> None:
    q = router.quota()
    print(f"({q.remaining} of {q.cap} sends left today)")
    to = to or _ask("To")
    subject = _ask("Subject")
    print("Body (finish with a single '.' line):")
    lines = []
    while True:
        line = input()
        if line == ".":
            break
        lines.append(line)

    confirm = input(f"Send to {to}? (y/N): ").strip().lower()
    if confirm not in {"y", "yes"}:
        print("Not sent.")
        return

    res = router.send({"to": to, "subject": subject, "text": "\n".join(lines)})
    if res.ok:
        print(f"Sent. Gmail message id: {res.id} ({res.remaining}/{res.cap} left today)")
    else:
        print(f"Error sending: {res.error}")


def main() -> None:
    logger = Logger().build()
    app_cfg = AppConfig()
    gmail_cfg = GmailConfig()

    with AppServices(app_cfg, gmail_cfg) as services:
        router = services.router
        log_event(logger, "app_ready", db=str(app_cfg.db_path), secret_backend=app_cfg.secret_backend)

        print("CompanyTinder outreach shell")
        _print_help()

        while True:
            try:
                text = input("You> ").strip()
            except EOFError:
                break
            if not text:
                continue

            intent = detect_intent(text)
            log_event(logger, "intent", text=text, intent=intent.name)

            if intent.name == "quit":
                break
            if intent.name == "help":
                _print_help()
            elif intent.name == "setup":
                _setup(router, gmail_cfg)
            elif intent.name == "settings":
                _settings(router)
            elif intent.name == "status":
                st = router.status()
                if st.connected:
                    print(f"Connected as {st.email}.")
                else:
                    print("Not connected." + (f" ({st.error})" if st.error else ""))
            elif intent.name == "connect":
                print(f"Opening the browser; waiting up to {int(gmail_cfg.connect_timeout_s // 60)} minutes for consent...")
                res = router.connect()
                print(f"Connected as {res.email}." if res.ok else f"Connect failed: {res.error}")
            elif intent.name == "disconnect":
                res = router.disconnect()
                if not res.ok:
                    print(f"Sign out failed: {res.error}")
                else:
                    print("Signed out (token deleted)." if res.removed else "No token found to delete.")
            elif intent.name == "quota":
                q = router.quota()
                print(f"Sent {q.used} of {q.cap} today; {q.remaining} left.")
            elif intent.name == "send":
                _send(router, intent.to or "")
            else:
                print("Sorry, I didn't understand. Say 'help' for examples.")


if __name__ == "__main__":
    main()
