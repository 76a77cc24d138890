from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GmailConfig:
    # Least-privilege scopes: send mail + read the account's own address
    scopes: tuple[str, ...] = (
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/userinfo.email",
    )

    # Loopback redirect; port is picked per connect attempt
    redirect_host: str = "127.0.0.1"
    callback_path: str = "/oauth2callback"
    connect_timeout_s: float = 5 * 60

    # Keychain entries (same names the Setup screen writes)
    secret_service: str = "CompanyTinder"
    client_id_key: str = "GMAIL_CLIENT_ID"
    client_secret_key: str = "GMAIL_CLIENT_SECRET"
    tokens_key: str = "GMAIL_TOKENS"

    auth_uri: str = "https://accounts.google.com/o/oauth2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"
