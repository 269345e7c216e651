from __future__ import annotations

import hashlib
import hmac
import secrets

VISITOR_SESSION_COOKIE = "storefront_visitor"
ACCOUNT_SESSION_COOKIE = "storefront_account"
_VISITOR_TOKEN_BYTES = 24


def new_visitor_token() -> str:
    return secrets.token_urlsafe(_VISITOR_TOKEN_BYTES)


def derive_visitor_key(*, token: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        f"visitor:{token}".encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()


def _account_signature(*, account_id: int, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        f"account:{account_id}".encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()


def build_account_session_value(*, account_id: int, secret: str) -> str:
    return f"{account_id}.{_account_signature(account_id=account_id, secret=secret)}"


def parse_account_session_value(*, value: str | None, secret: str) -> int | None:
    if not value or "." not in value:
        return None
    raw_account_id, signature = value.split(".", maxsplit=1)
    if not raw_account_id.isdigit():
        return None
    account_id = int(raw_account_id)
    expected = _account_signature(account_id=account_id, secret=secret)
    if not secrets.compare_digest(expected, signature):
        return None
    return account_id
