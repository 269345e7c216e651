from __future__ import annotations

import hashlib
import hmac
import ipaddress
import re
import secrets
from functools import lru_cache

from fastapi import Request

from app.core.operators import OperatorContext

OPS_SESSION_COOKIE = "storefront_ops_session"
OPERATOR_HEADER = "X-Operator-Id"
DEFAULT_OPERATOR_ID = "ops"
_OPERATOR_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]{1,64}$")

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def normalize_operator_id(raw_operator_id: str | None) -> str:
    candidate = (raw_operator_id or "").strip()
    if not _OPERATOR_ID_PATTERN.fullmatch(candidate):
        return DEFAULT_OPERATOR_ID
    return candidate


def is_valid_internal_token(*, expected_token: str, received_token: str | None) -> bool:
    if not expected_token or not received_token:
        return False
    return secrets.compare_digest(expected_token, received_token)


def _ops_session_signature(*, token: str, operator_id: str) -> str:
    digest = hmac.new(
        token.encode("utf-8"),
        f"ops-session:{operator_id}".encode("utf-8"),
        hashlib.sha256,
    )
    return digest.hexdigest()


def build_ops_session_value(*, token: str, operator_id: str) -> str:
    signature = _ops_session_signature(token=token, operator_id=operator_id)
    return f"{operator_id}:{signature}"


def parse_ops_session(*, expected_token: str, received_session: str | None) -> str | None:
    if not expected_token or not received_session or ":" not in received_session:
        return None
    operator_id, signature = received_session.rsplit(":", maxsplit=1)
    if not _OPERATOR_ID_PATTERN.fullmatch(operator_id):
        return None
    expected_signature = _ops_session_signature(token=expected_token, operator_id=operator_id)
    if not secrets.compare_digest(expected_signature, signature):
        return None
    return operator_id


def authenticate_operator(
    request: Request,
    *,
    expected_token: str,
) -> OperatorContext | None:
    header_token = request.headers.get("X-Internal-Token")
    if is_valid_internal_token(expected_token=expected_token, received_token=header_token):
        return OperatorContext(
            operator_id=normalize_operator_id(request.headers.get(OPERATOR_HEADER))
        )

    operator_id = parse_ops_session(
        expected_token=expected_token,
        received_session=request.cookies.get(OPS_SESSION_COOKIE),
    )
    if operator_id is None:
        return None
    return OperatorContext(operator_id=operator_id)


@lru_cache(maxsize=32)
def _parse_networks(raw_networks: str) -> tuple[IpNetwork, ...]:
    networks: list[IpNetwork] = []
    for raw_entry in raw_networks.split(","):
        entry = raw_entry.strip()
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def parse_ip(value: str | None) -> str | None:
    candidate = (value or "").strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def extract_client_ip(
    request: Request,
    *,
    trusted_proxies: str = "",
) -> str | None:
    client_host = parse_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and is_client_ip_allowed(client_ip=client_host, allowlist=trusted_proxies):
        return parse_ip(forwarded_for.split(",", maxsplit=1)[0])
    return client_host


def is_client_ip_allowed(*, client_ip: str | None, allowlist: str) -> bool:
    parsed_ip = parse_ip(client_ip)
    if parsed_ip is None:
        return False
    networks = _parse_networks(allowlist)
    address = ipaddress.ip_address(parsed_ip)
    return any(address in network for network in networks)
