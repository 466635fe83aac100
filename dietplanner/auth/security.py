# -*- coding: utf-8 -*-
"""Auth — HS256 bearer tokens + FastAPI helpers."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from ..config import settings
from ..errors import Unauthorized

TOKEN_COOKIE_NAME = "dietplanner_token"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(*, subject: str, name: str | None = None) -> str:
    now = _utc_now()
    exp = now + timedelta(days=int(settings.token_ttl_days))
    payload: Dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if name:
        payload["name"] = name
    return _jwt_encode(payload, settings.jwt_secret)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        payload = _jwt_decode(token, settings.jwt_secret)
    except Exception as exc:
        raise Unauthorized("Invalid token") from exc
    exp = int(payload.get("exp") or 0)
    if exp and exp < int(_utc_now().timestamp()):
        raise Unauthorized("Token expired")
    return payload


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode((data + pad).encode("ascii"))


def _jwt_encode(payload: Dict[str, Any], secret: str) -> str:
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    sig = hmac.new(secret.encode("utf-8"), signing_input, hashlib.sha256).digest()
    return f"{header_b64}.{payload_b64}.{_b64url_encode(sig)}"


def _jwt_decode(token: str, secret: str) -> Dict[str, Any]:
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("invalid token")
    header_b64, payload_b64, sig_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    expected_sig = hmac.new(secret.encode("utf-8"), signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, _b64url_decode(sig_b64)):
        raise ValueError("bad signature")
    payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("bad payload")
    return payload


def get_token_from_request(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        return token or None
    cookie = request.cookies.get(TOKEN_COOKIE_NAME)
    return cookie or None


def get_identity_from_request(request: Request) -> Dict[str, Any]:
    # If middleware already authenticated, reuse it.
    identity = getattr(request.state, "identity", None)
    if identity:
        return identity

    token = get_token_from_request(request)
    if not token:
        raise Unauthorized("Unauthorized")

    payload = decode_token(token)
    subject = str(payload.get("sub") or "")
    if not subject:
        raise Unauthorized("Invalid token")

    identity = {"external_id": subject, "name": payload.get("name")}
    request.state.identity = identity
    return identity


def get_current_identity(identity: Dict[str, Any] = Depends(get_identity_from_request)) -> Dict[str, Any]:
    return identity
