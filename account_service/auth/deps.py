from __future__ import annotations

import json
import threading
import time
from functools import lru_cache
from typing import Any, Dict, List, Optional

import jwt
import requests
from fastapi import Depends, Request
from loguru import logger

from account_service.core.errors import Forbidden, Unauthorized, UpstreamError
from account_service.core.settings import S, Settings

DEFAULT_ROLE = "USER"


def _settings(request: Request) -> Settings:
    state = getattr(getattr(request, "app", None), "state", None)
    return getattr(state, "settings", None) or S


class SigningKeys:
    """JWKS for one issuer, fetched once and refetched on an unknown kid at most every ``min_refresh`` seconds."""

    def __init__(self, url: str, timeout: float, min_refresh: float) -> None:
        self.url = url
        self.timeout = timeout
        self.min_refresh = min_refresh
        self._keys: Optional[Dict[str, Dict[str, Any]]] = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def _fetch(self) -> None:
        try:
            resp = requests.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            keys = resp.json().get("keys", [])
        except (requests.RequestException, ValueError) as exc:
            logger.error("JWKS fetch from {} failed: {}", self.url, exc)
            raise UpstreamError("Unable to fetch token signing keys") from exc
        self._keys = {k.get("kid"): k for k in keys if k.get("kid")}
        self._fetched_at = time.monotonic()

    def get(self, kid: str) -> Dict[str, Any]:
        with self._lock:
            if self._keys is None:
                self._fetch()
            key = self._keys.get(kid)
            if key is None and time.monotonic() - self._fetched_at >= self.min_refresh:
                # signing keys rotate; unknown kids only trigger a refetch once per window
                self._fetch()
                key = self._keys.get(kid)
        if key is None:
            raise Unauthorized("Unknown token key id")
        return key


@lru_cache(maxsize=4)
def signing_keys(url: str, timeout: float, min_refresh: float) -> SigningKeys:
    return SigningKeys(url, timeout, min_refresh)


def _resolve_key(settings: Settings, kid: str) -> Dict[str, Any]:
    return signing_keys(settings.jwks_url, settings.jwks_timeout, settings.jwks_min_refresh).get(kid)


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    if settings.auth_dev_mode:
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise Unauthorized("Invalid token") from exc

    if not settings.cognito_enabled:
        raise UpstreamError("Token validation is not configured")

    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise Unauthorized("Invalid token header") from exc

    key = _resolve_key(settings, header.get("kid", ""))
    public_key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(key))
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            issuer=settings.cognito_issuer,
            options={"verify_aud": False},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthorized("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise Unauthorized("Invalid token") from exc

    token_use = payload.get("token_use")
    expected_use = settings.cognito_expected_token_use
    if expected_use and token_use != expected_use:
        raise Unauthorized("Unexpected token use")

    # id tokens carry the client in aud, access tokens in client_id
    client_id = payload.get("aud") if token_use == "id" else payload.get("client_id")
    if isinstance(client_id, list):
        matches = settings.cognito_app_client_id in client_id
    else:
        matches = client_id == settings.cognito_app_client_id
    if not matches:
        raise Unauthorized("Token was not issued for this client")
    return payload


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise Unauthorized("Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Invalid Authorization header")
    return token.strip()


def roles_from_claims(claims: Dict[str, Any]) -> List[str]:
    groups = claims.get("cognito:groups") or []
    if isinstance(groups, str):
        groups = [groups]
    roles = [str(g).strip().upper() for g in groups if str(g).strip()]
    return roles or [DEFAULT_ROLE]


def username_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    for name in ("cognito:username", "username", "sub"):
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def get_principal(request: Request) -> Dict[str, Any]:
    """Authenticated caller derived from a verified bearer token."""
    settings = _settings(request)
    token = extract_bearer_token(request.headers.get("authorization"))
    claims = decode_token(token, settings)
    username = username_from_claims(claims)
    if not username:
        raise Unauthorized("Token missing subject")
    return {
        "username": username,
        "sub": claims.get("sub"),
        "roles": roles_from_claims(claims),
        "token": token,
        "claims": claims,
    }


def require_admin(request: Request, principal: Dict[str, Any] = Depends(get_principal)) -> Dict[str, Any]:
    admin_group = _settings(request).admin_group.upper()
    if admin_group not in principal["roles"]:
        logger.warning("Admin access denied for user: {}", principal["username"])
        raise Forbidden("Admin role required")
    return principal
