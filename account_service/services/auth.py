from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import jwt
from loguru import logger

from account_service.core.errors import ServiceError, ValidationError
from account_service.core.normalize import clean_str, normalize_email, normalize_phone, normalize_username, require_str
from account_service.core.settings import Settings
from account_service.metrics import Metrics
from account_service.models import LoginResp, RefreshResp, UserOut
from account_service.services.cognito import CognitoGateway
from account_service.services.users import UserService


def unverified_claims(token: Optional[str]) -> Dict[str, Any]:
    """Claims of a token we just received from the provider over TLS; not for inbound tokens."""
    if not token:
        return {}
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}


def _required(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return value


class AuthService:
    """Login, registration and password flows against Cognito, mirrored into the local store."""

    def __init__(self, settings: Settings, cognito: CognitoGateway, users: UserService, metrics: Metrics) -> None:
        self.settings = settings
        self.cognito = cognito
        self.users = users
        self.metrics = metrics

    def login(self, username: str, password: str) -> LoginResp:
        username = require_str(username, field="username")
        password = _required(password, "password")
        logger.info("Login attempt for user: {}", username)
        start = time.perf_counter()
        try:
            result = self.cognito.authenticate(username, password)
            claims = unverified_claims(result.get("IdToken"))
            local_username = claims.get("cognito:username") or username
            user = self.users.find_or_create_from_claims(local_username, claims, password)
        except ServiceError:
            elapsed = time.perf_counter() - start
            self.metrics.record_login(False, elapsed)
            logger.warning("Login failed for user: {} (duration: {:.0f}ms)", username, elapsed * 1000)
            raise
        elapsed = time.perf_counter() - start
        self.metrics.record_login(True, elapsed)
        logger.info("Login successful for user: {} (duration: {:.0f}ms)", username, elapsed * 1000)
        return LoginResp(
            token=result.get("IdToken", ""),
            access_token=result.get("AccessToken"),
            refresh_token=result.get("RefreshToken"),
            expires_in=result.get("ExpiresIn"),
            token_type=result.get("TokenType") or "Bearer",
            user=user,
        )

    def register(self, fields: Dict[str, Any], password: str) -> UserOut:
        username = normalize_username(fields.get("username") or "")
        email = normalize_email(fields.get("email") or "")
        first_name = require_str(fields.get("first_name"), max_len=100, field="first_name")
        last_name = require_str(fields.get("last_name"), max_len=100, field="last_name")
        phone_raw = clean_str(fields.get("phone"), max_len=32, field="phone")
        phone = normalize_phone(phone_raw) if phone_raw else None
        password = _required(password, "password")

        logger.info("Registration attempt for user: {}", username)
        start = time.perf_counter()
        try:
            # local collisions fail before anything is created at the provider
            self.users.ensure_available(username, email)
            attributes: List[Dict[str, str]] = [
                {"Name": "email", "Value": email},
                {"Name": "given_name", "Value": first_name},
                {"Name": "family_name", "Value": last_name},
            ]
            if phone:
                attributes.append({"Name": "phone_number", "Value": phone})
            user_sub = self.cognito.sign_up(username, password, attributes)
            logger.info("User created in Cognito: {}, sub: {}", username, user_sub)
            user = self.users.create_local_user(
                username=username,
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            )
        except ServiceError:
            elapsed = time.perf_counter() - start
            self.metrics.record_registration(False, elapsed)
            logger.warning("Registration failed for user: {} (duration: {:.0f}ms)", username, elapsed * 1000)
            raise

        if self.settings.cognito_auto_confirm:
            self._auto_confirm(username)

        elapsed = time.perf_counter() - start
        self.metrics.record_registration(True, elapsed)
        logger.info("Registration successful for user: {} (duration: {:.0f}ms)", username, elapsed * 1000)
        return user

    def _auto_confirm(self, username: str) -> None:
        try:
            self.cognito.admin_confirm_sign_up(username)
            logger.info("User auto-confirmed: {}", username)
        except ServiceError as exc:
            logger.warning("Could not auto-confirm user {}: {}", username, exc.detail)

    def refresh(self, refresh_token: str, username: Optional[str] = None) -> RefreshResp:
        refresh_token = _required(refresh_token, "refresh_token")
        logger.info("Token refresh request")
        result = self.cognito.refresh(refresh_token, clean_str(username))
        self.metrics.token_refresh.inc()
        return RefreshResp(
            token=result["IdToken"],
            access_token=result.get("AccessToken"),
            expires_in=result.get("ExpiresIn"),
        )

    def sign_out(self, access_token: str) -> None:
        try:
            self.cognito.global_sign_out(access_token)
            logger.info("User signed out at identity provider")
        except ServiceError as exc:
            # the client clears its session either way
            self.metrics.signout_provider_failure.inc()
            logger.warning("Provider sign-out failed, reporting local sign-out: {}", exc.detail)

    def change_password(self, access_token: str, old_password: str, new_password: str) -> None:
        _required(access_token, "access_token")
        _required(old_password, "old_password")
        _required(new_password, "new_password")
        logger.info("Password change request")
        self.cognito.change_password(access_token, old_password, new_password)
        self.metrics.password_change.inc()

    def forgot_password(self, username: str) -> Dict[str, Any]:
        username = require_str(username, field="username")
        logger.info("Password reset request for user: {}", username)
        delivery = self.cognito.forgot_password(username)
        self.metrics.password_reset.inc()
        return delivery

    def confirm_forgot_password(self, username: str, code: str, new_password: str) -> None:
        username = require_str(username, field="username")
        code = require_str(code, field="confirmation_code")
        _required(new_password, "new_password")
        self.cognito.confirm_forgot_password(username, code, new_password)
        logger.info("Password reset confirmed for user: {}", username)
