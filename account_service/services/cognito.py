from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from account_service.core.aws import cognito_client
from account_service.core.crypto import cognito_secret_hash
from account_service.core.errors import (
    InvalidCredentials,
    InvalidRefreshToken,
    NotFound,
    ServiceError,
    TooManyRequests,
    UpstreamError,
    UsernameTaken,
    ValidationError,
    WeakPassword,
)
from account_service.core.settings import Settings

ErrorMap = Mapping[str, Type[ServiceError]]

_THROTTLED: ErrorMap = {
    "TooManyRequestsException": TooManyRequests,
    "LimitExceededException": TooManyRequests,
    "TooManyFailedAttemptsException": TooManyRequests,
}

# Provider messages for these codes are safe to show to the caller.
_PASS_MESSAGE = {
    "InvalidPasswordException",
    "InvalidParameterException",
    "CodeMismatchException",
    "ExpiredCodeException",
}


class CognitoGateway:
    """Thin wrapper over the cognito-idp API that maps provider errors onto ours."""

    def __init__(self, settings: Settings, client: Any = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = cognito_client(self.settings)
        return self._client

    def _client_id(self) -> str:
        if not self.settings.cognito_app_client_id:
            raise UpstreamError("Cognito app client id not configured")
        return self.settings.cognito_app_client_id

    def _pool_id(self) -> str:
        if not self.settings.cognito_user_pool_id:
            raise UpstreamError("Cognito user pool id not configured")
        return self.settings.cognito_user_pool_id

    def secret_hash(self, username: str) -> Optional[str]:
        if not self.settings.cognito_app_client_secret:
            return None
        return cognito_secret_hash(username, self._client_id(), self.settings.cognito_app_client_secret)

    def _with_secret(self, kwargs: Dict[str, Any], username: str) -> Dict[str, Any]:
        secret = self.secret_hash(username)
        if secret:
            kwargs["SecretHash"] = secret
        return kwargs

    def _call(self, op: str, username: Optional[str], fn: Callable[[], Dict[str, Any]], errors: ErrorMap) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            return fn()
        except ClientError as exc:
            err = exc.response.get("Error", {})
            code = err.get("Code", "")
            message = err.get("Message", "")
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "Cognito {} failed for user={} after {:.0f}ms: {} {}",
                op, username or "-", elapsed_ms, code, message,
            )
            mapped = errors.get(code) or _THROTTLED.get(code)
            if mapped is None:
                raise UpstreamError(f"Identity provider error: {code or 'unknown'}") from exc
            raise mapped(message if code in _PASS_MESSAGE and message else None) from exc
        except BotoCoreError as exc:
            # connect/read timeouts and endpoint failures
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.error("Cognito {} unavailable for user={} after {:.0f}ms: {}", op, username or "-", elapsed_ms, exc)
            raise UpstreamError("Identity provider unavailable") from exc

    # ------------------------------------------------------------ auth flows

    def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        params = {"USERNAME": username, "PASSWORD": password}
        secret = self.secret_hash(username)
        if secret:
            params["SECRET_HASH"] = secret
        resp = self._call(
            "initiate_auth",
            username,
            lambda: self.client.initiate_auth(
                AuthFlow="USER_PASSWORD_AUTH",
                ClientId=self._client_id(),
                AuthParameters=params,
            ),
            {
                "NotAuthorizedException": InvalidCredentials,
                "UserNotFoundException": InvalidCredentials,
                "UserNotConfirmedException": InvalidCredentials,
                "PasswordResetRequiredException": InvalidCredentials,
            },
        )
        result = resp.get("AuthenticationResult")
        if not result:
            challenge = resp.get("ChallengeName") or "unknown"
            logger.warning("Cognito returned challenge {} for user={}", challenge, username)
            raise InvalidCredentials(f"Additional authentication challenge required: {challenge}")
        return result

    def refresh(self, refresh_token: str, username: Optional[str] = None) -> Dict[str, Any]:
        params = {"REFRESH_TOKEN": refresh_token}
        if username:
            secret = self.secret_hash(username)
            if secret:
                params["SECRET_HASH"] = secret
        resp = self._call(
            "initiate_auth",
            username,
            lambda: self.client.initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=self._client_id(),
                AuthParameters=params,
            ),
            {"NotAuthorizedException": InvalidRefreshToken, "UserNotFoundException": InvalidRefreshToken},
        )
        result = resp.get("AuthenticationResult")
        if not result or not result.get("IdToken"):
            raise InvalidRefreshToken()
        return result

    def sign_up(self, username: str, password: str, attributes: List[Dict[str, str]]) -> str:
        kwargs = self._with_secret(
            {
                "ClientId": self._client_id(),
                "Username": username,
                "Password": password,
                "UserAttributes": attributes,
            },
            username,
        )
        resp = self._call(
            "sign_up",
            username,
            lambda: self.client.sign_up(**kwargs),
            {
                "UsernameExistsException": UsernameTaken,
                "AliasExistsException": UsernameTaken,
                "InvalidPasswordException": WeakPassword,
                "InvalidParameterException": ValidationError,
            },
        )
        return resp.get("UserSub", "")

    def admin_confirm_sign_up(self, username: str) -> None:
        self._call(
            "admin_confirm_sign_up",
            username,
            lambda: self.client.admin_confirm_sign_up(UserPoolId=self._pool_id(), Username=username),
            {},
        )

    def global_sign_out(self, access_token: str) -> None:
        self._call(
            "global_sign_out",
            None,
            lambda: self.client.global_sign_out(AccessToken=access_token),
            {},
        )

    def change_password(self, access_token: str, old_password: str, new_password: str) -> None:
        self._call(
            "change_password",
            None,
            lambda: self.client.change_password(
                AccessToken=access_token,
                PreviousPassword=old_password,
                ProposedPassword=new_password,
            ),
            {
                "NotAuthorizedException": InvalidCredentials,
                "InvalidPasswordException": WeakPassword,
                "InvalidParameterException": ValidationError,
            },
        )

    def forgot_password(self, username: str) -> Dict[str, Any]:
        kwargs = self._with_secret({"ClientId": self._client_id(), "Username": username}, username)
        resp = self._call(
            "forgot_password",
            username,
            lambda: self.client.forgot_password(**kwargs),
            {
                "UserNotFoundException": NotFound,
                "InvalidParameterException": ValidationError,
            },
        )
        return resp.get("CodeDeliveryDetails") or {}

    def confirm_forgot_password(self, username: str, code: str, new_password: str) -> None:
        kwargs = self._with_secret(
            {
                "ClientId": self._client_id(),
                "Username": username,
                "ConfirmationCode": code,
                "Password": new_password,
            },
            username,
        )
        self._call(
            "confirm_forgot_password",
            username,
            lambda: self.client.confirm_forgot_password(**kwargs),
            {
                "UserNotFoundException": NotFound,
                "CodeMismatchException": ValidationError,
                "ExpiredCodeException": ValidationError,
                "InvalidPasswordException": WeakPassword,
                "InvalidParameterException": ValidationError,
            },
        )
