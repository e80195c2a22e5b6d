from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import replace
from unittest.mock import MagicMock

import jwt
import pytest
from botocore.exceptions import ClientError, ConnectTimeoutError

from account_service.core.errors import (
    Conflict,
    InvalidCredentials,
    InvalidRefreshToken,
    TooManyRequests,
    UpstreamError,
    ValidationError,
    WeakPassword,
)
from account_service.services.auth import AuthService
from account_service.services.cognito import CognitoGateway


def client_error(code: str, message: str = "boom", op: str = "InitiateAuth") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, op)


def id_token(**claims) -> str:
    return jwt.encode(claims, "signature-is-not-checked-on-this-path", algorithm="HS256")


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def auth(settings, client, users, metrics) -> AuthService:
    return AuthService(settings, CognitoGateway(settings, client=client), users, metrics)


def _register_fields(**overrides):
    fields = {
        "username": "alice",
        "email": "Alice@Example.com",
        "first_name": "Alice",
        "last_name": "Liddell",
        "phone": None,
    }
    fields.update(overrides)
    return fields


# ---------------------------------------------------------------- login

def test_login_returns_tokens_and_existing_profile(auth, client, alice, metrics) -> None:
    client.initiate_auth.return_value = {
        "AuthenticationResult": {
            "IdToken": id_token(**{"cognito:username": "alice", "email": "alice@example.com"}),
            "AccessToken": "access",
            "RefreshToken": "refresh",
            "ExpiresIn": 3600,
            "TokenType": "Bearer",
        }
    }

    resp = auth.login("alice", "Secret123!")

    assert resp.user.id == alice.id
    assert resp.access_token == "access"
    assert resp.refresh_token == "refresh"
    assert resp.expires_in == 3600
    kwargs = client.initiate_auth.call_args.kwargs
    assert kwargs["AuthFlow"] == "USER_PASSWORD_AUTH"
    assert kwargs["ClientId"] == "client-123"
    assert "SECRET_HASH" not in kwargs["AuthParameters"]
    assert metrics.value("auth_login_success_total") == 1.0


def test_login_creates_missing_local_user_from_claims(auth, client, users) -> None:
    client.initiate_auth.return_value = {
        "AuthenticationResult": {
            "IdToken": id_token(
                **{"cognito:username": "carol", "email": "carol@example.com", "given_name": "Carol"}
            ),
        }
    }

    resp = auth.login("carol@example.com", "pw")

    assert resp.user.username == "carol"
    assert users.get_profile("carol").first_name == "Carol"


def test_login_after_admin_rename_reuses_row(auth, client, users, alice, metrics) -> None:
    users.admin_update(alice.id, {"username": "alice2"})
    client.initiate_auth.return_value = {
        "AuthenticationResult": {
            "IdToken": id_token(**{"cognito:username": "alice", "email": "alice@example.com"}),
            "AccessToken": "access",
        }
    }

    resp = auth.login("alice", "Secret123!")

    assert resp.user.id == alice.id
    assert resp.user.username == "alice2"
    assert users.statistics().total_users == 1
    assert metrics.value("auth_login_success_total") == 1.0


def test_login_wrong_password_touches_nothing(auth, client, users, metrics) -> None:
    client.initiate_auth.side_effect = client_error("NotAuthorizedException", "Incorrect username or password.")

    with pytest.raises(InvalidCredentials) as exc:
        auth.login("alice", "wrong")

    assert exc.value.status_code == 401
    assert users.statistics().total_users == 0
    assert metrics.value("auth_login_failure_total") == 1.0
    assert metrics.value("auth_login_success_total") == 0.0


def test_login_unknown_provider_error_is_upstream(auth, client) -> None:
    client.initiate_auth.side_effect = client_error("InternalErrorException")
    with pytest.raises(UpstreamError):
        auth.login("alice", "pw")


def test_login_timeout_is_upstream(auth, client) -> None:
    client.initiate_auth.side_effect = ConnectTimeoutError(endpoint_url="https://cognito-idp")
    with pytest.raises(UpstreamError):
        auth.login("alice", "pw")


def test_login_challenge_is_rejected(auth, client) -> None:
    client.initiate_auth.return_value = {"ChallengeName": "NEW_PASSWORD_REQUIRED", "Session": "s"}
    with pytest.raises(InvalidCredentials):
        auth.login("alice", "pw")


def test_login_requires_credentials(auth, client) -> None:
    with pytest.raises(ValidationError):
        auth.login("alice", "")
    client.initiate_auth.assert_not_called()


# ---------------------------------------------------------------- register

def test_register_creates_provider_and_local_user(auth, client, users, metrics) -> None:
    client.sign_up.return_value = {"UserSub": "sub-1"}

    user = auth.register(_register_fields(phone="415 555 1212"), "Secret123!")

    assert user.username == "alice"
    assert user.email == "alice@example.com"
    assert user.phone == "+14155551212"
    assert user.role == "USER"
    attrs = {a["Name"]: a["Value"] for a in client.sign_up.call_args.kwargs["UserAttributes"]}
    assert attrs == {
        "email": "alice@example.com",
        "given_name": "Alice",
        "family_name": "Liddell",
        "phone_number": "+14155551212",
    }
    client.admin_confirm_sign_up.assert_called_once_with(UserPoolId="us-east-1_pool", Username="alice")
    assert metrics.value("auth_registration_success_total") == 1.0


def test_register_local_duplicate_never_reaches_provider(auth, client, alice, metrics) -> None:
    with pytest.raises(Conflict):
        auth.register(_register_fields(), "pw")
    with pytest.raises(Conflict):
        auth.register(_register_fields(username="alice2"), "pw")

    client.sign_up.assert_not_called()
    assert metrics.value("auth_registration_failure_total") == 2.0


def test_register_maps_provider_errors(auth, client, users) -> None:
    client.sign_up.side_effect = client_error("UsernameExistsException", op="SignUp")
    with pytest.raises(Conflict):
        auth.register(_register_fields(), "pw")

    client.sign_up.side_effect = client_error("InvalidPasswordException", "Password not long enough", op="SignUp")
    with pytest.raises(WeakPassword) as exc:
        auth.register(_register_fields(), "pw")
    assert exc.value.detail == "Password not long enough"

    assert users.statistics().total_users == 0


def test_register_auto_confirm_failure_is_swallowed(auth, client, users) -> None:
    client.sign_up.return_value = {"UserSub": "sub-1"}
    client.admin_confirm_sign_up.side_effect = client_error("AccessDeniedException", op="AdminConfirmSignUp")

    user = auth.register(_register_fields(), "pw")

    assert users.get_profile("alice").id == user.id


def test_register_without_auto_confirm(settings, client, users, metrics) -> None:
    service = AuthService(
        replace(settings, cognito_auto_confirm=False),
        CognitoGateway(settings, client=client),
        users,
        metrics,
    )
    client.sign_up.return_value = {"UserSub": "sub-1"}

    service.register(_register_fields(), "pw")

    client.admin_confirm_sign_up.assert_not_called()


# ---------------------------------------------------------------- tokens and passwords

def test_refresh_maps_not_authorized(auth, client) -> None:
    client.initiate_auth.side_effect = client_error("NotAuthorizedException")
    with pytest.raises(InvalidRefreshToken) as exc:
        auth.refresh("stale")
    assert exc.value.status_code == 401


def test_refresh_returns_new_id_token(auth, client, metrics) -> None:
    client.initiate_auth.return_value = {"AuthenticationResult": {"IdToken": "new-id", "ExpiresIn": 3600}}

    resp = auth.refresh("refresh-token")

    assert resp.token == "new-id"
    assert client.initiate_auth.call_args.kwargs["AuthFlow"] == "REFRESH_TOKEN_AUTH"
    assert metrics.value("auth_token_refresh_total") == 1.0


def test_sign_out_swallows_provider_errors(auth, client, metrics) -> None:
    client.global_sign_out.side_effect = client_error("NotAuthorizedException", op="GlobalSignOut")

    auth.sign_out("expired-access-token")

    assert metrics.value("auth_signout_provider_failure_total") == 1.0


def test_change_password_validates_before_dispatch(auth, client) -> None:
    with pytest.raises(ValidationError):
        auth.change_password("access", "", "new")
    client.change_password.assert_not_called()

    client.change_password.side_effect = client_error("NotAuthorizedException", op="ChangePassword")
    with pytest.raises(InvalidCredentials):
        auth.change_password("access", "old", "new")


def test_forgot_password_throttled(auth, client) -> None:
    client.forgot_password.side_effect = client_error("LimitExceededException", op="ForgotPassword")
    with pytest.raises(TooManyRequests) as exc:
        auth.forgot_password("alice")
    assert exc.value.status_code == 429


def test_confirm_forgot_password_code_mismatch(auth, client, metrics) -> None:
    client.confirm_forgot_password.side_effect = client_error(
        "CodeMismatchException", "Invalid verification code provided", op="ConfirmForgotPassword"
    )
    with pytest.raises(ValidationError) as exc:
        auth.confirm_forgot_password("alice", "123456", "N3w-pass")
    assert exc.value.detail == "Invalid verification code provided"


# ---------------------------------------------------------------- secret hash

def test_secret_hash_is_sent_when_client_secret_configured(settings, client, users, metrics) -> None:
    with_secret = replace(settings, cognito_app_client_secret="shh")
    service = AuthService(with_secret, CognitoGateway(with_secret, client=client), users, metrics)
    client.forgot_password.return_value = {"CodeDeliveryDetails": {"DeliveryMedium": "EMAIL"}}

    delivery = service.forgot_password("alice")

    expected = base64.b64encode(
        hmac.new(b"shh", b"aliceclient-123", hashlib.sha256).digest()
    ).decode()
    assert client.forgot_password.call_args.kwargs["SecretHash"] == expected
    assert delivery == {"DeliveryMedium": "EMAIL"}
    assert metrics.value("auth_password_reset_total") == 1.0
