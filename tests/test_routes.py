import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

from account_service.core.errors import UpstreamError
from account_service.models import (
    AddressCreateReq,
    AddressUpdateReq,
    AdminUserUpdateReq,
    ChangePasswordReq,
    ConfirmForgotPasswordReq,
    ProfileUpdateReq,
    RefreshReq,
    RegisterReq,
    UserOut,
)
from account_service.routers import addresses, admin, auth, health, users


def build_ctx():
    return {"username": "alice", "sub": "sub-1", "roles": ["USER"], "token": "tok", "claims": {}}


def build_user():
    now = datetime.now(timezone.utc)
    return UserOut(id=1, username="alice", email="a@example.com", role="USER", created_at=now, updated_at=now)


def build_request(headers=None, database=None):
    return SimpleNamespace(headers=headers or {}, app=SimpleNamespace(state=SimpleNamespace(database=database)))


class TestAuthRoutes(unittest.TestCase):
    def test_register_splits_password_from_fields(self):
        service = MagicMock()
        service.register.return_value = build_user()
        body = RegisterReq(
            username="alice", email="a@example.com", password="pw", firstName="Alice", lastName="L"
        )
        resp = auth.register(body, auth=service)
        fields, password = service.register.call_args.args
        self.assertEqual(password, "pw")
        self.assertNotIn("password", fields)
        self.assertEqual(fields["first_name"], "Alice")
        self.assertEqual(resp.message, "User registered successfully")

    def test_refresh_accepts_camel_case(self):
        service = MagicMock()
        auth.refresh(RefreshReq(refreshToken="r1"), auth=service)
        service.refresh.assert_called_once_with("r1", None)

    def test_logout_always_succeeds(self):
        service = MagicMock()
        req = build_request({"authorization": "Bearer access-1"})
        resp = auth.logout(req, auth=service)
        service.sign_out.assert_called_once_with("access-1")
        self.assertEqual(resp.message, "Logged out successfully")

    def test_change_password_uses_bearer_access_token(self):
        service = MagicMock()
        req = build_request({"authorization": "Bearer access-1"})
        body = ChangePasswordReq(oldPassword="old", newPassword="new")
        auth.change_password(req, body, auth=service)
        service.change_password.assert_called_once_with("access-1", "old", "new")

    def test_confirm_forgot_password(self):
        service = MagicMock()
        body = ConfirmForgotPasswordReq(username="alice", code="123456", newPassword="new")
        resp = auth.confirm_forgot_password(body, auth=service)
        service.confirm_forgot_password.assert_called_once_with("alice", "123456", "new")
        self.assertEqual(resp.message, "Password reset successfully")

    def test_me_reads_profile_of_principal(self):
        service = MagicMock()
        auth.me(principal=build_ctx(), users=service)
        service.get_profile.assert_called_once_with("alice")


class TestUserRoutes(unittest.TestCase):
    def test_update_me_passes_only_present_fields(self):
        service = MagicMock()
        body = ProfileUpdateReq(firstName="Al", phone=None)
        users.update_me(body, principal=build_ctx(), users=service)
        service.update_profile.assert_called_once_with("alice", {"first_name": "Al"})

    def test_delete_me(self):
        service = MagicMock()
        resp = users.delete_me(principal=build_ctx(), users=service)
        service.delete_account.assert_called_once_with("alice")
        self.assertEqual(resp.message, "Account deleted successfully")


class TestAddressRoutes(unittest.TestCase):
    def test_create_address(self):
        service = MagicMock()
        body = AddressCreateReq(line1="1 Main", city="Town", state="CA", postalCode="90001", country="US")
        addresses.create_address(body, principal=build_ctx(), addresses=service)
        username, fields = service.create.call_args.args
        self.assertEqual(username, "alice")
        self.assertEqual(fields["address_line1"], "1 Main")
        self.assertEqual(fields["postal_code"], "90001")

    def test_update_address(self):
        service = MagicMock()
        body = AddressUpdateReq(isDefault=True)
        addresses.update_address(7, body, principal=build_ctx(), addresses=service)
        service.update.assert_called_once_with(7, "alice", {"is_default": True})

    def test_delete_address_returns_no_content(self):
        service = MagicMock()
        resp = addresses.delete_address(7, principal=build_ctx(), addresses=service)
        service.delete.assert_called_once_with(7, "alice")
        self.assertEqual(resp.status_code, 204)

    def test_set_default_address(self):
        service = MagicMock()
        addresses.set_default_address(7, principal=build_ctx(), addresses=service)
        service.set_default.assert_called_once_with(7, "alice")


class TestAdminRoutes(unittest.TestCase):
    def test_router_requires_admin(self):
        guards = [d.dependency for d in admin.router.dependencies]
        self.assertIn(admin.require_admin, guards)

    def test_list_users_with_search(self):
        service = MagicMock()
        admin.list_users(search="ali", users=service)
        service.admin_list.assert_called_once_with("ali")

    def test_update_user(self):
        service = MagicMock()
        body = AdminUserUpdateReq(email="new@example.com", username=None)
        admin.update_user(3, body, users=service)
        service.admin_update.assert_called_once_with(3, {"email": "new@example.com"})

    def test_user_addresses(self):
        service = MagicMock()
        admin.get_user_addresses(3, addresses=service)
        service.list_for_user_id.assert_called_once_with(3)


class TestHealthRoute(unittest.TestCase):
    def test_up(self):
        db = MagicMock()
        db.ping.return_value = True
        resp = health.health(build_request(database=db))
        self.assertEqual(resp.status, "UP")

    def test_down_returns_503(self):
        db = MagicMock()
        db.ping.return_value = False
        resp = health.health(build_request(database=db))
        self.assertEqual(resp.status_code, 503)


class TestErrors(unittest.TestCase):
    def test_upstream_error_is_http_500(self):
        err = UpstreamError()
        self.assertEqual(err.status_code, 500)
        self.assertEqual(err.detail, "Upstream service failure")


if __name__ == "__main__":
    unittest.main()
