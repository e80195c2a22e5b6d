import base64
import hashlib
import hmac
import unittest

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError
from fastapi import HTTPException

from account_service.core.crypto import cognito_secret_hash, hash_password
from account_service.core.normalize import (
    clean_str,
    normalize_choice,
    normalize_email,
    normalize_phone,
    normalize_username,
    require_str,
)


class TestNormalizeEmail(unittest.TestCase):
    def test_normalize_email_strips_and_lowercases(self):
        self.assertEqual(normalize_email("  Test@Example.COM "), "test@example.com")

    def test_normalize_email_rejects_invalid(self):
        with self.assertRaises(HTTPException):
            normalize_email("invalid-email")


class TestNormalizePhone(unittest.TestCase):
    def test_normalize_phone_preserves_e164(self):
        self.assertEqual(normalize_phone("+1 (415) 555-1212"), "+14155551212")

    def test_normalize_phone_adds_us_country_code(self):
        self.assertEqual(normalize_phone("415-555-1212"), "+14155551212")

    def test_normalize_phone_rejects_invalid(self):
        with self.assertRaises(HTTPException):
            normalize_phone("not-a-number")

    def test_normalize_phone_rejects_too_long(self):
        with self.assertRaises(HTTPException):
            normalize_phone("+" + "1" * 25)


class TestNormalizeText(unittest.TestCase):
    def test_clean_str_blank_is_none(self):
        self.assertIsNone(clean_str("   "))
        self.assertIsNone(clean_str(None))
        self.assertEqual(clean_str(" x "), "x")

    def test_clean_str_enforces_max_len(self):
        with self.assertRaises(HTTPException) as ctx:
            clean_str("abcdef", max_len=5, field="city")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_require_str(self):
        with self.assertRaises(HTTPException):
            require_str(" ", field="city")

    def test_normalize_username_bounds(self):
        self.assertEqual(normalize_username(" alice "), "alice")
        with self.assertRaises(HTTPException):
            normalize_username("ab")
        with self.assertRaises(HTTPException):
            normalize_username("a" * 51)
        with self.assertRaises(HTTPException):
            normalize_username("bad name")

    def test_normalize_choice_upper_cases(self):
        self.assertEqual(normalize_choice(" billing ", frozenset({"BILLING"}), field="address_type"), "BILLING")
        with self.assertRaises(HTTPException):
            normalize_choice("other", frozenset({"BILLING"}), field="address_type")


class TestCrypto(unittest.TestCase):
    def test_secret_hash_matches_hmac_of_username_and_client(self):
        expected = base64.b64encode(hmac.new(b"secret", b"userclient", hashlib.sha256).digest()).decode()
        self.assertEqual(cognito_secret_hash("user", "client", "secret"), expected)
        self.assertNotEqual(cognito_secret_hash("user2", "client", "secret"), expected)

    def test_password_hash_round_trip(self):
        stored = hash_password("Secret123!")
        self.assertTrue(stored.startswith("$argon2"))
        self.assertTrue(PasswordHasher().verify(stored, "Secret123!"))
        with self.assertRaises(VerifyMismatchError):
            PasswordHasher().verify(stored, "wrong")
