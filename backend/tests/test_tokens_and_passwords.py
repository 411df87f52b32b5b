"""
Unit tests for token_handler.py and password_handler.py
"""
import hashlib
import unittest
from unittest.mock import patch

from itsdangerous.timed import TimestampSigner

from vault_test_case import BaseTestCase, SIGNUP_PASSWORD
from database.models import User
from errors import ConfigurationError, InvalidTokenError, ValidationError
from utils.password_handler import check_password_policy, check_reset_password_policy, email_fragments
from utils.token_handler import TokenIssuer, hash_token


class TestTokenIssuer(unittest.TestCase):
    """Tests for token_handler.py"""

    def setUp(self):
        self.tokens = TokenIssuer('test_signing_key')

    def test_session_token_round_trip(self):
        token = self.tokens.issue_session('account-1', device_id='D1')

        self.assertEqual(self.tokens.verify_session(token), 'account-1')
        self.assertEqual(self.tokens.read_session(token)['device_id'], 'D1')

    def test_tampered_token_rejected(self):
        token = self.tokens.issue_session('account-1')

        tampered = ('x' if token[0] != 'x' else 'y') + token[1:]
        with self.assertRaises(InvalidTokenError):
            self.tokens.verify_session(tampered)

        with self.assertRaises(InvalidTokenError):
            self.tokens.verify_session('not-a-token')

    def test_token_from_other_secret_rejected(self):
        token = TokenIssuer('another_key').issue_session('account-1')

        with self.assertRaises(InvalidTokenError):
            self.tokens.verify_session(token)

    def test_session_token_expires_after_seven_minutes(self):
        issued_at = 1_700_000_000
        with patch.object(TimestampSigner, 'get_timestamp', return_value=issued_at):
            token = self.tokens.issue_session('account-1')

        with patch.object(TimestampSigner, 'get_timestamp', return_value=issued_at + 7 * 60 - 1):
            self.assertEqual(self.tokens.verify_session(token), 'account-1')

        with patch.object(TimestampSigner, 'get_timestamp', return_value=issued_at + 7 * 60 + 1):
            with self.assertRaises(InvalidTokenError) as ctx:
                self.tokens.verify_session(token)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_missing_signing_key_is_configuration_error(self):
        tokens = TokenIssuer(None)

        with self.assertRaises(ConfigurationError):
            tokens.issue_session('account-1')
        with self.assertRaises(ConfigurationError):
            tokens.verify_session('anything')

    def test_configuration_error_hides_details(self):
        error = ConfigurationError('Session signing key is not configured')
        self.assertEqual(error.status_code, 500)
        self.assertNotIn('signing', str(error.to_dict()))

    def test_opaque_tokens_are_random_hex(self):
        first = TokenIssuer.issue_opaque_token()
        second = TokenIssuer.issue_opaque_token()

        self.assertEqual(len(first), 64)
        int(first, 16)
        self.assertNotEqual(first, second)

        with self.assertRaises(ValueError):
            TokenIssuer.issue_opaque_token(16)

    def test_hash_token_is_sha256(self):
        self.assertEqual(hash_token('abc'), hashlib.sha256(b'abc').hexdigest())
        self.assertEqual(TokenIssuer.hash('abc'), hash_token('abc'))


class TestPasswordPolicy(unittest.TestCase):
    """Tests for the signup and reset password rules."""

    def assertRule(self, password, email, rule):
        with self.assertRaises(ValidationError) as ctx:
            check_password_policy(password, email)
        self.assertEqual(ctx.exception.rule, rule)

    def test_too_short(self):
        self.assertRule('Ab!@#', 'zz@x.com', 'min_length')

    def test_not_enough_special_characters(self):
        self.assertRule('abc1234', 'zz@x.com', 'special_characters')
        self.assertRule('ab!@c1234', 'zz@x.com', 'special_characters')

    def test_contains_email_local_part(self):
        self.assertRule('tim!@#1', 'timmy@x.com', 'email_overlap')
        # Case-insensitive, any 3-gram of the local part
        self.assertRule('xxMMY!@#', 'timmy@x.com', 'email_overlap')

    def test_valid_password_accepted(self):
        check_password_policy(SIGNUP_PASSWORD, 'a@x.com')
        check_password_policy('Zebra!@#9', 'timmy@x.com')

    def test_email_fragments(self):
        self.assertEqual(email_fragments('timmy@x.com'), ['tim', 'imm', 'mmy'])
        self.assertEqual(email_fragments('ab@x.com'), [])

    def test_reset_policy_only_checks_length(self):
        check_reset_password_policy('abcdef')
        with self.assertRaises(ValidationError):
            check_reset_password_policy('abcde')


class TestPasswordCredentialStore(BaseTestCase):
    """Tests for PasswordCredentialStore."""

    def test_hash_and_verify(self):
        user = User(email='p@x.com')
        self.passwords.set_password(user, SIGNUP_PASSWORD)

        self.assertNotEqual(user.password_hash, SIGNUP_PASSWORD)
        self.assertTrue(self.passwords.verify(user, SIGNUP_PASSWORD))
        self.assertFalse(self.passwords.verify(user, 'wrong!@#pass'))

    def test_set_password_replaces_hash(self):
        user = User(email='p@x.com')
        self.passwords.set_password(user, SIGNUP_PASSWORD)
        first_hash = user.password_hash

        self.passwords.set_password(user, 'Other!@#pass')

        self.assertNotEqual(user.password_hash, first_hash)
        self.assertFalse(self.passwords.verify(user, SIGNUP_PASSWORD))

    def test_missing_account_still_compares(self):
        with patch.object(self.passwords.bcrypt, 'check_password_hash',
                          wraps=self.passwords.bcrypt.check_password_hash) as check:
            self.assertFalse(self.passwords.verify(None, SIGNUP_PASSWORD))
        check.assert_called_once()


if __name__ == '__main__':
    unittest.main(verbosity=2)
