"""
Unit tests for mfa_handler.py and password_reset_handler.py
"""
import time
import unittest
from datetime import timedelta

import pyotp

from vault_test_case import BaseTestCase, SIGNUP_EMAIL, SIGNUP_PASSWORD, wrong_code
from database.models import ActivityLog
from errors import InvalidCodeError, NotEnabledError, NotFoundError, NotSetupError, ValidationError
from utils.mfa_handler import get_totp_uri, verify_totp_code
from utils.token_handler import hash_token


class TestTotpHelpers(unittest.TestCase):

    def test_provisioning_uri_names_issuer_and_account(self):
        secret = pyotp.random_base32()
        uri = get_totp_uri('a@x.com', secret, 'CLUPSO Vault')

        self.assertTrue(uri.startswith('otpauth://totp/'))
        self.assertIn(f'secret={secret}', uri)
        self.assertIn('issuer=CLUPSO%20Vault', uri)

    def test_clock_drift_window(self):
        secret = pyotp.random_base32()
        totp = pyotp.TOTP(secret)

        self.assertTrue(verify_totp_code(secret, totp.at(time.time() - 60)))
        self.assertTrue(verify_totp_code(secret, totp.at(time.time() + 60)))
        self.assertFalse(verify_totp_code(secret, totp.at(time.time() - 180)))

    def test_missing_secret_or_code(self):
        self.assertFalse(verify_totp_code(None, '123456'))
        self.assertFalse(verify_totp_code(pyotp.random_base32(), ''))


class TestSecondFactorVerifier(BaseTestCase):

    def setUp(self):
        super().setUp()
        _, self.account = self.register()

    def test_enroll_returns_setup_material_without_enabling(self):
        setup = self.second_factor.enroll(self.account)

        self.assertEqual(self.account.totp_secret, setup['secret'])
        self.assertFalse(self.account.totp_enabled)
        self.assertIn('otpauth://totp/', setup['provisioning_uri'])
        self.assertTrue(setup['qr_code'].startswith('data:image/png;base64,'))

    def test_enroll_again_replaces_secret(self):
        first = self.second_factor.enroll(self.account)['secret']
        second = self.second_factor.enroll(self.account)['secret']

        self.assertNotEqual(first, second)
        self.assertEqual(self.account.totp_secret, second)

    def test_confirm_requires_enrollment(self):
        with self.assertRaises(NotSetupError):
            self.second_factor.confirm(self.account, '123456')

    def test_confirm_rejects_wrong_code(self):
        secret = self.second_factor.enroll(self.account)['secret']

        with self.assertRaises(InvalidCodeError):
            self.second_factor.confirm(self.account, wrong_code(secret))
        self.assertFalse(self.account.totp_enabled)

    def test_confirm_enables_totp(self):
        secret = self.enable_totp(self.account)

        self.assertTrue(self.account.totp_enabled)
        self.assertEqual(self.account.totp_secret, secret)

    def test_disable_requires_enabled(self):
        with self.assertRaises(NotEnabledError):
            self.second_factor.disable(self.account, '123456')

    def test_disable_rejects_wrong_code(self):
        secret = self.enable_totp(self.account)

        with self.assertRaises(InvalidCodeError):
            self.second_factor.disable(self.account, wrong_code(secret))
        self.assertTrue(self.account.totp_enabled)

    def test_disable_clears_secret(self):
        secret = self.enable_totp(self.account)

        self.second_factor.disable(self.account, pyotp.TOTP(secret).now())

        self.assertFalse(self.account.totp_enabled)
        self.assertIsNone(self.account.totp_secret)

    def test_verify_login_does_not_change_state(self):
        secret = self.enable_totp(self.account)

        self.assertTrue(self.second_factor.verify_login(self.account, pyotp.TOTP(secret).now()))
        self.assertFalse(self.second_factor.verify_login(self.account, wrong_code(secret)))
        self.assertTrue(self.account.totp_enabled)
        self.assertEqual(self.account.totp_secret, secret)


class TestPasswordResetFlow(BaseTestCase):

    def setUp(self):
        super().setUp()
        _, self.account = self.register()

    def start_reset(self):
        secret = self.enable_totp(self.account)
        return self.reset_flow.verify_second_factor(SIGNUP_EMAIL, pyotp.TOTP(secret).now())

    def test_begin_unknown_email(self):
        with self.assertRaises(NotFoundError):
            self.reset_flow.begin_by_email('nobody@x.com')

    def test_begin_without_totp(self):
        with self.assertRaises(ValidationError) as ctx:
            self.reset_flow.begin_by_email(SIGNUP_EMAIL)
        self.assertEqual(ctx.exception.rule, 'totp_not_enabled')

    def test_begin_with_totp(self):
        self.enable_totp(self.account)
        self.assertEqual(self.reset_flow.begin_by_email(' A@x.com').id, self.account.id)

    def test_verify_rejects_wrong_code(self):
        secret = self.enable_totp(self.account)

        with self.assertRaises(InvalidCodeError):
            self.reset_flow.verify_second_factor(SIGNUP_EMAIL, wrong_code(secret))
        self.assertIsNone(self.account.reset_password_token)

    def test_verify_without_totp(self):
        with self.assertRaises(NotFoundError):
            self.reset_flow.verify_second_factor(SIGNUP_EMAIL, '123456')

    def test_verify_stores_only_token_hash(self):
        token = self.start_reset()

        self.assertEqual(self.account.reset_password_token, hash_token(token))
        self.assertNotEqual(self.account.reset_password_token, token)
        self.assertEqual(self.account.reset_password_expires, self.clock.now + timedelta(minutes=15))

    def test_validate_reset_token(self):
        token = self.start_reset()

        self.assertEqual(self.reset_flow.validate_reset_token(token).id, self.account.id)
        with self.assertRaises(ValidationError):
            self.reset_flow.validate_reset_token('0' * 64)
        with self.assertRaises(ValidationError):
            self.reset_flow.complete_reset('0' * 64, 'brandnew')

    def test_complete_reset_changes_password_and_consumes_token(self):
        token = self.start_reset()

        self.reset_flow.complete_reset(token, 'brandnew')

        self.assertTrue(self.passwords.verify(self.account, 'brandnew'))
        self.assertFalse(self.passwords.verify(self.account, SIGNUP_PASSWORD))
        self.assertIsNone(self.account.reset_password_token)
        self.assertIsNone(self.account.reset_password_expires)
        self.assertIsNotNone(ActivityLog.query.filter_by(action='Password Changed').first())

        with self.assertRaises(ValidationError):
            self.reset_flow.complete_reset(token, 'another1')

    def test_expired_reset_token_rejected(self):
        token = self.start_reset()
        self.clock.advance(minutes=15, seconds=1)

        with self.assertRaises(ValidationError) as ctx:
            self.reset_flow.complete_reset(token, 'brandnew')
        self.assertEqual(ctx.exception.rule, 'invalid_or_expired_token')
        self.assertTrue(self.passwords.verify(self.account, SIGNUP_PASSWORD))

    def test_short_new_password_rejected(self):
        token = self.start_reset()

        with self.assertRaises(ValidationError) as ctx:
            self.reset_flow.complete_reset(token, 'abc')
        self.assertEqual(ctx.exception.rule, 'min_length')
        self.assertEqual(self.account.reset_password_token, hash_token(token))


if __name__ == '__main__':
    unittest.main(verbosity=2)
