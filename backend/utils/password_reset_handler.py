import logging
from datetime import timedelta

from config import RESET_TOKEN_MINUTES
from database.models import utcnow
from errors import InvalidCodeError, NotFoundError, ValidationError
from utils.activity_handler import ActivityActions
from utils.password_handler import check_reset_password_policy
from utils.token_handler import hash_token

INVALID_RESET_TOKEN_MESSAGE = 'Invalid or expired reset token'


class PasswordResetFlow:
    """
    Password reset gated behind email ownership and a TOTP code.

    The client carries state between the three steps; the server only keeps
    the SHA-256 hash of the reset token and its expiry on the account.
    """

    def __init__(self, store, passwords, second_factor, tokens, activity,
                 clock=utcnow, token_ttl=timedelta(minutes=RESET_TOKEN_MINUTES)):
        self.store = store
        self.passwords = passwords
        self.second_factor = second_factor
        self.tokens = tokens
        self.activity = activity
        self.clock = clock
        self.token_ttl = token_ttl

    def begin_by_email(self, email):
        """
        Step 1: confirm the account exists and has a second factor to prove.
        Accounts without TOTP have no reset path.
        """
        if not email:
            raise ValidationError('Email is required', rule='required')

        account = self.store.find_by_email(email)
        if not account:
            logging.info(f"Password reset requested for non-existent email: {email}")
            raise NotFoundError('Account not found')

        if not account.totp_enabled:
            logging.info(f"Password reset requested for account without TOTP: {account.email}")
            raise ValidationError('Two-factor authentication is not enabled for this account',
                                  rule='totp_not_enabled')

        return account

    def verify_second_factor(self, email, code):
        """
        Step 2: check the TOTP code and mint a reset token.

        Returns:
            The raw reset token. Only its hash is stored.
        """
        if not email or not code:
            raise ValidationError('Email and authenticator code are required', rule='required')

        account = self.store.find_by_email(email)
        if not account or not account.totp_enabled or not account.totp_secret:
            raise NotFoundError('Account not found or TOTP not enabled')

        if not self.second_factor.verify_login(account, code):
            logging.warning(f"Password reset TOTP check failed for: {account.email}")
            raise InvalidCodeError('Invalid authenticator code')

        token = self.tokens.issue_opaque_token()
        with self.store.locked(account.id):
            account.reset_password_token = hash_token(token)
            account.reset_password_expires = self.clock() + self.token_ttl
            self.store.save()

        logging.info(f"Password reset token generated for: {account.email}")
        return token

    def validate_reset_token(self, token):
        """Find the account behind a reset token without consuming it."""
        if not token:
            raise ValidationError(INVALID_RESET_TOKEN_MESSAGE, rule='invalid_or_expired_token')

        account = self.store.find_by_reset_token_hash(hash_token(token), self.clock())
        if not account:
            logging.warning("Invalid or expired reset token attempted")
            raise ValidationError(INVALID_RESET_TOKEN_MESSAGE, rule='invalid_or_expired_token')

        return account

    def complete_reset(self, token, new_password, ip_address=None):
        """Step 3: set the new password and consume the reset token."""
        if not token or not new_password:
            raise ValidationError('Reset token and new password are required', rule='required')

        check_reset_password_policy(new_password)
        account = self.validate_reset_token(token)

        with self.store.locked(account.id):
            account = self.store.get_for_update(account.id)
            # Consumed by a concurrent reset while we waited for the lock
            if account.reset_password_token != hash_token(token):
                raise ValidationError(INVALID_RESET_TOKEN_MESSAGE, rule='invalid_or_expired_token')

            self.passwords.set_password(account, new_password)
            account.reset_password_token = None
            account.reset_password_expires = None
            self.store.save()

        self.activity.record(
            account.id, ActivityActions.PASSWORD_CHANGED,
            'Password was reset using authenticator verification',
            ip_address=ip_address, success=True)

        logging.info(f"Password reset completed for: {account.email}")
