"""
Authentication State Machine
Signup, signin (password -> device trust -> TOTP -> session token) and the
device approval / revocation flows that feed the trust decision.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError

from database.models import User, normalize_email, utcnow
from errors import (ConflictError, InvalidCredentialsError, InvalidTotpError,
                    NotFoundError, ValidationError)
from utils.activity_handler import ActivityActions
from utils.device_handler import UNKNOWN_LABEL, serialize_trusted_device
from utils.password_handler import check_password_policy

APPROVAL_PATH = '/api/auth/approve-device'

APPROVAL_EMAIL_SENT_MESSAGE = ('An approval email has been sent to your registered email address. '
                               'Please check your inbox.')
APPROVAL_EMAIL_FAILED_MESSAGE = 'Device approval required. Please check your email or contact support.'


class SigninOutcome(enum.Enum):
    SUCCESS = 'success'
    TOTP_REQUIRED = 'totp_required'
    DEVICE_APPROVAL_REQUIRED = 'device_approval_required'


@dataclass
class SigninResult:
    """Non-rejected end state of a signin attempt. Rejections are raised."""
    outcome: SigninOutcome
    account: User
    token: Optional[str] = None
    email_sent: Optional[bool] = None

    @property
    def message(self):
        if self.outcome is SigninOutcome.TOTP_REQUIRED:
            return 'TOTP code required'
        if self.outcome is SigninOutcome.DEVICE_APPROVAL_REQUIRED:
            return APPROVAL_EMAIL_SENT_MESSAGE if self.email_sent else APPROVAL_EMAIL_FAILED_MESSAGE
        return 'Login successful'


def public_account(account, include_totp=False):
    data = {
        'id': account.id,
        'email': account.email,
        'phone_number': account.phone_number,
    }
    if include_totp:
        data['totp_enabled'] = account.totp_enabled
    return data


def require_fields(**fields):
    """Raise ValidationError naming the first missing field."""
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f'{name} is required', rule='required')


class AuthenticationStateMachine:

    def __init__(self, store, passwords, devices, second_factor, tokens,
                 activity, notifier, backend_url, clock=utcnow):
        self.store = store
        self.passwords = passwords
        self.devices = devices
        self.second_factor = second_factor
        self.tokens = tokens
        self.activity = activity
        self.notifier = notifier
        self.backend_url = backend_url.rstrip('/')
        self.clock = clock

    def approval_link(self, token):
        return f"{self.backend_url}{APPROVAL_PATH}?{urlencode({'token': token})}"

    # ==================== SIGNUP ====================

    def register(self, email, password, device_id, phone_number=None,
                 browser=None, os=None, ip_address=None):
        """
        Create an account trusted on the signup device and open a session.

        Returns:
            (session_token, account)
        """
        require_fields(email=email, password=password)
        require_fields(device_id=device_id)

        email = normalize_email(email)
        check_password_policy(password, email)

        if self.store.find_by_email(email):
            logging.warning(f"Registration failed: Email {email} already exists")
            raise ConflictError('User already exists')

        # Signing key problems must surface before anything is written
        self.tokens.ensure_configured()

        account = User(email=email, phone_number=phone_number or None, created_at=self.clock())
        self.passwords.set_password(account, password)
        self.devices.trust_device(account, device_id, browser, os)
        self.store.add(account)
        try:
            self.store.save()
        except IntegrityError:
            # A concurrent signup took the email after our lookup
            logging.warning(f"Registration failed: Email {email} was registered concurrently")
            raise ConflictError('User already exists')

        logging.info(f"User {email} registered successfully")

        self.activity.record(
            account.id, ActivityActions.ACCOUNT_CREATED, 'New account created successfully',
            ip_address=ip_address, browser=browser or UNKNOWN_LABEL, os=os or UNKNOWN_LABEL,
            device_id=device_id, success=True)

        token = self.tokens.issue_session(account.id, device_id=device_id)
        return token, account

    # ==================== SIGNIN ====================

    def authenticate(self, email, password, device_id, totp_code=None,
                     browser=None, os=None, ip_address=None):
        """
        Run one signin attempt through the credential, device and TOTP checks.

        Returns:
            SigninResult with outcome SUCCESS, TOTP_REQUIRED or DEVICE_APPROVAL_REQUIRED

        Raises:
            ValidationError: missing email, password or device fingerprint
            InvalidCredentialsError: unknown email or wrong password
            InvalidTotpError: TOTP enabled and the supplied code is wrong
        """
        require_fields(email=email, password=password)
        require_fields(device_id=device_id)

        browser = browser or UNKNOWN_LABEL
        os = os or UNKNOWN_LABEL
        totp_code = (totp_code or '').strip()

        # CredentialsChecked
        account = self.store.find_by_email(email)
        if not self.passwords.verify(account, password):
            if account is not None:
                logging.warning(f"Failed login attempt for: {account.email}")
                self.activity.record(
                    account.id, ActivityActions.LOGIN_FAILED, 'Invalid password entered',
                    ip_address=ip_address, browser=browser, os=os,
                    device_id=device_id, success=False)
            else:
                logging.warning(f"Login attempt for non-existent email: {normalize_email(email)}")
            raise InvalidCredentialsError()

        # DeviceChecked
        if not self.devices.is_trusted(account, device_id):
            return self._require_device_approval(account, device_id, browser, os)

        # SecondFactorChecked
        if account.totp_enabled:
            if not totp_code:
                logging.info(f"MFA required for user: {account.email}")
                return SigninResult(SigninOutcome.TOTP_REQUIRED, account)

            if not self.second_factor.verify_login(account, totp_code):
                self.activity.record(
                    account.id, ActivityActions.TOTP_FAILED, 'Invalid TOTP code entered',
                    ip_address=ip_address, browser=browser, os=os,
                    device_id=device_id, success=False)
                raise InvalidTotpError()

        # Issued
        token = self.tokens.issue_session(account.id, device_id=device_id)

        self.activity.record(
            account.id, ActivityActions.LOGIN_SUCCESSFUL, 'Logged in successfully',
            ip_address=ip_address, browser=browser, os=os,
            device_id=device_id, success=True)

        logging.info(f"User logged in successfully: {account.email}")
        return SigninResult(SigninOutcome.SUCCESS, account, token=token)

    def _require_device_approval(self, account, device_id, browser, os):
        pending = self.devices.create_pending_device(account, device_id, browser, os)
        logging.info(f"Device approval required for user: {account.email}, device: {device_id}")

        email_sent = self._notify(
            self.notifier.send_device_approval_email,
            account.email, self.approval_link(pending.token), browser, os)

        return SigninResult(SigninOutcome.DEVICE_APPROVAL_REQUIRED, account, email_sent=email_sent)

    # ==================== DEVICES ====================

    def approve_device(self, token, ip_address=None):
        """Approve the pending device behind an emailed link. Single use."""
        account, device = self.devices.approve(token)

        self.activity.record(
            account.id, ActivityActions.DEVICE_APPROVED,
            'New device approved and added to trusted devices',
            ip_address=ip_address, browser=device.browser, os=device.os,
            device_id=device.device_id, success=True)

        return device

    def revoke_device(self, account_id, device_id, current_device_id=None, ip_address=None):
        """
        Remove a trusted device.

        Returns:
            True when the revoked fingerprint is the caller's own device, so the
            client can log itself out. Sessions already issued stay valid
            until they expire.
        """
        account = self._get_account(account_id)
        removed = self.devices.revoke(account, device_id)

        self._notify(self.notifier.send_device_revoked_email,
                     account.email, removed['browser'], removed['os'])

        self.activity.record(
            account.id, ActivityActions.DEVICE_REVOKED, 'Trusted device was removed',
            ip_address=ip_address, browser=removed['browser'], os=removed['os'],
            device_id=removed['device_id'], success=True)

        return current_device_id is not None and removed['device_id'] == current_device_id

    def list_trusted_devices(self, account_id):
        account = self._get_account(account_id)
        return [serialize_trusted_device(device)
                for device in self.devices.active_trusted_devices(account)]

    def _notify(self, send, *args):
        try:
            return bool(send(*args))
        except Exception as e:
            logging.error(f"Notification {getattr(send, '__name__', send)} failed: {e}")
            return False

    def _get_account(self, account_id):
        account = self.store.get(account_id)
        if account is None:
            raise NotFoundError('User not found')
        return account
