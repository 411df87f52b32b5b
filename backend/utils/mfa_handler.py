"""
Second Factor Verifier
TOTP enrollment and checks for signin and password reset.
"""
import base64
import io
import logging

import pyotp
import qrcode

from config import TOTP_ISSUER
from errors import InvalidCodeError, NotEnabledError, NotSetupError

# Accept codes from two 30-second steps before/after the current one
TOTP_VALID_WINDOW = 2
QR_BOX_SIZE = 8
QR_BORDER = 2


def get_totp_uri(email, secret, issuer_name=TOTP_ISSUER):
    """otpauth:// URI an authenticator app can import."""
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer_name)


def render_qr_data_url(payload):
    """Encode the payload as a PNG QR code wrapped in a data: URL for the frontend."""
    code = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M,
                         box_size=QR_BOX_SIZE, border=QR_BORDER)
    code.add_data(payload)
    code.make(fit=True)

    png = io.BytesIO()
    code.make_image().save(png, format='PNG')
    encoded = base64.b64encode(png.getvalue()).decode('ascii')
    return f"data:image/png;base64,{encoded}"


def verify_totp_code(secret, code, valid_window=TOTP_VALID_WINDOW):
    if not secret or not code:
        return False
    return pyotp.TOTP(secret).verify(str(code).strip(), valid_window=valid_window)


class SecondFactorVerifier:
    """TOTP enrollment, confirmation, removal and login checks."""

    def __init__(self, store, issuer_name=TOTP_ISSUER):
        self.store = store
        self.issuer_name = issuer_name

    def enroll(self, account):
        """
        Start TOTP setup for an account.
        The new secret replaces any earlier one but stays inert until confirmed.

        Returns:
            dict with the secret, provisioning URI and a QR code data URL
        """
        secret = pyotp.random_base32()
        with self.store.locked(account.id):
            account.totp_secret = secret
            self.store.save()

        uri = get_totp_uri(account.email, secret, self.issuer_name)
        logging.info(f"MFA setup initiated for user: {account.email}")

        return {
            'secret': secret,
            'provisioning_uri': uri,
            'qr_code': render_qr_data_url(uri),
        }

    def confirm(self, account, code):
        """Enable TOTP after the user proves their authenticator produces valid codes."""
        if not account.totp_secret:
            raise NotSetupError()

        if not verify_totp_code(account.totp_secret, code):
            logging.warning(f"MFA enable failed - invalid code for user: {account.email}")
            raise InvalidCodeError('Invalid TOTP code')

        with self.store.locked(account.id):
            account.totp_enabled = True
            self.store.save()

        logging.info(f"MFA enabled for user: {account.email}")
        return True

    def disable(self, account, code):
        """Disable TOTP for a user (requires valid code)."""
        if not account.totp_enabled:
            raise NotEnabledError()

        if not verify_totp_code(account.totp_secret, code):
            logging.warning(f"MFA disable failed - invalid code for user: {account.email}")
            raise InvalidCodeError('Invalid TOTP code')

        with self.store.locked(account.id):
            account.totp_secret = None
            account.totp_enabled = False
            self.store.save()

        logging.info(f"MFA disabled for user: {account.email}")

    def verify_login(self, account, code):
        """Check a login code without changing any state."""
        is_valid = verify_totp_code(account.totp_secret, code)

        if is_valid:
            logging.info(f"MFA verification successful for user: {account.email}")
        else:
            logging.warning(f"MFA verification failed for user: {account.email}")

        return is_valid
