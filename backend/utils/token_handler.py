import hashlib
import logging
import secrets

from itsdangerous import URLSafeTimedSerializer, BadData, SignatureExpired

from config import SESSION_TOKEN_MINUTES
from errors import ConfigurationError, InvalidTokenError

SESSION_TOKEN_SALT = 'vault-session'
MIN_OPAQUE_TOKEN_BYTES = 32


def hash_token(token):
    """Hash the token using SHA-256 for secure storage."""
    return hashlib.sha256(token.encode()).hexdigest()


class TokenIssuer:
    """
    Issues and verifies bearer session tokens, and mints opaque tokens for
    device approval and password reset links.

    Session tokens are stateless: they carry the account id (and the device
    fingerprint used at signin) and expire on their own after
    SESSION_TOKEN_MINUTES. There is no server-side revocation list.
    """

    def __init__(self, secret_key, max_age_minutes=SESSION_TOKEN_MINUTES):
        self.secret_key = secret_key
        self.max_age = max_age_minutes * 60

    def _serializer(self):
        if not self.secret_key:
            logging.error("SESSION_SIGNING_KEY is not configured, refusing to handle session tokens")
            raise ConfigurationError('Session signing key is not configured')
        return URLSafeTimedSerializer(self.secret_key, salt=SESSION_TOKEN_SALT)

    def ensure_configured(self):
        self._serializer()

    def issue_session(self, account_id, device_id=None):
        payload = {'account_id': account_id}
        if device_id:
            payload['device_id'] = device_id
        return self._serializer().dumps(payload)

    def read_session(self, token):
        """
        Verify a session token and return its claims.

        Raises:
            InvalidTokenError: bad signature, malformed payload or expired
            ConfigurationError: no signing key configured
        """
        serializer = self._serializer()
        if not token:
            raise InvalidTokenError('Token missing')
        try:
            claims = serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            logging.info("Expired session token presented")
            raise InvalidTokenError('Token has expired')
        except BadData:
            logging.warning("Invalid session token presented")
            raise InvalidTokenError('Invalid token')

        if not isinstance(claims, dict) or not claims.get('account_id'):
            logging.warning("Session token with invalid payload presented")
            raise InvalidTokenError('Invalid token payload')
        return claims

    def verify_session(self, token):
        return self.read_session(token)['account_id']

    @staticmethod
    def issue_opaque_token(byte_length=MIN_OPAQUE_TOKEN_BYTES):
        if byte_length < MIN_OPAQUE_TOKEN_BYTES:
            raise ValueError(f"Opaque tokens need at least {MIN_OPAQUE_TOKEN_BYTES} bytes of entropy")
        return secrets.token_hex(byte_length)

    @staticmethod
    def hash(token):
        return hash_token(token)
