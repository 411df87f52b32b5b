"""
Error taxonomy for the vault backend.
Every error carries the HTTP status it maps to and a message safe to return to a client.
"""


class VaultError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, **payload):
        self.message = message or self.default_message
        self.payload = payload
        super().__init__(self.message)

    def to_dict(self):
        body = {'error': self.message}
        body.update({key: value for key, value in self.payload.items() if value is not None})
        return body


class ValidationError(VaultError):
    """Bad input shape or password policy violation."""
    status_code = 400
    default_message = 'Invalid input'

    def __init__(self, message=None, rule=None):
        super().__init__(message, rule=rule)
        self.rule = rule


class ConflictError(VaultError):
    status_code = 409
    default_message = 'User already exists'


class AuthenticationError(VaultError):
    status_code = 401
    default_message = 'Authentication failed'


class InvalidCredentialsError(AuthenticationError):
    default_message = 'Invalid credentials'


class InvalidTotpError(AuthenticationError):
    default_message = 'Invalid TOTP code'


class InvalidTokenError(AuthenticationError):
    default_message = 'Invalid or expired token'


class InvalidCodeError(AuthenticationError):
    default_message = 'Invalid verification code'


class NotFoundError(VaultError):
    status_code = 404
    default_message = 'Not found'


class ExpiredOrInvalidError(VaultError):
    status_code = 400
    default_message = 'Approval link expired or invalid'


class NotSetupError(VaultError):
    status_code = 400
    default_message = 'TOTP not set up. Call /totp/setup first'


class NotEnabledError(VaultError):
    status_code = 400
    default_message = 'TOTP is not enabled'


class ConfigurationError(VaultError):
    """Missing server-side secret or setting. The message stays in the logs."""
    status_code = 500

    def to_dict(self):
        return {'error': VaultError.default_message}


class UpstreamUnavailableError(VaultError):
    status_code = 503
    default_message = 'Database unavailable'
