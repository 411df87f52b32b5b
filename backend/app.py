import logging
import os
from flask import Flask, g, jsonify, render_template, request
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import HTTPException

from config import (BACKEND_URL, BCRYPT_LOG_ROUNDS, DATABASE_URI, FRONTEND_URL,
                    MAILERSEND_API_KEY, MAILERSEND_FROM_EMAIL, PEPPER, RATELIMIT_ENABLED,
                    SECRET_KEY, SESSION_SIGNING_KEY)
from database import db
from database.account_store import AccountStore
from errors import (ConfigurationError, ExpiredOrInvalidError, UpstreamUnavailableError,
                    ValidationError, VaultError)
from login_form import LoginForm
from password_reset_form import PasswordResetConfirmForm, PasswordResetEmailForm, PasswordResetTotpForm
from registration_form import RegistrationForm
from utils.activity_handler import ActivityActions, ActivityLogger, get_client_ip
from utils.auth_handler import AuthenticationStateMachine, SigninOutcome, public_account
from utils.device_handler import DeviceTrustLedger
from utils.email_handler import EmailNotifier
from utils.mfa_handler import SecondFactorVerifier
from utils.password_handler import PasswordCredentialStore
from utils.password_reset_handler import PasswordResetFlow
from utils.session_handler import require_session
from utils.token_handler import TokenIssuer
from utils.vault_handler import VaultStore
from vault_form import CredentialForm, DirectoryForm

logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(message)s')

app = Flask(__name__)
app.config.update({
    'SQLALCHEMY_DATABASE_URI': DATABASE_URI,
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SECRET_KEY': SECRET_KEY,
    'BCRYPT_LOG_ROUNDS': BCRYPT_LOG_ROUNDS,
    'BCRYPT_HANDLE_LONG_PASSWORDS': True,
    'RATELIMIT_ENABLED': RATELIMIT_ENABLED,
})

db.init_app(app)
bcrypt = Bcrypt(app)
CORS(app,
     resources={r"/*": {"origins": [origin.strip() for origin in FRONTEND_URL.split(',')]}},
     supports_credentials=True,
     allow_headers=["Content-Type", "Authorization"],
     methods=["GET", "POST", "DELETE", "OPTIONS"])
limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=["1000 per day", "200 per hour"]
)

accounts = AccountStore(db)
tokens = TokenIssuer(SESSION_SIGNING_KEY)
activity = ActivityLogger(db)
notifier = EmailNotifier(MAILERSEND_API_KEY, MAILERSEND_FROM_EMAIL)
passwords = PasswordCredentialStore(bcrypt, pepper=PEPPER)
devices = DeviceTrustLedger(accounts, tokens)
second_factor = SecondFactorVerifier(accounts)
auth = AuthenticationStateMachine(accounts, passwords, devices, second_factor, tokens,
                                  activity, notifier, BACKEND_URL)
password_reset = PasswordResetFlow(accounts, passwords, second_factor, tokens, activity)
vault = VaultStore(db, activity)

login_required = require_session(tokens, accounts)


def get_json_data():
    return request.get_json(silent=True) or {}


def validate_form(form_class, data):
    """Validate JSON input with a WTForms form, raising ValidationError with the first message."""
    form_data = MultiDict({
        key: str(value) for key, value in data.items()
        if value is not None and not isinstance(value, (dict, list))
    })
    form = form_class(formdata=form_data, meta={'csrf': False})

    if form.validate():
        return form

    logging.error(f"{form_class.__name__} validation failed: {form.errors}")
    for field, errors in form.errors.items():
        if errors:
            raise ValidationError(errors[0], rule=field)
    raise ValidationError()


@app.before_request
def check_database_connection():
    """Reject API requests before any business logic when the database is unreachable."""
    if not request.path.startswith('/api/'):
        return None
    try:
        accounts.ping()
    except SQLAlchemyError as e:
        logging.warning(f"Database not reachable, request to: {request.path} ({e})")
        db.session.rollback()
        raise UpstreamUnavailableError()
    return None


# ==================== ROUTES ====================


@app.route('/')
def health_check():
    """Simple health check endpoint to verify API is working."""
    return jsonify({
        'status': 'ok',
        'message': 'API is running',
        'service': 'CLUPSO Vault Backend'
    }), 200


@app.route('/health')
def database_health():
    try:
        accounts.ping()
        database_status = 'connected'
    except SQLAlchemyError:
        db.session.rollback()
        database_status = 'disconnected'

    return jsonify({
        'status': 'healthy',
        'environment': os.getenv('FLASK_ENV', 'development'),
        'database': database_status
    }), 200


# ==================== AUTH ROUTES ====================

@app.route('/api/auth/signup', methods=['POST'])
@limiter.limit("5 per minute")
def signup():
    logging.info("Signup route accessed")
    form = validate_form(RegistrationForm, get_json_data())

    token, user = auth.register(
        email=form.email.data,
        password=form.password.data,
        device_id=form.device_id.data,
        phone_number=form.phone_number.data,
        browser=form.browser.data,
        os=form.os.data,
        ip_address=get_client_ip(request)
    )

    return jsonify({
        'message': 'User created successfully',
        'token': token,
        'user': public_account(user)
    }), 201


@app.route('/api/auth/signin', methods=['POST'])
@limiter.limit("10 per minute")
def signin():
    logging.info("Signin route accessed")
    form = validate_form(LoginForm, get_json_data())

    result = auth.authenticate(
        email=form.email.data,
        password=form.password.data,
        device_id=form.device_id.data,
        totp_code=form.totp_code.data,
        browser=form.browser.data,
        os=form.os.data,
        ip_address=get_client_ip(request)
    )

    if result.outcome is SigninOutcome.DEVICE_APPROVAL_REQUIRED:
        return jsonify({
            'error': 'Device not recognized',
            'message': result.message,
            'requiresApproval': True
        }), 403

    if result.outcome is SigninOutcome.TOTP_REQUIRED:
        return jsonify({
            'requireTotp': True,
            'message': result.message
        }), 200

    return jsonify({
        'message': result.message,
        'token': result.token,
        'user': public_account(result.account, include_totp=True)
    }), 200


@app.route('/api/auth/user', methods=['GET'])
@login_required
def get_current_user_info():
    """Get current logged in user info."""
    return jsonify(public_account(g.current_user, include_totp=True)), 200


@app.route('/api/auth/logout', methods=['POST'])
@login_required
def logout():
    data = get_json_data()
    activity.record(
        g.current_user.id, ActivityActions.LOGOUT, 'User logged out',
        ip_address=get_client_ip(request),
        browser=data.get('browser'),
        os=data.get('os'),
        device_id=data.get('device_id') or g.session_claims.get('device_id'),
        success=True
    )
    return jsonify({'message': 'Logged out successfully'}), 200


# ==================== TOTP ROUTES ====================

@app.route('/api/auth/totp/setup', methods=['POST'])
@login_required
def totp_setup():
    """Start TOTP setup - returns secret and QR code."""
    enrollment = second_factor.enroll(g.current_user)
    return jsonify({
        'secret': enrollment['secret'],
        'provisioning_uri': enrollment['provisioning_uri'],
        'qr_code': enrollment['qr_code'],
        'message': 'Scan this QR code with your authenticator app'
    }), 200


@app.route('/api/auth/totp/verify', methods=['POST'])
@login_required
def totp_verify():
    """Enable TOTP after verifying a code."""
    code = get_json_data().get('code')
    if not code:
        raise ValidationError('TOTP code is required', rule='code')

    second_factor.confirm(g.current_user, str(code))
    return jsonify({'message': 'TOTP enabled successfully', 'totp_enabled': True}), 200


@app.route('/api/auth/totp/disable', methods=['POST'])
@login_required
def totp_disable():
    """Disable TOTP (requires valid code)."""
    code = get_json_data().get('code')
    if g.current_user.totp_enabled and not code:
        raise ValidationError('TOTP code is required to disable', rule='code')

    second_factor.disable(g.current_user, str(code or ''))
    return jsonify({'message': 'TOTP disabled successfully', 'totp_enabled': False}), 200


# ==================== PASSWORD RESET ROUTES ====================

@app.route('/api/auth/forgot-password/verify-email', methods=['POST'])
@limiter.limit("5 per minute")
def forgot_password_verify_email():
    form = validate_form(PasswordResetEmailForm, get_json_data())
    password_reset.begin_by_email(form.email.data)
    return jsonify({
        'message': 'Email verified. Please provide your authenticator code.',
        'totp_enabled': True
    }), 200


@app.route('/api/auth/forgot-password/verify-totp', methods=['POST'])
@limiter.limit("5 per minute")
def forgot_password_verify_totp():
    form = validate_form(PasswordResetTotpForm, get_json_data())
    reset_token = password_reset.verify_second_factor(form.email.data, form.totp_code.data)
    return jsonify({
        'message': 'Authenticator code verified',
        'reset_token': reset_token
    }), 200


@app.route('/api/auth/forgot-password/validate', methods=['POST'])
def forgot_password_validate():
    """Validate a reset token without using it."""
    token = get_json_data().get('reset_token')
    try:
        user = password_reset.validate_reset_token(token)
    except ValidationError:
        return jsonify({'valid': False}), 200
    return jsonify({'valid': True, 'email': user.email}), 200


@app.route('/api/auth/forgot-password/reset', methods=['POST'])
@limiter.limit("5 per minute")
def forgot_password_reset():
    form = validate_form(PasswordResetConfirmForm, get_json_data())
    password_reset.complete_reset(form.reset_token.data, form.password.data,
                                  ip_address=get_client_ip(request))
    return jsonify({'message': 'Password has been reset successfully'}), 200


# ==================== DEVICE ROUTES ====================

@app.route('/api/auth/approve-device', methods=['GET'])
def approve_device():
    logging.info("Device approval route accessed")
    try:
        device = auth.approve_device(request.args.get('token'), ip_address=get_client_ip(request))
    except ExpiredOrInvalidError:
        return render_template('approval_invalid.html'), 400

    return render_template('device_approved.html', browser=device.browser, os=device.os), 200


@app.route('/api/auth/trusted-devices', methods=['GET'])
@login_required
def list_trusted_devices():
    return jsonify(auth.list_trusted_devices(g.current_user.id)), 200


@app.route('/api/auth/trusted-devices/<device_id>', methods=['DELETE'])
@login_required
def revoke_trusted_device(device_id):
    # The fingerprint bound into the session token wins over the client's claim
    current_device_id = g.session_claims.get('device_id') or get_json_data().get('current_device_id')

    was_current_device = auth.revoke_device(
        g.current_user.id, device_id,
        current_device_id=current_device_id,
        ip_address=get_client_ip(request)
    )
    return jsonify({
        'message': 'Device revoked successfully',
        'wasCurrentDevice': was_current_device
    }), 200


# ==================== VAULT ROUTES ====================

@app.route('/api/vault/directories', methods=['GET'])
@login_required
def list_directories():
    return jsonify(vault.list_directories(g.current_user.id)), 200


@app.route('/api/vault/directories', methods=['POST'])
@login_required
def create_directory():
    form = validate_form(DirectoryForm, get_json_data())
    directory = vault.create_directory(
        g.current_user.id, form.name.data, form.description.data, form.icon.data,
        ip_address=get_client_ip(request))
    return jsonify(directory), 201


@app.route('/api/vault/directories/<directory_id>', methods=['DELETE'])
@login_required
def delete_directory(directory_id):
    vault.delete_directory(g.current_user.id, directory_id, ip_address=get_client_ip(request))
    return jsonify({'message': 'Directory deleted successfully'}), 200


@app.route('/api/vault/credentials', methods=['GET'])
@login_required
def list_credentials():
    return jsonify(vault.list_credentials(g.current_user.id, request.args.get('directory_id'))), 200


@app.route('/api/vault/credentials', methods=['POST'])
@login_required
def create_credential():
    form = validate_form(CredentialForm, get_json_data())
    credential = vault.create_credential(
        g.current_user.id,
        form.directory_id.data,
        form.title.data,
        username=form.username.data,
        password=form.password.data,
        url=form.url.data,
        notes=form.notes.data,
        ip_address=get_client_ip(request)
    )
    return jsonify(credential), 201


@app.route('/api/vault/credentials/<credential_id>', methods=['DELETE'])
@login_required
def delete_credential(credential_id):
    vault.delete_credential(g.current_user.id, credential_id, ip_address=get_client_ip(request))
    return jsonify({'message': 'Credential deleted successfully'}), 200


@app.route('/api/vault/activity', methods=['GET'])
@login_required
def list_activity():
    return jsonify(activity.list_for_user(g.current_user.id)), 200


# ==================== ERROR HANDLERS ====================

@app.errorhandler(VaultError)
def vault_error(error):
    if isinstance(error, ConfigurationError):
        logging.error(f"Configuration error: {error.message}")
    else:
        logging.warning(f"{type(error).__name__} on {request.path}: {error.message}")
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(OperationalError)
def database_error(error):
    logging.error(f"Database error on {request.path}: {error}")
    db.session.rollback()
    return jsonify(UpstreamUnavailableError().to_dict()), 503


@app.errorhandler(429)
def ratelimit_handler(e):
    logging.warning(f"Rate limit exceeded: {e.description}")
    return jsonify({'error': 'Too many requests. Please try again later.'}), 429


@app.errorhandler(HTTPException)
def http_error(error):
    logging.warning(f"{error.code} error encountered on {request.path}")
    return jsonify({'error': error.name}), error.code


@app.errorhandler(Exception)
def unexpected_error(error):
    logging.exception(f"Unhandled error on {request.path}")
    db.session.rollback()
    return jsonify({'error': 'Internal server error'}), 500


if __name__ == '__main__':
    with app.app_context():
        logging.info("Creating database tables")
        db.create_all()
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() in ['true', '1', 't']
    logging.info(
        f"Starting Flask app in {'debug' if debug_mode else 'production'} mode")
    app.run(debug=debug_mode)
