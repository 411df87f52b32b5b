from flask_wtf import FlaskForm
from wtforms import PasswordField, StringField, validators


class PasswordResetEmailForm(FlaskForm):
    """Step 1: identify the account."""

    email = StringField(
        'Email',
        [
            validators.DataRequired(message='Email is required.'),
            validators.Email(message='Invalid email format.')
        ]
    )


class PasswordResetTotpForm(FlaskForm):
    """Step 2: prove the second factor."""

    email = StringField(
        'Email',
        [
            validators.DataRequired(message='Email is required.'),
            validators.Email(message='Invalid email format.')
        ]
    )

    totp_code = StringField(
        'Authenticator Code',
        [
            validators.DataRequired(message='Authenticator code is required.')
        ]
    )


class PasswordResetConfirmForm(FlaskForm):
    """Step 3: set a new password with the reset token."""

    reset_token = StringField(
        'Reset Token',
        [
            validators.DataRequired(message='Reset token is required.')
        ]
    )

    password = PasswordField(
        'Password',
        [
            validators.DataRequired(message='Password is required.'),
            validators.Length(max=128, message='Password must be at most 128 characters long.')
        ]
    )
