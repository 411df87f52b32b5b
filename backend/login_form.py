from flask_wtf import FlaskForm
from wtforms import PasswordField, StringField, validators


class LoginForm(FlaskForm):
    """Signin with email, password, optional TOTP code and the device fingerprint."""

    email = StringField(
        'Email',
        [
            validators.DataRequired(message='Email is required.'),
            validators.Length(max=255)
        ]
    )

    password = PasswordField(
        'Password',
        [
            validators.DataRequired(message='Password is required.')
        ]
    )

    totp_code = StringField('TOTP Code', [validators.Optional(), validators.Length(max=16)])

    device_id = StringField(
        'Device Fingerprint',
        [
            validators.DataRequired(message='Device fingerprint is required.'),
            validators.Length(max=255)
        ]
    )

    browser = StringField('Browser', [validators.Optional(), validators.Length(max=255)])
    os = StringField('Operating System', [validators.Optional(), validators.Length(max=255)])
