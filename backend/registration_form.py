from flask_wtf import FlaskForm
from wtforms import PasswordField, StringField, validators


class RegistrationForm(FlaskForm):
    """Signup input shape. Password policy is enforced by the auth state machine."""

    email = StringField(
        'Email',
        [
            validators.DataRequired(message='Email is required.'),
            validators.Email(message='Invalid email format.'),
            validators.Length(max=255)
        ]
    )

    password = PasswordField(
        'Password',
        [
            validators.DataRequired(message='Password is required.'),
            validators.Length(max=128, message='Password must be at most 128 characters long.')
        ]
    )

    phone_number = StringField('Phone Number', [validators.Optional(), validators.Length(max=32)])

    device_id = StringField(
        'Device Fingerprint',
        [
            validators.DataRequired(message='Device fingerprint is required.'),
            validators.Length(max=255)
        ]
    )

    browser = StringField('Browser', [validators.Optional(), validators.Length(max=255)])
    os = StringField('Operating System', [validators.Optional(), validators.Length(max=255)])
