import uuid
from datetime import datetime, timezone
from database import db


def utcnow():
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_id():
    return uuid.uuid4().hex


def normalize_email(email):
    return (email or '').strip().lower()


class User(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(32), nullable=True)
    # MFA fields
    totp_enabled = db.Column(db.Boolean, default=False, nullable=False)
    totp_secret = db.Column(db.String(32), nullable=True)  # Base32 encoded secret
    # Password reset: SHA-256 of the token and its expiry, set and cleared together
    reset_password_token = db.Column(db.String(64), nullable=True, index=True)
    reset_password_expires = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    trusted_devices = db.relationship(
        'TrustedDevice', backref='user', lazy='select', cascade='all, delete-orphan')
    pending_device = db.relationship(
        'PendingDevice', backref='user', uselist=False, cascade='all, delete-orphan')


class TrustedDevice(db.Model):
    __table_args__ = (db.UniqueConstraint('user_id', 'device_id', name='uq_trusted_device'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(32), db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    device_id = db.Column(db.String(255), nullable=False)
    browser = db.Column(db.String(255), default='Unknown')
    os = db.Column(db.String(255), default='Unknown')
    added_at = db.Column(db.DateTime, nullable=False)
    trusted_until = db.Column(db.DateTime, nullable=False)


class PendingDevice(db.Model):
    """At most one per user; a newer unrecognized signin overwrites it."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(32), db.ForeignKey('user.id', ondelete='CASCADE'),
                        nullable=False, unique=True)
    device_id = db.Column(db.String(255), nullable=False)
    token = db.Column(db.String(128), nullable=False, unique=True)
    browser = db.Column(db.String(255), default='Unknown')
    os = db.Column(db.String(255), default='Unknown')
    expires_at = db.Column(db.DateTime, nullable=False)


class ActivityLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(32), db.ForeignKey('user.id', ondelete='CASCADE'),
                        nullable=False, index=True)
    action = db.Column(db.String(100), nullable=False)
    details = db.Column(db.Text, nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    browser = db.Column(db.String(255), nullable=True)
    os = db.Column(db.String(255), nullable=True)
    device_id = db.Column(db.String(255), nullable=True)
    success = db.Column(db.Boolean, default=True)
    timestamp = db.Column(db.DateTime, default=utcnow, index=True)


class Directory(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(32), db.ForeignKey('user.id', ondelete='CASCADE'),
                        nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default='')
    icon = db.Column(db.String(64), default='folder')
    created_at = db.Column(db.DateTime, default=utcnow)


class Credential(db.Model):
    """Vault entry. encrypted_password is stored exactly as the client sent it."""
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    user_id = db.Column(db.String(32), db.ForeignKey('user.id', ondelete='CASCADE'),
                        nullable=False, index=True)
    directory_id = db.Column(db.String(32), db.ForeignKey('directory.id', ondelete='CASCADE'),
                             nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(255), default='')
    encrypted_password = db.Column(db.Text, default='')
    url = db.Column(db.String(2048), default='')
    notes = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
