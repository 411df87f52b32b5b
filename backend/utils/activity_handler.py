"""
Activity Log Handler
Records account activity for the user-facing audit trail.
"""
import logging

from config import ACTIVITY_LIST_LIMIT
from database.models import ActivityLog, utcnow


def get_client_ip(req):
    """Client IP, honouring proxy headers before the socket address."""
    forwarded = req.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()

    real_ip = req.headers.get('X-Real-IP')
    if real_ip:
        return real_ip.strip()

    return req.remote_addr or 'Unknown'


def serialize_activity(log):
    return {
        'id': log.id,
        'action': log.action,
        'details': log.details,
        'ip_address': log.ip_address,
        'browser': log.browser,
        'os': log.os,
        'device_id': log.device_id,
        'success': log.success,
        'timestamp': log.timestamp.isoformat() if log.timestamp else None,
    }


class ActivityActions:
    ACCOUNT_CREATED = 'Account Created'
    LOGIN_SUCCESSFUL = 'Login Successful'
    LOGIN_FAILED = 'Failed Login Attempt'
    TOTP_FAILED = 'Failed 2FA Verification'
    LOGOUT = 'Logout'
    DEVICE_APPROVED = 'Device Approved'
    DEVICE_REVOKED = 'Device Revoked'
    PASSWORD_CHANGED = 'Password Changed'

    DIRECTORY_CREATED = 'Directory Created'
    DIRECTORY_DELETED = 'Directory Deleted'
    CREDENTIAL_ADDED = 'Credential Added'
    CREDENTIAL_DELETED = 'Credential Deleted'


class ActivityLogger:

    def __init__(self, db, clock=utcnow):
        self.db = db
        self.clock = clock

    def record(self, user_id, action, details, ip_address=None, browser=None,
               os=None, device_id=None, success=True, timestamp=None):
        """
        Append an activity record.
        Failures are logged and swallowed; callers commit their own changes first.
        """
        try:
            activity = ActivityLog(
                user_id=user_id,
                action=action,
                details=details,
                ip_address=ip_address,
                browser=browser,
                os=os,
                device_id=device_id,
                success=success,
                timestamp=timestamp or self.clock()
            )
            self.db.session.add(activity)
            self.db.session.commit()

            logging.info(f"ACTIVITY: user={user_id} action={action} success={success} ip={ip_address}")
        except Exception as e:
            logging.error(f"Failed to log activity: {e}")
            self.db.session.rollback()

    def list_for_user(self, user_id, limit=ACTIVITY_LIST_LIMIT):
        """Newest activity first."""
        logs = (ActivityLog.query
                .filter_by(user_id=user_id)
                .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
                .limit(limit)
                .all())
        return [serialize_activity(log) for log in logs]
