"""
Device Trust Ledger
Tracks the trusted devices of each account and the single device awaiting
email approval.
"""
import logging
from datetime import timedelta

from config import DEVICE_TRUST_DAYS, PENDING_DEVICE_MINUTES
from database.models import PendingDevice, TrustedDevice, utcnow
from errors import ExpiredOrInvalidError, NotFoundError

UNKNOWN_LABEL = 'Unknown'


def serialize_trusted_device(device):
    return {
        'device_id': device.device_id,
        'browser': device.browser,
        'os': device.os,
        'added_at': device.added_at.isoformat() if device.added_at else None,
        'trusted_until': device.trusted_until.isoformat() if device.trusted_until else None,
    }


class DeviceTrustLedger:

    def __init__(self, store, tokens, clock=utcnow,
                 trust_window=timedelta(days=DEVICE_TRUST_DAYS),
                 pending_window=timedelta(minutes=PENDING_DEVICE_MINUTES)):
        self.store = store
        self.tokens = tokens
        self.clock = clock
        self.trust_window = trust_window
        self.pending_window = pending_window

    def find_trusted_device(self, account, device_id):
        for device in account.trusted_devices:
            if device.device_id == device_id:
                return device
        return None

    def is_trusted(self, account, device_id):
        """True when the fingerprint is trusted and its window has not closed."""
        device = self.find_trusted_device(account, device_id)
        return device is not None and device.trusted_until > self.clock()

    def active_trusted_devices(self, account):
        """
        Trusted devices whose window is still open.
        Expired entries are filtered here on every read and left in storage.
        """
        now = self.clock()
        return [device for device in account.trusted_devices if device.trusted_until > now]

    def trust_device(self, account, device_id, browser=None, os=None):
        """
        Add a fingerprint to the trusted devices with a fresh trust window.
        A fingerprint that is already present is refreshed in place, so each
        fingerprint appears at most once per account.

        Caller commits.
        """
        now = self.clock()
        device = self.find_trusted_device(account, device_id)
        if device is None:
            device = TrustedDevice(device_id=device_id)
            account.trusted_devices.append(device)
        device.browser = browser or UNKNOWN_LABEL
        device.os = os or UNKNOWN_LABEL
        device.added_at = now
        device.trusted_until = now + self.trust_window
        return device

    def create_pending_device(self, account, device_id, browser=None, os=None):
        """
        Record an unrecognized device awaiting approval, replacing any earlier
        pending device and thereby invalidating its approval link.
        """
        with self.store.locked(account.id):
            account = self.store.get_for_update(account.id)
            pending = account.pending_device
            if pending is None:
                pending = PendingDevice()
                account.pending_device = pending
            pending.device_id = device_id
            pending.token = self.tokens.issue_opaque_token()
            pending.browser = browser or UNKNOWN_LABEL
            pending.os = os or UNKNOWN_LABEL
            pending.expires_at = self.clock() + self.pending_window
            self.store.save()

        logging.info(f"Pending device recorded for user: {account.email}, expires: {pending.expires_at}")
        return pending

    def approve(self, token):
        """
        Promote the pending device matching an unexpired approval token.

        Returns:
            (account, trusted_device)

        Raises:
            ExpiredOrInvalidError: no pending device matches, or it expired
        """
        if not token:
            raise ExpiredOrInvalidError()

        account = self.store.find_by_pending_token(token, self.clock())
        if account is None:
            logging.warning("Device approval attempted with an invalid or expired token")
            raise ExpiredOrInvalidError()

        with self.store.locked(account.id):
            account = self.store.get_for_update(account.id)
            pending = account.pending_device
            # Re-check under the lock: a newer signin may have replaced it
            if pending is None or pending.token != token or pending.expires_at <= self.clock():
                raise ExpiredOrInvalidError()

            device = self.trust_device(account, pending.device_id, pending.browser, pending.os)
            account.pending_device = None
            self.store.save()

        logging.info(f"Device approved for user: {account.email}")
        return account, device

    def revoke(self, account, device_id):
        """
        Remove a trusted device.

        Returns:
            dict with the removed device's fingerprint, browser and OS

        Raises:
            NotFoundError: no trusted device with that fingerprint
        """
        with self.store.locked(account.id):
            account = self.store.get_for_update(account.id)
            device = self.find_trusted_device(account, device_id)
            if device is None:
                raise NotFoundError('Device not found')

            removed = {
                'device_id': device.device_id,
                'browser': device.browser,
                'os': device.os,
            }
            account.trusted_devices.remove(device)
            self.store.save()

        logging.info(f"Device revoked for user {account.email}: {removed['browser']} on {removed['os']}")
        return removed
