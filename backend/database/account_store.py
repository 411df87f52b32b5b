"""
Account repository.
Wraps the SQLAlchemy handle so components receive their storage explicitly
instead of reaching for the process-wide session.
"""
import logging
import threading
from contextlib import contextmanager

from sqlalchemy import text

from database.models import User, PendingDevice, normalize_email


class AccountStore:

    def __init__(self, db):
        self.db = db
        self._locks = {}
        self._locks_guard = threading.Lock()

    @property
    def session(self):
        return self.db.session

    def ping(self):
        """Raise if the database cannot be reached."""
        self.session.execute(text('SELECT 1'))

    def find_by_email(self, email):
        return User.query.filter_by(email=normalize_email(email)).first()

    def get(self, account_id):
        if not account_id:
            return None
        return self.session.get(User, account_id)

    def get_for_update(self, account_id):
        """Reload an account with a row lock (no-op on SQLite) and fresh state."""
        return (User.query
                .filter_by(id=account_id)
                .with_for_update()
                .populate_existing()
                .first())

    def find_by_pending_token(self, token, now):
        return (User.query
                .join(PendingDevice, PendingDevice.user_id == User.id)
                .filter(PendingDevice.token == token, PendingDevice.expires_at > now)
                .first())

    def find_by_reset_token_hash(self, token_hash, now):
        return (User.query
                .filter(User.reset_password_token == token_hash,
                        User.reset_password_expires > now)
                .first())

    def add(self, obj):
        self.session.add(obj)

    def delete(self, obj):
        self.session.delete(obj)

    def save(self):
        try:
            self.session.commit()
        except Exception:
            logging.error("Failed to commit account changes, rolling back")
            self.session.rollback()
            raise

    @contextmanager
    def locked(self, account_id):
        """
        Per-account mutual exclusion for read-modify-write on devices,
        TOTP and reset material.
        An account's lock lives only while someone holds or waits for it.
        """
        with self._locks_guard:
            entry = self._locks.setdefault(account_id, [threading.RLock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[account_id]
