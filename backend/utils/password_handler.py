import logging

from errors import ValidationError

MIN_PASSWORD_LENGTH = 7
MIN_SPECIAL_CHARACTERS = 3
EMAIL_FRAGMENT_LENGTH = 3
RESET_MIN_PASSWORD_LENGTH = 6

SPECIAL_CHARACTERS = frozenset('!@#$%^&*()_+-=[]{};\':"\\|,.<>/?')


def email_fragments(email):
    """All 3-character substrings of the email's local part, lowercased."""
    local_part = (email or '').split('@')[0].strip().lower()
    return [local_part[i:i + EMAIL_FRAGMENT_LENGTH]
            for i in range(len(local_part) - EMAIL_FRAGMENT_LENGTH + 1)]


def count_special_characters(password):
    return sum(1 for char in password if char in SPECIAL_CHARACTERS)


def check_password_policy(password, email):
    """
    Enforce the signup password policy.

    Args:
        password: Candidate plaintext password
        email: Account email; its local part must not leak into the password

    Raises:
        ValidationError: naming the first rule that failed
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f'Password must be at least {MIN_PASSWORD_LENGTH} characters long',
            rule='min_length')

    if count_special_characters(password) < MIN_SPECIAL_CHARACTERS:
        raise ValidationError(
            f'Password must contain at least {MIN_SPECIAL_CHARACTERS} special characters',
            rule='special_characters')

    password_lower = password.lower()
    for fragment in email_fragments(email):
        if fragment in password_lower:
            raise ValidationError(
                'Password should not contain parts of your email username',
                rule='email_overlap')


def check_reset_password_policy(password):
    if len(password) < RESET_MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f'Password must be at least {RESET_MIN_PASSWORD_LENGTH} characters long',
            rule='min_length')


class PasswordCredentialStore:
    """Hashes and checks account passwords with bcrypt and a server-side pepper."""

    DUMMY_PASSWORD = 'dummy_password'

    def __init__(self, bcrypt, pepper=''):
        self.bcrypt = bcrypt
        self.pepper = pepper
        self._dummy_hash = None

    def hash_password(self, plaintext):
        return self.bcrypt.generate_password_hash(plaintext + self.pepper).decode('utf-8')

    def set_password(self, account, plaintext):
        account.password_hash = self.hash_password(plaintext)

    def verify(self, account, candidate):
        """
        Check a candidate password.
        A missing account still pays for one bcrypt comparison so unknown
        emails and wrong passwords take the same time.
        """
        if account is None or not account.password_hash:
            self.dummy_verify(candidate)
            return False
        try:
            return self.bcrypt.check_password_hash(account.password_hash, candidate + self.pepper)
        except ValueError as e:
            logging.error(f"Stored password hash for account {account.id} is unreadable: {e}")
            return False

    def dummy_verify(self, candidate):
        if self._dummy_hash is None:
            self._dummy_hash = self.hash_password(self.DUMMY_PASSWORD)
        self.bcrypt.check_password_hash(self._dummy_hash, (candidate or '') + self.pepper)
        return False
