"""
Vault Handler
Directory and credential storage. Credential secrets are encrypted by the
client and stored as received.
"""
import logging
import bleach

from database.models import Credential, Directory
from errors import NotFoundError
from utils.activity_handler import ActivityActions

MAX_NAME_LENGTH = 255
MAX_ICON_LENGTH = 64


def sanitize_label(value, max_length=MAX_NAME_LENGTH):
    """
    Strip HTML from a name shown back in the vault UI.
    Secrets, usernames, URLs and notes are stored untouched.
    """
    if not value:
        return value

    return bleach.clean(value, tags=[], strip=True)[:max_length]


def serialize_directory(directory):
    return {
        'id': directory.id,
        'name': directory.name,
        'description': directory.description,
        'icon': directory.icon,
        'created_at': directory.created_at.isoformat() if directory.created_at else None,
    }


def serialize_credential(credential):
    return {
        'id': credential.id,
        'directory_id': credential.directory_id,
        'name': credential.name,
        'username': credential.username,
        'encrypted_password': credential.encrypted_password,
        'url': credential.url,
        'notes': credential.notes,
        'created_at': credential.created_at.isoformat() if credential.created_at else None,
        'updated_at': credential.updated_at.isoformat() if credential.updated_at else None,
    }


class VaultStore:

    def __init__(self, db, activity):
        self.db = db
        self.activity = activity

    def list_directories(self, user_id):
        directories = (Directory.query
                       .filter_by(user_id=user_id)
                       .order_by(Directory.created_at.desc())
                       .all())
        return [serialize_directory(directory) for directory in directories]

    def create_directory(self, user_id, name, description='', icon='', ip_address=None):
        directory = Directory(
            user_id=user_id,
            name=sanitize_label(name),
            description=sanitize_label(description or '', max_length=None),
            icon=sanitize_label(icon, MAX_ICON_LENGTH) or 'folder'
        )
        self.db.session.add(directory)
        self.db.session.commit()

        self.activity.record(user_id, ActivityActions.DIRECTORY_CREATED,
                             f'Created directory "{name}"', ip_address=ip_address)
        logging.info(f"Directory {directory.id} created for user_id: {user_id}")
        return serialize_directory(directory)

    def delete_directory(self, user_id, directory_id, ip_address=None):
        """Delete a directory together with every credential filed under it."""
        directory = Directory.query.filter_by(id=directory_id, user_id=user_id).first()
        if not directory:
            raise NotFoundError('Directory not found')

        name = directory.name
        Credential.query.filter_by(directory_id=directory_id, user_id=user_id).delete()
        self.db.session.delete(directory)
        self.db.session.commit()

        self.activity.record(user_id, ActivityActions.DIRECTORY_DELETED,
                             f'Deleted directory "{name}" and all its credentials',
                             ip_address=ip_address)
        logging.info(f"Directory {directory_id} deleted for user_id: {user_id}")

    def list_credentials(self, user_id, directory_id=None):
        query = Credential.query.filter_by(user_id=user_id)
        if directory_id:
            query = query.filter_by(directory_id=directory_id)
        credentials = query.order_by(Credential.created_at.desc()).all()
        return [serialize_credential(credential) for credential in credentials]

    def create_credential(self, user_id, directory_id, title, username='', password='',
                          url='', notes='', ip_address=None):
        directory = Directory.query.filter_by(id=directory_id, user_id=user_id).first()
        if not directory:
            raise NotFoundError('Directory not found')

        credential = Credential(
            user_id=user_id,
            directory_id=directory_id,
            name=sanitize_label(title),
            username=username or '',
            encrypted_password=password or '',
            url=url or '',
            notes=notes or ''
        )
        self.db.session.add(credential)
        self.db.session.commit()

        self.activity.record(user_id, ActivityActions.CREDENTIAL_ADDED,
                             f'Added credential "{title}"', ip_address=ip_address)
        return serialize_credential(credential)

    def delete_credential(self, user_id, credential_id, ip_address=None):
        credential = Credential.query.filter_by(id=credential_id, user_id=user_id).first()
        if not credential:
            raise NotFoundError('Credential not found')

        name = credential.name
        self.db.session.delete(credential)
        self.db.session.commit()

        self.activity.record(user_id, ActivityActions.CREDENTIAL_DELETED,
                             f'Deleted credential "{name}"', ip_address=ip_address)
