from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField, validators


class DirectoryForm(FlaskForm):

    name = StringField(
        'Name',
        [
            validators.DataRequired(message='Directory name is required.'),
            validators.Length(max=255)
        ]
    )

    description = TextAreaField('Description', [validators.Optional()])
    icon = StringField('Icon', [validators.Optional(), validators.Length(max=64)])


class CredentialForm(FlaskForm):

    directory_id = StringField(
        'Directory',
        [
            validators.DataRequired(message='Directory is required.')
        ]
    )

    title = StringField(
        'Title',
        [
            validators.DataRequired(message='Credential title is required.'),
            validators.Length(max=255)
        ]
    )

    username = StringField('Username', [validators.Optional(), validators.Length(max=255)])
    # Client-side encrypted; stored as received
    password = StringField('Password', [validators.Optional()])
    url = StringField('URL', [validators.Optional(), validators.Length(max=2048)])
    notes = TextAreaField('Notes', [validators.Optional()])
