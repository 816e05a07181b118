"""Forms for the chat blueprint."""

from wtforms import StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from devlink.core.forms import ApiForm


class MessageForm(ApiForm):
    """Form for sending a message."""

    text = TextAreaField("Message", validators=[Optional(), Length(max=4000)])
    image_url = StringField("Image URL", validators=[Optional(), Length(max=2048)])


class EditMessageForm(ApiForm):
    """Form for editing a message."""

    text = TextAreaField("Message", validators=[DataRequired(), Length(max=4000)])


class DirectChatForm(ApiForm):
    """Form for opening a conversation with another user."""

    recipient_id = StringField("Recipient", validators=[DataRequired()])
    message = TextAreaField("Message", validators=[Optional(), Length(max=1000)])


class GroupForm(ApiForm):
    """Form for creating a group chat. Members come as a JSON list."""

    name = StringField("Group Name", validators=[DataRequired(), Length(max=100)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=500)])
