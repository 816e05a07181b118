"""Forms for the message requests blueprint."""

from wtforms import StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from devlink.core.forms import ApiForm


class MessageRequestForm(ApiForm):
    """Form for sending a message request."""

    recipient_id = StringField("Recipient", validators=[DataRequired()])
    message = TextAreaField("Message", validators=[Optional(), Length(max=1000)])
