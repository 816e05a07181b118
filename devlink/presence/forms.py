"""Forms for the presence blueprint."""

from wtforms import SelectField
from wtforms.validators import DataRequired

from devlink.core.constants import (
    APP_STATE_ACTIVE,
    APP_STATE_BACKGROUND,
    APP_STATE_INACTIVE,
)
from devlink.core.forms import ApiForm


class AppStateForm(ApiForm):
    """Form for reporting a foreground/background transition."""

    state = SelectField(
        "State",
        choices=[APP_STATE_ACTIVE, APP_STATE_BACKGROUND, APP_STATE_INACTIVE],
        validators=[DataRequired()],
    )
