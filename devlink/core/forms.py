"""Base form for the JSON API."""

from flask_wtf import FlaskForm

from devlink.errors import ValidationError


class ApiForm(FlaskForm):
    """A form fed from the JSON request body.

    Flask-WTF reads ``request.get_json()`` when the request is JSON. The API
    authenticates with bearer tokens, so CSRF tokens are not expected.
    """

    class Meta:
        csrf = False

    def validate_or_raise(self):
        """Validate and raise ``ValidationError`` with the first message."""
        if self.validate_on_submit():
            return self
        for field_name, errors in self.errors.items():
            field = getattr(self, field_name, None)
            label = field.label.text if field is not None else field_name
            raise ValidationError(f"{label}: {errors[0]}")
        raise ValidationError()
