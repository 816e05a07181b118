"""Message requests blueprint."""

from flask import Blueprint

bp = Blueprint("message_requests", __name__, url_prefix="/api/requests")

from . import routes  # noqa: E402, F401
