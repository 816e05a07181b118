"""Blueprint for presence sessions and status lookups."""

from flask import Blueprint

bp = Blueprint("presence", __name__, url_prefix="/api/presence")

from . import routes  # noqa: E402, F401
