"""Blueprint for the popular posts feed."""

from flask import Blueprint

bp = Blueprint("feed", __name__, url_prefix="/api/feed")

from . import routes  # noqa: E402, F401
