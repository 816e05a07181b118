"""Blueprint for profiles and follow edges."""

from flask import Blueprint

bp = Blueprint("profile", __name__, url_prefix="/api/follows")

from . import routes  # noqa: E402, F401
