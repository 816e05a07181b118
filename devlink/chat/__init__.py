"""Blueprint for chat threads and messages."""

from flask import Blueprint

bp = Blueprint("chat", __name__, url_prefix="/api/chats")

from . import routes  # noqa: E402, F401
