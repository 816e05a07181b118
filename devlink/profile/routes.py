"""Routes for follow edges."""

from flask import current_app, g, jsonify

from devlink.auth.decorators import login_required
from devlink.errors import NotFoundError
from devlink.services import get_db

from . import bp
from .services import follow_user, get_profile, unfollow_user


@bp.route("/<string:user_id>", methods=["POST"])
@login_required
def follow(user_id):
    """Follow another user."""
    db = get_db()
    if get_profile(db, user_id) is None:
        raise NotFoundError("User not found.")
    follow_user(db, g.uid, user_id)
    current_app.logger.info(f"User {g.uid} followed {user_id}")
    return jsonify({"status": "success"})


@bp.route("/<string:user_id>", methods=["DELETE"])
@login_required
def unfollow(user_id):
    """Unfollow a user."""
    unfollow_user(get_db(), g.uid, user_id)
    return jsonify({"status": "success"})
