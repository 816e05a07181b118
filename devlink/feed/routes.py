"""Routes for the feed blueprint."""

from flask import g, jsonify

from devlink.auth.decorators import login_required
from devlink.services import get_feed_service

from . import bp


@bp.route("/popular", methods=["GET"])
@login_required
def popular_posts():
    """Popular posts from users the caller does not follow yet."""
    posts = get_feed_service().get_popular_posts(g.uid)
    return jsonify({"posts": posts})
