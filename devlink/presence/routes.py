"""Routes for the presence blueprint."""

from flask import g, jsonify

from devlink.auth.decorators import login_required
from devlink.services import get_presence_registry

from . import bp
from .forms import AppStateForm


@bp.route("/session", methods=["POST"])
@login_required
def start_session():
    """Start presence tracking for the caller."""
    registry = get_presence_registry()
    registry.start(g.uid)
    return jsonify(registry.status(g.uid))


@bp.route("/session", methods=["DELETE"])
@login_required
def stop_session():
    get_presence_registry().stop(g.uid)
    return jsonify({"status": "success"})


@bp.route("/state", methods=["POST"])
@login_required
def report_app_state():
    """Record that the caller's app moved to the foreground or background."""
    form = AppStateForm().validate_or_raise()
    get_presence_registry().set_app_state(g.uid, form.state.data)
    return jsonify({"status": "success", "state": form.state.data})


@bp.route("/<string:user_id>", methods=["GET"])
@login_required
def view_presence(user_id):
    return jsonify(get_presence_registry().status(user_id))
