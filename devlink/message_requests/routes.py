"""Routes for the message requests blueprint."""

from flask import g, jsonify

from devlink.auth.decorators import login_required
from devlink.services import get_request_service

from . import bp
from .forms import MessageRequestForm


@bp.route("", methods=["GET"])
@login_required
def list_requests():
    """Return the caller's pending received and sent requests."""
    service = get_request_service()
    return jsonify(
        {
            "received": service.get_received_requests(g.uid),
            "sent": service.get_sent_requests(g.uid),
        }
    )


@bp.route("", methods=["POST"])
@login_required
def send_request():
    form = MessageRequestForm().validate_or_raise()
    message_request = get_request_service().send_request(
        g.uid, form.recipient_id.data, form.message.data
    )
    return jsonify(message_request), 201


@bp.route("/<string:request_id>/accept", methods=["POST"])
@login_required
def accept_request(request_id):
    result = get_request_service().accept_request(request_id, g.uid)
    return jsonify({"status": "success", **result})


@bp.route("/<string:request_id>/reject", methods=["POST"])
@login_required
def reject_request(request_id):
    get_request_service().reject_request(request_id, g.uid)
    return jsonify({"status": "success"})


@bp.route("/<string:request_id>", methods=["DELETE"])
@login_required
def delete_request(request_id):
    get_request_service().delete_request(request_id, g.uid)
    return jsonify({"status": "success"})
