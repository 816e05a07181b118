"""Routes for the chat blueprint."""

from flask import g, jsonify, request

from devlink.auth.decorators import login_required
from devlink.errors import ValidationError
from devlink.services import get_aggregator, get_chat_service, get_request_service

from . import bp
from .forms import DirectChatForm, EditMessageForm, GroupForm, MessageForm

MAX_PAGE_SIZE = 200


@bp.route("", methods=["GET"])
@login_required
def list_conversations():
    """Return the caller's conversation list."""
    conversations = get_aggregator().load(g.uid)
    return jsonify({"conversations": conversations})


@bp.route("/direct", methods=["POST"])
@login_required
def start_direct_chat():
    """Open a direct chat, or send a message request when consent is needed."""
    form = DirectChatForm().validate_or_raise()
    result = get_request_service().start_conversation(
        g.uid, form.recipient_id.data, form.message.data
    )
    return jsonify(result), 201


@bp.route("/group", methods=["POST"])
@login_required
def create_group():
    form = GroupForm().validate_or_raise()
    member_ids = (request.get_json(silent=True) or {}).get("member_ids") or []
    if not isinstance(member_ids, list):
        raise ValidationError("member_ids must be a list.")
    thread = get_chat_service().create_group_thread(
        g.uid, member_ids, form.name.data, form.description.data or ""
    )
    return jsonify(thread), 201


@bp.route("/<string:thread_id>", methods=["GET"])
@login_required
def view_thread(thread_id):
    thread = get_chat_service().require_participant(thread_id, g.uid)
    return jsonify(thread)


@bp.route("/<string:thread_id>", methods=["DELETE"])
@login_required
def delete_thread(thread_id):
    """Delete a thread and all of its messages."""
    chat_service = get_chat_service()
    chat_service.require_participant(thread_id, g.uid)
    deleted = chat_service.delete_thread_permanently(thread_id)
    return jsonify({"status": "success", "deletedMessages": deleted})


@bp.route("/<string:thread_id>/messages", methods=["GET"])
@login_required
def list_messages(thread_id):
    limit = request.args.get("limit", 50, type=int)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    messages = get_chat_service().get_messages(thread_id, g.uid, limit=limit)
    return jsonify({"messages": messages})


@bp.route("/<string:thread_id>/messages", methods=["POST"])
@login_required
def send_message(thread_id):
    form = MessageForm().validate_or_raise()
    message = get_chat_service().send_message(
        thread_id, g.uid, form.text.data, form.image_url.data or None
    )
    return jsonify(message), 201


@bp.route("/<string:thread_id>/images", methods=["POST"])
@login_required
def send_image(thread_id):
    """Upload an image and send it as a message."""
    image_file = request.files.get("image")
    if image_file is None or not image_file.filename:
        raise ValidationError("An image file is required.")
    chat_service = get_chat_service()
    image_url = chat_service.upload_image(thread_id, g.uid, image_file)
    message = chat_service.send_message(
        thread_id, g.uid, request.form.get("text"), image_url
    )
    return jsonify(message), 201


@bp.route("/<string:thread_id>/read", methods=["POST"])
@login_required
def mark_read(thread_id):
    """Mark the latest messages of a thread as delivered and read."""
    chat_service = get_chat_service()
    chat_service.require_participant(thread_id, g.uid)
    delivered = chat_service.mark_delivered(thread_id, g.uid)
    read = chat_service.mark_read(thread_id, g.uid)
    return jsonify({"delivered": delivered, "read": read})


@bp.route("/<string:thread_id>/messages/<string:message_id>", methods=["PATCH"])
@login_required
def edit_message(thread_id, message_id):
    form = EditMessageForm().validate_or_raise()
    message = get_chat_service().edit_message(
        thread_id, message_id, g.uid, form.text.data
    )
    return jsonify(message)


@bp.route("/<string:thread_id>/messages/<string:message_id>", methods=["DELETE"])
@login_required
def delete_message(thread_id, message_id):
    """Delete a message for the caller, or for everyone with ?scope=everyone."""
    scope = request.args.get("scope", "me")
    chat_service = get_chat_service()
    if scope == "everyone":
        chat_service.delete_message_for_everyone(thread_id, message_id, g.uid)
    elif scope == "me":
        chat_service.delete_message_for_user(thread_id, message_id, g.uid)
    else:
        raise ValidationError("scope must be 'me' or 'everyone'.")
    return jsonify({"status": "success"})
