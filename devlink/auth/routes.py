"""Routes for the auth blueprint."""

from firebase_admin import auth
from flask import current_app, jsonify, request, session

from devlink.core.constants import PROFILES_COLLECTION
from devlink.services import get_db, get_presence_registry

from . import bp


@bp.route("/session_login", methods=["POST"])
def session_login():
    """
    Called by the client after a successful Firebase login.
    It receives the ID token, verifies it, and creates a server-side session.
    """
    id_token = (request.get_json(silent=True) or {}).get("idToken")
    if not id_token:
        return jsonify({"status": "error", "message": "idToken is required."}), 400
    try:
        decoded_token = auth.verify_id_token(id_token)
    except Exception as e:
        current_app.logger.error(f"Error during session login: {e}")
        return jsonify({"status": "error", "message": "Invalid token."}), 401

    uid = decoded_token["uid"]
    profile_doc = get_db().collection(PROFILES_COLLECTION).document(uid).get()
    if not profile_doc.exists:
        return jsonify({"status": "error", "message": "Profile not found."}), 404

    session["user_id"] = uid
    return jsonify({"status": "success", "uid": uid})


@bp.route("/logout", methods=["POST"])
def logout():
    """Clear the session and stop presence tracking for the user."""
    uid = session.get("user_id")
    if uid:
        get_presence_registry().stop(uid)
    session.clear()
    return jsonify({"status": "success"})
