"""Initialize the Flask app, Firebase, and the messaging services."""

import json
import os

import firebase_admin
from firebase_admin import credentials, firestore
from flask import Flask, current_app, g, session
from werkzeug.middleware.proxy_fix import ProxyFix

from .core.constants import PROFILES_COLLECTION
from .extensions import csrf

CREDENTIALS_FILE = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
)


def _env_float(name, default):
    """Read a float setting from the environment."""
    value = os.environ.get(name)
    return float(value) if value else default


def _load_credentials(app):
    """Return ``(credential, project_id)`` from the env, a local file or ADC.

    ``FIREBASE_CREDENTIALS_JSON`` wins over ``firebase_credentials.json`` at
    the repository root. Application default credentials are the last resort
    and take their project from ``FIREBASE_PROJECT_ID``.
    """
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            return credentials.Certificate(cred_info), cred_info.get("project_id")
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    if os.path.exists(CREDENTIALS_FILE):
        try:
            with open(CREDENTIALS_FILE, "r") as f:
                cred_info = json.load(f)
            return credentials.Certificate(CREDENTIALS_FILE), cred_info.get(
                "project_id"
            )
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error loading credentials from file: {e}")

    try:
        return credentials.ApplicationDefault(), os.environ.get("FIREBASE_PROJECT_ID")
    except Exception as e:
        app.logger.error(
            f"Could not find any valid credentials (env, file, or default): {e}"
        )
        return None, None


def _init_firebase(app):
    """Initialize the Firebase Admin SDK once per process."""
    if firebase_admin._apps:
        return
    cred, project_id = _load_credentials(app)
    if cred is None:
        return

    # Chat images go to the project's default bucket unless one is named.
    storage_bucket = os.environ.get("FIREBASE_STORAGE_BUCKET")
    if not storage_bucket and project_id:
        storage_bucket = f"{project_id}.firebasestorage.app"
    options = {"storageBucket": storage_bucket}
    if project_id:
        options["projectId"] = project_id

    try:
        firebase_admin.initialize_app(cred, options)
    except ValueError:
        app.logger.info("Firebase app already initialized.")


def create_app(test_config=None, db=None):
    """Create and configure an instance of the Flask application.

    ``db`` lets callers (tests, scripts) inject a Firestore client; otherwise
    the Firebase Admin client is used.
    """
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        PRESENCE_HEARTBEAT_SECONDS=_env_float("PRESENCE_HEARTBEAT_SECONDS", 60.0),
        PRESENCE_MIN_WRITE_SECONDS=_env_float("PRESENCE_MIN_WRITE_SECONDS", 30.0),
        PRESENCE_STALE_SECONDS=_env_float("PRESENCE_STALE_SECONDS", 300.0),
        PRESENCE_RECONCILE_SECONDS=_env_float("PRESENCE_RECONCILE_SECONDS", 300.0),
        READ_RECEIPT_WINDOW=int(os.environ.get("READ_RECEIPT_WINDOW") or 50),
        DELETE_PAGE_SIZE=int(os.environ.get("DELETE_PAGE_SIZE") or 200),
        INITIAL_MESSAGE_DELAY_SECONDS=_env_float(
            "INITIAL_MESSAGE_DELAY_SECONDS", 1.0
        ),
        REPAIR_DELAY_SECONDS=_env_float("REPAIR_DELAY_SECONDS", 1.0),
        FEED_RETRY_ATTEMPTS=int(os.environ.get("FEED_RETRY_ATTEMPTS") or 3),
        FEED_RETRY_BASE_DELAY_SECONDS=_env_float(
            "FEED_RETRY_BASE_DELAY_SECONDS", 1.0
        ),
    )

    if test_config:
        app.config.update(test_config)

    # Initialize Firebase Admin SDK only if not in testing mode
    if not app.config.get("TESTING"):
        _init_firebase(app)

    csrf.init_app(app)

    if db is None:
        db = firestore.client()

    from .services import get_db, init_services

    init_services(app, db)

    # Register blueprints
    from . import auth as auth_bp

    app.register_blueprint(auth_bp.bp)

    from . import chat as chat_bp

    app.register_blueprint(chat_bp.bp)

    from . import message_requests as requests_bp

    app.register_blueprint(requests_bp.bp)

    from . import presence as presence_bp

    app.register_blueprint(presence_bp.bp)

    from . import profile as profile_bp

    app.register_blueprint(profile_bp.bp)

    from . import feed as feed_bp

    app.register_blueprint(feed_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    # The mobile client authenticates with bearer tokens, not form posts.
    for blueprint in (
        auth_bp.bp,
        chat_bp.bp,
        requests_bp.bp,
        presence_bp.bp,
        profile_bp.bp,
        feed_bp.bp,
    ):
        csrf.exempt(blueprint)

    @app.before_request
    def load_logged_in_user():
        """If a user_id is in the session, load the profile into g."""
        user_id = session.get("user_id")
        g.user = None
        if user_id is None:
            return

        try:
            profile_doc = get_db().collection(PROFILES_COLLECTION).document(user_id).get()
            if profile_doc.exists:
                g.user = profile_doc.to_dict()
                g.user["uid"] = user_id
            else:
                session.clear()
                current_app.logger.warning(
                    f"User {user_id} in session but not found in Firestore."
                )
        except Exception as e:
            current_app.logger.error(f"Error loading user from session: {e}")
            session.clear()

    @app.route("/health")
    def health_check():
        """Perform a simple health check."""
        return "OK", 200

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
