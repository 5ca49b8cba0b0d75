"""Initialize the Flask app and its extensions."""

import datetime
import json
import os

import firebase_admin
from firebase_admin import credentials
from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from werkzeug.middleware.proxy_fix import ProxyFix

from . import db as storage
from .extensions import mail


class ISOJSONProvider(DefaultJSONProvider):
    """JSON provider that writes dates and datetimes as ISO-8601 strings."""

    @staticmethod
    def default(o):
        """Serialize dates as ISO strings, deferring everything else."""
        if isinstance(o, (datetime.date, datetime.datetime)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def _env_flag(name, default):
    return (os.environ.get(name) or default).lower() in ["true", "1", "t"]


def _init_firebase(app):
    """Initialize the Firebase Admin SDK from the first credentials found."""
    cred = None
    project_id = None

    # First, try to load from environment variable (for production)
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id")
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    # If env var fails or is not present, try loading from file (for local dev)
    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    project_id = json.load(f).get("project_id")
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    # If both methods fail, fallback to default credentials
    if not cred:
        try:
            cred = credentials.ApplicationDefault()
            project_id = app.config.get("FIREBASE_PROJECT_ID")
        except Exception as e:
            app.logger.error(
                f"Could not find any valid credentials (env, file, or default): {e}"
            )

    if cred and not firebase_admin._apps:
        options = {"projectId": project_id} if project_id else None
        try:
            firebase_admin.initialize_app(cred, options)
        except ValueError:
            # This can happen if the app is already initialized, which is fine.
            app.logger.info("Firebase app already initialized.")


def create_app(test_config=None, db=None):
    """Create and configure an instance of the Flask application.

    ``db`` is an already constructed Firestore client. When it is given (as in
    tests) Firebase is not initialized.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.json = ISOJSONProvider(app)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        MAIL_SERVER=os.environ.get("MAIL_SERVER") or "smtp.gmail.com",
        MAIL_PORT=int(os.environ.get("MAIL_PORT") or 587),
        MAIL_USE_TLS=_env_flag("MAIL_USE_TLS", "true"),
        MAIL_USE_SSL=_env_flag("MAIL_USE_SSL", "false"),
        MAIL_USERNAME=os.environ.get("MAIL_USERNAME"),
        MAIL_PASSWORD=os.environ.get("MAIL_PASSWORD"),
        MAIL_DEFAULT_SENDER=os.environ.get("MAIL_DEFAULT_SENDER")
        or "noreply@eventreg.app",
        FIREBASE_PROJECT_ID=os.environ.get("FIREBASE_PROJECT_ID"),
        STORAGE_RETRY_ATTEMPTS=int(os.environ.get("STORAGE_RETRY_ATTEMPTS") or 5),
        STORAGE_RETRY_MAX_WAIT=float(os.environ.get("STORAGE_RETRY_MAX_WAIT") or 8),
    )

    if test_config:
        app.config.update(test_config)

    # Initialize Firebase Admin SDK only when no client was handed in
    if db is None and not app.config.get("TESTING"):
        _init_firebase(app)

    # Initialize extensions
    mail.init_app(app)
    if db is not None or not app.config.get("TESTING"):
        storage.init_app(app, db)

    # Register blueprints
    from . import events as events_bp

    app.register_blueprint(events_bp.bp)

    from . import registrations as registrations_bp

    app.register_blueprint(registrations_bp.bp)

    from . import payments as payments_bp

    app.register_blueprint(payments_bp.bp)

    from . import users as users_bp

    app.register_blueprint(users_bp.bp)

    from . import families as families_bp

    app.register_blueprint(families_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    @app.route("/health")
    def health_check():
        """Perform a simple health check."""
        return jsonify({"success": True, "status": "ok"})

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
