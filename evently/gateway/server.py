"""
API gateway: combines the auth, events, venues, tickets and analytics blueprints.
This is the local entrypoint for development.
"""

from flask import Flask, jsonify
from flask_cors import CORS
import os
import logging
from typing import Any, Dict, Optional
from dotenv import load_dotenv

load_dotenv()

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",  # Local frontend dev server
    "http://localhost:5050",  # Local development gateway (if served from same host)
    "http://localhost:8080",  # Local static server
]


def cors_origins() -> list:
    configured = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip() for o in configured.split(",") if o.strip()]
    return origins or DEFAULT_CORS_ORIGINS


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        config (dict, optional): Overrides applied after the environment,
            e.g. ACCOUNT_STORE_FACTORY or TESTING.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv("FLASK_SECRET_KEY")
    app.config["ACCOUNT_STORE_FACTORY"] = None
    app.config.update(config or {})

    if not app.config["SECRET_KEY"]:
        if not (app.debug or app.testing):
            raise RuntimeError("FLASK_SECRET_KEY is missing. Set it in .env")
        logging.warning("FLASK_SECRET_KEY is not set; using an insecure development key.")
        app.config["SECRET_KEY"] = "dev-only-secret"

    CORS(app, resources={
        r"/*": {
            "origins": cors_origins(),
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "expose_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # --- REGISTER BLUEPRINTS ---
    try:
        from evently.auth_service.routes import auth_bp
        from evently.auth_service.session import close_session_controller, persist_session
        from evently.events_service.routes import events_bp
        from evently.venues_service.routes import venues_bp
        from evently.tickets_service.routes import tickets_bp
        from evently.analytics_service.routes import analytics_bp
        from evently.gateway.pages import pages_bp
    except ImportError as e:
        logging.error(f"Failed to import blueprints. Module not found: {e}")
        raise

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(events_bp, url_prefix="/events")
    app.register_blueprint(venues_bp, url_prefix="/venues")
    app.register_blueprint(tickets_bp, url_prefix="/tickets")
    app.register_blueprint(analytics_bp, url_prefix="/analytics")
    app.register_blueprint(pages_bp)

    # --- SESSION CONTROLLER LIFECYCLE ---
    app.after_request(persist_session)
    app.teardown_request(close_session_controller)

    logging.info("All blueprints registered successfully.")

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "gateway_ok"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    return app


if __name__ == "__main__":
    app = create_app({"DEBUG": True})
    port = int(os.getenv("GATEWAY_PORT", 5050))
    app.run(host="0.0.0.0", port=port, debug=True)
