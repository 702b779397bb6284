import atexit
import os
from flask import Flask, jsonify
from flask_login import LoginManager
from dotenv import load_dotenv

from .client import DEFAULT_API_BASE_URL, ApiError, error_message
from .logger_config import configure_logging

login_manager = LoginManager()


def create_app(test_config=None):
    load_dotenv()

    app = Flask(__name__)

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["API_BASE_URL"] = os.getenv("API_BASE_URL", DEFAULT_API_BASE_URL)
    app.config["API_TIMEOUT"] = float(os.getenv("API_TIMEOUT", "10"))
    app.config["SEAT_SYNC_INTERVAL"] = float(os.getenv("SEAT_SYNC_INTERVAL", "15"))
    # passenger screens nobody polls for this long are closed
    app.config["SEAT_SCREEN_IDLE_TIMEOUT"] = float(os.getenv("SEAT_SCREEN_IDLE_TIMEOUT", "60"))
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")
    app.config["API_TRANSPORT"] = None
    # tests swap in a fake timer so polling never runs on its own
    app.config["SEAT_SYNC_TIMER"] = None
    if test_config:
        app.config.update(test_config)

    configure_logging(app.config["LOG_LEVEL"])

    login_manager.init_app(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"ok": False, "error": "Please sign in first."}), 401

    @app.errorhandler(ApiError)
    def api_error(exc):
        return jsonify({"ok": False, "error": error_message(exc)}), exc.status_code or 502

    @app.route("/health")
    def health():
        return jsonify({"status": "healthy"})

    from .state import release_api_client, persist_api_session
    app.after_request(persist_api_session)
    app.teardown_appcontext(release_api_client)

    # open passenger screens, one per browser flow
    from .passenger_details import ScreenRegistry
    screens = ScreenRegistry(idle_timeout=app.config["SEAT_SCREEN_IDLE_TIMEOUT"])
    app.extensions["passenger_screens"] = screens
    atexit.register(screens.shutdown)

    # register blueprints
    from .auth import auth_bp
    app.register_blueprint(auth_bp)

    from .search import search_bp
    app.register_blueprint(search_bp)

    from .seat_routes import bp as seats_bp
    app.register_blueprint(seats_bp)

    from .booking import booking_bp
    app.register_blueprint(booking_bp)

    from .payments import payments_bp
    app.register_blueprint(payments_bp)

    from .my_bookings import bookings_bp
    app.register_blueprint(bookings_bp)

    from . import models  # noqa: F401  registers the user loader

    return app
