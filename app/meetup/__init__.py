import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.meetup.config import load_config
from app.meetup.db import init_db, teardown_db_session
from app.meetup.routes import bp as routes_bp
from app.meetup.auth import api_bp as auth_api_bp, bp as auth_bp, load_current_user
from app.meetup.admin import bp as admin_bp
from app.meetup.modules.events.api import bp as events_bp
from app.meetup.modules.checklists.api import bp as checklists_bp
from app.meetup.modules.sop_templates.api import bp as sop_templates_bp
from app.meetup.modules.speakers.api import bp as speakers_bp
from app.meetup.modules.volunteers.api import bp as volunteers_bp
from app.meetup.modules.venues.api import bp as venues_bp
from app.meetup.modules.members.api import bp as members_bp
from app.meetup.modules.dashboard.api import bp as dashboard_bp
from app.meetup.modules.settings.api import bp as settings_bp
from app.meetup.modules.notifications.api import bp as notifications_bp

# Endpoints that authenticate themselves (credentials, refresh tokens, cron secret)
_CSRF_EXEMPT_PREFIXES = ("auth.", "auth_api.", "notifications.cron_")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("CRON_SECRET"):
            app.logger.warning("CRON_SECRET is not set; cron endpoints will refuse to run.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(auth_api_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(events_bp, url_prefix="/api")
    app.register_blueprint(checklists_bp, url_prefix="/api")
    app.register_blueprint(sop_templates_bp, url_prefix="/api")
    app.register_blueprint(speakers_bp, url_prefix="/api")
    app.register_blueprint(volunteers_bp, url_prefix="/api")
    app.register_blueprint(venues_bp, url_prefix="/api")
    app.register_blueprint(members_bp, url_prefix="/api")
    app.register_blueprint(dashboard_bp, url_prefix="/api")
    app.register_blueprint(settings_bp, url_prefix="/api")
    app.register_blueprint(notifications_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # CSRF protection for cookie-authenticated writes; bearer clients are exempt.
    from app.meetup.security import validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        if getattr(g, "auth_via", None) != "session":
            return None
        if (request.endpoint or "").startswith(_CSRF_EXEMPT_PREFIXES):
            return None
        if not validate_csrf(request):
            return jsonify({"error": "CSRF token missing or invalid."}), 400
        return None

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
