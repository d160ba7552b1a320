import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session

from app.portal.config import load_config
from app.portal.db import init_db, teardown_db_session
from app.portal.routes import bp as routes_bp
from app.portal.auth import bp as auth_bp, load_current_user
from app.portal.modules.access_control.admin import bp as access_control_bp
from app.portal.modules.access_control.errors import AccessControlError, ForbiddenError

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    # CSRF protection (minimal)
    from app.portal.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout pass through
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid."}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

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
    app.register_blueprint(access_control_bp, url_prefix="/admin/access-control")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(AccessControlError)
    def _err_access_control(e: AccessControlError):  # type: ignore[no-redef]
        body = {"error": e.message}
        if isinstance(e, ForbiddenError) and e.blocked_by:
            body["blocked_by"] = e.blocked_by
        app.logger.info("%s (status=%s request_id=%s)", e.message, e.status_code, getattr(g, "request_id", None))
        return jsonify(body), e.status_code

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return jsonify({"error": getattr(e, "description", None) or "Bad request."}), 400

    @app.errorhandler(401)
    def _err_401(e):  # type: ignore[no-redef]
        return jsonify({"error": "Authentication required."}), 401

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify({"error": "Forbidden.", "missing_permission": missing}), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"error": "Not found."}), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error.", "request_id": getattr(g, "request_id", None)}), 500

    logger.info("create_app() complete; app ready to serve")

    return app
