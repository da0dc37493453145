import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from lamusic_importer.config import Config
from lamusic_importer.contexts.ai.application.gateway import AiGateway, AiSettings
from lamusic_importer.contexts.ai.application.service import AiService
from lamusic_importer.db import close_db, get_db, init_db, seed_default_categories
from lamusic_importer.db_migrations import register_db_cli
from lamusic_importer.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
    prometheus_metrics_text,
)
from lamusic_importer.security import apply_security_headers, enforce_rate_limit


def create_app(config_class=Config, ai_gateway: AiGateway | None = None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_security(app)
    _register_auth(app)
    _register_ai(app, ai_gateway)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT ignorado fora de development.")
        return

    with app.app_context():
        init_db()
        seed_default_categories(get_db())


def _register_ai(app: Flask, ai_gateway: AiGateway | None) -> None:
    gateway = ai_gateway or AiGateway(AiSettings.from_config(app.config))
    if bool(app.config.get("AI_ENABLED", True)) and (ai_gateway is not None or gateway.settings.api_key):
        gateway.initialize()
    else:
        app.logger.warning("ai_gateway_not_initialized", extra={"model": gateway.settings.model_name})
    app.extensions["lamusic_ai_gateway"] = gateway
    app.extensions["lamusic_ai_service"] = AiService(gateway)


def _register_blueprints(app: Flask) -> None:
    from lamusic_importer.routes.ai_routes import ai_bp
    from lamusic_importer.routes.import_routes import import_bp

    app.register_blueprint(import_bp)
    app.register_blueprint(ai_bp)


def _register_auth(app: Flask) -> None:
    from lamusic_importer.auth import register_auth

    register_auth(app)


def _register_error_handlers(app: Flask) -> None:
    from lamusic_importer.errors import AppError, SystemError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "message_key": error.message_key,
                "details": error.details,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(
            code="unexpected_error",
            message_key="unexpected_error",
            http_status=500,
            critical=True,
            details=str(exc),
        )
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard() -> None:
        enforce_rate_limit()


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": app.config.get("ENV", "unknown"),
            "ai": app.extensions["lamusic_ai_gateway"].status(),
            "metrics": metrics_snapshot(),
        }
        try:
            get_db().execute("SELECT 1").fetchone()
        except Exception:
            app.logger.warning("health_db_unavailable", exc_info=True)
            payload["status"] = "degraded"
        return payload, 200

    @app.route("/metrics")
    def metrics():
        return prometheus_metrics_text(), 200, {"Content-Type": "text/plain; version=0.0.4"}

