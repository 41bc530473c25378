# storefront/main.py
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from werkzeug.exceptions import HTTPException

from storefront.blueprints.account import account_bp
from storefront.blueprints.admin import admin_bp
from storefront.blueprints.cart import cart_bp
from storefront.blueprints.categories import categories_bp
from storefront.blueprints.checkout import checkout_bp
from storefront.blueprints.products import products_bp
from storefront.config import Config
from storefront.database import build_engine, build_session_factory, close_db, init_database
from storefront.errors import GatewayError, StorefrontError
from storefront.gateways import IdentityGateway, PaymentGateway, StorageGateway
from storefront.observability import (
    check_database_health,
    configure_logging,
    ensure_request_id,
    increment_counter,
    observe_latency,
)
from storefront.observability.metrics import registry
from storefront.services.notification_service import OrderNotifier

logger = logging.getLogger(__name__)


@dataclass
class StorefrontRuntime:
    """Long-lived collaborators shared by every request."""

    config: Any
    session_factory: sessionmaker
    identity: Any
    storage: Any
    payments: Any
    notifier: Any

    @property
    def engine(self):
        return self.session_factory.kw.get("bind")


def create_app(
    config=Config,
    *,
    session_factory: Optional[sessionmaker] = None,
    identity=None,
    storage=None,
    payments=None,
    notifier=None,
) -> Flask:
    app = Flask(__name__)
    config.configure_app(app)
    configure_logging(app, config)
    registry.enabled = config.OBSERVABILITY_ENABLED

    if session_factory is None:
        engine = build_engine(config)
        session_factory = build_session_factory(engine)
    init_database(session_factory.kw["bind"])

    timeout = config.HTTP_TIMEOUT_SECONDS
    app.extensions["storefront"] = StorefrontRuntime(
        config=config,
        session_factory=session_factory,
        identity=identity or IdentityGateway(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY, timeout=timeout),
        storage=storage or StorageGateway(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY, timeout=timeout),
        payments=payments or PaymentGateway(config.STRIPE_SECRET_KEY),
        notifier=notifier or OrderNotifier(
            config.RESEND_API_KEY,
            config.ORDER_EMAIL_FROM,
            store_name=config.STORE_NAME,
            frontend_url=config.FRONTEND_URL,
        ),
    )

    CORS(app, origins=[config.FRONTEND_URL], supports_credentials=True)

    for blueprint in (products_bp, categories_bp, cart_bp, checkout_bp, account_bp, admin_bp):
        app.register_blueprint(blueprint)

    _register_request_hooks(app, config)
    _register_error_handlers(app)

    @app.route("/api/health", methods=["GET"])
    def health():
        db_status = check_database_health(app.extensions["storefront"].engine)
        healthy = db_status.get("status") == "UP"
        return jsonify({"ok": healthy, "database": db_status}), 200 if healthy else 503

    return app


def _register_request_hooks(app: Flask, config) -> None:
    @app.before_request
    def before_request_logging():
        g.request_started_at = time.perf_counter()
        g.request_id = ensure_request_id(config.REQUEST_ID_HEADER)
        increment_counter(
            "http_requests_total",
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
            },
        )

    @app.after_request
    def after_request_logging(response):
        started = getattr(g, "request_started_at", None)
        if started is not None:
            duration_ms = (time.perf_counter() - started) * 1000
            observe_latency(
                "http_request_latency_ms",
                duration_ms,
                labels={
                    "method": request.method,
                    "endpoint": request.endpoint or request.path,
                    "status": str(response.status_code),
                },
            )
        if response.status_code >= 500:
            increment_counter(
                "http_errors_total",
                labels={
                    "method": request.method,
                    "endpoint": request.endpoint or request.path,
                    "status": str(response.status_code),
                },
            )
            logger.error("Request finished with error status %s", response.status_code)
        else:
            logger.info("Request finished", extra={"status_code": response.status_code})
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers[config.REQUEST_ID_HEADER] = request_id
        return response

    @app.teardown_appcontext
    def teardown_db(exception):
        close_db(exception)


def _rollback_request_session() -> None:
    db = g.get("db")
    if db is not None:
        db.rollback()


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(error: StorefrontError):
        _rollback_request_session()
        route = request.endpoint or request.path
        if isinstance(error, GatewayError):
            logger.error(
                "[%s] %s call failed: %s",
                route,
                error.service,
                error.message,
                extra={"upstream_status": error.upstream_status},
            )
        elif error.status_code >= 500:
            logger.error("[%s] %s", route, error.message)
        else:
            logger.info("[%s] %s %s", route, error.status_code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        _rollback_request_session()
        logger.exception("[%s] Database error", request.endpoint or request.path)
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        _rollback_request_session()
        logger.exception("[%s] Unhandled error", request.endpoint or request.path)
        return jsonify({"error": "Internal server error"}), 500
