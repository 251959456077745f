import uuid

from flask import Flask, request
import structlog

from .config import Config
from .extensions import db, jwt, cors, migrate
from .errors import register_error_handlers
from .utils.api import ok
from .utils.logging import configure_logging, bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    config_class.init_app(app)

    configure_logging(app.config.get("ENV"))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}})
    migrate.init_app(app, db)

    register_error_handlers(app)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .checkout import bp as checkout_bp; app.register_blueprint(checkout_bp)
    from .discount import bp as discount_bp; app.register_blueprint(discount_bp)
    from .admin import bp as admin_bp; app.register_blueprint(admin_bp)
    from .referral import bp as referral_bp; app.register_blueprint(referral_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .payment import bp as payment_bp; app.register_blueprint(payment_bp)

    from .cli import register_cli
    register_cli(app)

    @app.before_request
    def _bind_request():
        clear_request_context()
        bind_request_context(request_id=request.headers.get("X-Request-Id") or uuid.uuid4().hex,
                             path=request.path, method=request.method)

    @app.get("/")
    def health():
        return ok("API running")

    with app.app_context():
        from . import model  # noqa: F401
        db.create_all()

    logger.debug("app_created", blueprints=sorted(app.blueprints.keys()))
    return app
