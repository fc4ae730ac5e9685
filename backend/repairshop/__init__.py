from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from flask_mail import Mail
from flask_socketio import SocketIO
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()
mail = Mail()
socketio = SocketIO()


def _error_payload(status: int, title: str, detail: str):
    return {
        'error': {
            'status': status,
            'title': title,
            'detail': detail,
        }
    }


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    from .config.settings import load_settings
    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)
    mail.init_app(app)
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ORIGIN'])

    # Live notification channel; lifecycle owned by the process assembly (run.py)
    from .services.notifications import NotificationDispatcher
    dispatcher = NotificationDispatcher(socketio, logger=app.logger)
    app.extensions['notifications'] = dispatcher
    from .sockets import register_socket_handlers
    register_socket_handlers(socketio)

    from .routes.auth import auth_bp
    from .routes.inventory import inv_bp
    from .routes.repairs import rpr_bp
    from .routes.attachments import att_bp
    from .routes.payments import pay_bp
    from .routes.customers import cust_bp
    from .routes.uploads import uploads_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(inv_bp, url_prefix='/api/inventory')
    app.register_blueprint(rpr_bp, url_prefix='/api/repairs')
    app.register_blueprint(att_bp, url_prefix='/api/repairs')  # attachments nest under repairs
    app.register_blueprint(pay_bp, url_prefix='/api/payments')
    app.register_blueprint(cust_bp, url_prefix='/api/customers')
    app.register_blueprint(uploads_bp, url_prefix='/uploads')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @jwt.unauthorized_loader
    def _missing_token(reason: str):
        return _error_payload(401, 'Unauthorized', reason), 401

    @jwt.invalid_token_loader
    def _invalid_token(reason: str):
        return _error_payload(401, 'Unauthorized', 'Invalid or expired token'), 401

    @jwt.expired_token_loader
    def _expired_token(jwt_header, jwt_payload):
        return _error_payload(401, 'Unauthorized', 'Invalid or expired token'), 401

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # Nothing half-written may survive a failed request
        get_db().rollback()
        if isinstance(e, HTTPException):
            return _error_payload(e.code, e.name, e.description), e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return _error_payload(500, 'Internal Server Error', 'Unexpected error'), 500

    return app


def get_db():
    return SessionLocal()
