"""
Application Factory
Creates and configures the Flask application
"""
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from quizpart.config import get_config
from quizpart.extensions import db, socketio
from quizpart.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(config_name=None, config_overrides=None):
    """
    Application factory pattern
    Creates and configures Flask app
    """
    app = Flask(__name__)

    # Load configuration
    if config_name:
        from quizpart.config import config
        app.config.from_object(config[config_name])
    else:
        app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions
    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=app.config['SOCKETIO_CORS_ALLOWED_ORIGINS'],
        async_mode=app.config['SOCKETIO_ASYNC_MODE']
    )

    # Register blueprints
    from quizpart.routes import quiz_bp, authoring_bp

    # Quiz taking (prefixed with /quiz)
    app.register_blueprint(quiz_bp, url_prefix='/quiz')

    # Question bank and widget settings (prefixed with /authoring)
    app.register_blueprint(authoring_bp, url_prefix='/authoring')

    register_error_handlers(app)

    # Register Socket.IO events
    from quizpart.sockets import register_socket_events
    register_socket_events()

    # Create database tables
    with app.app_context():
        db.create_all()
        logger.info('Database tables created/verified')

    return app


def register_error_handlers(app):
    """JSON bodies for HTTP errors instead of HTML pages"""

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({'success': False, 'error': exc.description}), exc.code
