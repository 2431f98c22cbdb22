from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_migrate import Migrate
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import Config

db = SQLAlchemy()
cache = Cache()
socketio = SocketIO()
migrate = Migrate()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per hour", "120 per minute"],
    storage_uri="memory://"
)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    socketio.init_app(app)
    migrate.init_app(app, db)
    cache.init_app(app, config={'CACHE_TYPE': app.config.get('CACHE_TYPE', 'SimpleCache')})
    limiter.init_app(app)

    from streamapp.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    from streamapp.core import models # noqa
    from streamapp import events # noqa

    if not app.config.get('TESTING', False) and app.config.get('SCHEDULER_ENABLED', True):
        from streamapp.core.scheduler import init_scheduler
        with app.app_context():
            init_scheduler(app)

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        return response

    return app
