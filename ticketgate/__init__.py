from dotenv import load_dotenv

# Config reads the environment at import time
load_dotenv()

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_migrate import Migrate
from .config import Config
from .logging_config import setup_logging
from .models import db
from .services.auth import build_auth_provider


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config())
    if test_config:
        app.config.update(test_config)
    setup_logging(app.config.get('LOG_LEVEL', 'INFO'), app.config.get('LOG_FORMAT', 'human'))

    db.init_app(app)
    Migrate(app, db)
    # Trust reverse proxy headers (Render/Heroku)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    app.extensions['ticketgate_auth'] = build_auth_provider(app.config)

    with app.app_context():
        db.create_all()

    from .routes_api import bp as api_bp
    from .routes_admin import bp as admin_bp
    app.register_blueprint(api_bp, url_prefix='/api')
    app.register_blueprint(admin_bp, url_prefix='/admin')

    @app.get('/health')
    def health():
        return {'ok': True}

    return app
