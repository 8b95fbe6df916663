import logging
import os

import click
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFProtect

from api import api_bp
from auth import auth_bp
from config import Config
from models import db
from money import format_amount
from views import views_bp

csrf = CSRFProtect()


def create_app(config_object=Config):
    app = Flask(__name__, template_folder='templates', static_folder='static')
    app.config.from_object(config_object)
    # FLASK_* environment overrides, e.g. FLASK_SQLALCHEMY_DATABASE_URI
    app.config.from_prefixed_env()
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    csrf.init_app(app)
    csrf.exempt(api_bp)
    with app.app_context():
        db.create_all()

    app.register_blueprint(auth_bp)
    app.register_blueprint(views_bp)
    app.register_blueprint(api_bp)

    app.jinja_env.filters['money'] = format_amount
    register_error_handlers(app)
    register_cli(app)
    return app


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(exc):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Not found'}), 404
        return exc

    @app.errorhandler(500)
    def server_error(exc):
        app.logger.error('Unhandled error on %s: %r', request.path, getattr(exc, 'original_exception', exc))
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Internal server error'}), 500
        return exc


def register_cli(app):
    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop all tables first.')
    def init_db(drop):
        """Create the database tables."""
        if drop:
            db.drop_all()
        db.create_all()
        click.echo('Database initialised.')


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
