# config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _database_url():
    url = os.environ.get('DATABASE_URL', 'sqlite:///finance.db').strip()
    # Hosted Postgres hands out postgres://, SQLAlchemy wants postgresql://
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


class Config:
    """
    Base configuration loaded by the app factory via:
      app.config.from_object(Config)
    """

    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Summary range used when the request gives no from/to
    SUMMARY_DEFAULT_DAYS = int(os.environ.get('SUMMARY_DEFAULT_DAYS', 30))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = 'DEBUG'
