"""Development configuration."""
import os

from .base import BaseConfig


class DevelopmentConfig(BaseConfig):
    """Development configuration class."""

    DEBUG = True
    TESTING = False

    # SQLite by default so the service runs without a database server
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL') or 'sqlite:///attendkaro_dev.db'
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO') == '1'

    LOG_LEVEL = 'DEBUG'
