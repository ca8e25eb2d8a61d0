"""
Per-environment settings, selected by ``APP_ENV``.

    app.config.from_object(config[os.getenv("APP_ENV", "development")]())

Everything deploy-specific is read from the environment; the classes
only carry defaults.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _database_url(default=None):
    # Hosting platforms still hand out postgres://, which SQLAlchemy 2 rejects
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or default


_POOL = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    # A throwaway key is fine until sessions or signed tokens matter
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL)

    # Flask-Limiter storage; health/live pings it when it is a redis:// URL
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # Number of reverse proxies whose X-Forwarded-For may be trusted
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "0"))
    # Placeholder {{company_name}} in system emails
    COMPANY_NAME = os.getenv("COMPANY_NAME", "Training Back-Office")

    # Outbound mail. Without MAIL_SERVER the queue worker only logs.
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", "true")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@backoffice.local")
    EMAIL_QUEUE_BATCH_SIZE = int(os.getenv("EMAIL_QUEUE_BATCH_SIZE", "10"))
    EMAIL_ATTACHMENT_TIMEOUT = int(os.getenv("EMAIL_ATTACHMENT_TIMEOUT", "20"))

    CERTIFICATE_VERIFY_RATE_LIMIT = os.getenv("CERTIFICATE_VERIFY_RATE_LIMIT", "30/minute")
    # Link put in certificate emails; empty means the API's own verify URL
    CERTIFICATE_VERIFY_BASE_URL = os.getenv("CERTIFICATE_VERIFY_BASE_URL", "")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        f"sqlite:///{os.path.join(basedir, 'instance', 'backoffice_dev.db')}"
    )
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    # StaticPool (in-memory SQLite) accepts no pool sizing
    SQLALCHEMY_ENGINE_OPTIONS = {}
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    MAIL_SERVER = None
    REDIS_URL = "memory://"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }
    # No wildcard in production; an empty value means same-origin only
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    PROXY_FIX_X_FOR = int(os.getenv("PROXY_FIX_X_FOR", "1"))
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")

    def __init__(self):
        missing = [name for name, value in (
            ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production config requires: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
