"""
Training Back-Office API.

    from backoffice import create_app
    app = create_app()           # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from backoffice.auth import init_auth
from backoffice.config import config
from backoffice.middleware.logging_config import configure_logging
from backoffice.middleware.proxy import init_proxy_fix
from backoffice.middleware.rate_limiter import init_rate_limits
from backoffice.middleware.security_headers import init_security_headers
from backoffice.middleware.timing import init_request_timing
from backoffice.models import db

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY = 2 * 1024 * 1024


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # SQLite ignores ON DELETE / FK checks unless asked per connection
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# No global default; only the public verification endpoint is limited.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """Build the Flask app for ``config_name`` (development/testing/production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", DEFAULT_MAX_BODY)

    configure_logging(app)
    init_proxy_fix(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    _init_cors(app)

    init_auth(app)
    init_security_headers(app)
    init_request_timing(app)

    @app.before_request
    def _reject_oversized_body():
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if limit and (request.content_length or 0) > limit:
            abort(413)

    _create_tables(app)
    _register_blueprints(app)
    _register_cli(app)
    _register_app_errors(app)

    # Needs the view functions registered above
    init_rate_limits(app, limiter)
    return app


def _init_cors(app):
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _create_tables(app):
    # Model modules must be imported before create_all / autogenerate sees them.
    from backoffice.models import booking, certificate, client, email, open_course, trainer  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:  # migrations remain the source of truth
            app.logger.warning("create_all skipped: %s", exc)


def _register_blueprints(app):
    from backoffice.blueprints.availability_bp import availability_bp
    from backoffice.blueprints.bookings_bp import bookings_bp
    from backoffice.blueprints.certificates_bp import certificates_bp
    from backoffice.blueprints.clients_bp import clients_bp
    from backoffice.blueprints.email_bp import email_bp
    from backoffice.blueprints.health_bp import health_bp
    from backoffice.blueprints.open_course_companies_bp import open_course_companies_bp
    from backoffice.blueprints.open_courses_bp import open_courses_bp
    from backoffice.blueprints.trainer_types_bp import trainer_types_bp
    from backoffice.blueprints.trainers_bp import trainers_bp
    from backoffice.blueprints.verification_bp import verification_bp

    for bp in (health_bp, clients_bp, trainers_bp, trainer_types_bp, availability_bp,
               bookings_bp, certificates_bp, verification_bp, email_bp, open_courses_bp,
               open_course_companies_bp):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed-reference-data")
    def seed_reference_data_cmd():
        """Create the default course types and core email templates if missing."""
        from backoffice.services.certificate_service import seed_course_types
        from backoffice.services.email_template_service import seed_core_templates

        course_types = seed_course_types()
        templates = seed_core_templates()
        logger.info("Reference data seeded: course_types=%s templates=%s", course_types, templates)
        click.echo(f"Seeded {course_types} course types and {templates} email templates.")

    @app.cli.command("process-email-queue")
    @click.option("--batch-size", type=int, default=None,
                  help="Emails to send (default EMAIL_QUEUE_BATCH_SIZE).")
    def process_email_queue_cmd(batch_size):
        """Send one batch of due emails from the outbound queue."""
        from backoffice.services.email_queue_service import process_queue

        result = process_queue(batch_size)
        click.echo(f"Processed {result['processed']}: {result['sent']} sent, {result['failed']} failed, "
                   f"{result['skipped']} skipped.")

    @app.cli.command("send-insurance-reminders")
    @click.option("--within-days", type=int, default=30, show_default=True,
                  help="Remind trainers whose insurance expires within this many days.")
    def send_insurance_reminders_cmd(within_days):
        """Queue reminders for trainer insurance that is about to expire."""
        from backoffice.services.trainer_service import send_insurance_reminders

        queued = send_insurance_reminders(within_days)
        click.echo(f"Queued {queued} insurance reminder(s).")


def _register_app_errors(app):
    """JSON bodies for errors raised outside any blueprint handler."""

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def _too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500
