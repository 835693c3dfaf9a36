import os
import logging

import click
from flask import Flask, jsonify, make_response, request
from werkzeug.security import generate_password_hash

from productdb.config import config_by_name
from productdb.errors import CrudError
from productdb.extensions import db, migrate, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from productdb import models  # noqa: F401

    # --- Register blueprints ---
    from productdb.blueprints.auth import auth_bp
    from productdb.blueprints.data import data_bp
    from productdb.blueprints.files import files_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(data_bp)
    app.register_blueprint(files_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        return jsonify(
            {"message": "Product CRUD API is running and connected to the database."}
        ), 200

    # --- Error handlers (JSON everywhere) ---
    @app.errorhandler(CrudError)
    def crud_error(e):
        return jsonify({"message": e.message}), e.status_code

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify({"message": "Authentication required."}), 401

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"message": "Not found."}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"message": "Method not allowed."}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"message": "Upload is too large."}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"message": "Too many requests. Please try again later."}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"message": "Internal server error."}), 500

    # --- CORS (single allowed frontend origin) ---
    def _cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin == app.config.get("FRONTEND_URL"):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        return response

    @app.before_request
    def handle_preflight():
        """Answer CORS preflight before auth or routing gets involved."""
        if request.method == "OPTIONS":
            return _cors_headers(make_response("", 200))

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add CORS + security headers to every response."""
        _cors_headers(response)
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Uploaded files are embedded by the frontend in iframes, so framing
        # is allowed for our own origin and the frontend only (no X-Frame-Options).
        response.headers["Content-Security-Policy"] = (
            f"frame-ancestors 'self' {app.config.get('FRONTEND_URL', '')}".strip()
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- CLI commands ---
    register_cli(app)

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@productdb.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    @click.option("--display-name", default="Admin", help="Name shown in audit logs")
    def seed_admin(email, password, display_name):
        """Create an admin user.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from productdb.models.user import User

        email = email.lower().strip()
        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"Admin user already exists: {email}")
            return

        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            display_name=display_name,
            user_role="admin",
        )
        db.session.add(admin)
        db.session.commit()
        click.echo(f"Created admin user: {email} (id: {admin.id})")

    @app.cli.command("purge-orphan-uploads")
    @click.option("--dry-run", is_flag=True, help="List orphans without deleting them.")
    def purge_orphan_uploads(dry_run):
        """Delete stored files that no record references.

        Post-commit deletion is best-effort, so a crash between commit and
        cleanup can leave an unreferenced file behind. This sweeps them.

        Usage:
            flask purge-orphan-uploads --dry-run
            flask purge-orphan-uploads
        """
        from productdb.services import crud_service, storage_service

        orphans = crud_service.find_orphan_uploads()
        if not orphans:
            click.echo("No orphaned uploads found.")
            return

        for reference in orphans:
            click.echo(f"  {reference}")

        if dry_run:
            click.echo(f"{len(orphans)} orphaned upload(s) found (dry run, nothing deleted).")
            return

        storage_service.delete_files(orphans)
        click.echo(f"Deleted {len(orphans)} orphaned upload(s).")
