import os

_PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")
    JWT_SECRET = os.environ.get("JWT_SECRET")

    # Handle DATABASE_URL: some PaaS providers (Azure, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- JWT ---
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_MINUTES = int(os.environ.get("JWT_EXPIRES_MINUTES", 60))

    # --- Frontend (CORS + iframe embedding of uploaded files) ---
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

    # --- Uploads ---
    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER", os.path.join(_PROJECT_DIR, "uploads")
    )
    UPLOAD_URL_PREFIX = "uploads"
    MAX_FILE_SIZE = 10 * 1024 * 1024  # per file
    MAX_FILES_PER_FIELD = 10
    # Whole request: every file at the max size plus form fields
    MAX_CONTENT_LENGTH = MAX_FILES_PER_FIELD * MAX_FILE_SIZE + 1024 * 1024

    # --- Supabase storage (optional; local disk when unset) ---
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY")
    SUPABASE_STORAGE_BUCKET = os.environ.get("SUPABASE_STORAGE_BUCKET", "uploads")

    # --- Background work (audit writes, post-commit file deletion) ---
    DEFERRED_TASKS_ASYNC = True

    # --- Audit log listing ---
    AUDIT_LOG_LIMIT = 500

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Rate limiting ---
    RATELIMIT_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "JWT_SECRET",
            "DATABASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-jwt-secret")
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///productdb.sqlite3"


class TestConfig(Config):
    """Testing — in-memory SQLite, deferred work runs inline."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    JWT_SECRET = "test-jwt-secret-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    FRONTEND_URL = "http://localhost:3000"
    SUPABASE_URL = None
    SUPABASE_SERVICE_KEY = None
    DEFERRED_TASKS_ASYNC = False  # deterministic audit + cleanup in tests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
