import os


def _split_list(value):
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # Public base URL used to build payment return URLs. The frontend
    # exposes it as NEXT_PUBLIC_BASE_URL, so accept either name.
    APP_BASE_URL = (
        os.environ.get("APP_BASE_URL")
        or os.environ.get("NEXT_PUBLIC_BASE_URL")
        or "http://localhost:3000"
    )
    DEFAULT_LOCALE = os.environ.get("DEFAULT_LOCALE", "ru")

    # --- Stripe (all regions except RU) ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE", 300))
    STRIPE_PRODUCT_NAME = os.environ.get("STRIPE_PRODUCT_NAME", "Premium Features")

    # --- YuKassa (RU) ---
    YUKASSA_SHOP_ID = os.environ.get("YUKASSA_SHOP_ID")
    YUKASSA_SECRET_KEY = os.environ.get("YUKASSA_SECRET_KEY")
    YUKASSA_API_URL = os.environ.get("YUKASSA_API_URL", "https://api.yookassa.ru/v3")
    # YuKassa does not sign notifications. Comma-separated CIDRs from
    # https://yookassa.ru/developers/using-api/webhooks; empty disables the check.
    YUKASSA_ALLOWED_NETWORKS = _split_list(os.environ.get("YUKASSA_ALLOWED_NETWORKS"))

    # Outbound calls to payment providers (seconds)
    PAYMENT_HTTP_TIMEOUT = float(os.environ.get("PAYMENT_HTTP_TIMEOUT", 10))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "YUKASSA_SHOP_ID",
            "YUKASSA_SECRET_KEY",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if not (os.environ.get("APP_BASE_URL") or os.environ.get("NEXT_PUBLIC_BASE_URL")):
            missing.append("APP_BASE_URL")
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing - in-memory SQLite, CSRF disabled."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    APP_BASE_URL = "http://localhost:3000"
    DEFAULT_LOCALE = "ru"
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    STRIPE_WEBHOOK_TOLERANCE = 300
    STRIPE_PRODUCT_NAME = "Premium Features"
    YUKASSA_SHOP_ID = "123456"
    YUKASSA_SECRET_KEY = "test_yukassa_secret"
    YUKASSA_API_URL = "https://api.yookassa.test/v3"
    YUKASSA_ALLOWED_NETWORKS = []
    PAYMENT_HTTP_TIMEOUT = 5
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode - everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
