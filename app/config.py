import os


def _env_bool(name, default):
    return os.getenv(name, default).lower() in ("true", "1", "t")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev")
    DEBUG = _env_bool("DEBUG_MODE", "false")
    DEBUG_MODE = DEBUG

    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URI",
        "postgresql://postgres:postgres@db:5432/kiosk_booking"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Store calls time out after this many seconds and are retried once
    STORE_TIMEOUT_SECONDS = int(os.getenv("STORE_TIMEOUT_SECONDS", 10))

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": STORE_TIMEOUT_SECONDS,
    }

    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
    SOCKETIO_MESSAGE_QUEUE = REDIS_URL
    SOCKETIO_ASYNC_MODE = os.getenv("SOCKETIO_ASYNC_MODE", "eventlet")

    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", "true")
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", "false")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "no-reply@kiosk-booking.local")

    RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "your_key_id")
    RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "your_key_secret")
    RAZORPAY_API_BASE = os.getenv("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "USD")
    PAYMENT_TIMEOUT_SECONDS = int(os.getenv("PAYMENT_TIMEOUT_SECONDS", 20))

    # Every "today"/"now" comparison is made in this zone
    REFERENCE_TIMEZONE = os.getenv("REFERENCE_TIMEZONE", "America/Los_Angeles")

    # Fallback when the system_settings row is missing or unreadable
    ADDITIONAL_RESOURCE_DISCOUNT_PERCENT = float(os.getenv("ADDITIONAL_RESOURCE_DISCOUNT_PERCENT", 0))

    LIFECYCLE_QUEUE = os.getenv("LIFECYCLE_QUEUE", "booking_tasks")
    LIFECYCLE_INTERVAL_SECONDS = int(os.getenv("LIFECYCLE_INTERVAL_SECONDS", 300))
    # "HH:MM" in REFERENCE_TIMEZONE; when set it replaces the fixed interval
    LIFECYCLE_DAILY_TIME = os.getenv("LIFECYCLE_DAILY_TIME")

    NOTIFICATION_QUEUE = os.getenv("NOTIFICATION_QUEUE", "notifications")
    NOTIFICATION_MAX_RETRIES = int(os.getenv("NOTIFICATION_MAX_RETRIES", 3))


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    REDIS_URL = None
    SOCKETIO_MESSAGE_QUEUE = None
    SOCKETIO_ASYNC_MODE = "threading"

    MAIL_SUPPRESS_SEND = True
    RAZORPAY_KEY_ID = "rzp_test_key"
    RAZORPAY_KEY_SECRET = "rzp_test_secret"
