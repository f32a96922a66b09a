import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to app.py as courtbook.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtbook.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token (Authorization: Bearer also accepted)
    AUTH_COOKIE_NAME = "courtbook_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Availability grid
    SLOT_GRANULARITY_MINUTES = int(os.getenv("SLOT_GRANULARITY_MINUTES", "60"))

    # Booking admission
    MIN_BOOKING_MINUTES = 15
    MAX_BOOKING_HOURS = 8
    ADMISSION_RETRIES = 1               # re-validate once after losing a race

    # Cancellation policy
    FULL_REFUND_NOTICE_HOURS = 24
    PARTIAL_REFUND_NOTICE_HOURS = 12
    PARTIAL_REFUND_PERCENT = 50

    # Gateway attempts before a refund is marked FAILED for manual follow-up
    REFUND_MAX_ATTEMPTS = int(os.getenv("REFUND_MAX_ATTEMPTS", "5"))

    # Default window for GET /courts/<id>/blocked-slots
    BLOCKED_SLOTS_WINDOW_DAYS = 30

    # Payments (Stripe Checkout)
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "inr")
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL", "http://localhost:5173/payment/success")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL", "http://localhost:5173/payment/cancel")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = "whsec_test"
