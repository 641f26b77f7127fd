import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./harvest.db")
SQLALCHEMY_DATABASE_URI = DATABASE_URL

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# JWT Settings
SECRET_KEY: str = os.getenv("SECRET_KEY", "a_very_secret_key_that_should_be_in_env_file_and_much_stronger") # In a real app, use a strong, randomly generated key
ALGORITHM: str = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))

# Public URLs used to build gateway callbacks and browser redirects
SERVER_URL: str = os.getenv("SERVER_URL", "http://localhost:8000").rstrip("/")
FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# SSLCommerz credentials
SSLCOMMERZ_STORE_ID: str = os.getenv("SSLCOMMERZ_STORE_ID", "")
SSLCOMMERZ_STORE_PASSWD: str = os.getenv("SSLCOMMERZ_STORE_PASSWD", "")
SSLCOMMERZ_IS_LIVE: bool = os.getenv("SSLCOMMERZ_IS_LIVE", "false").lower() in ("1", "true", "yes")
GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", 30))
GATEWAY_CURRENCY: str = "BDT"

# Subscription processing
SUBSCRIPTION_BUFFER_DAYS: int = int(os.getenv("SUBSCRIPTION_BUFFER_DAYS", 2))
RENEWAL_BATCH_SIZE: int = int(os.getenv("RENEWAL_BATCH_SIZE", 100))
RENEWAL_MAX_RETRIES: int = int(os.getenv("RENEWAL_MAX_RETRIES", 3))

# Background worker
CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_TIMEZONE: str = os.getenv("CELERY_TIMEZONE", "Asia/Dhaka")
RENEWAL_SCHEDULE_HOUR: int = int(os.getenv("RENEWAL_SCHEDULE_HOUR", 2))

# Locale used for customer-facing messages when the user has none
DEFAULT_LOCALE: str = os.getenv("DEFAULT_LOCALE", "bn")

if not (SSLCOMMERZ_STORE_ID and SSLCOMMERZ_STORE_PASSWD):
    # Avoid logging the credentials themselves.
    logger.warning("SSLCommerz store credentials are not configured. Gateway payments will be rejected.")
