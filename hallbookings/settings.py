import os

db_url = os.environ.get("DB_URL", "sqlite+aiosqlite:///:memory:")
DB_ECHO = os.environ.get("DB_ECHO", "false").lower() == "true"
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

ENVIRONMENT = os.environ.get("ENVIRONMENT", "production")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_DIR = os.environ.get("LOG_DIR", "")

# Session tokens issued by this service; identity-provider tokens are the fallback
JWT_SECRET = os.environ.get("JWT_SECRET", "change-me")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
SESSION_TOKEN_TTL_HOURS = int(os.environ.get("SESSION_TOKEN_TTL_HOURS", "24"))
idp_verify_url = os.environ.get("IDP_VERIFY_URL", "http://localhost:8010/verify")

SMTP_HOST = os.environ.get("SMTP_HOST", "localhost")
SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
SMTP_USERNAME = os.environ.get("SMTP_USERNAME", "")
SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
SMTP_USE_TLS = os.environ.get("SMTP_USE_TLS", "true").lower() == "true"
SMTP_TIMEOUT = float(os.environ.get("SMTP_TIMEOUT", "10"))
FROM_EMAIL = os.environ.get("FROM_EMAIL", "bookings@localhost")

BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "Cranbourne Public Hall")
CURRENCY = os.environ.get("CURRENCY", "AUD")

CREATE_TABLES = os.environ.get("CREATE_TABLES", "true").lower() == "true"
