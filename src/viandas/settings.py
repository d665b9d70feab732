import os
from dotenv import load_dotenv

load_dotenv()

POSTGRES_DB = os.getenv("POSTGRES_DB", "viandas")
POSTGRES_USER = os.getenv("POSTGRES_USER", "viandas")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "viandaspass")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "postgres")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

ARCHIVE_POSTGRES_DB = os.getenv("ARCHIVE_POSTGRES_DB", "viandas_archive")
ARCHIVE_POSTGRES_USER = os.getenv("ARCHIVE_POSTGRES_USER", POSTGRES_USER)
ARCHIVE_POSTGRES_PASSWORD = os.getenv("ARCHIVE_POSTGRES_PASSWORD", POSTGRES_PASSWORD)
ARCHIVE_POSTGRES_HOST = os.getenv("ARCHIVE_POSTGRES_HOST", POSTGRES_HOST)
ARCHIVE_POSTGRES_PORT = os.getenv("ARCHIVE_POSTGRES_PORT", POSTGRES_PORT)

REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = os.getenv("REDIS_PORT", "6379")

TZ = os.getenv("TZ", "America/Argentina/Buenos_Aires")

PRIMARY_DATABASE_URL = os.getenv("PRIMARY_DATABASE_URL") or (
    f"postgresql+psycopg2://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"
)
ARCHIVE_DATABASE_URL = os.getenv("ARCHIVE_DATABASE_URL") or (
    f"postgresql+psycopg2://{ARCHIVE_POSTGRES_USER}:{ARCHIVE_POSTGRES_PASSWORD}"
    f"@{ARCHIVE_POSTGRES_HOST}:{ARCHIVE_POSTGRES_PORT}/{ARCHIVE_POSTGRES_DB}"
)

REDIS_URL = os.getenv("REDIS_URL") or f"redis://{REDIS_HOST}:{REDIS_PORT}/0"

# Data retention (archival engine)
DATA_RETENTION_POLLING_INTERVAL_MINUTES = os.getenv("DATA_RETENTION_POLLING_INTERVAL_MINUTES", "60")
DATA_RETENTION_DAYS = os.getenv("DATA_RETENTION_DAYS", "30")
DATA_RETENTION_BATCH_SIZE = os.getenv("DATA_RETENTION_BATCH_SIZE", "100")

# Weekly emails (notification scheduler)
EMAIL_POLLING_INTERVAL_MINUTES = os.getenv("EMAIL_POLLING_INTERVAL_MINUTES", "60")
EMAIL_START_DAY_OF_WEEK = os.getenv("EMAIL_START_DAY_OF_WEEK", "monday")
EMAIL_REMINDER_DAY_OF_WEEK = os.getenv("EMAIL_REMINDER_DAY_OF_WEEK", "monday")
EMAIL_REMINDER_TIME = os.getenv("EMAIL_REMINDER_TIME", "09:00")
EMAIL_SUMMARY_DAY_OF_WEEK = os.getenv("EMAIL_SUMMARY_DAY_OF_WEEK", "friday")
EMAIL_SUMMARY_TIME = os.getenv("EMAIL_SUMMARY_TIME", "17:00")
EMAIL_STATE_BACKEND = os.getenv("EMAIL_STATE_BACKEND", "memory")
EMAIL_DELIVERY_CHANNEL = os.getenv("EMAIL_DELIVERY_CHANNEL", "smtp")

SMTP_SERVER = os.getenv("SMTP_SERVER", "")
SMTP_PORT = os.getenv("SMTP_PORT", "587")
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_SENDER_EMAIL = os.getenv("SMTP_SENDER_EMAIL", "")
SMTP_SENDER_NAME = os.getenv("SMTP_SENDER_NAME", "AccuViandas")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true")

EMAIL_WEBHOOK_URL = os.getenv("EMAIL_WEBHOOK_URL", "")
EMAIL_WEBHOOK_TOKEN = os.getenv("EMAIL_WEBHOOK_TOKEN", "")

BRAND_NAME = os.getenv("BRAND_NAME", "AccuViandas")
