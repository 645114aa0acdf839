import os

DATABASE_URL = os.getenv("APPOINTMENT_DB")

RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want events
REDIS_URL = os.getenv("REDIS_URL")  # optional, enables cross-instance locks

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"

CATALOG_SERVICE_URL = os.getenv("CATALOG_SERVICE_URL") or "http://catalog-service:8000"
CATALOG_TIMEOUT = float(os.getenv("CATALOG_TIMEOUT") or "2.0")

# calendar days and reminder texts are rendered in this zone
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE") or "America/Sao_Paulo"

REMINDER_INTERVAL_SECONDS = int(os.getenv("REMINDER_INTERVAL_SECONDS") or "3600")
REMINDER_LOOKAHEAD_HOURS = int(os.getenv("REMINDER_LOOKAHEAD_HOURS") or "24")
REMINDER_BATCH_SIZE = int(os.getenv("REMINDER_BATCH_SIZE") or "50")

BOOKING_REQUIRES_APPROVAL = (os.getenv("BOOKING_REQUIRES_APPROVAL") or "false").lower() == "true"
STRICT_STATUS_TRANSITIONS = (os.getenv("STRICT_STATUS_TRANSITIONS") or "false").lower() == "true"

FREE_PLAN_MONTHLY_LIMIT = int(os.getenv("FREE_PLAN_MONTHLY_LIMIT") or "30")
LIMITED_PLANS = ("free", "start")

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"

REMINDERS_ENABLED = (os.getenv("REMINDERS_ENABLED") or "true").lower() == "true"
