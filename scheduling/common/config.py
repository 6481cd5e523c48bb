import os

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
AWS_ENDPOINT_URL = os.getenv("AWS_ENDPOINT_URL")

IDENTITY_TABLE = os.getenv("IDENTITY_TABLE", "identities")
APPOINTMENTS_TABLE = os.getenv("APPOINTMENTS_TABLE", "appointments")
APPOINTMENT_SLOTS_TABLE = os.getenv(
    "APPOINTMENT_SLOTS_TABLE", "appointment_slots"
)

SLOT_DURATION_MINUTES = int(os.getenv("SLOT_DURATION_MINUTES", "60"))
# Shared storage can be written by other processes, so nothing is cached there
AVAILABILITY_CACHE_TTL_SECONDS = float(
    os.getenv(
        "AVAILABILITY_CACHE_TTL_SECONDS",
        "0" if STORAGE_BACKEND == "dynamodb" else "60",
    )
)
CREATE_RETRY_ATTEMPTS = int(os.getenv("CREATE_RETRY_ATTEMPTS", "3"))
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "2.0"))

# Notification configuration
NOTIFICATIONS_ENABLED = (
    os.getenv("NOTIFICATIONS_ENABLED", "false").lower() == "true"
)
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_TIMEOUT_SECONDS = float(
    os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5")
)

# Tokens are issued by the auth service; only verified here
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Path prefix when served behind the API gateway, e.g. /scheduling_service
ROOT_PATH = os.getenv("ROOT_PATH", "")
