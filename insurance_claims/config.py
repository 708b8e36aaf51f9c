from dotenv import load_dotenv
import os

# Load .env into environment variables
load_dotenv()


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def get_valid_api_keys() -> set[str]:
    keys = os.getenv("MY_API_KEYS", "")
    return {k.strip() for k in keys.split(",") if k.strip()}


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///insurance_claims.db")


def get_sql_echo() -> bool:
    return _flag("SQL_ECHO")


def get_audit_webhook_url() -> str | None:
    url = os.getenv("AUDIT_WEBHOOK_URL", "").strip()
    return url or None


def get_audit_webhook_timeout() -> float:
    return float(os.getenv("AUDIT_WEBHOOK_TIMEOUT", "5"))


def get_default_display_currency() -> str:
    return os.getenv("DEFAULT_DISPLAY_CURRENCY", "USD").strip().upper()


def get_claim_number_max_attempts() -> int:
    return max(1, int(os.getenv("CLAIM_NUMBER_MAX_ATTEMPTS", "5")))


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def is_dev_mode() -> bool:
    return os.environ.get("DEV_MODE") == "1"
