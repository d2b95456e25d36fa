
# ETL Configuration
import os
import logging


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"Invalid integer for {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logging.warning(f"Invalid number for {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_KEY = (
        os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        or os.environ.get("SUPABASE_KEY")
        or os.environ.get("SUPABASE_ANON_KEY")
    )

    # Load engine
    LOAD_BATCH_SIZE = _env_int("ETL_LOAD_BATCH_SIZE", 100)
    BATCH_INTERVAL_SECONDS = _env_float("ETL_BATCH_INTERVAL", 0.2)
    RECORD_INTERVAL_SECONDS = _env_float("ETL_RECORD_INTERVAL", 0.05)
    SKIP_EXISTING = _env_bool("ETL_SKIP_EXISTING", True)

    # Quarantine
    QUARANTINE_TABLE = os.environ.get("ETL_QUARANTINE_TABLE", "dirty_data")
    QUARANTINE_BATCH_SIZE = _env_int("ETL_QUARANTINE_BATCH_SIZE", 100)
    QUARANTINE_FALLBACK_PATH = os.environ.get("ETL_QUARANTINE_FALLBACK", "dirty_data_backup.jsonl")

    INSURANCE_DELAY_THRESHOLD_MINUTES = _env_int("INSURANCE_DELAY_THRESHOLD", 240)

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "temp_uploads")
    ALLOWED_EXTENSIONS = {'csv'}
    LOG_FILE = os.environ.get("LOG_FILE", "server.log")
