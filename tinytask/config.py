"""
Environment-driven configuration for the TinyTask service.
"""
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def get_db_path() -> str:
    """Path to the SQLite database file."""
    return os.getenv("TINYTASK_DB_PATH", os.path.join(os.getcwd(), "data", "tinytask.db"))


def get_busy_timeout() -> float:
    """Seconds a connection waits on a locked database before failing."""
    return float(os.getenv("TINYTASK_DB_BUSY_TIMEOUT", "30"))


def get_slow_query_threshold() -> float:
    """Queries slower than this (seconds) are logged at WARNING."""
    return float(os.getenv("TINYTASK_DB_QUERY_SLOW_THRESHOLD", "0.1"))


def query_logging_enabled() -> bool:
    return _env_bool("TINYTASK_DB_ENABLE_QUERY_LOGGING", "true")


def get_service_port() -> int:
    return int(os.getenv("TINYTASK_SERVICE_PORT", "8004"))


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()
