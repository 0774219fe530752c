import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_DB_PATH = "~/Library/Messages/chat.db"


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _float_env(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ArchiveConfig:
    db_path: str = DEFAULT_DB_PATH
    vcf_path: Optional[str] = None
    region: str = "US"
    page_size: int = 100
    context_half_width: int = 50
    search_limit: int = 100
    search_batch_size: int = 1000
    search_timeout: Optional[float] = None
    excluded_services: Tuple[str, ...] = field(default_factory=tuple)
    show_progress: bool = False
    log_level: str = "WARNING"

    @property
    def expanded_db_path(self) -> Path:
        return Path(os.path.expanduser(self.db_path))


def load_config(env_file: Optional[str] = None) -> ArchiveConfig:
    """
    Build configuration from the environment, reading a .env file first.

    Raises:
        ValueError: If a variable holds an invalid value
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    services = os.getenv("IMESSAGE_EXCLUDE_SERVICES", "")
    excluded = tuple(s.strip() for s in services.split(",") if s.strip())

    log_level = os.getenv("IMESSAGE_LOG_LEVEL", "WARNING").strip().upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"IMESSAGE_LOG_LEVEL is not a logging level: {log_level!r}")

    return ArchiveConfig(
        db_path=os.getenv("IMESSAGE_DB_PATH", DEFAULT_DB_PATH).strip().strip('"').strip("'"),
        vcf_path=os.getenv("IMESSAGE_VCF_PATH") or None,
        region=os.getenv("IMESSAGE_REGION", "US").strip() or "US",
        page_size=_int_env("IMESSAGE_PAGE_SIZE", 100, minimum=1),
        context_half_width=_int_env("IMESSAGE_CONTEXT_SIZE", 50),
        search_limit=_int_env("IMESSAGE_SEARCH_LIMIT", 100, minimum=1),
        search_batch_size=_int_env("IMESSAGE_SEARCH_BATCH_SIZE", 1000, minimum=1),
        search_timeout=_float_env("IMESSAGE_SEARCH_TIMEOUT"),
        excluded_services=excluded,
        show_progress=_bool_env("IMESSAGE_SHOW_PROGRESS"),
        log_level=log_level,
    )
