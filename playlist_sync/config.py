"""Environment-based configuration and logging setup."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATA_DIR = Path("/config/playlist_sync")
DEFAULT_STALE_CLAIM_SECONDS = 30 * 60

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Required configuration is missing or invalid."""
    pass


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    data_dir: Path
    db_path: Path
    throttle_seconds: float = 0.15
    retry_not_found: bool = False
    stale_claim_seconds: float = DEFAULT_STALE_CLAIM_SECONDS
    log_level: str = "INFO"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "playlist_sync.log"

    @property
    def status_file(self) -> Path:
        return self.data_dir / "sync_status.json"


def load_settings() -> Settings:
    data_dir = Path(os.environ.get("PLAYLIST_SYNC_DATA_DIR", str(DEFAULT_DATA_DIR)))
    db_path = Path(os.environ.get("PLAYLIST_SYNC_DB_PATH", str(data_dir / "playlist_sync.sqlite3")))

    try:
        throttle = float(os.environ.get("SYNC_THROTTLE_SECONDS", "0.15"))
    except ValueError as e:
        raise ConfigError(f"SYNC_THROTTLE_SECONDS must be a number: {e}")
    if throttle < 0:
        raise ConfigError("SYNC_THROTTLE_SECONDS must not be negative")

    try:
        stale_claim = float(os.environ.get("SYNC_STALE_CLAIM_SECONDS", str(DEFAULT_STALE_CLAIM_SECONDS)))
    except ValueError as e:
        raise ConfigError(f"SYNC_STALE_CLAIM_SECONDS must be a number: {e}")
    if stale_claim <= 0:
        raise ConfigError("SYNC_STALE_CLAIM_SECONDS must be positive")

    return Settings(
        data_dir=data_dir,
        db_path=db_path,
        throttle_seconds=throttle,
        retry_not_found=_env_bool("SYNC_RETRY_NOT_FOUND"),
        stale_claim_seconds=stale_claim,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


def load_config(required: list[str], optional: list[str] | None = None) -> dict:
    """Read named environment variables. Raises ConfigError listing any missing."""
    config = {}
    missing = []

    for var in required:
        value = os.environ.get(var)
        if value:
            config[var] = value
        else:
            missing.append(var)

    for var in optional or []:
        config[var] = os.environ.get(var) or None

    if missing:
        raise ConfigError(f"Missing config: {', '.join(missing)}")

    return config


def setup_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level, logging.INFO)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.FileHandler(settings.log_file, encoding="utf-8"),
            logging.StreamHandler()
        ]
    )
    # Discovery client is noisy at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
