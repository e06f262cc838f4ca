"""Settings resolved from CLI options and environment variables."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENV_PREFIX = "WORKGRAPH"

DEFAULT_DB_PATH = Path(".workgraph") / "tasks.db"
DEFAULT_LOG_LEVEL = "WARNING"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v.strip()


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True)
class Settings:
    db_path: Path
    log_level: str


def load_settings(db_path: Optional[str] = None, verbose: bool = False) -> Settings:
    """
    Resolve settings, highest precedence first:

    - explicit arguments (the CLI's ``--db`` and ``--verbose``)
    - ``WORKGRAPH_DB`` / ``WORKGRAPH_LOG_LEVEL``
    - defaults (``.workgraph/tasks.db``, WARNING)
    """
    if db_path:
        path = Path(db_path).expanduser()
    else:
        path = _env_path(_k("DB"), DEFAULT_DB_PATH)

    if verbose:
        level = "DEBUG"
    else:
        level = _env(_k("LOG_LEVEL"), DEFAULT_LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(level), int):
            level = DEFAULT_LOG_LEVEL

    return Settings(db_path=path, log_level=level)


def setup_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
