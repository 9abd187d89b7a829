"""
Configuration for cablekit.

Settings come from environment variables, optionally loaded from a .env file
with python-dotenv. Database settings follow the Supabase naming
(SUPABASE_DB_URL, or SUPABASE_DB_HOST/PORT/NAME/USER/PASSWORD).
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_RUN_LIST_LIMIT = 50


@dataclass(frozen=True)
class Settings:
    """Runtime settings."""
    db_url: Optional[str] = None
    db_host: Optional[str] = None
    db_port: int = 5432
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_min_conn: int = 1
    db_max_conn: int = 10
    run_list_limit: int = DEFAULT_RUN_LIST_LIMIT
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from the environment.

    Args:
        env_file: Optional path to a .env file. Without one, the nearest .env
                  in the working directory or its parents is used. Values
                  already present in the environment are not overridden.

    Returns:
        Settings instance
    """
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")
        else:
            logger.warning(f"No .env file found at {env_path}")
    else:
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

    db_url = os.getenv("SUPABASE_DB_URL")
    return Settings(
        db_url=db_url.strip() if db_url and db_url.strip() else None,
        db_host=os.getenv("SUPABASE_DB_HOST"),
        db_port=_int_env("SUPABASE_DB_PORT", 5432),
        db_name=os.getenv("SUPABASE_DB_NAME"),
        db_user=os.getenv("SUPABASE_DB_USER"),
        db_password=os.getenv("SUPABASE_DB_PASSWORD"),
        db_min_conn=_int_env("CABLEKIT_DB_MIN_CONN", 1),
        db_max_conn=_int_env("CABLEKIT_DB_MAX_CONN", 10),
        run_list_limit=_int_env("CABLEKIT_RUN_LIST_LIMIT", DEFAULT_RUN_LIST_LIMIT),
        log_level=os.getenv("CABLEKIT_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts (library code never calls this)."""
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
