import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
import psycopg2
from psycopg2.extensions import make_dsn, parse_dsn

from post_tags.errors import ConfigError


logger = logging.getLogger(__name__)

DEFAULT_DESTINATION_TABLE = "PostTags"
DEFAULT_BATCH_SIZE = 2000
DEFAULT_CONNECT_TIMEOUT = 8

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    dsn: str
    destination_table_name: str = DEFAULT_DESTINATION_TABLE
    allow_drop_destination_table: bool = False
    # Parsed but never applied to the migration; see DESIGN.md.
    only_these_tags: Optional[tuple[str, ...]] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT


def parse_bool(name: str, value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got {value!r}")


def parse_positive_int(name: str, value, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be > 0")
    return number


def parse_tag_list(value: Optional[str]) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    return tuple(item.strip() for item in value.split(",") if item.strip())


def build_dsn() -> str:
    database_url = os.getenv("DATABASE_URL")
    sslmode = os.getenv("DB_SSLMODE")

    if database_url:
        if sslmode and "sslmode=" not in database_url:
            sep = "&" if "?" in database_url else "?"
            database_url = f"{database_url}{sep}sslmode={sslmode}"
        return database_url

    required = {
        "DB_USER": os.getenv("DB_USER"),
        "DB_PASSWORD": os.getenv("DB_PASSWORD"),
        "DB_HOST": os.getenv("DB_HOST"),
        "DB_PORT": os.getenv("DB_PORT"),
        "DB_NAME": os.getenv("DB_NAME"),
    }
    missing = [key for key, val in required.items() if not val]
    if missing:
        raise ConfigError(
            "Missing DB env vars: "
            f"{', '.join(missing)}. Set DATABASE_URL or DB_USER/DB_PASSWORD/DB_HOST/DB_PORT/DB_NAME."
        )
    kwargs = {
        "user": required["DB_USER"],
        "password": required["DB_PASSWORD"],
        "host": required["DB_HOST"],
        "port": required["DB_PORT"],
        "dbname": required["DB_NAME"],
    }
    if sslmode:
        kwargs["sslmode"] = sslmode
    return make_dsn(**kwargs)


def check_dsn(dsn: str) -> str:
    try:
        parse_dsn(dsn)
    except psycopg2.ProgrammingError as exc:
        raise ConfigError(f"DATABASE_URL is not a valid connection string: {exc}") from exc
    return dsn


def load_settings(
    env_file: Optional[Path] = None,
    destination_table_name: Optional[str] = None,
    allow_drop: Optional[bool] = None,
    batch_size: Optional[int] = None,
) -> Settings:
    """Read settings from the environment, after loading ``env_file``.

    Values already present in the process environment win over the file;
    explicit arguments (from the command line) win over both.
    """
    if env_file is not None:
        if not env_file.is_file():
            raise ConfigError(f"Env file not found: {env_file}")
        load_dotenv(env_file)
    else:
        load_dotenv(Path.cwd() / ".env")

    table = destination_table_name or os.getenv("DESTINATION_TABLE_NAME") or DEFAULT_DESTINATION_TABLE
    table = table.strip()
    if not table:
        raise ConfigError("DESTINATION_TABLE_NAME must not be empty")

    if allow_drop is None:
        allow_drop = parse_bool("ALLOW_DROP_DESTINATION_TABLE", os.getenv("ALLOW_DROP_DESTINATION_TABLE"))

    settings = Settings(
        dsn=check_dsn(build_dsn()),
        destination_table_name=table,
        allow_drop_destination_table=allow_drop,
        only_these_tags=parse_tag_list(os.getenv("ONLY_THESE_TAGS")),
        batch_size=parse_positive_int(
            "BATCH_SIZE",
            batch_size if batch_size is not None else os.getenv("BATCH_SIZE"),
            DEFAULT_BATCH_SIZE,
        ),
        connect_timeout=parse_positive_int(
            "DB_CONNECT_TIMEOUT", os.getenv("DB_CONNECT_TIMEOUT"), DEFAULT_CONNECT_TIMEOUT
        ),
    )
    logger.info(
        "Loaded settings: destination=%s allow_drop=%s batch_size=%s",
        settings.destination_table_name,
        settings.allow_drop_destination_table,
        settings.batch_size,
    )
    return settings
