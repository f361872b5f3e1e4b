"""
Rebuild the PostTags table from PostHistory.

For every post, the latest Initial/Edit/Rollback Tags history entry holds the
post's tag string ("<python><list>"). Each tag name is resolved against the
Tags table and written to the destination table as a (PostId, TagId) row.

- Loads DB config from .env (DATABASE_URL, or DB_USER/DB_PASSWORD/DB_HOST/
  DB_PORT/DB_NAME; optionally DB_SSLMODE, DB_CONNECT_TIMEOUT).
- Refuses to run if the destination table exists, unless
  ALLOW_DROP_DESTINATION_TABLE=true or --allow-drop.
- Not resumable: a failed run keeps the rows it already inserted.

Exit codes: 0 done, 1 bad configuration, 2 destination table exists,
3 database error.
"""

import argparse
import logging
from pathlib import Path

from post_tags.config import load_settings
from post_tags.db import Store, get_connection
from post_tags.errors import ConfigError, DestinationTableExistsError, StorageError
from post_tags.pipeline import run_migration


logger = logging.getLogger("rebuild_post_tags")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(log_path: Path | None) -> None:
    if log_path:
        # Raises OSError when the path cannot be opened.
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.basicConfig(level=logging.INFO, handlers=[handler])
    else:
        logging.basicConfig(level=logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rebuild the PostTags table from PostHistory tag snapshots.")
    parser.add_argument("--env-file", type=Path, help="Path to the .env file (default: ./.env if present).")
    parser.add_argument("--log-path", type=Path, help="Write the log to this file instead of stderr.")
    parser.add_argument("--destination-table", help="Destination table name (overrides DESTINATION_TABLE_NAME).")
    parser.add_argument(
        "--allow-drop",
        action="store_true",
        default=None,
        help="Drop the destination table if it already exists.",
    )
    parser.add_argument("--batch-size", type=int, help="Rows fetched per round trip while streaming.")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        configure_logging(args.log_path)
    except OSError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Cannot open log file %s: %s", args.log_path, exc)
        return 1

    try:
        settings = load_settings(
            env_file=args.env_file,
            destination_table_name=args.destination_table,
            allow_drop=args.allow_drop,
            batch_size=args.batch_size,
        )
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    try:
        conn = get_connection(settings)
    except StorageError as exc:
        logger.error("%s (%s)", exc, exc.__cause__)
        return 3

    store = Store(conn, itersize=settings.batch_size)
    try:
        summary = run_migration(store, settings)
        logger.info("Summary: %s", summary)
        return 0
    except DestinationTableExistsError as exc:
        logger.error("%s", exc)
        return 2
    except StorageError:
        logger.exception("Migration failed. Rows inserted so far were kept.")
        return 3
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
