import logging

from psycopg2 import sql

from post_tags.errors import DestinationTableExistsError
from post_tags.records import Tag


logger = logging.getLogger(__name__)


def create_table_statement(table: str) -> sql.Composed:
    return sql.SQL(
        """
        CREATE TABLE {table} (
            "Id" SERIAL PRIMARY KEY,
            "PostId" INTEGER NOT NULL,
            "TagId" INTEGER NOT NULL
                REFERENCES {tags} ("Id") ON UPDATE RESTRICT ON DELETE RESTRICT
        )
        """
    ).format(table=sql.Identifier(table), tags=sql.Identifier(Tag.table))


def prepare_destination_table(store, table: str, allow_drop: bool, logger: logging.Logger = logger) -> None:
    logger.info("Creating the destination table %s...", table)
    if allow_drop:
        store.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(table)))
    elif store.table_exists(table):
        logger.error("The destination table %s already exists. Refusing to work.", table)
        raise DestinationTableExistsError(
            f"The destination table {table} already exists. "
            "Set ALLOW_DROP_DESTINATION_TABLE=true or pass --allow-drop to replace it."
        )
    store.execute(create_table_statement(table))
    logger.info("Created the destination table.")
