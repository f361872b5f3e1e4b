import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator

from post_tags.records import TAG_HISTORY_TYPES, PostHistory, PostHistoryType, PostTag, Tag
from post_tags.schema import prepare_destination_table


logger = logging.getLogger(__name__)

# A tag token is whatever sits between "<" and the next ">", with no "<" inside.
TAG_PATTERN = re.compile(r"<([^<>]*?)>")

PREVIEW_ROWS = 10
PROGRESS_EVERY = 100_000


@dataclass
class WriteStats:
    posts: int = 0
    inserted: int = 0
    unresolved: int = 0


def load_tag_directory(tags: Iterable[Tag], logger: logging.Logger = logger) -> Dict[str, int]:
    directory: Dict[str, int] = {}
    for tag in tags:
        if tag.tag_name is None:
            logger.warning("TagName should not be null for TagId: %s", tag.id)
            continue
        directory[tag.tag_name] = tag.id
    logger.info("Loaded %s tags.", len(directory))
    return directory


def reconcile_history(
    history: Iterable[PostHistory],
    logger: logging.Logger = logger,
    progress_every: int = PROGRESS_EVERY,
) -> Dict[int, str]:
    """Reduce tag history events to the latest tag text of every post.

    Rows may arrive in any order. For each post the event with the greatest
    CreationDate wins; on equal dates the first one seen is kept.
    """
    last_update: Dict[int, datetime] = {}
    tags_text: Dict[int, str] = {}
    processed = 0

    for hist in history:
        processed += 1
        if progress_every and processed % progress_every == 0:
            logger.info("Processed %s history entries (current ID: %s)...", processed, hist.id)

        if hist.creation_date is None:
            logger.warning("CreationDate should not be null for ID: %s", hist.id)
            continue
        if hist.text is None:
            logger.warning("Text should not be null for ID: %s", hist.id)
            continue

        post_id = hist.post_id
        previous = last_update.get(post_id)
        if previous is None:
            if hist.post_history_type_id != PostHistoryType.INITIAL_TAGS:
                logger.warning(
                    "No Initial Tags history event present before this ID: %s for PostId: %s",
                    hist.id,
                    post_id,
                )
        elif previous < hist.creation_date:
            if hist.post_history_type_id == PostHistoryType.INITIAL_TAGS:
                logger.warning(
                    "More than one Initial Tags history event exist for PostId: %s. "
                    "Overwriting previous records.",
                    post_id,
                )
        else:
            continue

        last_update[post_id] = hist.creation_date
        tags_text[post_id] = hist.text

    logger.info("Collected tag text for %s posts from %s history entries.", len(tags_text), processed)
    return tags_text


def extract_tags(text: str) -> Iterator[str]:
    """Yield tag names from a string like ``"<python><list>"``, in order.

    Each call starts a fresh scan.
    """
    for match in TAG_PATTERN.finditer(text):
        yield match.group(1)


def write_associations(
    store,
    table: str,
    tags_text: Dict[int, str],
    directory: Dict[str, int],
    logger: logging.Logger = logger,
    progress_every: int = PROGRESS_EVERY,
) -> WriteStats:
    stats = WriteStats()
    for post_id, text in tags_text.items():
        stats.posts += 1
        if progress_every and stats.posts % progress_every == 0:
            logger.info("Inserted tags for %s posts (current PostId: %s)...", stats.posts, post_id)

        for tag_name in extract_tags(text):
            tag_id = directory.get(tag_name)
            if tag_id is None:
                logger.warning("No tag found for TagName: %s", tag_name)
                stats.unresolved += 1
                continue
            store.insert(table, PostTag(post_id=post_id, tag_id=tag_id))
            stats.inserted += 1
    return stats


def preview_history(store, logger: logging.Logger = logger) -> int:
    where = {"post_history_type_id": TAG_HISTORY_TYPES}
    count = store.count(PostHistory, where=where)
    logger.info("Total entry count: %s", count)
    logger.info("Showing first %s PostHistory entries...", PREVIEW_ROWS)
    for hist in store.stream(PostHistory, where=where, order_by="id", limit=PREVIEW_ROWS):
        logger.info("%s", hist)
    return count


def run_migration(store, settings, logger: logging.Logger = logger) -> Dict[str, Any]:
    table = settings.destination_table_name
    prepare_destination_table(store, table, settings.allow_drop_destination_table, logger=logger)

    if settings.only_these_tags:
        logger.warning(
            "ONLY_THESE_TAGS is set (%s tags) but tag filtering is not applied; all tags are migrated.",
            len(settings.only_these_tags),
        )

    logger.info("Loading the TagName-TagId relation...")
    directory = load_tag_directory(store.stream(Tag), logger=logger)

    logger.info("Scanning the PostHistory entries...")
    history_count = preview_history(store, logger=logger)

    logger.info("Collecting data...")
    history = store.stream(PostHistory, where={"post_history_type_id": TAG_HISTORY_TYPES})
    tags_text = reconcile_history(history, logger=logger)

    logger.info("Inserting collected data...")
    stats = write_associations(store, table, tags_text, directory, logger=logger)

    logger.info("Done.")
    return {
        "tags": len(directory),
        "history_entries": history_count,
        "posts": stats.posts,
        "inserted": stats.inserted,
        "unresolved": stats.unresolved,
    }
