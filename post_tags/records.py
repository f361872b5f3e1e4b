from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, ClassVar, Dict, Optional, Sequence


class PostHistoryType(IntEnum):
    INITIAL_TAGS = 3
    EDIT_TAGS = 6
    ROLLBACK_TAGS = 9


# History types whose Text column holds the full tag string of the post.
TAG_HISTORY_TYPES = (
    PostHistoryType.INITIAL_TAGS,
    PostHistoryType.EDIT_TAGS,
    PostHistoryType.ROLLBACK_TAGS,
)


class Record:
    """One row of a table. Subclasses map dataclass fields to column names."""

    table: ClassVar[str]
    columns: ClassVar[Dict[str, str]]

    @classmethod
    def from_row(cls, row: Sequence[Any]):
        return cls(*row)

    def values(self) -> Dict[str, Any]:
        return {column: getattr(self, field) for field, column in self.columns.items()}


@dataclass(frozen=True)
class Tag(Record):
    table: ClassVar[str] = "Tags"
    columns: ClassVar[Dict[str, str]] = {"id": "Id", "tag_name": "TagName"}

    id: int
    tag_name: Optional[str]


@dataclass(frozen=True)
class PostHistory(Record):
    table: ClassVar[str] = "PostHistory"
    columns: ClassVar[Dict[str, str]] = {
        "id": "Id",
        "post_history_type_id": "PostHistoryTypeId",
        "post_id": "PostId",
        "creation_date": "CreationDate",
        "text": "Text",
    }

    id: int
    post_history_type_id: int
    post_id: int
    creation_date: Optional[datetime]
    text: Optional[str]


@dataclass(frozen=True)
class PostTag(Record):
    # No fixed table: the destination name is configurable.
    columns: ClassVar[Dict[str, str]] = {"post_id": "PostId", "tag_id": "TagId"}

    post_id: int
    tag_id: int
