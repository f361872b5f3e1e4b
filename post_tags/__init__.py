"""Rebuild the PostTags table from PostHistory tag snapshots."""

__version__ = "0.1.0"
