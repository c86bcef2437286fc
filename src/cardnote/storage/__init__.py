"""Storage layer for cardnote."""

from cardnote.storage.card_repository import CardRepository, ProjectRepository
from cardnote.storage.sql_store import SqlCardStore
from cardnote.storage.tag_repository import TagRepository

__all__ = [
    "CardRepository",
    "ProjectRepository",
    "SqlCardStore",
    "TagRepository",
]
