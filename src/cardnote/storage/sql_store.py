"""SQLite-backed CardStore for the synchronizers."""
import asyncio
from typing import Any, Dict, List, Optional

from cardnote.models.db_models import get_session_factory
from cardnote.models.schema import CardListItem, TagRecord
from cardnote.storage.card_repository import CardRepository
from cardnote.storage.tag_repository import TagRepository


class SqlCardStore:
    """CardStore over the SQLAlchemy repositories.

    Repository calls are blocking; each one runs in a worker thread so the
    synchronizers can issue them concurrently from the event loop.
    """

    def __init__(
        self,
        cards: Optional[CardRepository] = None,
        tags: Optional[TagRepository] = None,
        engine=None,
    ):
        """Initialize the store.

        Args:
            cards: Card repository. Built from ``engine`` if None.
            tags: Tag repository. Built from ``engine`` if None.
            engine: SQLAlchemy engine used when a repository is not given.
        """
        if cards is None or tags is None:
            session_factory = get_session_factory(engine)
            cards = cards or CardRepository(session_factory)
            tags = tags or TagRepository(session_factory)
        self.cards = cards
        self.tags = tags

    async def list_cards_by_project(self, project_id: int) -> List[CardListItem]:
        return await asyncio.to_thread(self.cards.list_by_project, project_id)

    async def list_card_tags(self, card_id: int) -> List[TagRecord]:
        return await asyncio.to_thread(self.tags.get_tags_for_card, card_id)

    async def create_tag(
        self,
        project_id: int,
        name: str,
        namespace: str,
        annotation: Optional[Dict[str, Any]] = None,
    ) -> TagRecord:
        return await asyncio.to_thread(
            self.tags.create, project_id, name, namespace, annotation
        )

    async def get_or_create_tag(
        self, project_id: int, name: str, namespace: str
    ) -> TagRecord:
        return await asyncio.to_thread(self.tags.get_or_create, project_id, name, namespace)

    async def update_tag_name(self, tag_id: int, name: str) -> bool:
        await asyncio.to_thread(self.tags.update_name, tag_id, name)
        return True

    async def update_tag_annotation(self, tag_id: int, annotation: Dict[str, Any]) -> bool:
        await asyncio.to_thread(self.tags.update_annotation, tag_id, annotation)
        return True

    async def delete_tag(self, tag_id: int) -> bool:
        return await asyncio.to_thread(self.tags.delete, tag_id)

    async def associate_tag_with_card(self, card_id: int, tag_id: int) -> bool:
        await asyncio.to_thread(self.tags.add_tag_to_card, card_id, tag_id)
        return True
