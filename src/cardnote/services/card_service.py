"""Service layer for saving cards."""
import asyncio
import logging
from typing import List, Optional

from cardnote.config import config
from cardnote.exceptions import CardNotFoundError
from cardnote.models.schema import BacklinkAnnotation, Card
from cardnote.observability import traced
from cardnote.services.content_tag_sync import ContentTagSynchronizer
from cardnote.services.reference_sync import ReferenceSynchronizer
from cardnote.storage.card_repository import CardRepository
from cardnote.storage.sql_store import SqlCardStore
from cardnote.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)


class CardService:
    """Saves card text and keeps its tags and backlinks in step with it."""

    def __init__(
        self,
        store: SqlCardStore,
        reference_sync: Optional[ReferenceSynchronizer] = None,
        content_tag_sync: Optional[ContentTagSynchronizer] = None,
    ):
        """Initialize the service.

        Args:
            store: SQLite-backed store giving access to the repositories.
            reference_sync: Reference synchronizer. Built over ``store`` if None.
            content_tag_sync: Inline tag synchronizer. Built over ``store`` if None.
        """
        self.store = store
        self.reference_sync = reference_sync or ReferenceSynchronizer(store)
        self.content_tag_sync = content_tag_sync or ContentTagSynchronizer(store)

    @property
    def cards(self) -> CardRepository:
        return self.store.cards

    @property
    def tags(self) -> TagRepository:
        return self.store.tags

    @traced("save_card")
    async def save_content(self, card_id: int, text: str) -> Card:
        """Save new text for a card.

        Inline tags are attached, the text is normalized and its references
        synchronized, and the normalized text is stored as the card content.

        Args:
            card_id: The card to save.
            text: Raw text from the editor.

        Returns:
            The updated card.

        Raises:
            CardNotFoundError: If the card does not exist.
        """
        card = await asyncio.to_thread(self.cards.get, card_id)
        if card is None:
            raise CardNotFoundError(card_id)

        if config.inline_tags_enabled:
            await self.content_tag_sync.sync(
                card_id=card_id, project_id=card.project_id, text=text
            )
        parsed = await self.reference_sync.sync(
            source_card_id=card_id, project_id=card.project_id, text=text
        )
        if parsed.text != text:
            logger.debug(f"Normalized references in card {card_id}")
        return await asyncio.to_thread(self.cards.update_content, card_id, parsed.text)

    async def get_backlinks(self, card_id: int) -> List[BacklinkAnnotation]:
        """References in other cards that point at ``card_id``."""
        return await asyncio.to_thread(
            self.tags.find_backlinks, card_id, self.reference_sync.namespace
        )
