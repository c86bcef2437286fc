"""Association of inline ``#tags`` in card text with the card."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from cardnote.config import config
from cardnote.observability import traced
from cardnote.references.inline_tags import extract_unique_tag_names, is_valid_tag_name
from cardnote.services.card_store import CardStore

logger = logging.getLogger(__name__)


@dataclass
class ContentTagResult:
    """Names of tags newly attached to the card, and of those that failed."""

    added: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ContentTagSynchronizer:
    """Attaches every valid inline tag in a card's text to the card.

    Tags are only ever added; removing ``#name`` from the text leaves the
    association in place, since the user may also have added it by hand.
    """

    def __init__(self, store: CardStore, namespace: Optional[str] = None):
        self.store = store
        self.namespace = namespace or config.user_tag_namespace

    @traced("sync_content_tags")
    async def sync(self, card_id: int, project_id: int, text: str) -> ContentTagResult:
        """Add tags written as ``#name`` in ``text`` that the card lacks.

        Args:
            card_id: Card being saved.
            project_id: Project of the card.
            text: Card text.

        Returns:
            ContentTagResult listing added and failed tag names.
        """
        result = ContentTagResult()

        names = [name for name in extract_unique_tag_names(text) if is_valid_tag_name(name)]
        if not names:
            return result

        try:
            current = await self.store.list_card_tags(card_id)
        except Exception as e:
            logger.warning(f"Could not list tags of card {card_id}: {e}")
            current = []
        current_names = {
            tag.name for tag in current if tag.namespace == self.namespace
        }

        # One get-or-create at a time per card
        for name in names:
            if name in current_names:
                continue
            try:
                tag = await self.store.get_or_create_tag(project_id, name, self.namespace)
                attached = await self.store.associate_tag_with_card(card_id, tag.id)
            except Exception as e:
                logger.warning(f"Failed to sync tag '{name}' for card {card_id}: {e}")
                result.failed.append(name)
                continue
            if attached is False:
                result.failed.append(name)
            else:
                result.added.append(name)

        if result.added or result.failed:
            logger.info(
                f"Inline tags for card {card_id}: added {result.added}, "
                f"failed {result.failed}"
            )
        return result
