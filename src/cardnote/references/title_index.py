"""Title lookup used to resolve references to cards."""
import logging
from typing import Dict, Iterable, Optional, Set

from cardnote.models.schema import CardListItem, TitleResolution

logger = logging.getLogger(__name__)


class TitleIndex:
    """Maps trimmed card titles to the single card carrying that title.

    A title shared by two or more cards is ambiguous and never resolves,
    so a reference cannot silently link to the wrong card. The index is
    built per synchronization run and is never persisted.
    """

    def __init__(
        self,
        cards: Iterable[CardListItem],
        exclude_card_id: Optional[int] = None,
    ):
        """Build the index.

        Args:
            cards: Cards of the project.
            exclude_card_id: Card left out of the index, normally the card
                whose references are being resolved.
        """
        self._unique: Dict[str, CardListItem] = {}
        self._ambiguous: Set[str] = set()

        for card in cards:
            if card.id == exclude_card_id or not card.title:
                continue
            key = card.title.strip()
            if not key or key in self._ambiguous:
                continue
            if key in self._unique:
                del self._unique[key]
                self._ambiguous.add(key)
            else:
                self._unique[key] = card

        if self._ambiguous:
            logger.debug(
                f"Title index has {len(self._ambiguous)} ambiguous title(s)"
            )

    def resolve(self, title: str) -> TitleResolution:
        """Resolve a reference title.

        Args:
            title: Title as written in the reference; surrounding whitespace
                is ignored.

        Returns:
            TitleResolution that is unique, ambiguous, or not found.
        """
        key = title.strip()
        if key in self._ambiguous:
            return TitleResolution.ambiguous()
        card = self._unique.get(key)
        if card is None:
            return TitleResolution.not_found()
        return TitleResolution.unique(card)

    @property
    def ambiguous_titles(self) -> Set[str]:
        return set(self._ambiguous)

    def __len__(self) -> int:
        return len(self._unique) + len(self._ambiguous)

    def __contains__(self, title: str) -> bool:
        key = title.strip()
        return key in self._unique or key in self._ambiguous
