"""Collaborator interface consumed by the synchronizers."""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from cardnote.models.schema import CardListItem, TagRecord


@runtime_checkable
class CardStore(Protocol):
    """Async access to cards and tags.

    Implementations signal failure by raising (typically StorageError).
    Write methods may also return False to report a failure without raising.
    """

    async def list_cards_by_project(self, project_id: int) -> List[CardListItem]:
        """List the cards of a project."""
        ...

    async def list_card_tags(self, card_id: int) -> List[TagRecord]:
        """List all tags associated with a card, in every namespace."""
        ...

    async def create_tag(
        self,
        project_id: int,
        name: str,
        namespace: str,
        annotation: Optional[Dict[str, Any]] = None,
    ) -> TagRecord:
        """Create a tag and return it with its store-assigned ID."""
        ...

    async def get_or_create_tag(
        self, project_id: int, name: str, namespace: str
    ) -> TagRecord:
        """Return the project's tag with this name and namespace, creating it if needed."""
        ...

    async def update_tag_name(self, tag_id: int, name: str) -> Optional[bool]:
        """Rename a tag."""
        ...

    async def update_tag_annotation(
        self, tag_id: int, annotation: Dict[str, Any]
    ) -> Optional[bool]:
        """Replace a tag's annotation payload."""
        ...

    async def delete_tag(self, tag_id: int) -> Optional[bool]:
        """Delete a tag and its card associations."""
        ...

    async def associate_tag_with_card(self, card_id: int, tag_id: int) -> Optional[bool]:
        """Attach a tag to a card."""
        ...
