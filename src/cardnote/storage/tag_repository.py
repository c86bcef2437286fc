"""Repository for tag storage and retrieval."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from cardnote.config import config
from cardnote.exceptions import (
    CardNotFoundError,
    ErrorCode,
    StorageError,
    TagNotFoundError,
)
from cardnote.models.db_models import DBCard, DBTag, card_tags
from cardnote.models.schema import BacklinkAnnotation, TagRecord

logger = logging.getLogger(__name__)


def _to_record(db_tag: DBTag) -> TagRecord:
    return TagRecord(
        id=db_tag.id,
        project_id=db_tag.project_id,
        name=db_tag.name,
        namespace=db_tag.namespace,
        color=db_tag.color,
        annotation=dict(db_tag.annotation) if db_tag.annotation is not None else None,
    )


class TagRepository:
    """Repository for managing tags.

    Provides CRUD operations for tags in the database. Tags in the
    reference namespace carry backlink annotations.
    """

    def __init__(self, session_factory):
        """Initialize the tag repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def create(
        self,
        project_id: int,
        name: str,
        namespace: Optional[str] = None,
        annotation: Optional[Dict[str, Any]] = None,
        color: Optional[str] = None,
    ) -> TagRecord:
        """Create a new tag.

        Args:
            project_id: Owning project.
            name: Tag name.
            namespace: Tag namespace. Defaults to the user namespace.
            annotation: Optional structured payload.
            color: Optional display color.

        Returns:
            The created tag with its assigned ID.

        Raises:
            StorageError: If the insert fails.
        """
        db_tag = DBTag(
            project_id=project_id,
            name=name,
            namespace=namespace or config.user_tag_namespace,
            annotation=annotation,
            color=color,
        )
        try:
            with self.session_factory() as session:
                session.add(db_tag)
                session.commit()
                return _to_record(db_tag)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to create tag '{name}'",
                operation="create_tag",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def get(self, tag_id: int) -> Optional[TagRecord]:
        """Get a tag by ID.

        Args:
            tag_id: The tag ID.

        Returns:
            The tag if found, None otherwise.
        """
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            if not db_tag:
                return None
            return _to_record(db_tag)

    def get_or_create(
        self, project_id: int, name: str, namespace: Optional[str] = None
    ) -> TagRecord:
        """Get a project's tag by name and namespace, creating it if missing.

        Args:
            project_id: Owning project.
            name: Tag name.
            namespace: Tag namespace. Defaults to the user namespace.

        Returns:
            The existing or newly created tag.
        """
        namespace = namespace or config.user_tag_namespace
        with self.session_factory() as session:
            db_tag = session.scalar(
                select(DBTag).where(
                    (DBTag.project_id == project_id) &
                    (DBTag.name == name) &
                    (DBTag.namespace == namespace)
                )
            )
            if db_tag:
                return _to_record(db_tag)
        return self.create(project_id, name, namespace)

    def update_name(self, tag_id: int, name: str) -> TagRecord:
        """Rename a tag.

        Raises:
            TagNotFoundError: If the tag does not exist.
        """
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            if not db_tag:
                raise TagNotFoundError(tag_id)
            db_tag.name = name
            session.commit()
            return _to_record(db_tag)

    def update_annotation(self, tag_id: int, annotation: Dict[str, Any]) -> TagRecord:
        """Replace a tag's annotation payload.

        Raises:
            TagNotFoundError: If the tag does not exist.
        """
        with self.session_factory() as session:
            db_tag = session.get(DBTag, tag_id)
            if not db_tag:
                raise TagNotFoundError(tag_id)
            db_tag.annotation = dict(annotation)
            session.commit()
            return _to_record(db_tag)

    def delete(self, tag_id: int) -> bool:
        """Delete a tag and its card associations.

        Returns:
            True if the tag was deleted, False if it did not exist.

        Raises:
            StorageError: If the delete fails.
        """
        try:
            with self.session_factory() as session:
                db_tag = session.get(DBTag, tag_id)
                if not db_tag:
                    return False
                session.delete(db_tag)
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete tag {tag_id}",
                operation="delete_tag",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e

    def get_tags_for_card(self, card_id: int) -> List[TagRecord]:
        """Get all tags of a card, in every namespace.

        Args:
            card_id: The card ID.

        Returns:
            List of tags ordered by ID.

        Raises:
            StorageError: If the query fails.
        """
        try:
            with self.session_factory() as session:
                db_tags = session.scalars(
                    select(DBTag)
                    .join(card_tags, DBTag.id == card_tags.c.tag_id)
                    .where(card_tags.c.card_id == card_id)
                    .order_by(DBTag.id)
                ).all()
                return [_to_record(tag) for tag in db_tags]
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to list tags of card {card_id}",
                operation="get_tags_for_card",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def add_tag_to_card(self, card_id: int, tag_id: int) -> None:
        """Attach a tag to a card. Attaching twice is a no-op.

        Raises:
            CardNotFoundError: If the card does not exist.
            TagNotFoundError: If the tag does not exist.
        """
        with self.session_factory() as session:
            db_card = session.get(DBCard, card_id)
            if not db_card:
                raise CardNotFoundError(card_id)
            db_tag = session.get(DBTag, tag_id)
            if not db_tag:
                raise TagNotFoundError(tag_id)
            if db_tag not in db_card.tags:
                db_card.tags.append(db_tag)
                session.commit()

    def remove_tag_from_card(self, card_id: int, tag_id: int) -> bool:
        """Detach a tag from a card.

        Returns:
            True if the association was removed, False if it wasn't present.
        """
        with self.session_factory() as session:
            result = session.execute(
                card_tags.delete().where(
                    (card_tags.c.card_id == card_id) & (card_tags.c.tag_id == tag_id)
                )
            )
            session.commit()
            return result.rowcount > 0

    def find_backlinks(
        self, target_card_id: int, namespace: Optional[str] = None
    ) -> List[BacklinkAnnotation]:
        """Find the references pointing at a card.

        Args:
            target_card_id: The referenced card.
            namespace: Reference namespace. Defaults to config.

        Returns:
            Backlink annotations whose target is the card, ordered by tag ID.
            Tags with unreadable annotations are skipped.
        """
        namespace = namespace or config.reference_namespace
        with self.session_factory() as session:
            db_tags = session.scalars(
                select(DBTag)
                .where(DBTag.namespace == namespace)
                .where(DBTag.annotation["targetCardId"].as_integer() == target_card_id)
                .order_by(DBTag.id)
            ).all()
            backlinks = []
            for db_tag in db_tags:
                backlink = _to_record(db_tag).backlink
                if backlink is None:
                    logger.debug(f"Skipping unreadable backlink tag {db_tag.id}")
                    continue
                backlinks.append(backlink)
            return backlinks
