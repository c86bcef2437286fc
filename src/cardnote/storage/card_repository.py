"""Repository for card and project storage and retrieval."""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from cardnote.exceptions import CardNotFoundError, ErrorCode, StorageError, ValidationError
from cardnote.models.db_models import DBCard, DBProject
from cardnote.models.schema import Card, CardListItem, Project, utc_now

logger = logging.getLogger(__name__)


def _to_card(db_card: DBCard) -> Card:
    return Card(
        id=db_card.id,
        project_id=db_card.project_id,
        title=db_card.title,
        summary=db_card.summary,
        content=db_card.content,
        created_at=db_card.created_at,
        updated_at=db_card.updated_at,
    )


class ProjectRepository:
    """Repository for projects."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def create(self, project: Project) -> Project:
        """Create a new project and return it with its assigned ID."""
        with self.session_factory() as session:
            db_project = DBProject(
                name=project.name,
                description=project.description,
                created_at=project.created_at,
            )
            session.add(db_project)
            session.commit()
            logger.info(f"Created project: {db_project.id}")
            return project.model_copy(update={"id": db_project.id})

    def get(self, project_id: int) -> Optional[Project]:
        """Get a project by ID."""
        with self.session_factory() as session:
            db_project = session.get(DBProject, project_id)
            if not db_project:
                return None
            return Project(
                id=db_project.id,
                name=db_project.name,
                description=db_project.description,
                created_at=db_project.created_at,
            )


class CardRepository:
    """Repository for managing cards.

    Provides CRUD operations for cards in the database.
    """

    def __init__(self, session_factory):
        """Initialize the card repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def create(self, card: Card) -> Card:
        """Create a new card.

        Args:
            card: Card to create; its ID is ignored.

        Returns:
            The created card with its assigned ID.

        Raises:
            ValidationError: If the project does not exist.
            StorageError: If the insert fails.
        """
        try:
            with self.session_factory() as session:
                if not session.get(DBProject, card.project_id):
                    raise ValidationError(
                        f"Project '{card.project_id}' not found",
                        field="project_id",
                        value=card.project_id,
                    )
                db_card = DBCard(
                    project_id=card.project_id,
                    title=card.title,
                    summary=card.summary,
                    content=card.content,
                    created_at=card.created_at,
                    updated_at=card.updated_at,
                )
                session.add(db_card)
                session.commit()
                return _to_card(db_card)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to create card",
                operation="create_card",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def get(self, card_id: int) -> Optional[Card]:
        """Get a card by ID.

        Returns:
            The card if found, None otherwise.
        """
        with self.session_factory() as session:
            db_card = session.get(DBCard, card_id)
            if not db_card:
                return None
            return _to_card(db_card)

    def list_by_project(self, project_id: int) -> List[CardListItem]:
        """List a project's cards without their content, ordered by ID."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBCard.id, DBCard.project_id, DBCard.title, DBCard.summary)
                .where(DBCard.project_id == project_id)
                .order_by(DBCard.id)
            ).all()
            return [
                CardListItem(id=row.id, project_id=row.project_id, title=row.title, summary=row.summary)
                for row in rows
            ]

    def update_content(self, card_id: int, content: str) -> Card:
        """Replace a card's content.

        Raises:
            CardNotFoundError: If the card does not exist.
        """
        with self.session_factory() as session:
            db_card = session.get(DBCard, card_id)
            if not db_card:
                raise CardNotFoundError(card_id)
            db_card.content = content
            db_card.updated_at = utc_now()
            session.commit()
            return _to_card(db_card)

    def update_title(self, card_id: int, title: Optional[str]) -> Card:
        """Change a card's title.

        Raises:
            CardNotFoundError: If the card does not exist.
        """
        with self.session_factory() as session:
            db_card = session.get(DBCard, card_id)
            if not db_card:
                raise CardNotFoundError(card_id)
            db_card.title = title
            db_card.updated_at = utc_now()
            session.commit()
            return _to_card(db_card)
