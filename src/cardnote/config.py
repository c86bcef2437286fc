"""Configuration module for cardnote."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the database
_USER_ENV = Path.home() / ".cardnote" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Namespace that holds backlink annotations; must match persisted documents
REFERENCE_NAMESPACE = "system:card_ref"
USER_TAG_NAMESPACE = "user"


class CardNoteConfig(BaseModel):
    """Configuration for cardnote."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("CARDNOTE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("CARDNOTE_DATABASE_PATH", "data/db/cardnote.db")
        )
    )
    # Reference engine configuration
    reference_namespace: str = Field(
        default_factory=lambda: os.getenv(
            "CARDNOTE_REFERENCE_NAMESPACE", REFERENCE_NAMESPACE
        )
    )
    # Tag name used when a reference has neither placeholder nor title
    default_reference_name: str = Field(default="card-ref")
    user_tag_namespace: str = Field(
        default_factory=lambda: os.getenv(
            "CARDNOTE_USER_TAG_NAMESPACE", USER_TAG_NAMESPACE
        )
    )
    max_tag_name_length: int = Field(
        default_factory=lambda: int(os.getenv("CARDNOTE_MAX_TAG_NAME_LENGTH", "100"))
    )
    # Inline #tag sync runs alongside reference sync on save
    inline_tags_enabled: bool = Field(
        default_factory=lambda: os.getenv("CARDNOTE_INLINE_TAGS", "true").lower()
        in ("true", "1", "yes")
    )
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("CARDNOTE_LOG_LEVEL", "INFO")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("CARDNOTE_LOG_DIR"))
            if os.getenv("CARDNOTE_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_namespaces(self) -> "CardNoteConfig":
        """Reject namespace settings that would mix backlinks with user tags."""
        if not self.reference_namespace.strip():
            raise ValueError("reference_namespace cannot be empty")
        if not self.user_tag_namespace.strip():
            raise ValueError("user_tag_namespace cannot be empty")
        if self.reference_namespace == self.user_tag_namespace:
            raise ValueError(
                "reference_namespace must differ from user_tag_namespace"
            )
        if self.max_tag_name_length < 1:
            raise ValueError("max_tag_name_length must be >= 1")
        if self.reference_namespace != REFERENCE_NAMESPACE:
            logger.warning(
                "Using non-default reference namespace '%s'; existing backlinks "
                "stored under '%s' will not be recognized.",
                self.reference_namespace,
                REFERENCE_NAMESPACE,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = CardNoteConfig()
