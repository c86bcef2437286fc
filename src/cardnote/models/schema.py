"""Data models for cardnote."""

import datetime
import secrets
import string
import time
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

_BASE36_ALPHABET = string.digits + string.ascii_lowercase

# Random suffix length; 36**6 ~ 2.2e9 values per millisecond
_REF_ID_RANDOM_LENGTH = 6


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_ref_id() -> str:
    """Generate a reference ID for a newly written card reference.

    Returns:
        Base-36 milliseconds since the epoch followed by six random base-36
        characters. IDs from different milliseconds sort by creation time;
        IDs within the same millisecond differ by their random suffix.
    """
    now = to_base36(time.time_ns() // 1_000_000)
    rand = "".join(
        secrets.choice(_BASE36_ALPHABET) for _ in range(_REF_ID_RANDOM_LENGTH)
    )
    return f"{now}{rand}"


class ReferenceToken(BaseModel):
    """One occurrence of ``[[title]](placeholder)<!--ref:id-->`` in card text."""

    title: str = Field(..., description="Trimmed title of the target card")
    placeholder: str = Field(
        default="", description="Visible label, kept verbatim (may be empty)"
    )
    ref_id: str = Field(..., description="Stable identifier of this occurrence")
    index: int = Field(..., ge=0, description="Offset of the token in normalized text")
    raw: str = Field(..., description="Normalized literal text of the token")

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("ref_id")
    @classmethod
    def validate_ref_id(cls, v: str) -> str:
        """Validate that the ref id is not empty."""
        if not v:
            raise ValueError("Reference ID cannot be empty")
        return v

    def display_name(self, default: str = "card-ref") -> str:
        """Name used for the backlink tag: placeholder, then title, then default."""
        return self.placeholder.strip() or self.title.strip() or default


class ReferenceParseResult(BaseModel):
    """Normalized text plus the references found in it, ordered by offset."""

    text: str
    tokens: List[ReferenceToken] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def ref_ids(self) -> List[str]:
        return [token.ref_id for token in self.tokens]


class AnnotationType(str, Enum):
    """Discriminator stored in a tag annotation's ``type`` field."""

    CARD_REF = "card_ref"  # Backlink created by reference sync
    NORMAL = "normal"  # Ordinary user tag


class BacklinkAnnotation(BaseModel):
    """Annotation payload of a backlink tag.

    Serialized with the camelCase field names used by persisted documents.
    """

    type: Literal["card_ref"] = AnnotationType.CARD_REF.value
    ref_id: str = Field(..., alias="refId")
    source_card_id: int = Field(..., alias="sourceCardId")
    target_card_id: int = Field(..., alias="targetCardId")
    title_snapshot: str = Field(..., alias="titleSnapshot")
    placeholder: str = Field(default="")

    model_config = {"populate_by_name": True, "frozen": True, "extra": "ignore"}

    @field_validator("ref_id")
    @classmethod
    def validate_ref_id(cls, v: str) -> str:
        """Validate that the ref id is not blank."""
        if not v.strip():
            raise ValueError("refId cannot be blank")
        return v

    @classmethod
    def for_token(
        cls, token: ReferenceToken, source_card_id: int, target_card_id: int
    ) -> "BacklinkAnnotation":
        """Build the annotation that materializes a resolved token."""
        return cls(
            ref_id=token.ref_id,
            source_card_id=source_card_id,
            target_card_id=target_card_id,
            title_snapshot=token.title,
            placeholder=token.placeholder,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire representation stored on the tag."""
        return self.model_dump(by_alias=True)


class PlainTagAnnotation(BaseModel):
    """Annotation payload of an ordinary user tag."""

    type: Literal["normal"] = AnnotationType.NORMAL.value

    model_config = {"frozen": True, "extra": "allow"}


TagAnnotation = Annotated[
    Union[BacklinkAnnotation, PlainTagAnnotation], Field(discriminator="type")
]
_tag_annotation_adapter = TypeAdapter(TagAnnotation)


def parse_tag_annotation(
    blob: Optional[Dict[str, Any]],
) -> Optional[Union[BacklinkAnnotation, PlainTagAnnotation]]:
    """Parse a stored annotation blob into its typed variant.

    Returns:
        The typed annotation, or None if the blob is missing or unreadable.
    """
    if not isinstance(blob, dict):
        return None
    try:
        return _tag_annotation_adapter.validate_python(blob)
    except ValidationError:
        return None


class TagRecord(BaseModel):
    """A tag as listed for a card, including its opaque annotation."""

    id: int = Field(..., description="Store-assigned tag ID")
    project_id: Optional[int] = Field(default=None)
    name: str = Field(..., description="Tag name")
    namespace: str = Field(default="user", description="Tag namespace")
    color: Optional[str] = Field(default=None)
    annotation: Optional[Dict[str, Any]] = Field(
        default=None, description="Opaque structured payload"
    )

    @property
    def ref_id(self) -> Optional[str]:
        """The annotation's refId, or None when absent or unreadable."""
        if not isinstance(self.annotation, dict):
            return None
        ref_id = self.annotation.get("refId")
        if isinstance(ref_id, str) and ref_id.strip():
            return ref_id
        return None

    @property
    def backlink(self) -> Optional[BacklinkAnnotation]:
        """The fully typed backlink annotation, if the payload is one."""
        parsed = parse_tag_annotation(self.annotation)
        if isinstance(parsed, BacklinkAnnotation):
            return parsed
        return None


class CardListItem(BaseModel):
    """A card as it appears in a project listing."""

    id: int
    project_id: Optional[int] = None
    title: Optional[str] = None
    summary: Optional[str] = None


class Card(BaseModel):
    """A card with its content."""

    id: Optional[int] = Field(default=None, description="Store-assigned card ID")
    project_id: int = Field(..., description="Owning project")
    content: str = Field(default="", description="Card text")
    title: Optional[str] = Field(default=None)
    summary: Optional[str] = Field(default=None)
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the card was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the card was last updated (UTC)"
    )

    model_config = {"validate_assignment": True}

    def to_list_item(self) -> CardListItem:
        if self.id is None:
            raise ValueError("Card has not been stored yet")
        return CardListItem(
            id=self.id,
            project_id=self.project_id,
            title=self.title,
            summary=self.summary,
        )


class Project(BaseModel):
    """A project grouping cards and tags."""

    id: Optional[int] = Field(default=None)
    name: str = Field(..., description="Human-readable display name")
    description: Optional[str] = Field(default=None)
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the project was created (UTC)"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not empty."""
        if not v.strip():
            raise ValueError("Project name cannot be empty")
        return v


class ResolutionKind(str, Enum):
    """Outcome of looking up a reference title."""

    UNIQUE = "unique"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class TitleResolution:
    """Result of resolving a title against the title index.

    Attributes:
        kind: Whether the title matched exactly one card, several, or none.
        card: The matched card; only set when kind is UNIQUE.
    """

    kind: ResolutionKind
    card: Optional[CardListItem] = None

    @classmethod
    def unique(cls, card: CardListItem) -> "TitleResolution":
        return cls(kind=ResolutionKind.UNIQUE, card=card)

    @classmethod
    def ambiguous(cls) -> "TitleResolution":
        return cls(kind=ResolutionKind.AMBIGUOUS)

    @classmethod
    def not_found(cls) -> "TitleResolution":
        return cls(kind=ResolutionKind.NOT_FOUND)

    @property
    def is_resolved(self) -> bool:
        return self.kind is ResolutionKind.UNIQUE
