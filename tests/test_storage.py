"""Tests for the SQLite repositories and the SQL-backed store."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cardnote.config import REFERENCE_NAMESPACE, USER_TAG_NAMESPACE
from cardnote.exceptions import (
    CardNotFoundError,
    ErrorCode,
    StorageError,
    TagNotFoundError,
    ValidationError,
)
from cardnote.models.schema import Card
from cardnote.references.parser import ReferenceParser
from cardnote.services.card_store import CardStore
from cardnote.services.reference_sync import ReferenceSynchronizer
from cardnote.storage.tag_repository import TagRepository


class TestCardRepository:
    """Tests for card storage."""

    def test_create_and_get(self, make_card, card_repository):
        card = make_card(title="Alpha", content="body")
        assert card.id is not None
        stored = card_repository.get(card.id)
        assert stored.title == "Alpha"
        assert stored.content == "body"

    def test_get_missing_returns_none(self, card_repository, engine):
        assert card_repository.get(999) is None

    def test_create_requires_project(self, card_repository, engine):
        with pytest.raises(ValidationError):
            card_repository.create(Card(project_id=999, title="Orphan"))

    def test_list_by_project(self, make_card, card_repository, project):
        first = make_card(title="A")
        second = make_card(title="B")
        items = card_repository.list_by_project(project.id)
        assert [i.id for i in items] == [first.id, second.id]
        assert [i.title for i in items] == ["A", "B"]

    def test_update_content(self, make_card, card_repository):
        card = make_card(title="A", content="old")
        updated = card_repository.update_content(card.id, "new")
        assert updated.content == "new"
        assert updated.updated_at >= card.updated_at
        assert card_repository.get(card.id).content == "new"

    def test_update_missing_card_raises(self, card_repository, engine):
        with pytest.raises(CardNotFoundError):
            card_repository.update_content(999, "x")
        with pytest.raises(CardNotFoundError):
            card_repository.update_title(999, "x")

    def test_update_title(self, make_card, card_repository):
        card = make_card(title="A")
        assert card_repository.update_title(card.id, "B").title == "B"


class TestTagRepository:
    """Tests for tag storage."""

    def test_create_defaults_to_user_namespace(self, tag_repository, project):
        tag = tag_repository.create(project.id, "idea")
        assert tag.namespace == USER_TAG_NAMESPACE
        assert tag.annotation is None
        assert tag_repository.get(tag.id) == tag

    def test_create_with_annotation(self, tag_repository, project):
        payload = {"type": "card_ref", "refId": "r1"}
        tag = tag_repository.create(project.id, "Alpha", REFERENCE_NAMESPACE, payload)
        assert tag_repository.get(tag.id).annotation == payload
        assert tag_repository.get(tag.id).ref_id == "r1"

    def test_get_or_create_is_idempotent(self, tag_repository, project):
        first = tag_repository.get_or_create(project.id, "idea")
        second = tag_repository.get_or_create(project.id, "idea")
        other = tag_repository.get_or_create(project.id, "idea", REFERENCE_NAMESPACE)
        assert first.id == second.id
        assert other.id != first.id

    def test_update_name_and_annotation(self, tag_repository, project):
        tag = tag_repository.create(project.id, "old", REFERENCE_NAMESPACE, {"refId": "x"})
        assert tag_repository.update_name(tag.id, "new").name == "new"
        updated = tag_repository.update_annotation(tag.id, {"refId": "x", "targetCardId": 2})
        assert updated.annotation == {"refId": "x", "targetCardId": 2}

    def test_update_missing_tag_raises(self, tag_repository, engine):
        with pytest.raises(TagNotFoundError):
            tag_repository.update_name(999, "x")
        with pytest.raises(TagNotFoundError):
            tag_repository.update_annotation(999, {})

    def test_attach_detach(self, tag_repository, make_card, project):
        card = make_card(title="A")
        tag = tag_repository.create(project.id, "idea")

        tag_repository.add_tag_to_card(card.id, tag.id)
        tag_repository.add_tag_to_card(card.id, tag.id)
        assert [t.id for t in tag_repository.get_tags_for_card(card.id)] == [tag.id]

        assert tag_repository.remove_tag_from_card(card.id, tag.id)
        assert not tag_repository.remove_tag_from_card(card.id, tag.id)
        assert tag_repository.get_tags_for_card(card.id) == []

    def test_attach_to_missing_card_or_tag(self, tag_repository, make_card, project):
        card = make_card(title="A")
        tag = tag_repository.create(project.id, "idea")
        with pytest.raises(CardNotFoundError):
            tag_repository.add_tag_to_card(999, tag.id)
        with pytest.raises(TagNotFoundError):
            tag_repository.add_tag_to_card(card.id, 999)

    def test_delete_drops_association(self, tag_repository, make_card, project):
        card = make_card(title="A")
        tag = tag_repository.create(project.id, "idea")
        tag_repository.add_tag_to_card(card.id, tag.id)

        assert tag_repository.delete(tag.id)
        assert tag_repository.get(tag.id) is None
        assert tag_repository.get_tags_for_card(card.id) == []
        assert not tag_repository.delete(tag.id)

    def test_find_backlinks(self, tag_repository, make_card, project):
        target = make_card(title="Target")
        source = make_card(title="Source")
        payload = {
            "type": "card_ref",
            "refId": "r1",
            "sourceCardId": source.id,
            "targetCardId": target.id,
            "titleSnapshot": "Target",
            "placeholder": "",
        }
        tag_repository.create(project.id, "Target", REFERENCE_NAMESPACE, payload)
        tag_repository.create(
            project.id, "elsewhere", REFERENCE_NAMESPACE,
            dict(payload, refId="r2", targetCardId=source.id),
        )
        tag_repository.create(
            project.id, "broken", REFERENCE_NAMESPACE,
            {"refId": "r3", "targetCardId": target.id},
        )
        tag_repository.create(project.id, "user", USER_TAG_NAMESPACE, payload)

        backlinks = tag_repository.find_backlinks(target.id, REFERENCE_NAMESPACE)

        assert [b.ref_id for b in backlinks] == ["r1"]
        assert backlinks[0].source_card_id == source.id


class TestSqlCardStore:
    """The SQL-backed store drives the synchronizer end to end."""

    def test_satisfies_protocol(self, sql_store):
        assert isinstance(sql_store, CardStore)

    @pytest.mark.anyio
    async def test_store_operations(self, sql_store, make_card, project):
        card = make_card(title="A")
        tag = await sql_store.create_tag(project.id, "n", REFERENCE_NAMESPACE, {"refId": "x"})
        assert await sql_store.associate_tag_with_card(card.id, tag.id)
        assert await sql_store.update_tag_name(tag.id, "m")
        assert await sql_store.update_tag_annotation(tag.id, {"refId": "y"})

        tags = await sql_store.list_card_tags(card.id)
        assert [(t.name, t.ref_id) for t in tags] == [("m", "y")]
        assert [c.id for c in await sql_store.list_cards_by_project(project.id)] == [card.id]

        assert await sql_store.delete_tag(tag.id)
        assert not await sql_store.delete_tag(tag.id)

    @pytest.mark.anyio
    async def test_update_missing_tag_raises(self, sql_store, engine):
        with pytest.raises(TagNotFoundError):
            await sql_store.update_tag_name(999, "x")

    @pytest.mark.anyio
    async def test_reference_sync_round_trip(
        self, sql_store, make_card, project, tag_repository, id_factory
    ):
        source = make_card(title="Source")
        alpha = make_card(title="Alpha")
        beta = make_card(title="Beta")
        synchronizer = ReferenceSynchronizer(
            sql_store, namespace=REFERENCE_NAMESPACE,
            parser=ReferenceParser(id_factory=id_factory),
        )

        parsed, report = await synchronizer.sync_with_report(
            source_card_id=source.id, project_id=project.id,
            text="[[Alpha]](a) and [[Beta]]()",
        )
        assert len(report.created) == 2
        assert report.failures == []
        tags = tag_repository.get_tags_for_card(source.id)
        assert sorted(t.backlink.target_card_id for t in tags) == sorted([alpha.id, beta.id])

        _, again = await synchronizer.sync_with_report(
            source_card_id=source.id, project_id=project.id, text=parsed.text
        )
        assert again.mutation_count == 0

        _, removed = await synchronizer.sync_with_report(
            source_card_id=source.id, project_id=project.id,
            text="[[Alpha]](a)<!--ref:r1-->",
        )
        assert len(removed.deleted) == 1
        assert [b.ref_id for b in tag_repository.find_backlinks(alpha.id)] == ["r1"]
        assert tag_repository.find_backlinks(beta.id) == []


class TestStorageErrors:
    """Database failures surface as StorageError with an operation code."""

    @pytest.fixture
    def broken_tags(self):
        # An empty in-memory database: every query fails on a missing table
        engine = create_engine("sqlite://")
        yield TagRepository(sessionmaker(bind=engine))
        engine.dispose()

    def test_delete_failure(self, broken_tags):
        with pytest.raises(StorageError) as exc_info:
            broken_tags.delete(1)
        assert exc_info.value.code == ErrorCode.STORAGE_DELETE_FAILED
        assert exc_info.value.operation == "delete_tag"

    def test_listing_failure(self, broken_tags):
        with pytest.raises(StorageError) as exc_info:
            broken_tags.get_tags_for_card(1)
        assert exc_info.value.code == ErrorCode.STORAGE_READ_FAILED

    def test_create_failure(self, broken_tags):
        with pytest.raises(StorageError) as exc_info:
            broken_tags.create(1, "idea")
        assert exc_info.value.code == ErrorCode.STORAGE_WRITE_FAILED
