"""Synchronization of card references with backlink annotations.

Every resolved reference in a card's text is materialized as one tag in the
reserved reference namespace, attached to the source card. The tag's
annotation records the reference ID and the target card. A sync run
reconciles those tags with the current text. It creates tags for new
references, renames and refreshes tags whose reference changed, and deletes
tags whose reference disappeared or no longer resolves. Tags in the namespace
without a readable refId are corrupt and are always deleted.
"""
import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, Tuple

from cardnote.config import config
from cardnote.models.schema import (
    BacklinkAnnotation,
    ReferenceParseResult,
    ReferenceToken,
    TagRecord,
    TitleResolution,
)
from cardnote.observability import traced
from cardnote.references.parser import ReferenceParser
from cardnote.references.title_index import TitleIndex
from cardnote.services.card_store import CardStore

logger = logging.getLogger(__name__)


@dataclass
class TagCreate:
    """A backlink tag to create and attach to the source card."""

    token: ReferenceToken
    name: str
    annotation: Dict[str, Any]


@dataclass
class TagUpdate:
    """Changes to an existing backlink tag.

    Attributes:
        tag: The stored tag.
        name: New name, or None when the name is unchanged.
        annotation: New payload, or None when the stored payload is current.
    """

    tag: TagRecord
    name: Optional[str] = None
    annotation: Optional[Dict[str, Any]] = None


@dataclass
class SyncPlan:
    """Operations needed to make stored backlinks match the parsed text."""

    creates: List[TagCreate] = field(default_factory=list)
    updates: List[TagUpdate] = field(default_factory=list)
    deletes: List[TagRecord] = field(default_factory=list)
    retained_ref_ids: Set[str] = field(default_factory=set)
    unresolved: List[Tuple[ReferenceToken, TitleResolution]] = field(default_factory=list)
    duplicate_ref_ids: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


@dataclass(frozen=True)
class SyncFailure:
    """A scheduled operation that the store rejected."""

    operation: str
    error: str
    tag_id: Optional[int] = None
    ref_id: Optional[str] = None


@dataclass
class SyncReport:
    """What a sync run did to the store."""

    created: List[int] = field(default_factory=list)
    renamed: List[int] = field(default_factory=list)
    refreshed: List[int] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)
    failures: List[SyncFailure] = field(default_factory=list)
    skipped: bool = False

    @property
    def mutation_count(self) -> int:
        return len(self.created) + len(self.renamed) + len(self.refreshed) + len(self.deleted)


def partition_reference_tags(
    tags: Iterable[TagRecord], namespace: str
) -> Tuple[Dict[str, TagRecord], List[TagRecord]]:
    """Split a card's tags in the reference namespace by refId readability.

    Args:
        tags: All tags of the card.
        namespace: The reserved reference namespace.

    Returns:
        Tuple of (tags keyed by refId, tags to discard). The discard list
        holds tags without a readable refId and any later duplicate of a
        refId that is already keyed.
    """
    by_ref_id: Dict[str, TagRecord] = {}
    discard: List[TagRecord] = []
    for tag in tags:
        if tag.namespace != namespace:
            continue
        ref_id = tag.ref_id
        if ref_id is None or ref_id in by_ref_id:
            discard.append(tag)
        else:
            by_ref_id[ref_id] = tag
    return by_ref_id, discard


def plan_reference_sync(
    tokens: Iterable[ReferenceToken],
    title_index: TitleIndex,
    existing: Dict[str, TagRecord],
    discard: Iterable[TagRecord],
    source_card_id: int,
    default_name: str = "card-ref",
) -> SyncPlan:
    """Compute the operations that reconcile stored backlinks with tokens.

    A token whose title does not resolve to exactly one card is dropped and
    its refId is not retained, so a stored tag for it is deleted. A token
    appearing twice with the same refId is planned once and the refId is
    listed in ``duplicate_ref_ids``.
    """
    plan = SyncPlan()

    for token in tokens:
        if token.ref_id in plan.retained_ref_ids:
            if token.ref_id not in plan.duplicate_ref_ids:
                plan.duplicate_ref_ids.append(token.ref_id)
            continue
        resolution = title_index.resolve(token.title)
        if not resolution.is_resolved:
            plan.unresolved.append((token, resolution))
            continue

        plan.retained_ref_ids.add(token.ref_id)
        name = token.display_name(default_name)
        payload = BacklinkAnnotation.for_token(
            token, source_card_id, resolution.card.id
        ).to_payload()

        tag = existing.get(token.ref_id)
        if tag is None:
            plan.creates.append(TagCreate(token=token, name=name, annotation=payload))
            continue

        update = TagUpdate(
            tag=tag,
            name=name if tag.name != name else None,
            annotation=payload if tag.annotation != payload else None,
        )
        if update.name is not None or update.annotation is not None:
            plan.updates.append(update)

    plan.deletes.extend(
        tag for ref_id, tag in existing.items() if ref_id not in plan.retained_ref_ids
    )
    plan.deletes.extend(discard)
    return plan


class ReferenceSynchronizer:
    """Keeps a card's backlink tags in step with the references in its text.

    Reads happen before any write. Updates, creates and deletes then run as
    three concurrent batches; each operation is best-effort, and a failure
    is logged and reported without stopping its siblings. Runs for the same
    card are serialized within one event loop.
    """

    def __init__(
        self,
        store: CardStore,
        namespace: Optional[str] = None,
        parser: Optional[ReferenceParser] = None,
        default_name: Optional[str] = None,
    ):
        """Initialize the synchronizer.

        Args:
            store: Card and tag collaborator.
            namespace: Reserved tag namespace. Defaults to config.
            parser: Reference parser. Defaults to a parser with random IDs.
            default_name: Tag name used when a reference has no label or title.
        """
        self.store = store
        self.namespace = namespace or config.reference_namespace
        self.parser = parser or ReferenceParser()
        self.default_name = default_name or config.default_reference_name
        self._card_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def sync(
        self, source_card_id: int, project_id: int, text: str
    ) -> ReferenceParseResult:
        """Normalize ``text`` and reconcile the card's backlink tags.

        The caller is responsible for persisting the returned text.

        Args:
            source_card_id: Card whose text is being saved.
            project_id: Project of the card.
            text: The card's raw text.

        Returns:
            The normalized text and its references.
        """
        parsed, _ = await self.sync_with_report(
            source_card_id=source_card_id, project_id=project_id, text=text
        )
        return parsed

    @traced("sync_references")
    async def sync_with_report(
        self, source_card_id: int, project_id: int, text: str
    ) -> Tuple[ReferenceParseResult, SyncReport]:
        """Like sync, but also return a report of the applied operations."""
        parsed = self.parser.parse(text, allow_insert=True)

        lock = self._card_locks.get(source_card_id)
        if lock is None:
            lock = asyncio.Lock()
            self._card_locks[source_card_id] = lock

        async with lock:
            report = await self._reconcile(source_card_id, project_id, parsed.tokens)
        return parsed, report

    async def _reconcile(
        self, source_card_id: int, project_id: int, tokens: List[ReferenceToken]
    ) -> SyncReport:
        report = SyncReport()

        cards, tags = await asyncio.gather(
            self.store.list_cards_by_project(project_id),
            self.store.list_card_tags(source_card_id),
            return_exceptions=True,
        )
        for result in (cards, tags):
            if isinstance(result, asyncio.CancelledError):
                raise result
        if isinstance(cards, BaseException):
            logger.warning(
                f"Skipping reference sync for card {source_card_id}: "
                f"card listing failed: {cards}"
            )
            report.skipped = True
            return report
        if isinstance(tags, BaseException):
            logger.warning(
                f"Skipping reference sync for card {source_card_id}: "
                f"tag listing failed: {tags}"
            )
            report.skipped = True
            return report

        title_index = TitleIndex(cards, exclude_card_id=source_card_id)
        existing, discard = partition_reference_tags(tags, self.namespace)
        if discard:
            logger.debug(
                f"Card {source_card_id} has {len(discard)} corrupt or duplicate "
                "reference tag(s) to remove"
            )

        plan = plan_reference_sync(
            tokens,
            title_index,
            existing,
            discard,
            source_card_id,
            default_name=self.default_name,
        )
        for token, resolution in plan.unresolved:
            logger.debug(
                f"Reference '{token.title}' ({token.ref_id}) in card "
                f"{source_card_id} is {resolution.kind.value}"
            )
        for ref_id in plan.duplicate_ref_ids:
            logger.warning(
                f"Reference ID '{ref_id}' appears more than once in card "
                f"{source_card_id}; only its first reference gets a backlink"
            )

        if plan.is_empty:
            return report

        await self._apply(plan, source_card_id, project_id, report)
        logger.info(
            f"Reference sync for card {source_card_id}: "
            f"{len(report.created)} created, {len(report.renamed)} renamed, "
            f"{len(report.refreshed)} refreshed, {len(report.deleted)} deleted, "
            f"{len(report.failures)} failed"
        )
        return report

    async def _apply(
        self, plan: SyncPlan, source_card_id: int, project_id: int, report: SyncReport
    ) -> None:
        await asyncio.gather(*(self._apply_update(u, report) for u in plan.updates))
        await asyncio.gather(
            *(
                self._apply_create(c, source_card_id, project_id, report)
                for c in plan.creates
            )
        )
        await asyncio.gather(*(self._apply_delete(t, report) for t in plan.deletes))

    async def _apply_update(self, update: TagUpdate, report: SyncReport) -> None:
        tag = update.tag
        steps = []
        if update.name is not None:
            steps.append(
                self._attempt(
                    "rename",
                    self.store.update_tag_name(tag.id, update.name),
                    report,
                    tag_id=tag.id,
                    ref_id=tag.ref_id,
                    on_success=report.renamed,
                )
            )
        if update.annotation is not None:
            steps.append(
                self._attempt(
                    "refresh",
                    self.store.update_tag_annotation(tag.id, update.annotation),
                    report,
                    tag_id=tag.id,
                    ref_id=tag.ref_id,
                    on_success=report.refreshed,
                )
            )
        await asyncio.gather(*steps)

    async def _apply_create(
        self,
        create: TagCreate,
        source_card_id: int,
        project_id: int,
        report: SyncReport,
    ) -> None:
        ref_id = create.token.ref_id
        try:
            tag = await self.store.create_tag(
                project_id, create.name, self.namespace, create.annotation
            )
        except Exception as e:
            self._record_failure(report, "create", e, ref_id=ref_id)
            return
        if not tag:
            self._record_failure(report, "create", "store returned no tag", ref_id=ref_id)
            return

        report.created.append(tag.id)
        await self._attempt(
            "associate",
            self.store.associate_tag_with_card(source_card_id, tag.id),
            report,
            tag_id=tag.id,
            ref_id=ref_id,
        )

    async def _apply_delete(self, tag: TagRecord, report: SyncReport) -> None:
        await self._attempt(
            "delete",
            self.store.delete_tag(tag.id),
            report,
            tag_id=tag.id,
            ref_id=tag.ref_id,
            on_success=report.deleted,
        )

    async def _attempt(
        self,
        operation: str,
        call: Awaitable[Optional[bool]],
        report: SyncReport,
        tag_id: Optional[int] = None,
        ref_id: Optional[str] = None,
        on_success: Optional[List[int]] = None,
    ) -> bool:
        """Await one store call; failures are recorded, never raised."""
        try:
            result = await call
        except Exception as e:
            self._record_failure(report, operation, e, tag_id=tag_id, ref_id=ref_id)
            return False
        if result is False:
            self._record_failure(
                report, operation, "store reported failure", tag_id=tag_id, ref_id=ref_id
            )
            return False
        if on_success is not None and tag_id is not None:
            on_success.append(tag_id)
        return True

    @staticmethod
    def _record_failure(
        report: SyncReport,
        operation: str,
        error: Any,
        tag_id: Optional[int] = None,
        ref_id: Optional[str] = None,
    ) -> None:
        logger.warning(
            f"Reference tag {operation} failed (tag={tag_id}, ref={ref_id}): {error}"
        )
        report.failures.append(
            SyncFailure(operation=operation, error=str(error), tag_id=tag_id, ref_id=ref_id)
        )
