"""Parsing and normalization of inline card references.

A reference is written as ``[[TITLE]](PLACEHOLDER)`` and, once normalized,
carries its stable ID in an HTML comment placed directly after it:
``[[TITLE]](PLACEHOLDER)<!--ref:REFID-->``. A comment separated from the
closing parenthesis by even one character does not belong to the reference
and is an orphan. References and comments inside code spans or fenced code
blocks are plain text.
"""
import logging
import re
from typing import Callable, List, Optional, Set

from cardnote.exceptions import ErrorCode, InvalidReferenceError
from cardnote.models.schema import ReferenceParseResult, ReferenceToken, generate_ref_id
from cardnote.references.code_ranges import CodeRanges

logger = logging.getLogger(__name__)

REF_ID_CHARS = r"[a-zA-Z0-9_-]+"
REF_COMMENT_PATTERN = re.compile(rf"<!--ref:({REF_ID_CHARS})-->")
REFERENCE_PATTERN = re.compile(
    rf"\[\[([^\]]+)\]\]\(([^)]*)\)(?:<!--ref:({REF_ID_CHARS})-->)?"
)

# Bound on fresh IDs tried per reference before giving up on uniqueness
_MAX_ID_ATTEMPTS = 16


def format_reference(title: str, placeholder: str, ref_id: str) -> str:
    """Render a reference in its normalized wire form."""
    return f"[[{title}]]({placeholder})<!--ref:{ref_id}-->"


class ReferenceParser:
    """Finds card references in text and normalizes their annotations.

    Two modes are supported:

    - repair mode (``allow_insert=True``): missing IDs are generated and
      orphan comments are stripped.
    - validation mode (``allow_insert=False``): any missing ID or orphan
      comment raises InvalidReferenceError and the text is not modified.
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        """Initialize the parser.

        Args:
            id_factory: Callable returning a new reference ID. Defaults to
                generate_ref_id.
        """
        self._id_factory = id_factory or generate_ref_id

    def parse(self, text: str, allow_insert: bool = True) -> ReferenceParseResult:
        """Parse ``text`` and return the normalized text and its references.

        Args:
            text: Raw card text.
            allow_insert: Repair mode when True, validation mode when False.

        Returns:
            ReferenceParseResult with tokens ordered by offset.

        Raises:
            InvalidReferenceError: In validation mode, for a reference without
                an ID or for an orphan ref comment.
        """
        while True:
            rewritten, tokens = self._rewrite(text, allow_insert)
            orphans = self._find_orphans(rewritten, tokens)
            if not orphans:
                return ReferenceParseResult(text=rewritten, tokens=tokens)

            if not allow_insert:
                first = orphans[0]
                raise InvalidReferenceError(
                    "orphan ref comment",
                    code=ErrorCode.REFERENCE_ORPHAN_COMMENT,
                    offset=first.start(),
                    fragment=first.group(0),
                )

            logger.debug(f"Stripping {len(orphans)} orphan ref comment(s)")
            # Stripping can join text into a new reference, so parse again
            text = self._strip(rewritten, orphans)

    def _rewrite(self, text: str, allow_insert: bool):
        code_ranges = CodeRanges.find(text)
        used_ids: Set[str] = {
            m.group(1) for m in REF_COMMENT_PATTERN.finditer(text)
        }

        parts: List[str] = []
        tokens: List[ReferenceToken] = []
        last = 0
        out_len = 0

        for match in REFERENCE_PATTERN.finditer(text):
            if code_ranges.contains(match.start()):
                continue

            title = match.group(1).strip()
            placeholder = match.group(2)
            ref_id = match.group(3)

            if not ref_id:
                if not allow_insert:
                    raise InvalidReferenceError(
                        "missing ref id",
                        code=ErrorCode.REFERENCE_MISSING_ID,
                        offset=match.start(),
                        fragment=match.group(0),
                    )
                ref_id = self._new_id(used_ids)
                used_ids.add(ref_id)

            raw = format_reference(title, placeholder, ref_id)
            before = text[last:match.start()]
            parts.append(before)
            out_len += len(before)
            tokens.append(
                ReferenceToken(
                    title=title,
                    placeholder=placeholder,
                    ref_id=ref_id,
                    index=out_len,
                    raw=raw,
                )
            )
            parts.append(raw)
            out_len += len(raw)
            last = match.end()

        parts.append(text[last:])
        return "".join(parts), tokens

    def _new_id(self, used_ids: Set[str]) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            ref_id = self._id_factory()
            if ref_id not in used_ids:
                return ref_id
        raise RuntimeError("Reference ID factory keeps returning IDs already in use")

    @staticmethod
    def _find_orphans(text: str, tokens: List[ReferenceToken]) -> List[re.Match]:
        code_ranges = CodeRanges.find(text)
        # Each token's own comment is the tail of its raw text
        owned = {
            token.index + len(token.raw) - len(f"<!--ref:{token.ref_id}-->")
            for token in tokens
        }
        return [
            m
            for m in REF_COMMENT_PATTERN.finditer(text)
            if m.start() not in owned and not code_ranges.contains(m.start())
        ]

    @staticmethod
    def _strip(text: str, orphans: List[re.Match]) -> str:
        parts = []
        last = 0
        for m in orphans:
            parts.append(text[last:m.start()])
            last = m.end()
        parts.append(text[last:])
        return "".join(parts)


_default_parser = ReferenceParser()


def parse_references(text: str, allow_insert: bool = True) -> ReferenceParseResult:
    """Parse card text with the default parser.

    See ReferenceParser.parse.
    """
    return _default_parser.parse(text, allow_insert=allow_insert)


def assert_reference_invariant(text: str) -> None:
    """Raise InvalidReferenceError unless ``text`` is already fully normalized."""
    _default_parser.parse(text, allow_insert=False)
