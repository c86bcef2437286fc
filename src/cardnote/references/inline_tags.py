"""Parsing of inline ``#tag`` markers in card text.

Rules:
- ``#name`` must be at the start of a line or preceded by whitespace
- ``# Heading`` (hash followed by a space at line start) is a Markdown heading
- a name runs until whitespace, ``#`` or any bracket, brace or parenthesis
- markers inside code spans and fenced blocks are ignored
"""
import re
from dataclasses import dataclass
from typing import List, Optional

from cardnote.config import config
from cardnote.references.code_ranges import CodeRanges

TAG_NAME_PATTERN = re.compile(r"[^\s#\[\](){}]+")


@dataclass(frozen=True)
class InlineTag:
    """A ``#name`` marker found in text.

    Attributes:
        name: Tag name without the leading ``#``.
        start: Offset of the ``#``.
        end: Offset just past the name.
    """

    name: str
    start: int
    end: int


def _is_markdown_heading(line: str, hash_index: int) -> bool:
    if line[:hash_index].strip():
        return False
    return line[hash_index + 1:hash_index + 2] == " "


def parse_inline_tags(text: str) -> List[InlineTag]:
    """Find all inline tag markers in ``text``, in order of appearance."""
    code_ranges = CodeRanges.find(text)
    tags: List[InlineTag] = []
    offset = 0

    for line in text.split("\n"):
        hash_index = line.find("#")
        while hash_index != -1:
            pos = offset + hash_index
            if (
                not code_ranges.contains(pos)
                and not _is_markdown_heading(line, hash_index)
                and (hash_index == 0 or line[hash_index - 1].isspace())
            ):
                match = TAG_NAME_PATTERN.match(line, hash_index + 1)
                if match:
                    name = match.group(0)
                    tags.append(InlineTag(name=name, start=pos, end=pos + 1 + len(name)))
            hash_index = line.find("#", hash_index + 1)
        offset += len(line) + 1

    return tags


def extract_unique_tag_names(text: str) -> List[str]:
    """Distinct tag names in ``text``, in order of first appearance."""
    return list(dict.fromkeys(tag.name for tag in parse_inline_tags(text)))


def is_valid_tag_name(name: str, max_length: Optional[int] = None) -> bool:
    """Check whether an inline tag name may be stored as a tag.

    Names must be non-empty, no longer than the configured maximum, must not
    start or end with ``/`` or contain ``//``, and must not start with a digit
    (``#1`` is usually an issue number or list marker).
    """
    limit = max_length if max_length is not None else config.max_tag_name_length
    if not name or len(name) > limit:
        return False
    if name.startswith("/") or name.endswith("/"):
        return False
    if "//" in name:
        return False
    if name[0].isdigit():
        return False
    return True
