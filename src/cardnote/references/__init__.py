"""Parsing of inline card references and tags in card text."""

from cardnote.references.parser import (
    ReferenceParser,
    assert_reference_invariant,
    parse_references,
)
from cardnote.references.title_index import TitleIndex

__all__ = [
    "ReferenceParser",
    "TitleIndex",
    "assert_reference_invariant",
    "parse_references",
]
