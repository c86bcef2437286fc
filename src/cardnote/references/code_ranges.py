"""Location of code regions whose content is never parsed as markup."""
import bisect
import re
from typing import List, Tuple

# Fenced code blocks, possibly spanning lines
FENCE_PATTERN = re.compile(r"```[\s\S]*?```")
# Inline code spans on a single line, not part of a fence
INLINE_CODE_PATTERN = re.compile(r"(?<!`)`(?!``)[^`\n]+`(?!`)")


class CodeRanges:
    """Sorted, merged half-open ``[start, end)`` spans of code in a text."""

    def __init__(self, spans: List[Tuple[int, int]]):
        merged: List[Tuple[int, int]] = []
        for start, end in sorted(spans):
            if merged and start <= merged[-1][1]:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
            else:
                merged.append((start, end))
        self._spans = merged
        self._starts = [start for start, _ in merged]

    @classmethod
    def find(cls, text: str) -> "CodeRanges":
        """Collect fenced blocks and inline code spans in ``text``."""
        spans = [(m.start(), m.end()) for m in FENCE_PATTERN.finditer(text)]
        spans.extend((m.start(), m.end()) for m in INLINE_CODE_PATTERN.finditer(text))
        return cls(spans)

    def contains(self, pos: int) -> bool:
        """Whether offset ``pos`` falls inside a code region."""
        i = bisect.bisect_right(self._starts, pos) - 1
        return i >= 0 and pos < self._spans[i][1]
