"""
Search/replace blocks in model output.

Chat responses propose edits as

    <<<<<<< SEARCH
    old code
    =======
    new code
    >>>>>>> REPLACE

Blocks are applied in order; each replaces the first exact occurrence of its
(stripped) search text.
"""

import re
from dataclasses import dataclass
from typing import List

from .prompts import DIVIDER_MARKER, REPLACE_MARKER, SEARCH_MARKER

_BLOCK_RE = re.compile(
    re.escape(SEARCH_MARKER) + r"(.*?)" + re.escape(DIVIDER_MARKER) + r"(.*?)" + re.escape(REPLACE_MARKER),
    re.DOTALL,
)


@dataclass
class SearchReplaceBlock:
    search: str
    replace: str


def parse_search_replace(output: str) -> List[SearchReplaceBlock]:
    """Extract every complete search/replace block from output."""
    if not output or SEARCH_MARKER not in output:
        return []
    return [
        SearchReplaceBlock(search=m.group(1).strip(), replace=m.group(2).strip())
        for m in _BLOCK_RE.finditer(output)
    ]


def apply_search_replace(original: str, output: str) -> str:
    """
    Apply the blocks in output to original.

    Output without markers is returned as-is; it is a full replacement rather
    than an edit. Blocks whose search text is not found are skipped.
    """
    if SEARCH_MARKER not in (output or ""):
        return output

    result = original
    for block in parse_search_replace(output):
        if not block.search or block.search not in result:
            continue
        result = result.replace(block.search, block.replace, 1)
    return result
