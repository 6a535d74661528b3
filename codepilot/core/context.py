"""
Heuristic context extraction and limiting.

This is not a parser. Declaration-opening patterns are matched with regular
expressions and the most recent one before the cursor is taken as the start
of the enclosing block. The returned span runs to the end of the text and is
not brace-balanced: the model only needs a left context that says "inside
this declaration". When nothing matches the result is empty and callers fall
back to the raw text.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

# Control-flow keywords look like identifier calls followed by a brace
_CONTROL_KEYWORDS = r"(?:if|for|while|switch|catch|with|return|function)\b"

DECLARATION_PATTERNS = [
    # function name(args) {
    re.compile(r"(?:export\s+(?:default\s+)?)?(?:async\s+)?function\b\s*\*?\s*\w+\s*\(.*?\)\s*\{"),
    # name(args) {   (methods, anonymous-style declarations)
    re.compile(r"(?<![\w$])(?!" + _CONTROL_KEYWORDS + r")\w+\s*\(.*?\)\s*\{"),
    # class Name {   /   export class Name extends Base {
    re.compile(r"(?:export\s+(?:default\s+)?)?class\s+\w+(?:\s+extends\s+[\w.]+)?\s*\{"),
    # const name = (args) => {   /   export const name = async (args) => {
    re.compile(r"(?:export\s+)?(?:const|let|var)\s+\w+\s*=\s*(?:async\s*)?\(.*?\)\s*=>\s*\{"),
]


@dataclass
class ContextWindow:
    """Left context handed to the prompt assembler for one request."""
    text: str
    from_block: bool = False


def _declaration_spans(text: str) -> List[Tuple[int, int]]:
    """
    Collect (start, end) spans of every declaration opening in text.

    A span nested inside a longer one shares its opening brace ("add(a) {"
    inside "function add(a) {") and is dropped in favour of the outer span.
    """
    spans = set()
    for pattern in DECLARATION_PATTERNS:
        for match in pattern.finditer(text):
            spans.add((match.start(), match.end()))

    ordered = sorted(spans, key=lambda s: (s[0], -s[1]))
    kept: List[Tuple[int, int]] = []
    for start, end in ordered:
        if any(k_start <= start and end <= k_end for k_start, k_end in kept):
            continue
        kept.append((start, end))
    return kept


def _enclosing_start(text: str, cursor_offset: int) -> Optional[int]:
    before = text[:max(0, cursor_offset)]
    spans = _declaration_spans(before)
    if not spans:
        return None
    return max(start for start, _ in spans)


def extract_enclosing_block(source_text: str, cursor_offset: int) -> str:
    """
    Return the text from the most recent declaration opening before the
    cursor to the end of source_text, or "" if no declaration is found.

    Args:
        source_text: Full text the cursor offset refers to
        cursor_offset: Character offset of the cursor

    Returns:
        Block text starting at the declaration, or empty string
    """
    if not source_text:
        return ""

    start = _enclosing_start(source_text, cursor_offset)
    if start is None:
        return ""
    return source_text[start:]


def extract_all_symbol_blocks(source_text: str) -> List[str]:
    """
    Return one block per declaration in source_text, in forward order.

    Each block is computed by extract_enclosing_block anchored just past the
    declaration opening, so it runs from that declaration to the end of text.
    """
    if not source_text:
        return []

    blocks = []
    for _, end in _declaration_spans(source_text):
        block = extract_enclosing_block(source_text, end)
        if block:
            blocks.append(block)
    return blocks


def limit_context(text: str, max_lines: int = 300, max_chars: int = 8000) -> str:
    """
    Cap text to its last max_lines lines, then to its last max_chars characters.

    Character truncation runs second so the result never exceeds either bound.
    """
    if not text:
        return ""
    if max_lines <= 0 or max_chars <= 0:
        return ""

    result = text

    lines = result.split("\n")
    if len(lines) > max_lines:
        result = "\n".join(lines[-max_lines:])

    if len(result) > max_chars:
        result = result[-max_chars:]

    return result


def build_context_window(code_before_cursor: str, cursor_offset: Optional[int],
                         max_lines: int, max_chars: int) -> ContextWindow:
    """
    Pick the enclosing block when a cursor offset is known, otherwise the raw
    text, and apply the limiter.
    """
    text = code_before_cursor or ""
    from_block = False
    if cursor_offset is not None:
        block = extract_enclosing_block(text, cursor_offset)
        if block:
            text = block
            from_block = True

    return ContextWindow(text=limit_context(text, max_lines, max_chars), from_block=from_block)
