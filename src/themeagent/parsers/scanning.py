"""Lexical helpers shared by the regex-based chunking passes."""

from __future__ import annotations

_QUOTES = "\"'`"


def line_at(text: str, index: int) -> int:
    """Return the 1-based line number containing ``text[index]``."""
    return text.count("\n", 0, max(index, 0)) + 1


def skip_string(text: str, index: int) -> int:
    """Return the index just past the string literal opening at ``index``."""
    quote = text[index]
    position = index + 1
    length = len(text)
    while position < length:
        char = text[position]
        if char == "\\":
            position += 2
            continue
        if char == quote:
            return position + 1
        if char == "\n" and quote != "`":
            return position
        position += 1
    return length


def blank_comments(text: str, *, line_comments: bool = False) -> str:
    """Replace comments with spaces, keeping offsets and newlines intact."""
    output = list(text)
    position = 0
    length = len(text)
    while position < length:
        char = text[position]
        if char in _QUOTES:
            position = skip_string(text, position)
            continue
        if text.startswith("/*", position):
            end = text.find("*/", position + 2)
            end = length if end < 0 else end + 2
            _blank(output, position, end)
            position = end
            continue
        if line_comments and text.startswith("//", position):
            end = text.find("\n", position)
            end = length if end < 0 else end
            _blank(output, position, end)
            position = end
            continue
        position += 1
    return "".join(output)


def match_brace(text: str, open_index: int) -> int:
    """Return the index just past the ``}`` closing the ``{`` at ``open_index``.

    String literals are skipped. An unbalanced block runs to the end of text.
    """
    depth = 0
    position = open_index
    length = len(text)
    while position < length:
        char = text[position]
        if char in _QUOTES:
            position = skip_string(text, position)
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return position + 1
        position += 1
    return length


def find_unquoted(text: str, target: str, start: int) -> int:
    """Find ``target`` at or after ``start`` outside string literals; -1 if absent."""
    position = start
    length = len(text)
    while position < length:
        char = text[position]
        if char == target:
            return position
        if char in _QUOTES:
            position = skip_string(text, position)
            continue
        position += 1
    return -1


def _blank(output: list, start: int, end: int) -> None:
    for index in range(start, end):
        if output[index] != "\n":
            output[index] = " "
