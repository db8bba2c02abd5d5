"""Documentation comment extraction.

Comments are not attached to cursors by the front-end used here; they are
found by tokenizing the source between two declarations and picking the
comment token closest to the declaration.

Functions
---------
* :func:`extract_comment` - Nearest comment token in a source range
* :func:`comment_lines` - Strip comment decoration from a comment spelling
* :func:`split_enum_comment` - ``@Constant: text`` tags
* :func:`split_function_comment` - ``\\param`` and ``\\returns`` tags
* :func:`clean_description` - Normalize lines for rendering
"""

from __future__ import (
    annotations,
)

import re
from typing import (
    Optional,
)

import clang.cindex
from clang.cindex import (
    TokenKind,
)

_BLOCK_END = re.compile(r" ?\*+/\s*$")
_BLOCK_START = re.compile(r"^\s*/?\*+[!<]? ?")
_LINE_START = re.compile(r"^\s*//[/!]?<? ?")
_DOC_TAGS = re.compile(r"\\(brief|determine) ")

_ENUM_TAG = re.compile(r"@(.*?): ")
_PARAM_TAG = re.compile(r"[\\@]param (.*?) ")
_RETURNS_TAG = re.compile(r"[\\@]returns? ")


def comment_lines(spelling: str) -> list[str]:
    """Split a comment token's spelling into undecorated lines.

    ``/*``, ``/**``, leading ``*`` and ``//`` markers and the closing ``*/``
    are removed, ``\\brief`` and ``\\determine`` tags are dropped and square
    brackets become parentheses.

    Example
    -------
    ::

        comment_lines("/**\\n * \\\\brief Creates a [new] widget.\\n */")
        # ["", "Creates a (new) widget.", ""]
    """
    lines = []
    for line in spelling.split("\n"):
        if line.lstrip().startswith("//"):
            line = _LINE_START.sub("", line, count=1)
        else:
            line = _BLOCK_END.sub("", line, count=1)
            line = _BLOCK_START.sub("", line, count=1)
        line = _DOC_TAGS.sub("", line)
        line = line.replace("[", "(").replace("]", ")")
        lines.append(line)
    return lines


def extract_comment(
    tu: clang.cindex.TranslationUnit,
    start: clang.cindex.SourceLocation,
    end: clang.cindex.SourceLocation,
    search_backwards: bool = True,
) -> tuple[list[str], Optional[clang.cindex.Token]]:
    """Find the comment nearest to one end of a source range.

    :param tu: Translation unit owning the locations.
    :param start: Start of the range.
    :param end: End of the range.
    :param search_backwards: Scan from ``end`` towards ``start`` (the comment
        preceding a declaration) instead of from ``start`` forward (a comment
        trailing a declaration).
    :returns: The comment's lines and its token, or ``([], None)``.
    """
    if start.file is None or end.file is None or start.file.name != end.file.name:
        return [], None
    if end.offset < start.offset:
        return [], None

    extent = clang.cindex.SourceRange.from_locations(start, end)
    tokens = list(tu.get_tokens(extent=extent))
    if search_backwards:
        tokens.reverse()
    for token in tokens:
        if token.kind == TokenKind.COMMENT:
            return comment_lines(token.spelling), token
    return [], None


def split_enum_comment(comment: list[str]) -> tuple[list[str], dict[str, list[str]]]:
    """Separate an enum comment into its description and per-constant text.

    A line containing ``@NAME: text`` starts the description of constant
    ``NAME``; a blank line returns to the enum description.

    :returns: ``(enum_description, {raw_constant_name: lines})``
    """
    enum_description: list[str] = []
    constant_descriptions: dict[str, list[str]] = {}
    current = enum_description
    for line in comment:
        match = _ENUM_TAG.search(line)
        if match:
            line = _ENUM_TAG.sub("", line)
            current = []
            constant_descriptions[match.group(1)] = current
        if not line.strip():
            current = enum_description
        current.append(line)
    return enum_description, constant_descriptions


def split_function_comment(
    comment: list[str],
) -> tuple[list[str], dict[str, list[str]], list[str]]:
    """Separate a function comment into general, parameter and return text.

    :returns: ``(function_description, {param_name: lines}, return_value_description)``
    """
    function_description: list[str] = []
    return_value_description: list[str] = []
    parameter_descriptions: dict[str, list[str]] = {}
    current = function_description
    for line in comment:
        matches = list(_PARAM_TAG.finditer(line))
        if matches:
            line = _PARAM_TAG.sub("", line)
            current = []
            parameter_descriptions[matches[-1].group(1)] = current
        if _RETURNS_TAG.search(line):
            line = _RETURNS_TAG.sub("", line)
            current = return_value_description
        current.append(line)
    return function_description, parameter_descriptions, return_value_description


def clean_description(lines: list[str], not_documented: bool = True) -> list[str]:
    """Normalize description lines for rendering.

    Leading and trailing blank lines are dropped, tabs expand to four
    spaces and the common indentation is removed. An empty result becomes
    ``["(Not documented)"]`` when ``not_documented`` is set.
    """
    lines = [line.replace("\t", "    ") for line in lines]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    if indents:
        prefix = min(indents)
        lines = [line[prefix:] for line in lines]
    if not lines:
        return ["(Not documented)"] if not_documented else []
    return lines
