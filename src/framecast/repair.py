"""Lexer-level repair of corrupted string-literal quoting.

The scanner tracks comments, template literals and string literals so that
only quote characters in code positions are considered. Prose inside
comments and template text is never touched.
"""

from __future__ import annotations

import re

from framecast.models import RepairResult

QUOTES = "'\""
VALUE_POSITION_CHARS = ":=(,[{?+"
MAX_PASSES = 64

_VALUE_START = re.compile(r"[\w#]")
_DOUBLED_UNIT = re.compile(r"(\d)(px|rem|em|vh|vw|vmin|vmax|deg|ms|%)\2+(?![A-Za-z%])")


def repair(text: str) -> RepairResult:
    """Normalize malformed quoting until the text stops changing.

    Args:
        text: Source text, possibly with corrupted literals.

    Returns:
        The repaired text with one audit entry per fix applied.
    """
    fixes: list[str] = []
    current = text
    for _ in range(MAX_PASSES):
        current, pass_fixes = _repair_pass(current)
        if not pass_fixes:
            break
        fixes.extend(pass_fixes)
    return RepairResult(text=current, fix_count=len(fixes), fixes=fixes)


def _repair_pass(text: str) -> tuple[str, list[str]]:
    out: list[str] = []
    fixes: list[str] = []
    substitutions: list[int] = []
    in_template = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if in_template:
            if ch == "\\":
                out.append(text[i : i + 2])
                i += 2
            elif ch == "`":
                in_template = False
                out.append(ch)
                i += 1
            elif text.startswith("${", i):
                substitutions.append(0)
                in_template = False
                out.append("${")
                i += 2
            else:
                out.append(ch)
                i += 1
            continue

        if text.startswith("//", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            out.append(text[i:end])
            i = end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.append(text[i:end])
            i = end
            continue
        if ch == "`":
            in_template = True
            out.append(ch)
            i += 1
            continue
        if substitutions and ch == "{":
            substitutions[-1] += 1
        elif substitutions and ch == "}":
            if substitutions[-1] == 0:
                substitutions.pop()
                in_template = True
                out.append(ch)
                i += 1
                continue
            substitutions[-1] -= 1
        if ch in QUOTES:
            i = _scan_quoted(text, i, out, fixes)
            continue
        out.append(ch)
        i += 1

    return "".join(out), fixes


def _scan_quoted(text: str, start: int, out: list[str], fixes: list[str]) -> int:
    quote = text[start]
    run_end = start
    while run_end < len(text) and text[run_end] == quote:
        run_end += 1
    run_length = run_end - start

    if run_length == 1:
        return _scan_literal(text, start, out, fixes)

    follows_value = run_end < len(text) and bool(_VALUE_START.match(text[run_end]))
    if follows_value and _in_value_position(out):
        return _fix_opening_run(text, start, run_end, out, fixes)
    if run_length == 2 and _is_boundary(text, run_end):
        out.append(text[start:run_end])
        return run_end
    if run_length >= 3 and _is_boundary(text, run_end):
        replacement = quote * 2
        fixes.append(f"Collapsed quote run: {text[start:run_end]!r} -> {replacement!r}")
        out.append(replacement)
        return run_end

    out.append(text[start:run_end])
    return run_end


def _scan_literal(text: str, start: int, out: list[str], fixes: list[str]) -> int:
    quote = text[start]
    n = len(text)
    j = start + 1
    while j < n and text[j] not in (quote, "\n"):
        j += 2 if text[j] == "\\" else 1
    if j >= n or text[j] != quote:
        # Unterminated on this line: leave it for the syntax layer to report.
        out.append(quote)
        return start + 1

    content = text[start + 1 : j]
    fixed_content = _DOUBLED_UNIT.sub(r"\1\2", content)
    literal = f"{quote}{fixed_content}{quote}"
    if fixed_content != content:
        fixes.append(f"Fixed duplicated unit: {text[start : j + 1]!r} -> {literal!r}")

    tail = j + 1
    while tail < n and text[tail] == quote:
        tail += 1
    if tail > j + 1 and _is_boundary(text, tail):
        fixes.append(f"Removed stray trailing quote: {text[start:tail]!r} -> {literal!r}")
        out.append(literal)
        return tail

    out.append(literal)
    return j + 1


def _fix_opening_run(text: str, start: int, run_end: int, out: list[str], fixes: list[str]) -> int:
    quote = text[start]
    n = len(text)
    j = run_end
    while j < n and text[j] not in (quote, "\n"):
        j += 2 if text[j] == "\\" else 1

    if j < n and text[j] == quote:
        content = text[run_end:j]
        close_end = j + 1
        while close_end < n and text[close_end] == quote:
            close_end += 1
        if not _is_boundary(text, close_end):
            close_end = j + 1
    else:
        j = run_end
        while j < n and (_VALUE_START.match(text[j]) or text[j] in ".-%"):
            j += 1
        content = text[run_end:j]
        close_end = j

    replacement = f"{quote}{content}{quote}"
    fixes.append(f"Fixed doubled opening quote: {text[start:close_end]!r} -> {replacement!r}")
    out.append(replacement)
    return close_end


def _is_boundary(text: str, index: int) -> bool:
    if index >= len(text):
        return True
    ch = text[index]
    return not (_VALUE_START.match(ch) or ch in QUOTES)


def _in_value_position(out: list[str]) -> bool:
    for piece in reversed(out):
        stripped = piece.rstrip()
        if stripped:
            return stripped[-1] in VALUE_POSITION_CHARS
    return True
