"""
Pull a JSON object out of free-form model output.

Agents wrap JSON in prose, markdown fences, or cut it off mid-way when they
run out of budget. ``extract_json`` handles the well-formed cases;
``extract_json_with_repair`` additionally runs candidates through
``repair_json`` which fixes the common breakages (unescaped quotes, trailing
commas, truncation).
"""

import json
import re
from typing import Any, Callable, Iterator

from utils.logger import get_logger, is_debug_enabled

logger = get_logger(__name__)

FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
LEADING_FENCE_RE = re.compile(r"^\s*```(?:json)?[ \t]*\n?")

PREVIEW_HEAD_CHARS = 1000
PREVIEW_TAIL_CHARS = 500
ERROR_PREVIEW_CHARS = 120


class JSONExtractionError(ValueError):
    """No parseable JSON object could be found in the text."""

    def __init__(self, message: str, text: str = ""):
        self.text_length = len(text)
        self.head = text[:ERROR_PREVIEW_CHARS]
        self.tail = text[-ERROR_PREVIEW_CHARS:] if len(text) > ERROR_PREVIEW_CHARS else ""
        detail = f"{message} ({self.text_length} chars"
        if self.head:
            detail += f", starts with {self.head!r}"
        if self.tail:
            detail += f", ends with {self.tail!r}"
        super().__init__(detail + ")")


def _parse(text: str) -> Any:
    # strict=False lets raw newlines/tabs inside strings through
    return json.loads(text, strict=False)


def strip_code_fences(text: str) -> str:
    """Remove ```json fences, including an opening fence that never got closed."""
    cleaned = FENCE_RE.sub(r"\1", text)
    cleaned = LEADING_FENCE_RE.sub("", cleaned)
    return cleaned.strip()


def iter_object_candidates(text: str) -> Iterator[str]:
    """
    Yield every top-level balanced ``{...}`` span, left to right.

    Braces inside string literals are ignored. Quotes are only tracked inside
    an object so that apostrophes and quotes in surrounding prose don't throw
    the depth count off.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            if depth > 0:
                in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : i + 1]


def _log_failure(kind: str, text: str) -> None:
    if not is_debug_enabled():
        return
    logger.debug(
        f"{kind} failed",
        extra={
            "extra_fields": {
                "text_length": len(text),
                "head": text[:PREVIEW_HEAD_CHARS],
                "tail": text[-PREVIEW_TAIL_CHARS:],
            }
        },
    )


def extract_json(text: str) -> Any:
    """
    Return the first balanced JSON object in ``text`` that parses.

    Falls back to parsing the whole (fence-stripped) text, which also covers
    top-level arrays and scalars.

    Raises:
        JSONExtractionError: nothing parseable was found
    """
    cleaned = strip_code_fences(text)

    for candidate in iter_object_candidates(cleaned):
        try:
            return _parse(candidate)
        except ValueError:
            continue

    try:
        return _parse(cleaned)
    except ValueError:
        _log_failure("JSON extraction", text)
        raise JSONExtractionError("No valid JSON object found in agent output", cleaned)


def extract_json_with_repair(text: str, repair: Callable[[str], str] = None) -> Any:
    """
    Like ``extract_json`` but each candidate gets a second chance after ``repair``.

    When no balanced object exists at all (typically truncated output) the text
    from the first ``{`` onward is repaired and parsed.

    Raises:
        JSONExtractionError: nothing parseable was found, even after repair
    """
    repair = repair or repair_json
    cleaned = strip_code_fences(text)

    for candidate in iter_object_candidates(cleaned):
        try:
            return _parse(candidate)
        except ValueError:
            pass
        try:
            return _parse(repair(candidate))
        except ValueError:
            continue

    start = cleaned.find("{")
    if start != -1:
        try:
            repaired = _parse(repair(cleaned[start:]))
            logger.info(
                "Recovered JSON from unbalanced agent output",
                extra={"extra_fields": {"text_length": len(cleaned)}},
            )
            return repaired
        except ValueError:
            pass

    try:
        return _parse(cleaned)
    except ValueError:
        _log_failure("JSON extraction with repair", text)
        raise JSONExtractionError("No valid JSON object found in agent output, even after repair", cleaned)


def _escape_inner_quotes(text: str) -> str:
    """
    Escape quotes that sit inside a string literal.

    A quote ends a string only when the next non-blank character is a
    structural one (``, : } ]``) or the text ends; any other quote is content.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    n = len(text)

    for i, ch in enumerate(text):
        if not in_string:
            if ch == '"':
                in_string = True
            out.append(ch)
            continue

        if escaped:
            escaped = False
            out.append(ch)
        elif ch == "\\":
            escaped = True
            out.append(ch)
        elif ch == '"':
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j >= n or text[j] in ",:}]":
                in_string = False
                out.append(ch)
            else:
                out.append('\\"')
        else:
            out.append(ch)

    return "".join(out)


class _Frame:
    """One open container while re-scanning the text."""

    __slots__ = ("kind", "expect", "member_start")

    def __init__(self, kind: str, member_start: int):
        self.kind = kind
        # object: key -> colon -> value -> comma; array: value -> comma
        self.expect = "key" if kind == "{" else "value"
        # where the member being written begins (just after "{"/"[" or at its comma)
        self.member_start = member_start

    @property
    def closer(self) -> str:
        return "}" if self.kind == "{" else "]"


def _value_done(stack: list[_Frame]) -> None:
    if stack:
        stack[-1].expect = "comma"


def repair_json(text: str) -> str:
    """
    Best-effort fix-up of almost-JSON.

    - escapes stray quotes inside strings
    - drops trailing commas before ``}`` / ``]``
    - closes an unterminated string
    - drops an incomplete trailing member (``,"key"``, ``,"key":``, ``tru``)
    - closes every open container, innermost first

    Anything before the first ``{``/``[`` or after the root container closes
    is discarded.
    """
    text = _escape_inner_quotes(text.strip())

    out: list[str] = []
    stack: list[_Frame] = []
    in_string = False
    string_is_key = False
    escaped = False
    token_start: int | None = None
    root_closed = False

    for ch in text:
        if not stack:
            if ch in "{[":
                out.append(ch)
                stack.append(_Frame(ch, len(out)))
            continue

        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                if string_is_key:
                    stack[-1].expect = "colon"
                else:
                    _value_done(stack)
            continue

        if token_start is not None and (ch.isspace() or ch in ",:]}"):
            token_start = None
            _value_done(stack)

        if ch == '"':
            in_string = True
            frame = stack[-1]
            string_is_key = frame.kind == "{" and frame.expect == "key"
            out.append(ch)
        elif ch in "{[":
            out.append(ch)
            stack.append(_Frame(ch, len(out)))
        elif ch in "}]":
            frame = stack.pop()
            if frame.expect != "comma":
                # trailing comma or a member that never got its value
                del out[frame.member_start :]
            out.append(frame.closer)
            if not stack:
                root_closed = True
                break
            _value_done(stack)
        elif ch == ",":
            frame = stack[-1]
            frame.member_start = len(out)
            frame.expect = "key" if frame.kind == "{" else "value"
            out.append(ch)
        elif ch == ":":
            frame = stack[-1]
            if frame.kind == "{":
                frame.expect = "value"
            out.append(ch)
        elif ch.isspace():
            out.append(ch)
        else:
            if token_start is None:
                token_start = len(out)
            out.append(ch)

    if root_closed or not stack:
        return "".join(out)

    if in_string:
        if escaped:
            out.pop()
        out.append('"')
        if not string_is_key:
            _value_done(stack)
    elif token_start is not None:
        try:
            _parse("".join(out[token_start:]))
            _value_done(stack)
        except ValueError:
            pass  # partial literal such as "tru" or "1."; dropped below

    while stack:
        frame = stack.pop()
        if frame.expect != "comma":
            del out[frame.member_start :]
        out.append(frame.closer)
        _value_done(stack)

    return "".join(out)
