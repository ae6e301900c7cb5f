"""Front-matter codec for Markdown posts.

Reads and writes the flat ``---`` header used by the blog's content
collection: one ``key: value`` pair per line, where a value is either a
scalar string or a JSON-style list of strings.  Nested YAML is not
supported; a header using it is left untouched in the body so that a
later write cannot drop it.
"""

from __future__ import annotations

import json
import logging

from postdesk.errors import MalformedFrontMatterError

logger = logging.getLogger(__name__)

FENCE = "---"

FrontMatterValue = str | list[str]
FrontMatter = dict[str, FrontMatterValue]


def decode(raw: str) -> tuple[FrontMatter, str]:
    """Split raw file text into front matter and Markdown body.

    Text that does not open with a complete ``---`` block is all body.
    An unparseable header degrades to empty front matter with the full
    raw text as body.  Never raises.
    """
    split = _split_header(raw)
    if split is None:
        return {}, raw

    header_lines, body = split
    try:
        front_matter = _parse_header(header_lines)
    except MalformedFrontMatterError as exc:
        logger.debug("Unparseable front matter, keeping raw text as body: %s", exc)
        return {}, raw
    return front_matter, body


def encode(front_matter: FrontMatter, body: str) -> str:
    """Render front matter and body back into a single Markdown document.

    Scalars are always double-quoted and lists always written as
    ``["a", "b"]``.  Empty front matter yields the body unchanged.
    """
    if not front_matter:
        return body

    lines = [FENCE]
    for key, value in front_matter.items():
        lines.append(f"{key}: {_format_value(value)}")
    lines.append(FENCE)
    return "\n".join(lines) + "\n\n" + body


# ── Internals ────────────────────────────────────────────────────────


def _split_header(raw: str) -> tuple[list[str], str] | None:
    lines = raw.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != FENCE:
        return None

    for idx in range(1, len(lines)):
        if lines[idx].rstrip("\r\n") == FENCE:
            header = [line.rstrip("\r\n") for line in lines[1:idx]]
            rest = lines[idx + 1 :]
            # encode() writes one blank separator line after the fence
            if rest and not rest[0].strip("\r\n"):
                rest = rest[1:]
            return header, "".join(rest)
    return None


def _parse_header(lines: list[str]) -> FrontMatter:
    result: FrontMatter = {}
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if line[0].isspace() or stripped.startswith("- "):
            raise MalformedFrontMatterError(f"nested value not supported: {line!r}")
        colon = stripped.find(":")
        if colon <= 0:
            raise MalformedFrontMatterError(f"expected 'key: value', got {line!r}")
        key = stripped[:colon].strip()
        result[key] = _parse_value(stripped[colon + 1 :].strip())
    return result


def _parse_value(value: str) -> FrontMatterValue:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        unquoted = _unquote(value)
        if unquoted.startswith("[") and unquoted.endswith("]"):
            logger.debug("Quoted value %r kept as a string, not a list", value)
        return unquoted

    if value.startswith("[") and value.endswith("]"):
        try:
            parsed = json.loads(value)
        except ValueError:
            return value
        if isinstance(parsed, list):
            return [item if isinstance(item, str) else json.dumps(item) for item in parsed]
    return value


def _unquote(value: str) -> str:
    if value[0] == '"':
        try:
            unescaped = json.loads(value)
        except ValueError:
            unescaped = None
        if isinstance(unescaped, str):
            return unescaped
    return value[1:-1]


def _format_value(value: FrontMatterValue) -> str:
    if isinstance(value, list):
        return "[" + ", ".join(json.dumps(str(v), ensure_ascii=False) for v in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)
