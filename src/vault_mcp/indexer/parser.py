"""Parser for YAML frontmatter, inline tags and wiki-links."""

import datetime
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from vault_mcp.errors import RecoverableParseIssue
from vault_mcp.indexer.models import FrontmatterValue

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = (".md", ".markdown")
TEXT_EXTENSIONS = MARKDOWN_EXTENSIONS + (".txt",)

FRONTMATTER_DELIMITER = "---"

# [[target]], [[target|alias]], [[target#heading]], ![[embed]]
WIKILINK_PATTERN = re.compile(r"\[\[([^\[\]\n]+?)\]\]")
# #tag, #multi-word, #nested/tag; not part of a word, URL fragment or entity
TAG_PATTERN = re.compile(r"(?<![\w#&/])#([\w][\w/-]*)")
INLINE_CODE_PATTERN = re.compile(r"(`+)(?:(?!\1).)+?\1")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
TAG_SPLIT_PATTERN = re.compile(r"[,\s]+")


@dataclass
class ParsedNote:
    """Fields of a NoteRecord produced from file content."""

    frontmatter: dict[str, FrontmatterValue] = field(default_factory=dict)
    tags: frozenset[str] = frozenset()
    lines: tuple[str, ...] = ()
    outgoing_links: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def is_text_file(path: str) -> bool:
    return PurePosixPath(path).suffix.lower() in TEXT_EXTENSIONS


def is_markdown_file(path: str) -> bool:
    return PurePosixPath(path).suffix.lower() in MARKDOWN_EXTENSIONS


def split_lines(content: str) -> list[str]:
    """
    Split content into lines without terminators.

    A final newline does not produce a trailing empty line, so "a\\nb\\n"
    and "a\\nb" both give ["a", "b"].
    """
    if not content:
        return []
    lines = re.split(r"\r\n|\r|\n", content)
    if lines[-1] == "":
        lines.pop()
    return lines


def normalize_frontmatter_value(value: Any) -> FrontmatterValue:
    """Convert a YAML value into the FrontmatterValue variant."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): normalize_frontmatter_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [normalize_frontmatter_value(v) for v in value]
    return str(value)


def _find_frontmatter_end(lines: list[str]) -> int | None:
    """Return the index of the closing delimiter, or None."""
    if not lines or lines[0].rstrip() != FRONTMATTER_DELIMITER:
        return None
    for i in range(1, len(lines)):
        if lines[i].rstrip() == FRONTMATTER_DELIMITER:
            return i
    return None


def parse_frontmatter(
    content: str, file_path: str
) -> tuple[dict[str, FrontmatterValue], int, list[str]]:
    """
    Parse YAML frontmatter from markdown content.

    Args:
        content: The full markdown content
        file_path: Relative path from the vault root, used in warnings

    Returns:
        Tuple of (frontmatter, index of the first body line, warnings).
        Frontmatter is empty when absent or malformed.
    """
    lines = split_lines(content)
    end = _find_frontmatter_end(lines)
    if end is None:
        return {}, 0, []

    block = "\n".join(lines[1:end])
    warnings: list[str] = []
    try:
        raw = yaml.safe_load(block)
    # Date-like scalars such as 2023-13-45 raise ValueError from the constructor
    except (yaml.YAMLError, ValueError) as e:
        logger.warning("Invalid YAML frontmatter in %s: %s", file_path, e)
        warnings.append(f"Invalid YAML frontmatter: {e}")
        return {}, end + 1, warnings

    if raw is None:
        return {}, end + 1, warnings
    if not isinstance(raw, dict):
        logger.warning("Frontmatter in %s is not a mapping", file_path)
        warnings.append("Frontmatter is not a key/value mapping")
        return {}, end + 1, warnings

    frontmatter = {str(k): normalize_frontmatter_value(v) for k, v in raw.items()}
    return frontmatter, end + 1, warnings


def _clean_tag(tag: str) -> str:
    return tag.strip().lstrip("#").strip().lower()


def frontmatter_tags(value: FrontmatterValue) -> set[str]:
    """Extract normalized tags from a frontmatter `tags` value."""
    if value is None:
        return set()
    if isinstance(value, str):
        items = TAG_SPLIT_PATTERN.split(value)
    elif isinstance(value, list):
        items = [str(v) for v in value if v is not None and not isinstance(v, (list, dict))]
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        items = [str(value)]
    else:
        return set()
    return {t for t in (_clean_tag(item) for item in items) if t}


def extract_inline_tags(lines: list[str]) -> set[str]:
    """Extract #tags from body lines, skipping fenced code and inline code."""
    tags: set[str] = set()
    fence: str | None = None
    for line in lines:
        fence_match = FENCE_PATTERN.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
            continue
        if fence is not None:
            continue

        text = INLINE_CODE_PATTERN.sub(" ", line)
        for match in TAG_PATTERN.finditer(text):
            tag = match.group(1).rstrip("/-").lower()
            # Obsidian treats purely numeric tokens (#42) as plain text
            if tag and not tag.replace("/", "").isdigit():
                tags.add(tag)
    return tags


def extract_wikilinks(content: str) -> list[str]:
    """Return all [[wiki-link]] targets in content (de-duped, ordered)."""
    seen: set[str] = set()
    result: list[str] = []
    for match in WIKILINK_PATTERN.finditer(content):
        target = match.group(1).split("|", 1)[0]
        target = re.split(r"[#^]", target, maxsplit=1)[0].strip()
        if target and target not in seen:
            seen.add(target)
            result.append(target)
    return result


def parse_note(content: str, file_path: str) -> ParsedNote:
    """
    Parse file content into note fields.

    Markdown files get frontmatter, tags and links. Other text files only
    contribute their lines.
    """
    lines = split_lines(content)
    if not is_markdown_file(file_path):
        return ParsedNote(lines=tuple(lines))

    frontmatter, body_start, warnings = parse_frontmatter(content, file_path)

    tags = frontmatter_tags(frontmatter.get("tags"))
    tags |= extract_inline_tags(lines[body_start:])

    return ParsedNote(
        frontmatter=frontmatter,
        tags=frozenset(tags),
        lines=tuple(lines),
        outgoing_links=tuple(extract_wikilinks(content)),
        warnings=tuple(warnings),
    )


def read_note_file(path: Path, relative_path: str) -> str:
    """
    Read a file as UTF-8 text.

    Raises:
        RecoverableParseIssue: The file cannot be read or is not valid text.
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RecoverableParseIssue(f"Cannot read {relative_path}: {e}") from e

    if b"\x00" in data:
        raise RecoverableParseIssue(f"Skipping binary file: {relative_path}")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise RecoverableParseIssue(
            f"Skipping file with invalid UTF-8 encoding: {relative_path} ({e})"
        ) from e
