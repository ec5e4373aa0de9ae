"""MCP tools for vaultMCP server.

This module defines the tools exposed by the MCP server:
- list_files: List files in the vault or a folder
- get_vault_structure: Folder tree with file counts
- get_file_metadata: Frontmatter, tags, links and timestamps of a note
- get_tags_summary: Tags with the number of notes carrying them
- get_notes_by_tag: Notes carrying any of the given tags
- search_with_context: Literal or regex search with surrounding lines
- get_linked_notes: Outgoing and incoming wiki-links of a note
- read_text_file: Raw content of a text file
"""

import functools
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from vault_mcp.config import Config
from vault_mcp.errors import VaultError
from vault_mcp.indexer import NoteRecord, VaultIndex

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _timestamp(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def _reports_vault_errors(fn: F) -> F:
    """Turn VaultError into ToolError so the agent gets a typed failure."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except VaultError as e:
            logger.info("%s failed (%s): %s", fn.__name__, e.kind, e.message)
            raise ToolError(f"{e.kind}: {e.message}") from e

    return wrapper  # type: ignore[return-value]


def note_metadata(record: NoteRecord) -> dict[str, Any]:
    """Metadata view of a note record."""
    return {
        "path": record.path,
        "created_at": _timestamp(record.created_at),
        "modified_at": _timestamp(record.modified_at),
        "size_bytes": record.size_bytes,
        "tags": sorted(record.tags),
        "outgoing_links": list(record.outgoing_links),
        "resolved_links": list(record.resolved_links),
        "ambiguous_links": {k: list(v) for k, v in record.ambiguous_links.items()},
        "frontmatter": record.frontmatter,
        "warnings": list(record.warnings),
    }


def build_tools(index: VaultIndex, config: Config) -> list[Callable[..., Any]]:
    """Create the tool functions bound to a vault index.

    Args:
        index: VaultIndex serving all queries
        config: Config instance (search result cap)

    Returns:
        Plain functions, in registration order.
    """

    @_reports_vault_errors
    def list_files(subfolder: str | None = None) -> list[str]:
        """List every file in the vault, or in a folder and its subfolders.

        Args:
            subfolder: Optional folder relative to the vault root
                (e.g. "characters/npcs"), NOT an absolute path

        Returns:
            Sorted file paths relative to the vault root.
        """
        return index.list_files(subfolder)

    @_reports_vault_errors
    def get_vault_structure(subfolder: str | None = None) -> dict:
        """Return the folder tree of the vault with file counts.

        Helps understand how notes are organized.

        Args:
            subfolder: Optional folder relative to the vault root to use as
                the tree root, NOT an absolute path

        Returns:
            Nested directories with:
            - name / path: Folder name and path relative to the vault root
            - files: File names directly in the folder
            - file_count: Number of files directly in the folder
            - total_file_count: Number of files in the folder and below
            - children: Subfolders, sorted by name
        """
        return index.get_structure(subfolder).to_dict()

    @_reports_vault_errors
    def get_file_metadata(path: str) -> dict:
        """Return the metadata of a note.

        Args:
            path: Note path relative to the vault root (e.g. "npcs/mira.md")

        Returns:
            Metadata with:
            - created_at / modified_at: ISO-8601 timestamps (UTC)
            - tags: Lowercase tags from frontmatter and #inline tags
            - outgoing_links: Raw [[wiki-link]] targets
            - resolved_links: Targets resolved to note paths
            - ambiguous_links: Targets matching several notes, with candidates
            - frontmatter: Frontmatter properties
            - warnings: Problems found while parsing the note
        """
        return note_metadata(index.get_metadata(path))

    @_reports_vault_errors
    def get_tags_summary(subfolder: str | None = None) -> list[dict]:
        """Return all tags used in the vault with the notes carrying them.

        Sorted by number of notes (descending), then by tag name.

        Args:
            subfolder: Optional folder relative to the vault root to limit
                the summary to, NOT an absolute path

        Returns:
            List of {tag, count, files}.
        """
        return [
            {"tag": t.tag, "count": t.count, "files": list(t.files)}
            for t in index.get_tags_summary(subfolder)
        ]

    @_reports_vault_errors
    def get_notes_by_tag(tags: list[str], subfolder: str | None = None) -> list[dict]:
        """Find notes carrying ANY of the given tags (case-insensitive).

        Args:
            tags: Tag names, with or without the leading #
            subfolder: Optional folder relative to the vault root

        Returns:
            List of {path, tags, frontmatter, created_at, modified_at},
            sorted by path.
        """
        return [
            {
                "path": record.path,
                "tags": sorted(record.tags),
                "frontmatter": record.frontmatter,
                "created_at": _timestamp(record.created_at),
                "modified_at": _timestamp(record.modified_at),
            }
            for record in index.get_notes_by_tag(tags, subfolder)
        ]

    @_reports_vault_errors
    def search_with_context(
        query: str,
        context_lines: int = 2,
        regex: bool = False,
        case_sensitive: bool = False,
        scope: str | None = None,
    ) -> list[dict]:
        """Search note contents and return matches with surrounding lines.

        Args:
            query: Text to find, or a Python regular expression if regex is true
            context_lines: Lines of context before and after each match (default: 2)
            regex: Treat the query as a regular expression (default: false)
            case_sensitive: Match case exactly (default: false)
            scope: Optional note path or folder relative to the vault root

        Returns:
            One entry per match, ordered by file then line, with:
            - filename, line_number (1-based), line_content
            - context_before / context_after
            - match_start / match_end: character offsets in line_content
        """
        matches = index.search(
            query,
            context_lines=context_lines,
            regex=regex,
            case_sensitive=case_sensitive,
            scope=scope,
            limit=config.max_search_results,
        )
        if len(matches) >= config.max_search_results:
            logger.info("Search for %r truncated at %d matches", query, len(matches))
        return [m.to_dict() for m in matches]

    @_reports_vault_errors
    def get_linked_notes(path: str) -> dict:
        """Find the notes a note links to and the notes linking to it.

        Args:
            path: Note path relative to the vault root

        Returns:
            {path, outgoing, incoming, unresolved} where outgoing and incoming
            are note paths and unresolved lists link targets that match no
            note or more than one.
        """
        linked = index.get_linked_notes(path)
        return {
            "path": linked.path,
            "outgoing": list(linked.outgoing),
            "incoming": list(linked.incoming),
            "unresolved": list(linked.unresolved),
        }

    @_reports_vault_errors
    def read_text_file(path: str) -> str:
        """Read the contents of a text file (markdown or plain text).

        Args:
            path: File path relative to the vault root (e.g. "lore/gods.md").
                Only use paths that exist in the vault; do not guess.

        Returns:
            The raw file content.
        """
        return index.read_text_file(path)

    return [
        list_files,
        get_vault_structure,
        get_file_metadata,
        get_tags_summary,
        get_notes_by_tag,
        search_with_context,
        get_linked_notes,
        read_text_file,
    ]


def register_tools(mcp: FastMCP, index: VaultIndex, config: Config) -> list[str]:
    """Register all read tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        index: VaultIndex serving the queries
        config: Config instance

    Returns:
        Names of the registered tools.
    """
    names = []
    for fn in build_tools(index, config):
        mcp.tool()(fn)
        names.append(fn.__name__)
    return names
