"""Literal and regex search over indexed line arrays."""

import logging
import re
import threading
from collections.abc import Mapping

from vault_mcp.errors import BadRequestError, NotFoundError, QueryCancelledError
from vault_mcp.indexer.models import NoteRecord, SearchMatch
from vault_mcp.indexer.walker import normalize_vault_path

logger = logging.getLogger(__name__)


def compile_query(query: str, regex: bool = False, case_sensitive: bool = False) -> re.Pattern:
    """
    Compile a search query.

    Raises:
        BadRequestError: Empty query or invalid regex pattern.
    """
    if not query:
        raise BadRequestError("Search query must not be empty")

    flags = 0 if case_sensitive else re.IGNORECASE
    if not regex:
        return re.compile(re.escape(query), flags)
    try:
        return re.compile(query, flags)
    except re.error as e:
        raise BadRequestError(f"Invalid regex pattern: {e}") from e


def select_scope(paths: list[str], scope: str | None) -> list[str]:
    """Restrict sorted paths to an exact file or a folder prefix."""
    prefix = normalize_vault_path(scope)
    if not prefix:
        return paths
    if prefix in paths:
        return [prefix]
    selected = [p for p in paths if p.startswith(prefix + "/")]
    if not selected:
        raise NotFoundError(f"Search scope not found: {prefix}")
    return selected


def search_records(
    records: Mapping[str, NoteRecord],
    pattern: re.Pattern,
    context_lines: int = 2,
    scope: str | None = None,
    limit: int | None = None,
    cancel_event: threading.Event | None = None,
) -> list[SearchMatch]:
    """
    Scan every record's lines and return one SearchMatch per match.

    Files are visited in ascending path order, lines in ascending order.
    Zero-width matches are not reported.

    Raises:
        BadRequestError: Negative context_lines or limit.
        NotFoundError: scope matches no indexed file.
        QueryCancelledError: cancel_event was set between two files.
    """
    if context_lines < 0:
        raise BadRequestError(f"context_lines must be >= 0, got {context_lines}")
    if limit is not None and limit < 1:
        raise BadRequestError(f"limit must be >= 1, got {limit}")

    matches: list[SearchMatch] = []
    for path in select_scope(sorted(records), scope):
        if cancel_event is not None and cancel_event.is_set():
            raise QueryCancelledError("Search cancelled")

        lines = records[path].lines
        for index, line in enumerate(lines):
            for found in pattern.finditer(line):
                if found.start() == found.end():
                    continue
                matches.append(
                    SearchMatch(
                        filename=path,
                        line_number=index + 1,
                        line_content=line,
                        context_before=lines[max(0, index - context_lines) : index],
                        context_after=lines[index + 1 : index + 1 + context_lines],
                        match_start=found.start(),
                        match_end=found.end(),
                    )
                )
                if limit is not None and len(matches) >= limit:
                    logger.debug("Search stopped at limit of %d matches", limit)
                    return matches

    return matches
