"""
Indexer module for vaultMCP.

This module keeps an in-memory index of the vault in sync with the filesystem.
It is the core component of the system - if it works well, everything else fits.
"""

from vault_mcp.indexer.indexer import VaultIndex
from vault_mcp.indexer.links import LinkResolver, build_link_graph
from vault_mcp.indexer.models import (
    DirectoryNode,
    LinkedNotes,
    NoteRecord,
    RefreshStats,
    SearchMatch,
    TagCount,
    VaultSnapshot,
)
from vault_mcp.indexer.parser import parse_frontmatter, parse_note
from vault_mcp.indexer.search import compile_query, search_records
from vault_mcp.indexer.structure import build_structure
from vault_mcp.indexer.walker import FileInfo, normalize_vault_path, walk_vault

__all__ = [
    "DirectoryNode",
    "FileInfo",
    "LinkResolver",
    "LinkedNotes",
    "NoteRecord",
    "RefreshStats",
    "SearchMatch",
    "TagCount",
    "VaultIndex",
    "VaultSnapshot",
    "build_link_graph",
    "build_structure",
    "compile_query",
    "normalize_vault_path",
    "parse_frontmatter",
    "parse_note",
    "search_records",
    "walk_vault",
]
